"""CanchaQR: court reservations, installment payments and QR check-in."""
__version__ = "1.0.0"
