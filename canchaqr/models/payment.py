"""
Payment and QR issuance models

Payments are installments against a reservation. The first payment that
takes the cumulative amount to QR_ISSUANCE_THRESHOLD triggers exactly one
QRIssuance for the reservation.
"""
from datetime import datetime, timezone
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Numeric, ForeignKey,
    CheckConstraint, Enum as SQLEnum
)
from sqlalchemy.orm import relationship
import enum

from canchaqr.core.database import Base


class PaymentMethod(str, enum.Enum):
    CARD = "card"
    CASH = "cash"
    TRANSFER = "transfer"
    QR = "qr"


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    reservation_id = Column(
        Integer, ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount = Column(Numeric(12, 2), nullable=False)
    method = Column(
        SQLEnum(
            PaymentMethod,
            name="payment_method",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
    )
    paid_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    reservation = relationship("Reservation", back_populates="payments")
    qr_issuance = relationship("QRIssuance", back_populates="payment", uselist=False)


class QRIssuance(Base):
    """
    Verification and invitation QR pair for a reservation.

    At most one row per reservation. Only `verified` changes after insert.
    """
    __tablename__ = "qr_issuances"

    id = Column(Integer, primary_key=True, index=True)
    reservation_id = Column(
        Integer, ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    payment_id = Column(
        Integer, ForeignKey("payments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    controller_id = Column(Integer, ForeignKey("controllers.person_id"), nullable=False, index=True)

    tracking_code = Column(String(100), unique=True, nullable=False, index=True)
    invitation_code = Column(String(40), unique=True, nullable=False, index=True)
    invitation_link = Column(String(2048), nullable=False)
    reservation_qr_path = Column(String(255), nullable=False)
    invitation_qr_path = Column(String(255), nullable=False)

    verified = Column(Boolean, default=False, nullable=False)
    generated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    reservation = relationship("Reservation", back_populates="qr_issuance")
    payment = relationship("Payment", back_populates="qr_issuance")
    controller = relationship("Controller")

    @property
    def artifact_paths(self):
        return [self.reservation_qr_path, self.invitation_qr_path]
