from canchaqr.api.routes import reservations, payments, guest_invitations, qr_issuances
