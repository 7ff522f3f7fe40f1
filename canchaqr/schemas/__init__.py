from canchaqr.schemas.common import ApiResponse, DeletedResponse, Page, Pagination
from canchaqr.schemas.payment import (
    PaymentCreate,
    PaymentUpdate,
    PaymentResponse,
    QRIssuanceResponse,
    QRVerifyRequest,
)
from canchaqr.schemas.reservation import (
    SlotRequest,
    ReservationCreate,
    ReservationUpdate,
    SlotResponse,
    ReservationSummary,
    ReservationResponse,
)
from canchaqr.schemas.guest_invitation import GuestInvitationCreate, GuestInvitationResponse
