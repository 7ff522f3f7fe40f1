from canchaqr.models.person import Person, Client, Host, Guest, Controller
from canchaqr.models.venue import Venue, Court
from canchaqr.models.reservation import Reservation, ReservationSlot, ReservationStatus
from canchaqr.models.payment import Payment, PaymentMethod, QRIssuance
from canchaqr.models.guest_invitation import GuestInvitation, AttendanceStatus
