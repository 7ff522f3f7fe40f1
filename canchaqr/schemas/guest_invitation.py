from datetime import date, datetime
from typing import Optional
from pydantic import BaseModel

from canchaqr.models import AttendanceStatus, GuestInvitation


class GuestInvitationCreate(BaseModel):
    reservation_id: int
    person_id: int


class GuestInvitationResponse(BaseModel):
    id: Optional[int] = None
    reservation_id: int
    person_id: int
    invitation_code: str
    qr_path: str
    attendance: AttendanceStatus
    confirmed_at: datetime
    expires_at: datetime
    guest_alias: Optional[str] = None
    reservation_date: Optional[date] = None
    court_name: Optional[str] = None

    @classmethod
    def from_invitation(
        cls,
        invitation: GuestInvitation,
        alias: Optional[str] = None,
        with_reservation: bool = False,
    ) -> "GuestInvitationResponse":
        """`with_reservation` expects invitation.reservation.court loaded."""
        reservation = invitation.reservation if with_reservation else None
        return cls(
            id=invitation.id,
            reservation_id=invitation.reservation_id,
            person_id=invitation.person_id,
            invitation_code=invitation.invitation_code,
            qr_path=invitation.qr_path,
            attendance=invitation.attendance,
            confirmed_at=invitation.confirmed_at,
            expires_at=invitation.expires_at,
            guest_alias=alias,
            reservation_date=reservation.reservation_date if reservation else None,
            court_name=reservation.court.name if reservation and reservation.court else None,
        )
