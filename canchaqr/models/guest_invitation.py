"""
Guest invitation model
"""
from datetime import datetime, timezone
from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, UniqueConstraint, Enum as SQLEnum
)
from sqlalchemy.orm import relationship
import enum

from canchaqr.core.database import Base


class AttendanceStatus(str, enum.Enum):
    PENDING = "pending"
    ATTENDED = "attended"
    NO_SHOW = "no_show"


class GuestInvitation(Base):
    """A personal QR invitation for one guest to one reservation."""
    __tablename__ = "guest_invitations"
    __table_args__ = (
        UniqueConstraint("reservation_id", "person_id", name="uq_guest_invitation_reservation_person"),
    )

    id = Column(Integer, primary_key=True, index=True)
    reservation_id = Column(
        Integer, ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    person_id = Column(Integer, ForeignKey("guests.person_id", ondelete="CASCADE"), nullable=False, index=True)

    invitation_code = Column(String(40), unique=True, nullable=False, index=True)
    qr_path = Column(String(255), nullable=False)
    attendance = Column(
        SQLEnum(
            AttendanceStatus,
            name="attendance_status",
            values_callable=lambda e: [m.value for m in e],
        ),
        default=AttendanceStatus.PENDING,
        nullable=False,
    )
    confirmed_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    reservation = relationship("Reservation", back_populates="guest_invitations")
    guest = relationship("Guest")
