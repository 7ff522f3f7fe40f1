from datetime import date, datetime, time
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field

from canchaqr.models import Reservation, ReservationStatus
from canchaqr.schemas.payment import QRIssuanceResponse


# ============================================================================
# REQUEST SCHEMAS
# ============================================================================
class SlotRequest(BaseModel):
    # Format and alignment are checked by the slot calculator so errors can
    # name the offending slot.
    start: Optional[str] = None
    end: Optional[str] = None


class ReservationCreate(BaseModel):
    reservation_date: date = Field(alias="date")
    host_id: int
    court_id: int
    capacity: Optional[int] = Field(default=None, ge=1)
    slots: List[SlotRequest] = Field(min_length=1)

    class Config:
        populate_by_name = True


class ReservationUpdate(BaseModel):
    """Every field optional; only the ones sent are applied."""
    reservation_date: Optional[date] = Field(default=None, alias="date")
    host_id: Optional[int] = None
    court_id: Optional[int] = None
    capacity: Optional[int] = Field(default=None, ge=1)
    slots: Optional[List[SlotRequest]] = Field(default=None, min_length=1)

    class Config:
        populate_by_name = True


# ============================================================================
# RESPONSE SCHEMAS
# ============================================================================
class SlotResponse(BaseModel):
    id: Optional[int] = None
    slot_date: date
    start_time: time
    end_time: time
    amount: Decimal


class ReservationSummary(BaseModel):
    id: int
    status: ReservationStatus
    total_amount: Decimal
    amount_paid: Decimal
    outstanding_balance: Decimal
    expires_at: Optional[datetime] = None

    @classmethod
    def from_reservation(cls, reservation: Reservation) -> "ReservationSummary":
        return cls(
            id=reservation.id,
            status=reservation.status,
            total_amount=reservation.total_amount,
            amount_paid=reservation.amount_paid,
            outstanding_balance=reservation.outstanding_balance,
            expires_at=reservation.expires_at,
        )


class ReservationResponse(ReservationSummary):
    reservation_date: date
    capacity: Optional[int] = None
    host_id: int
    court_id: int
    created_at: Optional[datetime] = None
    host_alias: Optional[str] = None
    host_name: Optional[str] = None
    court_name: Optional[str] = None
    venue_name: Optional[str] = None
    hourly_rate: Optional[Decimal] = None
    slots: List[SlotResponse] = []
    qr: Optional[QRIssuanceResponse] = None

    @classmethod
    def from_reservation(cls, reservation: Reservation) -> "ReservationResponse":
        """Expects slots, court.venue, host.person and qr_issuance loaded."""
        court = reservation.court
        person = reservation.host.person if reservation.host else None
        return cls(
            id=reservation.id,
            status=reservation.status,
            total_amount=reservation.total_amount,
            amount_paid=reservation.amount_paid,
            outstanding_balance=reservation.outstanding_balance,
            expires_at=reservation.expires_at,
            reservation_date=reservation.reservation_date,
            capacity=reservation.capacity,
            host_id=reservation.host_id,
            court_id=reservation.court_id,
            created_at=reservation.created_at,
            host_alias=person.alias if person else None,
            host_name=person.display_name if person else None,
            court_name=court.name if court else None,
            venue_name=court.venue.name if court and court.venue else None,
            hourly_rate=court.hourly_rate if court else None,
            slots=[
                SlotResponse(
                    id=slot.id,
                    slot_date=slot.slot_date,
                    start_time=slot.start_time,
                    end_time=slot.end_time,
                    amount=slot.amount,
                )
                for slot in reservation.slots
            ],
            qr=QRIssuanceResponse.model_validate(reservation.qr_issuance) if reservation.qr_issuance else None,
        )
