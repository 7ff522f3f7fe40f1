"""
Display context for a reservation: court, venue, host and slots.

Loaded with plain joins so it can run after the reservation row has been
locked with FOR UPDATE in the same transaction.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from canchaqr.core.exceptions import ReferenceNotFoundError, ValidationError
from canchaqr.models import Reservation, ReservationSlot, Court, Venue, Person


@dataclass
class ReservationContext:
    reservation_id: int
    reservation_date: date
    court_name: str
    venue_name: str
    host_alias: str
    host_name: str
    slots: List[ReservationSlot] = field(default_factory=list)

    @property
    def slot_labels(self) -> List[str]:
        return [slot.label for slot in self.slots]

    @property
    def ends_at(self) -> Optional[datetime]:
        """End of the latest slot."""
        if not self.slots:
            return None
        return max(slot.ends_at for slot in self.slots)

    @property
    def place(self) -> str:
        return f"{self.venue_name} - {self.court_name}"


async def load_reservation_context(db: AsyncSession, reservation_id: int) -> ReservationContext:
    result = await db.execute(
        select(
            Reservation.reservation_date,
            Court.name.label("court_name"),
            Venue.name.label("venue_name"),
            Person.alias,
            Person.first_name,
            Person.last_name,
        )
        .select_from(Reservation)
        .join(Court, Court.id == Reservation.court_id)
        .join(Venue, Venue.id == Court.venue_id)
        .join(Person, Person.id == Reservation.host_id)
        .where(Reservation.id == reservation_id)
    )
    row = result.first()
    if not row:
        raise ReferenceNotFoundError(
            f"Reservation {reservation_id} not found", entity="reservation", entity_id=reservation_id
        )

    slots_result = await db.execute(
        select(ReservationSlot)
        .where(ReservationSlot.reservation_id == reservation_id)
        .order_by(ReservationSlot.slot_date, ReservationSlot.start_time)
    )

    host_name = " ".join(part for part in (row.first_name, row.last_name) if part) or row.alias
    return ReservationContext(
        reservation_id=reservation_id,
        reservation_date=row.reservation_date,
        court_name=row.court_name,
        venue_name=row.venue_name,
        host_alias=row.alias,
        host_name=host_name,
        slots=list(slots_result.scalars().all()),
    )


def require_end(context: ReservationContext) -> datetime:
    """Expiration instant of a reservation, i.e. the end of its last slot."""
    ends_at = context.ends_at
    if ends_at is None:
        raise ValidationError(
            f"Reservation {context.reservation_id} has no slots",
            code="RESERVATION_WITHOUT_SLOTS",
            details={"reservation_id": context.reservation_id},
        )
    return ends_at
