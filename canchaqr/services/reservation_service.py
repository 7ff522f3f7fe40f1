"""
Reservation Store

Reservation header plus its slot rows, created and replaced inside the
caller's transaction (the request session commits once at the end, or rolls
back everything on error).
"""
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Optional

from sqlalchemy import select, delete, update as sql_update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from canchaqr.core.config import settings
from canchaqr.core.exceptions import ReferenceNotFoundError, ValidationError
from canchaqr.models import (
    Court,
    Host,
    Reservation,
    ReservationSlot,
    ReservationStatus,
)
from canchaqr.services.payment_service import derive_status, lock_reservation
from canchaqr.services.role_service import Capability, ensure_capability
from canchaqr.services.slot_calculator import SlotCalculation, calculate_slots, to_money, total_of

logger = logging.getLogger(__name__)


async def get_court(db: AsyncSession, court_id: int) -> Court:
    result = await db.execute(select(Court).where(Court.id == court_id))
    court = result.scalar_one_or_none()
    if not court:
        raise ReferenceNotFoundError(f"Court {court_id} not found", entity="court", entity_id=court_id)
    return court


def _slot_rows(calculation: SlotCalculation, slot_date: date, reservation_id: Optional[int] = None):
    rows = []
    for slot in calculation.slots:
        row = ReservationSlot(
            slot_date=slot_date,
            start_time=slot.start_time,
            end_time=slot.end_time,
            amount=slot.amount,
        )
        if reservation_id is not None:
            row.reservation_id = reservation_id
        rows.append(row)
    return rows


async def create(
    db: AsyncSession,
    host_id: int,
    court_id: int,
    reservation_date: date,
    slots: Iterable[Any],
    capacity: Optional[int] = None,
) -> Reservation:
    """
    Create a pending reservation with its slots.

    Raises:
        ReferenceNotFoundError: host is not a client, or court missing
        SlotValidationError: a slot is malformed
    """
    await ensure_capability(db, host_id, Capability.HOST)
    court = await get_court(db, court_id)
    calculation = calculate_slots(court.hourly_rate, slots, reservation_date)

    now = datetime.now(timezone.utc)
    reservation = Reservation(
        host_id=host_id,
        court_id=court.id,
        reservation_date=reservation_date,
        capacity=capacity,
        status=ReservationStatus.PENDING,
        total_amount=Decimal("0.00"),
        amount_paid=Decimal("0.00"),
        created_at=now,
        expires_at=Reservation.create_expiry(settings.RESERVATION_TTL_MINUTES, now),
        slots=_slot_rows(calculation, reservation_date),
    )
    db.add(reservation)
    await db.flush()

    reservation.total_amount = calculation.total_amount
    await db.flush()

    logger.info(
        f"Reservation {reservation.id} created for host {host_id} on court {court.id}: "
        f"{len(calculation.slots)} slot(s), total {calculation.total_amount}"
    )
    return reservation


async def stored_slot_total(db: AsyncSession, reservation_id: int) -> Decimal:
    result = await db.execute(
        select(ReservationSlot.amount).where(ReservationSlot.reservation_id == reservation_id)
    )
    return total_of(result.scalars().all())


async def update(db: AsyncSession, reservation_id: int, changes: Mapping[str, Any]) -> Reservation:
    """
    Apply a partial update.

    `changes` holds only the fields the caller sent (see
    ReservationUpdate.model_dump(exclude_unset=True)). Supplying `slots`
    replaces every slot; otherwise the total is recomputed from the stored
    slots.
    """
    reservation = await lock_reservation(db, reservation_id)

    if changes.get("host_id") is not None and changes["host_id"] != reservation.host_id:
        await ensure_capability(db, changes["host_id"], Capability.HOST)
        reservation.host_id = changes["host_id"]

    court = None
    if changes.get("court_id") is not None:
        court = await get_court(db, changes["court_id"])
        reservation.court_id = court.id

    if "capacity" in changes:
        reservation.capacity = changes["capacity"]

    date_changed = False
    if changes.get("reservation_date") is not None and changes["reservation_date"] != reservation.reservation_date:
        reservation.reservation_date = changes["reservation_date"]
        date_changed = True

    if changes.get("slots") is not None:
        if court is None:
            court = await get_court(db, reservation.court_id)
        calculation = calculate_slots(court.hourly_rate, changes["slots"], reservation.reservation_date)

        await db.execute(delete(ReservationSlot).where(ReservationSlot.reservation_id == reservation.id))
        db.add_all(_slot_rows(calculation, reservation.reservation_date, reservation.id))
        await db.flush()
        total = calculation.total_amount
    else:
        if date_changed:
            await db.execute(
                sql_update(ReservationSlot)
                .where(ReservationSlot.reservation_id == reservation.id)
                .values(slot_date=reservation.reservation_date)
            )
        total = await stored_slot_total(db, reservation.id)

    paid = to_money(reservation.amount_paid)
    if total < paid:
        raise ValidationError(
            f"New total {total} is below the {paid} already paid",
            code="TOTAL_BELOW_PAID",
            details={"total_amount": str(total), "amount_paid": str(paid)},
        )

    reservation.total_amount = total
    if reservation.status != ReservationStatus.CANCELLED:
        reservation.status = derive_status(paid, total)
    await db.flush()

    logger.info(f"Reservation {reservation.id} updated: total {total}, status {reservation.status.value}")
    return reservation


def _detail_options():
    return (
        selectinload(Reservation.slots),
        joinedload(Reservation.court).joinedload(Court.venue),
        joinedload(Reservation.host).joinedload(Host.person),
        selectinload(Reservation.qr_issuance),
    )


async def get_by_id(db: AsyncSession, reservation_id: int) -> Reservation:
    result = await db.execute(
        select(Reservation)
        .options(*_detail_options())
        .where(Reservation.id == reservation_id)
        .execution_options(populate_existing=True)
    )
    reservation = result.unique().scalar_one_or_none()
    if not reservation:
        raise ReferenceNotFoundError(
            f"Reservation {reservation_id} not found", entity="reservation", entity_id=reservation_id
        )
    return reservation


async def delete_reservation(db: AsyncSession, reservation_id: int) -> List[str]:
    """
    Delete a reservation with its slots, payments, QR issuance and invitations.

    Returns the QR file paths it owned; the caller removes them after commit.
    """
    result = await db.execute(
        select(Reservation)
        .options(selectinload(Reservation.qr_issuance), selectinload(Reservation.guest_invitations))
        .where(Reservation.id == reservation_id)
    )
    reservation = result.scalar_one_or_none()
    if not reservation:
        raise ReferenceNotFoundError(
            f"Reservation {reservation_id} not found", entity="reservation", entity_id=reservation_id
        )

    artifacts = []
    if reservation.qr_issuance:
        artifacts.extend(reservation.qr_issuance.artifact_paths)
    artifacts.extend(invitation.qr_path for invitation in reservation.guest_invitations)

    await db.delete(reservation)
    await db.flush()

    logger.info(f"Reservation {reservation_id} deleted ({len(artifacts)} QR artifact(s) to release)")
    return artifacts


async def list_for_host(
    db: AsyncSession,
    host_id: int,
    status: Optional[ReservationStatus] = None,
) -> List[Reservation]:
    """A host's reservations, newest first."""
    query = (
        select(Reservation)
        .options(*_detail_options())
        .where(Reservation.host_id == host_id)
        .order_by(Reservation.reservation_date.desc(), Reservation.id.desc())
    )
    if status is not None:
        query = query.where(Reservation.status == status)

    result = await db.execute(query)
    return list(result.unique().scalars().all())


async def list_awaiting_payment(db: AsyncSession, host_id: Optional[int] = None) -> List[Reservation]:
    """Pending or partially paid reservations, soonest to expire first."""
    query = (
        select(Reservation)
        .options(*_detail_options())
        .where(Reservation.status.in_([ReservationStatus.PENDING, ReservationStatus.PARTIALLY_PAID]))
        .order_by(Reservation.expires_at, Reservation.id)
    )
    if host_id is not None:
        query = query.where(Reservation.host_id == host_id)

    result = await db.execute(query)
    return list(result.unique().scalars().all())
