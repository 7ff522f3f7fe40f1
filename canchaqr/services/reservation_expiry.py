"""
Reservation Expiration Sweeper

Background service that resolves reservations still pending after
RESERVATION_TTL_MINUTES. Runs every RESERVATION_EXPIRY_INTERVAL_MINUTES from
the application lifespan, or standalone via run_expiry.py.

Each reservation is resolved in its own transaction so one bad row cannot
halt the sweep:
- paid < QR_ISSUANCE_THRESHOLD  -> cancelled (slots released)
- paid >= total_amount          -> fully_paid
- otherwise                     -> partially_paid
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from canchaqr.core.config import settings
from canchaqr.core.database import get_db_session
from canchaqr.models import Reservation, ReservationSlot, ReservationStatus
from canchaqr.services.payment_service import sum_payments
from canchaqr.services.slot_calculator import to_money

logger = logging.getLogger(__name__)

# Single-flight guard: a sweep that outlives the interval is not overlapped
_sweep_lock = asyncio.Lock()


def terminal_status(total_paid, total_amount, threshold=None) -> ReservationStatus:
    paid = to_money(total_paid)
    minimum = to_money(settings.QR_ISSUANCE_THRESHOLD if threshold is None else threshold)
    if paid < minimum:
        return ReservationStatus.CANCELLED
    if paid >= to_money(total_amount):
        return ReservationStatus.FULLY_PAID
    return ReservationStatus.PARTIALLY_PAID


async def find_stale_reservation_ids(db: AsyncSession, cutoff: datetime) -> List[int]:
    result = await db.execute(
        select(Reservation.id)
        .where(
            Reservation.status == ReservationStatus.PENDING,
            Reservation.created_at <= cutoff,
        )
        .order_by(Reservation.created_at)
    )
    return list(result.scalars().all())


async def release_slots(db: AsyncSession, reservation: Reservation) -> None:
    """Hook run when a reservation is cancelled by the sweeper."""
    result = await db.execute(
        select(ReservationSlot)
        .where(ReservationSlot.reservation_id == reservation.id)
        .order_by(ReservationSlot.slot_date, ReservationSlot.start_time)
    )
    slots = result.scalars().all()
    if slots:
        labels = ", ".join(f"{slot.slot_date.isoformat()} {slot.label}" for slot in slots)
        logger.info(f"Released court {reservation.court_id} slots of reservation {reservation.id}: {labels}")


async def expire_reservation(
    db: AsyncSession,
    reservation_id: int,
    cutoff: datetime,
) -> Optional[ReservationStatus]:
    """
    Resolve one stale reservation.

    Returns the new status, or None when another worker holds the row or it
    is no longer pending.
    """
    result = await db.execute(
        select(Reservation)
        .where(Reservation.id == reservation_id)
        .with_for_update(skip_locked=True)
    )
    reservation = result.scalar_one_or_none()
    if reservation is None or reservation.status != ReservationStatus.PENDING:
        return None
    if reservation.created_at > cutoff:
        return None

    total_paid = await sum_payments(db, reservation.id)
    status = terminal_status(total_paid, reservation.total_amount)

    reservation.amount_paid = total_paid
    reservation.status = status
    await db.flush()

    if status == ReservationStatus.CANCELLED:
        await release_slots(db, reservation)

    return status


async def expire_stale_reservations(now: Optional[datetime] = None) -> dict:
    """
    Run one sweep.

    Returns:
        dict with counts per outcome
    """
    stats = {
        "checked": 0,
        "cancelled": 0,
        "partially_paid": 0,
        "fully_paid": 0,
        "skipped": 0,
        "errors": 0,
    }

    if _sweep_lock.locked():
        logger.warning("Previous reservation sweep still running, skipping this cycle")
        stats["skipped_run"] = True
        return stats

    async with _sweep_lock:
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(minutes=settings.RESERVATION_TTL_MINUTES)

        async with get_db_session() as db:
            reservation_ids = await find_stale_reservation_ids(db, cutoff)

        for reservation_id in reservation_ids:
            stats["checked"] += 1
            try:
                async with get_db_session() as db:
                    status = await expire_reservation(db, reservation_id, cutoff)
            except Exception as e:
                stats["errors"] += 1
                logger.error(f"Failed to expire reservation {reservation_id}: {e}", exc_info=True)
                continue

            if status is None:
                stats["skipped"] += 1
            else:
                stats[status.value] += 1
                logger.info(f"Reservation {reservation_id} expired as {status.value}")

        if reservation_ids:
            logger.info(
                f"Reservation sweep: {stats['checked']} checked, {stats['cancelled']} cancelled, "
                f"{stats['partially_paid']} partially paid, {stats['fully_paid']} fully paid, "
                f"{stats['errors']} errors"
            )
        else:
            logger.debug("No stale pending reservations")

    return stats


async def get_expiry_stats() -> dict:
    """Pending reservation counts for monitoring."""
    async with get_db_session() as db:
        now = datetime.now(timezone.utc)
        cutoff = now - timedelta(minutes=settings.RESERVATION_TTL_MINUTES)
        soon = cutoff + timedelta(minutes=5)

        stmt = select(
            func.count(Reservation.id),
            func.count(Reservation.id).filter(Reservation.created_at <= cutoff),
            func.count(Reservation.id).filter(
                and_(Reservation.created_at > cutoff, Reservation.created_at <= soon)
            ),
        ).where(Reservation.status == ReservationStatus.PENDING)

        pending, overdue, expiring = (await db.execute(stmt)).one()

        return {
            "pending_reservations": int(pending or 0),
            "overdue_reservations": int(overdue or 0),
            "expiring_within_5min": int(expiring or 0),
        }
