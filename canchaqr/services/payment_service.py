"""
Payment Ledger

Installment payments against a reservation. Every mutation holds a
SELECT ... FOR UPDATE lock on the reservation row, so payments to one
reservation are serialized while different reservations never contend.

Status rule, shared with the reservation store:
- amount_paid == 0            -> pending
- 0 < amount_paid < total     -> partially_paid
- amount_paid >= total        -> fully_paid
Cancelled is terminal and is never re-derived.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, List, Mapping, Optional, Union

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from canchaqr.core.config import settings
from canchaqr.core.exceptions import (
    PaymentValidationError,
    ReferenceNotFoundError,
    ReservationStateError,
)
from canchaqr.models import Payment, PaymentMethod, QRIssuance, Reservation, ReservationStatus
from canchaqr.services import qr_issuer
from canchaqr.services.qr_renderer import remove_artifacts
from canchaqr.services.slot_calculator import to_money

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


@dataclass
class PaymentOutcome:
    reservation: Reservation
    payment: Optional[Payment] = None
    qr_issuance: Optional[QRIssuance] = None
    message: str = ""
    removed_payment_id: Optional[int] = None
    released_artifacts: List[str] = field(default_factory=list)


def derive_status(amount_paid: Any, total_amount: Any) -> ReservationStatus:
    paid = Decimal(str(amount_paid or 0))
    total = Decimal(str(total_amount or 0))
    if paid <= 0:
        return ReservationStatus.PENDING
    if paid >= total:
        return ReservationStatus.FULLY_PAID
    return ReservationStatus.PARTIALLY_PAID


def apply_paid_amount(reservation: Reservation, amount_paid: Decimal) -> None:
    """Store a recomputed paid amount and re-derive the status."""
    reservation.amount_paid = amount_paid
    if reservation.status != ReservationStatus.CANCELLED:
        reservation.status = derive_status(amount_paid, reservation.total_amount)


async def lock_reservation(db: AsyncSession, reservation_id: int) -> Reservation:
    """Load the reservation row with FOR UPDATE for the rest of the transaction."""
    result = await db.execute(
        select(Reservation)
        .where(Reservation.id == reservation_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    reservation = result.scalar_one_or_none()
    if not reservation:
        raise ReferenceNotFoundError(
            f"Reservation {reservation_id} not found", entity="reservation", entity_id=reservation_id
        )
    return reservation


async def sum_payments(db: AsyncSession, reservation_id: int) -> Decimal:
    result = await db.execute(
        select(func.coalesce(func.sum(Payment.amount), 0)).where(Payment.reservation_id == reservation_id)
    )
    return to_money(result.scalar() or 0)


async def payment_reservation_id(db: AsyncSession, payment_id: int) -> int:
    """Reservation of a payment, read without loading the payment row."""
    result = await db.execute(select(Payment.reservation_id).where(Payment.id == payment_id))
    reservation_id = result.scalar_one_or_none()
    if reservation_id is None:
        raise ReferenceNotFoundError(
            f"Payment {payment_id} not found", entity="payment", entity_id=payment_id
        )
    return reservation_id


async def get_payment(db: AsyncSession, payment_id: int, lock: bool = False) -> Payment:
    """
    Load a payment. With `lock`, the row is re-read FOR UPDATE so values
    cached in the session are replaced by the committed ones.
    """
    query = select(Payment).where(Payment.id == payment_id)
    if lock:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(query)
    payment = result.scalar_one_or_none()
    if not payment:
        raise ReferenceNotFoundError(
            f"Payment {payment_id} not found", entity="payment", entity_id=payment_id
        )
    return payment


async def list_for_reservation(db: AsyncSession, reservation_id: int) -> List[Payment]:
    result = await db.execute(
        select(Payment)
        .where(Payment.reservation_id == reservation_id)
        .order_by(Payment.paid_at, Payment.id)
    )
    return list(result.scalars().all())


def _validate_amount(amount: Any, balance: Decimal) -> Decimal:
    value = to_money(amount)
    if value <= 0:
        raise PaymentValidationError(
            f"Payment amount must be greater than zero (got {value})",
            details={"amount": str(value)},
        )
    if value > balance:
        excess = value - balance
        raise PaymentValidationError(
            f"Payment of {value} exceeds the outstanding balance of {balance} by {excess}",
            excess=str(excess),
            details={"amount": str(value), "outstanding_balance": str(balance)},
        )
    return value


def _coerce_method(method: Union[str, PaymentMethod]) -> PaymentMethod:
    try:
        return PaymentMethod(method)
    except ValueError:
        allowed = ", ".join(m.value for m in PaymentMethod)
        raise PaymentValidationError(
            f"Invalid payment method '{method}'. Allowed: {allowed}",
            code="INVALID_PAYMENT_METHOD",
        )


def _outcome_message(reservation: Reservation, issued: Optional[QRIssuance], had_qr: bool) -> str:
    balance = reservation.outstanding_balance
    fully_paid = reservation.status == ReservationStatus.FULLY_PAID

    if issued:
        if fully_paid:
            return "Payment recorded. Reservation fully paid and QR codes generated."
        return f"Payment recorded. QR codes generated; outstanding balance {balance}."
    if had_qr:
        if fully_paid:
            return "Payment recorded. Reservation fully paid; QR codes were already issued."
        return f"Payment recorded. QR codes already issued; outstanding balance {balance}."

    needed = to_money(settings.QR_ISSUANCE_THRESHOLD) - to_money(reservation.amount_paid)
    if needed > 0:
        return f"Payment recorded. Pay {needed} more to generate the QR codes."
    return "Payment recorded."


async def _issue_if_threshold_met(
    db: AsyncSession,
    reservation: Reservation,
    payment: Payment,
):
    """Returns (new issuance or None, whether one already existed)."""
    if to_money(reservation.amount_paid) < to_money(settings.QR_ISSUANCE_THRESHOLD):
        return None, False
    if await qr_issuer.get_for_reservation(db, reservation.id):
        return None, True
    return await qr_issuer.issue_for_payment(db, reservation, payment), False


async def record_payment(
    db: AsyncSession,
    reservation_id: int,
    amount: Any,
    method: Union[str, PaymentMethod],
    payment_date: Optional[datetime] = None,
) -> PaymentOutcome:
    """
    Record one installment.

    Raises:
        ReferenceNotFoundError: reservation missing
        ReservationStateError: reservation cancelled
        PaymentValidationError: amount <= 0 or above the outstanding balance
    """
    method = _coerce_method(method)
    reservation = await lock_reservation(db, reservation_id)

    if reservation.status == ReservationStatus.CANCELLED:
        raise ReservationStateError(
            f"Reservation {reservation_id} is cancelled and no longer accepts payments",
            status=reservation.status.value,
        )

    value = _validate_amount(amount, to_money(reservation.outstanding_balance))

    payment = Payment(
        reservation_id=reservation.id,
        amount=value,
        method=method,
        paid_at=payment_date or datetime.now(timezone.utc),
    )
    db.add(payment)
    await db.flush()

    apply_paid_amount(reservation, to_money(reservation.amount_paid) + value)

    issued, had_qr = await _issue_if_threshold_met(db, reservation, payment)
    try:
        await db.flush()
    except Exception:
        if issued:
            remove_artifacts(issued.artifact_paths)
        raise

    logger.info(
        f"Payment {payment.id} of {value} ({method.value}) on reservation {reservation.id}: "
        f"paid {reservation.amount_paid}/{reservation.total_amount}, status {reservation.status.value}"
    )
    return PaymentOutcome(
        reservation=reservation,
        payment=payment,
        qr_issuance=issued,
        message=_outcome_message(reservation, issued, had_qr),
    )


async def edit_payment(
    db: AsyncSession,
    payment_id: int,
    changes: Mapping[str, Any],
) -> PaymentOutcome:
    """
    Change amount, method or date of a payment and re-derive the balance.

    A change that takes the reservation to the issuance threshold for the
    first time issues its QR codes, same as recording a payment.
    """
    reservation = await lock_reservation(db, await payment_reservation_id(db, payment_id))
    payment = await get_payment(db, payment_id, lock=True)

    if reservation.status == ReservationStatus.CANCELLED:
        raise ReservationStateError(
            f"Reservation {reservation.id} is cancelled; its payments can no longer be edited",
            status=reservation.status.value,
        )

    if changes.get("amount") is not None:
        paid_elsewhere = await sum_payments(db, reservation.id) - to_money(payment.amount)
        balance = to_money(reservation.total_amount) - paid_elsewhere
        payment.amount = _validate_amount(changes["amount"], balance)
    if changes.get("method") is not None:
        payment.method = _coerce_method(changes["method"])
    if changes.get("payment_date") is not None:
        payment.paid_at = changes["payment_date"]

    await db.flush()
    apply_paid_amount(reservation, await sum_payments(db, reservation.id))

    issued, had_qr = await _issue_if_threshold_met(db, reservation, payment)
    try:
        await db.flush()
    except Exception:
        if issued:
            remove_artifacts(issued.artifact_paths)
        raise

    logger.info(
        f"Payment {payment.id} edited on reservation {reservation.id}: "
        f"paid {reservation.amount_paid}/{reservation.total_amount}, status {reservation.status.value}"
    )
    message = _outcome_message(reservation, issued, had_qr).replace("Payment recorded", "Payment updated", 1)
    return PaymentOutcome(
        reservation=reservation,
        payment=payment,
        qr_issuance=issued,
        message=message,
    )


async def delete_payment(db: AsyncSession, payment_id: int) -> PaymentOutcome:
    """
    Remove a payment, its QR issuance if it triggered one, and re-derive the
    reservation balance from the remaining payments.

    The QR file paths are returned in `released_artifacts`; the caller
    removes them once the transaction has committed.
    """
    reservation = await lock_reservation(db, await payment_reservation_id(db, payment_id))
    payment = await get_payment(db, payment_id, lock=True)

    result = await db.execute(select(QRIssuance).where(QRIssuance.payment_id == payment.id))
    issuance = result.scalar_one_or_none()
    artifacts = issuance.artifact_paths if issuance else []

    if issuance:
        await db.delete(issuance)
    await db.delete(payment)
    await db.flush()

    apply_paid_amount(reservation, await sum_payments(db, reservation.id))
    await db.flush()

    logger.info(
        f"Payment {payment_id} deleted from reservation {reservation.id}"
        f"{' with its QR issuance' if issuance else ''}: "
        f"paid {reservation.amount_paid}/{reservation.total_amount}, status {reservation.status.value}"
    )
    return PaymentOutcome(
        reservation=reservation,
        message="Payment deleted" + (" and its QR codes revoked." if issuance else "."),
        removed_payment_id=payment_id,
        released_artifacts=artifacts,
    )
