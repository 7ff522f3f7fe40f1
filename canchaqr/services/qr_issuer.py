"""
QR / Invitation Issuer

Runs inside the payment transaction that first takes a reservation's paid
amount to QR_ISSUANCE_THRESHOLD. The caller holds the reservation row lock,
so the existence check and the insert below cannot race; the unique index on
qr_issuances.reservation_id backs that up.

Produces two PNGs per issuance:
- reservation QR: verification URL carrying the tracking code
- invitation QR: shareable link carrying the reservation summary
"""
import asyncio
import base64
import json
import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple
from urllib.parse import quote

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from canchaqr.core.config import settings
from canchaqr.core.exceptions import (
    NoActiveControllerError,
    PermissionDeniedError,
    ReferenceNotFoundError,
)
from canchaqr.models import Controller, Payment, QRIssuance, Reservation
from canchaqr.services.invitation_codes import generate_unique_code
from canchaqr.services.qr_renderer import (
    RESERVATION_CATEGORY,
    remove_artifacts,
    render_to_file,
)
from canchaqr.services.reservation_context import (
    ReservationContext,
    load_reservation_context,
    require_end,
)

logger = logging.getLogger(__name__)


async def get_for_reservation(db: AsyncSession, reservation_id: int) -> Optional[QRIssuance]:
    result = await db.execute(
        select(QRIssuance).where(QRIssuance.reservation_id == reservation_id)
    )
    return result.scalar_one_or_none()


async def pick_controller(db: AsyncSession) -> Controller:
    """Uniformly random active controller."""
    result = await db.execute(
        select(Controller)
        .where(Controller.active == True)  # noqa: E712
        .order_by(func.random())
        .limit(1)
    )
    controller = result.scalar_one_or_none()
    if not controller:
        raise NoActiveControllerError("No active controllers available to review the reservation QR")
    return controller


def make_tracking_code(reservation_id: int, payment_id: int, now: datetime) -> str:
    return f"RES_{reservation_id}_P{payment_id}_{int(now.timestamp() * 1000)}"


def verification_url(tracking_code: str) -> str:
    return f"{settings.PUBLIC_APP_URL.rstrip('/')}/verificar/qr/{tracking_code}"


def invitation_payload(context: ReservationContext, code: str) -> dict:
    return {
        "type": "reservation_invitation",
        "code": code,
        "reservation_id": context.reservation_id,
        "reservation": {
            "court": context.court_name,
            "venue": context.venue_name,
            "host": context.host_name,
            "date": context.reservation_date.isoformat(),
            "slots": context.slot_labels,
        },
    }


def invitation_link(code: str, payload: dict) -> str:
    """Shareable link with the payload as URL-encoded base64 JSON."""
    raw = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    encoded = quote(base64.b64encode(raw).decode("ascii"), safe="")
    return f"{settings.PUBLIC_APP_URL.rstrip('/')}/invitado/reserva/{code}?data={encoded}"


async def issue_for_payment(
    db: AsyncSession,
    reservation: Reservation,
    payment: Payment,
) -> Optional[QRIssuance]:
    """
    Create the reservation's QR issuance if it has none.

    Returns:
        The new QRIssuance, or None when one already exists

    Raises:
        NoActiveControllerError: nobody can be assigned
        UniqueCodeExhaustedError: no free invitation code
    """
    if await get_for_reservation(db, reservation.id):
        logger.debug(f"Reservation {reservation.id} already has a QR issuance")
        return None

    controller = await pick_controller(db)
    context = await load_reservation_context(db, reservation.id)
    expires_at = require_end(context)
    code = await generate_unique_code(db)

    now = datetime.now(timezone.utc)
    tracking_code = make_tracking_code(reservation.id, payment.id, now)
    link = invitation_link(code, invitation_payload(context, code))

    rendered = []
    try:
        reservation_qr = await asyncio.to_thread(
            render_to_file,
            verification_url(tracking_code),
            "QR RESERVA",
            RESERVATION_CATEGORY,
            f"qr_reserva_{payment.id}.png",
            [context.place, f"Valid until {expires_at.strftime('%d/%m/%Y %H:%M')}"],
        )
        rendered.append(reservation_qr)

        invitation_qr = await asyncio.to_thread(
            render_to_file,
            link,
            "QR INVITACION",
            RESERVATION_CATEGORY,
            f"qr_invitacion_{payment.id}.png",
            [context.place, f"Code {code}"],
        )
        rendered.append(invitation_qr)

        issuance = QRIssuance(
            reservation_id=reservation.id,
            payment_id=payment.id,
            controller_id=controller.person_id,
            tracking_code=tracking_code,
            invitation_code=code,
            invitation_link=link,
            reservation_qr_path=reservation_qr,
            invitation_qr_path=invitation_qr,
            verified=False,
            generated_at=now,
            expires_at=expires_at,
        )
        db.add(issuance)
        await db.flush()
    except Exception:
        remove_artifacts(rendered)
        raise

    logger.info(
        f"Issued QR {tracking_code} for reservation {reservation.id} "
        f"(payment {payment.id}, controller {controller.person_id})"
    )
    return issuance


async def get_by_tracking_code(db: AsyncSession, tracking_code: str) -> QRIssuance:
    result = await db.execute(
        select(QRIssuance).where(QRIssuance.tracking_code == tracking_code)
    )
    issuance = result.scalar_one_or_none()
    if not issuance:
        raise ReferenceNotFoundError(
            f"QR {tracking_code} not found", entity="qr_issuance", entity_id=tracking_code
        )
    return issuance


async def mark_verified(db: AsyncSession, tracking_code: str, controller_id: int) -> QRIssuance:
    """Flag the QR as verified; only the assigned controller may do it."""
    issuance = await get_by_tracking_code(db, tracking_code)

    if issuance.controller_id != controller_id:
        raise PermissionDeniedError(
            f"Controller {controller_id} is not assigned to QR {tracking_code}",
            details={"assigned_controller_id": issuance.controller_id},
        )

    if not issuance.verified:
        issuance.verified = True
        await db.flush()
        logger.info(f"QR {tracking_code} verified by controller {controller_id}")
    return issuance


async def list_for_controller(
    db: AsyncSession,
    controller_id: int,
    verified: Optional[bool] = None,
    limit: int = 10,
    offset: int = 0,
) -> Tuple[List[QRIssuance], int]:
    """QR issuances a controller has to review, newest first, with the total count."""
    conditions = [QRIssuance.controller_id == controller_id]
    if verified is not None:
        conditions.append(QRIssuance.verified == verified)

    total = await db.scalar(select(func.count(QRIssuance.id)).where(*conditions))
    result = await db.execute(
        select(QRIssuance)
        .where(*conditions)
        .order_by(QRIssuance.generated_at.desc(), QRIssuance.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), int(total or 0)
