"""
Guest Invitation Manager

Links a person to a reservation with a personal QR code. The person is
promoted to guest on first invitation. One invitation per
(reservation, person); the unique constraint settles concurrent duplicates.
"""
import asyncio
import json
import logging
import secrets
from datetime import datetime, timezone
from typing import List, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from canchaqr.core.exceptions import DuplicateInvitationError, ReferenceNotFoundError
from canchaqr.models import AttendanceStatus, Guest, GuestInvitation, Reservation
from canchaqr.services.invitation_codes import generate_unique_code
from canchaqr.services.qr_renderer import GUEST_CATEGORY, remove_artifacts, render_to_file
from canchaqr.services.reservation_context import load_reservation_context, require_end
from canchaqr.services.role_service import Capability, ensure_capability, get_person

logger = logging.getLogger(__name__)

DUPLICATE_CONSTRAINT = "uq_guest_invitation_reservation_person"


def personal_payload(code: str, alias: str, invited_by: str, now: datetime) -> str:
    return json.dumps({
        "type": "personal_invitation",
        "code": code,
        "user": alias,
        "invited_by": invited_by,
        "timestamp": now.isoformat(),
    }, separators=(",", ":"), ensure_ascii=False)


def personal_filename(now: datetime) -> str:
    return f"qr_{int(now.timestamp() * 1000)}_{secrets.token_hex(4)}.png"


async def find_invitation(db: AsyncSession, reservation_id: int, person_id: int):
    result = await db.execute(
        select(GuestInvitation).where(
            GuestInvitation.reservation_id == reservation_id,
            GuestInvitation.person_id == person_id,
        )
    )
    return result.scalar_one_or_none()


async def invite_guest(db: AsyncSession, reservation_id: int, person_id: int) -> GuestInvitation:
    """
    Invite `person_id` to `reservation_id`.

    Raises:
        ReferenceNotFoundError: person is not a client, or reservation missing
        DuplicateInvitationError: the person is already invited
        ValidationError: the reservation has no slots
    """
    await ensure_capability(db, person_id, Capability.GUEST)
    person = await get_person(db, person_id)

    result = await db.execute(select(Reservation.id).where(Reservation.id == reservation_id))
    if result.scalar_one_or_none() is None:
        raise ReferenceNotFoundError(
            f"Reservation {reservation_id} not found", entity="reservation", entity_id=reservation_id
        )

    if await find_invitation(db, reservation_id, person_id):
        raise DuplicateInvitationError(
            f"@{person.alias} is already invited to reservation {reservation_id}",
            reservation_id=reservation_id,
            person_id=person_id,
        )

    context = await load_reservation_context(db, reservation_id)
    expires_at = require_end(context)
    code = await generate_unique_code(db)

    now = datetime.now(timezone.utc)
    qr_path = await asyncio.to_thread(
        render_to_file,
        personal_payload(code, person.alias, context.host_alias, now),
        f"QR for @{person.alias}",
        GUEST_CATEGORY,
        personal_filename(now),
        [
            "Show this to venue control to enter",
            context.court_name,
            f"Generated: {now.strftime('%d/%m/%Y')}",
        ],
    )

    invitation = GuestInvitation(
        reservation_id=reservation_id,
        person_id=person_id,
        invitation_code=code,
        qr_path=qr_path,
        attendance=AttendanceStatus.PENDING,
        confirmed_at=now,
        expires_at=expires_at,
    )
    try:
        db.add(invitation)
        await db.flush()
    except IntegrityError as e:
        remove_artifacts([qr_path])
        if DUPLICATE_CONSTRAINT not in str(e.orig):
            raise
        raise DuplicateInvitationError(
            f"@{person.alias} is already invited to reservation {reservation_id}",
            reservation_id=reservation_id,
            person_id=person_id,
        )
    except Exception:
        remove_artifacts([qr_path])
        raise

    logger.info(f"Guest {person_id} (@{person.alias}) invited to reservation {reservation_id} with {code}")
    return invitation


async def get_invitation(db: AsyncSession, invitation_id: int) -> GuestInvitation:
    result = await db.execute(select(GuestInvitation).where(GuestInvitation.id == invitation_id))
    invitation = result.scalar_one_or_none()
    if not invitation:
        raise ReferenceNotFoundError(
            f"Guest invitation {invitation_id} not found", entity="guest_invitation", entity_id=invitation_id
        )
    return invitation


async def delete_invitation(db: AsyncSession, invitation_id: int) -> List[str]:
    """Delete the invitation row. Returns its QR path for removal after commit."""
    invitation = await get_invitation(db, invitation_id)
    qr_path = invitation.qr_path

    await db.delete(invitation)
    await db.flush()

    logger.info(f"Guest invitation {invitation_id} deleted")
    return [qr_path]


async def list_for_reservation(db: AsyncSession, reservation_id: int) -> List[GuestInvitation]:
    result = await db.execute(
        select(GuestInvitation)
        .options(selectinload(GuestInvitation.guest).selectinload(Guest.person))
        .where(GuestInvitation.reservation_id == reservation_id)
        .order_by(GuestInvitation.confirmed_at, GuestInvitation.id)
    )
    return list(result.scalars().all())


async def list_for_person(
    db: AsyncSession,
    person_id: int,
    limit: int = 10,
    offset: int = 0,
) -> Tuple[List[GuestInvitation], int]:
    """A guest's own invitations, newest first, with the total count."""
    total = await db.scalar(
        select(func.count(GuestInvitation.id)).where(GuestInvitation.person_id == person_id)
    )
    result = await db.execute(
        select(GuestInvitation)
        .options(selectinload(GuestInvitation.reservation).selectinload(Reservation.court))
        .where(GuestInvitation.person_id == person_id)
        .order_by(GuestInvitation.confirmed_at.desc(), GuestInvitation.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), int(total or 0)
