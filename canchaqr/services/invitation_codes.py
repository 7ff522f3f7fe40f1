"""
Invitation code generation

Codes are shared with people, so they are short and upper-case. Uniqueness is
checked against both QR issuances and guest invitations; the unique indexes on
those columns remain the final guard.
"""
import logging
import secrets
from typing import Optional

from sqlalchemy import select, union_all
from sqlalchemy.ext.asyncio import AsyncSession

from canchaqr.core.config import settings
from canchaqr.core.exceptions import UniqueCodeExhaustedError
from canchaqr.models import QRIssuance, GuestInvitation

logger = logging.getLogger(__name__)

CODE_PREFIX = "INV"


def new_invitation_code() -> str:
    return f"{CODE_PREFIX}{secrets.token_hex(8)}".upper()


async def code_in_use(db: AsyncSession, code: str) -> bool:
    stmt = union_all(
        select(QRIssuance.id).where(QRIssuance.invitation_code == code),
        select(GuestInvitation.id).where(GuestInvitation.invitation_code == code),
    ).limit(1)
    result = await db.execute(stmt)
    return result.first() is not None


async def generate_unique_code(db: AsyncSession, max_attempts: Optional[int] = None) -> str:
    """
    Generate an invitation code no issuance or invitation uses yet.

    Raises:
        UniqueCodeExhaustedError: after `max_attempts` collisions
    """
    attempts = max_attempts or settings.INVITATION_CODE_MAX_ATTEMPTS

    for attempt in range(1, attempts + 1):
        code = new_invitation_code()
        if not await code_in_use(db, code):
            return code
        logger.warning(f"Invitation code collision on attempt {attempt}/{attempts}")

    raise UniqueCodeExhaustedError(
        f"Unable to generate a unique invitation code after {attempts} attempts",
        attempts=attempts,
    )
