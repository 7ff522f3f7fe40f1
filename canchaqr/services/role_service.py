"""
Role Service

Role membership is a capability set attached to a person. Operations that
need a capability call ensure_capability first; it creates the role row on
first use and is a no-op (or a refresh) afterwards.
"""
import enum
import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from canchaqr.core.exceptions import ReferenceNotFoundError
from canchaqr.models import Person, Client, Host, Guest

logger = logging.getLogger(__name__)


class Capability(str, enum.Enum):
    HOST = "host"
    GUEST = "guest"


async def get_person(db: AsyncSession, person_id: int) -> Person:
    result = await db.execute(select(Person).where(Person.id == person_id))
    person = result.scalar_one_or_none()
    if not person:
        raise ReferenceNotFoundError(
            f"Person {person_id} not found", entity="person", entity_id=person_id
        )
    return person


async def is_client(db: AsyncSession, person_id: int) -> bool:
    result = await db.execute(select(Client.person_id).where(Client.person_id == person_id))
    return result.scalar_one_or_none() is not None


async def ensure_capability(db: AsyncSession, person_id: int, capability: Capability):
    """
    Make sure `person_id` holds `capability`, creating it if needed.

    Only clients can be promoted. A person that already holds the role keeps
    it; guests additionally get their last invitation time refreshed.

    Returns:
        The Host or Guest row

    Raises:
        ReferenceNotFoundError: person missing, or not a client
    """
    model = Host if capability == Capability.HOST else Guest

    result = await db.execute(select(model).where(model.person_id == person_id))
    existing = result.scalar_one_or_none()
    now = datetime.now(timezone.utc)

    if existing:
        if capability == Capability.GUEST:
            existing.last_invited_at = now
            existing.active = True
        return existing

    if not await is_client(db, person_id):
        raise ReferenceNotFoundError(
            f"Person {person_id} is not a registered client and cannot act as {capability.value}",
            entity="client",
            entity_id=person_id,
        )

    if capability == Capability.HOST:
        row = Host(person_id=person_id, registered_at=now, verified=False)
    else:
        row = Guest(person_id=person_id, last_invited_at=now, active=True)

    db.add(row)
    await db.flush()
    logger.info(f"Promoted client {person_id} to {capability.value}")
    return row
