"""
Reservation API Routes

Endpoints for hosts to:
- Create reservations with hourly slots
- Edit header fields or replace the slots
- Inspect, list and delete reservations
"""
import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from canchaqr.core.config import settings
from canchaqr.core.database import get_db
from canchaqr.models import ReservationStatus
from canchaqr.schemas import (
    ApiResponse,
    DeletedResponse,
    GuestInvitationResponse,
    PaymentResponse,
    ReservationCreate,
    ReservationResponse,
    ReservationUpdate,
)
from canchaqr.services import guest_invitation_service, payment_service, reservation_service
from canchaqr.services.qr_renderer import remove_artifacts

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/reservations", tags=["Reservations"])


@router.post("", response_model=ApiResponse[ReservationResponse], status_code=status.HTTP_201_CREATED)
async def create_reservation(
    body: ReservationCreate,
    db: AsyncSession = Depends(get_db),
):
    """
    Create a pending reservation.

    The host must pay at least QR_ISSUANCE_THRESHOLD within
    RESERVATION_TTL_MINUTES or the reservation is cancelled.
    """
    reservation = await reservation_service.create(
        db,
        host_id=body.host_id,
        court_id=body.court_id,
        reservation_date=body.reservation_date,
        slots=[slot.model_dump() for slot in body.slots],
        capacity=body.capacity,
    )
    detail = await reservation_service.get_by_id(db, reservation.id)

    return ApiResponse(
        message=(
            f"Reservation created. Pay at least {settings.QR_ISSUANCE_THRESHOLD} within "
            f"{settings.RESERVATION_TTL_MINUTES} minutes to keep it."
        ),
        data=ReservationResponse.from_reservation(detail),
    )


@router.get("/awaiting-payment", response_model=ApiResponse[List[ReservationResponse]])
async def list_awaiting_payment(
    host_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Pending and partially paid reservations."""
    reservations = await reservation_service.list_awaiting_payment(db, host_id=host_id)
    return ApiResponse(
        message=f"{len(reservations)} reservation(s) awaiting payment",
        data=[ReservationResponse.from_reservation(r) for r in reservations],
    )


@router.get("/host/{host_id}", response_model=ApiResponse[List[ReservationResponse]])
async def list_host_reservations(
    host_id: int,
    reservation_status: Optional[ReservationStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
):
    reservations = await reservation_service.list_for_host(db, host_id, status=reservation_status)
    return ApiResponse(
        message=f"{len(reservations)} reservation(s) found",
        data=[ReservationResponse.from_reservation(r) for r in reservations],
    )


@router.get("/{reservation_id}", response_model=ApiResponse[ReservationResponse])
async def get_reservation(
    reservation_id: int,
    db: AsyncSession = Depends(get_db),
):
    reservation = await reservation_service.get_by_id(db, reservation_id)
    return ApiResponse(message="Reservation found", data=ReservationResponse.from_reservation(reservation))


@router.patch("/{reservation_id}", response_model=ApiResponse[ReservationResponse])
async def update_reservation(
    reservation_id: int,
    body: ReservationUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Partial update; sending `slots` replaces all of them."""
    changes = body.model_dump(exclude_unset=True)
    await reservation_service.update(db, reservation_id, changes)
    detail = await reservation_service.get_by_id(db, reservation_id)
    return ApiResponse(message="Reservation updated", data=ReservationResponse.from_reservation(detail))


@router.delete("/{reservation_id}", response_model=ApiResponse[DeletedResponse])
async def delete_reservation(
    reservation_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Cascade delete; QR files are removed once the delete is committed."""
    artifacts = await reservation_service.delete_reservation(db, reservation_id)
    await db.commit()
    remove_artifacts(artifacts)
    return ApiResponse(message="Reservation deleted", data=DeletedResponse(id=reservation_id))


@router.get("/{reservation_id}/payments", response_model=ApiResponse[List[PaymentResponse]])
async def list_reservation_payments(
    reservation_id: int,
    db: AsyncSession = Depends(get_db),
):
    await reservation_service.get_by_id(db, reservation_id)
    payments = await payment_service.list_for_reservation(db, reservation_id)
    return ApiResponse(
        message=f"{len(payments)} payment(s) found",
        data=[PaymentResponse.model_validate(p) for p in payments],
    )


@router.get("/{reservation_id}/guest-invitations", response_model=ApiResponse[List[GuestInvitationResponse]])
async def list_reservation_guests(
    reservation_id: int,
    db: AsyncSession = Depends(get_db),
):
    await reservation_service.get_by_id(db, reservation_id)
    invitations = await guest_invitation_service.list_for_reservation(db, reservation_id)
    return ApiResponse(
        message=f"{len(invitations)} guest invitation(s) found",
        data=[
            GuestInvitationResponse.from_invitation(
                invitation,
                alias=invitation.guest.person.alias if invitation.guest and invitation.guest.person else None,
            )
            for invitation in invitations
        ],
    )
