"""
Guest Invitation API Routes
"""
import logging
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from canchaqr.core.database import get_db
from canchaqr.schemas import (
    ApiResponse,
    DeletedResponse,
    GuestInvitationCreate,
    GuestInvitationResponse,
    Page,
    Pagination,
)
from canchaqr.services import guest_invitation_service
from canchaqr.services.qr_renderer import remove_artifacts

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/guest-invitations", tags=["Guest Invitations"])


@router.post("", response_model=ApiResponse[GuestInvitationResponse], status_code=status.HTTP_201_CREATED)
async def invite_guest(
    body: GuestInvitationCreate,
    db: AsyncSession = Depends(get_db),
):
    """Invite a client to a reservation and render their personal QR."""
    invitation = await guest_invitation_service.invite_guest(db, body.reservation_id, body.person_id)
    return ApiResponse(
        message="Guest invited",
        data=GuestInvitationResponse.from_invitation(invitation),
    )


@router.get("/person/{person_id}", response_model=ApiResponse[Page[GuestInvitationResponse]])
async def list_person_invitations(
    person_id: int,
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    """Invitations received by a client, newest first."""
    invitations, total = await guest_invitation_service.list_for_person(
        db, person_id, limit=limit, offset=offset
    )
    return ApiResponse(
        message=f"{total} invitation(s) found",
        data=Page(
            items=[GuestInvitationResponse.from_invitation(i, with_reservation=True) for i in invitations],
            pagination=Pagination(limit=limit, offset=offset, total=total),
        ),
    )


@router.delete("/{invitation_id}", response_model=ApiResponse[DeletedResponse])
async def delete_invitation(
    invitation_id: int,
    db: AsyncSession = Depends(get_db),
):
    artifacts = await guest_invitation_service.delete_invitation(db, invitation_id)
    await db.commit()
    remove_artifacts(artifacts)
    return ApiResponse(message="Guest invitation deleted", data=DeletedResponse(id=invitation_id))
