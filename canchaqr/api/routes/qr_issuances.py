"""
QR Issuance API Routes

Lookup and verification of reservation QR codes by their tracking code, used
by venue controllers at the door.
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from canchaqr.core.database import get_db
from canchaqr.schemas import (
    ApiResponse,
    Page,
    Pagination,
    QRIssuanceResponse,
    QRVerifyRequest,
    ReservationResponse,
)
from canchaqr.services import qr_issuer, reservation_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/qr-issuances", tags=["QR Issuances"])


class QRLookupResponse(BaseModel):
    qr: QRIssuanceResponse
    reservation: ReservationResponse


@router.get("/controller/{controller_id}", response_model=ApiResponse[Page[QRIssuanceResponse]])
async def list_controller_issuances(
    controller_id: int,
    verified: Optional[bool] = Query(None),
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    """QR codes assigned to a controller, newest first."""
    issuances, total = await qr_issuer.list_for_controller(
        db, controller_id, verified=verified, limit=limit, offset=offset
    )
    return ApiResponse(
        message=f"{total} QR code(s) found",
        data=Page(
            items=[QRIssuanceResponse.model_validate(i) for i in issuances],
            pagination=Pagination(limit=limit, offset=offset, total=total),
        ),
    )


@router.get("/{tracking_code}", response_model=ApiResponse[QRLookupResponse])
async def get_qr_issuance(
    tracking_code: str,
    db: AsyncSession = Depends(get_db),
):
    issuance = await qr_issuer.get_by_tracking_code(db, tracking_code)
    reservation = await reservation_service.get_by_id(db, issuance.reservation_id)
    return ApiResponse(
        message="QR found",
        data=QRLookupResponse(
            qr=QRIssuanceResponse.model_validate(issuance),
            reservation=ReservationResponse.from_reservation(reservation),
        ),
    )


@router.post("/{tracking_code}/verify", response_model=ApiResponse[QRIssuanceResponse])
async def verify_qr_issuance(
    tracking_code: str,
    body: QRVerifyRequest,
    db: AsyncSession = Depends(get_db),
):
    """Mark the QR as verified by its assigned controller."""
    issuance = await qr_issuer.mark_verified(db, tracking_code, body.controller_id)
    return ApiResponse(message="QR verified", data=QRIssuanceResponse.model_validate(issuance))
