"""
Payment API Routes

Installments against a reservation. Recording the payment that first reaches
the issuance threshold also returns the reservation's QR codes.
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from canchaqr.core.database import get_db
from canchaqr.core.rate_limit import get_payment_limit
from canchaqr.schemas import (
    ApiResponse,
    PaymentCreate,
    PaymentResponse,
    PaymentUpdate,
    QRIssuanceResponse,
    ReservationSummary,
)
from canchaqr.services import payment_service
from canchaqr.services.payment_service import PaymentOutcome
from canchaqr.services.qr_renderer import remove_artifacts

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/payments", tags=["Payments"])


class PaymentResult(BaseModel):
    """Payment plus the reservation state it produced."""
    payment: Optional[PaymentResponse] = None
    reservation: ReservationSummary
    qr: Optional[QRIssuanceResponse] = None
    deleted_payment_id: Optional[int] = None


def format_outcome(outcome: PaymentOutcome) -> PaymentResult:
    return PaymentResult(
        payment=PaymentResponse.model_validate(outcome.payment) if outcome.payment else None,
        reservation=ReservationSummary.from_reservation(outcome.reservation),
        qr=QRIssuanceResponse.model_validate(outcome.qr_issuance) if outcome.qr_issuance else None,
        deleted_payment_id=outcome.removed_payment_id,
    )


async def commit_or_release(db: AsyncSession, outcome: PaymentOutcome) -> None:
    """Commit now so a failed commit can still release freshly rendered QR files."""
    try:
        await db.commit()
    except Exception:
        if outcome.qr_issuance:
            remove_artifacts(outcome.qr_issuance.artifact_paths)
        raise


@router.post("", response_model=ApiResponse[PaymentResult], status_code=status.HTTP_201_CREATED)
@get_payment_limit()
async def create_payment(
    request: Request,
    body: PaymentCreate,
    db: AsyncSession = Depends(get_db),
):
    outcome = await payment_service.record_payment(
        db,
        reservation_id=body.reservation_id,
        amount=body.amount,
        method=body.method,
        payment_date=body.payment_date,
    )
    await commit_or_release(db, outcome)
    return ApiResponse(message=outcome.message, data=format_outcome(outcome))


@router.get("/{payment_id}", response_model=ApiResponse[PaymentResponse])
async def get_payment(
    payment_id: int,
    db: AsyncSession = Depends(get_db),
):
    payment = await payment_service.get_payment(db, payment_id)
    return ApiResponse(message="Payment found", data=PaymentResponse.model_validate(payment))


@router.patch("/{payment_id}", response_model=ApiResponse[PaymentResult])
@get_payment_limit()
async def update_payment(
    request: Request,
    payment_id: int,
    body: PaymentUpdate,
    db: AsyncSession = Depends(get_db),
):
    outcome = await payment_service.edit_payment(db, payment_id, body.model_dump(exclude_unset=True))
    await commit_or_release(db, outcome)
    return ApiResponse(message=outcome.message, data=format_outcome(outcome))


@router.delete("/{payment_id}", response_model=ApiResponse[PaymentResult])
async def delete_payment(
    payment_id: int,
    db: AsyncSession = Depends(get_db),
):
    outcome = await payment_service.delete_payment(db, payment_id)
    await db.commit()
    remove_artifacts(outcome.released_artifacts)
    return ApiResponse(message=outcome.message, data=format_outcome(outcome))
