from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel

from canchaqr.models import PaymentMethod


class PaymentCreate(BaseModel):
    reservation_id: int
    amount: Decimal
    method: PaymentMethod
    payment_date: Optional[datetime] = None


class PaymentUpdate(BaseModel):
    amount: Optional[Decimal] = None
    method: Optional[PaymentMethod] = None
    payment_date: Optional[datetime] = None


class PaymentResponse(BaseModel):
    id: int
    reservation_id: int
    amount: Decimal
    method: PaymentMethod
    paid_at: datetime

    class Config:
        from_attributes = True


class QRIssuanceResponse(BaseModel):
    id: Optional[int] = None
    reservation_id: int
    payment_id: int
    controller_id: int
    tracking_code: str
    invitation_code: str
    invitation_link: str
    reservation_qr_path: str
    invitation_qr_path: str
    verified: bool
    generated_at: datetime
    expires_at: datetime

    class Config:
        from_attributes = True


class QRVerifyRequest(BaseModel):
    controller_id: int
