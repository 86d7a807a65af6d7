import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from api.models import PayoutStatus


class PartnerRecord(BaseModel):
    id: uuid.UUID
    business_name: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    available_balance: Decimal

    class Config:
        from_attributes = True


class PayoutRecord(BaseModel):
    id: uuid.UUID
    partner_id: uuid.UUID
    amount: Decimal
    net_amount: Optional[Decimal] = None
    processing_fee: Optional[Decimal] = None
    status: PayoutStatus
    requested_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    processed_at: Optional[datetime] = None

    class Config:
        from_attributes = True
