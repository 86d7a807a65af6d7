import uuid
from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel

from api.models import PayoutStatus
from api.routers.pagination import Pagination
from services.payouts import Money, PayoutApproval, PayoutRejection


class PayoutPartnerRead(BaseModel):
    business_name: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    class Config:
        from_attributes = True


class PayoutRead(BaseModel):
    id: uuid.UUID
    partner_id: uuid.UUID
    amount: Money
    net_amount: Optional[Money] = None
    processing_fee: Optional[Money] = None
    status: PayoutStatus
    requested_at: datetime
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    processed_at: Optional[datetime] = None
    partner: PayoutPartnerRead

    class Config:
        from_attributes = True


class PayoutFilters(BaseModel):
    status: Optional[PayoutStatus] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    search: Optional[str] = None
    sort_by: Literal["requested_at", "amount", "status"] = "requested_at"
    sort_order: Literal["asc", "desc"] = "desc"


class PayoutList(BaseModel):
    payouts: list[PayoutRead]
    pagination: Pagination


class PayoutRejectBody(BaseModel):
    reason: Optional[str] = None


class PayoutApprovalResponse(BaseModel):
    success: bool = True
    data: PayoutApproval
    message: str = "Payout approved successfully"


class PayoutRejectionResponse(BaseModel):
    success: bool = True
    data: PayoutRejection
    message: str = "Payout rejected successfully"
