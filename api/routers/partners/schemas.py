import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

from api.models import PartnerStatus
from api.routers.pagination import Pagination
from services.payouts import Money

PartnerSortField = Literal[
    "created_at",
    "updated_at",
    "business_name",
    "email",
    "status",
    "commission_rate",
    "available_balance",
]


class PartnerRead(BaseModel):
    id: uuid.UUID
    business_name: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    contact_person: Optional[str] = None
    phone: Optional[str] = None
    business_type: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    website: Optional[str] = None
    description: Optional[str] = None
    status: PartnerStatus
    commission_rate: Decimal
    available_balance: Money
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    suspended_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None

    class Config:
        from_attributes = True


class PartnerFilters(BaseModel):
    status: Optional[PartnerStatus] = None
    search: Optional[str] = None
    business_type: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    created_after: Optional[date] = None
    created_before: Optional[date] = None
    min_commission: Optional[Decimal] = None
    max_commission: Optional[Decimal] = None
    sort_by: PartnerSortField = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"


class PartnerRejectBody(BaseModel):
    reason: Optional[str] = None


class PartnerCommissionBody(BaseModel):
    # range and number checks live in parse_commission_rate
    commission_rate: Any = Field(None, validation_alias=AliasChoices("commission_rate", "commissionRate"))


class PartnerUpdate(BaseModel):
    """Profile fields an admin may edit. Fields left out of the body are not touched."""

    business_name: Optional[str] = None
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    contact_person: Optional[str] = None
    phone: Optional[str] = None
    business_type: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    website: Optional[str] = None
    description: Optional[str] = None

    class Config:
        extra = "forbid"

    @field_validator("business_name", "email")
    @classmethod
    def not_blank(cls, value: Optional[str]) -> str:
        if value is None or not value.strip():
            raise ValueError("must be a non-empty string")
        return value.strip()


class PartnerList(BaseModel):
    partners: list[PartnerRead]
    pagination: Pagination


class PartnerStats(BaseModel):
    total: int
    pending: int
    approved: int
    rejected: int
    suspended: int
    recent_signups: int
    last_updated: datetime


class PartnerActionResult(BaseModel):
    message: str
    partner: PartnerRead
    previous_status: PartnerStatus
    new_status: PartnerStatus
