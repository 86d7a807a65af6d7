import uuid
from datetime import date
from decimal import Decimal
from typing import Any, Literal, Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.database import get_session
from api.models import PartnerStatus
from services.errors import ValidationFailed
from services.notifier import EmailNotifier
from .schemas import PartnerActionResult, PartnerFilters, PartnerList, PartnerSortField, PartnerStats
from .service import PartnerService

router = APIRouter()


def get_partner_service(session: AsyncSession = Depends(get_session)) -> PartnerService:
    return PartnerService(session, EmailNotifier())


def parse_partner_status(raw: Optional[str]) -> Optional[PartnerStatus]:
    if not raw or not raw.strip() or raw.strip().lower() == "all":
        return None
    try:
        return PartnerStatus(raw.strip().lower())
    except ValueError:
        allowed = ", ".join(s.value for s in PartnerStatus)
        raise ValidationFailed(f"Invalid partner status: {raw}. Valid statuses are: {allowed}, all")


@router.get("", response_model=PartnerList, summary="List partners with filters and pagination")
async def list_partners(
    page: int = Query(1),
    limit: int = Query(20),
    status_filter: Optional[str] = Query(None, alias="status"),
    search: Optional[str] = Query(None),
    business_type: Optional[str] = Query(None),
    city: Optional[str] = Query(None),
    country: Optional[str] = Query(None),
    created_after: Optional[date] = Query(None),
    created_before: Optional[date] = Query(None),
    min_commission: Optional[Decimal] = Query(None),
    max_commission: Optional[Decimal] = Query(None),
    sort_by: PartnerSortField = Query("created_at"),
    sort_order: Literal["asc", "desc"] = Query("desc"),
    service: PartnerService = Depends(get_partner_service),
):
    filters = PartnerFilters(
        status=parse_partner_status(status_filter),
        search=search,
        business_type=business_type,
        city=city,
        country=country,
        created_after=created_after,
        created_before=created_before,
        min_commission=min_commission,
        max_commission=max_commission,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return await service.get_all_partners(page, limit, filters)


@router.get("/stats", response_model=PartnerStats, summary="Partner counts by status")
async def partner_stats(service: PartnerService = Depends(get_partner_service)):
    return await service.get_partner_stats()


@router.put("/{action}/{partner_id}", response_model=PartnerActionResult, summary="Apply an admin action to a partner")
async def manage_partner(
    action: str,
    partner_id: uuid.UUID,
    data: Optional[dict[str, Any]] = Body(None),
    service: PartnerService = Depends(get_partner_service),
):
    return await service.manage_partner(action, partner_id, data or {})
