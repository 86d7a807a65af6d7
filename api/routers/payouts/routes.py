import uuid
from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.crud.payout import SqlPayoutStore
from api.database import get_session
from api.models import PayoutStatus
from api.security import get_admin_id
from config import ENV
from services.errors import ValidationFailed
from services.notifier import EmailNotifier
from services.payouts import PayoutLedger
from .schemas import (
    PayoutApprovalResponse,
    PayoutFilters,
    PayoutList,
    PayoutRejectBody,
    PayoutRejectionResponse,
)
from .service import PayoutService

router = APIRouter()


def get_payout_service(session: AsyncSession = Depends(get_session)) -> PayoutService:
    return PayoutService(session)


def get_payout_ledger(session: AsyncSession = Depends(get_session)) -> PayoutLedger:
    env = ENV()
    return PayoutLedger(
        SqlPayoutStore(session),
        EmailNotifier(env),
        prefer_transactions=env.LEDGER_USE_TRANSACTIONS,
    )


def parse_payout_status(raw: Optional[str]) -> Optional[PayoutStatus]:
    if not raw or raw.strip().lower() == "all":
        return None
    try:
        return PayoutStatus(raw.strip().lower())
    except ValueError:
        allowed = ", ".join(s.value for s in PayoutStatus)
        raise ValidationFailed(f"Invalid payout status: {raw}. Valid statuses are: {allowed}, all")


@router.get("", response_model=PayoutList, summary="List payouts with filters and pagination")
async def list_payouts(
    page: int = Query(1),
    limit: int = Query(20),
    status_filter: Optional[str] = Query(None, alias="status"),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    search: Optional[str] = Query(None),
    sort_by: Literal["requested_at", "amount", "status"] = Query("requested_at"),
    sort_order: Literal["asc", "desc"] = Query("desc"),
    service: PayoutService = Depends(get_payout_service),
):
    filters = PayoutFilters(
        status=parse_payout_status(status_filter),
        start_date=start_date,
        end_date=end_date,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return await service.get_all_payouts(page, limit, filters)


@router.put("/{payout_id}/approve", response_model=PayoutApprovalResponse, summary="Approve a pending payout")
async def approve_payout(
    payout_id: uuid.UUID,
    admin_id: Optional[str] = Depends(get_admin_id),
    ledger: PayoutLedger = Depends(get_payout_ledger),
):
    result = await ledger.approve_payout(payout_id, admin_id)
    return PayoutApprovalResponse(data=result)


@router.put("/{payout_id}/reject", response_model=PayoutRejectionResponse, summary="Reject a pending payout")
async def reject_payout(
    payout_id: uuid.UUID,
    body: Optional[PayoutRejectBody] = Body(None),
    admin_id: Optional[str] = Depends(get_admin_id),
    ledger: PayoutLedger = Depends(get_payout_ledger),
):
    reason = body.reason if body else None
    result = await ledger.reject_payout(payout_id, admin_id, reason)
    return PayoutRejectionResponse(data=result)
