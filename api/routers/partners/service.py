from __future__ import annotations
import logging
import uuid
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError
from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from api.models import Partner, PartnerStatus
from api.routers.pagination import build_pagination, normalize_page
from services.errors import InvalidState, NotFound, StoreFailure, ValidationFailed
from services.notifier import PayoutNotifierInterface
from .schemas import (
    PartnerActionResult,
    PartnerCommissionBody,
    PartnerFilters,
    PartnerList,
    PartnerRead,
    PartnerRejectBody,
    PartnerStats,
    PartnerUpdate,
)

Body = TypeVar("Body", bound=BaseModel)

VALID_ACTIONS = ("approve", "reject", "suspend", "activate", "update_commission", "update")
DEFAULT_PARTNER_REJECTION_REASON = "Application rejected"
RECENT_SIGNUP_WINDOW = timedelta(days=30)

EDITABLE_FIELDS = frozenset(PartnerUpdate.model_fields)

SEARCH_COLUMNS = (
    Partner.business_name,
    Partner.email,
    Partner.contact_person,
    Partner.phone,
    Partner.business_type,
    Partner.city,
    Partner.description,
)

SORT_COLUMNS = {
    "created_at": Partner.created_at,
    "updated_at": Partner.updated_at,
    "business_name": Partner.business_name,
    "email": Partner.email,
    "status": Partner.status,
    "commission_rate": Partner.commission_rate,
    "available_balance": Partner.available_balance,
}


class PartnerService:
    def __init__(self, session: AsyncSession, notifier: Optional[PayoutNotifierInterface] = None):
        self.session = session
        self.notifier = notifier

    async def manage_partner(self, action: str, partner_id: uuid.UUID, data: dict[str, Any]) -> PartnerActionResult:
        """
        Applies an admin lifecycle action to a partner.

        Repeating approve, reject, suspend or activate on a partner already in the
        target status is reported back without writing anything.
        """
        if action not in VALID_ACTIONS:
            raise ValidationFailed(f"Invalid action: {action}. Valid actions are: {', '.join(VALID_ACTIONS)}")

        partner = await self.session.get(Partner, partner_id)
        if not partner:
            raise NotFound(f"Partner with ID {partner_id} not found")

        previous_status = partner.status
        now = datetime.now(timezone.utc)
        email = None

        if action == "approve":
            if partner.status == PartnerStatus.approved:
                return self._unchanged("Partner is already approved", partner)
            partner.status = PartnerStatus.approved
            partner.approved_at = now
            email = ("partner approval", self._notify_approval)

        elif action == "reject":
            if partner.status == PartnerStatus.rejected:
                return self._unchanged("Partner is already rejected", partner)
            body = parse_body(PartnerRejectBody, data)
            reason = (body.reason or "").strip() or DEFAULT_PARTNER_REJECTION_REASON
            partner.status = PartnerStatus.rejected
            partner.rejected_at = now
            partner.rejection_reason = reason
            email = ("partner rejection", self._notify_rejection)

        elif action == "suspend":
            if partner.status == PartnerStatus.suspended:
                return self._unchanged("Partner is already suspended", partner)
            partner.status = PartnerStatus.suspended
            partner.suspended_at = now

        elif action == "activate":
            if partner.status == PartnerStatus.approved:
                return self._unchanged("Partner is already active", partner)
            if partner.status != PartnerStatus.suspended:
                raise InvalidState(f"Cannot activate partner with status: {partner.status.value}")
            partner.status = PartnerStatus.approved
            partner.suspended_at = None

        elif action == "update_commission":
            body = parse_body(PartnerCommissionBody, data)
            partner.commission_rate = parse_commission_rate(body.commission_rate)

        elif action == "update":
            unknown = set(data) - EDITABLE_FIELDS
            if unknown:
                raise ValidationFailed(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
            if not data:
                raise ValidationFailed("No fields to update")
            # the whole body is validated before any attribute of the row changes
            changes = parse_body(PartnerUpdate, data).model_dump(exclude_unset=True)
            for field, value in changes.items():
                setattr(partner, field, value)

        partner.updated_at = now
        try:
            await self.session.commit()
        except Exception as e:
            await self.session.rollback()
            logging.error(f"Failed to update partner {partner_id} ({action}): {e}")
            raise StoreFailure(f"Failed to update partner: {e}") from e

        logging.info(f"Partner {partner_id} {action}: {previous_status.value} -> {partner.status.value}")

        if email is not None:
            kind, send = email
            await send(partner, kind)

        return PartnerActionResult(
            message=f"Partner {action} successful",
            partner=PartnerRead.model_validate(partner),
            previous_status=previous_status,
            new_status=partner.status,
        )

    async def get_all_partners(self, page: int, limit: int, filters: PartnerFilters) -> PartnerList:
        page, limit, offset = normalize_page(page, limit)

        conditions = []
        if filters.status is not None:
            conditions.append(Partner.status == filters.status)
        if filters.search and filters.search.strip():
            term = f"%{filters.search.strip()}%"
            conditions.append(or_(*(column.ilike(term) for column in SEARCH_COLUMNS)))
        if filters.business_type and filters.business_type.strip():
            conditions.append(Partner.business_type == filters.business_type.strip())
        if filters.city and filters.city.strip():
            conditions.append(Partner.city.ilike(f"%{filters.city.strip()}%"))
        if filters.country and filters.country.strip():
            conditions.append(Partner.country == filters.country.strip())
        if filters.created_after:
            conditions.append(Partner.created_at >= datetime.combine(filters.created_after, time.min, tzinfo=timezone.utc))
        if filters.created_before:
            conditions.append(Partner.created_at <= datetime.combine(filters.created_before, time.max, tzinfo=timezone.utc))
        if filters.min_commission is not None:
            conditions.append(Partner.commission_rate >= filters.min_commission)
        if filters.max_commission is not None:
            conditions.append(Partner.commission_rate <= filters.max_commission)

        total = (await self.session.execute(select(func.count(Partner.id)).where(*conditions))).scalar() or 0

        column = SORT_COLUMNS[filters.sort_by]
        query = (
            select(Partner)
            .where(*conditions)
            .order_by(column.asc() if filters.sort_order == "asc" else column.desc())
            .offset(offset)
            .limit(limit)
        )
        partners = (await self.session.execute(query)).scalars().all()

        return PartnerList(
            partners=[PartnerRead.model_validate(p) for p in partners],
            pagination=build_pagination(total, page, limit),
        )

    async def get_partner_stats(self) -> PartnerStats:
        now = datetime.now(timezone.utc)
        by_status = await self.session.execute(
            select(Partner.status, func.count(Partner.id)).group_by(Partner.status)
        )
        counts = {status: count for status, count in by_status.all()}

        recent = await self.session.execute(
            select(func.count(Partner.id)).where(Partner.created_at >= now - RECENT_SIGNUP_WINDOW)
        )

        return PartnerStats(
            total=sum(counts.values()),
            pending=counts.get(PartnerStatus.pending, 0),
            approved=counts.get(PartnerStatus.approved, 0),
            rejected=counts.get(PartnerStatus.rejected, 0),
            suspended=counts.get(PartnerStatus.suspended, 0),
            recent_signups=recent.scalar() or 0,
            last_updated=now,
        )

    @staticmethod
    def _unchanged(message: str, partner: Partner) -> PartnerActionResult:
        return PartnerActionResult(
            message=message,
            partner=PartnerRead.model_validate(partner),
            previous_status=partner.status,
            new_status=partner.status,
        )

    async def _notify_approval(self, partner: Partner, kind: str) -> None:
        if self.notifier is None:
            return
        await self._deliver(kind, partner, self.notifier.notify_partner_approval(partner))

    async def _notify_rejection(self, partner: Partner, kind: str) -> None:
        if self.notifier is None:
            return
        await self._deliver(kind, partner, self.notifier.notify_partner_rejection(partner, partner.rejection_reason))

    @staticmethod
    async def _deliver(kind: str, partner: Partner, pending) -> None:
        try:
            delivered = await pending
        except Exception as e:
            logging.warning(f"Email sending failed for {kind} of partner {partner.id}: {e}")
            return
        if not delivered:
            logging.warning(f"{kind.capitalize()} email for partner {partner.id} was not delivered")


def parse_body(model: Type[Body], data: dict[str, Any]) -> Body:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'body'}: {error['msg']}" for error in e.errors()
        )
        raise ValidationFailed(f"Invalid request body: {problems}") from e


def parse_commission_rate(raw: Any) -> Decimal:
    if raw is None or raw == "":
        raise ValidationFailed("Commission rate is required")
    try:
        rate = Decimal(str(raw))
    except InvalidOperation:
        raise ValidationFailed("Commission rate must be a number between 0 and 1")
    if not rate.is_finite() or rate < 0 or rate > 1:
        raise ValidationFailed("Commission rate must be a number between 0 and 1")
    return rate
