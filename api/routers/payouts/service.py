from datetime import datetime, time, timezone

from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import contains_eager

from api.models import Partner, Payout
from api.routers.pagination import build_pagination, normalize_page
from .schemas import PayoutFilters, PayoutList, PayoutRead

SORT_COLUMNS = {
    "requested_at": Payout.requested_at,
    "amount": Payout.amount,
    "status": Payout.status,
}


class PayoutService:
    """Read side of the payout admin: filtered, paginated listing."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_all_payouts(self, page: int, limit: int, filters: PayoutFilters) -> PayoutList:
        page, limit, offset = normalize_page(page, limit)

        conditions = []
        if filters.status is not None:
            conditions.append(Payout.status == filters.status)
        if filters.start_date:
            conditions.append(Payout.requested_at >= datetime.combine(filters.start_date, time.min, tzinfo=timezone.utc))
        if filters.end_date:
            # end date is inclusive up to the last microsecond of the day
            conditions.append(Payout.requested_at <= datetime.combine(filters.end_date, time.max, tzinfo=timezone.utc))
        if filters.search and filters.search.strip():
            term = f"%{filters.search.strip()}%"
            conditions.append(or_(Partner.business_name.ilike(term), Partner.email.ilike(term)))

        total_query = select(func.count(Payout.id)).join(Partner, Payout.partner_id == Partner.id).where(*conditions)
        total = (await self.session.execute(total_query)).scalar() or 0

        column = SORT_COLUMNS[filters.sort_by]
        query = (
            select(Payout)
            .join(Partner, Payout.partner_id == Partner.id)
            .options(contains_eager(Payout.partner))
            .where(*conditions)
            .order_by(column.asc() if filters.sort_order == "asc" else column.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(query)
        payouts = result.scalars().all()

        return PayoutList(
            payouts=[PayoutRead.model_validate(p) for p in payouts],
            pagination=build_pagination(total, page, limit),
        )
