from __future__ import annotations
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, AsyncIterator

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import contains_eager

from api.models import Partner, Payout, PayoutStatus
from .interface import PayoutStoreInterface
from .schema import PartnerRecord, PayoutRecord


class SqlPayoutStore(PayoutStoreInterface):
    """
    Payout store over the `payouts` and `partners` tables.

    Outside of transaction() every write is committed on its own, which is
    what the ledger's compensation mode expects.
    """
    supports_transactions = True

    def __init__(self, session: AsyncSession):
        self.session = session
        self._in_transaction = False

    async def fetch_payout_with_partner(self, payout_id: uuid.UUID) -> tuple[PayoutRecord, PartnerRecord] | None:
        query = (
            select(Payout)
            .join(Partner, Payout.partner_id == Partner.id)
            .options(contains_eager(Payout.partner))
            .where(Payout.id == payout_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        payout = result.scalar_one_or_none()
        if not payout:
            return None
        return PayoutRecord.model_validate(payout), PartnerRecord.model_validate(payout.partner)

    async def conditional_update_payout(
        self, payout_id: uuid.UUID, expected_status: PayoutStatus, fields: dict[str, Any]
    ) -> bool:
        stmt = (
            update(Payout)
            .where(Payout.id == payout_id, Payout.status == expected_status)
            .values(**fields)
            .execution_options(synchronize_session=False)
        )
        return await self._execute_write(stmt)

    async def update_partner_balance(
        self, partner_id: uuid.UUID, expected_balance: Decimal, new_balance: Decimal
    ) -> bool:
        stmt = (
            update(Partner)
            .where(Partner.id == partner_id, Partner.available_balance == expected_balance)
            .values(available_balance=new_balance, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        return await self._execute_write(stmt)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        self._in_transaction = True
        try:
            yield
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        finally:
            self._in_transaction = False

    async def _execute_write(self, stmt) -> bool:
        try:
            result = await self.session.execute(stmt)
            matched = result.rowcount > 0
            if not self._in_transaction:
                await self.session.commit()
            return matched
        except Exception as e:
            logging.error(f"Payout store write failed: {e}")
            if not self._in_transaction:
                await self.session.rollback()
            raise
