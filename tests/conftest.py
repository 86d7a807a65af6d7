"""
Pytest configuration and fixtures.
"""
import asyncio
import os
import uuid
from contextlib import asynccontextmanager
from contextvars import ContextVar
from decimal import Decimal
from typing import Any, AsyncIterator, Optional

os.environ.setdefault("admin_api_token", "test-admin-key")
os.environ.setdefault("POSTGRES_HOST", "localhost")
os.environ.setdefault("POSTGRES_NAME", "elevatio_test")
os.environ.setdefault("POSTGRES_USER", "postgres")
os.environ.setdefault("POSTGRES_PASS", "postgres")
os.environ.setdefault("EMAIL_SERVICE_URL", "")

import pytest

from api.crud.payout.interface import PayoutStoreInterface
from api.crud.payout.schema import PartnerRecord, PayoutRecord
from api.models import PayoutStatus
from services.notifier import PayoutNotifierInterface
from services.payouts import PayoutLedger

# writes made inside the current task's transaction, for rollback
_journal: ContextVar[Optional[list]] = ContextVar("journal", default=None)


class InMemoryPayoutStore(PayoutStoreInterface):
    """Payout store over two dicts; records every write attempt in `writes`."""

    def __init__(self, *, transactional: bool = False):
        self.supports_transactions = transactional
        self.payouts: dict[uuid.UUID, PayoutRecord] = {}
        self.partners: dict[uuid.UUID, PartnerRecord] = {}
        self.writes: list[tuple[str, uuid.UUID, Any]] = []
        self.balance_error: Optional[Exception] = None
        self.compensation_error: Optional[Exception] = None
        self.rolled_back = False

    def add(self, payout: PayoutRecord, partner: PartnerRecord) -> None:
        self.payouts[payout.id] = payout
        self.partners[partner.id] = partner

    async def fetch_payout_with_partner(self, payout_id):
        # yield so concurrent callers interleave between read and write
        await asyncio.sleep(0)
        payout = self.payouts.get(payout_id)
        if payout is None or payout.partner_id not in self.partners:
            return None
        return payout.model_copy(), self.partners[payout.partner_id].model_copy()

    async def conditional_update_payout(self, payout_id, expected_status, fields):
        self.writes.append(("payout", payout_id, dict(fields)))
        await asyncio.sleep(0)
        if expected_status == PayoutStatus.approved and self.compensation_error:
            raise self.compensation_error
        payout = self.payouts.get(payout_id)
        if payout is None or payout.status != expected_status:
            return False
        self._write(self.payouts, payout_id, payout.model_copy(update=fields))
        return True

    async def update_partner_balance(self, partner_id, expected_balance, new_balance):
        self.writes.append(("balance", partner_id, new_balance))
        if self.balance_error:
            raise self.balance_error
        partner = self.partners[partner_id]
        if partner.available_balance != expected_balance:
            return False
        self._write(self.partners, partner_id, partner.model_copy(update={"available_balance": new_balance}))
        return True

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if not self.supports_transactions:
            raise NotImplementedError
        journal: list = []
        token = _journal.set(journal)
        try:
            yield
        except Exception:
            for table, key, previous in reversed(journal):
                table[key] = previous
            self.rolled_back = True
            raise
        finally:
            _journal.reset(token)

    def _write(self, table: dict, key: uuid.UUID, value: Any) -> None:
        journal = _journal.get()
        if journal is not None:
            journal.append((table, key, table[key]))
        table[key] = value


class RecordingNotifier(PayoutNotifierInterface):
    def __init__(self, *, result: bool = True, error: Optional[Exception] = None):
        self.result = result
        self.error = error
        self.calls: list[tuple[str, tuple]] = []

    async def _record(self, name, *args):
        self.calls.append((name, args))
        if self.error:
            raise self.error
        return self.result

    async def notify_payout_approval(self, partner, payout, new_balance):
        return await self._record("payout_approval", partner, payout, new_balance)

    async def notify_payout_rejection(self, partner, payout, reason):
        return await self._record("payout_rejection", partner, payout, reason)

    async def notify_partner_approval(self, partner):
        return await self._record("partner_approval", partner)

    async def notify_partner_rejection(self, partner, reason):
        return await self._record("partner_rejection", partner, reason)


def make_partner(balance: str = "250.00", **overrides: Any) -> PartnerRecord:
    data = {
        "id": uuid.uuid4(),
        "business_name": "Skyline Travel",
        "email": "payouts@skyline.example",
        "first_name": "Dana",
        "last_name": "Reyes",
        "available_balance": Decimal(balance),
    }
    data.update(overrides)
    return PartnerRecord(**data)


def make_payout(partner: PartnerRecord, amount: str = "100.00", status: PayoutStatus = PayoutStatus.pending) -> PayoutRecord:
    return PayoutRecord(id=uuid.uuid4(), partner_id=partner.id, amount=Decimal(amount), status=status)


@pytest.fixture
def store() -> InMemoryPayoutStore:
    return InMemoryPayoutStore()


@pytest.fixture
def transactional_store() -> InMemoryPayoutStore:
    return InMemoryPayoutStore(transactional=True)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def ledger(store, notifier) -> PayoutLedger:
    return PayoutLedger(store, notifier)
