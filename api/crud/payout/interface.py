from __future__ import annotations
import uuid
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, AsyncContextManager

from api.models import PayoutStatus
from .schema import PartnerRecord, PayoutRecord


class PayoutStoreInterface(ABC):
    # Stores that can run several writes in one transaction set this to True
    # and override transaction().
    supports_transactions: bool = False

    @abstractmethod
    async def fetch_payout_with_partner(self, payout_id: uuid.UUID) -> tuple[PayoutRecord, PartnerRecord] | None:
        pass

    @abstractmethod
    async def conditional_update_payout(
        self, payout_id: uuid.UUID, expected_status: PayoutStatus, fields: dict[str, Any]
    ) -> bool:
        """Writes `fields` only if the payout is still in `expected_status`. False on conflict."""

    @abstractmethod
    async def update_partner_balance(
        self, partner_id: uuid.UUID, expected_balance: Decimal, new_balance: Decimal
    ) -> bool:
        """Compare-and-set of available_balance. False if the balance moved since it was read."""

    def transaction(self) -> AsyncContextManager[None]:
        """
        Groups the writes made inside the block into one transaction.

        Only valid when supports_transactions is True; callers check the flag first.
        """
        raise NotImplementedError(f"{type(self).__name__} does not support transactions")
