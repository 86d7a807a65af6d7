from __future__ import annotations
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional

from api.crud.payout.interface import PayoutStoreInterface
from api.crud.payout.schema import PartnerRecord, PayoutRecord
from api.models import PayoutStatus
from services.errors import (
    AdminServiceError,
    InsufficientFunds,
    InvalidState,
    LedgerInconsistency,
    NotFound,
    StoreFailure,
)
from services.notifier import PayoutNotifierInterface
from .schemas import PayoutApproval, PayoutRejection

DEFAULT_REJECTION_REASON = "Rejected by admin"
CENTS = Decimal("0.01")

REVERT_APPROVAL_FIELDS = {
    "status": PayoutStatus.pending,
    "approved_at": None,
    "approved_by": None,
    "processed_at": None,
}


class PayoutLedger:
    """
    Approves and rejects partner payouts.

    Approval writes two rows: the payout status and the partner's available
    balance. With a transactional store both writes share one transaction.
    Otherwise the status goes first, the balance second, and a failed balance
    write is undone by putting the payout back to pending (compensating write).
    A crash between the two phases can still leave an approved payout with no
    deduction; only the transactional mode closes that window.
    """

    def __init__(
        self,
        store: PayoutStoreInterface,
        notifier: Optional[PayoutNotifierInterface] = None,
        *,
        prefer_transactions: bool = True,
    ):
        self.store = store
        self.notifier = notifier
        self.prefer_transactions = prefer_transactions

    @property
    def uses_transactions(self) -> bool:
        return self.prefer_transactions and self.store.supports_transactions

    async def approve_payout(self, payout_id: uuid.UUID, admin_id: Optional[str] = None) -> PayoutApproval:
        logging.info(f"Processing payout approval: {payout_id}")
        payout, partner = await self._load(payout_id)
        self._ensure_pending(payout, "approve")

        required = payout.amount
        available = partner.available_balance
        if available < required:
            raise InsufficientFunds(
                f"Insufficient partner balance. Available: ${available:.2f}, Required: ${required:.2f}"
            )
        new_balance = (available - required).quantize(CENTS)

        approved_at = _now()
        fields = {
            "status": PayoutStatus.approved,
            "approved_at": approved_at,
            "approved_by": admin_id,
            "processed_at": approved_at,
        }
        if self.uses_transactions:
            await self._approve_in_transaction(payout, partner, fields, new_balance)
        else:
            await self._approve_with_compensation(payout, partner, fields, new_balance)

        logging.info(
            f"Payout {payout.id} approved by {admin_id}. "
            f"Partner {partner.business_name} balance updated: {available:.2f} -> {new_balance:.2f}"
        )

        approved = payout.model_copy(update=fields)
        await self._notify("approval", approved.id, self._sender("notify_payout_approval"), partner, approved, new_balance)

        return PayoutApproval(
            payout_id=payout.id,
            amount=required,
            partner_name=partner.business_name,
            previous_balance=available,
            new_balance=new_balance,
        )

    async def reject_payout(
        self, payout_id: uuid.UUID, admin_id: Optional[str] = None, reason: Optional[str] = None
    ) -> PayoutRejection:
        logging.info(f"Processing payout rejection: {payout_id}")
        payout, partner = await self._load(payout_id)
        self._ensure_pending(payout, "reject")

        reason = (reason or "").strip() or DEFAULT_REJECTION_REASON
        fields = {
            "status": PayoutStatus.rejected,
            "rejected_at": _now(),
            "rejected_by": admin_id,
            "rejection_reason": reason,
        }
        try:
            updated = await self.store.conditional_update_payout(payout.id, PayoutStatus.pending, fields)
        except Exception as e:
            raise StoreFailure(f"Failed to reject payout: {e}") from e
        if not updated:
            raise await self._status_conflict(payout.id, "reject")

        logging.info(f"Payout {payout.id} rejected by {admin_id}: {reason}")

        rejected = payout.model_copy(update=fields)
        await self._notify("rejection", rejected.id, self._sender("notify_payout_rejection"), partner, rejected, reason)

        return PayoutRejection(payout_id=payout.id, rejection_reason=reason)

    async def _approve_in_transaction(
        self, payout: PayoutRecord, partner: PartnerRecord, fields: dict[str, Any], new_balance: Decimal
    ) -> None:
        try:
            async with self.store.transaction():
                if not await self.store.conditional_update_payout(payout.id, PayoutStatus.pending, fields):
                    raise await self._status_conflict(payout.id, "approve")
                if not await self.store.update_partner_balance(partner.id, partner.available_balance, new_balance):
                    raise StoreFailure(
                        f"Partner balance changed while approving payout {payout.id}; nothing was written"
                    )
        except AdminServiceError:
            raise
        except Exception as e:
            logging.error(f"Transaction error during payout approval {payout.id}: {e}")
            raise StoreFailure(f"Failed to approve payout: {e}") from e

    async def _approve_with_compensation(
        self, payout: PayoutRecord, partner: PartnerRecord, fields: dict[str, Any], new_balance: Decimal
    ) -> None:
        # phase 1: payout status, guarded by the expected prior status
        try:
            updated = await self.store.conditional_update_payout(payout.id, PayoutStatus.pending, fields)
        except Exception as e:
            raise StoreFailure(f"Failed to approve payout: {e}") from e
        if not updated:
            raise await self._status_conflict(payout.id, "approve")

        # phase 2: balance, compare-and-set on the value read at load time
        cause: Optional[Exception] = None
        try:
            deducted = await self.store.update_partner_balance(partner.id, partner.available_balance, new_balance)
            failure = None if deducted else "partner balance changed since it was read"
        except Exception as e:
            cause = e
            failure = str(e) or type(e).__name__

        if failure is None:
            return

        compensated = await self._revert_approval(payout.id)
        if compensated:
            outcome = "payout reverted to pending"
        else:
            outcome = "payout could not be reverted to pending and needs manual repair"
        message = f"Failed to update partner balance for payout {payout.id}: {failure}; {outcome}"
        logging.critical(message)
        raise LedgerInconsistency(message, payout_id=payout.id, compensated=compensated) from cause

    async def _revert_approval(self, payout_id: uuid.UUID) -> bool:
        try:
            reverted = await self.store.conditional_update_payout(payout_id, PayoutStatus.approved, REVERT_APPROVAL_FIELDS)
        except Exception as e:
            logging.critical(f"Compensating write for payout {payout_id} failed: {e}")
            return False
        if not reverted:
            logging.critical(f"Compensating write for payout {payout_id} matched no approved row")
        return reverted

    async def _load(self, payout_id: uuid.UUID) -> tuple[PayoutRecord, PartnerRecord]:
        try:
            loaded = await self.store.fetch_payout_with_partner(payout_id)
        except Exception as e:
            logging.error(f"Payout fetch error for {payout_id}: {e}")
            raise StoreFailure(f"Failed to load payout: {e}") from e
        if loaded is None:
            raise NotFound("Payout not found")
        return loaded

    async def _status_conflict(self, payout_id: uuid.UUID, action: str) -> AdminServiceError:
        """Builds the error for a conditional update that lost the race."""
        try:
            loaded = await self.store.fetch_payout_with_partner(payout_id)
        except Exception as e:
            logging.error(f"Could not re-read payout {payout_id} after a status conflict: {e}")
            return InvalidState(f"Cannot {action} payout: its status changed concurrently")
        if loaded is None:
            return NotFound("Payout not found")
        return InvalidState(f"Cannot {action} payout with status: {loaded[0].status.value}")

    @staticmethod
    def _ensure_pending(payout: PayoutRecord, action: str) -> None:
        if payout.status != PayoutStatus.pending:
            raise InvalidState(f"Cannot {action} payout with status: {payout.status.value}")

    def _sender(self, name: str) -> Optional[Callable[..., Awaitable[bool]]]:
        if self.notifier is None:
            return None
        return getattr(self.notifier, name)

    async def _notify(self, kind: str, payout_id: uuid.UUID, send, *args) -> None:
        # Notification never affects ledger state or the caller's result
        if send is None:
            return
        try:
            delivered = await send(*args)
        except Exception as e:
            logging.warning(f"Failed to send payout {kind} email for {payout_id}: {e}")
            return
        if not delivered:
            logging.warning(f"Payout {kind} email for {payout_id} was not delivered")


def _now() -> datetime:
    return datetime.now(timezone.utc)
