"""
Payout approval and rejection through the ledger, against the in-memory store.
"""
import asyncio
import uuid
from decimal import Decimal

import pytest

from api.models import PayoutStatus
from services.errors import (
    InsufficientFunds,
    InvalidState,
    LedgerInconsistency,
    NotFound,
    StoreFailure,
)
from services.payouts import DEFAULT_REJECTION_REASON, PayoutLedger
from tests.conftest import RecordingNotifier, make_partner, make_payout


class TestApprovePayout:
    @pytest.mark.asyncio
    async def test_approves_and_deducts_balance(self, ledger, store, notifier) -> None:
        partner = make_partner("250.00")
        payout = make_payout(partner, "100.00")
        store.add(payout, partner)

        result = await ledger.approve_payout(payout.id, "admin-1")

        assert result.payout_id == payout.id
        assert result.amount == Decimal("100.00")
        assert result.partner_name == "Skyline Travel"
        assert result.previous_balance == Decimal("250.00")
        assert result.new_balance == Decimal("150.00")
        assert result.new_balance + result.amount == result.previous_balance

        stored = store.payouts[payout.id]
        assert stored.status == PayoutStatus.approved
        assert stored.approved_by == "admin-1"
        assert stored.approved_at is not None
        assert store.partners[partner.id].available_balance == Decimal("150.00")

        assert [name for name, _ in notifier.calls] == ["payout_approval"]
        _, (notified_partner, notified_payout, new_balance) = notifier.calls[0]
        assert notified_partner.email == partner.email
        assert notified_payout.status == PayoutStatus.approved
        assert new_balance == Decimal("150.00")

    @pytest.mark.asyncio
    async def test_exact_balance_can_be_paid_out(self, ledger, store) -> None:
        partner = make_partner("100.00")
        payout = make_payout(partner, "100.00")
        store.add(payout, partner)

        result = await ledger.approve_payout(payout.id, "admin-1")

        assert result.new_balance == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_missing_payout_is_not_found(self, ledger, store) -> None:
        with pytest.raises(NotFound):
            await ledger.approve_payout(uuid.uuid4(), "admin-1")
        assert store.writes == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [PayoutStatus.approved, PayoutStatus.rejected])
    async def test_non_pending_payout_is_invalid_state(self, ledger, store, notifier, status) -> None:
        partner = make_partner("250.00")
        payout = make_payout(partner, "100.00", status=status)
        store.add(payout, partner)

        with pytest.raises(InvalidState) as exc_info:
            await ledger.approve_payout(payout.id, "admin-1")

        assert status.value in str(exc_info.value)
        assert store.writes == []
        assert notifier.calls == []

    @pytest.mark.asyncio
    async def test_insufficient_balance_makes_no_writes(self, ledger, store) -> None:
        partner = make_partner("99.5")
        payout = make_payout(partner, "100")
        store.add(payout, partner)

        with pytest.raises(InsufficientFunds) as exc_info:
            await ledger.approve_payout(payout.id, "admin-1")

        assert "Available: $99.50" in str(exc_info.value)
        assert "Required: $100.00" in str(exc_info.value)
        assert store.writes == []
        assert store.payouts[payout.id].status == PayoutStatus.pending

    @pytest.mark.asyncio
    async def test_balance_failure_reverts_payout_to_pending(self, ledger, store, notifier) -> None:
        partner = make_partner("250.00")
        payout = make_payout(partner, "100.00")
        store.add(payout, partner)
        store.balance_error = ConnectionError("connection reset")

        with pytest.raises(LedgerInconsistency) as exc_info:
            await ledger.approve_payout(payout.id, "admin-1")

        assert exc_info.value.compensated is True
        assert exc_info.value.payout_id == payout.id
        assert isinstance(exc_info.value.__cause__, ConnectionError)
        stored = store.payouts[payout.id]
        assert stored.status == PayoutStatus.pending
        assert stored.approved_at is None
        assert stored.approved_by is None
        assert store.partners[partner.id].available_balance == Decimal("250.00")
        assert notifier.calls == []

    @pytest.mark.asyncio
    async def test_balance_moved_since_read_reverts_payout(self, ledger, store) -> None:
        partner = make_partner("250.00")
        payout = make_payout(partner, "100.00")
        store.add(payout, partner)

        original_update = store.update_partner_balance

        async def balance_changed_underneath(partner_id, expected_balance, new_balance):
            store.partners[partner_id] = store.partners[partner_id].model_copy(
                update={"available_balance": Decimal("40.00")}
            )
            return await original_update(partner_id, expected_balance, new_balance)

        store.update_partner_balance = balance_changed_underneath

        with pytest.raises(LedgerInconsistency):
            await ledger.approve_payout(payout.id, "admin-1")

        assert store.payouts[payout.id].status == PayoutStatus.pending
        assert store.partners[partner.id].available_balance == Decimal("40.00")

    @pytest.mark.asyncio
    async def test_failed_compensation_is_reported(self, ledger, store) -> None:
        partner = make_partner("250.00")
        payout = make_payout(partner, "100.00")
        store.add(payout, partner)
        store.balance_error = ConnectionError("connection reset")
        store.compensation_error = ConnectionError("still down")

        with pytest.raises(LedgerInconsistency) as exc_info:
            await ledger.approve_payout(payout.id, "admin-1")

        assert exc_info.value.compensated is False
        assert "manual repair" in str(exc_info.value)
        assert store.payouts[payout.id].status == PayoutStatus.approved

    @pytest.mark.asyncio
    async def test_status_write_failure_is_store_failure(self, ledger, store) -> None:
        partner = make_partner("250.00")
        payout = make_payout(partner, "100.00")
        store.add(payout, partner)

        async def broken_update(*args, **kwargs):
            raise ConnectionError("timeout")

        store.conditional_update_payout = broken_update

        with pytest.raises(StoreFailure):
            await ledger.approve_payout(payout.id, "admin-1")
        assert store.partners[partner.id].available_balance == Decimal("250.00")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "failing_notifier",
        [RecordingNotifier(error=RuntimeError("smtp down")), RecordingNotifier(result=False)],
    )
    async def test_notifier_failure_does_not_change_result(self, store, failing_notifier) -> None:
        partner = make_partner("250.00")
        payout = make_payout(partner, "100.00")
        store.add(payout, partner)
        ledger = PayoutLedger(store, failing_notifier)

        result = await ledger.approve_payout(payout.id, "admin-1")

        assert result.new_balance == Decimal("150.00")
        assert store.payouts[payout.id].status == PayoutStatus.approved
        assert store.partners[partner.id].available_balance == Decimal("150.00")

    @pytest.mark.asyncio
    async def test_works_without_notifier(self, store) -> None:
        partner = make_partner("250.00")
        payout = make_payout(partner, "100.00")
        store.add(payout, partner)

        result = await PayoutLedger(store).approve_payout(payout.id)

        assert result.new_balance == Decimal("150.00")
        assert store.payouts[payout.id].approved_by is None


class TestTransactionalApproval:
    @pytest.mark.asyncio
    async def test_uses_store_transaction(self, transactional_store, notifier) -> None:
        partner = make_partner("250.00")
        payout = make_payout(partner, "100.00")
        transactional_store.add(payout, partner)
        ledger = PayoutLedger(transactional_store, notifier)

        assert ledger.uses_transactions is True
        result = await ledger.approve_payout(payout.id, "admin-1")

        assert result.new_balance == Decimal("150.00")
        assert transactional_store.payouts[payout.id].status == PayoutStatus.approved
        assert transactional_store.rolled_back is False

    @pytest.mark.asyncio
    async def test_balance_failure_rolls_back_both_writes(self, transactional_store) -> None:
        partner = make_partner("250.00")
        payout = make_payout(partner, "100.00")
        transactional_store.add(payout, partner)
        transactional_store.balance_error = ConnectionError("connection reset")
        ledger = PayoutLedger(transactional_store)

        with pytest.raises(StoreFailure):
            await ledger.approve_payout(payout.id, "admin-1")

        assert transactional_store.rolled_back is True
        assert transactional_store.payouts[payout.id].status == PayoutStatus.pending
        assert transactional_store.partners[partner.id].available_balance == Decimal("250.00")
        # no compensating write in transactional mode
        assert [w for w in transactional_store.writes if w[0] == "payout"][-1][2]["status"] == PayoutStatus.approved

    @pytest.mark.asyncio
    async def test_compensation_mode_can_be_forced(self, transactional_store) -> None:
        partner = make_partner("250.00")
        payout = make_payout(partner, "100.00")
        transactional_store.add(payout, partner)
        transactional_store.balance_error = ConnectionError("connection reset")
        ledger = PayoutLedger(transactional_store, prefer_transactions=False)

        with pytest.raises(LedgerInconsistency):
            await ledger.approve_payout(payout.id, "admin-1")

        assert transactional_store.rolled_back is False
        assert transactional_store.payouts[payout.id].status == PayoutStatus.pending


class TestConcurrentApproval:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("transactional", [False, True])
    async def test_only_one_concurrent_approval_wins(self, transactional) -> None:
        from tests.conftest import InMemoryPayoutStore

        store = InMemoryPayoutStore(transactional=transactional)
        partner = make_partner("250.00")
        payout = make_payout(partner, "100.00")
        store.add(payout, partner)
        ledger = PayoutLedger(store, RecordingNotifier())

        results = await asyncio.gather(
            ledger.approve_payout(payout.id, "admin-1"),
            ledger.approve_payout(payout.id, "admin-2"),
            return_exceptions=True,
        )

        succeeded = [r for r in results if not isinstance(r, Exception)]
        failed = [r for r in results if isinstance(r, Exception)]
        assert len(succeeded) == 1
        assert len(failed) == 1
        assert isinstance(failed[0], InvalidState)
        assert "approved" in str(failed[0])
        assert store.partners[partner.id].available_balance == Decimal("150.00")
        assert len([w for w in store.writes if w[0] == "balance"]) == 1


class TestRejectPayout:
    @pytest.mark.asyncio
    async def test_rejects_with_reason(self, ledger, store, notifier) -> None:
        partner = make_partner("250.00")
        payout = make_payout(partner, "100.00")
        store.add(payout, partner)

        result = await ledger.reject_payout(payout.id, "admin-1", "Bank details do not match")

        assert result.payout_id == payout.id
        assert result.rejection_reason == "Bank details do not match"
        stored = store.payouts[payout.id]
        assert stored.status == PayoutStatus.rejected
        assert stored.rejected_by == "admin-1"
        assert stored.rejected_at is not None
        assert stored.rejection_reason == "Bank details do not match"
        assert store.partners[partner.id].available_balance == Decimal("250.00")
        assert [name for name, _ in notifier.calls] == ["payout_rejection"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reason", [None, "", "   "])
    async def test_empty_reason_gets_default(self, ledger, store, reason) -> None:
        partner = make_partner()
        payout = make_payout(partner)
        store.add(payout, partner)

        result = await ledger.reject_payout(payout.id, "admin-1", reason)

        assert result.rejection_reason == DEFAULT_REJECTION_REASON
        assert store.payouts[payout.id].rejection_reason == DEFAULT_REJECTION_REASON

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [PayoutStatus.approved, PayoutStatus.rejected])
    async def test_non_pending_payout_is_invalid_state(self, ledger, store, status) -> None:
        partner = make_partner()
        payout = make_payout(partner, status=status)
        store.add(payout, partner)

        with pytest.raises(InvalidState) as exc_info:
            await ledger.reject_payout(payout.id, "admin-1", "nope")

        assert f"Cannot reject payout with status: {status.value}" == str(exc_info.value)
        assert store.writes == []

    @pytest.mark.asyncio
    async def test_missing_payout_is_not_found(self, ledger, store) -> None:
        with pytest.raises(NotFound):
            await ledger.reject_payout(uuid.uuid4(), "admin-1", "nope")

    @pytest.mark.asyncio
    async def test_notifier_failure_is_swallowed(self, store) -> None:
        partner = make_partner()
        payout = make_payout(partner)
        store.add(payout, partner)
        ledger = PayoutLedger(store, RecordingNotifier(error=RuntimeError("template missing")))

        result = await ledger.reject_payout(payout.id, "admin-1", "duplicate request")

        assert result.rejection_reason == "duplicate request"
        assert store.payouts[payout.id].status == PayoutStatus.rejected
