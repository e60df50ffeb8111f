"""Unit tests for FeeChargeService — collecting platform fees."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.mp_common.enums import GatewayStatus
from src.mp_common.errors import (
    CycleStillActiveError,
    FeeChargeNotFoundError,
    FeeChargeNotWaivableError,
)
from src.mp_cycle.domain.models import Cycle
from src.mp_fee.application.service import FeeChargeService
from src.mp_fee.domain.models import NO_PAYMENT_METHOD, FeeCharge, PaymentMethod
from src.mp_payout.domain.gateway import GatewayResult

UTC = timezone.utc
NOW = datetime(2024, 3, 15, 6, 0, tzinfo=UTC)
RETRY = timedelta(hours=24)


def _make_charge(status: str = "pending", **overrides: object) -> FeeCharge:
    charge = FeeCharge(
        id="fee-1",
        professional_id="pro-1",
        cycle_id="cycle-1",
        amount_cents=3000,
        status=status,
    )
    return replace(charge, **overrides)


def _make_method(**overrides: object) -> PaymentMethod:
    method = PaymentMethod(
        professional_id="pro-1",
        card_brand="visa",
        card_last4="4242",
        card_exp_month=12,
        card_exp_year=2030,
        gateway_token="tok_1",
        is_active=True,
    )
    return replace(method, **overrides)


def _make_cycle(status: str = "processing") -> Cycle:
    return Cycle(
        id="cycle-1",
        start_date=NOW - timedelta(days=11),
        end_date=NOW - timedelta(days=4),
        cutoff_at=NOW - timedelta(days=1),
        status=status,
    )


class _Harness:
    def __init__(self) -> None:
        self.repo = AsyncMock()
        self.repo.get_pending_total.return_value = 0
        self.methods = AsyncMock()
        self.methods.get.return_value = _make_method()
        self.cycles = AsyncMock()
        self.cycles.require_cycle.return_value = _make_cycle()
        self.gateway = AsyncMock()
        clock = MagicMock()
        clock.now.return_value = NOW
        self.db = AsyncMock()
        self.svc = FeeChargeService(
            repo=self.repo,
            method_repo=self.methods,
            cycles=self.cycles,
            gateway=self.gateway,
            clock=clock,
            max_failures=3,
            retry_interval=RETRY,
        )

    def claim_as(self, attempt: int = 1, **overrides: object) -> None:
        self.repo.claim.return_value = _make_charge(
            "processing", attempt_count=attempt, **overrides
        )


@pytest.fixture
def h() -> _Harness:
    return _Harness()


class TestCreateFeeCharges:
    async def test_creates_for_closed_cycle(self, h: _Harness) -> None:
        h.repo.create_for_cycle.return_value = [_make_charge()]

        assert await h.svc.create_fee_charges_for_cycle(h.db, "cycle-1") == 1
        h.db.commit.assert_awaited_once()

    async def test_active_cycle_rejected(self, h: _Harness) -> None:
        h.cycles.require_cycle.return_value = _make_cycle("active")

        with pytest.raises(CycleStillActiveError):
            await h.svc.create_fee_charges_for_cycle(h.db, "cycle-1")
        h.repo.create_for_cycle.assert_not_awaited()


class TestProcessFeeCharges:
    async def test_success_uses_attempt_key(self, h: _Harness) -> None:
        h.repo.list_for_cycle.return_value = [_make_charge()]
        h.claim_as(attempt=1)
        h.gateway.charge.return_value = GatewayResult(GatewayStatus.SUCCEEDED, "ch_1", 3000)

        report = await h.svc.process_fee_charges_for_cycle(h.db, "cycle-1")

        assert report.succeeded == 1
        h.gateway.charge.assert_awaited_once_with(3000, "tok_1", "fee_charge:fee-1:1")
        args = h.repo.mark_completed.await_args.args
        assert args[1:4] == ("fee-1", "ch_1", 3000)

    async def test_decline_schedules_retry(self, h: _Harness) -> None:
        h.repo.list_for_cycle.return_value = [_make_charge()]
        h.claim_as()
        h.gateway.charge.return_value = GatewayResult(
            GatewayStatus.FAILED, failure_code="card_declined", failure_message="Declined"
        )
        h.repo.mark_failed.return_value = _make_charge("failed", consecutive_failures=1)

        report = await h.svc.process_fee_charges_for_cycle(h.db, "cycle-1")

        assert report.failed == 1
        assert report.errors == ["fee-1: card_declined"]
        args = h.repo.mark_failed.await_args.args
        assert args[2] == "card_declined"
        assert args[4] == NOW + RETRY
        h.methods.block.assert_not_awaited()

    async def test_third_decline_blocks_professional(self, h: _Harness) -> None:
        h.repo.list_due_for_retry.return_value = [
            _make_charge("failed", attempt_count=2, consecutive_failures=2)
        ]
        h.claim_as(attempt=3, consecutive_failures=2)
        h.gateway.charge.return_value = GatewayResult(GatewayStatus.FAILED, failure_code="declined")
        h.repo.mark_failed.return_value = _make_charge("failed", consecutive_failures=3)

        report = await h.svc.retry_failed_fee_charges(h.db)

        assert report.failed == 1
        h.methods.block.assert_awaited_once()
        assert h.methods.block.await_args.args[1] == "pro-1"
        assert h.gateway.charge.await_args.args[2] == "fee_charge:fee-1:3"

    async def test_partial_capture_accumulates(self, h: _Harness) -> None:
        h.repo.list_for_cycle.return_value = [_make_charge()]
        h.claim_as()
        h.gateway.charge.return_value = GatewayResult(GatewayStatus.PARTIAL, "ch_1", 1000)

        report = await h.svc.process_fee_charges_for_cycle(h.db, "cycle-1")

        assert report.failed == 1
        args = h.repo.mark_partially_paid.await_args.args
        assert args[3] == 1000
        assert args[4] == NOW + RETRY

    async def test_partial_retry_charges_only_remainder(self, h: _Harness) -> None:
        h.repo.list_due_for_retry.return_value = [
            _make_charge("partially_paid", charged_cents=1000, attempt_count=1)
        ]
        h.claim_as(attempt=2, charged_cents=1000)
        h.gateway.charge.return_value = GatewayResult(GatewayStatus.PARTIAL, "ch_2", 2000)

        report = await h.svc.retry_failed_fee_charges(h.db)

        assert report.succeeded == 1
        assert h.gateway.charge.await_args.args[0] == 2000
        h.repo.mark_completed.assert_awaited_once()

    async def test_timeout_left_processing(self, h: _Harness) -> None:
        h.repo.list_for_cycle.return_value = [_make_charge()]
        h.claim_as()
        h.gateway.charge.return_value = GatewayResult(GatewayStatus.TIMEOUT)

        report = await h.svc.process_fee_charges_for_cycle(h.db, "cycle-1")

        assert report.deferred == 1
        assert report.succeeded == 0
        assert report.failed == 0
        h.repo.mark_completed.assert_not_awaited()
        h.repo.mark_failed.assert_not_awaited()

    async def test_claimed_elsewhere_is_deferred(self, h: _Harness) -> None:
        h.repo.list_for_cycle.return_value = [_make_charge()]
        h.repo.claim.return_value = None

        report = await h.svc.process_fee_charges_for_cycle(h.db, "cycle-1")

        assert report.deferred == 1
        h.gateway.charge.assert_not_awaited()

    async def test_no_payment_method_fails_and_blocks(self, h: _Harness) -> None:
        h.repo.list_for_cycle.return_value = [_make_charge()]
        h.methods.get.return_value = None

        report = await h.svc.process_fee_charges_for_cycle(h.db, "cycle-1")

        assert report.errors == [f"fee-1: {NO_PAYMENT_METHOD}"]
        assert h.repo.mark_failed.await_args.args[2] == NO_PAYMENT_METHOD
        h.methods.block.assert_awaited_once()
        h.repo.claim.assert_not_awaited()
        h.gateway.charge.assert_not_awaited()

    async def test_expired_card_treated_as_missing(self, h: _Harness) -> None:
        h.repo.list_for_cycle.return_value = [_make_charge()]
        h.methods.get.return_value = _make_method(card_exp_month=1, card_exp_year=2024)

        report = await h.svc.process_fee_charges_for_cycle(h.db, "cycle-1")

        assert report.failed == 1
        h.gateway.charge.assert_not_awaited()

    async def test_unexpected_error_recorded_and_batch_continues(self, h: _Harness) -> None:
        h.repo.list_for_cycle.return_value = [
            _make_charge(id="fee-1"),
            _make_charge(id="fee-2"),
        ]
        h.repo.claim.side_effect = [
            RuntimeError("deadlock"),
            _make_charge("processing", id="fee-2", attempt_count=1),
        ]
        h.gateway.charge.return_value = GatewayResult(GatewayStatus.SUCCEEDED, "ch_2")

        report = await h.svc.process_fee_charges_for_cycle(h.db, "cycle-1")

        assert report.failed == 1
        assert report.succeeded == 1

    async def test_success_lifts_block_when_settled(self, h: _Harness) -> None:
        h.repo.list_for_cycle.return_value = [_make_charge()]
        h.claim_as()
        h.methods.get.return_value = _make_method(is_blocked=True)
        h.gateway.charge.return_value = GatewayResult(GatewayStatus.SUCCEEDED, "ch_1")

        await h.svc.process_fee_charges_for_cycle(h.db, "cycle-1")

        h.methods.unblock.assert_awaited_once_with(h.db, "pro-1")

    async def test_active_cycle_rejected(self, h: _Harness) -> None:
        h.cycles.require_cycle.return_value = _make_cycle("active")

        with pytest.raises(CycleStillActiveError):
            await h.svc.process_fee_charges_for_cycle(h.db, "cycle-1")


class TestReconcile:
    async def test_lookup_success_completes(self, h: _Harness) -> None:
        h.repo.list_by_status.return_value = [_make_charge("processing", attempt_count=2)]
        h.gateway.lookup.return_value = GatewayResult(GatewayStatus.SUCCEEDED, "ch_9")

        report = await h.svc.reconcile_processing_fee_charges(h.db)

        assert report.succeeded == 1
        h.gateway.lookup.assert_awaited_once_with("fee_charge:fee-1:2")
        h.gateway.charge.assert_not_awaited()

    async def test_lookup_miss_resubmits_same_key(self, h: _Harness) -> None:
        h.repo.list_by_status.return_value = [_make_charge("processing", attempt_count=1)]
        h.gateway.lookup.return_value = GatewayResult(GatewayStatus.NOT_FOUND)
        h.gateway.charge.return_value = GatewayResult(GatewayStatus.SUCCEEDED, "ch_1")

        report = await h.svc.reconcile_processing_fee_charges(h.db)

        assert report.succeeded == 1
        h.gateway.charge.assert_awaited_once_with(3000, "tok_1", "fee_charge:fee-1:1")


class TestWaive:
    async def test_waive_failed_charge(self, h: _Harness) -> None:
        h.repo.get.return_value = _make_charge("failed")
        h.repo.waive.return_value = _make_charge(
            "waived", waived_by="admin-1", waived_reason="goodwill", waived_at=NOW
        )
        h.methods.get.return_value = _make_method(is_blocked=True)

        result = await h.svc.waive_fee_charge(h.db, "fee-1", "admin-1", "goodwill")

        assert result.status == "waived"
        assert result.outstanding_cents == 0
        h.methods.unblock.assert_awaited_once()
        h.db.commit.assert_awaited_once()

    @pytest.mark.parametrize("status", ["processing", "completed", "waived"])
    async def test_non_waivable_statuses(self, h: _Harness, status: str) -> None:
        h.repo.get.return_value = _make_charge(status)

        with pytest.raises(FeeChargeNotWaivableError):
            await h.svc.waive_fee_charge(h.db, "fee-1", "admin-1", "x")
        h.repo.waive.assert_not_awaited()

    async def test_unknown_charge(self, h: _Harness) -> None:
        h.repo.get.return_value = None

        with pytest.raises(FeeChargeNotFoundError):
            await h.svc.waive_fee_charge(h.db, "missing", "admin-1", "x")


class TestChargeFee:
    async def test_manual_charge_returns_updated_row(self, h: _Harness) -> None:
        h.repo.get.side_effect = [
            _make_charge("failed", attempt_count=1),
            _make_charge("completed", charged_cents=3000, attempt_count=2),
        ]
        h.claim_as(attempt=2)
        h.gateway.charge.return_value = GatewayResult(GatewayStatus.SUCCEEDED, "ch_2")

        result = await h.svc.charge_fee(h.db, "fee-1")

        assert result.status == "completed"
        assert h.gateway.charge.await_args.args[2] == "fee_charge:fee-1:2"


class TestExplicitSettings:
    async def test_zero_values_are_not_replaced_by_defaults(self, h: _Harness) -> None:
        clock = MagicMock()
        clock.now.return_value = NOW
        svc = FeeChargeService(
            repo=h.repo,
            method_repo=h.methods,
            cycles=h.cycles,
            gateway=h.gateway,
            clock=clock,
            max_failures=0,
            retry_interval=timedelta(0),
        )
        h.repo.list_for_cycle.return_value = [_make_charge()]
        h.claim_as()
        h.gateway.charge.return_value = GatewayResult(GatewayStatus.FAILED, failure_code="declined")
        h.repo.mark_failed.return_value = _make_charge("failed", consecutive_failures=1)

        await svc.process_fee_charges_for_cycle(h.db, "cycle-1")

        assert h.repo.mark_failed.await_args.args[4] == NOW
        h.methods.block.assert_awaited_once()
