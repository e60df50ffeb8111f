"""Unit tests for PayoutService — payouts and cycle orchestration."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.mp_booking.domain.models import Professional
from src.mp_common.batch import BatchReport
from src.mp_common.enums import GatewayStatus
from src.mp_common.errors import (
    CycleNotProcessingError,
    CycleStillActiveError,
    PipelineConfigError,
)
from src.mp_cycle.domain.models import Cycle
from src.mp_earnings.domain.models import EarningsTotals
from src.mp_payout.application.service import PayoutService
from src.mp_payout.domain.gateway import GatewayResult
from src.mp_payout.domain.models import NO_PAYOUT_ACCOUNT, Payout, PayoutSummary

UTC = timezone.utc
NOW = datetime(2024, 3, 15, 6, 0, tzinfo=UTC)


def _make_payout(status: str = "pending", **overrides: object) -> Payout:
    payout = Payout(
        id="payout-1",
        professional_id="pro-1",
        cycle_id="cycle-1",
        amount_cents=12000,
        gross_cents=15000,
        fee_cents=3000,
        earnings_count=1,
        status=status,
    )
    return replace(payout, **overrides)


def _make_cycle(status: str = "processing") -> Cycle:
    return Cycle(
        id="cycle-1",
        start_date=NOW - timedelta(days=11),
        end_date=NOW - timedelta(days=4),
        cutoff_at=NOW - timedelta(days=1),
        status=status,
    )


def _make_professional(account: str | None = "acct_1") -> Professional:
    return Professional(
        id="pro-1",
        user_id="pro-user",
        display_name="Pat",
        hourly_rate_cents=15000,
        payout_account_ref=account,
    )


class _Harness:
    def __init__(self) -> None:
        self.repo = AsyncMock()
        self.repo.count_unsettled_for_cycle.return_value = 0
        self.repo.list_completed_cycles_with_unpaid_earnings.return_value = []
        self.bookings = AsyncMock()
        self.bookings.get_professional.return_value = _make_professional()
        self.earnings = AsyncMock()
        self.cycles = AsyncMock()
        self.cycles.require_cycle.return_value = _make_cycle()
        self.cycles.mark_completed.return_value = True
        self.fees = AsyncMock()
        self.fees.create_fee_charges_for_cycle.return_value = 0
        self.fees.process_fee_charges_for_cycle.return_value = BatchReport()
        self.fees.count_unsettled_for_cycle.return_value = 0
        self.gateway = AsyncMock()
        self.notifier = AsyncMock()
        clock = MagicMock()
        clock.now.return_value = NOW
        self.db = AsyncMock()
        self.svc = PayoutService(
            repo=self.repo,
            booking_repo=self.bookings,
            earnings_repo=self.earnings,
            cycles=self.cycles,
            fees=self.fees,
            gateway=self.gateway,
            notifier=self.notifier,
            clock=clock,
            max_attempts=3,
        )

    def claim_as(self, attempt: int = 1, **overrides: object) -> None:
        self.repo.claim.return_value = _make_payout(
            "processing", attempt_count=attempt, **overrides
        )


@pytest.fixture
def h() -> _Harness:
    return _Harness()


class TestCreatePayouts:
    async def test_creates_for_processing_cycle(self, h: _Harness) -> None:
        h.repo.create_for_cycle.return_value = [_make_payout()]

        assert await h.svc.create_payouts_for_cycle(h.db, "cycle-1") == 1
        h.db.commit.assert_awaited_once()

    async def test_rerun_creates_none(self, h: _Harness) -> None:
        h.repo.create_for_cycle.return_value = []

        assert await h.svc.create_payouts_for_cycle(h.db, "cycle-1") == 0

    @pytest.mark.parametrize("status", ["active", "completed", "failed"])
    async def test_requires_processing_cycle(self, h: _Harness, status: str) -> None:
        h.cycles.require_cycle.return_value = _make_cycle(status)

        with pytest.raises(CycleNotProcessingError):
            await h.svc.create_payouts_for_cycle(h.db, "cycle-1")
        h.repo.create_for_cycle.assert_not_awaited()


class TestProcessPayouts:
    async def test_success_uses_attempt_key(self, h: _Harness) -> None:
        h.repo.list_for_cycle.return_value = [_make_payout()]
        h.claim_as(attempt=1)
        h.gateway.payout.return_value = GatewayResult(GatewayStatus.SUCCEEDED, "po_1")

        report = await h.svc.process_payouts_for_cycle(h.db, "cycle-1")

        assert report.succeeded == 1
        h.gateway.payout.assert_awaited_once_with(12000, "acct_1", "payout:payout-1:1")
        assert h.repo.mark_completed.await_args.args[1:3] == ("payout-1", "po_1")

    async def test_decline_marks_failed(self, h: _Harness) -> None:
        h.repo.list_for_cycle.return_value = [_make_payout()]
        h.claim_as()
        h.gateway.payout.return_value = GatewayResult(
            GatewayStatus.FAILED, failure_code="account_closed", failure_message="Closed"
        )

        report = await h.svc.process_payouts_for_cycle(h.db, "cycle-1")

        assert report.failed == 1
        assert h.repo.mark_failed.await_args.args[2] == "account_closed: Closed"

    async def test_partial_fails_and_keeps_paid_amount(self, h: _Harness) -> None:
        h.repo.list_for_cycle.return_value = [_make_payout()]
        h.claim_as()
        h.gateway.payout.return_value = GatewayResult(GatewayStatus.PARTIAL, "po_1", 5000)

        report = await h.svc.process_payouts_for_cycle(h.db, "cycle-1")

        assert report.errors == ["payout-1: partial: 5000/12000"]
        h.repo.mark_partially_paid.assert_awaited_once_with(
            h.db, "payout-1", 5000, "partial: 5000/12000"
        )
        h.repo.mark_failed.assert_not_awaited()

    async def test_partial_covering_remainder_completes(self, h: _Harness) -> None:
        h.repo.list_for_cycle.return_value = [_make_payout(paid_cents=6000)]
        h.claim_as(attempt=2, paid_cents=6000)
        h.gateway.payout.return_value = GatewayResult(GatewayStatus.PARTIAL, "po_2", 6000)

        report = await h.svc.process_payouts_for_cycle(h.db, "cycle-1")

        assert report.succeeded == 1
        h.repo.mark_completed.assert_awaited_once()
        h.repo.mark_partially_paid.assert_not_awaited()

    async def test_timeout_left_processing(self, h: _Harness) -> None:
        h.repo.list_for_cycle.return_value = [_make_payout()]
        h.claim_as()
        h.gateway.payout.return_value = GatewayResult(GatewayStatus.TIMEOUT)

        report = await h.svc.process_payouts_for_cycle(h.db, "cycle-1")

        assert report.deferred == 1
        h.repo.mark_completed.assert_not_awaited()
        h.repo.mark_failed.assert_not_awaited()

    async def test_zero_amount_completes_without_gateway(self, h: _Harness) -> None:
        h.repo.list_for_cycle.return_value = [_make_payout(amount_cents=0, fee_cents=15000)]
        h.claim_as(amount_cents=0, fee_cents=15000)

        report = await h.svc.process_payouts_for_cycle(h.db, "cycle-1")

        assert report.succeeded == 1
        h.gateway.payout.assert_not_awaited()
        h.repo.mark_completed.assert_awaited_once()

    async def test_missing_payout_account_fails(self, h: _Harness) -> None:
        h.repo.list_for_cycle.return_value = [_make_payout()]
        h.claim_as()
        h.bookings.get_professional.return_value = _make_professional(account=None)

        report = await h.svc.process_payouts_for_cycle(h.db, "cycle-1")

        assert report.failed == 1
        assert h.repo.mark_failed.await_args.args[2].startswith(NO_PAYOUT_ACCOUNT)
        h.gateway.payout.assert_not_awaited()

    async def test_claimed_elsewhere_is_deferred(self, h: _Harness) -> None:
        h.repo.list_for_cycle.return_value = [_make_payout()]
        h.repo.claim.return_value = None

        report = await h.svc.process_payouts_for_cycle(h.db, "cycle-1")

        assert report.deferred == 1
        h.gateway.payout.assert_not_awaited()

    async def test_active_cycle_rejected(self, h: _Harness) -> None:
        h.cycles.require_cycle.return_value = _make_cycle("active")

        with pytest.raises(CycleStillActiveError):
            await h.svc.process_payouts_for_cycle(h.db, "cycle-1")
        h.repo.list_for_cycle.assert_not_awaited()

    async def test_one_failure_does_not_abort_batch(self, h: _Harness) -> None:
        h.repo.list_for_cycle.return_value = [
            _make_payout(id="payout-1"),
            _make_payout(id="payout-2"),
        ]
        h.repo.claim.side_effect = [
            RuntimeError("deadlock"),
            _make_payout("processing", id="payout-2", attempt_count=1),
        ]
        h.gateway.payout.return_value = GatewayResult(GatewayStatus.SUCCEEDED, "po_2")

        report = await h.svc.process_payouts_for_cycle(h.db, "cycle-1")

        assert report.failed == 1
        assert report.succeeded == 1


class TestReconcile:
    async def test_lookup_success_completes_without_resubmit(self, h: _Harness) -> None:
        h.repo.list_by_status.return_value = [_make_payout("processing", attempt_count=2)]
        h.gateway.lookup.return_value = GatewayResult(GatewayStatus.SUCCEEDED, "po_9")

        report = await h.svc.reconcile_processing_payouts(h.db)

        assert report.succeeded == 1
        h.gateway.lookup.assert_awaited_once_with("payout:payout-1:2")
        h.gateway.payout.assert_not_awaited()

    async def test_lookup_miss_resubmits_same_key(self, h: _Harness) -> None:
        h.repo.list_by_status.return_value = [_make_payout("processing", attempt_count=1)]
        h.gateway.lookup.return_value = GatewayResult(GatewayStatus.NOT_FOUND)
        h.gateway.payout.return_value = GatewayResult(GatewayStatus.SUCCEEDED, "po_1")

        report = await h.svc.reconcile_processing_payouts(h.db)

        assert report.succeeded == 1
        h.gateway.payout.assert_awaited_once_with(12000, "acct_1", "payout:payout-1:1")

    async def test_lookup_miss_resubmits_only_remainder(self, h: _Harness) -> None:
        h.repo.list_by_status.return_value = [
            _make_payout("processing", attempt_count=2, paid_cents=5000)
        ]
        h.gateway.lookup.return_value = GatewayResult(GatewayStatus.NOT_FOUND)
        h.gateway.payout.return_value = GatewayResult(GatewayStatus.SUCCEEDED, "po_2")

        await h.svc.reconcile_processing_payouts(h.db)

        h.gateway.payout.assert_awaited_once_with(7000, "acct_1", "payout:payout-1:2")

    async def test_still_unknown_stays_processing(self, h: _Harness) -> None:
        h.repo.list_by_status.return_value = [_make_payout("processing", attempt_count=1)]
        h.gateway.lookup.return_value = GatewayResult(GatewayStatus.TIMEOUT)

        report = await h.svc.reconcile_processing_payouts(h.db)

        assert report.deferred == 1


class TestRetry:
    async def test_requeue_bound_passed_and_new_attempt_key(self, h: _Harness) -> None:
        h.repo.requeue_failed.return_value = [_make_payout(attempt_count=1)]
        h.repo.list_by_status.return_value = [_make_payout(attempt_count=1)]
        h.claim_as(attempt=2)
        h.gateway.payout.return_value = GatewayResult(GatewayStatus.SUCCEEDED, "po_2")

        report = await h.svc.retry_failed_payouts(h.db)

        assert report.succeeded == 1
        assert h.repo.requeue_failed.await_args.args[1] == 3
        assert h.gateway.payout.await_args.args[2] == "payout:payout-1:2"

    async def test_retry_after_partial_pays_only_remainder(self, h: _Harness) -> None:
        # $120 payout, $60 moved by the first attempt: the retry moves the other $60
        h.repo.list_for_cycle.return_value = [_make_payout()]
        h.claim_as(attempt=1)
        h.gateway.payout.return_value = GatewayResult(GatewayStatus.PARTIAL, "po_1", 6000)
        await h.svc.process_payouts_for_cycle(h.db, "cycle-1")
        assert h.repo.mark_partially_paid.await_args.args[2] == 6000

        h.repo.requeue_failed.return_value = [_make_payout(attempt_count=1, paid_cents=6000)]
        h.repo.list_by_status.return_value = [_make_payout(attempt_count=1, paid_cents=6000)]
        h.claim_as(attempt=2, paid_cents=6000)
        h.gateway.payout.reset_mock()
        h.gateway.payout.return_value = GatewayResult(GatewayStatus.SUCCEEDED, "po_2")

        report = await h.svc.retry_failed_payouts(h.db)

        assert report.succeeded == 1
        h.gateway.payout.assert_awaited_once_with(6000, "acct_1", "payout:payout-1:2")

    async def test_fully_paid_retry_completes_without_gateway(self, h: _Harness) -> None:
        h.repo.requeue_failed.return_value = []
        h.repo.list_by_status.return_value = [_make_payout(paid_cents=12000)]
        h.claim_as(attempt=2, paid_cents=12000)

        report = await h.svc.retry_failed_payouts(h.db)

        assert report.succeeded == 1
        h.gateway.payout.assert_not_awaited()

    async def test_explicit_zero_max_attempts_is_kept(self, h: _Harness) -> None:
        svc = PayoutService(
            repo=h.repo,
            booking_repo=h.bookings,
            earnings_repo=h.earnings,
            cycles=h.cycles,
            fees=h.fees,
            gateway=h.gateway,
            notifier=h.notifier,
            max_attempts=0,
        )
        h.repo.requeue_failed.return_value = []
        h.repo.list_by_status.return_value = []

        await svc.retry_failed_payouts(h.db)

        assert h.repo.requeue_failed.await_args.args[1] == 0

    async def test_nothing_to_retry(self, h: _Harness) -> None:
        h.repo.requeue_failed.return_value = []
        h.repo.list_by_status.return_value = []

        report = await h.svc.retry_failed_payouts(h.db)

        assert report.succeeded == 0
        h.gateway.payout.assert_not_awaited()


class TestProcessCycle:
    async def test_full_cycle_completes(self, h: _Harness) -> None:
        # $150 session at 20%: payout $120 and fee charge $30
        h.cycles.require_cycle.side_effect = [_make_cycle("active")] + [_make_cycle()] * 5
        h.cycles.rollover_cycle.return_value = True
        h.repo.create_for_cycle.return_value = [_make_payout()]
        h.fees.create_fee_charges_for_cycle.return_value = 1
        h.repo.list_for_cycle.return_value = [_make_payout()]
        h.claim_as()
        h.gateway.payout.return_value = GatewayResult(GatewayStatus.SUCCEEDED, "po_1")
        fee_report = BatchReport()
        fee_report.ok("fee-1")
        h.fees.process_fee_charges_for_cycle.return_value = fee_report

        report = await h.svc.process_cycle(h.db, "cycle-1")

        assert report.cycles_processed == 1
        assert report.payouts_created == 1
        assert report.fee_charges_created == 1
        assert report.payouts.succeeded == 1
        assert report.fee_charges.succeeded == 1
        assert report.completed_cycle_ids == ["cycle-1"]
        assert h.gateway.payout.await_args.args[0] == 12000

    async def test_completed_cycle_is_noop(self, h: _Harness) -> None:
        h.cycles.require_cycle.return_value = _make_cycle("completed")

        report = await h.svc.process_cycle(h.db, "cycle-1")

        assert report.cycles_processed == 0
        h.repo.create_for_cycle.assert_not_awaited()

    async def test_active_before_cutoff_rejected(self, h: _Harness) -> None:
        h.cycles.require_cycle.return_value = _make_cycle("active")
        h.cycles.rollover_cycle.return_value = False

        with pytest.raises(CycleStillActiveError):
            await h.svc.process_cycle(h.db, "cycle-1")
        h.gateway.payout.assert_not_awaited()

    async def test_failed_cycle_resumed(self, h: _Harness) -> None:
        h.cycles.require_cycle.side_effect = [_make_cycle("failed")] + [_make_cycle()] * 5
        h.repo.create_for_cycle.return_value = []
        h.repo.list_for_cycle.return_value = []

        report = await h.svc.process_cycle(h.db, "cycle-1")

        h.cycles.resume_cycle.assert_awaited_once_with(h.db, "cycle-1")
        assert report.completed_cycle_ids == ["cycle-1"]

    async def test_unsettled_items_keep_cycle_processing(self, h: _Harness) -> None:
        h.repo.create_for_cycle.return_value = [_make_payout()]
        h.repo.list_for_cycle.return_value = [_make_payout()]
        h.claim_as()
        h.gateway.payout.return_value = GatewayResult(GatewayStatus.TIMEOUT)
        h.repo.count_unsettled_for_cycle.return_value = 1

        report = await h.svc.process_cycle(h.db, "cycle-1")

        assert report.completed_cycle_ids == []
        assert report.payouts.deferred == 1
        h.cycles.mark_completed.assert_not_awaited()

    async def test_unexpected_error_marks_cycle_failed(self, h: _Harness) -> None:
        h.repo.create_for_cycle.side_effect = RuntimeError("db gone")

        report = await h.svc.process_cycle(h.db, "cycle-1")

        assert report.cycle_errors == ["cycle-1: db gone"]
        h.cycles.mark_failed.assert_awaited_once()
        h.cycles.mark_completed.assert_not_awaited()

    async def test_config_error_propagates(self, h: _Harness) -> None:
        h.repo.create_for_cycle.side_effect = PipelineConfigError("gateway url")

        with pytest.raises(PipelineConfigError):
            await h.svc.process_cycle(h.db, "cycle-1")
        h.cycles.mark_failed.assert_not_awaited()

    async def test_process_all_rolls_over_then_drives_resumable(self, h: _Harness) -> None:
        h.cycles.list_ready_for_rollover.return_value = [_make_cycle("active")]
        h.cycles.list_resumable.return_value = [_make_cycle()]
        h.repo.create_for_cycle.return_value = []
        h.repo.list_for_cycle.return_value = []

        report = await h.svc.process_all_ready_cycles(h.db)

        h.cycles.rollover_cycle.assert_awaited_once_with(h.db, "cycle-1")
        assert report.cycles_processed == 1
        assert report.completed_cycle_ids == ["cycle-1"]


class TestLateEarnings:
    async def test_dispute_resolved_after_cutoff_gets_top_up(self, h: _Harness) -> None:
        # The cycle was paid; a $100 session resolved later is still owed $80
        h.cycles.list_ready_for_rollover.return_value = []
        h.cycles.list_resumable.return_value = []
        top_up = _make_payout(
            id="payout-2", sequence_no=2, amount_cents=8000, gross_cents=10000, fee_cents=2000
        )
        h.repo.list_completed_cycles_with_unpaid_earnings.return_value = ["cycle-1"]
        h.repo.create_for_cycle.return_value = [top_up]
        h.fees.create_fee_charges_for_cycle.return_value = 1
        h.repo.claim.return_value = replace(top_up, status="processing", attempt_count=1)
        h.gateway.payout.return_value = GatewayResult(GatewayStatus.SUCCEEDED, "po_2")

        report = await h.svc.process_all_ready_cycles(h.db)

        assert report.payouts_created == 1
        assert report.fee_charges_created == 1
        assert report.payouts.succeeded == 1
        h.repo.create_for_cycle.assert_awaited_once_with(h.db, "cycle-1")
        h.gateway.payout.assert_awaited_once_with(8000, "acct_1", "payout:payout-2:1")
        h.fees.process_fee_charges_for_cycle.assert_awaited_once_with(h.db, "cycle-1")
        h.cycles.mark_completed.assert_not_awaited()
        h.cycles.mark_failed.assert_not_awaited()

    async def test_nothing_unpaid_does_nothing(self, h: _Harness) -> None:
        h.cycles.list_ready_for_rollover.return_value = []
        h.cycles.list_resumable.return_value = []

        report = await h.svc.process_all_ready_cycles(h.db)

        assert report.payouts_created == 0
        h.repo.create_for_cycle.assert_not_awaited()

    async def test_top_up_failure_recorded_and_cycle_untouched(self, h: _Harness) -> None:
        h.cycles.list_ready_for_rollover.return_value = []
        h.cycles.list_resumable.return_value = []
        h.repo.list_completed_cycles_with_unpaid_earnings.return_value = ["cycle-9"]
        h.repo.create_for_cycle.side_effect = RuntimeError("lock timeout")

        report = await h.svc.process_all_ready_cycles(h.db)

        assert report.cycle_errors == ["cycle-9: lock timeout"]
        h.cycles.mark_failed.assert_not_awaited()


class TestSummariesAndReads:
    async def test_cycle_summary_per_professional(self, h: _Harness) -> None:
        h.repo.list_by_cycle.return_value = [_make_payout("completed")]

        report = await h.svc.send_cycle_summaries(h.db, ["cycle-1"])

        assert report.succeeded == 1
        user_id, _template, context = h.notifier.send.await_args.args
        assert user_id == "pro-user"
        assert context["net"] == "$120.00"
        assert context["fee"] == "$30.00"

    async def test_summary_failure_recorded(self, h: _Harness) -> None:
        h.repo.list_by_cycle.return_value = [_make_payout("completed")]
        h.notifier.send.side_effect = RuntimeError("smtp down")

        report = await h.svc.send_cycle_summaries(h.db, ["cycle-1"])

        assert report.errors == ["cycle-1:pro-1: smtp down"]

    async def test_upcoming_estimate_is_net_of_current_cycle(self, h: _Harness) -> None:
        current = _make_cycle("active")
        h.cycles.get_or_create_current_cycle.return_value = current
        h.earnings.summarize.return_value = EarningsTotals(30000, 6000, 2)

        estimate = await h.svc.get_upcoming_payout_estimate(h.db, "pro-1")

        assert estimate.estimated_amount_cents == 24000
        assert estimate.session_count == 2
        assert estimate.estimated_date == current.cutoff_at.isoformat()

    async def test_payout_summary(self, h: _Harness) -> None:
        h.repo.get_summary.return_value = PayoutSummary(
            cycle_id="cycle-1",
            payout_count=2,
            total_amount_cents=24000,
            completed_cents=12000,
            status_counts={"completed": 1, "failed": 1},
        )

        summary = await h.svc.get_payout_summary(h.db, "cycle-1")

        assert summary.payout_count == 2
        assert summary.status_counts == {"completed": 1, "failed": 1}
