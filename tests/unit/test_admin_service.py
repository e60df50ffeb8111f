"""Unit tests for AdminPaymentsService — delegation and run reports."""

from unittest.mock import AsyncMock

from src.mp_admin.application.service import AdminPaymentsService
from src.mp_payout.domain.models import CycleRunReport


def _service() -> tuple[AdminPaymentsService, dict[str, AsyncMock]]:
    deps = {
        "cycles": AsyncMock(),
        "confirmations": AsyncMock(),
        "earnings": AsyncMock(),
        "payouts": AsyncMock(),
        "fees": AsyncMock(),
        "payment_methods": AsyncMock(),
    }
    return AdminPaymentsService(**deps), deps


class TestManualRuns:
    async def test_process_cycle_flattens_report(self) -> None:
        svc, deps = _service()
        report = CycleRunReport(cycles_processed=1, payouts_created=2, fee_charges_created=2)
        report.payouts.ok("p-1")
        report.payouts.fail("p-2", "account_closed")
        report.fee_charges.defer()
        deps["payouts"].process_cycle.return_value = report

        result = await svc.process_cycle(AsyncMock(), "cycle-1", "admin-1")

        assert result.cycles_processed == 1
        assert result.cycles_completed == 0
        assert result.payouts_processed == 1
        assert result.payouts_failed == 1
        assert result.deferred == 1
        assert result.errors == ["p-2: account_closed"]

    async def test_create_payouts_creates_both_sides(self) -> None:
        svc, deps = _service()
        deps["payouts"].create_payouts_for_cycle.return_value = 3
        deps["fees"].create_fee_charges_for_cycle.return_value = 2

        result = await svc.create_payouts(AsyncMock(), "cycle-1", "admin-1")

        assert result.payouts_created == 3
        assert result.fee_charges_created == 2
        deps["payouts"].process_payouts_for_cycle.assert_not_awaited()


class TestDelegation:
    async def test_resolve_dispute(self) -> None:
        svc, deps = _service()
        db = AsyncMock()

        await svc.resolve_dispute(db, "conf-1", "admin_confirmed", "seen", "admin-1")

        deps["confirmations"].resolve_dispute.assert_awaited_once_with(
            db, "conf-1", "admin_confirmed", "seen", "admin-1"
        )

    async def test_get_platform_cut(self) -> None:
        svc, deps = _service()
        deps["earnings"].get_platform_cut.return_value = 2000

        result = await svc.get_platform_cut(AsyncMock())

        assert result.cut_bps == 2000
        assert result.cut_display == "20%"

    async def test_waive(self) -> None:
        svc, deps = _service()
        db = AsyncMock()

        await svc.waive_fee_charge(db, "fee-1", "admin-1", "goodwill")

        deps["fees"].waive_fee_charge.assert_awaited_once_with(db, "fee-1", "admin-1", "goodwill")
