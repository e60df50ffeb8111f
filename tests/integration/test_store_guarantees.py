"""Integration tests for store-level guarantees (requires running PG).

Pre-condition: PostgreSQL running, `alembic upgrade head` applied

Services run against the real repositories; only the payment gateway is
replaced. Cycles are seeded in far-past windows so runs do not collide.
"""

import asyncio
import uuid
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import text

from src.mp_common.database import async_session_factory
from src.mp_common.enums import GatewayStatus
from src.mp_confirmation.application.service import ConfirmationService
from src.mp_cycle.application.service import CycleService
from src.mp_fee.application.service import FeeChargeService
from src.mp_payout.application.service import PayoutService
from src.mp_payout.domain.gateway import GatewayResult
from src.mp_payout.infrastructure.persistence import PayoutRepository
from tests.integration.helpers import (
    insert_appointment,
    insert_cycle,
    insert_earning,
    insert_professional,
    insert_user,
    make_payable,
)

pytestmark = pytest.mark.asyncio(loop_scope="session")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _gateway() -> AsyncMock:
    gateway = AsyncMock()
    gateway.payout.return_value = GatewayResult(GatewayStatus.SUCCEEDED, "po_integration")
    gateway.charge.side_effect = lambda amount, token, key: GatewayResult(
        GatewayStatus.SUCCEEDED, "ch_integration", amount
    )
    return gateway


async def _parties() -> tuple[str, str, str]:
    """(client_user_id, professional_user_id, professional_id)"""
    client_id = await insert_user()
    pro_user_id = await insert_user()
    return client_id, pro_user_id, await insert_professional(pro_user_id)


async def _rows(sql: str, **params: object) -> list:
    async with async_session_factory() as session:
        result = await session.execute(text(sql), params)
        return list(result.fetchall())


async def _payouts(cycle_id: str) -> list:
    return await _rows(
        """
        SELECT id, sequence_no, amount_cents, paid_cents, gross_cents, fee_cents, status
        FROM payouts WHERE cycle_id = :cycle_id ORDER BY sequence_no
        """,
        cycle_id=cycle_id,
    )


async def _fee_charges(cycle_id: str) -> list:
    return await _rows(
        """
        SELECT sequence_no, amount_cents, charged_cents, status
        FROM fee_charges WHERE cycle_id = :cycle_id ORDER BY sequence_no
        """,
        cycle_id=cycle_id,
    )


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

class TestCycleCreation:
    async def test_concurrent_get_or_create_yields_one_row(self) -> None:
        t = datetime(1975, 1, 1, tzinfo=UTC) + timedelta(hours=uuid.uuid4().int % 9000)

        async def get_or_create():
            async with async_session_factory() as db:
                return await CycleService().get_or_create_cycle_for(db, t)

        first, second = await asyncio.gather(get_or_create(), get_or_create())

        assert first.id == second.id
        rows = await _rows(
            "SELECT id FROM payout_cycles WHERE start_date = :start AND end_date = :end",
            start=first.start_date,
            end=first.end_date,
        )
        assert len(rows) == 1


class TestConfirmationStore:
    async def test_create_twice_returns_same_row(self) -> None:
        client_id, _, professional_id = await _parties()
        appointment_id = await insert_appointment(
            client_id, professional_id, datetime.now(UTC) - timedelta(hours=3)
        )
        svc = ConfirmationService()

        async with async_session_factory() as db:
            first = await svc.create_confirmation(db, appointment_id)
            second = await svc.create_confirmation(db, appointment_id)

        assert first.id == second.id

    async def test_concurrent_party_confirms_resolve_once(self) -> None:
        client_id, pro_user_id, professional_id = await _parties()
        appointment_id = await insert_appointment(
            client_id, professional_id, datetime.now(UTC) - timedelta(hours=3)
        )
        async with async_session_factory() as db:
            confirmation = await ConfirmationService().create_confirmation(db, appointment_id)

        async def confirm(role: str) -> None:
            svc = ConfirmationService()
            async with async_session_factory() as db:
                if role == "client":
                    await svc.confirm_by_client(db, confirmation.id, client_id)
                else:
                    await svc.confirm_by_professional(db, confirmation.id, pro_user_id)

        await asyncio.gather(confirm("client"), confirm("professional"))

        rows = await _rows(
            "SELECT resolution FROM appointment_confirmations WHERE id = :id",
            id=confirmation.id,
        )
        assert rows[0].resolution == "both_confirmed"
        earnings = await _rows(
            "SELECT id FROM earnings WHERE appointment_id = :id", id=appointment_id
        )
        assert len(earnings) == 1


class TestSettlementCreation:
    async def test_rerun_creates_nothing(self) -> None:
        client_id, _, professional_id = await _parties()
        cycle_id, start = await insert_cycle(status="processing")
        await insert_earning(client_id, professional_id, cycle_id, start + timedelta(days=1))
        payouts = PayoutService(gateway=_gateway())
        fees = FeeChargeService(gateway=_gateway())

        async with async_session_factory() as db:
            assert await payouts.create_payouts_for_cycle(db, cycle_id) == 1
            assert await payouts.create_payouts_for_cycle(db, cycle_id) == 0
            assert await fees.create_fee_charges_for_cycle(db, cycle_id) == 1
            assert await fees.create_fee_charges_for_cycle(db, cycle_id) == 0

        assert len(await _payouts(cycle_id)) == 1
        assert len(await _fee_charges(cycle_id)) == 1
        unlinked = await _rows(
            """
            SELECT id FROM earnings
            WHERE cycle_id = :cycle_id AND (payout_id IS NULL OR fee_charge_id IS NULL)
            """,
            cycle_id=cycle_id,
        )
        assert unlinked == []

    async def test_rollover_pays_net_and_charges_fee(self) -> None:
        # Gross $150 at 20%: one payout of $120 and one fee charge of $30
        client_id, _, professional_id = await _parties()
        await make_payable(professional_id)
        cycle_id, start = await insert_cycle(status="active")
        await insert_earning(client_id, professional_id, cycle_id, start + timedelta(days=2))
        gateway = _gateway()

        async with async_session_factory() as db:
            report = await PayoutService(gateway=gateway).process_cycle(db, cycle_id)

        assert report.completed_cycle_ids == [cycle_id]
        payouts = await _payouts(cycle_id)
        assert [(p.amount_cents, p.gross_cents, p.fee_cents) for p in payouts] == [
            (12000, 15000, 3000)
        ]
        assert payouts[0].status == "completed"
        assert payouts[0].paid_cents == 12000
        fee_charges = await _fee_charges(cycle_id)
        assert [(f.amount_cents, f.status) for f in fee_charges] == [(3000, "completed")]
        cycle = await _rows("SELECT status FROM payout_cycles WHERE id = :id", id=cycle_id)
        assert cycle[0].status == "completed"

    async def test_earning_after_payment_gets_top_up(self) -> None:
        # A dispute resolved after the cycle was paid: $100 more, $20 more fee
        client_id, _, professional_id = await _parties()
        await make_payable(professional_id)
        cycle_id, start = await insert_cycle(status="active")
        await insert_earning(client_id, professional_id, cycle_id, start + timedelta(days=1))
        async with async_session_factory() as db:
            await PayoutService(gateway=_gateway()).process_cycle(db, cycle_id)

        await insert_earning(
            client_id, professional_id, cycle_id, start + timedelta(days=3), gross_cents=10000
        )
        async with async_session_factory() as db:
            pending = await PayoutRepository().list_completed_cycles_with_unpaid_earnings(db)
            assert cycle_id in pending
            report = await PayoutService(gateway=_gateway()).settle_late_earnings(db, cycle_id)
            again = await PayoutService(gateway=_gateway()).settle_late_earnings(db, cycle_id)

        assert report.payouts_created == 1
        assert report.fee_charges_created == 1
        assert again.payouts_created == 0
        payouts = await _payouts(cycle_id)
        assert [(p.sequence_no, p.amount_cents, p.status) for p in payouts] == [
            (1, 12000, "completed"),
            (2, 8000, "completed"),
        ]
        fee_charges = await _fee_charges(cycle_id)
        assert [(f.sequence_no, f.amount_cents) for f in fee_charges] == [(1, 3000), (2, 2000)]


class TestPartialPayoutStore:
    async def test_retry_moves_only_the_remainder(self) -> None:
        client_id, _, professional_id = await _parties()
        await make_payable(professional_id)
        cycle_id, start = await insert_cycle(status="processing")
        await insert_earning(client_id, professional_id, cycle_id, start + timedelta(days=1))
        gateway = _gateway()
        gateway.payout.return_value = GatewayResult(GatewayStatus.PARTIAL, "po_part", 6000)
        svc = PayoutService(gateway=gateway, max_attempts=3)

        async with async_session_factory() as db:
            await svc.create_payouts_for_cycle(db, cycle_id)
            await svc.process_payouts_for_cycle(db, cycle_id)
            payout = (await _payouts(cycle_id))[0]
            assert (payout.status, payout.paid_cents) == ("failed", 6000)

            gateway.payout.return_value = GatewayResult(GatewayStatus.SUCCEEDED, "po_rest")
            await svc.retry_failed_payouts(db)

        payout = (await _payouts(cycle_id))[0]
        assert (payout.status, payout.paid_cents) == ("completed", 12000)
        prefix = f"payout:{payout.id}:"
        calls = [c.args for c in gateway.payout.await_args_list if c.args[2].startswith(prefix)]
        assert calls[0][0] == 12000
        assert calls[1][0] == 6000
        assert calls[1][2] == f"payout:{payout.id}:2"
