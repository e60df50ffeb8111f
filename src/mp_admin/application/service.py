"""Admin application service — remediation and manual runs over the payment engine.

Thin orchestration: each call delegates to the owning context's service, which
owns its transaction.
"""

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_common.datetime_utils import Clock, SystemClock
from src.mp_confirmation.application.schemas import ConfirmationResponse
from src.mp_confirmation.application.service import ConfirmationService
from src.mp_cycle.application.schemas import CycleResponse, CycleWithStatsResponse
from src.mp_cycle.application.service import CycleService
from src.mp_earnings.application.schemas import PlatformCutResponse
from src.mp_earnings.application.service import EarningsService
from src.mp_fee.application.payment_method_service import PaymentMethodService
from src.mp_fee.application.schemas import (
    BlockedProfessionalItem,
    FeeChargeResponse,
    PaymentMethodStatusResponse,
)
from src.mp_fee.application.service import FeeChargeService
from src.mp_payout.application.schemas import CycleRunResponse, PayoutSummaryResponse
from src.mp_payout.application.service import PayoutService
from src.mp_payout.domain.models import CycleRunReport

logger = logging.getLogger(__name__)


def _run_response(report: CycleRunReport) -> CycleRunResponse:
    return CycleRunResponse(
        cycles_processed=report.cycles_processed,
        cycles_completed=len(report.completed_cycle_ids),
        payouts_created=report.payouts_created,
        fee_charges_created=report.fee_charges_created,
        payouts_processed=report.payouts.succeeded,
        payouts_failed=report.payouts.failed,
        fee_charges_processed=report.fee_charges.succeeded,
        fee_charges_failed=report.fee_charges.failed,
        deferred=report.payouts.deferred + report.fee_charges.deferred,
        errors=report.cycle_errors + report.payouts.errors + report.fee_charges.errors,
    )


class AdminPaymentsService:
    def __init__(
        self,
        cycles: CycleService | None = None,
        confirmations: ConfirmationService | None = None,
        earnings: EarningsService | None = None,
        payouts: PayoutService | None = None,
        fees: FeeChargeService | None = None,
        payment_methods: PaymentMethodService | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._clock: Clock = clock or SystemClock()
        self._cycles = cycles or CycleService(clock=self._clock)
        self._confirmations = confirmations or ConfirmationService(clock=self._clock)
        self._earnings = earnings or EarningsService(cycles=self._cycles, clock=self._clock)
        self._fees = fees or FeeChargeService(cycles=self._cycles, clock=self._clock)
        self._payouts = payouts or PayoutService(
            cycles=self._cycles, fees=self._fees, clock=self._clock
        )
        self._payment_methods = payment_methods or PaymentMethodService(clock=self._clock)

    # --- cycles ---

    async def list_cycles(
        self, db: AsyncSession, status: str | None, limit: int, offset: int
    ) -> list[CycleWithStatsResponse]:
        return await self._cycles.list_cycles_with_stats(db, status, limit, offset)

    async def get_cycle(self, db: AsyncSession, cycle_id: str) -> CycleWithStatsResponse:
        return await self._cycles.get_cycle_with_stats(db, cycle_id)

    async def get_payout_summary(
        self, db: AsyncSession, cycle_id: str
    ) -> PayoutSummaryResponse:
        return await self._payouts.get_payout_summary(db, cycle_id)

    async def ensure_cycles(
        self, db: AsyncSession, start: datetime, end: datetime
    ) -> list[CycleResponse]:
        cycles = await self._cycles.ensure_cycles_exist(db, start, end)
        return [CycleResponse.from_domain(c) for c in cycles]

    # --- disputes ---

    async def list_disputes(
        self, db: AsyncSession, limit: int, offset: int
    ) -> list[ConfirmationResponse]:
        return await self._confirmations.list_disputed(db, limit, offset)

    async def resolve_dispute(
        self,
        db: AsyncSession,
        confirmation_id: str,
        resolution: str,
        notes: str | None,
        admin_id: str,
    ) -> ConfirmationResponse:
        return await self._confirmations.resolve_dispute(
            db, confirmation_id, resolution, notes, admin_id
        )

    # --- blocks and fees ---

    async def list_blocked(self, db: AsyncSession) -> list[BlockedProfessionalItem]:
        return await self._payment_methods.list_blocked_professionals(db)

    async def unblock(
        self, db: AsyncSession, professional_id: str, admin_id: str
    ) -> PaymentMethodStatusResponse:
        return await self._payment_methods.unblock(db, professional_id, admin_id)

    async def waive_fee_charge(
        self, db: AsyncSession, fee_charge_id: str, admin_id: str, reason: str
    ) -> FeeChargeResponse:
        return await self._fees.waive_fee_charge(db, fee_charge_id, admin_id, reason)

    async def charge_fee(self, db: AsyncSession, fee_charge_id: str) -> FeeChargeResponse:
        return await self._fees.charge_fee(db, fee_charge_id)

    # --- platform cut ---

    async def get_platform_cut(self, db: AsyncSession) -> PlatformCutResponse:
        return PlatformCutResponse.from_bps(await self._earnings.get_platform_cut(db))

    async def set_platform_cut(
        self, db: AsyncSession, cut_bps: int, admin_id: str
    ) -> PlatformCutResponse:
        return await self._earnings.set_platform_cut(db, cut_bps, admin_id)

    # --- manual runs ---

    async def process_all(self, db: AsyncSession, admin_id: str) -> CycleRunResponse:
        logger.info("Manual process_all: admin=%s", admin_id)
        return _run_response(await self._payouts.process_all_ready_cycles(db))

    async def process_cycle(
        self, db: AsyncSession, cycle_id: str, admin_id: str
    ) -> CycleRunResponse:
        logger.info("Manual process_cycle: cycle=%s admin=%s", cycle_id, admin_id)
        return _run_response(await self._payouts.process_cycle(db, cycle_id))

    async def create_payouts(
        self, db: AsyncSession, cycle_id: str, admin_id: str
    ) -> CycleRunResponse:
        """Create payouts and their paired fee charges without moving money."""
        logger.info("Manual create_payouts: cycle=%s admin=%s", cycle_id, admin_id)
        payouts = await self._payouts.create_payouts_for_cycle(db, cycle_id)
        fee_charges = await self._fees.create_fee_charges_for_cycle(db, cycle_id)
        return CycleRunResponse(payouts_created=payouts, fee_charges_created=fee_charges)
