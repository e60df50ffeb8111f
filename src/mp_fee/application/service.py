"""FeeChargeService — collecting the platform's share from professionals.

A fee charge moves money *from* the professional (their on-file card), the
opposite direction of a payout. Lifecycle:

    pending ──claim──▶ processing ──▶ completed
                          │    │
                          │    ├──▶ partially_paid ──retry──▶ processing
                          │    └──▶ failed ─────────retry──▶ processing
                          └── (gateway timeout) stays processing until lookup
    pending / failed / partially_paid ──admin──▶ waived

Declines increment consecutive_failures; at FEE_CHARGE_MAX_FAILURES the
professional's payment method is blocked. A charge attempted with no usable
card fails with code "no_payment_method" and blocks immediately.
"""

import logging
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.mp_common.batch import BatchReport, ItemOutcome
from src.mp_common.datetime_utils import Clock, SystemClock
from src.mp_common.enums import FeeChargeStatus, GatewayStatus
from src.mp_common.errors import (
    CycleStillActiveError,
    FeeChargeNotFoundError,
    FeeChargeNotWaivableError,
    PipelineConfigError,
)
from src.mp_cycle.application.service import CycleService
from src.mp_fee.application.schemas import FeeChargeResponse
from src.mp_fee.domain.models import NO_PAYMENT_METHOD, FeeCharge
from src.mp_fee.domain.repository import (
    FeeChargeRepositoryProtocol,
    PaymentMethodRepositoryProtocol,
)
from src.mp_fee.infrastructure.persistence import FeeChargeRepository, PaymentMethodRepository
from src.mp_payout.domain.gateway import GatewayResult, PaymentGatewayProtocol, fee_charge_key
from src.mp_payout.infrastructure.gateway_client import HttpPaymentGateway

logger = logging.getLogger(__name__)


class FeeChargeService:
    def __init__(
        self,
        repo: FeeChargeRepositoryProtocol | None = None,
        method_repo: PaymentMethodRepositoryProtocol | None = None,
        cycles: CycleService | None = None,
        gateway: PaymentGatewayProtocol | None = None,
        clock: Clock | None = None,
        max_failures: int | None = None,
        retry_interval: timedelta | None = None,
    ) -> None:
        self._repo: FeeChargeRepositoryProtocol = repo or FeeChargeRepository()
        self._methods: PaymentMethodRepositoryProtocol = method_repo or PaymentMethodRepository()
        self._clock: Clock = clock or SystemClock()
        self._cycles = cycles or CycleService(clock=self._clock)
        self._gateway: PaymentGatewayProtocol = gateway or HttpPaymentGateway()
        self._max_failures = (
            max_failures if max_failures is not None else settings.FEE_CHARGE_MAX_FAILURES
        )
        self._retry_interval = (
            retry_interval
            if retry_interval is not None
            else timedelta(hours=settings.FEE_RETRY_INTERVAL_HOURS)
        )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_fee_charges_for_cycle(self, db: AsyncSession, cycle_id: str) -> int:
        """One charge per professional = SUM(platform_fee_cents); zero sums skipped."""
        cycle = await self._cycles.require_cycle(db, cycle_id)
        if cycle.is_active:
            raise CycleStillActiveError(cycle_id)
        try:
            created = await self._repo.create_for_cycle(db, cycle_id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("Fee charges created: cycle=%s count=%d", cycle_id, len(created))
        return len(created)

    # ------------------------------------------------------------------
    # Charging
    # ------------------------------------------------------------------

    async def charge_fee(self, db: AsyncSession, fee_charge_id: str) -> FeeChargeResponse:
        """Attempt one charge now (admin/manual path). Returns the resulting row."""
        charge = await self._repo.get(db, fee_charge_id)
        if charge is None:
            raise FeeChargeNotFoundError(fee_charge_id)
        await self._attempt(db, charge)
        updated = await self._repo.get(db, fee_charge_id)
        return FeeChargeResponse.from_domain(updated or charge)

    async def process_fee_charges_for_cycle(
        self, db: AsyncSession, cycle_id: str
    ) -> BatchReport:
        cycle = await self._cycles.require_cycle(db, cycle_id)
        if cycle.is_active:
            raise CycleStillActiveError(cycle_id)
        pending = await self._repo.list_for_cycle(db, cycle_id, FeeChargeStatus.PENDING.value)
        return await self._run_batch(db, pending, self._attempt)

    async def retry_failed_fee_charges(self, db: AsyncSession) -> BatchReport:
        """failed / partially_paid charges whose next_retry_at has passed."""
        due = await self._repo.list_due_for_retry(db, self._clock.now())
        return await self._run_batch(db, due, self._attempt)

    async def reconcile_processing_fee_charges(self, db: AsyncSession) -> BatchReport:
        """Settle charges left processing by a timeout, using the same idempotency key."""
        processing = await self._repo.list_by_status(db, FeeChargeStatus.PROCESSING.value)
        return await self._run_batch(db, processing, self._reconcile)

    async def _run_batch(self, db: AsyncSession, charges: list[FeeCharge], step) -> BatchReport:
        report = BatchReport()
        for charge in charges:
            try:
                outcome = await step(db, charge)
            except PipelineConfigError:
                raise
            except Exception as exc:
                await db.rollback()
                logger.exception("Fee charge failed unexpectedly: fee_charge=%s", charge.id)
                report.fail(charge.id, exc)
                continue
            if outcome is None:
                report.defer()
            else:
                report.add(outcome)
        return report

    async def _attempt(self, db: AsyncSession, charge: FeeCharge) -> ItemOutcome | None:
        now = self._clock.now()
        method = await self._methods.get(db, charge.professional_id)
        if method is None or not method.is_usable(now):
            return await self._fail_without_method(db, charge)

        try:
            claimed = await self._repo.claim(db, charge.id, now)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        if claimed is None:
            logger.info("Fee charge already claimed: fee_charge=%s", charge.id)
            return None

        key = fee_charge_key(claimed.id, claimed.attempt_count)
        result = await self._gateway.charge(
            claimed.remaining_cents, method.gateway_token or "", key
        )
        return await self._apply_result(db, claimed, result)

    async def _reconcile(self, db: AsyncSession, charge: FeeCharge) -> ItemOutcome | None:
        key = fee_charge_key(charge.id, charge.attempt_count)
        result = await self._gateway.lookup(key)
        if result.status == GatewayStatus.NOT_FOUND:
            # The original request never reached the gateway: re-submit with the same key
            method = await self._methods.get(db, charge.professional_id)
            if method is None or not method.is_usable(self._clock.now()):
                return await self._fail_without_method(db, charge)
            logger.info("Fee charge re-submitted after lookup miss: key=%s", key)
            result = await self._gateway.charge(
                charge.remaining_cents, method.gateway_token or "", key
            )
        return await self._apply_result(db, charge, result)

    async def _apply_result(
        self, db: AsyncSession, charge: FeeCharge, result: GatewayResult
    ) -> ItemOutcome | None:
        now = self._clock.now()
        if result.status in (GatewayStatus.TIMEOUT, GatewayStatus.NOT_FOUND):
            logger.warning(
                "Fee charge outcome indeterminate, left processing: fee_charge=%s attempt=%d",
                charge.id,
                charge.attempt_count,
            )
            return None

        try:
            if result.status == GatewayStatus.SUCCEEDED:
                await self._repo.mark_completed(
                    db, charge.id, result.reference, charge.amount_cents, now
                )
                await self._lift_block_if_settled(db, charge.professional_id)
                outcome = ItemOutcome.success(charge.id)
            elif result.status == GatewayStatus.PARTIAL:
                captured = charge.charged_cents + (result.amount_cents or 0)
                if captured >= charge.amount_cents:
                    await self._repo.mark_completed(
                        db, charge.id, result.reference, charge.amount_cents, now
                    )
                    await self._lift_block_if_settled(db, charge.professional_id)
                    outcome = ItemOutcome.success(charge.id)
                else:
                    await self._repo.mark_partially_paid(
                        db, charge.id, result.reference, captured, now + self._retry_interval
                    )
                    outcome = ItemOutcome.failure(
                        charge.id, f"partially_paid: {captured}/{charge.amount_cents}"
                    )
            else:
                code = result.failure_code or "declined"
                failed = await self._repo.mark_failed(
                    db, charge.id, code, result.failure_message, now + self._retry_interval, now
                )
                if failed is not None and failed.consecutive_failures >= self._max_failures:
                    await self._methods.block(
                        db,
                        charge.professional_id,
                        f"Fee charge declined {failed.consecutive_failures} times in a row",
                        now,
                    )
                    logger.warning(
                        "Professional blocked after %d consecutive fee declines: professional=%s",
                        failed.consecutive_failures,
                        charge.professional_id,
                    )
                outcome = ItemOutcome.failure(charge.id, code)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Fee charge settled: fee_charge=%s status=%s ok=%s",
            charge.id,
            result.status.value,
            outcome.ok,
        )
        return outcome

    async def _fail_without_method(self, db: AsyncSession, charge: FeeCharge) -> ItemOutcome:
        now = self._clock.now()
        try:
            await self._repo.mark_failed(
                db,
                charge.id,
                NO_PAYMENT_METHOD,
                "No usable payment method on file",
                now + self._retry_interval,
                now,
            )
            await self._methods.block(
                db, charge.professional_id, "No usable payment method for platform fees", now
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.warning(
            "Fee charge failed without payment method; professional blocked: "
            "fee_charge=%s professional=%s",
            charge.id,
            charge.professional_id,
        )
        return ItemOutcome.failure(charge.id, NO_PAYMENT_METHOD)

    async def _lift_block_if_settled(self, db: AsyncSession, professional_id: str) -> None:
        """Clear the blocked flag once nothing is owed (caller's transaction)."""
        if await self._repo.get_pending_total(db, professional_id) > 0:
            return
        method = await self._methods.get(db, professional_id)
        if method is not None and method.is_blocked:
            await self._methods.unblock(db, professional_id)
            logger.info("Block lifted, no fees outstanding: professional=%s", professional_id)

    # ------------------------------------------------------------------
    # Admin / reads
    # ------------------------------------------------------------------

    async def waive_fee_charge(
        self, db: AsyncSession, fee_charge_id: str, admin_id: str, reason: str
    ) -> FeeChargeResponse:
        charge = await self._repo.get(db, fee_charge_id)
        if charge is None:
            raise FeeChargeNotFoundError(fee_charge_id)
        if not charge.is_waivable:
            raise FeeChargeNotWaivableError(fee_charge_id, charge.status)
        try:
            waived = await self._repo.waive(db, fee_charge_id, admin_id, reason, self._clock.now())
            if waived is None:
                current = await self._repo.get(db, fee_charge_id)
                raise FeeChargeNotWaivableError(
                    fee_charge_id, current.status if current else "unknown"
                )
            await self._lift_block_if_settled(db, waived.professional_id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info(
            "Fee charge waived: fee_charge=%s admin=%s reason=%s", fee_charge_id, admin_id, reason
        )
        return FeeChargeResponse.from_domain(waived)

    async def get_pending_fee_total(self, db: AsyncSession, professional_id: str) -> int:
        return await self._repo.get_pending_total(db, professional_id)

    async def list_fee_charges(
        self, db: AsyncSession, professional_id: str, limit: int, offset: int
    ) -> list[FeeChargeResponse]:
        charges = await self._repo.list_for_professional(db, professional_id, limit, offset)
        return [FeeChargeResponse.from_domain(c) for c in charges]

    async def count_unsettled_for_cycle(self, db: AsyncSession, cycle_id: str) -> int:
        return await self._repo.count_unsettled_for_cycle(db, cycle_id)
