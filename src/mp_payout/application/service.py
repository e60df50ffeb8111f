"""PayoutService — paying professionals for closed cycles.

    pending ──claim──▶ processing ──▶ completed
                          │    └───▶ failed ──retry (attempt_count < max)──▶ pending
                          └── (gateway timeout) stays processing until lookup

A partial result keeps the moved amount in paid_cents; every gateway call sends
amount - paid_cents, so a retry never pays the same money twice.

A cycle is driven by process_cycle: create payouts and fee charges, process
both, then mark the cycle completed once nothing of it is pending/processing.
Every step re-reads the store, so an interrupted run resumes where it stopped.
Earnings recorded into a cycle after it completed (a dispute resolved past the
cutoff) are settled by top-up payouts and fee charges in a later run.
"""

import logging
from collections.abc import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.mp_booking.domain.repository import BookingRepositoryProtocol
from src.mp_booking.infrastructure.persistence import BookingRepository
from src.mp_common.batch import BatchReport, ItemOutcome
from src.mp_common.cents import cents_to_display
from src.mp_common.datetime_utils import Clock, SystemClock
from src.mp_common.enums import CycleStatus, GatewayStatus, PayoutStatus
from src.mp_common.errors import (
    CycleNotProcessingError,
    CycleStillActiveError,
    PipelineConfigError,
)
from src.mp_cycle.application.service import CycleService
from src.mp_earnings.domain.repository import EarningsRepositoryProtocol
from src.mp_earnings.infrastructure.persistence import EarningsRepository
from src.mp_fee.application.service import FeeChargeService
from src.mp_payout.application.schemas import (
    PayoutResponse,
    PayoutSummaryResponse,
    UpcomingPayoutResponse,
)
from src.mp_payout.domain.gateway import GatewayResult, PaymentGatewayProtocol, payout_key
from src.mp_payout.domain.models import NO_PAYOUT_ACCOUNT, CycleRunReport, Payout
from src.mp_payout.domain.repository import PayoutRepositoryProtocol
from src.mp_payout.infrastructure.gateway_client import HttpPaymentGateway
from src.mp_payout.infrastructure.persistence import PayoutRepository
from src.mp_pipeline.domain.notifier import CYCLE_SUMMARY, NotifierProtocol
from src.mp_pipeline.infrastructure.notifier import LoggingNotifier

logger = logging.getLogger(__name__)

_Step = Callable[[AsyncSession, Payout], Awaitable[ItemOutcome | None]]


class PayoutService:
    def __init__(
        self,
        repo: PayoutRepositoryProtocol | None = None,
        booking_repo: BookingRepositoryProtocol | None = None,
        earnings_repo: EarningsRepositoryProtocol | None = None,
        cycles: CycleService | None = None,
        fees: FeeChargeService | None = None,
        gateway: PaymentGatewayProtocol | None = None,
        notifier: NotifierProtocol | None = None,
        clock: Clock | None = None,
        max_attempts: int | None = None,
    ) -> None:
        self._repo: PayoutRepositoryProtocol = repo or PayoutRepository()
        self._bookings: BookingRepositoryProtocol = booking_repo or BookingRepository()
        self._earnings: EarningsRepositoryProtocol = earnings_repo or EarningsRepository()
        self._clock: Clock = clock or SystemClock()
        self._cycles = cycles or CycleService(clock=self._clock)
        self._gateway: PaymentGatewayProtocol = gateway or HttpPaymentGateway()
        self._fees = fees or FeeChargeService(
            cycles=self._cycles, gateway=self._gateway, clock=self._clock
        )
        self._notifier: NotifierProtocol = notifier or LoggingNotifier()
        self._max_attempts = (
            max_attempts if max_attempts is not None else settings.PAYOUT_MAX_ATTEMPTS
        )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_payouts_for_cycle(self, db: AsyncSession, cycle_id: str) -> int:
        """One payout per professional with earnings in the cycle; re-runs create none."""
        cycle = await self._cycles.require_cycle(db, cycle_id)
        if cycle.status != CycleStatus.PROCESSING:
            raise CycleNotProcessingError(cycle_id, cycle.status)
        try:
            created = await self._repo.create_for_cycle(db, cycle_id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("Payouts created: cycle=%s count=%d", cycle_id, len(created))
        return len(created)

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process_payouts_for_cycle(self, db: AsyncSession, cycle_id: str) -> BatchReport:
        cycle = await self._cycles.require_cycle(db, cycle_id)
        if cycle.is_active:
            raise CycleStillActiveError(cycle_id)
        pending = await self._repo.list_for_cycle(db, cycle_id, PayoutStatus.PENDING.value)
        return await self._run_batch(db, pending, self._attempt)

    async def reconcile_processing_payouts(self, db: AsyncSession) -> BatchReport:
        """Settle payouts left processing by a timeout, using the same idempotency key."""
        processing = await self._repo.list_by_status(db, PayoutStatus.PROCESSING.value)
        return await self._run_batch(db, processing, self._reconcile)

    async def retry_failed_payouts(self, db: AsyncSession) -> BatchReport:
        """Re-queue failed payouts under the attempt bound and process every pending one.

        Payouts at the bound stay failed for admin remediation.
        """
        try:
            requeued = await self._repo.requeue_failed(db, self._max_attempts)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        if requeued:
            logger.info("Failed payouts re-queued: count=%d", len(requeued))
        # Also picks up rows re-queued by an earlier run that stopped before processing
        pending = await self._repo.list_by_status(db, PayoutStatus.PENDING.value)
        return await self._run_batch(db, pending, self._attempt)

    async def _run_batch(self, db: AsyncSession, payouts: list[Payout], step: _Step) -> BatchReport:
        report = BatchReport()
        for payout in payouts:
            try:
                outcome = await step(db, payout)
            except PipelineConfigError:
                raise
            except Exception as exc:
                await db.rollback()
                logger.exception("Payout failed unexpectedly: payout=%s", payout.id)
                report.fail(payout.id, exc)
                continue
            if outcome is None:
                report.defer()
            else:
                report.add(outcome)
        return report

    async def _destination(self, db: AsyncSession, professional_id: str) -> str | None:
        professional = await self._bookings.get_professional(db, professional_id)
        return professional.payout_account_ref if professional is not None else None

    async def _attempt(self, db: AsyncSession, payout: Payout) -> ItemOutcome | None:
        now = self._clock.now()
        destination = await self._destination(db, payout.professional_id)
        try:
            claimed = await self._repo.claim(db, payout.id, now)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        if claimed is None:
            logger.info("Payout already claimed: payout=%s", payout.id)
            return None

        if claimed.remaining_cents <= 0:
            # Nothing to move: fees consumed the whole gross, or earlier partials covered it
            return await self._apply_result(
                db, claimed, GatewayResult(status=GatewayStatus.SUCCEEDED)
            )
        if not destination:
            return await self._apply_result(
                db,
                claimed,
                GatewayResult(
                    status=GatewayStatus.FAILED,
                    failure_code=NO_PAYOUT_ACCOUNT,
                    failure_message="No payout account on file",
                ),
            )

        key = payout_key(claimed.id, claimed.attempt_count)
        result = await self._gateway.payout(claimed.remaining_cents, destination, key)
        return await self._apply_result(db, claimed, result)

    async def _reconcile(self, db: AsyncSession, payout: Payout) -> ItemOutcome | None:
        key = payout_key(payout.id, payout.attempt_count)
        result = await self._gateway.lookup(key)
        if result.status == GatewayStatus.NOT_FOUND:
            # The original request never reached the gateway: re-submit with the same key
            destination = await self._destination(db, payout.professional_id)
            if not destination:
                result = GatewayResult(
                    status=GatewayStatus.FAILED,
                    failure_code=NO_PAYOUT_ACCOUNT,
                    failure_message="No payout account on file",
                )
            else:
                logger.info("Payout re-submitted after lookup miss: key=%s", key)
                result = await self._gateway.payout(payout.remaining_cents, destination, key)
        return await self._apply_result(db, payout, result)

    async def _apply_result(
        self, db: AsyncSession, payout: Payout, result: GatewayResult
    ) -> ItemOutcome | None:
        if result.status in (GatewayStatus.TIMEOUT, GatewayStatus.NOT_FOUND):
            logger.warning(
                "Payout outcome indeterminate, left processing: payout=%s attempt=%d",
                payout.id,
                payout.attempt_count,
            )
            return None

        try:
            paid = payout.paid_cents
            if result.status == GatewayStatus.PARTIAL:
                paid += result.amount_cents or 0
            if result.status == GatewayStatus.SUCCEEDED or (
                result.status == GatewayStatus.PARTIAL and paid >= payout.amount_cents
            ):
                await self._repo.mark_completed(db, payout.id, result.reference, self._clock.now())
                outcome = ItemOutcome.success(payout.id)
            elif result.status == GatewayStatus.PARTIAL:
                # Failed with the moved amount kept; the retry sends only the remainder
                reason = f"partial: {paid}/{payout.amount_cents}"
                await self._repo.mark_partially_paid(db, payout.id, paid, reason)
                outcome = ItemOutcome.failure(payout.id, reason)
            else:
                reason = result.failure_code or "declined"
                if result.failure_message:
                    reason = f"{reason}: {result.failure_message}"
                await self._repo.mark_failed(db, payout.id, reason)
                outcome = ItemOutcome.failure(payout.id, reason)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Payout settled: payout=%s status=%s amount=%s",
            payout.id,
            result.status.value,
            cents_to_display(payout.amount_cents),
        )
        return outcome

    # ------------------------------------------------------------------
    # Cycle orchestration
    # ------------------------------------------------------------------

    async def process_cycle(self, db: AsyncSession, cycle_id: str) -> CycleRunReport:
        """Drive one closed cycle as far as it can go in this run."""
        report = CycleRunReport()
        cycle = await self._cycles.require_cycle(db, cycle_id)
        if cycle.status == CycleStatus.COMPLETED:
            logger.info("Cycle already completed: cycle=%s", cycle_id)
            return report
        if cycle.status == CycleStatus.ACTIVE:
            if not await self._cycles.rollover_cycle(db, cycle_id):
                raise CycleStillActiveError(cycle_id)
        elif cycle.status == CycleStatus.FAILED:
            await self._cycles.resume_cycle(db, cycle_id)

        report.cycles_processed = 1
        try:
            report.payouts_created = await self.create_payouts_for_cycle(db, cycle_id)
            report.fee_charges_created = await self._fees.create_fee_charges_for_cycle(
                db, cycle_id
            )
            report.payouts = await self.process_payouts_for_cycle(db, cycle_id)
            report.fee_charges = await self._fees.process_fee_charges_for_cycle(db, cycle_id)
        except PipelineConfigError:
            raise
        except Exception as exc:
            await db.rollback()
            logger.exception("Cycle run failed: cycle=%s", cycle_id)
            await self._cycles.mark_failed(db, cycle_id, str(exc) or type(exc).__name__)
            report.cycle_errors.append(f"{cycle_id}: {exc}")
            return report

        unsettled = await self._repo.count_unsettled_for_cycle(db, cycle_id)
        unsettled += await self._fees.count_unsettled_for_cycle(db, cycle_id)
        if unsettled == 0:
            if await self._cycles.mark_completed(db, cycle_id):
                report.completed_cycle_ids.append(cycle_id)
        else:
            logger.info(
                "Cycle left processing: cycle=%s unsettled=%d", cycle_id, unsettled
            )
        return report

    async def settle_late_earnings(self, db: AsyncSession, cycle_id: str) -> CycleRunReport:
        """Top-up payouts and fee charges for a completed cycle's unpaid earnings.

        The cycle stays completed; the top-ups follow the normal retry and
        reconcile paths like any other payout or fee charge.
        """
        report = CycleRunReport()
        try:
            created = await self._repo.create_for_cycle(db, cycle_id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        report.payouts_created = len(created)
        report.fee_charges_created = await self._fees.create_fee_charges_for_cycle(db, cycle_id)
        report.payouts = await self._run_batch(db, created, self._attempt)
        report.fee_charges = await self._fees.process_fee_charges_for_cycle(db, cycle_id)
        logger.info(
            "Late earnings settled: cycle=%s payouts=%d fee_charges=%d",
            cycle_id,
            report.payouts_created,
            report.fee_charges_created,
        )
        return report

    async def process_all_ready_cycles(self, db: AsyncSession) -> CycleRunReport:
        """Roll over every cycle past its cutoff, drive every unfinished cycle,
        then top up completed cycles that received earnings after payment."""
        report = CycleRunReport()
        for cycle in await self._cycles.list_ready_for_rollover(db):
            await self._cycles.rollover_cycle(db, cycle.id)
        for cycle in await self._cycles.list_resumable(db):
            report.merge(await self.process_cycle(db, cycle.id))
        for cycle_id in await self._repo.list_completed_cycles_with_unpaid_earnings(db):
            try:
                report.merge(await self.settle_late_earnings(db, cycle_id))
            except PipelineConfigError:
                raise
            except Exception as exc:
                await db.rollback()
                logger.exception("Late earnings settlement failed: cycle=%s", cycle_id)
                report.cycle_errors.append(f"{cycle_id}: {exc}")
        logger.info(
            "Ready cycles processed: cycles=%d completed=%d payouts_ok=%d payouts_failed=%d",
            report.cycles_processed,
            len(report.completed_cycle_ids),
            report.payouts.succeeded,
            report.payouts.failed,
        )
        return report

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    async def send_cycle_summaries(
        self, db: AsyncSession, cycle_ids: list[str]
    ) -> BatchReport:
        """One summary per professional paid in each just-completed cycle."""
        report = BatchReport()
        for cycle_id in cycle_ids:
            for payout in await self._repo.list_by_cycle(db, cycle_id):
                key = f"{cycle_id}:{payout.professional_id}"
                try:
                    professional = await self._bookings.get_professional(
                        db, payout.professional_id
                    )
                    if professional is None:
                        report.fail(key, "professional not found")
                        continue
                    await self._notifier.send(
                        professional.user_id,
                        CYCLE_SUMMARY,
                        {
                            "cycle_id": cycle_id,
                            "gross": cents_to_display(payout.gross_cents),
                            "fee": cents_to_display(payout.fee_cents),
                            "net": cents_to_display(payout.amount_cents),
                            "sessions": payout.earnings_count,
                            "payout_status": payout.status,
                        },
                    )
                except Exception as exc:
                    logger.warning("Cycle summary failed: %s error=%s", key, exc)
                    report.fail(key, exc)
                    continue
                report.ok(key)
        return report

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_payouts_for_professional(
        self, db: AsyncSession, professional_id: str, limit: int, offset: int
    ) -> list[PayoutResponse]:
        payouts = await self._repo.list_for_professional(db, professional_id, limit, offset)
        return [PayoutResponse.from_domain(p) for p in payouts]

    async def get_upcoming_payout_estimate(
        self, db: AsyncSession, professional_id: str
    ) -> UpcomingPayoutResponse:
        cycle = await self._cycles.get_or_create_current_cycle(db)
        totals = await self._earnings.summarize(db, professional_id, cycle.id)
        return UpcomingPayoutResponse(
            professional_id=professional_id,
            cycle_id=cycle.id,
            estimated_amount_cents=totals.net_cents,
            estimated_amount_display=cents_to_display(totals.net_cents),
            session_count=totals.session_count,
            estimated_date=cycle.cutoff_at.isoformat(),
        )

    async def get_payout_summary(
        self, db: AsyncSession, cycle_id: str
    ) -> PayoutSummaryResponse:
        await self._cycles.require_cycle(db, cycle_id)
        summary = await self._repo.get_summary(db, cycle_id)
        return PayoutSummaryResponse.from_domain(summary)
