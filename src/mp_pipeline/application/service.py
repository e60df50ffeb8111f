"""PaymentPipeline — the scheduler's single entry point.

    daily-confirmation  expired cards, complete ended appointments, create
                        confirmations, reminders, retry failed fee charges
    auto-confirm        auto-confirm sweep
    weekly-payout       current cycle, reconcile indeterminate payouts and fee
                        charges, retry payouts failed in earlier runs, drive
                        ready cycles, cycle summaries
    manual              all of the above, in that order

Every stage records its failures in the result and the run continues. Only
PipelineConfigError aborts the run (success=False). When Redis is unreachable
the run goes ahead without the overlap lock and records lock_error; claims
keep an overlapping run from moving the same money twice.
"""

import logging
import time
from collections.abc import Awaitable, Callable

import redis.asyncio as aioredis
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.mp_common.batch import BatchReport
from src.mp_common.datetime_utils import Clock, SystemClock
from src.mp_common.enums import TriggerType
from src.mp_common.errors import PipelineAlreadyRunningError, PipelineConfigError
from src.mp_common.redis_client import get_redis
from src.mp_confirmation.application.service import ConfirmationService
from src.mp_cycle.application.service import CycleService
from src.mp_fee.application.payment_method_service import PaymentMethodService
from src.mp_fee.application.service import FeeChargeService
from src.mp_payout.application.service import PayoutService
from src.mp_pipeline.application.schemas import PipelineResult

logger = logging.getLogger(__name__)


def _lock_key(trigger: TriggerType, request_id: str) -> str:
    return f"pipeline:{trigger.value}:{request_id}"


class PaymentPipeline:
    def __init__(
        self,
        confirmations: ConfirmationService | None = None,
        cycles: CycleService | None = None,
        payouts: PayoutService | None = None,
        fees: FeeChargeService | None = None,
        payment_methods: PaymentMethodService | None = None,
        redis_factory: Callable[[], Awaitable[aioredis.Redis]] | None = None,
        clock: Clock | None = None,
        lock_ttl_seconds: int | None = None,
    ) -> None:
        self._clock: Clock = clock or SystemClock()
        self._cycles = cycles or CycleService(clock=self._clock)
        self._confirmations = confirmations or ConfirmationService(clock=self._clock)
        self._fees = fees or FeeChargeService(cycles=self._cycles, clock=self._clock)
        self._payouts = payouts or PayoutService(
            cycles=self._cycles, fees=self._fees, clock=self._clock
        )
        self._payment_methods = payment_methods or PaymentMethodService(clock=self._clock)
        self._redis_factory = redis_factory or get_redis
        self._lock_ttl = lock_ttl_seconds or settings.PIPELINE_LOCK_TTL_SECONDS

    async def run(
        self, db: AsyncSession, trigger: TriggerType, request_id: str
    ) -> PipelineResult:
        result = PipelineResult(
            trigger_type=trigger.value,
            request_id=request_id,
            timestamp=self._clock.now().isoformat(),
        )
        key = _lock_key(trigger, request_id)
        redis = await self._acquire_lock(key, result)
        start = time.perf_counter()
        logger.info("Pipeline started: trigger=%s request_id=%s", trigger.value, request_id)
        try:
            if trigger in (TriggerType.DAILY_CONFIRMATION, TriggerType.MANUAL):
                await self._daily_confirmation(db, result)
            if trigger in (TriggerType.AUTO_CONFIRM, TriggerType.MANUAL):
                await self._auto_confirm(db, result)
            if trigger in (TriggerType.WEEKLY_PAYOUT, TriggerType.MANUAL):
                await self._weekly_payout(db, result)
        except PipelineConfigError as exc:
            await db.rollback()
            result.success = False
            result.error = exc.message
            logger.error(
                "Pipeline aborted: trigger=%s request_id=%s error=%s",
                trigger.value,
                request_id,
                exc.message,
            )
        finally:
            # A replay after completion must be allowed to run again
            if redis is not None:
                await self._release_lock(redis, key)
        result.duration_ms = int((time.perf_counter() - start) * 1000)

        logger.info(
            "Pipeline finished: trigger=%s request_id=%s success=%s duration=%dms "
            "confirmations=%d auto_confirmed=%d cycles=%d payouts=%d/%d fee_charges=%d/%d",
            trigger.value,
            request_id,
            result.success,
            result.duration_ms,
            result.confirmations_created,
            result.auto_confirmed,
            result.cycles_processed,
            result.payouts_processed,
            result.payouts_failed,
            result.fee_charges_processed,
            result.fee_charges_failed,
        )
        return result

    # ------------------------------------------------------------------
    # Overlap lock
    # ------------------------------------------------------------------

    async def _acquire_lock(self, key: str, result: PipelineResult) -> aioredis.Redis | None:
        """Take the lock; returns None when Redis is down and the run goes unlocked."""
        try:
            redis = await self._redis_factory()
            acquired = await redis.set(key, "1", nx=True, ex=self._lock_ttl)
        except RedisError as exc:
            logger.warning(
                "Pipeline lock unavailable, running without it: key=%s error=%s", key, exc
            )
            result.lock_error = str(exc) or type(exc).__name__
            return None
        if not acquired:
            raise PipelineAlreadyRunningError(result.trigger_type, result.request_id)
        return redis

    async def _release_lock(self, redis: aioredis.Redis, key: str) -> None:
        try:
            await redis.delete(key)
        except RedisError as exc:
            # The TTL clears it
            logger.warning("Pipeline lock release failed: key=%s error=%s", key, exc)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _stage(
        self,
        db: AsyncSession,
        name: str,
        errors: list[str],
        fn: Callable[[], Awaitable[None]],
    ) -> None:
        """Run one stage; anything but a config error lands in `errors`."""
        try:
            await fn()
        except PipelineConfigError:
            raise
        except Exception as exc:
            await db.rollback()
            logger.exception("Pipeline stage failed: stage=%s", name)
            errors.append(f"{name}: {exc}")

    async def _daily_confirmation(self, db: AsyncSession, result: PipelineResult) -> None:
        async def expired_cards() -> None:
            report = await self._payment_methods.invalidate_expired_cards(db)
            result.fee_charge_errors.extend(report.errors)

        async def confirmations() -> None:
            completed, report = await self._confirmations.sweep_completed_appointments(db)
            result.appointments_completed += completed
            result.confirmations_created += report.succeeded
            result.confirmation_errors.extend(report.errors)

        async def reminders() -> None:
            report = await self._confirmations.send_reminders(db)
            result.emails_sent += report.succeeded
            result.email_errors.extend(report.errors)

        async def fee_retries() -> None:
            self._record_fee_charges(result, await self._fees.retry_failed_fee_charges(db))

        await self._stage(db, "expired_cards", result.fee_charge_errors, expired_cards)
        await self._stage(db, "confirmations", result.confirmation_errors, confirmations)
        await self._stage(db, "reminders", result.email_errors, reminders)
        await self._stage(db, "fee_retries", result.fee_charge_errors, fee_retries)

    async def _auto_confirm(self, db: AsyncSession, result: PipelineResult) -> None:
        async def sweep() -> None:
            report = await self._confirmations.run_auto_confirm_sweep(db)
            result.auto_confirmed += report.succeeded
            result.confirmation_errors.extend(report.errors)

        await self._stage(db, "auto_confirm", result.confirmation_errors, sweep)

    async def _weekly_payout(self, db: AsyncSession, result: PipelineResult) -> None:
        completed_cycle_ids: list[str] = []

        async def current_cycle() -> None:
            await self._cycles.get_or_create_current_cycle(db)

        async def reconcile() -> None:
            self._record_payouts(result, await self._payouts.reconcile_processing_payouts(db))
            self._record_fee_charges(
                result, await self._fees.reconcile_processing_fee_charges(db)
            )

        async def cycles() -> None:
            report = await self._payouts.process_all_ready_cycles(db)
            result.cycles_processed += report.cycles_processed
            result.cycles_completed += len(report.completed_cycle_ids)
            result.payout_errors.extend(report.cycle_errors)
            self._record_payouts(result, report.payouts)
            self._record_fee_charges(result, report.fee_charges)
            completed_cycle_ids.extend(report.completed_cycle_ids)

        async def payout_retries() -> None:
            self._record_payouts(result, await self._payouts.retry_failed_payouts(db))

        async def summaries() -> None:
            report = await self._payouts.send_cycle_summaries(db, completed_cycle_ids)
            result.emails_sent += report.succeeded
            result.email_errors.extend(report.errors)

        await self._stage(db, "current_cycle", result.payout_errors, current_cycle)
        await self._stage(db, "reconcile", result.payout_errors, reconcile)
        # Retries first: a payout declined by this run's cycles stage waits for the next run
        await self._stage(db, "payout_retries", result.payout_errors, payout_retries)
        await self._stage(db, "cycles", result.payout_errors, cycles)
        await self._stage(db, "cycle_summaries", result.email_errors, summaries)

    @staticmethod
    def _record_payouts(result: PipelineResult, report: BatchReport) -> None:
        result.payouts_processed += report.succeeded
        result.payouts_failed += report.failed
        result.payouts_deferred += report.deferred
        result.payout_errors.extend(report.errors)

    @staticmethod
    def _record_fee_charges(result: PipelineResult, report: BatchReport) -> None:
        result.fee_charges_processed += report.succeeded
        result.fee_charges_failed += report.failed
        result.fee_charges_deferred += report.deferred
        result.fee_charge_errors.extend(report.errors)
