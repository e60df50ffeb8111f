"""CycleService — billing-cycle boundaries and lifecycle.

The boundary rule lives in a CyclePolicy (domain/periods.py); this service
turns windows into rows and moves rows through

    active ──(cutoff passed)──▶ processing ──▶ completed
                                     │  ▲
                                     ▼  │ (resume)
                                   failed

Rollover is a conditional UPDATE, so overlapping scheduler runs see a no-op.
"""

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.mp_common.datetime_utils import Clock, SystemClock, ceil_days, ceil_hours, ensure_utc
from src.mp_common.enums import CycleStatus
from src.mp_common.errors import CycleNotFoundError, InternalError
from src.mp_cycle.application.schemas import (
    CurrentCycleInfoResponse,
    CycleResponse,
    CycleStatsResponse,
    CycleWithStatsResponse,
)
from src.mp_cycle.domain.models import Cycle
from src.mp_cycle.domain.periods import CyclePolicy, build_cycle_policy
from src.mp_cycle.domain.repository import CycleRepositoryProtocol
from src.mp_cycle.infrastructure.persistence import CycleRepository

logger = logging.getLogger(__name__)


def policy_from_settings() -> CyclePolicy:
    return build_cycle_policy(
        kind=settings.CYCLE_KIND,
        period_days=settings.CYCLE_PERIOD_DAYS,
        anchor=settings.CYCLE_ANCHOR,
        grace_hours=settings.CYCLE_CUTOFF_GRACE_HOURS,
        auto_confirm_hours=settings.AUTO_CONFIRM_HOURS,
    )


class CycleService:
    def __init__(
        self,
        repo: CycleRepositoryProtocol | None = None,
        policy: CyclePolicy | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._repo: CycleRepositoryProtocol = repo or CycleRepository()
        self._policy = policy
        self._clock: Clock = clock or SystemClock()

    @property
    def policy(self) -> CyclePolicy:
        # Built lazily so a bad CYCLE_* setting surfaces as PipelineConfigError
        # on first use rather than at import time
        if self._policy is None:
            self._policy = policy_from_settings()
        return self._policy

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def ensure_cycle_for(self, db: AsyncSession, t: datetime) -> Cycle:
        """Get or create the cycle containing t inside the caller's transaction."""
        window = self.policy.window_for(t)
        await self._repo.insert_if_absent(db, window)
        cycle = await self._repo.get_by_window(db, window.start, window.end)
        if cycle is None:
            raise InternalError(
                f"Cycle row missing after insert for window {window.start.isoformat()}"
            )
        return cycle

    async def get_or_create_cycle_for(self, db: AsyncSession, t: datetime) -> Cycle:
        try:
            cycle = await self.ensure_cycle_for(db, t)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return cycle

    async def get_or_create_current_cycle(self, db: AsyncSession) -> Cycle:
        return await self.get_or_create_cycle_for(db, self._clock.now())

    async def ensure_cycles_exist(
        self, db: AsyncSession, start: datetime, end: datetime
    ) -> list[Cycle]:
        """Backfill one row per window overlapping [start, end)."""
        cycles: list[Cycle] = []
        try:
            for window in self.policy.windows_between(ensure_utc(start), ensure_utc(end)):
                await self._repo.insert_if_absent(db, window)
                cycle = await self._repo.get_by_window(db, window.start, window.end)
                if cycle is not None:
                    cycles.append(cycle)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info(
            "Ensured %d cycles between %s and %s",
            len(cycles),
            start.isoformat(),
            end.isoformat(),
        )
        return cycles

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def require_cycle(self, db: AsyncSession, cycle_id: str) -> Cycle:
        cycle = await self._repo.get_by_id(db, cycle_id)
        if cycle is None:
            raise CycleNotFoundError(cycle_id)
        return cycle

    async def get_current_cycle_info(self, db: AsyncSession) -> CurrentCycleInfoResponse:
        now = self._clock.now()
        cycle = await self.get_or_create_cycle_for(db, now)
        previous_window = self.policy.previous_window(self.policy.window_for(now))
        previous = await self._repo.get_by_window(
            db, previous_window.start, previous_window.end
        )
        return CurrentCycleInfoResponse(
            cycle=CycleResponse.from_domain(cycle),
            days_remaining=ceil_days(cycle.end_date - now),
            hours_until_cutoff=ceil_hours(cycle.cutoff_at - now),
            previous_cycle_processing=(
                previous is not None and previous.status == CycleStatus.PROCESSING
            ),
        )

    async def list_ready_for_rollover(self, db: AsyncSession) -> list[Cycle]:
        return await self._repo.list_ready_for_rollover(db, self._clock.now())

    async def list_resumable(self, db: AsyncSession) -> list[Cycle]:
        """Cycles whose money movement started but has not finished."""
        return await self._repo.list_by_statuses(
            db, [CycleStatus.PROCESSING.value, CycleStatus.FAILED.value]
        )

    async def get_cycle_with_stats(
        self, db: AsyncSession, cycle_id: str
    ) -> CycleWithStatsResponse:
        cycle = await self.require_cycle(db, cycle_id)
        stats = await self._repo.get_stats(db, cycle.id)
        return CycleWithStatsResponse(
            cycle=CycleResponse.from_domain(cycle),
            stats=CycleStatsResponse.from_domain(stats),
        )

    async def list_cycles_with_stats(
        self, db: AsyncSession, status: str | None, limit: int, offset: int
    ) -> list[CycleWithStatsResponse]:
        cycles = await self._repo.list_cycles(db, status, limit, offset)
        items = []
        for cycle in cycles:
            stats = await self._repo.get_stats(db, cycle.id)
            items.append(
                CycleWithStatsResponse(
                    cycle=CycleResponse.from_domain(cycle),
                    stats=CycleStatsResponse.from_domain(stats),
                )
            )
        return items

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def rollover_cycle(self, db: AsyncSession, cycle_id: str) -> bool:
        """active → processing once the cutoff has passed.

        Returns False (no-op) for any other status or when the cutoff is still
        ahead; overlapping scheduler runs rely on this.
        """
        cycle = await self.require_cycle(db, cycle_id)
        if cycle.status != CycleStatus.ACTIVE:
            logger.info("Rollover skipped: cycle=%s status=%s", cycle_id, cycle.status)
            return False
        now = self._clock.now()
        try:
            started = await self._repo.start_processing(db, cycle_id, now)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        if started is None:
            logger.info("Rollover skipped: cycle=%s cutoff not passed or already claimed", cycle_id)
            return False
        logger.info(
            "Cycle rolled over: cycle=%s window=%s..%s",
            cycle_id,
            started.start_date.isoformat(),
            started.end_date.isoformat(),
        )
        return True

    async def resume_cycle(self, db: AsyncSession, cycle_id: str) -> bool:
        """failed → processing so a new run can finish the cycle."""
        try:
            resumed = await self._repo.resume_processing(db, cycle_id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        if resumed is not None:
            logger.info("Cycle resumed: cycle=%s", cycle_id)
        return resumed is not None

    async def mark_completed(self, db: AsyncSession, cycle_id: str) -> bool:
        try:
            cycle = await self._repo.mark_completed(db, cycle_id, self._clock.now())
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        if cycle is not None:
            logger.info("Cycle completed: cycle=%s", cycle_id)
        return cycle is not None

    async def mark_failed(self, db: AsyncSession, cycle_id: str, reason: str) -> bool:
        try:
            cycle = await self._repo.mark_failed(db, cycle_id, reason)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        if cycle is not None:
            logger.warning("Cycle failed: cycle=%s reason=%s", cycle_id, reason)
        return cycle is not None
