"""EarningsService — turning resolved confirmations into immutable earnings.

gross = adjusted rate if set, else the agreed rate
cut   = the professional's override if set, else the persisted platform cut
        (PLATFORM_CUT_BPS when nothing is persisted), read at this moment
fee   = round_half_up(gross * cut / 10000)

The cut is stored on the Earning; later changes never touch it. The earning
belongs to the cycle containing the appointment's *end time*, not the
confirmation time.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.mp_booking.domain.repository import BookingRepositoryProtocol
from src.mp_booking.infrastructure.persistence import BookingRepository
from src.mp_common.cents import calculate_fee, validate_bps
from src.mp_common.datetime_utils import Clock, SystemClock
from src.mp_common.errors import AppointmentNotFoundError, InternalError
from src.mp_confirmation.domain.models import Confirmation
from src.mp_cycle.application.service import CycleService
from src.mp_earnings.application.schemas import (
    CycleEarningsItem,
    EarningItem,
    EarningsListResponse,
    EarningsSummaryResponse,
    PlatformCutResponse,
    cursor_decode,
    cursor_encode,
)
from src.mp_earnings.domain.models import Earning
from src.mp_earnings.domain.repository import EarningsRepositoryProtocol
from src.mp_earnings.infrastructure.persistence import EarningsRepository

logger = logging.getLogger(__name__)


class EarningsService:
    def __init__(
        self,
        repo: EarningsRepositoryProtocol | None = None,
        booking_repo: BookingRepositoryProtocol | None = None,
        cycles: CycleService | None = None,
        clock: Clock | None = None,
        default_cut_bps: int | None = None,
    ) -> None:
        self._repo: EarningsRepositoryProtocol = repo or EarningsRepository()
        self._bookings: BookingRepositoryProtocol = booking_repo or BookingRepository()
        self._clock: Clock = clock or SystemClock()
        self._cycles = cycles or CycleService(clock=self._clock)
        self._default_cut_bps = (
            default_cut_bps if default_cut_bps is not None else settings.PLATFORM_CUT_BPS
        )

    async def record_earning(self, db: AsyncSession, confirmation: Confirmation) -> Earning:
        """Create the earning for a resolved confirmation (caller's transaction).

        Idempotent per appointment: a second call returns the existing row.
        """
        existing = await self._repo.get_by_appointment(db, confirmation.appointment_id)
        if existing is not None:
            logger.info("Earning idempotency hit: appointment=%s", confirmation.appointment_id)
            return existing

        appointment = await self._bookings.get_appointment(db, confirmation.appointment_id)
        if appointment is None:
            raise AppointmentNotFoundError(confirmation.appointment_id)
        professional = await self._bookings.get_professional(db, appointment.professional_id)
        if professional is not None and professional.cut_bps is not None:
            cut_bps = professional.cut_bps
        else:
            cut_bps = await self.get_platform_cut(db)

        gross = appointment.gross_cents
        fee = calculate_fee(gross, cut_bps)
        cycle = await self._cycles.ensure_cycle_for(db, appointment.end_time)
        if not cycle.is_active:
            # Stays unlinked until the next payout run settles it with a top-up
            logger.warning(
                "Late earning, top-up pending: appointment=%s cycle=%s status=%s",
                appointment.id,
                cycle.id,
                cycle.status,
            )

        earning = await self._repo.insert_if_absent(
            db,
            professional_id=appointment.professional_id,
            appointment_id=appointment.id,
            cycle_id=cycle.id,
            gross_cents=gross,
            platform_fee_bps=cut_bps,
            platform_fee_cents=fee,
            session_start=appointment.start_time,
            session_end=appointment.end_time,
        )
        if earning is None:
            # Lost a race with a concurrent resolver; the other row wins
            earning = await self._repo.get_by_appointment(db, appointment.id)
            if earning is None:
                raise InternalError(f"Earning missing after conflict: {appointment.id}")
            return earning

        logger.info(
            "Earning recorded: appointment=%s professional=%s gross=%d fee=%d bps=%d cycle=%s",
            appointment.id,
            appointment.professional_id,
            gross,
            fee,
            cut_bps,
            cycle.id,
        )
        return earning

    # ------------------------------------------------------------------
    # Platform cut
    # ------------------------------------------------------------------

    async def get_platform_cut(self, db: AsyncSession) -> int:
        bps = await self._repo.get_platform_cut_bps(db)
        return bps if bps is not None else self._default_cut_bps

    async def set_platform_cut(
        self, db: AsyncSession, cut_bps: int, admin_id: str
    ) -> PlatformCutResponse:
        """Affects earnings recorded from now on; history is untouched."""
        validate_bps(cut_bps)
        try:
            await self._repo.set_platform_cut_bps(db, cut_bps, admin_id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("Platform cut set: bps=%d admin=%s", cut_bps, admin_id)
        return PlatformCutResponse.from_bps(cut_bps)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_current_cycle_earnings_summary(
        self, db: AsyncSession, professional_id: str
    ) -> EarningsSummaryResponse:
        cycle = await self._cycles.get_or_create_current_cycle(db)
        totals = await self._repo.summarize(db, professional_id, cycle.id)
        pending = await self._repo.pending_confirmations(db, professional_id)
        return EarningsSummaryResponse.from_totals(professional_id, cycle.id, totals, pending)

    async def get_lifetime_earnings_summary(
        self, db: AsyncSession, professional_id: str
    ) -> EarningsSummaryResponse:
        totals = await self._repo.summarize(db, professional_id, None)
        pending = await self._repo.pending_confirmations(db, professional_id)
        return EarningsSummaryResponse.from_totals(professional_id, None, totals, pending)

    async def list_earnings(
        self,
        db: AsyncSession,
        professional_id: str,
        cycle_id: str | None,
        cursor: str | None,
        limit: int,
    ) -> EarningsListResponse:
        cursor_id = cursor_decode(cursor)
        # Fetch limit+1 to detect has_more without a COUNT(*) query
        earnings = await self._repo.list_earnings(
            db, professional_id, cycle_id, cursor_id, limit + 1
        )
        has_more = len(earnings) > limit
        page = earnings[:limit]
        next_cursor = cursor_encode(page[-1].id) if has_more and page else None
        return EarningsListResponse(
            items=[EarningItem.from_domain(e) for e in page],
            next_cursor=next_cursor,
            has_more=has_more,
        )

    async def get_cycle_breakdown(
        self, db: AsyncSession, professional_id: str, limit: int
    ) -> list[CycleEarningsItem]:
        rows = await self._repo.cycle_breakdown(db, professional_id, limit)
        return [CycleEarningsItem.from_domain(r) for r in rows]
