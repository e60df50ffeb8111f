"""Repository Protocol — dependency inversion for testability."""

from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_earnings.domain.models import (
    CycleEarnings,
    Earning,
    EarningsTotals,
    PendingConfirmationTotals,
)


class EarningsRepositoryProtocol(Protocol):
    async def insert_if_absent(
        self,
        db: AsyncSession,
        professional_id: str,
        appointment_id: str,
        cycle_id: str,
        gross_cents: int,
        platform_fee_bps: int,
        platform_fee_cents: int,
        session_start: datetime,
        session_end: datetime,
    ) -> Earning | None: ...

    async def get_by_appointment(
        self, db: AsyncSession, appointment_id: str
    ) -> Earning | None: ...

    async def summarize(
        self, db: AsyncSession, professional_id: str, cycle_id: str | None
    ) -> EarningsTotals: ...

    async def pending_confirmations(
        self, db: AsyncSession, professional_id: str
    ) -> PendingConfirmationTotals: ...

    async def list_earnings(
        self,
        db: AsyncSession,
        professional_id: str,
        cycle_id: str | None,
        cursor_id: int | None,
        limit: int,
    ) -> list[Earning]: ...

    async def cycle_breakdown(
        self, db: AsyncSession, professional_id: str, limit: int
    ) -> list[CycleEarnings]: ...

    async def get_platform_cut_bps(self, db: AsyncSession) -> int | None: ...

    async def set_platform_cut_bps(
        self, db: AsyncSession, bps: int, admin_id: str
    ) -> None: ...
