"""Repository Protocol — dependency inversion for testability."""

from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_payout.domain.models import Payout, PayoutSummary


class PayoutRepositoryProtocol(Protocol):
    async def create_for_cycle(self, db: AsyncSession, cycle_id: str) -> list[Payout]: ...

    async def list_completed_cycles_with_unpaid_earnings(self, db: AsyncSession) -> list[str]: ...

    async def get(self, db: AsyncSession, payout_id: str) -> Payout | None: ...

    async def list_for_cycle(
        self, db: AsyncSession, cycle_id: str, status: str
    ) -> list[Payout]: ...

    async def list_by_cycle(self, db: AsyncSession, cycle_id: str) -> list[Payout]: ...

    async def list_by_status(self, db: AsyncSession, status: str) -> list[Payout]: ...

    async def list_for_professional(
        self, db: AsyncSession, professional_id: str, limit: int, offset: int
    ) -> list[Payout]: ...

    async def claim(self, db: AsyncSession, payout_id: str, now: datetime) -> Payout | None: ...

    async def mark_completed(
        self, db: AsyncSession, payout_id: str, reference: str | None, now: datetime
    ) -> Payout | None: ...

    async def mark_failed(
        self, db: AsyncSession, payout_id: str, reason: str
    ) -> Payout | None: ...

    async def mark_partially_paid(
        self, db: AsyncSession, payout_id: str, paid_cents: int, reason: str
    ) -> Payout | None: ...

    async def requeue_failed(self, db: AsyncSession, max_attempts: int) -> list[Payout]: ...

    async def count_unsettled_for_cycle(self, db: AsyncSession, cycle_id: str) -> int: ...

    async def get_summary(self, db: AsyncSession, cycle_id: str) -> PayoutSummary: ...
