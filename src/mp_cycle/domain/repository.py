"""Repository Protocol — dependency inversion for testability.

Unit tests inject a fake that conforms to this Protocol.
Infrastructure layer provides the real implementation.
"""

from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_cycle.domain.models import Cycle, CycleStats
from src.mp_cycle.domain.periods import CycleWindow


class CycleRepositoryProtocol(Protocol):
    async def insert_if_absent(self, db: AsyncSession, window: CycleWindow) -> None: ...

    async def get_by_window(
        self, db: AsyncSession, start: datetime, end: datetime
    ) -> Cycle | None: ...

    async def get_by_id(self, db: AsyncSession, cycle_id: str) -> Cycle | None: ...

    async def start_processing(
        self, db: AsyncSession, cycle_id: str, now: datetime
    ) -> Cycle | None: ...

    async def resume_processing(self, db: AsyncSession, cycle_id: str) -> Cycle | None: ...

    async def mark_completed(
        self, db: AsyncSession, cycle_id: str, now: datetime
    ) -> Cycle | None: ...

    async def mark_failed(
        self, db: AsyncSession, cycle_id: str, reason: str
    ) -> Cycle | None: ...

    async def list_ready_for_rollover(
        self, db: AsyncSession, now: datetime
    ) -> list[Cycle]: ...

    async def list_by_statuses(
        self, db: AsyncSession, statuses: list[str]
    ) -> list[Cycle]: ...

    async def list_cycles(
        self, db: AsyncSession, status: str | None, limit: int, offset: int
    ) -> list[Cycle]: ...

    async def get_stats(self, db: AsyncSession, cycle_id: str) -> CycleStats: ...
