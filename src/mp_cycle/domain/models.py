"""Domain models for mp_cycle — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, field
from datetime import datetime

from src.mp_common.enums import CycleStatus


@dataclass
class Cycle:
    id: str
    start_date: datetime
    end_date: datetime       # exclusive
    cutoff_at: datetime
    status: str              # CycleStatus value
    processing_started_at: datetime | None = None
    completed_at: datetime | None = None
    failure_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status == CycleStatus.ACTIVE

    def cutoff_passed(self, now: datetime) -> bool:
        return now >= self.cutoff_at


@dataclass
class CycleStats:
    cycle_id: str
    earnings_count: int = 0
    professional_count: int = 0
    gross_cents: int = 0
    fee_cents: int = 0
    payout_status_counts: dict[str, int] = field(default_factory=dict)
    fee_charge_status_counts: dict[str, int] = field(default_factory=dict)

    @property
    def net_cents(self) -> int:
        return self.gross_cents - self.fee_cents
