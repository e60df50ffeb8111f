"""Domain models for mp_earnings — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Earning:
    """One confirmed session's revenue line. Immutable once written."""

    id: int                    # BIGSERIAL
    professional_id: str
    appointment_id: str
    cycle_id: str
    gross_cents: int
    platform_fee_bps: int      # cut captured at confirmation time
    platform_fee_cents: int
    session_start: datetime
    session_end: datetime
    created_at: datetime | None = None

    @property
    def net_cents(self) -> int:
        return self.gross_cents - self.platform_fee_cents


@dataclass
class EarningsTotals:
    gross_cents: int = 0
    fee_cents: int = 0
    session_count: int = 0

    @property
    def net_cents(self) -> int:
        return self.gross_cents - self.fee_cents


@dataclass
class PendingConfirmationTotals:
    count: int = 0
    gross_cents: int = 0


@dataclass
class CycleEarnings:
    cycle_id: str
    start_date: datetime
    end_date: datetime
    status: str
    totals: EarningsTotals
