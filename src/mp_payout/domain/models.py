"""Domain models for mp_payout — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, field
from datetime import datetime

from src.mp_common.batch import BatchReport
from src.mp_common.enums import PayoutStatus

NO_PAYOUT_ACCOUNT = "no_payout_account"


@dataclass
class Payout:
    id: str
    professional_id: str
    cycle_id: str
    amount_cents: int                 # SUM(gross) - SUM(fee) over the earnings it settles
    gross_cents: int
    fee_cents: int
    earnings_count: int
    status: str                       # PayoutStatus value
    sequence_no: int = 1              # 2+ are top-ups for earnings recorded after payment
    paid_cents: int = 0               # moved so far (partial payouts accumulate)
    attempt_count: int = 0
    gateway_reference: str | None = None
    failure_reason: str | None = None
    last_attempt_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def remaining_cents(self) -> int:
        return max(self.amount_cents - self.paid_cents, 0)

    @property
    def is_settled(self) -> bool:
        return self.status in (PayoutStatus.COMPLETED, PayoutStatus.FAILED)


@dataclass
class PayoutSummary:
    """Admin roll-up of one cycle's payouts."""
    cycle_id: str
    payout_count: int
    total_amount_cents: int
    completed_cents: int
    status_counts: dict[str, int]


@dataclass
class CycleRunReport:
    """What one pass over one or more closed cycles did."""
    cycles_processed: int = 0
    payouts_created: int = 0
    fee_charges_created: int = 0
    completed_cycle_ids: list[str] = field(default_factory=list)
    payouts: BatchReport = field(default_factory=BatchReport)
    fee_charges: BatchReport = field(default_factory=BatchReport)
    # Cycle-level failures (one entry per cycle that could not be driven)
    cycle_errors: list[str] = field(default_factory=list)

    def merge(self, other: "CycleRunReport") -> "CycleRunReport":
        self.cycles_processed += other.cycles_processed
        self.payouts_created += other.payouts_created
        self.fee_charges_created += other.fee_charges_created
        self.completed_cycle_ids.extend(other.completed_cycle_ids)
        self.payouts.merge(other.payouts)
        self.fee_charges.merge(other.fee_charges)
        self.cycle_errors.extend(other.cycle_errors)
        return self
