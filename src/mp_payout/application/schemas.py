"""Pydantic schemas for mp_payout API."""

from pydantic import BaseModel

from src.mp_common.cents import cents_to_display
from src.mp_payout.domain.models import Payout, PayoutSummary


class PayoutResponse(BaseModel):
    id: str
    professional_id: str
    cycle_id: str
    sequence_no: int
    amount_cents: int
    amount_display: str
    paid_cents: int
    gross_cents: int
    fee_cents: int
    earnings_count: int
    status: str
    attempt_count: int
    gateway_reference: str | None
    failure_reason: str | None
    last_attempt_at: str | None
    completed_at: str | None
    created_at: str | None

    @classmethod
    def from_domain(cls, p: Payout) -> "PayoutResponse":
        return cls(
            id=p.id,
            professional_id=p.professional_id,
            cycle_id=p.cycle_id,
            sequence_no=p.sequence_no,
            amount_cents=p.amount_cents,
            amount_display=cents_to_display(p.amount_cents),
            paid_cents=p.paid_cents,
            gross_cents=p.gross_cents,
            fee_cents=p.fee_cents,
            earnings_count=p.earnings_count,
            status=p.status,
            attempt_count=p.attempt_count,
            gateway_reference=p.gateway_reference,
            failure_reason=p.failure_reason,
            last_attempt_at=p.last_attempt_at.isoformat() if p.last_attempt_at else None,
            completed_at=p.completed_at.isoformat() if p.completed_at else None,
            created_at=p.created_at.isoformat() if p.created_at else None,
        )


class UpcomingPayoutResponse(BaseModel):
    professional_id: str
    cycle_id: str
    estimated_amount_cents: int
    estimated_amount_display: str
    session_count: int
    estimated_date: str


class PayoutSummaryResponse(BaseModel):
    cycle_id: str
    payout_count: int
    total_amount_cents: int
    total_amount_display: str
    completed_cents: int
    status_counts: dict[str, int]

    @classmethod
    def from_domain(cls, s: PayoutSummary) -> "PayoutSummaryResponse":
        return cls(
            cycle_id=s.cycle_id,
            payout_count=s.payout_count,
            total_amount_cents=s.total_amount_cents,
            total_amount_display=cents_to_display(s.total_amount_cents),
            completed_cents=s.completed_cents,
            status_counts=s.status_counts,
        )


class CycleRunResponse(BaseModel):
    """Result of a manual process_cycle / process_all / create_payouts call."""
    cycles_processed: int = 0
    cycles_completed: int = 0
    payouts_created: int = 0
    fee_charges_created: int = 0
    payouts_processed: int = 0
    payouts_failed: int = 0
    fee_charges_processed: int = 0
    fee_charges_failed: int = 0
    deferred: int = 0
    errors: list[str] = []
