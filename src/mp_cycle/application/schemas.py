"""Pydantic schemas for mp_cycle API."""

from datetime import datetime

from pydantic import BaseModel

from src.mp_common.cents import cents_to_display
from src.mp_cycle.domain.models import Cycle, CycleStats


class CycleResponse(BaseModel):
    id: str
    start_date: str
    end_date: str
    cutoff_at: str
    status: str
    processing_started_at: str | None
    completed_at: str | None
    failure_reason: str | None

    @classmethod
    def from_domain(cls, cycle: Cycle) -> "CycleResponse":
        return cls(
            id=cycle.id,
            start_date=cycle.start_date.isoformat(),
            end_date=cycle.end_date.isoformat(),
            cutoff_at=cycle.cutoff_at.isoformat(),
            status=cycle.status,
            processing_started_at=(
                cycle.processing_started_at.isoformat() if cycle.processing_started_at else None
            ),
            completed_at=cycle.completed_at.isoformat() if cycle.completed_at else None,
            failure_reason=cycle.failure_reason,
        )


class CycleStatsResponse(BaseModel):
    earnings_count: int
    professional_count: int
    gross_cents: int
    gross_display: str
    fee_cents: int
    fee_display: str
    net_cents: int
    net_display: str
    payout_status_counts: dict[str, int]
    fee_charge_status_counts: dict[str, int]

    @classmethod
    def from_domain(cls, stats: CycleStats) -> "CycleStatsResponse":
        return cls(
            earnings_count=stats.earnings_count,
            professional_count=stats.professional_count,
            gross_cents=stats.gross_cents,
            gross_display=cents_to_display(stats.gross_cents),
            fee_cents=stats.fee_cents,
            fee_display=cents_to_display(stats.fee_cents),
            net_cents=stats.net_cents,
            net_display=cents_to_display(stats.net_cents),
            payout_status_counts=stats.payout_status_counts,
            fee_charge_status_counts=stats.fee_charge_status_counts,
        )


class CycleWithStatsResponse(BaseModel):
    cycle: CycleResponse
    stats: CycleStatsResponse


class CurrentCycleInfoResponse(BaseModel):
    cycle: CycleResponse
    days_remaining: int
    hours_until_cutoff: int
    previous_cycle_processing: bool


class EnsureCyclesRequest(BaseModel):
    start: datetime
    end: datetime
