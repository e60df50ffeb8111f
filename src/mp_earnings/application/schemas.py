"""Pydantic schemas and cursor utilities for mp_earnings API."""

import base64
import json

from pydantic import BaseModel, Field

from src.mp_common.cents import bps_to_display, cents_to_display
from src.mp_earnings.domain.models import (
    CycleEarnings,
    Earning,
    EarningsTotals,
    PendingConfirmationTotals,
)

# ---------------------------------------------------------------------------
# Cursor-based pagination utilities
# ---------------------------------------------------------------------------


def cursor_encode(last_id: int) -> str:
    """Encode a BIGINT primary key into an opaque Base64 cursor string."""
    payload = json.dumps({"id": last_id})
    return base64.b64encode(payload.encode()).decode()


def cursor_decode(cursor: str | None) -> int | None:
    """Decode a cursor string back to the last seen id. Returns None on error."""
    if cursor is None:
        return None
    try:
        payload = json.loads(base64.b64decode(cursor.encode()).decode())
        return int(payload["id"])
    except Exception:
        return None


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class SetPlatformCutRequest(BaseModel):
    cut_bps: int = Field(..., ge=0, le=10000, description="Platform cut in basis points")


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class EarningItem(BaseModel):
    id: int
    appointment_id: str
    cycle_id: str
    gross_cents: int
    gross_display: str
    platform_fee_bps: int
    platform_fee_cents: int
    platform_fee_display: str
    net_cents: int
    net_display: str
    session_start: str
    session_end: str
    created_at: str

    @classmethod
    def from_domain(cls, e: Earning) -> "EarningItem":
        return cls(
            id=e.id,
            appointment_id=e.appointment_id,
            cycle_id=e.cycle_id,
            gross_cents=e.gross_cents,
            gross_display=cents_to_display(e.gross_cents),
            platform_fee_bps=e.platform_fee_bps,
            platform_fee_cents=e.platform_fee_cents,
            platform_fee_display=cents_to_display(e.platform_fee_cents),
            net_cents=e.net_cents,
            net_display=cents_to_display(e.net_cents),
            session_start=e.session_start.isoformat(),
            session_end=e.session_end.isoformat(),
            created_at=e.created_at.isoformat() if e.created_at else "",
        )


class EarningsListResponse(BaseModel):
    items: list[EarningItem]
    next_cursor: str | None
    has_more: bool


class EarningsSummaryResponse(BaseModel):
    professional_id: str
    cycle_id: str | None  # None for lifetime
    gross_cents: int
    gross_display: str
    fee_cents: int
    fee_display: str
    net_cents: int
    net_display: str
    session_count: int
    # Sessions awaiting confirmation have no Earning yet and are reported apart
    pending_confirmation_count: int
    pending_confirmation_gross_cents: int

    @classmethod
    def from_totals(
        cls,
        professional_id: str,
        cycle_id: str | None,
        totals: EarningsTotals,
        pending: PendingConfirmationTotals,
    ) -> "EarningsSummaryResponse":
        return cls(
            professional_id=professional_id,
            cycle_id=cycle_id,
            gross_cents=totals.gross_cents,
            gross_display=cents_to_display(totals.gross_cents),
            fee_cents=totals.fee_cents,
            fee_display=cents_to_display(totals.fee_cents),
            net_cents=totals.net_cents,
            net_display=cents_to_display(totals.net_cents),
            session_count=totals.session_count,
            pending_confirmation_count=pending.count,
            pending_confirmation_gross_cents=pending.gross_cents,
        )


class CycleEarningsItem(BaseModel):
    cycle_id: str
    start_date: str
    end_date: str
    status: str
    gross_cents: int
    fee_cents: int
    net_cents: int
    net_display: str
    session_count: int

    @classmethod
    def from_domain(cls, c: CycleEarnings) -> "CycleEarningsItem":
        return cls(
            cycle_id=c.cycle_id,
            start_date=c.start_date.isoformat(),
            end_date=c.end_date.isoformat(),
            status=c.status,
            gross_cents=c.totals.gross_cents,
            fee_cents=c.totals.fee_cents,
            net_cents=c.totals.net_cents,
            net_display=cents_to_display(c.totals.net_cents),
            session_count=c.totals.session_count,
        )


class PlatformCutResponse(BaseModel):
    cut_bps: int
    cut_display: str

    @classmethod
    def from_bps(cls, bps: int) -> "PlatformCutResponse":
        return cls(cut_bps=bps, cut_display=bps_to_display(bps))
