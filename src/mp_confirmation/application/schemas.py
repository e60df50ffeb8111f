"""Pydantic schemas for mp_confirmation API."""

from typing import Literal

from pydantic import BaseModel, Field

from src.mp_confirmation.domain.models import Confirmation

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class RaiseDisputeRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)


class ResolveDisputeRequest(BaseModel):
    resolution: Literal["admin_confirmed", "admin_cancelled"]
    notes: str | None = Field(None, max_length=2000)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class ConfirmationResponse(BaseModel):
    id: str
    appointment_id: str
    client_id: str
    professional_id: str
    resolution: str
    client_confirmed: bool
    client_confirmed_at: str | None
    professional_confirmed: bool
    professional_confirmed_at: str | None
    auto_confirm_deadline: str
    auto_resolved_at: str | None
    dispute_resolved_at: str | None
    resolution_notes: str | None
    resolved_by: str | None

    @classmethod
    def from_domain(cls, c: Confirmation) -> "ConfirmationResponse":
        return cls(
            id=c.id,
            appointment_id=c.appointment_id,
            client_id=c.client_id,
            professional_id=c.professional_id,
            resolution=c.resolution,
            client_confirmed=c.client_confirmed,
            client_confirmed_at=c.client_confirmed_at.isoformat() if c.client_confirmed_at else None,
            professional_confirmed=c.professional_confirmed,
            professional_confirmed_at=(
                c.professional_confirmed_at.isoformat() if c.professional_confirmed_at else None
            ),
            auto_confirm_deadline=c.auto_confirm_deadline.isoformat(),
            auto_resolved_at=c.auto_resolved_at.isoformat() if c.auto_resolved_at else None,
            dispute_resolved_at=(
                c.dispute_resolved_at.isoformat() if c.dispute_resolved_at else None
            ),
            resolution_notes=c.resolution_notes,
            resolved_by=c.resolved_by,
        )


class ConfirmActionResponse(BaseModel):
    confirmation: ConfirmationResponse
    already_confirmed: bool = False
    earning_recorded: bool = False


class PendingConfirmationsResponse(BaseModel):
    as_client: list[ConfirmationResponse]
    as_professional: list[ConfirmationResponse]


class DisputeResponse(BaseModel):
    appointment_id: str
    appointment_status: str
    dispute_status: str
    confirmation: ConfirmationResponse | None = None
