"""Pydantic schemas for mp_pipeline API."""

from pydantic import BaseModel, Field

from src.mp_common.enums import TriggerType


class RunPipelineRequest(BaseModel):
    trigger_type: TriggerType
    request_id: str = Field(..., min_length=1, max_length=128)


class PipelineResult(BaseModel):
    success: bool = True
    trigger_type: str
    request_id: str
    timestamp: str
    duration_ms: int = 0
    error: str | None = None
    lock_error: str | None = None

    appointments_completed: int = 0
    confirmations_created: int = 0
    confirmation_errors: list[str] = []
    auto_confirmed: int = 0

    cycles_processed: int = 0
    cycles_completed: int = 0
    payouts_processed: int = 0
    payouts_failed: int = 0
    payouts_deferred: int = 0
    payout_errors: list[str] = []

    fee_charges_processed: int = 0
    fee_charges_failed: int = 0
    fee_charges_deferred: int = 0
    fee_charge_errors: list[str] = []

    emails_sent: int = 0
    email_errors: list[str] = []
