"""Pydantic schemas for mp_fee API."""

from pydantic import BaseModel, Field

from src.mp_common.cents import cents_to_display
from src.mp_fee.domain.models import FeeCharge, PaymentMethod

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class SetPaymentMethodRequest(BaseModel):
    card_brand: str = Field(..., min_length=1, max_length=32)
    card_last4: str = Field(..., pattern=r"^\d{4}$")
    card_exp_month: int = Field(..., ge=1, le=12)
    card_exp_year: int = Field(..., ge=2000, le=2100)
    gateway_token: str = Field(..., min_length=1, max_length=128)


class WaiveFeeChargeRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class FeeChargeResponse(BaseModel):
    id: str
    professional_id: str
    cycle_id: str
    sequence_no: int
    amount_cents: int
    amount_display: str
    charged_cents: int
    outstanding_cents: int
    outstanding_display: str
    status: str
    attempt_count: int
    consecutive_failures: int
    failure_code: str | None
    failure_reason: str | None
    next_retry_at: str | None
    charged_at: str | None
    waived_at: str | None
    waived_by: str | None
    waived_reason: str | None

    @classmethod
    def from_domain(cls, charge: FeeCharge) -> "FeeChargeResponse":
        return cls(
            id=charge.id,
            professional_id=charge.professional_id,
            cycle_id=charge.cycle_id,
            sequence_no=charge.sequence_no,
            amount_cents=charge.amount_cents,
            amount_display=cents_to_display(charge.amount_cents),
            charged_cents=charge.charged_cents,
            outstanding_cents=charge.outstanding_cents,
            outstanding_display=cents_to_display(charge.outstanding_cents),
            status=charge.status,
            attempt_count=charge.attempt_count,
            consecutive_failures=charge.consecutive_failures,
            failure_code=charge.failure_code,
            failure_reason=charge.failure_reason,
            next_retry_at=charge.next_retry_at.isoformat() if charge.next_retry_at else None,
            charged_at=charge.charged_at.isoformat() if charge.charged_at else None,
            waived_at=charge.waived_at.isoformat() if charge.waived_at else None,
            waived_by=charge.waived_by,
            waived_reason=charge.waived_reason,
        )


class PendingFeeTotalResponse(BaseModel):
    professional_id: str
    pending_cents: int
    pending_display: str

    @classmethod
    def from_cents(cls, professional_id: str, pending: int) -> "PendingFeeTotalResponse":
        return cls(
            professional_id=professional_id,
            pending_cents=pending,
            pending_display=cents_to_display(pending),
        )


class PaymentMethodStatusResponse(BaseModel):
    professional_id: str
    has_payment_method: bool
    card_brand: str | None
    card_last4: str | None
    card_exp_month: int | None
    card_exp_year: int | None
    is_expired: bool
    is_blocked: bool
    blocked_reason: str | None
    blocked_at: str | None
    pending_fee_cents: int
    pending_fee_display: str
    can_accept_appointments: bool

    @classmethod
    def from_domain(
        cls,
        professional_id: str,
        method: PaymentMethod | None,
        is_expired: bool,
        pending: int,
        can_accept: bool,
    ) -> "PaymentMethodStatusResponse":
        active = method is not None and method.is_active
        return cls(
            professional_id=professional_id,
            has_payment_method=active,
            card_brand=method.card_brand if active else None,
            card_last4=method.card_last4 if active else None,
            card_exp_month=method.card_exp_month if active else None,
            card_exp_year=method.card_exp_year if active else None,
            is_expired=is_expired,
            is_blocked=bool(method and method.is_blocked),
            blocked_reason=method.blocked_reason if method else None,
            blocked_at=method.blocked_at.isoformat() if method and method.blocked_at else None,
            pending_fee_cents=pending,
            pending_fee_display=cents_to_display(pending),
            can_accept_appointments=can_accept,
        )


class BlockedProfessionalItem(BaseModel):
    professional_id: str
    blocked_reason: str | None
    blocked_at: str | None
    pending_fee_cents: int
    pending_fee_display: str
