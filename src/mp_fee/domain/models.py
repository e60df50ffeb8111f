"""Domain models for mp_fee — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime

from src.mp_common.enums import FeeChargeStatus

# Statuses whose amount is still owed to the platform
OUTSTANDING_STATUSES = frozenset({
    FeeChargeStatus.PENDING,
    FeeChargeStatus.PROCESSING,
    FeeChargeStatus.FAILED,
    FeeChargeStatus.PARTIALLY_PAID,
})

NO_PAYMENT_METHOD = "no_payment_method"


@dataclass
class FeeCharge:
    id: str
    professional_id: str
    cycle_id: str
    amount_cents: int
    status: str                          # FeeChargeStatus value
    sequence_no: int = 1
    charged_cents: int = 0               # captured so far (partial captures accumulate)
    attempt_count: int = 0
    consecutive_failures: int = 0
    gateway_reference: str | None = None
    failure_code: str | None = None
    failure_reason: str | None = None
    last_attempt_at: datetime | None = None
    next_retry_at: datetime | None = None
    charged_at: datetime | None = None
    waived_at: datetime | None = None
    waived_by: str | None = None
    waived_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def remaining_cents(self) -> int:
        return max(self.amount_cents - self.charged_cents, 0)

    @property
    def outstanding_cents(self) -> int:
        if self.status in OUTSTANDING_STATUSES:
            return self.remaining_cents
        return 0

    @property
    def is_waivable(self) -> bool:
        # processing is excluded: the gateway may be capturing right now
        return self.status in (
            FeeChargeStatus.PENDING,
            FeeChargeStatus.FAILED,
            FeeChargeStatus.PARTIALLY_PAID,
        )


@dataclass
class PaymentMethod:
    professional_id: str
    card_brand: str | None = None
    card_last4: str | None = None
    card_exp_month: int | None = None
    card_exp_year: int | None = None
    gateway_token: str | None = None
    is_active: bool = False
    is_blocked: bool = False
    blocked_reason: str | None = None
    blocked_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        """A card is valid through the last day of its expiry month."""
        if self.card_exp_year is None or self.card_exp_month is None:
            return False
        return (self.card_exp_year, self.card_exp_month) < (now.year, now.month)

    def is_usable(self, now: datetime) -> bool:
        return bool(self.is_active and self.gateway_token) and not self.is_expired(now)
