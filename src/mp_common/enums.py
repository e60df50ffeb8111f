"""Global enums — must match DB CHECK constraints exactly."""

from enum import Enum


class AppointmentStatus(str, Enum):
    UPCOMING = "upcoming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


class DisputeStatus(str, Enum):
    NONE = "none"
    OPEN = "open"
    RESOLVED_OCCURRED = "resolved_occurred"
    RESOLVED_NOT_OCCURRED = "resolved_not_occurred"


class ConfirmationResolution(str, Enum):
    PENDING = "pending"
    CLIENT_CONFIRMED = "client_confirmed"
    PROFESSIONAL_CONFIRMED = "professional_confirmed"
    BOTH_CONFIRMED = "both_confirmed"
    DISPUTED = "disputed"
    ADMIN_CONFIRMED = "admin_confirmed"
    ADMIN_CANCELLED = "admin_cancelled"
    AUTO_CONFIRMED = "auto_confirmed"


# Resolutions from which a party can still confirm, be auto-confirmed or dispute
OPEN_RESOLUTIONS = frozenset({
    ConfirmationResolution.PENDING,
    ConfirmationResolution.CLIENT_CONFIRMED,
    ConfirmationResolution.PROFESSIONAL_CONFIRMED,
})

TERMINAL_RESOLUTIONS = frozenset({
    ConfirmationResolution.BOTH_CONFIRMED,
    ConfirmationResolution.ADMIN_CONFIRMED,
    ConfirmationResolution.ADMIN_CANCELLED,
    ConfirmationResolution.AUTO_CONFIRMED,
})


class CycleStatus(str, Enum):
    ACTIVE = "active"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class PayoutStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class FeeChargeStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIALLY_PAID = "partially_paid"
    WAIVED = "waived"


class GatewayStatus(str, Enum):
    """Outcome of one payment-gateway call."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    PARTIAL = "partial"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"


class TriggerType(str, Enum):
    DAILY_CONFIRMATION = "daily-confirmation"
    AUTO_CONFIRM = "auto-confirm"
    WEEKLY_PAYOUT = "weekly-payout"
    MANUAL = "manual"


class PartyRole(str, Enum):
    CLIENT = "client"
    PROFESSIONAL = "professional"
