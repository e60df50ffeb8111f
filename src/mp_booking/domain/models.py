"""Domain models for mp_booking — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime

from src.mp_common.enums import AppointmentStatus, DisputeStatus


@dataclass
class Professional:
    id: str
    user_id: str
    display_name: str
    hourly_rate_cents: int
    cut_bps: int | None = None            # overrides the platform cut when set
    payout_account_ref: str | None = None  # gateway destination for payouts
    created_at: datetime | None = None


@dataclass
class AvailabilitySlot:
    id: str
    professional_id: str
    start_time: datetime
    end_time: datetime
    is_booked: bool = False


@dataclass
class Appointment:
    id: str
    client_id: str
    professional_id: str
    start_time: datetime
    end_time: datetime
    status: str                              # AppointmentStatus value
    rate_cents: int
    adjusted_rate_cents: int | None = None
    slot_id: str | None = None
    dispute_status: str = DisputeStatus.NONE.value
    dispute_reason: str | None = None
    disputed_by: str | None = None
    payment_reference: str | None = None     # captured client payment, refundable
    venue: str | None = None
    admin_notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def gross_cents(self) -> int:
        """Amount the professional earns before the platform cut."""
        if self.adjusted_rate_cents is not None:
            return self.adjusted_rate_cents
        return self.rate_cents

    @property
    def is_completed(self) -> bool:
        return self.status == AppointmentStatus.COMPLETED

    @property
    def can_be_disputed(self) -> bool:
        return (
            self.status != AppointmentStatus.CANCELLED
            and self.dispute_status == DisputeStatus.NONE
        )
