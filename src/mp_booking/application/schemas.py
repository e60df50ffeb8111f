"""Pydantic schemas for mp_booking API."""

from pydantic import BaseModel, Field

from src.mp_booking.domain.models import Appointment
from src.mp_common.cents import cents_to_display


class AcceptBookingRequest(BaseModel):
    slot_id: str
    client_id: str
    rate_cents: int | None = Field(None, gt=0, description="Agreed rate; defaults to hourly rate")
    venue: str | None = Field(None, max_length=500)


class AppointmentResponse(BaseModel):
    id: str
    client_id: str
    professional_id: str
    slot_id: str | None
    start_time: str
    end_time: str
    status: str
    rate_cents: int
    rate_display: str
    gross_cents: int
    dispute_status: str
    dispute_reason: str | None
    venue: str | None

    @classmethod
    def from_domain(cls, appt: Appointment) -> "AppointmentResponse":
        return cls(
            id=appt.id,
            client_id=appt.client_id,
            professional_id=appt.professional_id,
            slot_id=appt.slot_id,
            start_time=appt.start_time.isoformat(),
            end_time=appt.end_time.isoformat(),
            status=appt.status,
            rate_cents=appt.rate_cents,
            rate_display=cents_to_display(appt.rate_cents),
            gross_cents=appt.gross_cents,
            dispute_status=appt.dispute_status,
            dispute_reason=appt.dispute_reason,
            venue=appt.venue,
        )
