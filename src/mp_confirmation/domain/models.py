"""Domain models for mp_confirmation — pure dataclasses, no SQLAlchemy dependency.

Resolution state machine:

    pending ─▶ client_confirmed ───────┐
       │   └─▶ professional_confirmed ─┴─▶ both_confirmed
       │
       ├─(any open state)─▶ disputed ─▶ admin_confirmed | admin_cancelled
       └─(any open state, deadline passed)─▶ auto_confirmed

Terminal: both_confirmed, admin_confirmed, admin_cancelled, auto_confirmed.
"""

from dataclasses import dataclass
from datetime import datetime

from src.mp_common.enums import (
    OPEN_RESOLUTIONS,
    TERMINAL_RESOLUTIONS,
    ConfirmationResolution,
    PartyRole,
)


@dataclass
class Confirmation:
    id: str
    appointment_id: str
    client_id: str               # user id
    professional_id: str         # professionals.id
    professional_user_id: str    # user id of the professional
    resolution: str              # ConfirmationResolution value
    auto_confirm_deadline: datetime
    client_confirmed: bool = False
    client_confirmed_at: datetime | None = None
    professional_confirmed: bool = False
    professional_confirmed_at: datetime | None = None
    auto_resolved_at: datetime | None = None
    dispute_resolved_at: datetime | None = None
    resolution_notes: str | None = None
    resolved_by: str | None = None
    reminder_sent_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.resolution in OPEN_RESOLUTIONS

    @property
    def is_terminal(self) -> bool:
        return self.resolution in TERMINAL_RESOLUTIONS

    @property
    def is_disputed(self) -> bool:
        return self.resolution == ConfirmationResolution.DISPUTED

    def party_user_id(self, role: PartyRole) -> str:
        if role == PartyRole.CLIENT:
            return self.client_id
        return self.professional_user_id

    def has_confirmed(self, role: PartyRole) -> bool:
        if role == PartyRole.CLIENT:
            return self.client_confirmed
        return self.professional_confirmed
