"""Repository Protocol — dependency inversion for testability."""

from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_booking.domain.models import Appointment
from src.mp_common.enums import PartyRole
from src.mp_confirmation.domain.models import Confirmation


class ConfirmationRepositoryProtocol(Protocol):
    async def insert_if_absent(
        self,
        db: AsyncSession,
        appointment: Appointment,
        professional_user_id: str,
        deadline: datetime,
    ) -> bool: ...

    async def get_by_id(self, db: AsyncSession, confirmation_id: str) -> Confirmation | None: ...

    async def get_by_appointment(
        self, db: AsyncSession, appointment_id: str
    ) -> Confirmation | None: ...

    async def mark_party_confirmed(
        self, db: AsyncSession, confirmation_id: str, role: PartyRole, now: datetime
    ) -> Confirmation | None: ...

    async def mark_disputed(
        self, db: AsyncSession, confirmation_id: str
    ) -> Confirmation | None: ...

    async def resolve_dispute(
        self,
        db: AsyncSession,
        confirmation_id: str,
        resolution: str,
        notes: str | None,
        admin_id: str,
        now: datetime,
    ) -> Confirmation | None: ...

    async def auto_confirm(
        self, db: AsyncSession, confirmation_id: str, now: datetime
    ) -> Confirmation | None: ...

    async def list_auto_confirm_candidates(
        self, db: AsyncSession, now: datetime
    ) -> list[Confirmation]: ...

    async def list_open_for_client(
        self, db: AsyncSession, user_id: str
    ) -> list[Confirmation]: ...

    async def list_open_for_professional_user(
        self, db: AsyncSession, user_id: str
    ) -> list[Confirmation]: ...

    async def list_due_for_reminder(
        self, db: AsyncSession, now: datetime, window_end: datetime
    ) -> list[Confirmation]: ...

    async def mark_reminder_sent(
        self, db: AsyncSession, confirmation_id: str, now: datetime
    ) -> None: ...

    async def list_disputed(
        self, db: AsyncSession, limit: int, offset: int
    ) -> list[Confirmation]: ...

    async def list_appointments_needing_confirmation(
        self, db: AsyncSession, now: datetime
    ) -> list[str]: ...
