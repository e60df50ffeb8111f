"""Repository Protocol — dependency inversion for testability."""

from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_booking.domain.models import Appointment, AvailabilitySlot, Professional


class BookingRepositoryProtocol(Protocol):
    async def get_professional(
        self, db: AsyncSession, professional_id: str
    ) -> Professional | None: ...

    async def get_professional_by_user_id(
        self, db: AsyncSession, user_id: str
    ) -> Professional | None: ...

    async def get_appointment(
        self, db: AsyncSession, appointment_id: str
    ) -> Appointment | None: ...

    async def book_slot(
        self, db: AsyncSession, slot_id: str, professional_id: str
    ) -> AvailabilitySlot | None: ...

    async def release_slot(self, db: AsyncSession, slot_id: str) -> bool: ...

    async def insert_appointment(
        self,
        db: AsyncSession,
        client_id: str,
        professional_id: str,
        slot: AvailabilitySlot,
        rate_cents: int,
        venue: str | None,
    ) -> Appointment: ...

    async def mark_completed_appointments(
        self, db: AsyncSession, now: datetime
    ) -> list[str]: ...

    async def open_dispute(
        self, db: AsyncSession, appointment_id: str, reason: str, disputed_by: str
    ) -> Appointment | None: ...

    async def close_dispute(
        self,
        db: AsyncSession,
        appointment_id: str,
        status: str,
        dispute_status: str,
        admin_notes: str | None,
    ) -> Appointment | None: ...
