"""BookingService — booking acceptance and appointment lifecycle helpers.

Accepting a booking is the only place a professional's fee standing matters
outside the fee engine: a blocked professional cannot take new appointments.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_booking.application.schemas import AppointmentResponse
from src.mp_booking.domain.models import Appointment, Professional
from src.mp_booking.domain.repository import BookingRepositoryProtocol
from src.mp_booking.infrastructure.persistence import BookingRepository
from src.mp_common.datetime_utils import Clock, SystemClock
from src.mp_common.errors import (
    AppointmentNotFoundError,
    ProfessionalNotFoundError,
    SlotUnavailableError,
)
from src.mp_fee.application.payment_method_service import PaymentMethodService

logger = logging.getLogger(__name__)


class BookingService:
    def __init__(
        self,
        repo: BookingRepositoryProtocol | None = None,
        payment_methods: PaymentMethodService | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._repo: BookingRepositoryProtocol = repo or BookingRepository()
        self._clock: Clock = clock or SystemClock()
        self._payment_methods = payment_methods or PaymentMethodService(clock=self._clock)

    async def accept_booking(
        self,
        db: AsyncSession,
        professional_user_id: str,
        slot_id: str,
        client_id: str,
        rate_cents: int | None,
        venue: str | None,
    ) -> AppointmentResponse:
        professional = await self._repo.get_professional_by_user_id(db, professional_user_id)
        if professional is None:
            raise ProfessionalNotFoundError(professional_user_id)
        await self._payment_methods.ensure_can_accept_appointments(db, professional.id)

        try:
            slot = await self._repo.book_slot(db, slot_id, professional.id)
            if slot is None or slot.start_time <= self._clock.now():
                raise SlotUnavailableError(slot_id)
            appointment = await self._repo.insert_appointment(
                db,
                client_id=client_id,
                professional_id=professional.id,
                slot=slot,
                rate_cents=rate_cents if rate_cents is not None else professional.hourly_rate_cents,
                venue=venue,
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info(
            "Booking accepted: appointment=%s professional=%s slot=%s",
            appointment.id,
            professional.id,
            slot_id,
        )
        return AppointmentResponse.from_domain(appointment)

    async def mark_completed_appointments(self, db: AsyncSession) -> int:
        """upcoming → completed for every appointment whose end time has passed."""
        try:
            ids = await self._repo.mark_completed_appointments(db, self._clock.now())
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        if ids:
            logger.info("Marked %d appointments completed", len(ids))
        return len(ids)

    async def release_slot(self, db: AsyncSession, appointment: Appointment) -> bool:
        """Return the appointment's slot to availability (caller's transaction)."""
        if appointment.slot_id is None:
            return False
        released = await self._repo.release_slot(db, appointment.slot_id)
        if released:
            logger.info(
                "Slot released: slot=%s appointment=%s", appointment.slot_id, appointment.id
            )
        return released

    async def get_appointment(self, db: AsyncSession, appointment_id: str) -> Appointment:
        appointment = await self._repo.get_appointment(db, appointment_id)
        if appointment is None:
            raise AppointmentNotFoundError(appointment_id)
        return appointment

    async def get_professional_for_user(
        self, db: AsyncSession, user_id: str
    ) -> Professional | None:
        return await self._repo.get_professional_by_user_id(db, user_id)
