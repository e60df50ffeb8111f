"""ConfirmationService — session-completion confirmations and disputes.

Every completed appointment gets exactly one confirmation. Both parties
confirm (or the deadline passes) and an Earning is written in the same
transaction as the resolution change. Disputes freeze the confirmation until
an admin resolves it; only admin_confirmed produces an Earning.
"""

import logging
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.mp_booking.application.service import BookingService
from src.mp_booking.domain.models import Appointment
from src.mp_booking.domain.repository import BookingRepositoryProtocol
from src.mp_booking.infrastructure.persistence import BookingRepository
from src.mp_common.batch import BatchReport
from src.mp_common.datetime_utils import Clock, SystemClock
from src.mp_common.enums import (
    AppointmentStatus,
    ConfirmationResolution,
    DisputeStatus,
    PartyRole,
)
from src.mp_common.errors import (
    AppointmentNotCompletedError,
    ConfirmationAlreadyResolvedError,
    ConfirmationNotDisputedError,
    ConfirmationNotFoundError,
    DisputeNotAllowedError,
    InvalidResolutionError,
    NotAppointmentPartyError,
    NotConfirmationPartyError,
    PipelineConfigError,
    ProfessionalNotFoundError,
    RefundFailedError,
)
from src.mp_confirmation.application.schemas import (
    ConfirmActionResponse,
    ConfirmationResponse,
    DisputeResponse,
    PendingConfirmationsResponse,
)
from src.mp_confirmation.domain.models import Confirmation
from src.mp_confirmation.domain.repository import ConfirmationRepositoryProtocol
from src.mp_confirmation.infrastructure.persistence import ConfirmationRepository
from src.mp_earnings.application.service import EarningsService
from src.mp_payout.domain.gateway import PaymentGatewayProtocol, refund_key
from src.mp_payout.infrastructure.gateway_client import HttpPaymentGateway
from src.mp_pipeline.domain.notifier import (
    CONFIRMATION_REMINDER,
    CONFIRMATION_REQUESTED,
    NotifierProtocol,
)
from src.mp_pipeline.infrastructure.notifier import LoggingNotifier

logger = logging.getLogger(__name__)

_ADMIN_RESOLUTIONS = frozenset({
    ConfirmationResolution.ADMIN_CONFIRMED.value,
    ConfirmationResolution.ADMIN_CANCELLED.value,
})


class ConfirmationService:
    def __init__(
        self,
        repo: ConfirmationRepositoryProtocol | None = None,
        booking_repo: BookingRepositoryProtocol | None = None,
        bookings: BookingService | None = None,
        earnings: EarningsService | None = None,
        gateway: PaymentGatewayProtocol | None = None,
        notifier: NotifierProtocol | None = None,
        clock: Clock | None = None,
        auto_confirm_hours: int | None = None,
        reminder_window_hours: int | None = None,
    ) -> None:
        self._repo: ConfirmationRepositoryProtocol = repo or ConfirmationRepository()
        self._booking_repo: BookingRepositoryProtocol = booking_repo or BookingRepository()
        self._clock: Clock = clock or SystemClock()
        self._bookings = bookings or BookingService(repo=self._booking_repo, clock=self._clock)
        self._earnings = earnings or EarningsService(
            booking_repo=self._booking_repo, clock=self._clock
        )
        self._gateway: PaymentGatewayProtocol = gateway or HttpPaymentGateway()
        self._notifier: NotifierProtocol = notifier or LoggingNotifier()
        self._auto_confirm = timedelta(
            hours=auto_confirm_hours if auto_confirm_hours is not None
            else settings.AUTO_CONFIRM_HOURS
        )
        self._reminder_window = timedelta(
            hours=reminder_window_hours if reminder_window_hours is not None
            else settings.REMINDER_WINDOW_HOURS
        )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_confirmation(
        self, db: AsyncSession, appointment_id: str
    ) -> ConfirmationResponse:
        """Create the pending confirmation for a completed appointment.

        Idempotent: a second call returns the existing confirmation.
        """
        appointment = await self._bookings.get_appointment(db, appointment_id)
        if not appointment.is_completed or appointment.end_time > self._clock.now():
            raise AppointmentNotCompletedError(appointment_id, appointment.status)
        try:
            confirmation, created = await self._create(db, appointment)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        if created:
            await self._notify_created(confirmation)
        return ConfirmationResponse.from_domain(confirmation)

    async def _create(
        self, db: AsyncSession, appointment: Appointment
    ) -> tuple[Confirmation, bool]:
        """INSERT ... ON CONFLICT DO NOTHING, then re-select (caller's transaction)."""
        professional = await self._booking_repo.get_professional(db, appointment.professional_id)
        if professional is None:
            raise ProfessionalNotFoundError(appointment.professional_id)
        deadline = self._clock.now() + self._auto_confirm
        created = await self._repo.insert_if_absent(db, appointment, professional.user_id, deadline)
        confirmation = await self._repo.get_by_appointment(db, appointment.id)
        if confirmation is None:
            raise ConfirmationNotFoundError(appointment.id)
        if created:
            logger.info(
                "Confirmation created: confirmation=%s appointment=%s deadline=%s",
                confirmation.id,
                appointment.id,
                deadline.isoformat(),
            )
        else:
            logger.info("Confirmation idempotency hit: appointment=%s", appointment.id)
        return confirmation, created

    async def _notify_created(self, confirmation: Confirmation) -> None:
        context = {
            "confirmation_id": confirmation.id,
            "appointment_id": confirmation.appointment_id,
            "auto_confirm_deadline": confirmation.auto_confirm_deadline.isoformat(),
        }
        for user_id in (confirmation.client_id, confirmation.professional_user_id):
            try:
                await self._notifier.send(user_id, CONFIRMATION_REQUESTED, context)
            except Exception:
                logger.warning(
                    "Confirmation notification failed: confirmation=%s user=%s",
                    confirmation.id,
                    user_id,
                    exc_info=True,
                )

    async def sweep_completed_appointments(
        self, db: AsyncSession
    ) -> tuple[int, BatchReport]:
        """Complete ended appointments, then create every missing confirmation.

        Returns (appointments_completed, per-appointment creation report).
        """
        completed = await self._bookings.mark_completed_appointments(db)
        report = BatchReport()
        appointment_ids = await self._repo.list_appointments_needing_confirmation(
            db, self._clock.now()
        )
        for appointment_id in appointment_ids:
            try:
                appointment = await self._bookings.get_appointment(db, appointment_id)
                confirmation, created = await self._create(db, appointment)
                await db.commit()
            except PipelineConfigError:
                raise
            except Exception as exc:
                await db.rollback()
                logger.exception("Confirmation creation failed: appointment=%s", appointment_id)
                report.fail(appointment_id, exc)
                continue
            if created:
                await self._notify_created(confirmation)
            report.ok(appointment_id)
        return completed, report

    # ------------------------------------------------------------------
    # Party confirmation
    # ------------------------------------------------------------------

    async def confirm_by_client(
        self, db: AsyncSession, confirmation_id: str, user_id: str
    ) -> ConfirmActionResponse:
        return await self._confirm(db, confirmation_id, user_id, PartyRole.CLIENT)

    async def confirm_by_professional(
        self, db: AsyncSession, confirmation_id: str, user_id: str
    ) -> ConfirmActionResponse:
        return await self._confirm(db, confirmation_id, user_id, PartyRole.PROFESSIONAL)

    async def _confirm(
        self, db: AsyncSession, confirmation_id: str, user_id: str, role: PartyRole
    ) -> ConfirmActionResponse:
        confirmation = await self._repo.get_by_id(db, confirmation_id)
        if confirmation is None:
            raise ConfirmationNotFoundError(confirmation_id)
        if confirmation.party_user_id(role) != user_id:
            raise NotConfirmationPartyError(confirmation_id, role.value)
        if not confirmation.is_open:
            raise ConfirmationAlreadyResolvedError(confirmation_id, confirmation.resolution)
        if confirmation.has_confirmed(role):
            return ConfirmActionResponse(
                confirmation=ConfirmationResponse.from_domain(confirmation),
                already_confirmed=True,
            )

        earning_recorded = False
        try:
            updated = await self._repo.mark_party_confirmed(
                db, confirmation_id, role, self._clock.now()
            )
            if updated is None:
                # Lost a race: re-read to tell a concurrent self-confirm from a resolution
                current = await self._repo.get_by_id(db, confirmation_id)
                await db.rollback()
                if current is not None and current.is_open and current.has_confirmed(role):
                    return ConfirmActionResponse(
                        confirmation=ConfirmationResponse.from_domain(current),
                        already_confirmed=True,
                    )
                raise ConfirmationAlreadyResolvedError(
                    confirmation_id, current.resolution if current else "unknown"
                )
            if updated.resolution == ConfirmationResolution.BOTH_CONFIRMED:
                await self._earnings.record_earning(db, updated)
                earning_recorded = True
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Confirmation confirmed: confirmation=%s role=%s resolution=%s",
            confirmation_id,
            role.value,
            updated.resolution,
        )
        return ConfirmActionResponse(
            confirmation=ConfirmationResponse.from_domain(updated),
            earning_recorded=earning_recorded,
        )

    # ------------------------------------------------------------------
    # Disputes
    # ------------------------------------------------------------------

    async def raise_dispute(
        self,
        db: AsyncSession,
        appointment_id: str,
        user_id: str,
        is_admin: bool,
        reason: str,
    ) -> DisputeResponse:
        appointment = await self._bookings.get_appointment(db, appointment_id)
        professional = await self._booking_repo.get_professional(db, appointment.professional_id)
        is_party = user_id == appointment.client_id or (
            professional is not None and professional.user_id == user_id
        )
        if not (is_party or is_admin):
            raise NotAppointmentPartyError(appointment_id)
        if not appointment.can_be_disputed:
            raise DisputeNotAllowedError(
                appointment_id,
                f"status={appointment.status} dispute_status={appointment.dispute_status}",
            )
        confirmation = await self._repo.get_by_appointment(db, appointment_id)
        if confirmation is not None and not confirmation.is_open:
            raise DisputeNotAllowedError(
                appointment_id, f"confirmation already {confirmation.resolution}"
            )

        try:
            disputed_appointment = await self._booking_repo.open_dispute(
                db, appointment_id, reason, user_id
            )
            if disputed_appointment is None:
                raise DisputeNotAllowedError(appointment_id, "appointment changed concurrently")
            if confirmation is None:
                # An admin can only resolve through a confirmation row
                confirmation, _ = await self._create(db, appointment)
            disputed = await self._repo.mark_disputed(db, confirmation.id)
            if disputed is None:
                raise DisputeNotAllowedError(appointment_id, "confirmation resolved concurrently")
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Dispute raised: appointment=%s confirmation=%s by=%s",
            appointment_id,
            disputed.id,
            user_id,
        )
        return DisputeResponse(
            appointment_id=appointment_id,
            appointment_status=disputed_appointment.status,
            dispute_status=disputed_appointment.dispute_status,
            confirmation=ConfirmationResponse.from_domain(disputed),
        )

    async def resolve_dispute(
        self,
        db: AsyncSession,
        confirmation_id: str,
        resolution: str,
        notes: str | None,
        admin_id: str,
    ) -> ConfirmationResponse:
        if resolution not in _ADMIN_RESOLUTIONS:
            raise InvalidResolutionError(resolution)
        confirmation = await self._repo.get_by_id(db, confirmation_id)
        if confirmation is None:
            raise ConfirmationNotFoundError(confirmation_id)
        if not confirmation.is_disputed:
            raise ConfirmationNotDisputedError(confirmation_id, confirmation.resolution)
        appointment = await self._bookings.get_appointment(db, confirmation.appointment_id)
        cancelled = resolution == ConfirmationResolution.ADMIN_CANCELLED

        if cancelled and appointment.payment_reference:
            # Refund first: a failed refund leaves the dispute open for another try
            result = await self._gateway.refund(
                appointment.payment_reference, refund_key(appointment.id)
            )
            if not result.succeeded:
                raise RefundFailedError(
                    appointment.id, result.failure_message or result.status.value
                )
            logger.info(
                "Refund issued: appointment=%s reference=%s", appointment.id, result.reference
            )

        try:
            resolved = await self._repo.resolve_dispute(
                db, confirmation_id, resolution, notes, admin_id, self._clock.now()
            )
            if resolved is None:
                current = await self._repo.get_by_id(db, confirmation_id)
                raise ConfirmationNotDisputedError(
                    confirmation_id, current.resolution if current else "unknown"
                )
            if cancelled:
                closed = await self._booking_repo.close_dispute(
                    db,
                    appointment.id,
                    AppointmentStatus.CANCELLED.value,
                    DisputeStatus.RESOLVED_NOT_OCCURRED.value,
                    notes,
                )
                await self._bookings.release_slot(db, appointment)
            else:
                closed = await self._booking_repo.close_dispute(
                    db,
                    appointment.id,
                    AppointmentStatus.COMPLETED.value,
                    DisputeStatus.RESOLVED_OCCURRED.value,
                    notes,
                )
                await self._earnings.record_earning(db, resolved)
            if closed is None:
                logger.warning(
                    "Appointment had no open dispute while resolving: appointment=%s",
                    appointment.id,
                )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Dispute resolved: confirmation=%s resolution=%s admin=%s",
            confirmation_id,
            resolution,
            admin_id,
        )
        return ConfirmationResponse.from_domain(resolved)

    async def list_disputed(
        self, db: AsyncSession, limit: int, offset: int
    ) -> list[ConfirmationResponse]:
        rows = await self._repo.list_disputed(db, limit, offset)
        return [ConfirmationResponse.from_domain(c) for c in rows]

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    async def run_auto_confirm_sweep(self, db: AsyncSession) -> BatchReport:
        """Auto-confirm every open confirmation past its deadline. Per-item commit."""
        report = BatchReport()
        now = self._clock.now()
        candidates = await self._repo.list_auto_confirm_candidates(db, now)
        for candidate in candidates:
            try:
                confirmed = await self._repo.auto_confirm(db, candidate.id, now)
                if confirmed is None:
                    await db.rollback()
                    logger.info(
                        "Auto-confirm skipped, resolved concurrently: confirmation=%s",
                        candidate.id,
                    )
                    continue
                await self._earnings.record_earning(db, confirmed)
                await db.commit()
            except PipelineConfigError:
                raise
            except Exception as exc:
                await db.rollback()
                logger.exception("Auto-confirm failed: confirmation=%s", candidate.id)
                report.fail(candidate.id, exc)
                continue
            report.ok(candidate.id)
        if candidates:
            logger.info(
                "Auto-confirm sweep: candidates=%d confirmed=%d failed=%d",
                len(candidates),
                report.succeeded,
                report.failed,
            )
        return report

    async def send_reminders(self, db: AsyncSession) -> BatchReport:
        """Remind parties who have not confirmed when the deadline is close."""
        report = BatchReport()
        now = self._clock.now()
        due = await self._repo.list_due_for_reminder(db, now, now + self._reminder_window)
        for confirmation in due:
            context = {
                "confirmation_id": confirmation.id,
                "appointment_id": confirmation.appointment_id,
                "auto_confirm_deadline": confirmation.auto_confirm_deadline.isoformat(),
            }
            try:
                for role in PartyRole:
                    if not confirmation.has_confirmed(role):
                        await self._notifier.send(
                            confirmation.party_user_id(role), CONFIRMATION_REMINDER, context
                        )
                await self._repo.mark_reminder_sent(db, confirmation.id, now)
                await db.commit()
            except Exception as exc:
                await db.rollback()
                logger.warning("Reminder failed: confirmation=%s error=%s", confirmation.id, exc)
                report.fail(confirmation.id, exc)
                continue
            report.ok(confirmation.id)
        return report

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_pending_for_user(
        self, db: AsyncSession, user_id: str
    ) -> PendingConfirmationsResponse:
        as_client = await self._repo.list_open_for_client(db, user_id)
        as_professional = await self._repo.list_open_for_professional_user(db, user_id)
        return PendingConfirmationsResponse(
            as_client=[ConfirmationResponse.from_domain(c) for c in as_client],
            as_professional=[ConfirmationResponse.from_domain(c) for c in as_professional],
        )

    async def get_confirmation(
        self, db: AsyncSession, confirmation_id: str, user_id: str, is_admin: bool = False
    ) -> ConfirmationResponse:
        confirmation = await self._repo.get_by_id(db, confirmation_id)
        if confirmation is None:
            raise ConfirmationNotFoundError(confirmation_id)
        if not is_admin and user_id not in (
            confirmation.client_id,
            confirmation.professional_user_id,
        ):
            raise NotConfirmationPartyError(confirmation_id, "client or professional")
        return ConfirmationResponse.from_domain(confirmation)
