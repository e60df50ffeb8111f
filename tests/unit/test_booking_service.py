"""Unit tests for BookingService — acceptance gate and lifecycle helpers."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.mp_booking.application.service import BookingService
from src.mp_booking.domain.models import Appointment, AvailabilitySlot, Professional
from src.mp_common.errors import (
    AppointmentNotFoundError,
    ProfessionalBlockedError,
    ProfessionalNotFoundError,
    SlotUnavailableError,
)

UTC = timezone.utc
NOW = datetime(2024, 3, 6, 12, 0, tzinfo=UTC)


def _make_professional() -> Professional:
    return Professional(
        id="pro-1", user_id="pro-user", display_name="Pat", hourly_rate_cents=15000
    )


def _make_slot(start: datetime = NOW + timedelta(days=1)) -> AvailabilitySlot:
    return AvailabilitySlot(
        id="slot-1",
        professional_id="pro-1",
        start_time=start,
        end_time=start + timedelta(hours=1),
        is_booked=True,
    )


def _make_appointment(slot_id: str | None = "slot-1") -> Appointment:
    return Appointment(
        id="appt-1",
        client_id="client-user",
        professional_id="pro-1",
        start_time=NOW + timedelta(days=1),
        end_time=NOW + timedelta(days=1, hours=1),
        status="upcoming",
        rate_cents=15000,
        slot_id=slot_id,
    )


def _service(repo: AsyncMock, methods: AsyncMock | None = None) -> BookingService:
    clock = MagicMock()
    clock.now.return_value = NOW
    return BookingService(repo=repo, payment_methods=methods or AsyncMock(), clock=clock)


class TestAcceptBooking:
    async def test_accepts_at_professional_rate(self) -> None:
        repo = AsyncMock()
        repo.get_professional_by_user_id.return_value = _make_professional()
        repo.book_slot.return_value = _make_slot()
        repo.insert_appointment.return_value = _make_appointment()
        db = AsyncMock()

        result = await _service(repo).accept_booking(
            db, "pro-user", "slot-1", "client-user", None, "Studio"
        )

        assert result.id == "appt-1"
        assert repo.insert_appointment.await_args.kwargs["rate_cents"] == 15000
        db.commit.assert_awaited_once()

    async def test_blocked_professional_rejected(self) -> None:
        repo = AsyncMock()
        repo.get_professional_by_user_id.return_value = _make_professional()
        methods = AsyncMock()
        methods.ensure_can_accept_appointments.side_effect = ProfessionalBlockedError(
            "pro-1", "fees owed"
        )

        with pytest.raises(ProfessionalBlockedError):
            await _service(repo, methods).accept_booking(
                AsyncMock(), "pro-user", "slot-1", "client-user", None, None
            )
        repo.book_slot.assert_not_awaited()

    async def test_taken_slot_rejected(self) -> None:
        repo = AsyncMock()
        repo.get_professional_by_user_id.return_value = _make_professional()
        repo.book_slot.return_value = None
        db = AsyncMock()

        with pytest.raises(SlotUnavailableError):
            await _service(repo).accept_booking(db, "pro-user", "slot-1", "c", None, None)
        db.rollback.assert_awaited_once()

    async def test_past_slot_rejected(self) -> None:
        repo = AsyncMock()
        repo.get_professional_by_user_id.return_value = _make_professional()
        repo.book_slot.return_value = _make_slot(NOW - timedelta(hours=1))

        with pytest.raises(SlotUnavailableError):
            await _service(repo).accept_booking(AsyncMock(), "pro-user", "slot-1", "c", None, None)
        repo.insert_appointment.assert_not_awaited()

    async def test_unknown_professional(self) -> None:
        repo = AsyncMock()
        repo.get_professional_by_user_id.return_value = None

        with pytest.raises(ProfessionalNotFoundError):
            await _service(repo).accept_booking(AsyncMock(), "nobody", "slot-1", "c", None, None)


class TestLifecycle:
    async def test_mark_completed_counts(self) -> None:
        repo = AsyncMock()
        repo.mark_completed_appointments.return_value = ["a", "b"]

        assert await _service(repo).mark_completed_appointments(AsyncMock()) == 2
        assert repo.mark_completed_appointments.await_args.args[1] == NOW

    async def test_release_slot_without_slot(self) -> None:
        repo = AsyncMock()

        assert await _service(repo).release_slot(AsyncMock(), _make_appointment(None)) is False
        repo.release_slot.assert_not_awaited()

    async def test_release_slot(self) -> None:
        repo = AsyncMock()
        repo.release_slot.return_value = True

        assert await _service(repo).release_slot(AsyncMock(), _make_appointment()) is True

    async def test_missing_appointment(self) -> None:
        repo = AsyncMock()
        repo.get_appointment.return_value = None

        with pytest.raises(AppointmentNotFoundError):
            await _service(repo).get_appointment(AsyncMock(), "missing")
