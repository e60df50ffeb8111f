"""mp_booking REST API — booking acceptance and appointment lookup."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_booking.application.schemas import AcceptBookingRequest, AppointmentResponse
from src.mp_booking.application.service import BookingService
from src.mp_common.database import get_db_session
from src.mp_common.errors import NotAppointmentPartyError
from src.mp_common.response import ApiResponse, success_response
from src.mp_gateway.auth.dependencies import get_current_user
from src.mp_gateway.user.db_models import UserModel

router = APIRouter(prefix="/bookings", tags=["bookings"])

_service = BookingService()


@router.post("/accept", status_code=201)
async def accept_booking(
    body: AcceptBookingRequest,
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.accept_booking(
        db,
        professional_user_id=str(current_user.id),
        slot_id=body.slot_id,
        client_id=body.client_id,
        rate_cents=body.rate_cents,
        venue=body.venue,
    )
    return success_response(data.model_dump(), request)


@router.get("/appointments/{appointment_id}")
async def get_appointment(
    appointment_id: str,
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    appointment = await _service.get_appointment(db, appointment_id)
    user_id = str(current_user.id)
    if not current_user.is_admin and user_id != appointment.client_id:
        professional = await _service.get_professional_for_user(db, user_id)
        if professional is None or professional.id != appointment.professional_id:
            raise NotAppointmentPartyError(appointment_id)
    return success_response(AppointmentResponse.from_domain(appointment).model_dump(), request)
