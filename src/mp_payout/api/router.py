"""mp_payout REST API — payout history and the upcoming estimate."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_booking.api.dependencies import get_current_professional
from src.mp_booking.domain.models import Professional
from src.mp_common.database import get_db_session
from src.mp_common.response import ApiResponse, success_response
from src.mp_payout.application.service import PayoutService

router = APIRouter(prefix="/payments/payouts", tags=["payments"])

_service = PayoutService()


@router.get("")
async def list_payouts(
    professional: Annotated[Professional, Depends(get_current_professional)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> ApiResponse:
    items = await _service.list_payouts_for_professional(db, professional.id, limit, offset)
    return success_response([i.model_dump() for i in items], request)


@router.get("/upcoming")
async def get_upcoming_payout(
    professional: Annotated[Professional, Depends(get_current_professional)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_upcoming_payout_estimate(db, professional.id)
    return success_response(data.model_dump(), request)
