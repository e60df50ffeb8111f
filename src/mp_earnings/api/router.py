"""mp_earnings REST API — earnings summaries and history for the caller."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_booking.api.dependencies import get_current_professional
from src.mp_booking.domain.models import Professional
from src.mp_common.database import get_db_session
from src.mp_common.response import ApiResponse, success_response
from src.mp_earnings.application.service import EarningsService

router = APIRouter(prefix="/payments/earnings", tags=["payments"])

_service = EarningsService()


@router.get("/summary")
async def get_current_cycle_summary(
    professional: Annotated[Professional, Depends(get_current_professional)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_current_cycle_earnings_summary(db, professional.id)
    return success_response(data.model_dump(), request)


@router.get("/lifetime")
async def get_lifetime_summary(
    professional: Annotated[Professional, Depends(get_current_professional)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_lifetime_earnings_summary(db, professional.id)
    return success_response(data.model_dump(), request)


@router.get("")
async def list_earnings(
    professional: Annotated[Professional, Depends(get_current_professional)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    cycle_id: str | None = Query(None),
    cursor: str | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
) -> ApiResponse:
    data = await _service.list_earnings(db, professional.id, cycle_id, cursor, limit)
    return success_response(data.model_dump(), request)


@router.get("/cycles")
async def get_cycle_breakdown(
    professional: Annotated[Professional, Depends(get_current_professional)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    limit: int = Query(6, ge=1, le=52),
) -> ApiResponse:
    items = await _service.get_cycle_breakdown(db, professional.id, limit)
    return success_response([i.model_dump() for i in items], request)
