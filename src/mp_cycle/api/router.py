"""mp_cycle REST API — current billing cycle for dashboards."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_common.database import get_db_session
from src.mp_common.response import ApiResponse, success_response
from src.mp_cycle.application.service import CycleService
from src.mp_gateway.auth.dependencies import get_current_user
from src.mp_gateway.user.db_models import UserModel

router = APIRouter(prefix="/payments", tags=["payments"])

_service = CycleService()


@router.get("/cycle/current")
async def get_current_cycle(
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_current_cycle_info(db)
    return success_response(data.model_dump(), request)
