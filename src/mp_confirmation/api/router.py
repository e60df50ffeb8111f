"""mp_confirmation REST API — session confirmations and disputes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_common.database import get_db_session
from src.mp_common.response import ApiResponse, success_response
from src.mp_confirmation.application.schemas import RaiseDisputeRequest
from src.mp_confirmation.application.service import ConfirmationService
from src.mp_gateway.auth.dependencies import get_current_user
from src.mp_gateway.user.db_models import UserModel

router = APIRouter(prefix="/payments", tags=["payments"])

_service = ConfirmationService()


@router.get("/confirmations/pending")
async def list_pending_confirmations(
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.list_pending_for_user(db, str(current_user.id))
    return success_response(data.model_dump(), request)


@router.get("/confirmations/{confirmation_id}")
async def get_confirmation(
    confirmation_id: str,
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_confirmation(
        db, confirmation_id, str(current_user.id), current_user.is_admin
    )
    return success_response(data.model_dump(), request)


@router.post("/confirmations/{confirmation_id}/confirm-client")
async def confirm_as_client(
    confirmation_id: str,
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.confirm_by_client(db, confirmation_id, str(current_user.id))
    return success_response(data.model_dump(), request)


@router.post("/confirmations/{confirmation_id}/confirm-professional")
async def confirm_as_professional(
    confirmation_id: str,
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.confirm_by_professional(db, confirmation_id, str(current_user.id))
    return success_response(data.model_dump(), request)


@router.post("/appointments/{appointment_id}/dispute")
async def raise_dispute(
    appointment_id: str,
    body: RaiseDisputeRequest,
    current_user: Annotated[UserModel, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.raise_dispute(
        db, appointment_id, str(current_user.id), current_user.is_admin, body.reason
    )
    return success_response(data.model_dump(), request)
