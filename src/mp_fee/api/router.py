"""mp_fee REST API — fee charges and the on-file payment method."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_booking.api.dependencies import get_current_professional
from src.mp_booking.domain.models import Professional
from src.mp_common.database import get_db_session
from src.mp_common.response import ApiResponse, success_response
from src.mp_fee.application.payment_method_service import PaymentMethodService
from src.mp_fee.application.schemas import PendingFeeTotalResponse, SetPaymentMethodRequest
from src.mp_fee.application.service import FeeChargeService

router = APIRouter(prefix="/payments", tags=["payments"])

_fee_service = FeeChargeService()
_method_service = PaymentMethodService()


@router.get("/fees")
async def list_fee_charges(
    professional: Annotated[Professional, Depends(get_current_professional)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> ApiResponse:
    items = await _fee_service.list_fee_charges(db, professional.id, limit, offset)
    return success_response([i.model_dump() for i in items], request)


@router.get("/fees/pending")
async def get_pending_fee_total(
    professional: Annotated[Professional, Depends(get_current_professional)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    pending = await _fee_service.get_pending_fee_total(db, professional.id)
    data = PendingFeeTotalResponse.from_cents(professional.id, pending)
    return success_response(data.model_dump(), request)


@router.get("/payment-method")
async def get_payment_method_status(
    professional: Annotated[Professional, Depends(get_current_professional)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _method_service.get_payment_method_status(db, professional.id)
    return success_response(data.model_dump(), request)


@router.put("/payment-method")
async def set_payment_method(
    body: SetPaymentMethodRequest,
    professional: Annotated[Professional, Depends(get_current_professional)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _method_service.set_payment_method(db, professional.id, body)
    return success_response(data.model_dump(), request)


@router.delete("/payment-method")
async def remove_payment_method(
    professional: Annotated[Professional, Depends(get_current_professional)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _method_service.remove_payment_method(db, professional.id)
    return success_response(data.model_dump(), request)
