"""Admin REST API — payment-engine remediation, all endpoints require an admin token."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_admin.application.service import AdminPaymentsService
from src.mp_common.database import get_db_session
from src.mp_common.response import ApiResponse, success_response
from src.mp_confirmation.application.schemas import ResolveDisputeRequest
from src.mp_cycle.application.schemas import EnsureCyclesRequest
from src.mp_earnings.application.schemas import SetPlatformCutRequest
from src.mp_fee.application.schemas import WaiveFeeChargeRequest
from src.mp_gateway.auth.dependencies import require_admin
from src.mp_gateway.user.db_models import UserModel

router = APIRouter(prefix="/admin/payments", tags=["admin"])

_service = AdminPaymentsService()


@router.get("/cycles")
async def list_cycles(
    admin: Annotated[UserModel, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    status: str | None = Query(None, pattern="^(active|processing|completed|failed)$"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> ApiResponse:
    items = await _service.list_cycles(db, status, limit, offset)
    return success_response([i.model_dump() for i in items], request)


@router.post("/cycles/ensure")
async def ensure_cycles(
    body: EnsureCyclesRequest,
    admin: Annotated[UserModel, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    items = await _service.ensure_cycles(db, body.start, body.end)
    return success_response([i.model_dump() for i in items], request)


@router.get("/cycles/{cycle_id}")
async def get_cycle(
    cycle_id: str,
    admin: Annotated[UserModel, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_cycle(db, cycle_id)
    return success_response(data.model_dump(), request)


@router.get("/cycles/{cycle_id}/payouts")
async def get_payout_summary(
    cycle_id: str,
    admin: Annotated[UserModel, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_payout_summary(db, cycle_id)
    return success_response(data.model_dump(), request)


@router.post("/cycles/{cycle_id}/process")
async def process_cycle(
    cycle_id: str,
    admin: Annotated[UserModel, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.process_cycle(db, cycle_id, str(admin.id))
    return success_response(data.model_dump(), request)


@router.post("/cycles/{cycle_id}/payouts")
async def create_payouts(
    cycle_id: str,
    admin: Annotated[UserModel, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.create_payouts(db, cycle_id, str(admin.id))
    return success_response(data.model_dump(), request)


@router.post("/process-all")
async def process_all(
    admin: Annotated[UserModel, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.process_all(db, str(admin.id))
    return success_response(data.model_dump(), request)


@router.get("/disputes")
async def list_disputes(
    admin: Annotated[UserModel, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> ApiResponse:
    items = await _service.list_disputes(db, limit, offset)
    return success_response([i.model_dump() for i in items], request)


@router.post("/disputes/{confirmation_id}/resolve")
async def resolve_dispute(
    confirmation_id: str,
    body: ResolveDisputeRequest,
    admin: Annotated[UserModel, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.resolve_dispute(
        db, confirmation_id, body.resolution, body.notes, str(admin.id)
    )
    return success_response(data.model_dump(), request)


@router.get("/blocked")
async def list_blocked(
    admin: Annotated[UserModel, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    items = await _service.list_blocked(db)
    return success_response([i.model_dump() for i in items], request)


@router.post("/professionals/{professional_id}/unblock")
async def unblock_professional(
    professional_id: str,
    admin: Annotated[UserModel, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.unblock(db, professional_id, str(admin.id))
    return success_response(data.model_dump(), request)


@router.post("/fee-charges/{fee_charge_id}/waive")
async def waive_fee_charge(
    fee_charge_id: str,
    body: WaiveFeeChargeRequest,
    admin: Annotated[UserModel, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.waive_fee_charge(db, fee_charge_id, str(admin.id), body.reason)
    return success_response(data.model_dump(), request)


@router.post("/fee-charges/{fee_charge_id}/charge")
async def charge_fee(
    fee_charge_id: str,
    admin: Annotated[UserModel, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.charge_fee(db, fee_charge_id)
    return success_response(data.model_dump(), request)


@router.get("/platform-cut")
async def get_platform_cut(
    admin: Annotated[UserModel, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_platform_cut(db)
    return success_response(data.model_dump(), request)


@router.put("/platform-cut")
async def set_platform_cut(
    body: SetPlatformCutRequest,
    admin: Annotated[UserModel, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.set_platform_cut(db, body.cut_bps, str(admin.id))
    return success_response(data.model_dump(), request)
