"""FastAPI dependency: resolve the caller's professional profile."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.mp_booking.domain.models import Professional
from src.mp_booking.infrastructure.persistence import BookingRepository
from src.mp_common.database import get_db_session
from src.mp_common.errors import ProfessionalNotFoundError
from src.mp_gateway.auth.dependencies import get_current_user
from src.mp_gateway.user.db_models import UserModel

_repo = BookingRepository()


async def get_current_professional(
    current_user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> Professional:
    """Raises ProfessionalNotFoundError (404) when the caller has no profile."""
    professional = await _repo.get_professional_by_user_id(db, str(current_user.id))
    if professional is None:
        raise ProfessionalNotFoundError(str(current_user.id))
    return professional
