from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from expense_api.database import get_db
from expense_api.services.lifecycle_service import LifecycleService


async def get_lifecycle_service(
    db: AsyncSession = Depends(get_db),
) -> LifecycleService:
    """FastAPI dependency: lifecycle façade bound to the request's DB session."""
    return LifecycleService(db)
