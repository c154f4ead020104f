from fastapi import APIRouter, Depends

from expense_api.middleware.auth import get_current_principal
from expense_api.middleware.lifecycle import get_lifecycle_service
from expense_api.schemas.lookup import CategoryResponse, CostCenterResponse
from expense_api.services.authorization import Principal
from expense_api.services.lifecycle_service import LifecycleService

router = APIRouter()


@router.get("/categories", response_model=list[CategoryResponse])
async def list_categories(
    principal: Principal = Depends(get_current_principal),
    service: LifecycleService = Depends(get_lifecycle_service),
):
    return [CategoryResponse(id=str(c.id), name=c.name) for c in await service.list_categories()]


@router.get("/cost-centers", response_model=list[CostCenterResponse])
async def list_cost_centers(
    principal: Principal = Depends(get_current_principal),
    service: LifecycleService = Depends(get_lifecycle_service),
):
    return [
        CostCenterResponse(id=str(c.id), name=c.name, code=c.code)
        for c in await service.list_cost_centers()
    ]
