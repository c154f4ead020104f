from typing import Optional
from pydantic import BaseModel


class CategoryResponse(BaseModel):
    id: str
    name: str


class CostCenterResponse(BaseModel):
    id: str
    name: str
    code: Optional[str] = None
