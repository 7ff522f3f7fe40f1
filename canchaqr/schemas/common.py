from typing import Generic, List, Optional, TypeVar
from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Envelope shared by every endpoint."""
    success: bool = True
    message: str = ""
    data: Optional[T] = None


class DeletedResponse(BaseModel):
    id: int


class Pagination(BaseModel):
    limit: int
    offset: int
    total: int


class Page(BaseModel, Generic[T]):
    items: List[T] = []
    pagination: Pagination
