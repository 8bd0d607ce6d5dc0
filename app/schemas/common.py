from typing import Optional, List, Generic, TypeVar
from pydantic import BaseModel

T = TypeVar("T")


# Paginated response wrapper: used by all list endpoints
class PaginatedResponse(BaseModel, Generic[T]):
    data: List[T]
    total: int
    page: int
    limit: int
    total_pages: int


# Approver queues also report how many items the caller's role has not seen yet
class ApprovalQueueResponse(PaginatedResponse[T], Generic[T]):
    unread_count: int = 0


# Error responses
class ErrorResponse(BaseModel):
    error: str
    message: str
    current_status: Optional[str] = None
    requested_status: Optional[str] = None


class MarkedReadResponse(BaseModel):
    marked_read: int
