from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ListResponse(BaseModel, Generic[T]):
    items: list[T]
    count: int
    limit: int
    offset: int
    total: int


class ErrorResponse(BaseModel):
    """Envelope produced by ``coachbill.errors.register_error_handlers``."""

    code: str
    message: str
    details: object | None = None
    request_id: str


ERROR_RESPONSES: dict[int | str, dict] = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}
