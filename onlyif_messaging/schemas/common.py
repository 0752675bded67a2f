"""Common API response schemas."""

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Success envelope shared by every route."""

    success: bool = True
    data: T


class ErrorResponse(BaseModel):
    """Failure envelope rendered by the exception handlers."""

    success: bool = False
    error: str
