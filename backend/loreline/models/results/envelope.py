"""Response envelopes: every endpoint answers ``{data, meta?}``."""

from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class DataResponse(BaseModel, Generic[T]):
    data: T
    meta: Optional[dict[str, Any]] = None


class ListResponse(BaseModel, Generic[T]):
    data: list[T]
    meta: dict[str, Any] = Field(default_factory=dict)
