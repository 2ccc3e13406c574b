"""Shared model base and field types for the timeline API."""

import json
from typing import Annotated, Any, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, FiniteFloat, StringConstraints
from pydantic.alias_generators import to_camel

LIST_DEFAULT_LIMIT = 50
LIST_MAX_LIMIT = 200
HISTORY_DEFAULT_LIMIT = 200
HISTORY_MAX_LIMIT = 1000


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _serialize_raw_value(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    return json.dumps(value)


def _clean_tags(value: Any) -> Any:
    if value is None:
        return []
    if isinstance(value, list):
        return [tag.strip() for tag in value if isinstance(tag, str) and tag.strip()]
    return value


RequiredText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
OptionalText = Annotated[Optional[str], BeforeValidator(_blank_to_none)]
RawValue = Annotated[Optional[str], BeforeValidator(_serialize_raw_value)]
Tags = Annotated[list[str], BeforeValidator(_clean_tags)]
Tick = FiniteFloat
NonNegative = Annotated[FiniteFloat, Field(ge=0)]


class CamelModel(BaseModel):
    """Snake-case attributes, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PageQuery(CamelModel):
    """Free-text search plus offset pagination shared by every list endpoint."""

    q: OptionalText = None
    limit: int = Field(default=LIST_DEFAULT_LIMIT, ge=1, le=LIST_MAX_LIMIT)
    offset: int = Field(default=0, ge=0)


def check_range(start: float | None, end: float | None, start_name: str, end_name: str) -> None:
    """Raise when both bounds are present and ``end < start``."""
    if start is not None and end is not None and end < start:
        raise ValueError(f"{end_name} must be >= {start_name}")
