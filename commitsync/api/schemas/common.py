"""Shared schemas — camelCase request base and pagination."""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Request body accepting camelCase (wire) or snake_case field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PageMeta(BaseModel):
    next_cursor: str | None
    has_more: bool


class PaginatedResponse(BaseModel, Generic[T]):
    """Keyset-paginated list response; pass ``next_cursor`` back to continue."""

    data: list[T]
    meta: PageMeta

    @classmethod
    def from_result(cls, result: dict[str, Any]) -> PaginatedResponse[T]:
        """Build from a service ``{"data", "next_cursor", "has_more"}`` dict."""
        return cls.model_validate(
            {
                "data": result["data"],
                "meta": {"next_cursor": result["next_cursor"], "has_more": result["has_more"]},
            },
            from_attributes=True,
        )
