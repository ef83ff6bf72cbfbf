from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class SearchResult(BaseModel):
    entity: dict[str, Any]
    relevance_score: int = Field(..., ge=0)
    display: dict[str, str] = Field(default_factory=dict)


class SearchPage(BaseModel):
    results: list[SearchResult]
    total: int
    page: int
    limit: int
    pages: int
    filter: str


class SearchMeta(BaseModel):
    total: int
    page: int
    limit: int
    pages: int
    filter: str


class SearchResponse(BaseModel):
    success: bool = True
    data: list[SearchResult]
    meta: SearchMeta
