"""Pydantic request/response models for the API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from carousel_studio.db.models import QualityTier


# --- Pipeline stages ---


class SlideRequest(BaseModel):
    """Body of the single-slide stages. ``slide_id`` is checked by the route."""

    slide_id: str | None = None


class VariationsRequest(SlideRequest):
    prompt_id: str | None = None
    quality_tier: QualityTier | str = QualityTier.CHEAP
    n_variations: int = Field(default=2, ge=1, le=8)


class SelectGenerationRequest(SlideRequest):
    generation_id: str | None = None


class BriefResponse(BaseModel):
    success: bool = True
    brief: dict[str, Any]


class PromptsResponse(BaseModel):
    success: bool = True
    prompts: list[dict[str, Any]]


class VariationsResponse(BaseModel):
    success: bool = True
    generations: list[dict[str, Any]]
    count: int


class RankingResponse(BaseModel):
    """``fallback`` is set only when the model's ranking could not be used."""

    success: bool = True
    best: dict[str, Any]
    rankings: list[dict[str, Any]] | None = None
    metrics: dict[str, Any] | None = None
    fallback: bool | None = None


class SelectionResponse(BaseModel):
    success: bool = True
    best: dict[str, Any]


# --- Downloads & brands (authenticated, camelCase bodies) ---


class _CamelRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class DownloadRequest(_CamelRequest):
    content_id: str | None = Field(default=None, alias="contentId")


class DownloadResponse(BaseModel):
    success: bool = True
    zipBase64: str
    imageUrls: list[str]
    filename: str


class BrandRequest(_CamelRequest):
    brand_id: str | None = Field(default=None, alias="brandId")


class TemplateRefreshRequest(BrandRequest):
    force: bool = False


class StyleGuideResponse(BaseModel):
    success: bool = True
    styleGuide: dict[str, Any]
    version: int


class TemplateSetsResponse(BaseModel):
    success: bool = True
    count: int
    templateSets: list[dict[str, Any]]


class DirtyMarkResponse(BaseModel):
    success: bool = True
    brandId: str
    dirtyCount: int
