"""Authenticated endpoints: content download, brand analysis and template-set upkeep."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from carousel_studio.api.auth import require_user
from carousel_studio.api.models import (
    BrandRequest,
    DirtyMarkResponse,
    DownloadRequest,
    DownloadResponse,
    StyleGuideResponse,
    TemplateRefreshRequest,
    TemplateSetsResponse,
)
from carousel_studio.core.brand import BrandStore, get_brand_store
from carousel_studio.core.download import DownloadAssembler, get_download_assembler
from carousel_studio.core.errors import InputError, NotFoundError
from carousel_studio.core.style_guide import BrandStyleAnalyzer, get_style_analyzer
from carousel_studio.core.template_sets import TemplateSetService, get_template_set_service

router = APIRouter()


def _brand_id(data: BrandRequest) -> str:
    if not data.brand_id:
        raise InputError("brandId is required")
    return data.brand_id


@router.post("/generate-download", response_model=DownloadResponse)
async def generate_download(
    data: DownloadRequest,
    user_id: str = Depends(require_user),
    assembler: DownloadAssembler = Depends(get_download_assembler),
) -> DownloadResponse:
    """Render a post's slides and return them zipped with the captions."""
    if not data.content_id:
        raise InputError("contentId is required")
    bundle = await assembler.assemble(data.content_id, user_id)
    return DownloadResponse(**bundle.as_response())


@router.post("/analyze-brand-examples", response_model=StyleGuideResponse)
async def analyze_brand_examples(
    data: BrandRequest,
    user_id: str = Depends(require_user),
    analyzer: BrandStyleAnalyzer = Depends(get_style_analyzer),
) -> StyleGuideResponse:
    """Derive a new style guide version from the brand's example images."""
    return StyleGuideResponse(**await analyzer.analyze(_brand_id(data)))


@router.post("/generate-template-sets", response_model=TemplateSetsResponse)
async def generate_template_sets(
    data: BrandRequest,
    user_id: str = Depends(require_user),
    service: TemplateSetService = Depends(get_template_set_service),
) -> TemplateSetsResponse:
    """Group the brand's examples into template sets."""
    return TemplateSetsResponse(**await service.generate(_brand_id(data)))


@router.post("/update-template-sets-if-needed")
async def update_template_sets_if_needed(
    data: TemplateRefreshRequest,
    user_id: str = Depends(require_user),
    service: TemplateSetService = Depends(get_template_set_service),
) -> dict[str, Any]:
    """Refresh template sets when forced or when the brand is dirty enough."""
    return await service.update_if_needed(_brand_id(data), force=data.force)


@router.post("/mark-template-sets-dirty", response_model=DirtyMarkResponse)
async def mark_template_sets_dirty(
    data: BrandRequest,
    user_id: str = Depends(require_user),
    brands: BrandStore = Depends(get_brand_store),
) -> DirtyMarkResponse:
    """Record a brand edit (e.g. an example added or removed) against its template sets."""
    brand = brands.mark_template_sets_dirty(_brand_id(data))
    if brand is None:
        raise NotFoundError("Brand not found")
    return DirtyMarkResponse(brandId=brand.id, dirtyCount=brand.template_sets_dirty_count)
