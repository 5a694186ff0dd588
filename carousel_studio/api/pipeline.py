"""Slide pipeline endpoints: brief, prompts, variations, ranking and selection."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from carousel_studio.api.models import (
    BriefResponse,
    PromptsResponse,
    RankingResponse,
    SelectGenerationRequest,
    SelectionResponse,
    SlideRequest,
    VariationsRequest,
    VariationsResponse,
)
from carousel_studio.core.briefs import VisualBriefGenerator, get_brief_generator
from carousel_studio.core.errors import InputError
from carousel_studio.core.prompts import ImagePromptBuilder, get_prompt_builder
from carousel_studio.core.ranking import RankingEngine, get_ranking_engine
from carousel_studio.core.variations import ImageVariationGenerator, get_variation_generator

router = APIRouter()


def _slide_id(data: SlideRequest) -> str:
    if not data.slide_id:
        raise InputError("slide_id is required")
    return data.slide_id


@router.post("/create-visual-brief", response_model=BriefResponse)
async def create_visual_brief(
    data: SlideRequest,
    generator: VisualBriefGenerator = Depends(get_brief_generator),
) -> BriefResponse:
    """Generate (or regenerate) the visual brief of a slide."""
    brief = await generator.create_brief(_slide_id(data))
    return BriefResponse(brief=brief)


@router.post("/build-image-prompts", response_model=PromptsResponse)
async def build_image_prompts(
    data: SlideRequest,
    builder: ImagePromptBuilder = Depends(get_prompt_builder),
) -> PromptsResponse:
    """Replace a slide's image prompts with fresh variants from its brief."""
    prompts = await builder.build_prompts(_slide_id(data))
    return PromptsResponse(prompts=prompts)


@router.post("/generate-image-variations", response_model=VariationsResponse)
async def generate_image_variations(
    data: VariationsRequest,
    generator: ImageVariationGenerator = Depends(get_variation_generator),
) -> VariationsResponse:
    """Generate candidate images for a slide's prompts."""
    generations = await generator.generate(
        _slide_id(data),
        prompt_id=data.prompt_id,
        quality_tier=data.quality_tier,
        n_variations=data.n_variations,
    )
    return VariationsResponse(generations=generations, count=len(generations))


@router.post(
    "/rank-and-select", response_model=RankingResponse, response_model_exclude_none=True
)
async def rank_and_select(
    data: SlideRequest,
    engine: RankingEngine = Depends(get_ranking_engine),
) -> RankingResponse:
    """Score a slide's recent candidates and select the best one."""
    outcome = await engine.rank_and_select(_slide_id(data))
    return RankingResponse(**outcome.as_response())


@router.post("/select-generation", response_model=SelectionResponse)
async def select_generation(
    data: SelectGenerationRequest,
    engine: RankingEngine = Depends(get_ranking_engine),
) -> SelectionResponse:
    """Manually pick a slide's generation."""
    slide_id = _slide_id(data)
    if not data.generation_id:
        raise InputError("generation_id is required")
    return SelectionResponse(best=engine.select_generation(slide_id, data.generation_id))
