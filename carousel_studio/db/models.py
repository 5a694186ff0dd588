"""Database models / type definitions.

These mirror the Supabase tables for type safety in Python code.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ContentType(str, Enum):
    """Editorial kind of a studio post."""

    NOTICIA = "noticia"
    EDUCATIVO = "educativo"
    FRASE = "frase"
    CURIOSIDADE = "curiosidade"
    TUTORIAL = "tutorial"
    ANUNCIO = "anuncio"


class QualityTier(str, Enum):
    """Cost/quality knob selecting the upstream image model."""

    CHEAP = "cheap"
    HIGH = "high"


class BrandRow(BaseModel):
    """Row from the brands table."""

    id: str
    name: str
    palette: Any = Field(default_factory=list)
    fonts: dict[str, Any] | None = None
    visual_tone: str | None = None
    do_rules: str | None = None
    dont_rules: str | None = None
    logo_url: str | None = None
    style_guide: dict[str, Any] | None = None
    style_guide_version: int = 0
    style_guide_updated_at: datetime | None = None
    template_sets_dirty: bool = False
    template_sets_dirty_count: int = 0
    template_sets_updated_at: datetime | None = None
    default_template_set_id: str | None = None


class BrandExampleRow(BaseModel):
    """Row from the brand_examples table."""

    id: str
    brand_id: str
    image_url: str
    thumb_url: str | None = None
    description: str | None = None
    content_type: str | None = None
    type: str = "post"
    subtype: str | None = None
    created_at: datetime | None = None


class ProjectRow(BaseModel):
    """Row from the projects table."""

    id: str
    brand_id: str
    name: str = ""
    description: str | None = None


class PostRow(BaseModel):
    """Row from the posts table."""

    id: str
    project_id: str
    raw_post_text: str = ""
    content_type: ContentType = ContentType.EDUCATIVO
    status: str = "draft"


class SlideRow(BaseModel):
    """Row from the slides table. ``slide_index`` 0 is always the cover."""

    id: str
    post_id: str
    slide_index: int = 0
    slide_text: str | None = None
    layout_preset: str = "default"

    @property
    def is_cover(self) -> bool:
        return self.slide_index == 0


class VisualBriefRow(BaseModel):
    """Row from the visual_briefs table (one per slide)."""

    id: str
    slide_id: str
    theme: str | None = None
    key_message: str | None = None
    emotion: str | None = None
    visual_metaphor: str | None = None
    style: str | None = None
    palette: list[str] = Field(default_factory=list)
    negative_elements: str | None = None
    text_on_image: bool = True
    text_limit_words: int = 10
    composition_notes: str | None = None


class ImagePromptRow(BaseModel):
    """Row from the image_prompts table."""

    id: str
    slide_id: str
    brief_id: str | None = None
    prompt: str
    negative_prompt: str | None = None
    model_hint: QualityTier = QualityTier.CHEAP
    variant_index: int = 1


class ImageGenerationRow(BaseModel):
    """Row from the image_generations table."""

    id: str
    slide_id: str
    prompt_id: str | None = None
    model_used: str | None = None
    image_url: str | None = None
    thumb_url: str | None = None
    width: int = 1080
    height: int = 1080
    seed: str | None = None
    ranking_score: float | None = None
    ranking_reason: str | None = None
    is_selected: bool = False
    created_at: datetime | None = None


class QualityMetricsRow(BaseModel):
    """Row from the quality_metrics table (one per slide, winner only)."""

    id: str
    slide_id: str
    adherence: float | None = None
    legibility: float | None = None
    brand_consistency: float | None = None
    premium_look: float | None = None
    publish_readiness: float | None = None
    publish_ready: bool = False


class TemplateSetRow(BaseModel):
    """Row from the brand_template_sets table."""

    id: str
    brand_id: str
    name: str
    description: str | None = None
    status: str = "active"
    source_example_ids: list[str] = Field(default_factory=list)
    template_set: dict[str, Any] = Field(default_factory=dict)


class GeneratedContentRow(BaseModel):
    """Row from the generated_contents table — the exportable post."""

    id: str
    user_id: str
    title: str = ""
    caption: str | None = None
    hashtags: list[str] | None = None
    content_type: str = "carousel"
    slides: list[dict[str, Any]] | None = None
    brand_snapshot: dict[str, Any] | None = None
    brand_id: str | None = None
    image_urls: list[str] | None = None
    status: str | None = None
    visual_mode: str | None = None
