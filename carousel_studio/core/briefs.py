"""Visual Brief Generator — one structured creative brief per slide."""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Any

from pydantic import ValidationError

from carousel_studio.config import Settings, get_settings
from carousel_studio.core.brand import BrandStore, SlideContext, normalize_palette
from carousel_studio.core.errors import ExtractionError, NotFoundError
from carousel_studio.core.extraction import extract_json_object
from carousel_studio.core.gateway import AIGateway, get_gateway
from carousel_studio.core.replies import BriefReply
from carousel_studio.db.client import SupabaseClient, get_supabase_client
from carousel_studio.utils.logging import stage_logger

logger = stage_logger("create-visual-brief")

DEFAULT_TEXT_LIMIT_WORDS = 10

BRIEF_SYSTEM_PROMPT = """You are an Art Director specialised in visual content for social media.
Your task is to write a structured Visual Brief that guides high quality image generation.

Brand rules:
- Visual tone: {tone}
- Palette: {palette}
- Fonts: {fonts}
- Do: {do_rules}
- Avoid: {dont_rules}

Content type: {content_type}
{cover_note}
Reply ONLY with valid JSON in this format:
{{
  "theme": "main visual theme",
  "key_message": "central message to convey",
  "emotion": "main emotion (e.g. inspiration, urgency, curiosity, trust)",
  "visual_metaphor": "suggested visual metaphor",
  "style": "visual style (e.g. minimalist, editorial, bold, tech, organic)",
  "palette": ["#color1", "#color2", "#color3"],
  "negative_elements": "elements to keep out of the image",
  "text_on_image": true,
  "text_limit_words": 10,
  "composition_notes": "composition notes (rule of thirds, negative space, ...)"
}}"""

BRIEF_USER_PROMPT = """Write a Visual Brief for the following content:

POST CONTEXT:
{raw_post_text}

THIS SLIDE'S TEXT:
{slide_text}

SLIDE: {number}{cover_tag}"""


def build_brief_messages(ctx: SlideContext) -> list[dict[str, str]]:
    """Chat messages asking for the brief of one slide."""
    brand = ctx.brand
    is_cover = ctx.slide.is_cover
    system = BRIEF_SYSTEM_PROMPT.format(
        tone=brand.visual_tone or "clean",
        palette=json.dumps(brand.palette or []),
        fonts=json.dumps(brand.fonts or {}),
        do_rules=brand.do_rules or "No specific rules",
        dont_rules=brand.dont_rules or "No specific restrictions",
        content_type=ctx.post.content_type.value,
        cover_note="This is the COVER slide: it must be impactful and grab attention.\n"
        if is_cover
        else "",
    )
    user = BRIEF_USER_PROMPT.format(
        raw_post_text=ctx.post.raw_post_text,
        slide_text=ctx.slide.slide_text or "No specific text",
        number=ctx.slide.slide_index + 1,
        cover_tag=" (COVER)" if is_cover else "",
    )
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": user},
    ]


def brief_row(slide_id: str, reply: BriefReply, brand_palette: Any) -> dict[str, Any]:
    """Map a validated reply onto the visual_briefs row, filling defaults."""
    return {
        "slide_id": slide_id,
        "theme": reply.theme,
        "key_message": reply.key_message,
        "emotion": reply.emotion,
        "visual_metaphor": reply.visual_metaphor,
        "style": reply.style,
        "palette": reply.palette or [c["hex"] for c in normalize_palette(brand_palette)],
        "negative_elements": reply.negative_elements,
        "text_on_image": True if reply.text_on_image is None else reply.text_on_image,
        "text_limit_words": reply.text_limit_words
        if reply.text_limit_words is not None
        else DEFAULT_TEXT_LIMIT_WORDS,
        "composition_notes": reply.composition_notes,
    }


class VisualBriefGenerator:
    """Produces and upserts the VisualBrief for a slide with one model call."""

    def __init__(
        self,
        db: SupabaseClient,
        gateway: AIGateway,
        settings: Settings,
        brands: BrandStore | None = None,
    ) -> None:
        self.db = db
        self.gateway = gateway
        self.settings = settings
        self.brands = brands or BrandStore(db)

    async def create_brief(self, slide_id: str) -> dict[str, Any]:
        """Generate the slide's brief, replacing any previous one."""
        logger.info("visual_brief.started", slide_id=slide_id)

        ctx = self.brands.find_slide_context(slide_id)
        if ctx is None:
            logger.warning("visual_brief.slide_not_found", slide_id=slide_id)
            raise NotFoundError("Slide not found")

        content = await self.gateway.chat(self.settings.text_model, build_brief_messages(ctx))

        extracted = extract_json_object(content)
        if not extracted.ok:
            logger.warning("visual_brief.parse_failed", slide_id=slide_id, error=extracted.error)
            raise ExtractionError("Could not parse JSON from AI response")

        try:
            reply = BriefReply.model_validate(extracted.value)
        except ValidationError as e:
            logger.warning("visual_brief.invalid_shape", slide_id=slide_id, error=str(e))
            raise ExtractionError("AI response did not match the visual brief format") from e

        saved = self.db.upsert(
            "visual_briefs",
            brief_row(slide_id, reply, ctx.brand.palette),
            on_conflict="slide_id",
        )
        logger.info("visual_brief.saved", slide_id=slide_id, brief_id=saved.get("id"))
        return saved


@lru_cache
def get_brief_generator() -> VisualBriefGenerator:
    """Get cached brief generator."""
    return VisualBriefGenerator(get_supabase_client(), get_gateway(), get_settings())
