"""Brand style analysis — derives a versioned style guide from a brand's example images."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

from pydantic import ValidationError

from carousel_studio.config import Settings, get_settings
from carousel_studio.core.brand import BrandStore
from carousel_studio.core.errors import ExtractionError, InputError, NotFoundError, UpstreamError
from carousel_studio.core.extraction import extract_json_object
from carousel_studio.core.gateway import AIGateway, get_gateway
from carousel_studio.core.replies import StyleGuideReply
from carousel_studio.db.client import SupabaseClient, get_supabase_client
from carousel_studio.db.models import BrandExampleRow, BrandRow
from carousel_studio.utils.logging import stage_logger

logger = stage_logger("analyze-brand-examples")

MAX_EXAMPLES = 12
MAX_IMAGES = 6

RATE_LIMIT_MESSAGE = "Rate limit exceeded, try again in a few minutes."
CREDITS_MESSAGE = "Insufficient credits. Add credits to the workspace."

STYLE_GUIDE_PROMPT = """You are a senior brand identity analyst specialising in social media visual systems. Analyse the provided brand example images and the metadata below. Return ONLY valid JSON (no markdown, no code fences).

BRAND METADATA:
- Name: {name}
- Current palette: {palette}
- Visual tone: {tone}
- Fonts: {fonts}
- Do rules: {do_rules}
- Don't rules: {dont_rules}
- Logo URL: {logo_url}

EXAMPLES METADATA:
{examples}

ANALYSIS INSTRUCTIONS:
1. Look ONLY at what appears in the actual images. Do NOT invent elements.
2. Identify recurring visual patterns: shapes, wave positions, card styles, color distribution, typography weight/size, logo placement.
3. Group findings by format (post, story, carousel) based on the type metadata.
4. For each format, recommend the templates that match best: wave_cover, wave_text_card, wave_bullets, wave_closing, story_cover, story_tip, generic_free.
5. Extract the exact colors seen (confirm against the provided palette).
6. Note text placement zones, safe margins and composition patterns.

Return this JSON structure:
{{
  "style_preset": "<short unique id such as 'medical_wave_minimal'>",
  "confidence": "{confidence}",
  "brand_tokens": {{
    "palette_roles": {{"primary": "#hex", "secondary": "#hex", "accent": "#hex", "background": "#hex", "text_primary": "#hex", "text_secondary": "#hex"}},
    "typography": {{"headline_weight": 700, "body_weight": 400, "uppercase_headlines": false, "headline_alignment": "left|center", "body_alignment": "left|center"}},
    "logo": {{"preferred_position": "top-right|top-left|bottom-center|bottom-right", "watermark_opacity": 0.35, "size_hint": "small|medium"}}
  }},
  "formats": {{
    "post": {{"recommended_templates": ["wave_cover", "wave_text_card"], "layout_rules": {{"wave_height_pct": 20, "footer_height_px": 140, "safe_margin_px": 96, "background_style": "solid|gradient|image"}}, "text_limits": {{"headline_chars": [35, 60], "body_chars": [140, 260]}}}},
    "story": {{"recommended_templates": ["story_cover", "story_tip"], "layout_rules": {{"safe_top_px": 220, "safe_bottom_px": 260, "safe_side_px": 90, "background_style": "solid|gradient|image"}}, "text_limits": {{"headline_chars": [25, 45], "body_chars": [90, 160]}}}},
    "carousel": {{"recommended_templates": ["wave_cover", "wave_text_card", "wave_bullets", "wave_closing"], "slide_roles": ["cover", "context", "insight", "insight", "closing"], "text_limits": {{"headline_chars": [35, 60], "body_chars": [160, 260], "bullets_max": 5}}}}
  }},
  "visual_patterns": ["one distinct visual pattern per entry"],
  "do_summary": ["positive rules based on the examples and brand rules"],
  "dont_summary": ["negative rules based on the examples and brand rules"]
}}"""


def confidence_for(example_count: int) -> str:
    if example_count >= 8:
        return "high"
    if example_count >= 4:
        return "medium"
    return "low"


def map_upstream_error(error: UpstreamError) -> UpstreamError:
    """Pass rate-limit (429) and credit (402) answers through; anything else stays a 500."""
    if error.upstream_status == 429:
        return error.passthrough(RATE_LIMIT_MESSAGE)
    if error.upstream_status == 402:
        return error.passthrough(CREDITS_MESSAGE)
    return error


def build_style_guide_content(
    brand: BrandRow, examples: list[BrandExampleRow], confidence: str
) -> list[dict[str, Any]]:
    """Multimodal user message: the instructions followed by the first example images."""
    summary = "\n".join(
        f'Image {i + 1}: type={ex.type or ex.content_type or "post"}, '
        f'subtype={ex.subtype or "none"}, description="{ex.description or "none"}"'
        for i, ex in enumerate(examples)
    )
    text = STYLE_GUIDE_PROMPT.format(
        name=brand.name,
        palette=json.dumps(brand.palette),
        tone=brand.visual_tone or "not set",
        fonts=json.dumps(brand.fonts),
        do_rules=brand.do_rules or "none",
        dont_rules=brand.dont_rules or "none",
        logo_url=brand.logo_url or "none",
        examples=summary,
        confidence=confidence,
    )
    parts: list[dict[str, Any]] = [{"type": "text", "text": text}]
    parts.extend(
        {"type": "image_url", "image_url": {"url": ex.image_url}} for ex in examples[:MAX_IMAGES]
    )
    return parts


class BrandStyleAnalyzer:
    """Runs the style analysis for a brand and stores the result as a new version."""

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

    async def analyze(self, brand_id: str) -> dict[str, Any]:
        logger.info("style_guide.started", brand_id=brand_id)

        brand = self.brands.get_brand(brand_id)
        if brand is None:
            raise NotFoundError("Brand not found")

        examples = [BrandExampleRow(**r) for r in self.brands.list_examples(brand_id, limit=MAX_EXAMPLES)]
        if not examples:
            raise InputError("No brand examples found. Upload at least 1 example image.")

        confidence = confidence_for(len(examples))
        logger.info("style_guide.examples", brand_id=brand_id, count=len(examples), confidence=confidence)

        content = build_style_guide_content(brand, examples, confidence)
        try:
            raw = await self.gateway.chat(
                self.settings.analysis_model, [{"role": "user", "content": content}]
            )
        except UpstreamError as e:
            logger.error("style_guide.upstream_error", brand_id=brand_id, status=e.upstream_status)
            raise map_upstream_error(e) from e

        extracted = extract_json_object(raw)
        if not extracted.ok:
            logger.error("style_guide.parse_failed", brand_id=brand_id, error=extracted.error)
            raise ExtractionError("Failed to parse style guide from AI response")
        try:
            guide = StyleGuideReply.model_validate(extracted.value)
        except ValidationError as e:
            raise ExtractionError("Style guide did not match the expected format") from e

        version = (brand.style_guide_version or 0) + 1
        style_guide = guide.model_dump()
        self.db.update(
            "brands",
            brand_id,
            {
                "style_guide": style_guide,
                "style_guide_version": version,
                "style_guide_updated_at": datetime.now(timezone.utc).isoformat(),
            },
        )

        logger.info(
            "style_guide.saved", brand_id=brand_id, version=version, style_preset=guide.style_preset
        )
        return {"success": True, "styleGuide": style_guide, "version": version}


@lru_cache
def get_style_analyzer() -> BrandStyleAnalyzer:
    """Get cached style analyzer."""
    return BrandStyleAnalyzer(get_supabase_client(), get_gateway(), get_settings())
