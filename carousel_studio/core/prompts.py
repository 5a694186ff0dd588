"""Image Prompt Builder — turns a slide's visual brief into image-model prompts."""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Any

from pydantic import ValidationError

from carousel_studio.config import Settings, get_settings
from carousel_studio.core.brand import BrandStore
from carousel_studio.core.errors import ExtractionError, NotFoundError, StudioError
from carousel_studio.core.extraction import extract_json_object
from carousel_studio.core.gateway import AIGateway, get_gateway
from carousel_studio.core.replies import PromptsReply
from carousel_studio.db.client import SupabaseClient, get_supabase_client
from carousel_studio.db.models import QualityTier, VisualBriefRow
from carousel_studio.utils.logging import stage_logger

logger = stage_logger("build-image-prompts")

MAX_VARIANTS = 3

CONTENT_TYPE_PRESETS = {
    "noticia": "editorial photography style, news magazine aesthetic, professional journalism, clean layout with text overlay area",
    "educativo": "modern infographic style, clean educational visuals, structured layout, learning-focused design",
    "frase": "typographic design, abstract background, minimal elements, focus on text space, inspirational quote aesthetic",
    "curiosidade": "engaging visual storytelling, surprise element, attention-grabbing, vibrant and intriguing",
    "tutorial": "step-by-step visual guide, clear instructional design, numbered sequence, easy to follow",
    "anuncio": "commercial photography, product-focused, high-end advertising, premium look and feel",
}

TONE_PRESETS = {
    "clean": "minimalist, lots of white space, simple geometric shapes, uncluttered",
    "editorial": "magazine quality, sophisticated typography, professional photography",
    "tech": "futuristic, digital elements, gradient overlays, modern tech aesthetic",
    "luxury": "premium materials, gold accents, elegant, high-end fashion",
    "playful": "bright colors, fun shapes, energetic, youthful",
    "organic": "natural textures, earth tones, botanical elements, sustainable feel",
}

PROMPTS_SYSTEM_PROMPT = """You are an expert in prompts for image generation models such as DALL-E, Midjourney and Stable Diffusion.
Write {count} alternative high quality prompts based on the Visual Brief provided.

RULES:
1. Each prompt takes a different visual approach but keeps the same message
2. If text_on_image=true, the prompt MUST reserve clean space for text
3. Always include: artistic style, lighting, composition, colors
4. Avoid: {negative_elements}
5. Avoid: {dont_rules}
6. Include: {do_rules}
7. Use the color palette: {palette}

Content type preset: {content_preset}
Visual tone preset: {tone_preset}

Reply ONLY with valid JSON:
{{
  "prompts": [
    {{
      "prompt": "complete prompt in English",
      "negative_prompt": "elements to avoid",
      "approach": "short description of the approach (e.g. 'abstract minimal', 'editorial photo', 'bold illustration')"
    }}
  ]
}}"""

PROMPTS_USER_PROMPT = """Write {count} image prompts for:

VISUAL BRIEF:
- Theme: {theme}
- Key message: {key_message}
- Emotion: {emotion}
- Visual metaphor: {visual_metaphor}
- Style: {style}
- Composition: {composition_notes}
- Text on image: {text_on_image}

CONTEXT:
- Slide {number}{cover_tag}
- Slide text: {slide_text}
- Brand: {brand_name}"""


def content_preset(content_type: str) -> str:
    return CONTENT_TYPE_PRESETS.get(content_type, CONTENT_TYPE_PRESETS["educativo"])


def tone_preset(visual_tone: str | None) -> str:
    return TONE_PRESETS.get(visual_tone or "", TONE_PRESETS["clean"])


class ImagePromptBuilder:
    """Builds and stores up to three prompt variants for a slide."""

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

    async def build_prompts(self, slide_id: str) -> list[dict[str, Any]]:
        """Replace the slide's prompts with freshly generated variants."""
        logger.info("image_prompts.started", slide_id=slide_id)

        briefs = self.db.select("visual_briefs", filters={"slide_id": slide_id}, limit=1)
        ctx = self.brands.find_slide_context(slide_id)
        if not briefs or ctx is None:
            logger.warning("image_prompts.brief_not_found", slide_id=slide_id)
            raise NotFoundError("Visual brief not found. Run create-visual-brief first.")

        brief = VisualBriefRow(**briefs[0])
        brand = ctx.brand
        is_cover = ctx.slide.is_cover

        system = PROMPTS_SYSTEM_PROMPT.format(
            count=MAX_VARIANTS,
            negative_elements=brief.negative_elements or "nothing specific",
            dont_rules=brand.dont_rules or "nothing specific",
            do_rules=brand.do_rules or "nothing specific",
            palette=json.dumps(brief.palette or brand.palette or []),
            content_preset=content_preset(ctx.post.content_type.value),
            tone_preset=tone_preset(brand.visual_tone),
        )
        user = PROMPTS_USER_PROMPT.format(
            count=MAX_VARIANTS,
            theme=brief.theme,
            key_message=brief.key_message,
            emotion=brief.emotion,
            visual_metaphor=brief.visual_metaphor,
            style=brief.style,
            composition_notes=brief.composition_notes,
            text_on_image=f"YES (max {brief.text_limit_words} words)" if brief.text_on_image else "NO",
            number=ctx.slide.slide_index + 1,
            cover_tag=" (COVER, must be impactful)" if is_cover else "",
            slide_text=ctx.slide.slide_text or "No text",
            brand_name=brand.name,
        )

        content = await self.gateway.chat(
            self.settings.text_model,
            [{"role": "system", "content": system}, {"role": "user", "content": user}],
        )

        extracted = extract_json_object(content)
        if not extracted.ok:
            logger.warning("image_prompts.parse_failed", slide_id=slide_id, error=extracted.error)
            raise ExtractionError("Could not parse JSON from AI response")
        try:
            reply = PromptsReply.model_validate(extracted.value)
        except ValidationError as e:
            raise ExtractionError("AI response did not match the image prompt format") from e

        variants = reply.prompts[:MAX_VARIANTS]
        if not variants:
            raise StudioError("No prompts generated")

        hint = QualityTier.HIGH if is_cover else QualityTier.CHEAP
        self.db.delete_where("image_prompts", {"slide_id": slide_id})
        saved = self.db.insert_many(
            "image_prompts",
            [
                {
                    "slide_id": slide_id,
                    "brief_id": brief.id,
                    "prompt": v.prompt,
                    "negative_prompt": v.negative_prompt or brief.negative_elements,
                    "model_hint": hint.value,
                    "variant_index": i + 1,
                }
                for i, v in enumerate(variants)
            ],
        )

        logger.info("image_prompts.saved", slide_id=slide_id, count=len(saved))
        return [{**row, "approach": variants[i].approach} for i, row in enumerate(saved)]


@lru_cache
def get_prompt_builder() -> ImagePromptBuilder:
    """Get cached prompt builder."""
    return ImagePromptBuilder(get_supabase_client(), get_gateway(), get_settings())
