"""Template sets — groups a brand's examples into reusable visual styles."""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Any

from pydantic import ValidationError

from carousel_studio.config import Settings, get_settings
from carousel_studio.core.brand import BrandStore, should_refresh_template_sets
from carousel_studio.core.errors import ExtractionError, InputError, NotFoundError, StudioError, UpstreamError
from carousel_studio.core.extraction import extract_json_object
from carousel_studio.core.gateway import AIGateway, get_gateway
from carousel_studio.core.replies import TemplateSetsReply
from carousel_studio.core.style_guide import map_upstream_error
from carousel_studio.db.client import SupabaseClient, get_supabase_client
from carousel_studio.db.models import BrandRow
from carousel_studio.utils.logging import stage_logger

logger = stage_logger("generate-template-sets")

MAX_EXAMPLES = 20
MAX_SETS = 4
STYLE_GUIDE_EXCERPT_CHARS = 2000

TEMPLATE_SETS_SYSTEM_PROMPT = """You are an expert in Instagram content design. Analyse a brand's reference examples and group them into coherent "Template Sets".

Each Template Set is a distinct visual style that can be applied when generating content. A clinic might have, for example:
- "Clinical Case" (procedure photos, before/after)
- "Scientific Articles" (informative layouts with data)
- "Motivational Quotes" (minimal backgrounds with typography)

RULES:
- Create between 1 and 4 Template Sets based on the examples.
- Every Template Set covers at least 1 format (post/story/carousel).
- Use the visual patterns OBSERVED in the examples, do not invent.
- Group examples that share a similar visual style."""

TEMPLATE_SETS_USER_PROMPT = """Brand: {name}
Palette: {palette}
Visual tone: {tone}
Fonts: {fonts}
{rules}{style_guide}

REFERENCE EXAMPLES:
{examples}

Return EXACTLY this JSON (no markdown, no backticks):
{{
  "template_sets": [
    {{
      "name": "Descriptive name",
      "description": "When to use it",
      "id_hint": "snake_case_identifier",
      "source_example_ids": ["id1", "id2"],
      "formats": {{
        "post": {{"recommended_templates": ["wave_cover", "wave_text_card"], "layout_rules": {{}}, "typography": {{}}, "logo": {{}}, "text_limits": {{}}}},
        "story": {{"recommended_templates": ["story_cover", "story_tip"]}},
        "carousel": {{"recommended_templates": ["wave_cover", "wave_text_card", "wave_bullets", "wave_closing"], "slide_roles": ["cover", "context", "insight", "insight", "closing"]}}
      }},
      "notes": ["observed visual pattern"]
    }}
  ]
}}

Include ONLY the formats the examples cover."""


def build_template_set_messages(brand: BrandRow, examples: list[dict[str, Any]]) -> list[dict[str, str]]:
    palette = brand.palette
    palette_text = ", ".join(str(p) for p in palette) if isinstance(palette, list) and palette else "not defined"

    rules = ""
    if brand.do_rules:
        rules += f"Do: {brand.do_rules}\n"
    if brand.dont_rules:
        rules += f"Don't: {brand.dont_rules}\n"

    if brand.style_guide:
        excerpt = json.dumps(brand.style_guide, indent=2)[:STYLE_GUIDE_EXCERPT_CHARS]
        style_guide = f"\nCurrent style guide (v{brand.style_guide_version}):\n{excerpt}"
    else:
        style_guide = "\nNo style guide defined."

    example_lines = "\n".join(
        f"{i + 1}. [{ex.get('type') or 'post'}{'/' + ex['subtype'] if ex.get('subtype') else ''}] "
        f"{ex.get('description') or 'no description'} (id: {ex['id']})"
        for i, ex in enumerate(examples)
    )
    user = TEMPLATE_SETS_USER_PROMPT.format(
        name=brand.name,
        palette=palette_text,
        tone=brand.visual_tone or "clean",
        fonts=json.dumps(brand.fonts),
        rules=rules,
        style_guide=style_guide,
        examples=example_lines,
    )
    return [
        {"role": "system", "content": TEMPLATE_SETS_SYSTEM_PROMPT},
        {"role": "user", "content": user},
    ]


class TemplateSetService:
    """Generates template sets and decides when a dirty brand needs new ones."""

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

    def _require_brand(self, brand_id: str) -> BrandRow:
        brand = self.brands.get_brand(brand_id)
        if brand is None:
            raise NotFoundError("Brand not found")
        return brand

    async def generate(self, brand_id: str) -> dict[str, Any]:
        """Create new template sets from the brand's latest examples."""
        brand = self._require_brand(brand_id)
        examples = self.brands.list_examples(brand_id, limit=MAX_EXAMPLES)
        if not examples:
            raise InputError("No brand examples found. Upload examples first.")

        logger.info("template_sets.started", brand_id=brand_id, examples=len(examples))
        try:
            content = await self.gateway.chat(
                self.settings.analysis_model, build_template_set_messages(brand, examples)
            )
        except UpstreamError as e:
            logger.error("template_sets.upstream_error", brand_id=brand_id, status=e.upstream_status)
            raise map_upstream_error(e) from e

        extracted = extract_json_object(content)
        if not extracted.ok:
            logger.error("template_sets.parse_failed", brand_id=brand_id, error=extracted.error)
            raise ExtractionError("Invalid JSON from AI")
        try:
            reply = TemplateSetsReply.model_validate(extracted.value)
        except ValidationError as e:
            raise ExtractionError("Template sets did not match the expected format") from e

        if not reply.template_sets:
            raise StudioError("AI returned 0 template sets")

        inserted: list[dict[str, Any]] = []
        for ts in reply.template_sets[:MAX_SETS]:
            try:
                row = self.db.insert(
                    "brand_template_sets",
                    {
                        "brand_id": brand_id,
                        "name": ts.name,
                        "description": ts.description,
                        "status": "active",
                        "source_example_ids": ts.source_example_ids,
                        "template_set": {
                            "id_hint": ts.id_hint,
                            "formats": ts.formats,
                            "notes": ts.notes,
                        },
                    },
                )
            except Exception as e:
                logger.warning("template_sets.insert_failed", brand_id=brand_id, name=ts.name, error=str(e))
                continue
            inserted.append(row)

        if inserted and not brand.default_template_set_id:
            self.db.update("brands", brand_id, {"default_template_set_id": inserted[0]["id"]})

        self.brands.clear_template_sets_dirty(brand_id)
        logger.info("template_sets.created", brand_id=brand_id, count=len(inserted))
        return {"success": True, "count": len(inserted), "templateSets": inserted}

    async def update_if_needed(self, brand_id: str, force: bool = False) -> dict[str, Any]:
        """Regenerate only when forced or when the brand's dirty state calls for it."""
        brand = self._require_brand(brand_id)
        if not force:
            decision = should_refresh_template_sets(brand)
            if not decision.refresh:
                logger.info("template_sets.skipped", brand_id=brand_id, reason=decision.reason)
                result: dict[str, Any] = {"skipped": True, "reason": decision.reason}
                if decision.reason == "threshold_not_met":
                    result["dirty_count"] = decision.dirty_count
                    result["hours_since_update"] = round(decision.hours_since_update)
                return result

        return {"refreshed": True, **await self.generate(brand_id)}


@lru_cache
def get_template_set_service() -> TemplateSetService:
    """Get cached template set service."""
    return TemplateSetService(get_supabase_client(), get_gateway(), get_settings())
