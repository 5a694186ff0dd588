"""Image Variation Generator — candidate images for a slide's prompts.

Calls to the image model are strictly sequential: one prompt after another,
one variation after another, with a short pause between successful calls and
a longer one after a rate-limit answer. A variation that fails for any reason
is logged and skipped; it is never resubmitted.
"""

from __future__ import annotations

import asyncio
import time
from functools import lru_cache
from typing import Any, Awaitable, Callable

from carousel_studio.config import Settings, get_settings
from carousel_studio.core.brand import BrandStore, BrandTokens, brand_tokens_block, build_brand_tokens
from carousel_studio.core.errors import StudioError, UpstreamError
from carousel_studio.core.gateway import AIGateway, decode_data_url, extension_for, get_gateway
from carousel_studio.db.client import SupabaseClient, get_supabase_client
from carousel_studio.db.models import ImagePromptRow, QualityTier, VisualBriefRow
from carousel_studio.utils.logging import stage_logger

logger = stage_logger("generate-image-variations")

IMAGE_SIZE = 1080
FORMAT_SUFFIX = "Ultra high resolution, professional quality, 1080x1080 square format for Instagram."


def model_for_tier(tier: QualityTier | str, settings: Settings) -> str:
    """``high`` maps to the higher-tier model; anything else to the cheap default."""
    value = tier.value if isinstance(tier, QualityTier) else tier
    if value == QualityTier.HIGH.value:
        return settings.image_model_high
    return settings.image_model_cheap


def compose_variation_prompt(
    prompt: ImagePromptRow,
    variation: int,
    n_variations: int,
    tokens: BrandTokens | None = None,
    brief: VisualBriefRow | None = None,
) -> str:
    """Full text sent to the image model for one variation (``variation`` is 0-based)."""
    suffix = (
        f". Variation {variation + 1}: slightly different composition and lighting."
        if n_variations > 1
        else ""
    )
    body = f"{prompt.prompt}{suffix} {FORMAT_SUFFIX}"
    if tokens is None:
        return body

    allow_text = brief.text_on_image if brief is not None else False
    negatives = [prompt.negative_prompt] if prompt.negative_prompt else []
    block = brand_tokens_block(tokens, extra_negatives=negatives, allow_text=allow_text)
    return f"{block}\n=== PROMPT ===\n{body}"


def _now_ms() -> int:
    return int(time.time() * 1000)


class ImageVariationGenerator:
    """Generates N variations per prompt and records each as a candidate."""

    def __init__(
        self,
        db: SupabaseClient,
        gateway: AIGateway,
        settings: Settings,
        brands: BrandStore | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.db = db
        self.gateway = gateway
        self.settings = settings
        self.brands = brands or BrandStore(db)
        self._sleep = sleep

    def _load_prompts(self, slide_id: str, prompt_id: str | None) -> list[ImagePromptRow]:
        filters: dict[str, Any] = {"slide_id": slide_id}
        if prompt_id:
            filters["id"] = prompt_id
        rows = self.db.select("image_prompts", filters=filters, order_by="variant_index")
        return [ImagePromptRow(**r) for r in rows]

    def _load_brief(self, slide_id: str) -> VisualBriefRow | None:
        rows = self.db.select("visual_briefs", filters={"slide_id": slide_id}, limit=1)
        return VisualBriefRow(**rows[0]) if rows else None

    async def _generate_one(
        self,
        slide_id: str,
        prompt: ImagePromptRow,
        variation: int,
        model: str,
        text: str,
    ) -> dict[str, Any] | None:
        image_url = await self.gateway.generate_image(model, text)
        if not image_url:
            logger.warning(
                "variations.no_image", slide_id=slide_id, prompt_id=prompt.id, variation=variation + 1
            )
            return None

        data, mime = decode_data_url(image_url)
        ts = _now_ms()
        path = f"{slide_id}/{prompt.id}_v{variation + 1}_{ts}.{extension_for(mime)}"
        public_url = self.db.upload(self.settings.storage_bucket, path, data, mime)

        return self.db.insert(
            "image_generations",
            {
                "slide_id": slide_id,
                "prompt_id": prompt.id,
                "model_used": model,
                "image_url": public_url,
                "thumb_url": public_url,
                "width": IMAGE_SIZE,
                "height": IMAGE_SIZE,
                "seed": f"{ts}_{variation}",
                "is_selected": False,
            },
        )

    async def generate(
        self,
        slide_id: str,
        prompt_id: str | None = None,
        quality_tier: QualityTier | str = QualityTier.CHEAP,
        n_variations: int = 2,
    ) -> list[dict[str, Any]]:
        """Generate variations for the slide's prompts and return the created rows."""
        prompts = self._load_prompts(slide_id, prompt_id)
        if not prompts:
            logger.warning("variations.no_prompts", slide_id=slide_id, prompt_id=prompt_id)
            raise StudioError("No prompts found. Run build-image-prompts first.")

        ctx = self.brands.find_slide_context(slide_id)
        tokens = build_brand_tokens(ctx.brand) if ctx else None
        brief = self._load_brief(slide_id)
        model = model_for_tier(quality_tier, self.settings)

        logger.info(
            "variations.started",
            slide_id=slide_id,
            prompts=len(prompts),
            n_variations=n_variations,
            model=model,
        )

        created: list[dict[str, Any]] = []
        for prompt in prompts:
            for i in range(n_variations):
                text = compose_variation_prompt(prompt, i, n_variations, tokens, brief)
                try:
                    row = await self._generate_one(slide_id, prompt, i, model, text)
                except UpstreamError as e:
                    logger.warning(
                        "variations.upstream_error",
                        slide_id=slide_id,
                        prompt_id=prompt.id,
                        variation=i + 1,
                        status=e.upstream_status,
                    )
                    if e.rate_limited:
                        logger.info("variations.rate_limited", backoff=self.settings.rate_limit_backoff_seconds)
                        await self._sleep(self.settings.rate_limit_backoff_seconds)
                    continue
                except Exception as e:
                    logger.warning(
                        "variations.variation_failed",
                        slide_id=slide_id,
                        prompt_id=prompt.id,
                        variation=i + 1,
                        error=str(e),
                    )
                    continue

                if row is None:
                    continue
                created.append(row)
                logger.info("variations.saved", generation_id=row.get("id"), variation=i + 1)
                await self._sleep(self.settings.variation_delay_seconds)

        logger.info("variations.completed", slide_id=slide_id, count=len(created))
        return created


@lru_cache
def get_variation_generator() -> ImageVariationGenerator:
    """Get cached variation generator."""
    return ImageVariationGenerator(get_supabase_client(), get_gateway(), get_settings())
