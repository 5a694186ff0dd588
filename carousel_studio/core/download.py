"""Download Assembler — packages an approved post as a ZIP of slide images plus captions."""

from __future__ import annotations

import base64
import io
import re
import zipfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

from carousel_studio.config import Settings, get_settings
from carousel_studio.core.brand import BrandTokens, brand_tokens_block, build_brand_tokens
from carousel_studio.core.errors import NotFoundError, UpstreamError
from carousel_studio.core.gateway import AIGateway, decode_data_url, extension_for, get_gateway
from carousel_studio.core.render import render_overlay_svg, render_slide_svg
from carousel_studio.core.slides import RENDER_BG_OVERLAY, get_slide_render_mode, normalize_slide_media
from carousel_studio.db.client import SupabaseClient, get_supabase_client
from carousel_studio.db.models import GeneratedContentRow
from carousel_studio.utils.logging import stage_logger

logger = stage_logger("generate-download")

WIDTH = 1080
FEED_HEIGHT = 1350
STORY_HEIGHT = 1920

CAPTIONS_FILE = "legendas.txt"

MODE_DETERMINISTIC = "deterministic"
MODE_OVERLAY = "overlay"
MODE_AI = "ai"


@dataclass
class DownloadBundle:
    zip_bytes: bytes
    image_urls: list[str] = field(default_factory=list)
    filename: str = "content.zip"

    def as_response(self) -> dict[str, Any]:
        return {
            "success": True,
            "zipBase64": base64.b64encode(self.zip_bytes).decode("ascii"),
            "imageUrls": self.image_urls,
            "filename": self.filename,
        }


def dimensions_for(content_type: str) -> tuple[int, int]:
    return WIDTH, STORY_HEIGHT if content_type == "story" else FEED_HEIGHT


def zip_filename(title: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "_", (title or "")[:30]) + "_content.zip"


def svg_data_url(svg: str) -> str:
    return "data:image/svg+xml;base64," + base64.b64encode(svg.encode("utf-8")).decode("ascii")


def build_captions(content: GeneratedContentRow, brand_name: str | None = None) -> str:
    """Text of the captions file shipped alongside the slides."""
    parts = [f"# {content.title}\n\n"]
    if brand_name:
        parts.append(f"## Marca: {brand_name}\n\n")
    parts.append(f"## Legenda Principal\n{content.caption or ''}\n\n")
    parts.append(f"## Hashtags\n{' '.join(content.hashtags or [])}\n\n")
    parts.append("## Slides\n\n")
    for i, slide in enumerate(content.slides or []):
        parts.append(f"### Slide {i + 1}\n**{slide.get('headline') or ''}**\n{slide.get('body') or ''}\n\n")
    return "".join(parts)


def ai_slide_prompt(slide: dict[str, Any], tokens: BrandTokens | None, height: int) -> str:
    """Prompt for an AI-rendered slide background; branded when tokens are available."""
    image_prompt = slide.get("imagePrompt") or slide.get("headline") or ""
    if tokens is None:
        return (
            f"{image_prompt}. Style: modern, clean, Instagram, high quality, "
            f"{WIDTH}x{height} portrait. No text."
        )
    return "\n".join(
        [
            brand_tokens_block(tokens),
            "=== OUTPUT ===",
            "Background/illustration only. No text.",
            image_prompt,
            f"Style: Editorial photography, premium magazine quality, {WIDTH}x{height} portrait format.",
        ]
    )


class DownloadAssembler:
    """Builds the export ZIP for one generated_contents row."""

    def __init__(self, db: SupabaseClient, gateway: AIGateway, settings: Settings) -> None:
        self.db = db
        self.gateway = gateway
        self.settings = settings

    def _load_content(self, content_id: str, user_id: str) -> GeneratedContentRow:
        rows = self.db.select(
            "generated_contents", filters={"id": content_id, "user_id": user_id}, limit=1
        )
        if not rows:
            logger.warning("download.content_not_found", content_id=content_id, user_id=user_id)
            raise NotFoundError("Content not found")
        return GeneratedContentRow(**rows[0])

    def slide_mode(self, slide: dict[str, Any], deterministic: bool, brand_render_mode: str | None) -> str:
        if deterministic:
            return MODE_DETERMINISTIC
        if (
            self.settings.enable_bg_overlay
            and slide.get("background_image_url")
            and get_slide_render_mode(slide, brand_render_mode) == RENDER_BG_OVERLAY
        ):
            return MODE_OVERLAY
        return MODE_AI

    async def _ai_image(self, slide: dict[str, Any], tokens: BrandTokens | None, height: int) -> str | None:
        try:
            return await self.gateway.generate_image(
                self.settings.image_model_cheap, ai_slide_prompt(slide, tokens, height)
            )
        except UpstreamError as e:
            logger.warning("download.image_failed", status=e.upstream_status, error=e.message)
            return None

    async def assemble(self, content_id: str, user_id: str) -> DownloadBundle:
        """Render every slide, zip them with the captions and mark the content approved."""
        content = self._load_content(content_id, user_id)
        slides = [normalize_slide_media(s) for s in content.slides or []]
        snapshot = content.brand_snapshot
        tokens = build_brand_tokens(snapshot) if snapshot else None
        brand_render_mode = (snapshot or {}).get("render_mode")
        width, height = dimensions_for(content.content_type)
        deterministic = tokens is not None and any(s.get("templateHint") for s in slides)

        logger.info(
            "download.started",
            content_id=content_id,
            slides=len(slides),
            deterministic=deterministic,
            size=f"{width}x{height}",
        )

        buffer = io.BytesIO()
        image_urls: list[str] = []
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
            for i, slide in enumerate(slides):
                mode = self.slide_mode(slide, deterministic, brand_render_mode)
                logger.info("download.slide", index=i + 1, mode=mode, template=slide.get("templateHint"))

                if mode == MODE_DETERMINISTIC:
                    svg = render_slide_svg(slide, i, len(slides), tokens, width, height)
                    zf.writestr(f"slide_{i + 1}.svg", svg)
                    image_urls.append(svg_data_url(svg))
                    continue

                if mode == MODE_OVERLAY:
                    svg = render_overlay_svg(slide, slide["background_image_url"], tokens, width, height)
                    zf.writestr(f"slide_{i + 1}.svg", svg)
                    image_urls.append(svg_data_url(svg))
                    continue

                url = await self._ai_image(slide, tokens, height)
                if not url:
                    logger.warning("download.slide_skipped", index=i + 1)
                    continue
                image_urls.append(url)
                try:
                    data, mime = decode_data_url(url)
                except ValueError:
                    # remote URLs are listed but not embedded
                    continue
                zf.writestr(f"slide_{i + 1}.{extension_for(mime)}", data)

            zf.writestr(CAPTIONS_FILE, build_captions(content, tokens.name if tokens else None))

        self.db.update(
            "generated_contents",
            content_id,
            {
                "image_urls": image_urls,
                "status": "approved",
                "updated_at": datetime.now(timezone.utc).isoformat(),
            },
        )

        logger.info("download.completed", content_id=content_id, files=len(image_urls))
        return DownloadBundle(
            zip_bytes=buffer.getvalue(),
            image_urls=image_urls,
            filename=zip_filename(content.title),
        )


@lru_cache
def get_download_assembler() -> DownloadAssembler:
    """Get cached download assembler."""
    return DownloadAssembler(get_supabase_client(), get_gateway(), get_settings())
