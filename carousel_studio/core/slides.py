"""Slide field normalization — ``image_url`` is the single source of truth.

Slides reach the service from several generations of clients, which stored
the image under ``previewImage``, ``imageUrl`` or ``image``. Reads resolve all
of them to ``image_url``; partial updates never blank out an existing image.
"""

from __future__ import annotations

from typing import Any, Iterable

IMAGE_ALIASES = ("image_url", "previewImage", "imageUrl", "image")

RENDER_LEGACY = "legacy_image"
RENDER_BG_OVERLAY = "ai_bg_overlay"
BRAND_BG_OVERLAY_FLAG = "AI_BG_OVERLAY"

Slide = dict[str, Any]


def get_slide_image_url(slide: Slide | None) -> str | None:
    """First non-empty image field of the slide, or None."""
    if not slide:
        return None
    for key in IMAGE_ALIASES:
        if slide.get(key):
            return slide[key]
    return None


def normalize_slide_image(slide: Slide) -> Slide:
    """Copy of the slide with ``image_url`` and ``previewImage`` resolved and in sync."""
    url = get_slide_image_url(slide)
    return {**slide, "image_url": url, "previewImage": url}


def normalize_slides(slides: Iterable[Slide] | None) -> list[Slide]:
    return [normalize_slide_image(s) for s in slides or []]


def merge_slide_update(existing: Slide, updates: Slide) -> Slide:
    """Shallow merge that keeps the existing image unless the update sets a new one."""
    merged = {**existing, **updates}
    if not updates.get("image_url") and existing.get("image_url"):
        merged["image_url"] = existing["image_url"]
        merged["previewImage"] = existing["image_url"]
    return merged


def normalize_slide_media(slide: Slide) -> Slide:
    """Like :func:`normalize_slide_image`, also carrying the overlay-mode fields."""
    url = get_slide_image_url(slide)
    return {
        **slide,
        "image_url": url,
        "previewImage": url,
        "background_image_url": slide.get("background_image_url") or None,
        "overlay": slide.get("overlay") or None,
        "overlay_style": slide.get("overlay_style") or None,
        "render_mode": slide.get("render_mode") or None,
    }


def merge_slide_media_update(existing: Slide, updates: Slide) -> Slide:
    """Merge that never replaces ``image_url`` or ``background_image_url`` with an empty value."""
    merged = merge_slide_update(existing, updates)
    if not updates.get("background_image_url") and existing.get("background_image_url"):
        merged["background_image_url"] = existing["background_image_url"]
    return merged


def get_slide_render_mode(slide: Slide | None, brand_render_mode: str | None = None) -> str:
    """Effective render mode: slide override, then background presence, then brand flag."""
    if slide is None:
        return RENDER_LEGACY
    if slide.get("render_mode"):
        return slide["render_mode"]
    if slide.get("background_image_url"):
        return RENDER_BG_OVERLAY
    if brand_render_mode == BRAND_BG_OVERLAY_FLAG:
        return RENDER_BG_OVERLAY
    return RENDER_LEGACY
