"""Brand Store — brand identity lookups, brand tokens and template-set dirty tracking."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Iterable

import structlog

from carousel_studio.db.client import SupabaseClient, get_supabase_client
from carousel_studio.db.models import BrandRow, PostRow, ProjectRow, SlideRow

logger = structlog.get_logger()

HEX_COLOR = re.compile(r"^#[0-9a-fA-F]{3,8}$")
DEFAULT_FONTS = {"headings": "Inter", "body": "Inter"}

# Template sets are regenerated once enough brand edits pile up or they get old.
DIRTY_COUNT_THRESHOLD = 3
REFRESH_MAX_AGE_HOURS = 24


@dataclass
class SlideContext:
    """A slide with its post → project → brand chain resolved."""

    slide: SlideRow
    post: PostRow
    project: ProjectRow
    brand: BrandRow


@dataclass
class BrandTokens:
    """Normalized brand identity handed to prompt builders and renderers."""

    name: str
    palette: list[dict[str, str]] = field(default_factory=list)
    fonts: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_FONTS))
    visual_tone: str = "clean"
    logo_url: str | None = None
    do_rules: str | None = None
    dont_rules: str | None = None
    example_descriptions: list[str] = field(default_factory=list)

    @property
    def hexes(self) -> list[str]:
        return [c["hex"] for c in self.palette if c.get("hex")]


@dataclass
class RefreshDecision:
    """Whether a brand's template sets should be regenerated, and why not."""

    refresh: bool
    reason: str | None = None
    dirty_count: int = 0
    hours_since_update: float | None = None


def _hex(value: str) -> str:
    return value if value.startswith("#") else f"#{value}"


def normalize_palette(raw: Any) -> list[dict[str, str]]:
    """Normalize any stored palette shape into ``[{"name", "hex", "role"?}]``.

    Accepts a list of hex strings, a list of ``{hex, name?, role?}`` objects,
    or a ``{role: hex}`` mapping. Entries that are not valid hex colors are
    dropped.
    """
    colors: list[dict[str, str]] = []
    if not raw:
        return colors

    if isinstance(raw, list):
        for i, item in enumerate(raw):
            if isinstance(item, str):
                colors.append({"name": f"cor{i + 1}", "hex": _hex(item)})
            elif isinstance(item, dict):
                hex_value = item.get("hex")
                color = {
                    "name": item["name"] if isinstance(item.get("name"), str) else f"cor{i + 1}",
                    "hex": _hex(hex_value) if isinstance(hex_value, str) else "#000000",
                }
                if isinstance(item.get("role"), str):
                    color["role"] = item["role"]
                colors.append(color)
    elif isinstance(raw, dict):
        for role, value in raw.items():
            if isinstance(value, str):
                colors.append({"name": role, "hex": _hex(value), "role": role})

    return [c for c in colors if HEX_COLOR.match(c["hex"])]


def build_brand_tokens(brand: BrandRow | dict[str, Any], examples: Iterable[dict[str, Any]] = ()) -> BrandTokens:
    """Build brand tokens from a brand row (or a stored brand snapshot)."""
    data = brand.model_dump() if isinstance(brand, BrandRow) else dict(brand)
    fonts = data.get("fonts") or {}
    return BrandTokens(
        name=data.get("name") or "",
        palette=normalize_palette(data.get("palette")),
        fonts={
            "headings": fonts.get("headings") or DEFAULT_FONTS["headings"],
            "body": fonts.get("body") or DEFAULT_FONTS["body"],
        },
        visual_tone=data.get("visual_tone") or "clean",
        logo_url=data.get("logo_url"),
        do_rules=data.get("do_rules"),
        dont_rules=data.get("dont_rules"),
        example_descriptions=[e["description"] for e in examples if e.get("description")],
    )


def brand_tokens_block(
    tokens: BrandTokens,
    extra_negatives: Iterable[str] = (),
    allow_text: bool = False,
) -> str:
    """The mandatory brand block prepended to every image-model prompt."""
    colors = ", ".join(tokens.hexes)
    lines = [
        "=== BRAND TOKENS (USE EXACTLY) ===",
        f"Brand: {tokens.name}" if tokens.name else "",
        f"Visual style: {tokens.visual_tone}",
        f"Color palette: {colors or 'professional defaults'}",
        f"Rules: {tokens.do_rules}" if tokens.do_rules else "",
        "=== MANDATORY RULES ===",
        f"- Dominant colors: {colors}" if colors else "",
        f"- Style must be: {tokens.visual_tone}",
        "- Ultra high resolution, professional quality",
        "" if allow_text else "- NO text overlays on the image",
        "=== NEGATIVES (FORBIDDEN) ===",
        f"- {tokens.dont_rules}" if tokens.dont_rules else "",
        *(f"- {n}" for n in extra_negatives if n),
        "- No watermarks, no generic stock feel",
        "" if allow_text else "- No text or words on the image",
    ]
    return "\n".join(line for line in lines if line)


def should_refresh_template_sets(brand: BrandRow, now: datetime | None = None) -> RefreshDecision:
    """Decide whether a dirty brand's template sets are due for regeneration."""
    if not brand.template_sets_dirty:
        return RefreshDecision(refresh=False, reason="not_dirty")

    now = now or datetime.now(timezone.utc)
    last = brand.template_sets_updated_at
    if last is not None and last.tzinfo is None:
        last = last.replace(tzinfo=timezone.utc)
    hours = (now - last).total_seconds() / 3600 if last else None
    count = brand.template_sets_dirty_count

    if count >= DIRTY_COUNT_THRESHOLD or hours is None or hours > REFRESH_MAX_AGE_HOURS:
        return RefreshDecision(refresh=True, dirty_count=count, hours_since_update=hours)
    return RefreshDecision(
        refresh=False,
        reason="threshold_not_met",
        dirty_count=count,
        hours_since_update=hours,
    )


class BrandStore:
    """Read access to brands and the slide → brand chain, plus dirty tracking."""

    def __init__(self, db: SupabaseClient) -> None:
        self.db = db

    def get_brand(self, brand_id: str) -> BrandRow | None:
        row = self.db.get("brands", brand_id)
        return BrandRow(**row) if row else None

    def list_examples(self, brand_id: str, limit: int = 12) -> list[dict[str, Any]]:
        """Newest brand example images first."""
        return self.db.select(
            "brand_examples",
            filters={"brand_id": brand_id},
            order_by="created_at",
            ascending=False,
            limit=limit,
        )

    def find_slide_context(self, slide_id: str) -> SlideContext | None:
        """Resolve slide → post → project → brand; None if any link is missing."""
        slide = self.db.get("slides", slide_id)
        if not slide:
            return None
        post = self.db.get("posts", slide["post_id"])
        if not post:
            return None
        project = self.db.get("projects", post["project_id"])
        if not project:
            return None
        brand = self.db.get("brands", project["brand_id"])
        if not brand:
            return None
        return SlideContext(
            slide=SlideRow(**slide),
            post=PostRow(**post),
            project=ProjectRow(**project),
            brand=BrandRow(**brand),
        )

    def mark_template_sets_dirty(self, brand_id: str) -> BrandRow | None:
        """Record one brand edit that may have made its template sets stale."""
        brand = self.get_brand(brand_id)
        if not brand:
            return None
        updated = self.db.update(
            "brands",
            brand_id,
            {
                "template_sets_dirty": True,
                "template_sets_dirty_count": brand.template_sets_dirty_count + 1,
            },
        )
        logger.info(
            "brand.template_sets_dirty",
            brand_id=brand_id,
            dirty_count=updated.get("template_sets_dirty_count"),
        )
        return BrandRow(**updated)

    def clear_template_sets_dirty(self, brand_id: str) -> None:
        self.db.update(
            "brands",
            brand_id,
            {
                "template_sets_dirty": False,
                "template_sets_dirty_count": 0,
                "template_sets_updated_at": datetime.now(timezone.utc).isoformat(),
            },
        )


@lru_cache
def get_brand_store() -> BrandStore:
    """Get cached brand store instance."""
    return BrandStore(get_supabase_client())
