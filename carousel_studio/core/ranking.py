"""Ranking & Selection Engine — scores a slide's candidates and marks one as selected.

Selection is two writes with no transaction around them: every generation of
the slide is deselected, then the winner is selected. Two rankings of the same
slide running at once can interleave and leave zero or two rows selected;
sequential calls always leave exactly one.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

from pydantic import ValidationError

from carousel_studio.config import Settings, get_settings
from carousel_studio.core.brand import BrandStore
from carousel_studio.core.errors import NotFoundError, StudioError
from carousel_studio.core.extraction import extract_json_object
from carousel_studio.core.gateway import AIGateway, get_gateway
from carousel_studio.core.replies import RankingEntry, RankingReply
from carousel_studio.db.client import SupabaseClient, get_supabase_client
from carousel_studio.db.models import VisualBriefRow
from carousel_studio.utils.logging import stage_logger

logger = stage_logger("rank-and-select")

CANDIDATE_LIMIT = 10
FALLBACK_SCORE = 70
FALLBACK_REASON = "Selected by default (first generated)"

RANKING_SYSTEM_PROMPT = """You are a digital art critic specialised in social media content.
Analyse and rank generated images against these quality criteria.

CRITERIA (0-5 each):
1. ADHERENCE: how well the image represents the intended message/theme
2. LEGIBILITY: room for text, visual clarity, not cluttered
3. BRAND CONSISTENCY: colors, style and tone aligned with the brand
4. PREMIUM LOOK: professional quality, nothing generic or "cheap AI"
5. PUBLISH READINESS: can be used as-is without editing
{brief_context}
IMPORTANT: base your analysis on the image URL and generation metadata provided.

Reply ONLY with valid JSON:
{{
  "rankings": [
    {{
      "generation_id": "uuid",
      "score": 0-100,
      "adherence": 0-5,
      "legibility": 0-5,
      "brand_consistency": 0-5,
      "premium_look": 0-5,
      "publish_readiness": 0-5,
      "publish_ready": true,
      "reason": "short explanation"
    }}
  ],
  "best_id": "uuid of the best image"
}}"""

BRIEF_CONTEXT = """
BRIEF CONTEXT:
- Theme: {theme}
- Message: {key_message}
- Emotion: {emotion}
- Style: {style}
- Text on image: {text_on_image}
- Brand: {brand_name}
- Tone: {tone}
"""


@dataclass
class RankingOutcome:
    """Result of one ranking run."""

    best: dict[str, Any]
    rankings: list[dict[str, Any]] = field(default_factory=list)
    metrics: dict[str, Any] | None = None
    fallback: bool = False

    def as_response(self) -> dict[str, Any]:
        if self.fallback:
            return {"success": True, "best": self.best, "fallback": True}
        return {
            "success": True,
            "best": self.best,
            "rankings": self.rankings,
            "metrics": self.metrics,
        }


def pick_best(reply: RankingReply, candidate_ids: set[str]) -> RankingEntry | None:
    """The winning entry among rankings that name real candidates.

    The model's ``best_id`` wins when it names a ranked candidate; otherwise
    the highest score does. None if no entry names a candidate.
    """
    valid = [r for r in reply.rankings if r.generation_id in candidate_ids]
    if not valid:
        return None
    for entry in valid:
        if entry.generation_id == reply.best_id:
            return entry
    return max(valid, key=lambda r: r.score if r.score is not None else -1)


class RankingEngine:
    """Asks a model to score candidates and persists the selection."""

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

    def select_generation(
        self,
        slide_id: str,
        generation_id: str,
        extra: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make ``generation_id`` the slide's only selected generation.

        Refuses a generation that belongs to another slide.
        """
        row = self.db.get("image_generations", generation_id)
        if not row or row.get("slide_id") != slide_id:
            raise NotFoundError("Generation not found for this slide")

        self.db.update_where("image_generations", {"slide_id": slide_id}, {"is_selected": False})
        return self.db.update(
            "image_generations", generation_id, {**(extra or {}), "is_selected": True}
        )

    def _build_messages(self, slide_id: str, generations: list[dict[str, Any]]) -> list[dict[str, str]]:
        briefs = self.db.select("visual_briefs", filters={"slide_id": slide_id}, limit=1)
        ctx = self.brands.find_slide_context(slide_id)

        brief_context = ""
        if briefs:
            brief = VisualBriefRow(**briefs[0])
            brief_context = BRIEF_CONTEXT.format(
                theme=brief.theme,
                key_message=brief.key_message,
                emotion=brief.emotion,
                style=brief.style,
                text_on_image="Yes, needs clean space" if brief.text_on_image else "No",
                brand_name=ctx.brand.name if ctx else "unknown",
                tone=(ctx.brand.visual_tone if ctx else None) or "unknown",
            )

        candidates = [
            {"id": g["id"], "model": g.get("model_used"), "image_url": g.get("image_url")}
            for g in generations
        ]
        user = (
            f"Rank these {len(generations)} generated images:\n\n"
            f"{json.dumps(candidates, indent=2)}\n\n"
            'Images from "pro" or "high" models tend to be of higher quality.\n'
            "Return the complete ranking with scores."
        )
        return [
            {"role": "system", "content": RANKING_SYSTEM_PROMPT.format(brief_context=brief_context)},
            {"role": "user", "content": user},
        ]

    def _fallback(self, slide_id: str, generations: list[dict[str, Any]]) -> RankingOutcome:
        first = generations[0]
        logger.warning("ranking.fallback", slide_id=slide_id, generation_id=first["id"])
        best = self.select_generation(
            slide_id,
            first["id"],
            {"ranking_score": FALLBACK_SCORE, "ranking_reason": FALLBACK_REASON},
        )
        return RankingOutcome(best=best, fallback=True)

    async def rank_and_select(self, slide_id: str) -> RankingOutcome:
        """Rank the slide's most recent generations and select the best one."""
        logger.info("ranking.started", slide_id=slide_id)

        generations = self.db.select(
            "image_generations",
            filters={"slide_id": slide_id},
            order_by="created_at",
            ascending=False,
            limit=CANDIDATE_LIMIT,
        )
        if not generations:
            logger.warning("ranking.no_generations", slide_id=slide_id)
            raise StudioError("No image generations found for this slide.")

        content = await self.gateway.chat(
            self.settings.text_model, self._build_messages(slide_id, generations)
        )

        extracted = extract_json_object(content)
        if not extracted.ok:
            logger.warning("ranking.parse_failed", slide_id=slide_id, error=extracted.error)
            return self._fallback(slide_id, generations)

        try:
            reply = RankingReply.model_validate(extracted.value)
        except ValidationError as e:
            logger.warning("ranking.invalid_shape", slide_id=slide_id, error=str(e))
            return self._fallback(slide_id, generations)

        candidate_ids = {g["id"] for g in generations}
        best_entry = pick_best(reply, candidate_ids)
        if best_entry is None:
            logger.warning("ranking.no_matching_candidates", slide_id=slide_id)
            return self._fallback(slide_id, generations)

        ranked = [r for r in reply.rankings if r.generation_id in candidate_ids]
        for entry in ranked:
            self.db.update(
                "image_generations",
                entry.generation_id,
                {"ranking_score": entry.score, "ranking_reason": entry.reason},
            )

        best = self.select_generation(slide_id, best_entry.generation_id)

        metrics = self.db.upsert(
            "quality_metrics",
            {"slide_id": slide_id, **best_entry.metrics()},
            on_conflict="slide_id",
        )

        logger.info(
            "ranking.selected",
            slide_id=slide_id,
            generation_id=best_entry.generation_id,
            score=best_entry.score,
        )
        return RankingOutcome(
            best=best,
            rankings=[r.model_dump() for r in ranked],
            metrics={**best_entry.model_dump(), "quality_metrics_id": metrics.get("id")},
        )


@lru_cache
def get_ranking_engine() -> RankingEngine:
    """Get cached ranking engine."""
    return RankingEngine(get_supabase_client(), get_gateway(), get_settings())
