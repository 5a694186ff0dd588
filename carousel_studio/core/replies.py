"""Validated shapes of the JSON objects the models are asked to return.

Replies are parsed once at ingress; downstream code only sees these models.
Unknown keys are ignored and loosely-typed values (lists where text was
expected, numeric strings) are coerced.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from carousel_studio.core.brand import normalize_palette


def _as_text(value: Any) -> Any:
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    return value


def _clamp(value: float | None, low: float, high: float) -> float | None:
    if value is None:
        return None
    return max(low, min(high, value))


class _Reply(BaseModel):
    model_config = ConfigDict(extra="ignore")


class BriefReply(_Reply):
    theme: str | None = None
    key_message: str | None = None
    emotion: str | None = None
    visual_metaphor: str | None = None
    style: str | None = None
    palette: list[str] | None = None
    negative_elements: str | None = None
    text_on_image: bool | None = None
    text_limit_words: int | None = None
    composition_notes: str | None = None

    @field_validator(
        "theme",
        "key_message",
        "emotion",
        "visual_metaphor",
        "style",
        "negative_elements",
        "composition_notes",
        mode="before",
    )
    @classmethod
    def _join_lists(cls, v: Any) -> Any:
        return _as_text(v)

    @field_validator("palette", mode="before")
    @classmethod
    def _palette_hexes(cls, v: Any) -> Any:
        # an empty palette means "not provided" so the brand palette applies
        return [c["hex"] for c in normalize_palette(v)] or None


class PromptVariant(_Reply):
    prompt: str
    negative_prompt: str | None = None
    approach: str | None = None

    @field_validator("negative_prompt", mode="before")
    @classmethod
    def _join_lists(cls, v: Any) -> Any:
        return _as_text(v)


class PromptsReply(_Reply):
    prompts: list[PromptVariant] = Field(default_factory=list)


class RankingEntry(_Reply):
    generation_id: str
    score: float | None = None
    adherence: float | None = None
    legibility: float | None = None
    brand_consistency: float | None = None
    premium_look: float | None = None
    publish_readiness: float | None = None
    publish_ready: bool = False
    reason: str | None = None

    @field_validator("generation_id", mode="before")
    @classmethod
    def _id_as_str(cls, v: Any) -> Any:
        return str(v) if v is not None else v

    @field_validator("score")
    @classmethod
    def _clamp_score(cls, v: float | None) -> float | None:
        return _clamp(v, 0, 100)

    @field_validator(
        "adherence", "legibility", "brand_consistency", "premium_look", "publish_readiness"
    )
    @classmethod
    def _clamp_criterion(cls, v: float | None) -> float | None:
        return _clamp(v, 0, 5)

    def metrics(self) -> dict[str, Any]:
        """The sub-scores persisted to quality_metrics."""
        return {
            "adherence": self.adherence,
            "legibility": self.legibility,
            "brand_consistency": self.brand_consistency,
            "premium_look": self.premium_look,
            "publish_readiness": self.publish_readiness,
            "publish_ready": self.publish_ready,
        }


class RankingReply(_Reply):
    rankings: list[RankingEntry] = Field(default_factory=list)
    best_id: str | None = None

    @field_validator("best_id", mode="before")
    @classmethod
    def _id_as_str(cls, v: Any) -> Any:
        return str(v) if v is not None else v


class StyleGuideReply(_Reply):
    style_preset: str | None = None
    confidence: str | None = None
    brand_tokens: dict[str, Any] = Field(default_factory=dict)
    formats: dict[str, Any] = Field(default_factory=dict)
    visual_patterns: list[str] = Field(default_factory=list)
    do_summary: list[str] = Field(default_factory=list)
    dont_summary: list[str] = Field(default_factory=list)

    @field_validator("visual_patterns", "do_summary", "dont_summary", mode="before")
    @classmethod
    def _as_list(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v


class TemplateSetReply(_Reply):
    name: str
    description: str | None = None
    id_hint: str | None = None
    source_example_ids: list[str] = Field(default_factory=list)
    formats: dict[str, Any] = Field(default_factory=dict)
    notes: list[str] = Field(default_factory=list)


class TemplateSetsReply(_Reply):
    template_sets: list[TemplateSetReply] = Field(default_factory=list)

    @field_validator("template_sets", mode="before")
    @classmethod
    def _name_sets(cls, v: Any) -> Any:
        """Drop non-object entries and give unnamed sets a positional name."""
        if not isinstance(v, list):
            return v
        named = []
        for i, item in enumerate(v):
            if not isinstance(item, dict):
                continue
            if not item.get("name"):
                item = {**item, "name": item.get("id_hint") or f"Template set {i + 1}"}
            named.append(item)
        return named
