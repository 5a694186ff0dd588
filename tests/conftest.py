"""Test fixtures — mock Supabase client, scripted AI gateway and shared test data."""

from __future__ import annotations

import base64
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from carousel_studio.config import Settings
from carousel_studio.core.gateway import AIGateway
from carousel_studio.db.client import SupabaseClient

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image"
PNG_DATA_URL = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode("ascii")

BRAND_ID = "brand-1"
PROJECT_ID = "project-1"
POST_ID = "post-1"
COVER_SLIDE_ID = "slide-cover"
SLIDE_ID = "slide-2"
USER_ID = "user-1"
TOKEN = "valid-token"


class MockSupabaseClient(SupabaseClient):
    """In-memory mock of the Supabase client for testing."""

    def __init__(self):
        self._tables: dict[str, list[dict[str, Any]]] = {
            "brands": [],
            "brand_examples": [],
            "brand_template_sets": [],
            "projects": [],
            "posts": [],
            "slides": [],
            "visual_briefs": [],
            "image_prompts": [],
            "image_generations": [],
            "quality_metrics": [],
            "generated_contents": [],
        }
        self.storage: dict[str, dict[str, tuple[bytes, str]]] = {}
        self.tokens: dict[str, str] = {}
        self.failing_inserts: set[str] = set()

    def insert(self, table: str, data: dict[str, Any]) -> dict[str, Any]:
        if table in self.failing_inserts:
            raise RuntimeError(f"insert into {table} rejected")
        record = {
            "id": str(uuid4()),
            "created_at": datetime.now(timezone.utc).isoformat(),
            "updated_at": datetime.now(timezone.utc).isoformat(),
            **data,
        }
        self._tables.setdefault(table, []).append(record)
        return record

    def insert_many(self, table: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return [self.insert(table, r) for r in rows]

    def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        ascending: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        rows = self._tables.get(table, [])
        if filters:
            for key, value in filters.items():
                rows = [r for r in rows if r.get(key) == value]
        if order_by:
            rows = sorted(rows, key=lambda r: r.get(order_by, 0), reverse=not ascending)
        if limit:
            rows = rows[:limit]
        return rows

    def update(self, table: str, id: str, data: dict[str, Any]) -> dict[str, Any]:
        for row in self._tables.get(table, []):
            if row["id"] == id:
                row.update(data)
                row["updated_at"] = datetime.now(timezone.utc).isoformat()
                return row
        raise ValueError(f"Row {id} not found in {table}")

    def update_where(
        self, table: str, filters: dict[str, Any], data: dict[str, Any]
    ) -> list[dict[str, Any]]:
        rows = self.select(table, filters=filters)
        for row in rows:
            row.update(data)
        return rows

    def upsert(self, table: str, data: dict[str, Any], on_conflict: str) -> dict[str, Any]:
        existing = self.select(table, filters={on_conflict: data[on_conflict]}, limit=1)
        if existing:
            existing[0].update(data)
            return existing[0]
        return self.insert(table, data)

    def delete(self, table: str, id: str) -> None:
        self._tables[table] = [r for r in self._tables.get(table, []) if r["id"] != id]

    def delete_where(self, table: str, filters: dict[str, Any]) -> None:
        doomed = {id(r) for r in self.select(table, filters=filters)}
        self._tables[table] = [r for r in self._tables.get(table, []) if id(r) not in doomed]

    def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        objects = self.storage.setdefault(bucket, {})
        if path in objects:
            raise RuntimeError(f"object {path} already exists")
        objects[path] = (data, content_type)
        return f"https://storage.test/{bucket}/{path}"

    def get_claims(self, token: str) -> dict[str, Any] | None:
        user_id = self.tokens.get(token)
        return {"sub": user_id, "email": f"{user_id}@example.com"} if user_id else None

    def rows(self, table: str) -> list[dict[str, Any]]:
        return self._tables.get(table, [])


class FakeGateway(AIGateway):
    """Scripted AI gateway: replies are consumed in order, exceptions are raised."""

    def __init__(self):
        super().__init__("http://gateway.test", "test-key")
        self.chat_replies: list[str | Exception] = []
        self.image_replies: list[str | None | Exception] = []
        self.chat_calls: list[dict[str, Any]] = []
        self.image_calls: list[dict[str, Any]] = []

    async def chat(self, model: str, messages: list[dict[str, Any]]) -> str:
        self.chat_calls.append({"model": model, "messages": messages})
        reply = self.chat_replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def generate_image(self, model: str, prompt: str | list[dict[str, Any]]) -> str | None:
        self.image_calls.append({"model": model, "prompt": prompt})
        if not self.image_replies:
            return PNG_DATA_URL
        reply = self.image_replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def mock_db() -> MockSupabaseClient:
    """Fresh mock database for each test."""
    return MockSupabaseClient()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def settings() -> Settings:
    """Settings with no real endpoints and no pipeline delays."""
    return Settings(
        supabase_url="http://supabase.test",
        supabase_key="service-key",
        ai_gateway_key="gateway-key",
        variation_delay_seconds=0,
        rate_limit_backoff_seconds=0,
    )


def seed_brand(db: MockSupabaseClient, **overrides: Any) -> dict[str, Any]:
    return db.insert(
        "brands",
        {
            "id": BRAND_ID,
            "name": "Clinica Sorriso",
            "palette": ["#111111", "#2255aa"],
            "fonts": {"headings": "Montserrat", "body": "Inter"},
            "visual_tone": "clean",
            "do_rules": "Use soft light",
            "dont_rules": "No cartoons",
            **overrides,
        },
    )


@pytest.fixture
def seeded(mock_db) -> MockSupabaseClient:
    """Brand → project → post → two slides (cover first)."""
    seed_brand(mock_db)
    mock_db.insert("projects", {"id": PROJECT_ID, "brand_id": BRAND_ID, "name": "Launch"})
    mock_db.insert(
        "posts",
        {
            "id": POST_ID,
            "project_id": PROJECT_ID,
            "raw_post_text": "Five habits for healthy teeth",
            "content_type": "educativo",
        },
    )
    mock_db.insert(
        "slides",
        {"id": COVER_SLIDE_ID, "post_id": POST_ID, "slide_index": 0, "slide_text": "Healthy teeth"},
    )
    mock_db.insert(
        "slides",
        {"id": SLIDE_ID, "post_id": POST_ID, "slide_index": 1, "slide_text": "Floss every day"},
    )
    return mock_db


def seed_brief(db: MockSupabaseClient, slide_id: str = SLIDE_ID, **overrides: Any) -> dict[str, Any]:
    return db.insert(
        "visual_briefs",
        {
            "slide_id": slide_id,
            "theme": "Daily care",
            "key_message": "Floss every day",
            "emotion": "trust",
            "visual_metaphor": "a clean path",
            "style": "editorial",
            "palette": ["#111111"],
            "negative_elements": "blood",
            "text_on_image": True,
            "text_limit_words": 8,
            "composition_notes": "space on the left",
            **overrides,
        },
    )


def seed_generation(db: MockSupabaseClient, created_at: str, slide_id: str = SLIDE_ID, **extra: Any) -> dict[str, Any]:
    return db.insert(
        "image_generations",
        {
            "slide_id": slide_id,
            "prompt_id": "prompt-1",
            "model_used": "google/gemini-2.5-flash-image",
            "image_url": f"https://storage.test/{created_at}.png",
            "is_selected": False,
            "created_at": created_at,
            **extra,
        },
    )


@pytest.fixture
def app(mock_db, gateway, settings):
    """FastAPI test app with mocked dependencies."""
    from carousel_studio.config import get_settings
    from carousel_studio.core.brand import BrandStore, get_brand_store
    from carousel_studio.core.briefs import VisualBriefGenerator, get_brief_generator
    from carousel_studio.core.download import DownloadAssembler, get_download_assembler
    from carousel_studio.core.gateway import get_gateway
    from carousel_studio.core.prompts import ImagePromptBuilder, get_prompt_builder
    from carousel_studio.core.ranking import RankingEngine, get_ranking_engine
    from carousel_studio.core.style_guide import BrandStyleAnalyzer, get_style_analyzer
    from carousel_studio.core.template_sets import TemplateSetService, get_template_set_service
    from carousel_studio.core.variations import ImageVariationGenerator, get_variation_generator
    from carousel_studio.db.client import get_supabase_client
    from carousel_studio.main import app as _app

    _app.dependency_overrides[get_supabase_client] = lambda: mock_db
    _app.dependency_overrides[get_gateway] = lambda: gateway
    _app.dependency_overrides[get_settings] = lambda: settings
    _app.dependency_overrides[get_brand_store] = lambda: BrandStore(mock_db)
    _app.dependency_overrides[get_brief_generator] = lambda: VisualBriefGenerator(mock_db, gateway, settings)
    _app.dependency_overrides[get_prompt_builder] = lambda: ImagePromptBuilder(mock_db, gateway, settings)
    _app.dependency_overrides[get_variation_generator] = lambda: ImageVariationGenerator(
        mock_db, gateway, settings
    )
    _app.dependency_overrides[get_ranking_engine] = lambda: RankingEngine(mock_db, gateway, settings)
    _app.dependency_overrides[get_download_assembler] = lambda: DownloadAssembler(mock_db, gateway, settings)
    _app.dependency_overrides[get_style_analyzer] = lambda: BrandStyleAnalyzer(mock_db, gateway, settings)
    _app.dependency_overrides[get_template_set_service] = lambda: TemplateSetService(
        mock_db, gateway, settings
    )

    yield _app

    _app.dependency_overrides.clear()


@pytest.fixture
def client(app) -> TestClient:
    """HTTP test client."""
    return TestClient(app)


@pytest.fixture
def auth_headers(mock_db) -> dict[str, str]:
    mock_db.tokens[TOKEN] = USER_ID
    return {"Authorization": f"Bearer {TOKEN}"}
