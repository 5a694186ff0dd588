"""Tests for the HTTP API — status codes, error shape and auth."""

from __future__ import annotations

import base64
import json

from conftest import BRAND_ID, SLIDE_ID, USER_ID, seed_generation

from carousel_studio.core.errors import UpstreamError
from carousel_studio.core.style_guide import RATE_LIMIT_MESSAGE

BRIEF = {
    "theme": "Daily care",
    "key_message": "Floss",
    "emotion": "trust",
    "visual_metaphor": "path",
    "style": "editorial",
    "palette": ["#abcdef"],
    "negative_elements": "blood",
    "text_on_image": False,
    "text_limit_words": 6,
    "composition_notes": "thirds",
}


class TestService:
    def test_root(self, client):
        assert client.get("/").json()["service"] == "carousel-studio"

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"

    def test_bare_options_request(self, client):
        resp = client.options("/api/v1/create-visual-brief")
        assert resp.status_code == 204


class TestPipelineEndpoints:
    def test_missing_slide_id(self, client):
        resp = client.post("/api/v1/create-visual-brief", json={})
        assert resp.status_code == 400
        assert resp.json() == {"error": "slide_id is required"}

    def test_unknown_slide(self, client, seeded):
        resp = client.post("/api/v1/create-visual-brief", json={"slide_id": "nope"})
        assert resp.status_code == 404
        assert resp.json() == {"error": "Slide not found"}

    def test_create_brief(self, client, seeded, gateway):
        gateway.chat_replies.append(json.dumps(BRIEF))
        resp = client.post("/api/v1/create-visual-brief", json={"slide_id": SLIDE_ID})
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["brief"]["slide_id"] == SLIDE_ID
        assert data["brief"]["theme"] == "Daily care"

    def test_invalid_variation_count(self, client, seeded):
        resp = client.post(
            "/api/v1/generate-image-variations", json={"slide_id": SLIDE_ID, "n_variations": 9}
        )
        assert resp.status_code == 400
        assert "n_variations" in resp.json()["error"]

    def test_max_variation_count(self, client, seeded, gateway):
        seeded.insert(
            "image_prompts",
            {"slide_id": SLIDE_ID, "prompt": "a calm bathroom", "model_hint": "cheap", "variant_index": 1},
        )
        resp = client.post(
            "/api/v1/generate-image-variations", json={"slide_id": SLIDE_ID, "n_variations": 8}
        )
        assert resp.status_code == 200
        assert resp.json()["count"] == 8
        assert len(gateway.image_calls) == 8

    def test_unexpected_failure_keeps_error_shape(self, client, seeded, gateway):
        seeded.failing_inserts.add("visual_briefs")
        gateway.chat_replies.append(json.dumps(BRIEF))
        resp = client.post(
            "/api/v1/create-visual-brief",
            json={"slide_id": SLIDE_ID},
            headers={"Origin": "https://studio.example.com"},
        )
        assert resp.status_code == 500
        assert resp.json() == {"error": "insert into visual_briefs rejected"}
        assert "access-control-allow-origin" in resp.headers

    def test_no_prompts_is_server_error(self, client, seeded):
        resp = client.post("/api/v1/generate-image-variations", json={"slide_id": SLIDE_ID})
        assert resp.status_code == 500
        assert "error" in resp.json()

    def test_rank_fallback_response(self, client, seeded, gateway):
        seed_generation(seeded, "2026-01-01T10:00:00+00:00")
        gateway.chat_replies.append("Nice pictures.")
        resp = client.post("/api/v1/rank-and-select", json={"slide_id": SLIDE_ID})
        assert resp.status_code == 200
        data = resp.json()
        assert data["fallback"] is True
        assert data["best"]["is_selected"] is True
        assert "rankings" not in data
        assert "metrics" not in data

    def test_select_generation_requires_id(self, client, seeded):
        resp = client.post("/api/v1/select-generation", json={"slide_id": SLIDE_ID})
        assert resp.status_code == 400
        assert resp.json() == {"error": "generation_id is required"}

    def test_select_generation(self, client, seeded):
        gen = seed_generation(seeded, "2026-01-01T10:00:00+00:00")
        resp = client.post(
            "/api/v1/select-generation", json={"slide_id": SLIDE_ID, "generation_id": gen["id"]}
        )
        assert resp.status_code == 200
        assert resp.json()["best"]["id"] == gen["id"]


class TestAuthenticatedEndpoints:
    def test_missing_token(self, client):
        resp = client.post("/api/v1/generate-download", json={"contentId": "c1"})
        assert resp.status_code == 401
        assert resp.json() == {"error": "Unauthorized"}

    def test_invalid_token(self, client):
        resp = client.post(
            "/api/v1/generate-download",
            json={"contentId": "c1"},
            headers={"Authorization": "Bearer not-a-token"},
        )
        assert resp.status_code == 401
        assert resp.json() == {"error": "Invalid token"}

    def test_missing_content_id(self, client, auth_headers):
        resp = client.post("/api/v1/generate-download", json={}, headers=auth_headers)
        assert resp.status_code == 400
        assert resp.json() == {"error": "contentId is required"}

    def test_download(self, client, mock_db, auth_headers):
        content = mock_db.insert(
            "generated_contents",
            {
                "user_id": USER_ID,
                "title": "My post",
                "slides": [{"headline": "One", "templateHint": "wave_cover"}],
                "brand_snapshot": {"name": "B", "palette": ["#111111"]},
            },
        )

        resp = client.post(
            "/api/v1/generate-download", json={"contentId": content["id"]}, headers=auth_headers
        )

        assert resp.status_code == 200
        data = resp.json()
        assert data["filename"] == "My_post_content.zip"
        assert base64.b64decode(data["zipBase64"])[:2] == b"PK"
        assert len(data["imageUrls"]) == 1

    def test_analyze_rate_limit_passes_through(self, client, seeded, gateway, auth_headers):
        seeded.insert("brand_examples", {"brand_id": BRAND_ID, "image_url": "https://cdn.test/e.png"})
        gateway.chat_replies.append(UpstreamError("AI request failed: 429", 429))
        resp = client.post(
            "/api/v1/analyze-brand-examples", json={"brandId": BRAND_ID}, headers=auth_headers
        )
        assert resp.status_code == 429
        assert resp.json() == {"error": RATE_LIMIT_MESSAGE}

    def test_missing_brand_id(self, client, auth_headers):
        resp = client.post("/api/v1/generate-template-sets", json={}, headers=auth_headers)
        assert resp.status_code == 400
        assert resp.json() == {"error": "brandId is required"}

    def test_refresh_skipped_for_clean_brand(self, client, seeded, auth_headers):
        resp = client.post(
            "/api/v1/update-template-sets-if-needed", json={"brandId": BRAND_ID}, headers=auth_headers
        )
        assert resp.status_code == 200
        assert resp.json() == {"skipped": True, "reason": "not_dirty"}

    def test_mark_template_sets_dirty(self, client, seeded, auth_headers):
        resp = client.post(
            "/api/v1/mark-template-sets-dirty", json={"brandId": BRAND_ID}, headers=auth_headers
        )
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "brandId": BRAND_ID, "dirtyCount": 1}
        brand = seeded.rows("brands")[0]
        assert brand["template_sets_dirty"] is True

    def test_mark_unknown_brand_dirty(self, client, mock_db, auth_headers):
        resp = client.post(
            "/api/v1/mark-template-sets-dirty", json={"brandId": "nope"}, headers=auth_headers
        )
        assert resp.status_code == 404
        assert resp.json() == {"error": "Brand not found"}
