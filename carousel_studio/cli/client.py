"""API client for the Carousel Studio REST API."""

from __future__ import annotations

from typing import Any

import httpx


class StudioClient:
    """HTTP client wrapping all Carousel Studio API endpoints."""

    def __init__(
        self,
        base_url: str = "http://localhost:8400",
        auth_token: str | None = None,
        timeout: float = 300,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        headers = {}
        if auth_token:
            headers["Authorization"] = f"Bearer {auth_token}"
        # image generation runs several model calls back to back
        self._client = httpx.Client(base_url=f"{self.base_url}/api/v1", headers=headers, timeout=timeout)

    def _handle(self, resp: httpx.Response) -> Any:
        if resp.status_code >= 400:
            try:
                detail = resp.json().get("error", resp.text)
            except ValueError:
                detail = resp.text
            raise RuntimeError(f"API error ({resp.status_code}): {detail}")
        return resp.json()

    def _post(self, path: str, body: dict[str, Any]) -> Any:
        return self._handle(self._client.post(path, json=body))

    # --- Slide pipeline ---

    def create_brief(self, slide_id: str) -> dict:
        return self._post("/create-visual-brief", {"slide_id": slide_id})

    def build_prompts(self, slide_id: str) -> dict:
        return self._post("/build-image-prompts", {"slide_id": slide_id})

    def generate_variations(
        self,
        slide_id: str,
        prompt_id: str | None = None,
        quality_tier: str = "cheap",
        n_variations: int = 2,
    ) -> dict:
        body: dict[str, Any] = {
            "slide_id": slide_id,
            "quality_tier": quality_tier,
            "n_variations": n_variations,
        }
        if prompt_id:
            body["prompt_id"] = prompt_id
        return self._post("/generate-image-variations", body)

    def rank(self, slide_id: str) -> dict:
        return self._post("/rank-and-select", {"slide_id": slide_id})

    def select(self, slide_id: str, generation_id: str) -> dict:
        return self._post("/select-generation", {"slide_id": slide_id, "generation_id": generation_id})

    # --- Content & brands ---

    def download(self, content_id: str) -> dict:
        return self._post("/generate-download", {"contentId": content_id})

    def analyze_brand(self, brand_id: str) -> dict:
        return self._post("/analyze-brand-examples", {"brandId": brand_id})

    def generate_template_sets(self, brand_id: str) -> dict:
        return self._post("/generate-template-sets", {"brandId": brand_id})

    def refresh_template_sets(self, brand_id: str, force: bool = False) -> dict:
        return self._post("/update-template-sets-if-needed", {"brandId": brand_id, "force": force})

    def mark_template_sets_dirty(self, brand_id: str) -> dict:
        return self._post("/mark-template-sets-dirty", {"brandId": brand_id})
