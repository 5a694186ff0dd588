"""HTTP client for the AI gateway (OpenAI-compatible chat completions)."""

from __future__ import annotations

import base64
import binascii
import re
from functools import lru_cache
from typing import Any

import httpx
import structlog

from carousel_studio.config import Settings, get_settings
from carousel_studio.core.errors import UpstreamError

logger = structlog.get_logger()

_DATA_URL = re.compile(r"^data:(?P<mime>[\w/+.-]+)?(?P<b64>;base64)?,(?P<data>.*)$", re.DOTALL)


def decode_data_url(url: str) -> tuple[bytes, str]:
    """Decode a ``data:`` URL into (bytes, mime type).

    Raises ValueError for anything that is not a base64 data URL.
    """
    match = _DATA_URL.match(url or "")
    if not match or not match.group("b64"):
        raise ValueError("not a base64 data URL")
    try:
        data = base64.b64decode(match.group("data"), validate=False)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"invalid base64 payload: {e}") from e
    return data, match.group("mime") or "image/png"


def extension_for(mime: str) -> str:
    """File extension for an image mime type."""
    if "jpeg" in mime or "jpg" in mime:
        return "jpg"
    if "webp" in mime:
        return "webp"
    return "png"


class AIGateway:
    """Thin async wrapper over the gateway's ``/v1/chat/completions`` endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    async def _complete(self, payload: dict[str, Any]) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                resp = await client.post(
                    f"{self.base_url}/v1/chat/completions",
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json=payload,
                )
            except httpx.HTTPError as e:
                logger.warning("gateway.transport_error", model=payload.get("model"), error=str(e))
                raise UpstreamError(f"AI request failed: {e}") from e

        if resp.status_code >= 400:
            logger.warning(
                "gateway.error_status",
                model=payload.get("model"),
                status=resp.status_code,
                body=resp.text[:500],
            )
            raise UpstreamError(f"AI request failed: {resp.status_code}", resp.status_code)

        try:
            return resp.json()
        except ValueError as e:
            raise UpstreamError("AI gateway returned a non-JSON body", resp.status_code) from e

    async def chat(self, model: str, messages: list[dict[str, Any]]) -> str:
        """Send one chat completion and return the assistant text."""
        data = await self._complete({"model": model, "messages": messages})
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            content = None
        if not content:
            raise UpstreamError("No content from AI")
        return content

    async def generate_image(self, model: str, prompt: str | list[dict[str, Any]]) -> str | None:
        """Ask an image model for one picture. Returns its URL (usually a data URL) or None."""
        data = await self._complete(
            {
                "model": model,
                "messages": [{"role": "user", "content": prompt}],
                "modalities": ["image", "text"],
            }
        )
        try:
            return data["choices"][0]["message"]["images"][0]["image_url"]["url"]
        except (KeyError, IndexError, TypeError):
            return None


def gateway_from_settings(settings: Settings) -> AIGateway:
    return AIGateway(
        settings.ai_gateway_url,
        settings.ai_gateway_key,
        timeout=settings.gateway_timeout_seconds,
    )


@lru_cache
def get_gateway() -> AIGateway:
    """Get cached gateway client."""
    return gateway_from_settings(get_settings())
