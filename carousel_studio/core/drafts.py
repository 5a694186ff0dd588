"""Draft cache — debounced local persistence of in-progress slide edits.

A draft lives under a composite key and moves through
``absent -> pending -> restored | discarded``. Saves are debounced on the
running event loop: rapid calls coalesce into the trailing write. Closing a
session flushes a pending write instead of dropping it.
"""

from __future__ import annotations

import asyncio
import json
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import quote, unquote

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = structlog.get_logger()

DRAFT_PREFIX = "draft:"
DEFAULT_DEBOUNCE_MS = 1000


class DraftData(BaseModel):
    """Snapshot of an editor's state. ``saved_at`` is epoch milliseconds."""

    model_config = ConfigDict(populate_by_name=True)

    slides: list[dict[str, Any]] = Field(default_factory=list)
    caption: str | None = None
    hashtags: list[str] | None = None
    title: str | None = None
    notes: str | None = None
    config: dict[str, Any] | None = None
    saved_at: int = Field(alias="savedAt")


def build_studio_draft_key(user_id: str, brand_id: str, template_set_id: str, format: str) -> str:
    return f"{DRAFT_PREFIX}studio:{user_id}:{brand_id}:{template_set_id}:{format}"


def build_content_draft_key(content_id: str) -> str:
    return f"{DRAFT_PREFIX}content:{content_id}"


# --- Storage backends ---


class DraftStorage(Protocol):
    """String key/value store, the shape of a browser's localStorage."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


class MemoryDraftStorage:
    """Process-local storage, used by tests and short-lived sessions."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._items)


class FileDraftStorage:
    """One JSON file per key under ``directory``; keys are percent-encoded."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        self._path(key).write_text(value, encoding="utf-8")

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def keys(self) -> list[str]:
        if not self.directory.exists():
            return []
        return sorted(unquote(p.stem) for p in self.directory.glob("*.json"))


# --- Persistence helpers (best effort: failures are logged, never raised) ---


def save_draft(storage: DraftStorage, key: str, data: DraftData) -> None:
    try:
        storage.set(key, data.model_dump_json(by_alias=True))
    except OSError as e:
        logger.warning("draft.save_failed", key=key, error=str(e))


def load_draft(storage: DraftStorage, key: str) -> DraftData | None:
    try:
        raw = storage.get(key)
    except OSError as e:
        logger.warning("draft.load_failed", key=key, error=str(e))
        return None
    if not raw:
        return None
    try:
        return DraftData.model_validate(json.loads(raw))
    except (ValueError, ValidationError):
        logger.warning("draft.corrupt", key=key)
        return None


def clear_draft(storage: DraftStorage, key: str) -> None:
    try:
        storage.remove(key)
    except OSError as e:
        logger.warning("draft.clear_failed", key=key, error=str(e))


def _to_ms(timestamp: str | datetime) -> int:
    if isinstance(timestamp, str):
        timestamp = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return int(timestamp.timestamp() * 1000)


def is_draft_newer(draft: DraftData | None, db_timestamp: str | datetime | None = None) -> bool:
    """True when the draft should win over the server row last modified at ``db_timestamp``."""
    if draft is None:
        return False
    if not db_timestamp:
        return True
    try:
        server_ms = _to_ms(db_timestamp)
    except ValueError:
        logger.warning("draft.bad_server_timestamp", timestamp=str(db_timestamp))
        return False
    return draft.saved_at > server_ms


# --- Session ---


class DraftSession:
    """Draft lifecycle for one editor instance.

    ``save_to_draft`` must be called from a running event loop; a single timer
    handle is kept, so overlapping writes cannot happen.
    """

    def __init__(
        self,
        key: str | None,
        storage: DraftStorage,
        enabled: bool = True,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
    ) -> None:
        self.key = key
        self.storage = storage
        self.enabled = enabled
        self.debounce_ms = debounce_ms
        self.has_unsaved_changes = False
        self._pending_draft: DraftData | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._queued: tuple[str, dict[str, Any]] | None = None

    @property
    def pending_draft(self) -> DraftData | None:
        """Draft loaded from storage and not yet restored or discarded."""
        return self._pending_draft

    def load(self) -> DraftData | None:
        """Read the stored draft once; it becomes the pending draft."""
        if not self.key or not self.enabled:
            self._pending_draft = None
            return None
        draft = load_draft(self.storage, self.key)
        if draft is not None:
            self._pending_draft = draft
        return draft

    def switch_key(self, key: str | None) -> DraftData | None:
        """Point the session at another key; a queued write still lands on the old one."""
        self.flush()
        self.key = key
        self._pending_draft = None
        return self.load()

    def restore_draft(self) -> DraftData | None:
        """Hand over the pending draft. A second call returns None."""
        draft, self._pending_draft = self._pending_draft, None
        return draft

    def discard_draft(self) -> None:
        if self.key:
            clear_draft(self.storage, self.key)
        self._pending_draft = None

    def save_to_draft(self, data: dict[str, Any]) -> None:
        """Schedule a debounced write of ``data``; each call restarts the timer.

        ``data`` is validated up front, so an invalid snapshot raises
        ``ValidationError`` here and leaves any earlier queued write in place.
        """
        if not self.key or not self.enabled:
            return
        fields = {k: v for k, v in data.items() if k not in ("savedAt", "saved_at")}
        DraftData(**fields, saved_at=0)
        if self._timer is not None:
            self._timer.cancel()
        self._queued = (self.key, fields)
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.debounce_ms / 1000, self._write)
        self.has_unsaved_changes = True

    def _write(self) -> None:
        self._timer = None
        if self._queued is None:
            return
        key, data = self._queued
        self._queued = None
        save_draft(self.storage, key, DraftData(**data, saved_at=int(time.time() * 1000)))
        self.has_unsaved_changes = False

    def flush(self) -> bool:
        """Write a queued save now. Returns True if there was one."""
        if self._timer is not None:
            self._timer.cancel()
        if self._queued is None:
            self._timer = None
            return False
        self._write()
        return True

    def clear(self) -> None:
        """Drop the stored draft, any queued write and the unsaved flag."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._queued = None
        if self.key:
            clear_draft(self.storage, self.key)
        self._pending_draft = None
        self.has_unsaved_changes = False

    def close(self) -> None:
        """Tear the session down, persisting the last edit if a write was queued."""
        if self.flush():
            logger.info("draft.flushed_on_close", key=self.key)
