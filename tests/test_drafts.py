"""Tests for the draft cache."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from carousel_studio.core.drafts import (
    DraftData,
    DraftSession,
    FileDraftStorage,
    MemoryDraftStorage,
    build_content_draft_key,
    build_studio_draft_key,
    clear_draft,
    is_draft_newer,
    load_draft,
    save_draft,
)

KEY = build_content_draft_key("c1")
T = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
T_MS = int(T.timestamp() * 1000)


def _draft(saved_at: int = T_MS, **kw) -> DraftData:
    return DraftData(slides=[{"headline": "h"}], savedAt=saved_at, **kw)


class TestKeys:
    def test_studio_key(self):
        assert build_studio_draft_key("u", "b", "t", "carousel") == "draft:studio:u:b:t:carousel"

    def test_content_key(self):
        assert KEY == "draft:content:c1"


class TestStaleness:
    def test_no_server_timestamp(self):
        assert is_draft_newer(_draft(), None)

    def test_no_draft(self):
        assert not is_draft_newer(None, T.isoformat())

    def test_equal_is_not_newer(self):
        assert not is_draft_newer(_draft(T_MS), T.isoformat())

    def test_strictly_newer(self):
        assert is_draft_newer(_draft(T_MS + 1), T.isoformat())
        assert not is_draft_newer(_draft(T_MS - 1), T.isoformat())

    def test_zulu_and_datetime(self):
        assert not is_draft_newer(_draft(T_MS), "2026-05-01T12:00:00Z")
        assert is_draft_newer(_draft(T_MS + 1000), T)

    def test_unparseable_server_timestamp(self):
        assert not is_draft_newer(_draft(), "not-a-date")


class TestPersistence:
    def test_round_trip_uses_saved_at_alias(self):
        storage = MemoryDraftStorage()
        save_draft(storage, KEY, _draft(title="t"))
        assert json.loads(storage.get(KEY))["savedAt"] == T_MS
        assert load_draft(storage, KEY).title == "t"

    def test_corrupt_and_missing(self):
        storage = MemoryDraftStorage()
        storage.set(KEY, "{broken")
        assert load_draft(storage, KEY) is None
        assert load_draft(storage, "draft:content:none") is None

    def test_file_storage(self, tmp_path):
        storage = FileDraftStorage(tmp_path / "drafts")
        key = build_studio_draft_key("u", "b", "t", "story")
        save_draft(storage, key, _draft())
        assert storage.keys() == [key]
        assert load_draft(storage, key).saved_at == T_MS
        clear_draft(storage, key)
        assert storage.keys() == []
        clear_draft(storage, key)


class TestDraftSession:
    def test_restore_consumes_once(self):
        storage = MemoryDraftStorage()
        save_draft(storage, KEY, _draft())
        session = DraftSession(KEY, storage)
        session.load()

        first = session.restore_draft()
        assert first is not None
        assert first.saved_at == T_MS
        assert session.restore_draft() is None

    def test_discard_clears_storage(self):
        storage = MemoryDraftStorage()
        save_draft(storage, KEY, _draft())
        session = DraftSession(KEY, storage)
        session.load()
        session.discard_draft()
        assert session.pending_draft is None
        assert storage.get(KEY) is None

    def test_disabled_or_keyless(self):
        storage = MemoryDraftStorage()
        save_draft(storage, KEY, _draft())
        assert DraftSession(KEY, storage, enabled=False).load() is None
        assert DraftSession(None, storage).load() is None

    @pytest.mark.asyncio
    async def test_debounce_coalesces_to_trailing_write(self):
        storage = MemoryDraftStorage()
        session = DraftSession(KEY, storage, debounce_ms=20)

        session.save_to_draft({"slides": [{"headline": "a"}]})
        session.save_to_draft({"slides": [{"headline": "b"}]})
        assert session.has_unsaved_changes
        assert storage.get(KEY) is None

        await asyncio.sleep(0.1)
        assert not session.has_unsaved_changes
        assert load_draft(storage, KEY).slides == [{"headline": "b"}]

    @pytest.mark.asyncio
    async def test_close_flushes_pending_write(self):
        storage = MemoryDraftStorage()
        session = DraftSession(KEY, storage, debounce_ms=10_000)
        session.save_to_draft({"caption": "last edit"})
        session.close()

        assert load_draft(storage, KEY).caption == "last edit"
        assert not session.has_unsaved_changes
        await asyncio.sleep(0)

    @pytest.mark.asyncio
    async def test_clear_cancels_pending_write(self):
        storage = MemoryDraftStorage()
        session = DraftSession(KEY, storage, debounce_ms=20)
        session.save_to_draft({"caption": "x"})
        session.clear()
        await asyncio.sleep(0.05)
        assert storage.get(KEY) is None
        assert not session.has_unsaved_changes

    @pytest.mark.asyncio
    async def test_switch_key_writes_to_old_key(self):
        storage = MemoryDraftStorage()
        other = build_content_draft_key("c2")
        save_draft(storage, other, _draft(title="other"))
        session = DraftSession(KEY, storage, debounce_ms=10_000)
        session.save_to_draft({"title": "mine"})

        loaded = session.switch_key(other)

        assert load_draft(storage, KEY).title == "mine"
        assert loaded.title == "other"
        assert session.pending_draft.title == "other"

    @pytest.mark.asyncio
    async def test_invalid_snapshot_is_rejected_up_front(self):
        storage = MemoryDraftStorage()
        session = DraftSession(KEY, storage, debounce_ms=10_000)

        with pytest.raises(ValidationError):
            session.save_to_draft({"caption": {"text": "not a string"}})
        assert not session.has_unsaved_changes
        assert not session.flush()
        assert storage.get(KEY) is None

    @pytest.mark.asyncio
    async def test_invalid_snapshot_keeps_earlier_queued_write(self):
        storage = MemoryDraftStorage()
        session = DraftSession(KEY, storage, debounce_ms=10_000)
        session.save_to_draft({"caption": "good"})

        with pytest.raises(ValidationError):
            session.save_to_draft({"hashtags": "not-a-list"})

        assert session.flush()
        assert load_draft(storage, KEY).caption == "good"
