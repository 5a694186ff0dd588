"""Supabase client initialization and helper methods."""

from __future__ import annotations

from functools import lru_cache
from typing import Any

import structlog
from supabase import Client, create_client

from carousel_studio.config import get_settings

logger = structlog.get_logger()


class SupabaseClient:
    """Wrapper around the Supabase client with convenience methods.

    Covers the three Supabase surfaces the pipeline touches: Postgres tables,
    the object storage bucket that holds generated art, and auth claim checks
    for bearer tokens.
    """

    def __init__(self, client: Client) -> None:
        self._client = client

    @property
    def client(self) -> Client:
        """Access the raw Supabase client."""
        return self._client

    # --- Tables ---

    def insert(self, table: str, data: dict[str, Any]) -> dict[str, Any]:
        """Insert a record and return the created row."""
        result = self._client.table(table).insert(data).execute()
        return result.data[0]

    def insert_many(self, table: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Insert several records in one request and return the created rows."""
        if not rows:
            return []
        result = self._client.table(table).insert(rows).execute()
        return result.data

    def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        ascending: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Select records with optional equality filters, ordering, and limit."""
        query = self._client.table(table).select("*")

        if filters:
            for key, value in filters.items():
                query = query.eq(key, value)

        if order_by:
            query = query.order(order_by, desc=not ascending)

        if limit:
            query = query.limit(limit)

        result = query.execute()
        return result.data

    def get(self, table: str, id: str) -> dict[str, Any] | None:
        """Fetch one record by ID, or None."""
        rows = self.select(table, filters={"id": id}, limit=1)
        return rows[0] if rows else None

    def update(self, table: str, id: str, data: dict[str, Any]) -> dict[str, Any]:
        """Update a record by ID."""
        result = self._client.table(table).update(data).eq("id", id).execute()
        return result.data[0]

    def update_where(
        self, table: str, filters: dict[str, Any], data: dict[str, Any]
    ) -> list[dict[str, Any]]:
        """Update every record matching the equality filters."""
        query = self._client.table(table).update(data)
        for key, value in filters.items():
            query = query.eq(key, value)
        result = query.execute()
        return result.data

    def upsert(self, table: str, data: dict[str, Any], on_conflict: str) -> dict[str, Any]:
        """Insert or overwrite the record identified by the ``on_conflict`` column."""
        result = self._client.table(table).upsert(data, on_conflict=on_conflict).execute()
        return result.data[0]

    def delete(self, table: str, id: str) -> None:
        """Delete a record by ID."""
        self._client.table(table).delete().eq("id", id).execute()

    def delete_where(self, table: str, filters: dict[str, Any]) -> None:
        """Delete every record matching the equality filters."""
        query = self._client.table(table).delete()
        for key, value in filters.items():
            query = query.eq(key, value)
        query.execute()

    # --- Storage ---

    def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        """Upload bytes to a storage bucket and return the object's public URL.

        Paths are expected to be unique; an existing object is never replaced.
        """
        self._client.storage.from_(bucket).upload(
            path,
            data,
            {"content-type": content_type, "upsert": "false"},
        )
        return self._client.storage.from_(bucket).get_public_url(path)

    # --- Auth ---

    def get_claims(self, token: str) -> dict[str, Any] | None:
        """Verify a user access token. Returns its claims, or None if rejected."""
        try:
            response = self._client.auth.get_user(token)
        except Exception as e:
            logger.info("supabase.token_rejected", error=str(e))
            return None
        if response is None or response.user is None:
            return None
        return {"sub": response.user.id, "email": response.user.email}


@lru_cache
def get_supabase_client() -> SupabaseClient:
    """Get cached Supabase client instance."""
    settings = get_settings()
    client = create_client(settings.supabase_url, settings.supabase_key)
    logger.info("supabase.connected", url=settings.supabase_url)
    return SupabaseClient(client)
