"""Bearer-token authentication for the user-facing endpoints."""

from __future__ import annotations

from fastapi import Depends, Header

from carousel_studio.core.errors import AuthError
from carousel_studio.db.client import SupabaseClient, get_supabase_client
from carousel_studio.utils.logging import stage_logger

logger = stage_logger("auth")


def require_user(
    authorization: str | None = Header(default=None),
    db: SupabaseClient = Depends(get_supabase_client),
) -> str:
    """Resolve the caller's user id from ``Authorization: Bearer <token>``."""
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthError("Unauthorized")

    token = authorization[len("Bearer "):].strip()
    claims = db.get_claims(token) if token else None
    if not claims or not claims.get("sub"):
        logger.info("auth.invalid_token")
        raise AuthError("Invalid token")
    return claims["sub"]
