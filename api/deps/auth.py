"""Authentication dependency resolving the requesting principal."""
from __future__ import annotations

import logging
import os
from typing import Dict

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)


def _parse_tokens(raw: str) -> Dict[str, str]:
    """Parse ``token:principal,token2:principal2`` into a lookup table."""
    tokens: Dict[str, str] = {}
    for pair in raw.split(","):
        token, sep, principal = pair.strip().partition(":")
        if sep and token.strip() and principal.strip():
            tokens[token.strip()] = principal.strip()
    return tokens


# Auth configuration - read from environment
API_AUTH_ENABLED: bool = os.environ.get("DEBATE_JOBS_API_AUTH_ENABLED", "true").lower() in (
    "true", "1", "yes",
)
API_TOKENS: Dict[str, str] = _parse_tokens(os.environ.get("DEBATE_JOBS_API_TOKENS", ""))


async def require_principal(request: Request) -> str:
    """FastAPI dependency returning the id of the authenticated principal.

    Reads the token from ``Authorization: Bearer <token>`` or the
    ``X-API-Key`` header and maps it to a principal through
    ``DEBATE_JOBS_API_TOKENS``.  With auth disabled (local dev mode) the
    principal is taken from ``X-User-Id``.

    Raises
    ------
    HTTPException(401)
        If no principal can be established.
    """
    if not API_AUTH_ENABLED:
        user_id = request.headers.get("X-User-Id", "").strip()
        if not user_id:
            raise HTTPException(status_code=401, detail="Missing X-User-Id header")
        return user_id

    if not API_TOKENS:
        logger.warning(
            "API auth is enabled but DEBATE_JOBS_API_TOKENS is empty. "
            "All authenticated requests will be rejected."
        )
        raise HTTPException(status_code=401, detail="Server auth tokens not configured")

    # Try Authorization header first, then X-API-Key
    token: str | None = None

    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()

    if not token:
        token = request.headers.get("X-API-Key", "").strip() or None

    if not token:
        raise HTTPException(status_code=401, detail="Missing authentication token")

    principal = API_TOKENS.get(token)
    if principal is None:
        raise HTTPException(status_code=401, detail="Invalid authentication token")
    return principal
