"""Bearer token enforcement for the refresh API.

An unset token leaves the API open, which suits local development and
tests; deployments set `api_token` in secrets.yml.
"""

from __future__ import annotations

import hmac

from fastapi import HTTPException, status

BEARER_PREFIX = "bearer "


def _extract_bearer(authorization: str | None) -> str | None:
    value = (authorization or "").strip()
    if value.lower().startswith(BEARER_PREFIX):
        token = value[len(BEARER_PREFIX):].strip()
        return token or None
    return None


def is_authorized(authorization: str | None, api_token: str | None) -> bool:
    if not api_token:
        return True
    presented = _extract_bearer(authorization)
    if presented is None:
        return False
    return hmac.compare_digest(presented.encode("utf-8"), api_token.encode("utf-8"))


def enforce_api_token_or_401(
    authorization: str | None,
    api_token: str | None,
) -> None:
    if is_authorized(authorization, api_token):
        return

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="missing or invalid bearer token",
        headers={"WWW-Authenticate": "Bearer"},
    )
