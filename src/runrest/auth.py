"""Operator key for the /api/v1 admin surface.

The key guards active-key rotation and the group listing. Rotation picks
the key every incoming token is decrypted with, so production deployments
set RUNREST_API_KEY; an empty key leaves the surface open for local
development. Group routes never consult it: they authenticate with
group secrets and token bundles.
"""

from __future__ import annotations

import secrets

from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader

_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def make_api_key_checker(expected_key: str):
    """Return a FastAPI dependency that checks the API key.

    If expected_key is empty, all requests are allowed (development mode).
    """

    async def check_api_key(
        api_key: str | None = Security(_api_key_header),
    ) -> str | None:
        if not expected_key:
            return None
        if api_key is None or not secrets.compare_digest(
            api_key.encode("utf-8"), expected_key.encode("utf-8")
        ):
            raise HTTPException(
                status_code=401,
                detail="Invalid or missing API key",
            )
        return api_key

    return check_api_key
