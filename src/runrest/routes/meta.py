"""Meta endpoints — health, version, groups, active key rotation."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from runrest.deps import get_server
from runrest.models import ActiveKeyUpdate
from runrest.server import RunRestServer

router = APIRouter(prefix="/api/v1", tags=["meta"])

VERSION = "0.1.0"


@router.get("/health")
def health():
    return {"status": "ok", "service": "runrest"}


@router.get("/version")
def version(server: RunRestServer = Depends(get_server)):
    return {
        "gateway": VERSION,
        "keys": len(server.keyring),
    }


@router.get("/groups")
def groups(server: RunRestServer = Depends(get_server)):
    return [
        {
            "name": group.name,
            "registrationRoute": group.registration_route,
            "functions": sorted(group.functions),
        }
        for group in server.registry.groups()
    ]


@router.get("/active-key")
def get_active_key(server: RunRestServer = Depends(get_server)):
    return {"index": server.active_key.get(), "size": server.active_key.size}


@router.put("/active-key")
def rotate_active_key(
    update: ActiveKeyUpdate,
    server: RunRestServer = Depends(get_server),
):
    try:
        index = server.active_key.set(update.index)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"index": index, "size": server.active_key.size}
