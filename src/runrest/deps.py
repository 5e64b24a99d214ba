"""FastAPI dependencies for RunRest routes."""

from __future__ import annotations

from fastapi import Request

from runrest.server import RunRestServer


def get_server(request: Request) -> RunRestServer:
    """Get the RunRest server from app state."""
    return request.app.state.server
