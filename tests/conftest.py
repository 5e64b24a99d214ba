"""Shared fixtures. RSA generation is slow, so one small ring serves the session."""

from __future__ import annotations

import pytest

from runrest.keyring import KeyRing


@pytest.fixture(scope="session")
def keyring() -> KeyRing:
    return KeyRing.generate(3)


@pytest.fixture
def anyio_backend():
    return "asyncio"
