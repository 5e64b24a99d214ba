"""RunRest server — wires key ring, registry, credentials and dispatcher.

Everything is built from one explicit RunRestConfig. The server holds no
per-request state: the registry and ring are set up once, and the active
key index is the only value that changes while requests are served.
"""

from __future__ import annotations

import importlib
import logging
import secrets
from typing import Any, Callable

from starlette.concurrency import run_in_threadpool

from runrest.config import RunRestConfig
from runrest.credentials import CredentialIssuer, CredentialVerifier
from runrest.dispatcher import ExecutionDispatcher
from runrest.errors import (
    AuthorizationError,
    ConfigurationError,
    GroupNotFoundError,
)
from runrest.keyring import ActiveKeyIndex, KeyRing
from runrest.models import Registration
from runrest.registry import GroupRecord, GroupRegistry, RegisteredFunction

logger = logging.getLogger("runrest.server")

INVALID_PASSWORD = "Invalid password"


class RunRestServer:
    def __init__(self, config: RunRestConfig, keyring: KeyRing | None = None):
        self.config = config
        if keyring is None:
            if config.keys:
                keyring = KeyRing.load(config.keys)
                logger.info("Loaded key ring with %d keys", len(keyring))
            else:
                keyring = KeyRing.generate(config.key_count)
                logger.info("Generated key ring with %d keys", len(keyring))
        self.keyring = keyring
        try:
            self.active_key = ActiveKeyIndex(len(keyring), config.active_key_index)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        self.registry = GroupRegistry(config)
        self.issuer = CredentialIssuer(keyring)
        self.verifier = CredentialVerifier(keyring, self.active_key)
        self.dispatcher = ExecutionDispatcher()

    # ── Setup ─────────────────────────────────────────────────

    def add_group(self, group_name: str) -> GroupRecord:
        return self.registry.add_group(group_name)

    def define(self, func: Callable[[Any], Any], group_name: str, name: str | None = None) -> RegisteredFunction:
        return self.registry.define(func, group_name, name)

    def function(self, group_name: str, name: str | None = None):
        """Decorator form of define()."""

        def decorator(func):
            self.define(func, group_name, name)
            return func

        return decorator

    def run_setup_hook(self) -> None:
        """Call the configured "module:function" hook with this server."""
        if not self.config.setup:
            return
        module_name, _, attr = self.config.setup.partition(":")
        if not module_name or not attr:
            raise ConfigurationError(f"Setup hook must look like 'module:function', got {self.config.setup!r}")
        hook = getattr(importlib.import_module(module_name), attr)
        logger.info("Running setup hook %s", self.config.setup)
        hook(self)

    # ── Protocol ──────────────────────────────────────────────

    def _group(self, group_name: str) -> GroupRecord:
        record = self.registry.get(group_name)
        if record is None:
            raise GroupNotFoundError(f'Group "{group_name}" not found')
        return record

    def register(self, group_name: str, password: str) -> Registration:
        record = self._group(group_name)
        expected = self.registry.secret_for(record)
        if expected is None or not secrets.compare_digest(
            password.encode("utf-8"), expected.encode("utf-8")
        ):
            logger.info("Rejected registration for group %s", record.name)
            raise AuthorizationError(INVALID_PASSWORD)
        bundle = self.issuer.issue(record.name)
        logger.info("Issued token bundle for group %s", record.name)
        return Registration(id=bundle, execution_route=record.execution_route)

    def resolve_execution(self, group_name: str, execution_hash: str) -> GroupRecord:
        """Group owning an execution route. A wrong hash looks like an unknown route."""
        record = self.registry.get(group_name)
        if record is None or not secrets.compare_digest(
            execution_hash.encode("utf-8"), record.execution_hash.encode("utf-8")
        ):
            raise GroupNotFoundError("Not Found")
        return record

    async def execute(self, record: GroupRecord, bundle: Any, function_name: str, argument: Any) -> Any:
        await run_in_threadpool(self.verifier.verify, bundle, record.name)
        return await self.dispatcher.dispatch(record, function_name, argument)
