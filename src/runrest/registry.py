"""Group registry — group name to group record, each with its function catalog.

Functions are registered with a fixed call signature: exactly one positional
argument. When that argument is annotated, incoming values are validated
against the annotation before the function runs.
"""

from __future__ import annotations

import inspect
import logging
import re
import secrets
import threading
import typing
from dataclasses import dataclass, field
from typing import Any, Callable

from pydantic import TypeAdapter, ValidationError

from runrest.config import RunRestConfig
from runrest.errors import (
    ConfigurationError,
    FunctionNotFoundError,
    InvalidArgumentError,
    SignatureError,
    UnknownGroupError,
)

logger = logging.getLogger("runrest.registry")

_GROUP_NAME = re.compile(r"^[A-Za-z][A-Za-z0-9_]{0,63}$")
_POSITIONAL = (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)


def normalize_group_name(name: str) -> str:
    return name.lower()


@dataclass(frozen=True)
class RegisteredFunction:
    """A catalog entry: a callable and the type its single argument must satisfy."""

    name: str
    func: Callable[[Any], Any]
    argument_type: Any = Any
    is_coroutine: bool = False
    _adapter: TypeAdapter | None = field(default=None, repr=False, compare=False)

    @classmethod
    def from_callable(cls, func: Callable[[Any], Any], name: str | None = None) -> RegisteredFunction:
        if not callable(func):
            raise SignatureError(f"{func!r} is not callable")
        name = name or getattr(func, "__name__", "")
        if not name or name == "<lambda>":
            raise SignatureError("Anonymous functions need an explicit name")

        try:
            signature = inspect.signature(func)
        except (TypeError, ValueError) as exc:
            raise SignatureError(f"Cannot inspect signature of {name!r}: {exc}") from exc

        params = list(signature.parameters.values())
        required = [
            p for p in params
            if p.default is inspect.Parameter.empty
            and p.kind not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
        ]
        if not params or params[0].kind not in _POSITIONAL or len(required) > 1:
            raise SignatureError(f"Function {name!r} must accept exactly one positional argument")
        if required and required[0] is not params[0]:
            raise SignatureError(f"Function {name!r} must accept exactly one positional argument")

        argument_type = _argument_type(func, params[0], name)
        adapter = None if argument_type is Any else TypeAdapter(argument_type)
        return cls(
            name=name,
            func=func,
            argument_type=argument_type,
            is_coroutine=inspect.iscoroutinefunction(func),
            _adapter=adapter,
        )

    def validate_argument(self, argument: Any) -> Any:
        if self._adapter is None:
            return argument
        try:
            return self._adapter.validate_python(argument)
        except ValidationError as exc:
            raise InvalidArgumentError(
                f'Invalid argument for "{self.name}": {exc.error_count()} validation error(s)'
            ) from exc


def _argument_type(func: Callable, param: inspect.Parameter, name: str) -> Any:
    annotation = param.annotation
    if annotation is inspect.Parameter.empty:
        return Any
    if isinstance(annotation, str):
        # postponed annotations (from __future__ import annotations)
        try:
            annotation = typing.get_type_hints(func).get(param.name, Any)
        except (NameError, TypeError) as exc:
            raise SignatureError(f"Cannot resolve annotations of {name!r}: {exc}") from exc
    return annotation


@dataclass
class GroupRecord:
    name: str
    secret_ref: str
    execution_hash: str
    functions: dict[str, RegisteredFunction] = field(default_factory=dict)

    @property
    def registration_route(self) -> str:
        return f"/{self.name}/register"

    @property
    def execution_route(self) -> str:
        return f"/{self.name}/execute-{self.execution_hash}"

    def lookup(self, function_name: str) -> RegisteredFunction:
        try:
            return self.functions[function_name]
        except KeyError:
            raise FunctionNotFoundError(function_name) from None


class GroupRegistry:
    """Groups known to this server. Groups are never removed."""

    def __init__(self, config: RunRestConfig):
        self._config = config
        self._groups: dict[str, GroupRecord] = {}
        self._lock = threading.Lock()

    def add_group(self, group_name: str) -> GroupRecord:
        if not isinstance(group_name, str) or not _GROUP_NAME.match(group_name):
            raise ConfigurationError(f"Invalid group name: {group_name!r}")
        if self._config.group_secret(group_name) is None:
            raise ConfigurationError(f"Missing secret for group {group_name!r} (GROUP_{group_name.upper()}_PASSWORD)")

        name = normalize_group_name(group_name)
        with self._lock:
            if name in self._groups:
                raise ConfigurationError(f"Group {name!r} already added")
            record = GroupRecord(
                name=name,
                secret_ref=group_name.upper(),
                execution_hash=secrets.token_hex(16),
            )
            self._groups[name] = record
        logger.info("Added group %s (registration route %s)", name, record.registration_route)
        return record

    def define(self, func: Callable[[Any], Any], group_name: str, name: str | None = None) -> RegisteredFunction:
        """Add a function to a group's catalog. A duplicate name replaces the earlier entry."""
        record = self.get(group_name)
        if record is None:
            raise UnknownGroupError(f'Group "{group_name}" not found.')
        entry = RegisteredFunction.from_callable(func, name)
        with self._lock:
            replaced = entry.name in record.functions
            record.functions[entry.name] = entry
        if replaced:
            logger.info("Replaced function %s in group %s", entry.name, record.name)
        else:
            logger.debug("Defined function %s in group %s", entry.name, record.name)
        return entry

    def get(self, group_name: str) -> GroupRecord | None:
        return self._groups.get(normalize_group_name(group_name))

    def secret_for(self, record: GroupRecord) -> str | None:
        return self._config.group_secret(record.secret_ref)

    def groups(self) -> list[GroupRecord]:
        with self._lock:
            return list(self._groups.values())
