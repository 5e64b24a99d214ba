"""Execution dispatcher — look up a group's function and run it once."""

from __future__ import annotations

import inspect
import logging
from typing import Any

from fastapi.encoders import jsonable_encoder
from starlette.concurrency import run_in_threadpool

from runrest.errors import FunctionExecutionError
from runrest.registry import GroupRecord

logger = logging.getLogger("runrest.dispatcher")


class ExecutionDispatcher:
    """Invokes registered functions. Calls are not serialized or retried."""

    async def dispatch(self, group: GroupRecord, function_name: str, argument: Any) -> Any:
        """Run the function and return its result in JSON-compatible form."""
        entry = group.lookup(function_name)
        argument = entry.validate_argument(argument)

        try:
            if entry.is_coroutine:
                result = await entry.func(argument)
            else:
                result = await run_in_threadpool(entry.func, argument)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            logger.warning("Function %s in group %s raised %s", entry.name, group.name, type(exc).__name__)
            raise FunctionExecutionError(str(exc)) from exc

        try:
            return jsonable_encoder(result)
        except (TypeError, ValueError) as exc:
            logger.warning(
                "Function %s in group %s returned a %s, which is not JSON-encodable",
                entry.name,
                group.name,
                type(result).__name__,
            )
            raise FunctionExecutionError(
                f'Function "{entry.name}" returned a value that cannot be encoded as JSON'
            ) from exc
