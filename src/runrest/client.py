"""Client side of RunRest: register with a group, then run its functions.

A session holds at most one registration. Registering again replaces it.
Nothing is retried; failures surface as typed errors.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from runrest.errors import ExecutionError, NotRegisteredError, RegistrationError
from runrest.models import Registration

logger = logging.getLogger("runrest.client")


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or "")
    return ""


class ClientSession:
    def __init__(
        self,
        server_address: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ):
        self.server_address = server_address.rstrip("/")
        self._http = httpx.AsyncClient(
            base_url=self.server_address,
            transport=transport,
            timeout=timeout,
        )
        self._registration: Registration | None = None

    async def __aenter__(self) -> ClientSession:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._http.aclose()

    @property
    def registered(self) -> bool:
        return self._registration is not None

    @property
    def registration(self) -> Registration | None:
        return self._registration

    async def register(self, group_name: str, group_secret: str) -> Registration:
        response = await self._http.post(f"/{group_name}/register", json={"password": group_secret})
        if not response.is_success:
            logger.warning("Registration with group %s failed: %d", group_name, response.status_code)
            raise RegistrationError(response.status_code, _error_message(response))

        data = response.json()
        self._registration = Registration(id=data["id"], execution_route=data["executionRoute"])
        logger.info("Registered with group %s", group_name)
        return self._registration

    async def run(self, function_name: str, argument: Any = None) -> dict[str, Any]:
        """Run a function of the registered group. Returns the result envelope."""
        if self._registration is None:
            raise NotRegisteredError()

        response = await self._http.post(
            self._registration.execution_route,
            json={"id": self._registration.id, "fn": function_name, "arg": argument},
        )
        if not response.is_success:
            logger.warning("Executing %s failed: %d", function_name, response.status_code)
            raise ExecutionError(response.status_code, _error_message(response))
        return response.json()
