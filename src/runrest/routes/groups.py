"""Group endpoints — registration and execution.

Registration lives at a predictable path per group. Execution lives at a
path carrying a random hash, handed out only on successful registration.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from runrest.deps import get_server
from runrest.models import ExecutionRequest, RegistrationRequest, RegistrationResponse
from runrest.server import RunRestServer

router = APIRouter(tags=["groups"])


@router.post(
    "/{group_name}/register",
    response_model=RegistrationResponse,
    response_model_by_alias=True,
)
def register(
    group_name: str,
    body: RegistrationRequest,
    server: RunRestServer = Depends(get_server),
):
    registration = server.register(group_name, body.password)
    return RegistrationResponse(id=registration.id, execution_route=registration.execution_route)


@router.post("/{group_name}/execute-{execution_hash}")
async def execute(
    group_name: str,
    execution_hash: str,
    body: ExecutionRequest,
    server: RunRestServer = Depends(get_server),
):
    group = server.resolve_execution(group_name, execution_hash)
    result = await server.execute(group, body.id, body.fn, body.arg)
    return {"result": result}
