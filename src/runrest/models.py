"""Wire models for the JSON messages the gateway accepts and returns."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True)
class Registration:
    """What a successful registration hands back to the caller."""

    id: list[str]
    execution_route: str


class RegistrationRequest(BaseModel):
    password: str


class RegistrationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: list[str]
    execution_route: str = Field(alias="executionRoute")


class ExecutionRequest(BaseModel):
    # shape is checked by the verifier so every bad bundle is "Invalid token"
    id: Any = None
    fn: str
    arg: Any = None


class ActiveKeyUpdate(BaseModel):
    index: int
