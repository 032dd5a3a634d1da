from __future__ import annotations

from pydantic import BaseModel, Field


class OperationResponse(BaseModel):
    # Empty on success; a single human-readable description otherwise.
    error: str = ""


class OperationArgument(BaseModel):
    name: str
    type: str
    direction: str


class OperationDescription(BaseModel):
    name: str
    method: str
    path: str
    args: list[OperationArgument] = Field(default_factory=list)


class IntrospectionResponse(BaseModel):
    service: str
    version: str
    operations: list[OperationDescription]
