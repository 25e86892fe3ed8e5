"""Request and response models for the REST API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator


class ErrorResponse(BaseModel):
    """Error envelope returned by every failing endpoint."""

    error: str
    detail: str


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    stack: str
    recorded_resources: int


class PlanRequest(BaseModel):
    """Body of ``POST /plan``."""

    parameters: dict[str, str] = Field(default_factory=dict)
    refresh: bool = False

    @field_validator("parameters")
    @classmethod
    def _names_not_blank(cls, value: dict[str, str]) -> dict[str, str]:
        for name in value:
            if not name.strip():
                raise ValueError("parameter names must not be blank")
        return value


class FieldChangeModel(BaseModel):
    field_path: str
    old_value: Any = None
    new_value: Any = None


class PlannedActionModel(BaseModel):
    action: str
    name: str
    kind: str
    reason: str = ""
    changes: list[FieldChangeModel] = Field(default_factory=list)


class PlanResponse(BaseModel):
    created_at: str
    summary: dict[str, int]
    waves: list[list[str]]
    actions: list[PlannedActionModel]


class GraphEdgeModel(BaseModel):
    source: str
    target: str
    type: str
    field: str = ""


class GraphResponse(BaseModel):
    waves: list[list[str]]
    edges: list[GraphEdgeModel]


class StateRecordModel(BaseModel):
    kind: str
    name: str
    physical_id: str
    attributes: dict[str, Any]
    outputs: dict[str, Any]
    attributes_hash: str
    dependencies: list[str]
    applied_at: str
