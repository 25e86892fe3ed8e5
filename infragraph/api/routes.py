"""REST API routes."""

from __future__ import annotations

from fastapi import APIRouter, Request

from infragraph import __version__
from infragraph.api.schemas import (
    GraphEdgeModel,
    GraphResponse,
    HealthResponse,
    PlanRequest,
    PlanResponse,
    StateRecordModel,
)
from infragraph.app import InfraGraphApp

router = APIRouter()


def _app(request: Request) -> InfraGraphApp:
    return request.app.state.infragraph  # type: ignore[no-any-return]


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    app = _app(request)
    return HealthResponse(
        version=__version__,
        stack=app.stack.name if app.stack else "",
        recorded_resources=len(app.state) if app.state is not None else 0,
    )


@router.get("/graph", response_model=GraphResponse)
async def graph(request: Request) -> GraphResponse:
    dep_graph = _app(request).graph()
    return GraphResponse(
        waves=dep_graph.levels(),
        edges=[
            GraphEdgeModel(
                source=e.source.name,
                target=e.target.name,
                type=e.edge_type.value,
                field=e.source_field,
            )
            for e in dep_graph.edges()
        ],
    )


@router.post("/plan", response_model=PlanResponse)
async def plan(request: Request, body: PlanRequest) -> PlanResponse:
    computed = await _app(request).plan(body.parameters, refresh=body.refresh)
    return PlanResponse.model_validate(computed.to_dict())


@router.get("/state", response_model=list[StateRecordModel])
async def state(request: Request) -> list[StateRecordModel]:
    app = _app(request)
    records = app.state.all() if app.state is not None else []
    return [StateRecordModel.model_validate(r.to_dict()) for r in records]
