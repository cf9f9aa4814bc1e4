from fastapi import APIRouter, Request

from context_planner.application.api.schema.requests import (
    CompleteRequest,
    CompleteResponse,
    PlanRequest,
    PrepareRequest,
    PrepareResponse,
)
from context_planner.domain.context.context_manager import ContextManager
from context_planner.domain.models.plan_state import ContextPlan

router = APIRouter(prefix="/api/v1")


def _manager(request: Request) -> ContextManager:
    return request.app.state.context_manager


@router.post("/context/plan", response_model=ContextPlan)
async def plan_endpoint(body: PlanRequest, request: Request):
    return _manager(request).plan_turn(body.message)


@router.post("/context/prepare", response_model=PrepareResponse)
async def prepare_endpoint(body: PrepareRequest, request: Request):
    manager = _manager(request)
    context = await manager.build_context(
        body.message,
        body.session_id,
        user_id=body.user_id,
        background_run=body.background_run,
    )

    tools = None
    tool_descriptors = None
    if body.authorized_tools is not None:
        tools = manager.filter_tools(body.authorized_tools, context.plan)
        tool_descriptors = manager.describe_tools(body.authorized_tools, context.plan)

    return PrepareResponse(
        session_id=context.session_id,
        plan=context.plan,
        recall=context.recall,
        tools=tools,
        tool_descriptors=tool_descriptors,
    )


@router.post("/context/complete", response_model=CompleteResponse)
async def complete_endpoint(body: CompleteRequest, request: Request):
    dispatched = await _manager(request).complete_turn(
        body.messages,
        body.session_id,
        user_id=body.user_id,
        channel=body.channel,
        background_run=body.background_run,
    )
    return CompleteResponse(session_id=body.session_id, dispatched=dispatched)


@router.get("/tools")
async def tools_endpoint(request: Request):
    return _manager(request).tool_registry.get_available_tools()


@router.get("/sessions/{session_id}/cache")
async def session_cache_endpoint(session_id: str, request: Request):
    return await _manager(request).get_context_summary(session_id)


@router.delete("/sessions/{session_id}/cache")
async def clear_session_cache_endpoint(session_id: str, request: Request):
    await _manager(request).clear_session_context(session_id)
    return {"session_id": session_id, "status": "cleared"}
