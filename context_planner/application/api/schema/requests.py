from typing import Dict, Any, Optional, List
from pydantic import BaseModel, ConfigDict, Field

from context_planner.domain.models.plan_state import ContextPlan, RecallResult


class PlanRequest(BaseModel):
    """Classify a message without touching memory"""
    message: str


class PrepareRequest(BaseModel):
    """Build the full turn context for a message"""
    message: str
    session_id: str
    user_id: Optional[str] = None
    background_run: bool = Field(default=False, description="Heartbeat or other non-interactive run")
    authorized_tools: Optional[List[str]] = Field(
        None, description="Tools that already passed authorization; filtered by the plan when given"
    )


class PrepareResponse(BaseModel):
    session_id: str
    plan: ContextPlan
    recall: RecallResult
    tools: Optional[List[str]] = None
    tool_descriptors: Optional[List[Dict[str, Any]]] = None


class CompleteRequest(BaseModel):
    """Hand a finished turn's transcript to ingestion.

    Only inline messages are accepted; session files are read by in-process
    callers, never on behalf of an HTTP client.
    """
    model_config = ConfigDict(extra="forbid")

    session_id: str
    messages: List[Dict[str, Any]] = Field(default_factory=list)
    user_id: Optional[str] = None
    channel: Optional[str] = None
    background_run: bool = False


class CompleteResponse(BaseModel):
    session_id: str
    dispatched: bool
