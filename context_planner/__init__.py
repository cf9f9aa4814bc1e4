from context_planner.domain.context.context_manager import ContextManager
from context_planner.domain.models.plan_state import (
    ContextPlan,
    MemoryFact,
    MemoryPolicy,
    RecallResult,
    ThinkLevel,
    TurnContext,
)
from context_planner.domain.planning.plan_synthesizer import classify_message
from context_planner.infrastructure.config import PlannerConfig, Settings, load_settings

__all__ = [
    "ContextManager",
    "ContextPlan",
    "MemoryFact",
    "MemoryPolicy",
    "RecallResult",
    "ThinkLevel",
    "TurnContext",
    "classify_message",
    "PlannerConfig",
    "Settings",
    "load_settings",
]
