"""
Plan synthesis: merges matched categories into one ContextPlan.

Merge rules:
- tools are the ordered union of every matched category's tools, per-category
  extras and the always-include set; any unrestricted match lifts filtering
- memory limits take the per-field maximum, never the sum; recall is skipped
  only when every matched category asks to skip it
- the think level is the highest ordinal after per-category overrides
"""

from typing import Dict, List, Optional, Sequence

import structlog

from context_planner.domain.models.plan_state import ContextPlan, MemoryPolicy, ThinkLevel
from context_planner.infrastructure.config import PlannerConfig
from .category_scorer import CategoryMatch, CategoryScorer, default_scorer

logger = structlog.get_logger(__name__)


def fallback_plan(config: PlannerConfig, scores: Optional[Dict[str, int]] = None) -> ContextPlan:
    """Plan used when nothing matched: unrestricted tools, default memory and think level"""

    tool_allowlist = None
    if config.enabled and not config.fallback_to_full and config.tool_filtering:
        tool_allowlist = _ordered_union([config.always_include])

    return ContextPlan(
        categories=[],
        tool_allowlist=tool_allowlist,
        memory=config.fallback_memory,
        think_level=config.default_think_level,
        hint=None,
        scores=scores or {},
    )


def synthesize_plan(
    matches: Sequence[CategoryMatch],
    config: PlannerConfig,
    scores: Optional[Dict[str, int]] = None,
) -> ContextPlan:
    """Merge matched categories into a single plan"""

    if not config.enabled or not matches:
        return fallback_plan(config, scores)

    categories = [m.rule.name for m in matches]
    tool_allowlist = _merge_tools(matches, config)
    think_level = _merge_think_level(matches, config)

    return ContextPlan(
        categories=categories,
        tool_allowlist=tool_allowlist,
        memory=_merge_memory(matches, config),
        think_level=think_level,
        hint=_build_hint(categories, tool_allowlist, think_level, config),
        scores=scores or {m.rule.name: m.score for m in matches},
    )


def _merge_tools(matches: Sequence[CategoryMatch], config: PlannerConfig) -> Optional[List[str]]:
    if not config.tool_filtering:
        return None
    if any(m.rule.unrestricted for m in matches):
        return None

    groups: List[Sequence[str]] = []
    for m in matches:
        groups.append(m.rule.tools)
        override = config.override_for(m.rule.name)
        if override and override.extra_tools:
            groups.append(override.extra_tools)
    groups.append(config.always_include)

    return _ordered_union(groups)


def _merge_memory(matches: Sequence[CategoryMatch], config: PlannerConfig) -> MemoryPolicy:
    if not config.memory_tuning:
        return config.fallback_memory

    return MemoryPolicy(
        max_facts=max(m.rule.memory.max_facts for m in matches),
        max_tokens=max(m.rule.memory.max_tokens for m in matches),
        skip=all(m.rule.memory.skip for m in matches),
    )


def _merge_think_level(matches: Sequence[CategoryMatch], config: PlannerConfig) -> ThinkLevel:
    if not config.think_tuning:
        return config.default_think_level

    levels = []
    for m in matches:
        override = config.override_for(m.rule.name)
        levels.append(override.think_level if override and override.think_level is not None else m.rule.think_level)

    return ThinkLevel.highest(levels, floor=ThinkLevel.OFF)


def _build_hint(
    categories: List[str],
    tool_allowlist: Optional[List[str]],
    think_level: ThinkLevel,
    config: PlannerConfig,
) -> Optional[str]:
    if not config.prompt_annotation:
        return None

    tools = str(len(tool_allowlist)) if tool_allowlist is not None else "all"
    return f"[Context: {' + '.join(categories)} task | tools: {tools} | thinking: {think_level.value}]"


def _ordered_union(groups: Sequence[Sequence[str]]) -> List[str]:
    seen: Dict[str, None] = {}
    for group in groups:
        for tool in group:
            seen.setdefault(tool, None)
    return list(seen)


def classify_message(
    message: str,
    config: Optional[PlannerConfig] = None,
    scorer: CategoryScorer = default_scorer,
) -> ContextPlan:
    """Classify a message and build its context plan.

    Pure and deterministic: the same message and config always give an equal
    plan. Never raises; an unexpected failure degrades to the fallback plan.
    """
    config = config or PlannerConfig()

    if not config.enabled or not message or not message.strip():
        return fallback_plan(config)

    try:
        matches = scorer.match_categories(message, config)
    except Exception as e:
        logger.error("Category scoring failed, using fallback plan", error=str(e))
        return fallback_plan(config)

    return synthesize_plan(matches, config, scores={m.rule.name: m.score for m in matches})
