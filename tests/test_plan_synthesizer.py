from dataclasses import replace

import pytest

from context_planner.domain.models.plan_state import MemoryPolicy, ThinkLevel
from context_planner.domain.planning.categories import CATEGORIES
from context_planner.domain.planning.category_scorer import CategoryMatch
from context_planner.domain.planning.plan_synthesizer import classify_message, fallback_plan, synthesize_plan
from context_planner.infrastructure.config import CategoryOverride, PlannerConfig

RULES = {rule.name: rule for rule in CATEGORIES}

COMPLEX_MESSAGE = (
    "First, analyze the database query patterns from the previous week. "
    "Then check the server memory usage during peak hours. "
    "After that, compare the results with the baseline metrics we stored. "
    "Also look for any slow endpoints in the logs. "
    "Finally, write a summary report with recommendations. "
    "Make sure to include charts where possible. "
    "Keep everything concise and actionable for the team."
)


class TestClassifyMessage:

    def test_casual_greeting(self):
        plan = classify_message("hey")

        assert plan.categories == ["casual"]
        assert plan.memory == MemoryPolicy(max_facts=0, max_tokens=0, skip=True)
        assert plan.think_level == ThinkLevel.OFF
        assert plan.tool_allowlist == ["message"]
        assert plan.hint == "[Context: casual task | tools: 1 | thinking: off]"

    def test_research_question(self):
        plan = classify_message("search for the latest AI papers")

        assert plan.categories == ["research"]
        assert plan.tool_allowlist == ["exec", "web_fetch", "web_search", "message", "read"]
        assert plan.memory.max_facts == 10
        assert plan.think_level == ThinkLevel.LOW

    def test_coding_request(self):
        plan = classify_message("fix the bug in the login function")

        assert "edit" in plan.tool_allowlist
        assert "write" in plan.tool_allowlist
        assert plan.think_level == ThinkLevel.MEDIUM

    def test_complex_message_lifts_tool_filtering(self):
        assert len(COMPLEX_MESSAGE) > 300

        plan = classify_message(COMPLEX_MESSAGE)

        assert "complex" in plan.categories
        assert plan.tool_allowlist is None
        assert plan.unrestricted
        assert plan.think_level == ThinkLevel.HIGH
        assert plan.hint.startswith("[Context: ")
        assert "tools: all" in plan.hint

    def test_multi_category_union(self):
        plan = classify_message("search for Solana DEX fee comparison and compare $SOL price?")

        assert plan.categories == ["research", "crypto"]
        assert plan.tool_allowlist == ["exec", "web_fetch", "web_search", "message", "read"]
        assert plan.think_level == ThinkLevel.MEDIUM
        assert plan.hint == "[Context: research + crypto task | tools: 5 | thinking: medium]"

    def test_memory_limits_take_max_not_sum(self):
        plan = classify_message("do you remember which Solana wallet I used for swaps?")

        assert plan.categories == ["crypto", "memory"]
        assert plan.memory == MemoryPolicy(max_facts=25, max_tokens=1000, skip=False)
        assert plan.think_level == ThinkLevel.MEDIUM

    def test_skip_requires_every_category_to_skip(self):
        plan = classify_message("swap 1 SOL for USDC")

        assert plan.categories == ["casual", "crypto"]
        assert plan.memory.skip is False
        assert plan.memory.max_facts == 8

    def test_no_match_uses_fallback(self):
        plan = classify_message("the quick brown fox jumps over the lazy dog repeatedly")

        assert plan.categories == []
        assert plan.tool_allowlist is None
        assert plan.memory == MemoryPolicy(max_facts=15, max_tokens=500, skip=False)
        assert plan.think_level == ThinkLevel.LOW
        assert plan.hint is None

    @pytest.mark.parametrize("message", ["", "   ", "\n\t"])
    def test_empty_message_uses_fallback(self, message):
        assert classify_message(message) == fallback_plan(PlannerConfig())

    def test_deterministic(self):
        assert classify_message(COMPLEX_MESSAGE) == classify_message(COMPLEX_MESSAGE)
        assert classify_message("hey") == classify_message("hey")

    def test_scores_reported_for_matches(self):
        plan = classify_message("hey")
        assert plan.scores == {"casual": 8}


class TestPlanInvariants:

    MESSAGES = [
        "hey",
        "search for the latest AI papers",
        "fix the bug in the login function",
        "swap 1 SOL for USDC",
        "generate an image of a sunset",
        "check gpu status and temperature",
        "do you remember which Solana wallet I used for swaps?",
        COMPLEX_MESSAGE,
    ]

    @pytest.mark.parametrize("message", MESSAGES)
    def test_allowlist_includes_always_include(self, message):
        plan = classify_message(message)
        if plan.tool_allowlist is not None:
            assert "message" in plan.tool_allowlist

    @pytest.mark.parametrize("message", MESSAGES)
    def test_allowlist_is_union_of_matched_tools(self, message):
        plan = classify_message(message)
        if plan.tool_allowlist is None:
            return

        expected = {"message"}
        for name in plan.categories:
            expected.update(RULES[name].tools)
        assert set(plan.tool_allowlist) == expected
        assert len(plan.tool_allowlist) == len(set(plan.tool_allowlist))

    @pytest.mark.parametrize("message", MESSAGES)
    def test_memory_is_max_of_matched(self, message):
        plan = classify_message(message)

        assert plan.memory.max_facts == max(RULES[n].memory.max_facts for n in plan.categories)
        assert plan.memory.max_tokens == max(RULES[n].memory.max_tokens for n in plan.categories)

    @pytest.mark.parametrize("message", MESSAGES)
    def test_think_level_is_highest_matched(self, message):
        plan = classify_message(message)

        assert plan.think_level.ordinal == max(RULES[n].think_level.ordinal for n in plan.categories)


class TestPlannerSwitches:

    def test_disabled_planner(self):
        plan = classify_message("hey", PlannerConfig(enabled=False))

        assert plan.categories == []
        assert plan.tool_allowlist is None
        assert plan.think_level == ThinkLevel.LOW

    def test_disabled_planner_ignores_fallback_to_full(self):
        plan = classify_message("hey", PlannerConfig(enabled=False, fallback_to_full=False))
        assert plan.tool_allowlist is None

    def test_fallback_restricted_to_always_include(self):
        config = PlannerConfig(fallback_to_full=False, always_include=["message", "read"])
        plan = classify_message("the quick brown fox jumps over the lazy dog repeatedly", config)

        assert plan.tool_allowlist == ["message", "read"]

    def test_custom_always_include_joins_multi_category_union(self):
        config = PlannerConfig(always_include=["read", "cron"])
        plan = classify_message("search for Solana DEX fee comparison and compare $SOL price?", config)

        assert plan.categories == ["research", "crypto"]
        assert {"read", "cron"} <= set(plan.tool_allowlist)
        assert plan.tool_allowlist == ["exec", "web_fetch", "web_search", "message", "read", "cron"]

    def test_tool_filtering_off(self):
        plan = classify_message("hey", PlannerConfig(tool_filtering=False))

        assert plan.categories == ["casual"]
        assert plan.tool_allowlist is None
        assert "tools: all" in plan.hint

    def test_memory_tuning_off(self):
        plan = classify_message("hey", PlannerConfig(memory_tuning=False))
        assert plan.memory == MemoryPolicy()

    def test_think_tuning_off(self):
        config = PlannerConfig(think_tuning=False, default_think_level=ThinkLevel.MINIMAL)
        assert classify_message(COMPLEX_MESSAGE, config).think_level == ThinkLevel.MINIMAL

    def test_prompt_annotation_off(self):
        assert classify_message("hey", PlannerConfig(prompt_annotation=False)).hint is None

    def test_extra_tools_appended(self):
        config = PlannerConfig(categories={"coding": CategoryOverride(extra_tools=["web_search"])})
        plan = classify_message("fix the bug in the login function", config)

        assert plan.tool_allowlist == [
            "exec", "read", "write", "edit", "apply_patch", "process", "message", "web_search",
        ]

    def test_think_level_override(self):
        config = PlannerConfig(categories={"monitoring": CategoryOverride(think_level=ThinkLevel.HIGH)})
        assert classify_message("check gpu status and temperature", config).think_level == ThinkLevel.HIGH

    def test_think_level_override_to_off(self):
        config = PlannerConfig(categories={"coding": CategoryOverride(think_level=ThinkLevel.OFF)})
        assert classify_message("fix the bug in the login function", config).think_level == ThinkLevel.OFF


class TestSynthesizePlan:

    def test_all_skip_skips(self):
        quiet = replace(RULES["media"], name="quiet", memory=MemoryPolicy(max_facts=2, max_tokens=50, skip=True))
        plan = synthesize_plan(
            [CategoryMatch(RULES["casual"], 5), CategoryMatch(quiet, 3)],
            PlannerConfig(),
        )

        assert plan.memory == MemoryPolicy(max_facts=2, max_tokens=50, skip=True)

    def test_any_unrestricted_match_lifts_filtering(self):
        plan = synthesize_plan(
            [CategoryMatch(RULES["casual"], 5), CategoryMatch(RULES["complex"], 6)],
            PlannerConfig(),
        )

        assert plan.tool_allowlist is None
        assert plan.categories == ["casual", "complex"]

    def test_no_matches(self):
        assert synthesize_plan([], PlannerConfig()) == fallback_plan(PlannerConfig())

    def test_scorer_failure_degrades_to_fallback(self):
        class BrokenScorer:
            def match_categories(self, message, config):
                raise RuntimeError("boom")

        plan = classify_message("hey", scorer=BrokenScorer())
        assert plan == fallback_plan(PlannerConfig())
