from typing import Dict, List, Optional, Pattern, Sequence
from dataclasses import dataclass
import re

import structlog

from context_planner.infrastructure.config import PlannerConfig
from .categories import (
    CATEGORIES,
    COMPLEX_CATEGORY,
    COMPLEX_SHORT_MESSAGE_DISCOUNT,
    CategoryRule,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CategoryMatch:
    rule: CategoryRule
    score: int


class CategoryScorer:
    """Scores a message against the category rule table"""

    def __init__(self, rules: Sequence[CategoryRule] = CATEGORIES):
        self.rules = tuple(rules)

    def score_category(self, msg: str, rule: CategoryRule, config: Optional[PlannerConfig] = None) -> int:
        """Score one category; disabled categories always score 0"""

        override = config.override_for(rule.name) if config else None
        if override and override.disabled:
            return 0

        score = 0

        for pattern in rule.patterns:
            if pattern.search(msg):
                score += rule.match_weight

        if override and override.extra_patterns:
            for pattern in _compile_extra_patterns(rule.name, override.extra_patterns):
                if pattern.search(msg):
                    score += rule.match_weight

        for signal in rule.signals:
            score += signal(msg)

        if rule.name == COMPLEX_CATEGORY:
            threshold = config.complex_threshold if config else 300
            if len(msg) < threshold:
                score = max(0, score - COMPLEX_SHORT_MESSAGE_DISCOUNT)

        return score

    def score_message(self, message: str, config: Optional[PlannerConfig] = None) -> Dict[str, int]:
        """Score every category, keyed by name in rule-table order"""

        msg = message.strip()
        return {rule.name: self.score_category(msg, rule, config) for rule in self.rules}

    def match_categories(self, message: str, config: Optional[PlannerConfig] = None) -> List[CategoryMatch]:
        """Return the categories whose score reaches their threshold"""

        msg = message.strip()
        if not msg:
            return []

        matches = []
        for rule in self.rules:
            score = self.score_category(msg, rule, config)
            if score >= rule.threshold:
                matches.append(CategoryMatch(rule=rule, score=score))

        return matches


def _compile_extra_patterns(category: str, sources: Sequence[str]) -> List[Pattern[str]]:
    compiled = []
    for source in sources:
        try:
            compiled.append(re.compile(source, re.IGNORECASE))
        except re.error as e:
            logger.debug("Skipping invalid extra pattern", category=category, pattern=source, error=str(e))
    return compiled


default_scorer = CategoryScorer()
