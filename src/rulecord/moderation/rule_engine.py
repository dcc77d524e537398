"""
Rule evaluation: which (if any) automod rule does an event violate.

Evaluation is pure. Rules are filtered to the enabled ones with at least one
target applicable to the event kind, ordered by priority (highest first,
ties keep their input order) and walked target by target in declaration
order. The first pattern hit wins; at most one rule is reported per event.
"""

from __future__ import annotations

from typing import Iterable, List

from rulecord.datatypes.automod_datatypes import (
    APPLICABLE_TARGETS,
    AutomodEvent,
    AutomodRule,
    AutomodTarget,
    EventKind,
    RuleMatch,
)
from rulecord.moderation.content_extraction import extract
from rulecord.moderation.pattern_matcher import PatternMatcher
from rulecord.util.logger import get_logger

logger = get_logger("rule_engine")

# For these targets the whole extracted value is reported, not just the hit.
WHOLE_VALUE_TARGETS = frozenset({
    AutomodTarget.REACTION_EMOJI,
    AutomodTarget.USERNAME,
    AutomodTarget.NICKNAME,
})


class RuleEngine:
    """Evaluates events against a guild's rules."""

    def __init__(self, matcher: PatternMatcher | None = None) -> None:
        self.matcher = matcher or PatternMatcher()

    @staticmethod
    def applicable_targets(rule: AutomodRule, kind: EventKind) -> List[AutomodTarget]:
        allowed = APPLICABLE_TARGETS[kind]
        return [target for target in rule.targets if target in allowed]

    @staticmethod
    def in_scope(rule: AutomodRule, event: AutomodEvent) -> bool:
        """Channel include and exclude lists, then required and exempt roles."""
        if rule.channel_ids and (event.channel_id is None or event.channel_id not in rule.channel_ids):
            return False
        if rule.excluded_channel_ids and event.channel_id in rule.excluded_channel_ids:
            return False
        if rule.required_role_ids and not event.author.has_any_role(rule.required_role_ids):
            return False
        if rule.exempt_role_ids and event.author.has_any_role(rule.exempt_role_ids):
            return False
        return True

    def order_rules(self, event: AutomodEvent, rules: Iterable[AutomodRule]) -> List[AutomodRule]:
        candidates = [
            rule for rule in rules
            if rule.enabled
            and self.applicable_targets(rule, event.kind)
            and self.in_scope(rule, event)
        ]
        # sorted() is stable, so equal priorities keep their input order
        return sorted(candidates, key=lambda rule: rule.priority, reverse=True)

    def evaluate(self, event: AutomodEvent, rules: Iterable[AutomodRule]) -> RuleMatch | None:
        """Return the first matching rule for ``event`` or None."""
        for rule in self.order_rules(event, rules):
            for target in self.applicable_targets(rule, event.kind):
                content = extract(event, target)
                if not content:
                    continue

                hit = self.matcher.test_patterns(rule.patterns, content, rule.match_mode)
                if hit is None:
                    continue

                matched_content = content if target in WHOLE_VALUE_TARGETS else hit.matched_text
                logger.debug(
                    "[RULE ENGINE] Rule '%s' matched %s for user %s in guild %s",
                    rule.name, target, event.author.user_id, event.guild_id,
                )
                return RuleMatch(
                    rule=rule,
                    target=target,
                    matched_content=matched_content,
                    matched_pattern=hit.pattern,
                )
        return None
