"""
Safe regular-expression validation and matching for automod rules.

Patterns are stored with JavaScript-style flag letters (the admin surface
and the presets use them), so they are translated to ``re`` flags here:
``i`` → IGNORECASE, ``m`` → MULTILINE, ``s`` → DOTALL. ``u`` is the default
for ``str`` patterns and ``g``/``y`` carry no meaning for a search, so those
three are accepted and ignored.

Validation raises :class:`ValidationError`; matching never raises. A pattern
that fails to compile at evaluation time simply never matches.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable, Sequence

from rulecord.datatypes.automod_datatypes import MatchMode, PatternMatch, RulePattern
from rulecord.moderation.errors import ValidationError
from rulecord.util.logger import get_logger

logger = get_logger("pattern_matcher")

DEFAULT_MAX_PATTERN_LENGTH = 500
DEFAULT_MAX_INPUT_LENGTH = 10000

FLAG_MAP: dict[str, re.RegexFlag] = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "u": re.NOFLAG,
    "g": re.NOFLAG,
    "y": re.NOFLAG,
}


def translate_flags(flags: str) -> re.RegexFlag:
    """Convert flag letters to ``re`` flags.

    Raises:
        ValidationError: On an unknown or repeated flag letter.
    """
    result = re.NOFLAG
    seen: set[str] = set()
    for letter in flags or "":
        if letter not in FLAG_MAP:
            raise ValidationError(f"Invalid regex flag: '{letter}'", field="flags")
        if letter in seen:
            raise ValidationError(f"Duplicate regex flag: '{letter}'", field="flags")
        seen.add(letter)
        result |= FLAG_MAP[letter]
    return result


@lru_cache(maxsize=1024)
def compile_pattern(regex: str, flags: str = "") -> re.Pattern[str]:
    """Compile and cache a pattern. Raises ``re.error`` or ValidationError."""
    return re.compile(regex, translate_flags(flags))


class PatternMatcher:
    """
    Validates patterns at save time and tests them against content at
    evaluation time.

    Args:
        max_pattern_length: Longest accepted pattern source.
        max_input_length: Content is truncated to this many characters before
            matching, bounding the work a pathological pattern can cause.
    """

    def __init__(
        self,
        max_pattern_length: int = DEFAULT_MAX_PATTERN_LENGTH,
        max_input_length: int = DEFAULT_MAX_INPUT_LENGTH,
    ) -> None:
        self.max_pattern_length = max_pattern_length
        self.max_input_length = max_input_length

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_pattern(self, pattern: RulePattern) -> None:
        """Reject empty, oversized, badly flagged or uncompilable patterns."""
        if not pattern.regex:
            raise ValidationError("Pattern cannot be empty", field="regex")

        if len(pattern.regex) > self.max_pattern_length:
            raise ValidationError(
                f"Pattern exceeds maximum length of {self.max_pattern_length} characters",
                field="regex",
            )

        translate_flags(pattern.flags)

        try:
            compile_pattern(pattern.regex, pattern.flags)
        except (re.error, OverflowError, RecursionError) as exc:
            raise ValidationError(f"Invalid regex '{pattern.regex}': {exc}", field="regex") from exc

    def validate_patterns(self, patterns: Iterable[RulePattern]) -> None:
        for pattern in patterns:
            self.validate_pattern(pattern)

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    def search(self, pattern: RulePattern, content: str) -> str | None:
        """Return the first matched substring, or None. Never raises."""
        if not pattern.regex or len(pattern.regex) > self.max_pattern_length:
            return None

        text = content[: self.max_input_length]
        try:
            compiled = compile_pattern(pattern.regex, pattern.flags)
            match = compiled.search(text)
        except (re.error, ValidationError, OverflowError, RecursionError) as exc:
            logger.debug("[PATTERN MATCHER] Skipping invalid pattern %r: %s", pattern.regex, exc)
            return None

        return match.group(0) if match else None

    def test_patterns(
        self,
        patterns: Sequence[RulePattern],
        content: str,
        mode: MatchMode = MatchMode.ANY,
    ) -> PatternMatch | None:
        """
        Test ``content`` against ``patterns``.

        ANY returns on the first pattern that matches. ALL fails as soon as a
        pattern misses; when every pattern matched, the first listed pattern
        is reported. An empty pattern list never matches.
        """
        if not patterns or not content:
            return None

        if mode is MatchMode.ANY:
            for pattern in patterns:
                matched = self.search(pattern, content)
                if matched is not None:
                    return PatternMatch(pattern=pattern, matched_text=matched)
            return None

        first: PatternMatch | None = None
        for pattern in patterns:
            matched = self.search(pattern, content)
            if matched is None:
                return None
            if first is None:
                first = PatternMatch(pattern=pattern, matched_text=matched)
        return first
