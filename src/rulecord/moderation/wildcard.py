"""
Discord AutoMod style wildcard words converted into automod patterns.

- ``word``   matches the whole word only
- ``*word``  matches words ending with "word" ("sword")
- ``word*``  matches words starting with "word" ("wording")
- ``*word*`` matches "word" anywhere ("swordfight")
- an inner ``*`` matches any run of non-space characters (``w*rd``)

Several wildcards may be given at once, separated by commas. Generated
patterns are always case-insensitive.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List

from rulecord.datatypes.automod_datatypes import RulePattern


@dataclass(slots=True)
class WildcardParseResult:
    patterns: List[RulePattern] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.patterns) and not self.errors


def wildcard_to_regex(wildcard: str) -> str:
    trimmed = wildcard.strip()
    if not trimmed:
        return ""

    starts_wild = trimmed.startswith("*")
    ends_wild = trimmed.endswith("*") and len(trimmed) > 1

    core = trimmed
    if starts_wild:
        core = core[1:]
    if ends_wild:
        core = core[:-1]

    escaped = r"\S*".join(re.escape(piece) for piece in core.split("*"))
    prefix = r"\S*" if starts_wild else r"\b"
    suffix = r"\S*" if ends_wild else r"\b"
    return f"{prefix}{escaped}{suffix}"


def describe_wildcard(wildcard: str) -> str:
    trimmed = wildcard.strip()
    starts_wild = trimmed.startswith("*")
    ends_wild = trimmed.endswith("*")
    core = trimmed.strip("*")

    if starts_wild and ends_wild:
        return f'Contains "{core}"'
    if starts_wild:
        return f'Ends with "{core}"'
    if ends_wild:
        return f'Starts with "{core}"'
    return f'Exact word "{core}"'


def parse_wildcard_patterns(text: str) -> WildcardParseResult:
    """Split comma-separated wildcards and convert each valid one."""
    result = WildcardParseResult()
    wildcards = [piece.strip() for piece in text.split(",") if piece.strip()]

    if not wildcards:
        result.errors.append("No patterns provided")
        return result

    for wildcard in wildcards:
        stripped = wildcard.replace("*", "")
        if not stripped:
            result.errors.append(f'Pattern "{wildcard}" must contain at least one non-wildcard character')
            continue
        if len(stripped) < 2 and "*" not in wildcard:
            result.errors.append(f'Pattern "{wildcard}" is too short (minimum 2 characters without wildcards)')
            continue

        result.patterns.append(
            RulePattern(regex=wildcard_to_regex(wildcard), flags="i", label=describe_wildcard(wildcard))
        )

    return result

