import re

import pytest

from rulecord.datatypes.automod_datatypes import MatchMode, RulePattern
from rulecord.moderation.errors import ValidationError
from rulecord.moderation.pattern_matcher import PatternMatcher, translate_flags


@pytest.fixture()
def matcher() -> PatternMatcher:
    return PatternMatcher(max_pattern_length=50, max_input_length=100)


def test_translate_flags_maps_letters():
    assert translate_flags("im") == re.IGNORECASE | re.MULTILINE
    assert translate_flags("gu") == re.NOFLAG
    assert translate_flags("") == re.NOFLAG


@pytest.mark.parametrize("flags", ["x", "ii"])
def test_translate_flags_rejects_unknown_and_duplicate(flags):
    with pytest.raises(ValidationError):
        translate_flags(flags)


def test_validate_pattern_rejects_bad_input(matcher):
    with pytest.raises(ValidationError):
        matcher.validate_pattern(RulePattern(regex=""))
    with pytest.raises(ValidationError):
        matcher.validate_pattern(RulePattern(regex="a" * 51))
    with pytest.raises(ValidationError) as exc_info:
        matcher.validate_pattern(RulePattern(regex="(unclosed"))
    assert exc_info.value.field == "regex"


def test_validate_patterns_stops_at_first_invalid(matcher):
    with pytest.raises(ValidationError):
        matcher.validate_patterns([RulePattern(regex="ok"), RulePattern(regex="[")])
    matcher.validate_pattern(RulePattern(regex=r"\bword\b", flags="i"))
    with pytest.raises(ValidationError):
        matcher.validate_pattern(RulePattern(regex="word", flags="q"))


def test_search_never_raises_on_invalid_pattern(matcher):
    assert matcher.search(RulePattern(regex="(unclosed"), "anything") is None
    assert matcher.search(RulePattern(regex="a", flags="z"), "a") is None


def test_search_respects_flags(matcher):
    assert matcher.search(RulePattern(regex="badword"), "BADWORD") is None
    assert matcher.search(RulePattern(regex="badword", flags="i"), "BADWORD") == "BADWORD"


def test_search_truncates_long_input(matcher):
    content = "x" * 100 + "needle"
    assert matcher.search(RulePattern(regex="needle"), content) is None
    assert matcher.search(RulePattern(regex="needle"), "needle" + content) == "needle"


def test_any_mode_returns_first_hit(matcher):
    patterns = [RulePattern(regex="zzz"), RulePattern(regex="foo"), RulePattern(regex="bar")]
    hit = matcher.test_patterns(patterns, "foo and bar", MatchMode.ANY)
    assert hit is not None
    assert hit.pattern.regex == "foo"
    assert hit.matched_text == "foo"


def test_all_mode_requires_every_pattern(matcher):
    patterns = [RulePattern(regex="foo"), RulePattern(regex="bar")]
    assert matcher.test_patterns(patterns, "only foo here", MatchMode.ALL) is None

    hit = matcher.test_patterns(patterns, "bar then foo", MatchMode.ALL)
    assert hit is not None
    assert hit.pattern.regex == "foo"


def test_all_mode_with_invalid_pattern_never_matches(matcher):
    patterns = [RulePattern(regex="foo"), RulePattern(regex="(")]
    assert matcher.test_patterns(patterns, "foo (", MatchMode.ALL) is None


def test_empty_patterns_or_content_never_match(matcher):
    assert matcher.test_patterns([], "anything") is None
    assert matcher.test_patterns([RulePattern(regex=".*")], "") is None
