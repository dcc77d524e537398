"""
Per-target content extraction.

Each extractor is a pure function of the event; ``EXTRACTORS`` maps every
:class:`AutomodTarget` to its function so adding a target is a one-line
change. An extractor returns ``""`` when the event carries nothing for it.
"""

from __future__ import annotations

import re
from typing import Callable, Dict, List, NamedTuple

from rulecord.datatypes.automod_datatypes import AutomodEvent, AutomodTarget, EventKind

CUSTOM_EMOJI_RE = re.compile(r"<(a)?:(\w+):(\d+)>")
UNICODE_EMOJI_RE = re.compile(
    "["
    "\U0001F600-\U0001F64F"
    "\U0001F300-\U0001F5FF"
    "\U0001F680-\U0001F6FF"
    "\U0001F1E0-\U0001F1FF"
    "\u2600-\u26FF"
    "\u2700-\u27BF"
    "\uFE00-\uFE0F"
    "\U0001F900-\U0001F9FF"
    "\U0001FA00-\U0001FAFF"
    "\u200D"
    "\u20E3"
    "]+"
)
URL_RE = re.compile(r"https?://[^\s<>]+", re.IGNORECASE)


class CustomEmoji(NamedTuple):
    name: str
    id: str
    animated: bool


def find_custom_emoji(content: str) -> List[CustomEmoji]:
    return [
        CustomEmoji(name=m.group(2), id=m.group(3), animated=bool(m.group(1)))
        for m in CUSTOM_EMOJI_RE.finditer(content)
    ]


def find_unicode_emoji(content: str) -> List[str]:
    return UNICODE_EMOJI_RE.findall(content)


def find_urls(content: str) -> List[str]:
    return URL_RE.findall(content)


def format_reaction_emoji(name: str | None, emoji_id: int | str | None) -> str:
    """``name:id`` for custom emoji, the bare character for unicode ones."""
    if emoji_id:
        return f"{name}:{emoji_id}"
    return name or ""


# ---------------------------------------------------------------------------
# Extractors
# ---------------------------------------------------------------------------

def _message_content(event: AutomodEvent) -> str:
    return event.content if event.kind is EventKind.MESSAGE else ""


def _message_emoji(event: AutomodEvent) -> str:
    if event.kind is not EventKind.MESSAGE:
        return ""
    parts = find_unicode_emoji(event.content)
    parts.extend(f"{emoji.name}:{emoji.id}" for emoji in find_custom_emoji(event.content))
    return " ".join(parts)


def _sticker(event: AutomodEvent) -> str:
    if event.kind is not EventKind.MESSAGE:
        return ""
    return " ".join(event.sticker_names)


def _link(event: AutomodEvent) -> str:
    if event.kind is not EventKind.MESSAGE:
        return ""
    return " ".join(find_urls(event.content))


def _username(event: AutomodEvent) -> str:
    return event.author.username or ""


def _nickname(event: AutomodEvent) -> str:
    return event.author.nickname or ""


def _reaction_emoji(event: AutomodEvent) -> str:
    if event.kind is not EventKind.REACTION:
        return ""
    return event.reaction_emoji or ""


EXTRACTORS: Dict[AutomodTarget, Callable[[AutomodEvent], str]] = {
    AutomodTarget.MESSAGE_CONTENT: _message_content,
    AutomodTarget.MESSAGE_EMOJI: _message_emoji,
    AutomodTarget.STICKER: _sticker,
    AutomodTarget.LINK: _link,
    AutomodTarget.USERNAME: _username,
    AutomodTarget.NICKNAME: _nickname,
    AutomodTarget.REACTION_EMOJI: _reaction_emoji,
}


def extract(event: AutomodEvent, target: AutomodTarget) -> str:
    """Return the text ``target`` inspects on ``event`` (possibly empty)."""
    return EXTRACTORS[target](event)
