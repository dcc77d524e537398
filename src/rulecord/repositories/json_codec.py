"""
JSON encoding for the structured columns (patterns, id lists, DM overrides).
"""

from __future__ import annotations

import json
from typing import Any, Iterable, List, Type, TypeVar

from rulecord.datatypes.automod_datatypes import (
    EmbedField,
    EmbedTemplate,
    NotificationMode,
    NotificationOverride,
    RulePattern,
)
from rulecord.datatypes.discord_datatypes import Snowflake

S = TypeVar("S", bound=Snowflake)


def dump_ids(ids: Iterable[Snowflake]) -> str:
    return json.dumps(sorted(i.to_int() for i in ids))


def load_ids(raw: str | None, id_type: Type[S]) -> frozenset[S]:
    if not raw:
        return frozenset()
    return frozenset(id_type(value) for value in json.loads(raw))


def dump_patterns(patterns: Iterable[RulePattern]) -> str:
    return json.dumps([
        {"regex": p.regex, "flags": p.flags, "label": p.label}
        for p in patterns
    ])


def load_patterns(raw: str) -> tuple[RulePattern, ...]:
    return tuple(
        RulePattern(regex=item["regex"], flags=item.get("flags", ""), label=item.get("label"))
        for item in json.loads(raw)
    )


def embed_to_dict(embed: EmbedTemplate | None) -> dict[str, Any] | None:
    if embed is None:
        return None
    return {
        "title": embed.title,
        "description": embed.description,
        "color": embed.color,
        "fields": [{"name": f.name, "value": f.value, "inline": f.inline} for f in embed.fields],
    }


def embed_from_dict(data: dict[str, Any] | None) -> EmbedTemplate | None:
    if not data:
        return None
    return EmbedTemplate(
        title=data.get("title"),
        description=data.get("description"),
        color=data.get("color"),
        fields=[
            EmbedField(name=f["name"], value=f["value"], inline=bool(f.get("inline", False)))
            for f in data.get("fields") or []
        ],
    )


def dump_embed(embed: EmbedTemplate | None) -> str | None:
    data = embed_to_dict(embed)
    return json.dumps(data) if data is not None else None


def load_embed(raw: str | None) -> EmbedTemplate | None:
    return embed_from_dict(json.loads(raw)) if raw else None


def dump_notification(override: NotificationOverride | None) -> str | None:
    if override is None or override.is_empty():
        return None
    return json.dumps({
        "mode": override.mode.value if override.mode else None,
        "template": override.template,
        "embed": embed_to_dict(override.embed),
    })


def load_notification(raw: str | None) -> NotificationOverride | None:
    if not raw:
        return None
    data = json.loads(raw)
    return NotificationOverride(
        mode=NotificationMode(data["mode"]) if data.get("mode") else None,
        template=data.get("template"),
        embed=embed_from_dict(data.get("embed")),
    )


def dump_enum_values(values: Iterable[Any]) -> str:
    return json.dumps([v.value for v in values])


def load_enum_values(raw: str, enum_type) -> List[Any]:
    return [enum_type(v) for v in json.loads(raw)]
