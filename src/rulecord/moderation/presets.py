"""
Built-in automod rule presets.

Installing a preset creates an ordinary rule the guild can edit freely;
removing it deletes that rule. Re-installing starts from the preset again.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

from rulecord.datatypes.automod_datatypes import AutomodAction, AutomodRule, AutomodTarget, MatchMode, RulePattern
from rulecord.datatypes.discord_datatypes import GuildID

DEFAULT_PRESET_ACTIONS = frozenset({
    AutomodAction.DELETE,
    AutomodAction.RECORD,
    AutomodAction.NOTIFY,
    AutomodAction.LOG,
})


@dataclass(slots=True, frozen=True)
class Preset:
    id: str
    name: str
    description: str
    targets: Tuple[AutomodTarget, ...]
    patterns: Tuple[RulePattern, ...]
    points: int
    match_mode: MatchMode = MatchMode.ANY

    def to_rule(self, guild_id: GuildID) -> AutomodRule:
        return AutomodRule(
            guild_id=guild_id,
            name=self.name,
            targets=self.targets,
            patterns=self.patterns,
            match_mode=self.match_mode,
            points=self.points,
            actions=DEFAULT_PRESET_ACTIONS,
            preset_id=self.id,
        )


PRESETS: Dict[str, Preset] = {
    preset.id: preset
    for preset in (
        Preset(
            id="invite-links",
            name="Invite Links",
            description="Block Discord invite links (discord.gg, discord.com/invite)",
            targets=(AutomodTarget.LINK,),
            patterns=(
                RulePattern(
                    regex=r"(?:discord\.gg|discordapp\.com/invite|discord\.com/invite)/[\w-]+",
                    flags="i",
                    label="Discord invite URL",
                ),
            ),
            points=2,
        ),
        Preset(
            id="mass-mention",
            name="Mass Mention",
            description="Messages with 5 or more user or role mentions",
            targets=(AutomodTarget.MESSAGE_CONTENT,),
            patterns=(
                RulePattern(regex=r"(<@!?\d+>.*){5,}", flags="s", label="5+ user mentions"),
                RulePattern(regex=r"(<@&\d+>.*){5,}", flags="s", label="5+ role mentions"),
            ),
            points=3,
        ),
        Preset(
            id="repeated-text",
            name="Repeated Characters",
            description="Messages with 10 or more repeated characters in a row",
            targets=(AutomodTarget.MESSAGE_CONTENT,),
            patterns=(RulePattern(regex=r"(.)\1{9,}", label="10+ repeated chars"),),
            points=1,
        ),
        Preset(
            id="external-links",
            name="External Links",
            description="Block all non-Discord links",
            targets=(AutomodTarget.LINK,),
            patterns=(
                RulePattern(
                    regex=r"https?://(?!(?:discord\.gg|discord\.com|discordapp\.com|cdn\.discordapp\.com|media\.discordapp\.net))\S+",
                    flags="i",
                    label="Non-Discord URL",
                ),
            ),
            points=1,
        ),
        Preset(
            id="zalgo-text",
            name="Zalgo Text",
            description="Combining character abuse",
            targets=(AutomodTarget.MESSAGE_CONTENT,),
            patterns=(RulePattern(regex="[\u0300-\u036f\u0489]{3,}", label="Zalgo combining chars"),),
            points=1,
        ),
    )
}


def get_preset(preset_id: str) -> Preset | None:
    return PRESETS.get(preset_id)
