"""
Moderation core for Rulecord.

- **content_extraction.py**: One extraction function per rule target,
  collected in a lookup table.
- **pattern_matcher.py** / **wildcard.py**: Pattern validation and safe
  matching; wildcard syntax converted to regex.
- **rule_engine.py**: Picks the first matching rule for an event.
- **infraction_ledger.py**: Point records, decay and active-point sums.
- **escalation_service.py**: Threshold tiers turned into sanctions.
- **action_executor.py**: Guarded manual ban/kick/mute/warn/unban.
- **notifications.py** / **mod_log.py**: Member DMs and audit logging.
- **automod_orchestrator.py**: The automod pipeline for one event.
- **presets.py**: Built-in rule presets.
"""
