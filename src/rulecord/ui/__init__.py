"""
User-facing embeds for Rulecord.

- **action_embed.py**: Audit-log embeds for manual actions, escalations and
  automod rule hits.
"""
