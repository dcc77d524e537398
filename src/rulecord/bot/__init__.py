"""
Discord integration for Rulecord.

- **cogs/automod_listener.py**: Converts message, reaction and member events
  into automod events and runs them through the orchestrator.
"""
