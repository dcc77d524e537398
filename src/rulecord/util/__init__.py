"""
Utility functions and helpers for Rulecord.

- **logger.py**: Centralized logging configuration with colored console output,
  rotating file handlers, and per-session log aggregation. Suppresses noise
  from Discord internals. Uses prompt_toolkit for non-blocking console I/O.

- **discord_utils.py**: py-cord adapter implementing the moderation platform
  primitives (timeouts, kicks, bans, roles, DMs, message and reaction
  removal), exception translation, member snapshots and duration formatting.
"""
