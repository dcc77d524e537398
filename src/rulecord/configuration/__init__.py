"""
Configuration management for Rulecord.

- **app_configuration.py**: File-locked YAML loader for process-wide settings
  (database path, pattern limits, timeout bounds, escalation cooldown, decay
  sweep interval). Falls back to safe defaults on a missing or malformed file.

Per-guild moderation settings live in SQLite and are managed by
``rulecord.services.moderation_settings_service``.
"""
