"""
Rulecord - Rule-Based Discord Moderation Bot

Rulecord enforces per-server automod rules and keeps a point-based record of
every violation, escalating repeat offenders automatically.

Core Components:

- **Automod**: Pattern rules (regex or wildcard) evaluated against message
  text, emoji, stickers, links, reactions, usernames and nicknames
- **Infraction Ledger**: Append-only point records with optional time decay
  and per-member clearing
- **Escalation**: Point thresholds mapped to timeouts, kicks and bans
- **Manual Actions**: Ban, kick, mute, warn and unban with role-hierarchy
  checks, member notification and audit logging

Usage:
    from rulecord.main import main
    main()  # Starts the bot
"""
