"""
Rulecord
========

A Discord bot that enforces community automod rules: pattern rules over
messages, reactions and member names, an infraction ledger with point decay,
threshold escalation into timeouts, kicks and bans, and guarded manual
moderation actions.
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. RULECORD_HOME environment variable, if set.
    2. If running in a frozen/compiled context, use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this file's directory.
    """
    if env_home := os.getenv("RULECORD_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()

import asyncio
from dataclasses import dataclass

import discord
from dotenv import load_dotenv

from rulecord.configuration.app_configuration import AppConfig
from rulecord.database.database import Database
from rulecord.database.db_cache import DatabaseQueryCache
from rulecord.moderation.action_executor import ActionExecutor
from rulecord.moderation.automod_orchestrator import AutomodOrchestrator
from rulecord.moderation.escalation_service import EscalationGuard, EscalationService
from rulecord.moderation.infraction_ledger import InfractionLedger
from rulecord.moderation.mod_log import ModLogSender
from rulecord.moderation.notifications import ModerationNotifier
from rulecord.moderation.pattern_matcher import PatternMatcher
from rulecord.moderation.rule_engine import RuleEngine
from rulecord.scheduler.decay_scheduler import DecaySweepScheduler
from rulecord.scheduler.unmute_scheduler import UnmuteScheduler
from rulecord.services.moderation_settings_service import ModerationSettingsService
from rulecord.util.discord_utils import DiscordModerationPlatform
from rulecord.util.logger import get_logger, handle_exception

logger = get_logger("main")


@dataclass
class Runtime:
    """Every long-lived component, wired once at startup."""
    app_config: AppConfig
    bot: discord.Bot
    database: Database
    platform: DiscordModerationPlatform
    settings: ModerationSettingsService
    ledger: InfractionLedger
    escalation: EscalationService
    executor: ActionExecutor
    orchestrator: AutomodOrchestrator
    unmute_scheduler: UnmuteScheduler
    decay_scheduler: DecaySweepScheduler


def load_environment() -> str:
    """Load environment variables and return the Discord bot token.

    Raises:
        SystemExit: If the required ``DISCORD_BOT_TOKEN`` variable is missing.
    """
    load_dotenv(dotenv_path=BASE_DIR / ".env")
    token = os.getenv("DISCORD_BOT_TOKEN")
    if not token:
        logger.critical("'DISCORD_BOT_TOKEN' environment variable not set. Bot cannot start.")
        sys.exit(1)
    return token


def build_intents() -> discord.Intents:
    """Intents enabling guild, member, message content and reaction events."""
    intents = discord.Intents.default()
    intents.message_content = True
    intents.guilds = True
    intents.messages = True
    intents.reactions = True
    intents.members = True
    return intents


def build_runtime(app_config: AppConfig, bot: discord.Bot) -> Runtime:
    """Construct every component with its collaborators passed in explicitly."""
    database = Database(app_config.database_path)
    platform = DiscordModerationPlatform(bot)

    matcher = PatternMatcher(
        max_pattern_length=app_config.max_pattern_length,
        max_input_length=app_config.max_input_length,
    )
    settings = ModerationSettingsService(
        database, matcher=matcher, cache=DatabaseQueryCache(ttl_seconds=app_config.cache_ttl_seconds)
    )
    ledger = InfractionLedger(database, settings)

    mod_log = ModLogSender(platform)
    notifier = ModerationNotifier(platform)
    escalation = EscalationService(
        platform,
        mod_log,
        guard=EscalationGuard(app_config.escalation_cooldown_seconds),
        max_timeout=app_config.max_timeout,
        default_timeout=app_config.default_timeout,
    )
    unmute_scheduler = UnmuteScheduler(platform, database)

    executor = ActionExecutor(
        platform,
        settings,
        ledger,
        escalation,
        notifier,
        mod_log,
        unmute_scheduler=unmute_scheduler,
        max_timeout=app_config.max_timeout,
    )
    orchestrator = AutomodOrchestrator(
        platform,
        settings,
        RuleEngine(matcher),
        ledger,
        escalation,
        notifier,
        mod_log,
        content_log_limit=app_config.matched_content_log_limit,
    )

    return Runtime(
        app_config=app_config,
        bot=bot,
        database=database,
        platform=platform,
        settings=settings,
        ledger=ledger,
        escalation=escalation,
        executor=executor,
        orchestrator=orchestrator,
        unmute_scheduler=unmute_scheduler,
        decay_scheduler=DecaySweepScheduler(ledger, app_config.decay_sweep_interval),
    )


def load_cogs(runtime: Runtime) -> None:
    """Register all operational cogs with the runtime's bot."""
    from rulecord.bot.cogs import automod_listener

    automod_listener.setup(runtime.bot, runtime.orchestrator)
    # Stored role mutes need a connected client to be lifted
    runtime.bot.add_listener(runtime.unmute_scheduler.restore, "on_ready")
    logger.info("All cogs loaded successfully.")


async def start_bot(bot: discord.Bot, token: str) -> None:
    logger.info("Attempting to connect to Discord…")
    try:
        await bot.start(token)
    except asyncio.CancelledError:
        logger.info("Discord bot start cancelled; shutting down")
    finally:
        logger.info("Discord bot start routine finished.")


async def shutdown_runtime(runtime: Runtime) -> None:
    """Gracefully stop the bot, schedulers and database."""
    if not runtime.bot.is_closed():
        try:
            await runtime.bot.close()
        except Exception as exc:
            logger.exception("Error while closing the Discord client: %s", exc)

    await runtime.decay_scheduler.shutdown()
    await runtime.unmute_scheduler.shutdown()

    try:
        await runtime.database.shutdown()
    except Exception as exc:
        logger.exception("Error during database shutdown: %s", exc)

    logger.info("Shutdown complete.")


async def async_main() -> int:
    """Bootstrap the database and bot, returning an exit code."""
    token = load_environment()
    app_config = AppConfig(BASE_DIR / "config" / "app_config.yml")

    try:
        bot = discord.Bot(intents=build_intents())
        runtime = build_runtime(app_config, bot)
    except Exception as exc:
        logger.critical("Failed to initialize Discord bot: %s", exc)
        return 1

    logger.info("Initializing database at %s", app_config.database_path)
    if not await runtime.database.initialize():
        logger.critical("Failed to initialize database")
        return 1

    load_cogs(runtime)
    if app_config.decay_sweep_enabled:
        runtime.decay_scheduler.start()

    exit_code = 0
    try:
        await start_bot(bot, token)
    except Exception as exc:
        logger.critical("Discord bot runtime error: %s", exc)
        exit_code = 1
    finally:
        await shutdown_runtime(runtime)

    return exit_code


def main() -> int:
    """Entrypoint that runs the async runtime and returns the process exit code."""
    sys.excepthook = handle_exception
    os.chdir(BASE_DIR)
    logger.info("Starting Rulecord…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except Exception as exc:
        logger.critical("An unexpected error occurred while running the bot: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
