"""
Anoncord
========

A Discord relay that re-posts members' messages under pseudonymous handles,
spreading outbound posts across several bot accounts and holding links,
mentions and blocked terms for moderator approval.
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. ANONCORD_HOME environment variable, if set.
    2. If running in a frozen/compiled context, use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this file's directory.
    """
    if env_home := os.getenv("ANONCORD_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()
os.chdir(BASE_DIR)

import asyncio
from dataclasses import dataclass
from typing import Dict, List

import discord
from dotenv import load_dotenv

from anoncord.configuration.app_configuration import CONFIG_PATH, AppConfig
from anoncord.datatypes.relay_datatypes import ChannelConnection, ConnectionID
from anoncord.relay.blocklist_loader import BlockListLoader
from anoncord.relay.channel_dispatcher import ChannelDispatcher
from anoncord.relay.consensus_engine import ConsensusEngine
from anoncord.relay.moderator_registry import ModeratorRegistry
from anoncord.relay.relay_pipeline import AnonymousRelay
from anoncord.bot.discord_transport import (
    DiscordDeliveryChannel,
    DiscordMembershipProvider,
    DiscordReviewNotifier,
)
from anoncord.scheduler.expiry_scheduler import ExpiryScheduler
from anoncord.scheduler.periodic_scheduler import PeriodicScheduler
from anoncord.util.logger import get_logger, handle_exception


logger = get_logger("main")


@dataclass(frozen=True)
class RelayEnvironment:
    """Secrets and identifiers read from the environment."""

    bot_tokens: List[str]
    guild_id: int
    channel_id: int


def load_environment() -> RelayEnvironment:
    """Load ``.env`` and return the relay's secrets.

    Raises
    ------
    SystemExit
        If ``BOT_TOKENS``, ``RELAY_GUILD_ID`` or ``RELAY_CHANNEL_ID`` is missing or malformed.
    """
    load_dotenv(dotenv_path=BASE_DIR / ".env")
    tokens = [t.strip() for t in os.getenv("BOT_TOKENS", "").split(",") if t.strip()]
    if not tokens:
        logger.critical("'BOT_TOKENS' environment variable not set. Relay cannot start.")
        sys.exit(1)

    try:
        guild_id = int(os.environ["RELAY_GUILD_ID"])
        channel_id = int(os.environ["RELAY_CHANNEL_ID"])
    except (KeyError, ValueError):
        logger.critical("'RELAY_GUILD_ID' and 'RELAY_CHANNEL_ID' must be set to numeric IDs.")
        sys.exit(1)

    return RelayEnvironment(bot_tokens=tokens, guild_id=guild_id, channel_id=channel_id)


def build_intents() -> discord.Intents:
    """Intents for reading channel messages and tracking member departures."""
    intents = discord.Intents.default()
    intents.message_content = True
    intents.guilds = True
    intents.messages = True
    intents.members = True
    return intents


class RelayRuntime:
    """
    Wires the relay core to its Discord collaborators and owns their lifecycle.

    The first bot listens for inbound messages and sends review prompts; every
    bot (the first included) is one outbound connection.
    """

    def __init__(self, env: RelayEnvironment, config: AppConfig) -> None:
        self.env = env
        self.config = config
        self.bots: Dict[ConnectionID, discord.Bot] = {
            f"bot-{idx}": discord.Bot(intents=build_intents()) for idx in range(len(env.bot_tokens))
        }
        self.tokens: Dict[ConnectionID, str] = dict(zip(self.bots, env.bot_tokens))
        self.primary_id: ConnectionID = next(iter(self.bots))
        primary = self.bots[self.primary_id]

        connections = [
            ChannelConnection(connection_id=cid, credentials_ref=f"BOT_TOKENS[{idx}]")
            for idx, cid in enumerate(self.bots)
        ]
        self.registry = ModeratorRegistry(
            DiscordMembershipProvider(primary, env.guild_id, config.moderator_role_ids)
        )
        self.dispatcher = ChannelDispatcher(DiscordDeliveryChannel(self.bots, env.channel_id), connections)
        self.notifier = DiscordReviewNotifier(primary)
        self.engine = ConsensusEngine(
            self.registry,
            self.dispatcher,
            self.notifier,
            timeout_seconds=config.submission_timeout_seconds,
            reject_policy=config.reject_policy,
        )
        self.expiry = ExpiryScheduler(lambda submission_id: self.engine.expire(submission_id, force=True))
        self.engine.expiry_timer = self.expiry

        self.relay = AnonymousRelay.from_config(config, self.registry, self.dispatcher, self.engine)
        self.notifier.bind(self.relay.on_moderator_action)

        self.blocklist = BlockListLoader(config.blocklist_path, self.relay.on_block_list_updated)
        self.schedulers = [
            PeriodicScheduler("moderators", self.registry.refresh, lambda: config.moderator_refresh_interval),
            PeriodicScheduler("blocklist", self.blocklist.refresh, lambda: config.blocklist_reload_interval),
        ]
        self._load_cogs(primary)

    def _load_cogs(self, primary: discord.Bot) -> None:
        from anoncord.bot import events_listener, message_listener

        message_listener.setup(primary, self.relay, self.env.channel_id, self.primary_id)
        events_listener.setup(primary, self.relay, self.env.guild_id, self.start_background)
        logger.info("All cogs loaded successfully.")

    async def start_background(self) -> None:
        """Refresh moderators and block list once, then keep refreshing on an interval."""
        self.blocklist.reload(force=True)
        await self.registry.refresh()
        for scheduler in self.schedulers:
            scheduler.start()

    async def run(self) -> None:
        logger.info("Connecting %d bot account(s) to Discord…", len(self.bots))
        await asyncio.gather(*(bot.start(self.tokens[cid]) for cid, bot in self.bots.items()))

    async def shutdown(self) -> None:
        for scheduler in self.schedulers:
            await scheduler.shutdown()
        await self.expiry.shutdown()
        for cid, bot in self.bots.items():
            try:
                await bot.close()
            except Exception as exc:
                logger.exception("Error while closing %s: %s", cid, exc)
        logger.info("Shutdown complete.")


async def async_main() -> int:
    """Bootstrap the relay and run it until the bots disconnect.

    Returns
    -------
    int
        Process exit code.
    """
    env = load_environment()
    config = AppConfig(BASE_DIR / CONFIG_PATH)

    try:
        runtime = RelayRuntime(env, config)
    except Exception as exc:
        logger.critical("Failed to initialize relay: %s", exc)
        return 1

    exit_code = 0
    try:
        await runtime.run()
    except asyncio.CancelledError:
        logger.info("Relay start cancelled; proceeding to shutdown")
    except Exception as exc:
        logger.critical("Discord runtime error: %s", exc)
        exit_code = 1
    finally:
        await runtime.shutdown()

    return exit_code


def main() -> int:
    """Entrypoint that runs the async runtime and returns the process exit code."""
    sys.excepthook = handle_exception
    logger.info("Starting Anoncord relay…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except SystemExit as exit_exc:
        code = exit_exc.code
        if isinstance(code, int):
            return code
        return 1


if __name__ == "__main__":
    sys.exit(main())
