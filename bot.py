"""
CampPoll Discord Bot - Main Entry Point

Deadline worker for group scheduling polls: sends deadline reminders to poll
channels and posts the final summary when a poll closes.
"""

import argparse
import asyncio
import logging
import sys
from datetime import timedelta
from pathlib import Path

import discord
from discord.ext import commands

from config import BotConfig, get_config
from services.deadline_processor import CLOSURE_PROFILE, REMINDER_PROFILE, DeadlineProcessor
from services.dispatcher import DispatchProfile, NotificationDispatcher
from services.gateway import DiscordGateway
from services.reminder_scheduler import ReminderScheduler
from services.scheduler_service import SchedulerService
from storage import JsonPollStore
from utils.cache import TTLCache
from utils.time import StalenessPolicy

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger(__name__)


def build_dispatch_profiles(config: BotConfig):
    """Reminder and closure dispatch profiles from configuration."""
    return [
        DispatchProfile(
            name=REMINDER_PROFILE,
            batch_size=config.reminder_batch_size,
            delay_between_batches=config.reminder_batch_delay,
            max_retries=config.max_retries,
        ),
        DispatchProfile(
            name=CLOSURE_PROFILE,
            batch_size=config.closure_batch_size,
            delay_between_batches=config.closure_batch_delay,
            max_retries=config.max_retries,
        ),
    ]


class CampPollBot(commands.Bot):
    """Main bot class with scheduler integration."""

    def __init__(self, config: BotConfig = None, run_once: bool = False):
        # Bot setup
        intents = discord.Intents.default()
        intents.members = True  # Needed to resolve @username reminder mentions
        intents.guilds = True

        super().__init__(
            command_prefix='!',  # Not used
            intents=intents,
            help_command=None
        )

        # Configuration
        self.config = config or get_config()
        self.run_once = run_once

        # Components are built once per process
        self.store = JsonPollStore(self.config.data_dir)
        self.member_cache = TTLCache(ttl=self.config.member_cache_ttl)
        self.gateway = DiscordGateway(self, self.member_cache)
        self.reminder_scheduler = ReminderScheduler(
            self.store,
            policy=StalenessPolicy(self.config.staleness_policy),
            lookback=timedelta(hours=self.config.lookback_hours),
            lookahead=timedelta(hours=self.config.lookahead_hours),
        )
        self.dispatcher = NotificationDispatcher(build_dispatch_profiles(self.config))
        self.processor = DeadlineProcessor(
            self.store, self.gateway, self.reminder_scheduler, self.dispatcher,
            tz_name=self.config.timezone,
        )
        self.scheduler_service = SchedulerService(self.processor, self.config)

        # Track if bot is ready
        self.is_ready = False

    async def setup_hook(self):
        """Called when the bot is starting up."""
        logger.info("Setting up CampPoll bot...")

        # Ensure data directory exists
        Path(self.config.data_dir).mkdir(parents=True, exist_ok=True)

        if not self.intents.members:
            logger.warning("Members intent is disabled in code. @username mentions will not resolve.")

    async def on_ready(self):
        """Called when bot is connected and ready."""
        logger.info(f'Bot logged in as {self.user} (ID: {self.user.id})')
        logger.info(f'Connected to {len(self.guilds)} guild(s)')

        if self.run_once:
            try:
                report = await self.scheduler_service.run_now()
                logger.info(f"Single deadline tick finished: {report.to_dict()}")
            except Exception as e:
                logger.error(f"Deadline tick failed: {e}", exc_info=True)
            finally:
                await self.close()
            return

        # Start scheduler
        self.scheduler_service.start()

        self.is_ready = True

        # Set bot status
        activity = discord.Activity(
            type=discord.ActivityType.watching,
            name="for poll deadlines ⏰"
        )
        await self.change_presence(activity=activity)

    async def on_error(self, event, *args, **kwargs):
        """Global error handler."""
        logger.error(f"Error in event {event}", exc_info=True)

    async def close(self):
        """Cleanup when bot shuts down."""
        logger.info("Shutting down bot...")

        self.scheduler_service.shutdown()

        await super().close()


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="CampPoll deadline reminder bot")
    parser.add_argument(
        "--once",
        action="store_true",
        help="run a single deadline tick and exit (for an external cron)",
    )
    return parser.parse_args(argv)


async def main(argv=None):
    """Main function to run the bot."""
    args = parse_args(argv)
    try:
        # Create and run bot
        bot = CampPollBot(run_once=args.once)

        async with bot:
            await bot.start(bot.config.token)

    except KeyboardInterrupt:
        logger.info("Bot shutdown requested")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
    finally:
        logger.info("Bot shutdown complete")


def run():
    """Console entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Process interrupted")
    except Exception as e:
        logger.critical(f"Failed to start bot: {e}", exc_info=True)


if __name__ == "__main__":
    run()
