#!/usr/bin/env python3
"""
Mixer Ping Bot Startup Script

Entry point for running the ping bot. The OAuth token is read from the
environment (``mixer_token`` unless configured otherwise); everything else
has defaults that an optional YAML file can override.
"""

import asyncio
import signal
import sys
import argparse
import logging
from pathlib import Path
from typing import Optional

# Add current directory to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from config_manager import ConfigurationManager, ConfigurationError
from controller import BotController
from exceptions import MixerBotError
from models import CloseReason


__version__ = "1.0.0"


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """Setup logging configuration."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    handlers = [logging.StreamHandler(sys.stdout)]
    handlers.append(logging.FileHandler(log_file or 'mixer_bot.log'))

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Mixer Ping Bot - greets viewers and answers !ping',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment:
  mixer_token   OAuth token of the bot account (name set by mixer.token_env)

Examples:
  python start_bot.py                    # Defaults, joins the bot's own channel
  python start_bot.py --config bot.yml   # Custom config file
  python start_bot.py --log-level DEBUG  # Debug logging
        """
    )
    parser.add_argument(
        '--config',
        help='Path to configuration file (default: built-in defaults)'
    )
    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default='INFO',
        help='Set logging level (default: INFO)'
    )
    parser.add_argument(
        '--log-file',
        help='Custom log file path (default: mixer_bot.log)'
    )
    parser.add_argument(
        '--validate-only',
        action='store_true',
        help='Validate configuration and exit'
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'Mixer Ping Bot v{__version__}'
    )
    return parser


async def run_bot(config_path: Optional[str], logger) -> int:
    """Run the bot until the chat session ends or a signal arrives."""
    controller = BotController(config_path)

    # Close the chat socket on SIGINT/SIGTERM so run() returns cleanly
    loop = asyncio.get_running_loop()
    shutdown_tasks = set()

    def shutdown_done(task):
        shutdown_tasks.discard(task)
        if not task.cancelled() and task.exception():
            logger.error(f"Error during shutdown: {task.exception()}")

    def signal_handler(signum):
        logger.info(f"Received signal {signum}, initiating shutdown...")
        task = asyncio.ensure_future(controller.stop())
        shutdown_tasks.add(task)
        task.add_done_callback(shutdown_done)

    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, signal_handler, signum)
        except NotImplementedError:
            # Signal handlers are unavailable on Windows event loops
            pass

    try:
        controller.initialize()
        reason = await controller.run()
    except (ConfigurationError, MixerBotError) as e:
        logger.error(f"Fatal error: {e}")
        return 1

    logger.info(f"Chat session closed: {reason}")
    return 0 if reason.code == CloseReason.CLIENT_CLOSED else 1


async def main() -> int:
    """Main entry point."""
    args = build_parser().parse_args()

    setup_logging(args.log_level, args.log_file)
    logger = logging.getLogger(__name__)

    if args.config and not Path(args.config).exists():
        logger.error(f"Configuration file not found: {args.config}")
        logger.info("You can copy config.example.yml to config.yml as a starting point")
        return 1

    if args.validate_only:
        try:
            ConfigurationManager(args.config)
        except ConfigurationError as e:
            logger.error(f"Configuration invalid: {e}")
            return 1
        logger.info("Configuration validation passed")
        return 0

    logger.info(f"Starting Mixer ping bot (config: {args.config or 'defaults'})")
    return await run_bot(args.config, logger)


def cli():
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
