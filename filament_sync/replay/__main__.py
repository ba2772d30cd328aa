"""CLI entry point for filament_sync.replay.

Usage:
    python -m filament_sync.replay events.jsonl
    python -m filament_sync.replay events.jsonl --guild-id G --channel-id C
    python -m filament_sync.replay events.jsonl --persist    # Save workspaces
    python -m filament_sync.replay events.jsonl --debug      # Show dropped frames
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from filament_sync.gateway.logger import logger
from filament_sync.replay.run import run_replay
from filament_sync.utils.ids import is_ulid
from filament_sync.utils.logging import setup_logging


def ulid_arg(value: str) -> str:
    """argparse type for ULID ids."""
    if not is_ulid(value):
        raise argparse.ArgumentTypeError(f"not a ULID: {value!r}")
    return value


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Replay a captured Filament gateway stream",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m filament_sync.replay capture.jsonl
      Replay every frame; only unscoped events (workspaces, voice, profiles)
      affect state

  python -m filament_sync.replay capture.jsonl --guild-id G --channel-id C
      Also apply message, reaction and presence events for that channel

  python -m filament_sync.replay capture.jsonl --persist
      Save the resulting workspace list to the snapshot store

  python -m filament_sync.replay capture.jsonl --debug
      Log every dropped frame, plus third-party library logs
        """,
    )

    parser.add_argument(
        "events",
        type=str,
        help="JSONL capture file, one gateway frame per line",
    )
    parser.add_argument(
        "--config",
        type=str,
        default="config.json",
        help="Path to config.json (default: config.json)",
    )
    parser.add_argument(
        "--self-user-id",
        type=ulid_arg,
        help="Id of the local user",
    )
    parser.add_argument(
        "--guild-id",
        type=ulid_arg,
        help="Active guild",
    )
    parser.add_argument(
        "--channel-id",
        type=ulid_arg,
        help="Active channel (requires --guild-id)",
    )
    parser.add_argument(
        "--persist",
        action="store_true",
        help="Save the resulting workspace list to the snapshot store",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output (DEBUG level)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode with third-party library logs",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        help="Optional file to write logs to",
    )

    args = parser.parse_args()
    if args.channel_id and not args.guild_id:
        parser.error("--channel-id requires --guild-id")

    # Configure logging based on CLI flags
    if args.debug:
        log_level = logging.DEBUG
        debug_third_party = True
    elif args.verbose:
        log_level = logging.DEBUG
        debug_third_party = False
    else:
        log_level = logging.INFO
        debug_third_party = False

    setup_logging(
        level=log_level,
        log_file=args.log_file,
        debug_third_party=debug_third_party,
    )

    logger.info(f"Replaying {args.events}")

    try:
        asyncio.run(
            run_replay(
                args.events,
                config_path=args.config,
                self_user_id=args.self_user_id,
                guild_id=args.guild_id,
                channel_id=args.channel_id,
                persist=args.persist,
            )
        )
        logger.success("Replay complete!")
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        raise


if __name__ == "__main__":
    main()
