"""CLI command for failing generations stuck in processing.

Usage:
    python -m sigil.cli.sweep_stuck [OPTIONS]

Examples:
    # Sweep with configured thresholds (STUCK_MIN_AGE_MINUTES / STUCK_HEARTBEAT_STALE_MINUTES)
    python -m sigil.cli.sweep_stuck

    # Only generations older than 30 minutes with a heartbeat staler than 10 minutes
    python -m sigil.cli.sweep_stuck --min-age 30 --stale 10

    # Verbose logging
    python -m sigil.cli.sweep_stuck -v
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace

import structlog

from sigil.core import timezone  # noqa: F401
from sigil.core.config import Settings, configure_logging
from sigil.core.database import setup_db_session
from sigil.services.generation.recovery import sweep_stuck_generations
from sigil.uow import create_uow_factory

logger = structlog.get_logger()


def parse_args(argv: list[str] | None = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(
        description="Fail generations stuck in processing",
        epilog="Stuck: active, old enough, and with a missing or stale heartbeat",
    )

    parser.add_argument(
        "--min-age",
        type=int,
        help="Minimum generation age in minutes (default: STUCK_MIN_AGE_MINUTES)",
    )

    parser.add_argument(
        "--stale",
        type=int,
        help="Heartbeat staleness in minutes (default: STUCK_HEARTBEAT_STALE_MINUTES)",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args(argv)


async def async_main(argv: list[str] | None = None) -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (success), 1 (error)
    """
    args = parse_args(argv)

    settings = Settings()  # type: ignore[call-arg]
    if args.verbose:
        settings.log_level = "DEBUG"
    configure_logging(settings)

    min_age = args.min_age if args.min_age is not None else settings.stuck_min_age_minutes
    stale = args.stale if args.stale is not None else settings.stuck_heartbeat_stale_minutes

    logger.info("cli.started", min_age_minutes=min_age, heartbeat_stale_minutes=stale)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    uow_factory = create_uow_factory(session_factory)

    try:
        async with await uow_factory() as uow:
            result = await sweep_stuck_generations(
                uow, min_age_minutes=min_age, heartbeat_stale_minutes=stale
            )

        print("\n" + "=" * 60)
        print("Stuck Generation Sweep Summary")
        print("=" * 60)
        print(f"Generations failed: {result.cleaned}")
        for generation_id in result.ids[:10]:
            print(f"  - {generation_id}")
        if len(result.ids) > 10:
            print(f"  ... and {len(result.ids) - 10} more")
        print("=" * 60 + "\n")

        logger.info("cli.success", cleaned=result.cleaned)
        return 0

    except KeyboardInterrupt:
        logger.info("cli.interrupted")
        print("\nSweep interrupted by user", file=sys.stderr)
        return 130

    except Exception as e:
        logger.error(
            "cli.unexpected_error",
            error=str(e),
            error_type=type(e).__name__,
        )
        print(f"\nUnexpected error: {e}", file=sys.stderr)
        return 1


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
