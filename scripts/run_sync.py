#!/usr/bin/env python3
"""
Run an ESPN sync from the command line.

Sync types:
- players:    Roster sync (match, link, update, insert)
- stats:      Per-game stats for one week
- historical: Stats backfill for a week range
- full:       Roster sync followed by a week range
- status:     Show the last report per sync type
- unmatched:  Show the manual review queue
- link:       Manually link a catalog player to an ESPN id

Usage:
    python scripts/run_sync.py players [--dry-run] [--team KC --team BUF]
    python scripts/run_sync.py stats --season 2024 --week 3
    python scripts/run_sync.py historical --season 2024 --start-week 1 --end-week 18
    python scripts/run_sync.py full --season 2024
    python scripts/run_sync.py link --player-id 42 --espn-id 3139477

Cron scheduling (Tuesdays at 6 AM UTC, after Monday night games):
    0 6 * * 2 cd /opt/playersync && venv/bin/python scripts/run_sync.py stats --season 2024 --week 3
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from playersync.core.config import settings
from playersync.core.database import SessionLocal, init_db
from playersync.core.logging import configure_logging
from playersync.services.sync.adapters import EspnAdapter
from playersync.services.sync.orchestrator import SyncOrchestrator
from playersync.services.sync.types import SyncOptions, SyncResult, SyncStatus

logger = logging.getLogger(__name__)


def print_result(result: SyncResult) -> None:
    """Log a one-screen summary of a sync result."""
    logger.info("=" * 60)
    logger.info(f"{result.sync_type.value} sync {result.sync_id}: {result.status.value}")
    logger.info("=" * 60)
    for name, value in result.counters().items():
        logger.info(f"  {name:<24} {value}")
    if result.duration_ms is not None:
        logger.info(f"  {'duration_ms':<24} {result.duration_ms}")
    for error in result.errors[:20]:
        logger.error(f"  ✗ {error}")
    if len(result.errors) > 20:
        logger.error(f"  ... and {len(result.errors) - 20} more errors")
    for warning in result.warnings[:10]:
        logger.warning(f"  ! {warning}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sync the player catalog with ESPN")
    parser.add_argument(
        'command',
        choices=['players', 'stats', 'historical', 'full', 'status', 'unmatched', 'link'],
        help='Sync or admin operation to run'
    )
    parser.add_argument('--season', type=int, help='Season year (e.g. 2024)')
    parser.add_argument('--week', type=int, help='Week number for the stats command')
    parser.add_argument('--start-week', type=int, default=1, help='First week (default: 1)')
    parser.add_argument('--end-week', type=int, default=18, help='Last week (default: 18)')
    parser.add_argument('--dry-run', action='store_true', help='Run without writing to the database')
    parser.add_argument('--force', action='store_true', help='Update players even when unchanged')
    parser.add_argument('--include-inactive', action='store_true', help='Also sync inactive players')
    parser.add_argument('--stop-on-error', action='store_true', help='Abort the run on the first data error')
    parser.add_argument('--team', action='append', dest='teams', help='Restrict to a team (repeatable)')
    parser.add_argument('--player', action='append', dest='players', help='Restrict to an ESPN id (repeatable)')
    parser.add_argument('--player-id', type=int, help='Internal player id for the link command')
    parser.add_argument('--espn-id', type=str, help='ESPN athlete id for the link command')
    return parser


async def main():
    """Main entry point for the script."""
    args = build_parser().parse_args()

    configure_logging(level=settings.LOG_LEVEL, json_output=settings.LOG_JSON)
    init_db()

    db = SessionLocal()
    provider = EspnAdapter()
    orchestrator = SyncOrchestrator(db, provider=provider)

    options = SyncOptions.from_settings(
        dry_run=args.dry_run,
        force_full_sync=args.force,
        skip_inactive=not args.include_inactive,
        continue_on_error=not args.stop_on_error,
        team_abbreviations=args.teams,
        player_ids=args.players,
    )

    try:
        if args.command == 'status':
            for sync_type, last in orchestrator.get_sync_status()['last_reports'].items():
                logger.info(f"{sync_type:<14} {last if last else 'never run'}")
            sys.exit(0)

        if args.command == 'unmatched':
            unmatched = await orchestrator.unmatched_players()
            logger.info(f"{len(unmatched)} players need manual review")
            for player in unmatched:
                best = player.candidates[0] if player.candidates else None
                logger.info(
                    f"  {player.external_id:<10} {player.external_name:<28} {player.team or '-':<4} "
                    f"best={best.name if best else '-'} ({player.best_score:.2f})"
                )
            sys.exit(0)

        if args.command == 'link':
            if args.player_id is None or not args.espn_id:
                logger.error("link requires --player-id and --espn-id")
                sys.exit(2)
            linked = orchestrator.link_player(args.player_id, args.espn_id)
            logger.info("✓ Linked" if linked else "✗ Player not found")
            sys.exit(0 if linked else 1)

        if args.command != 'players' and args.season is None:
            logger.error(f"{args.command} requires --season")
            sys.exit(2)

        if not await orchestrator.validate_connectivity():
            logger.error("ESPN is unreachable, aborting")
            sys.exit(1)

        if args.command == 'players':
            result = await orchestrator.sync_players(options)
        elif args.command == 'stats':
            if args.week is None:
                logger.error("stats requires --week")
                sys.exit(2)
            result = await orchestrator.sync_player_stats(args.season, args.week, options)
        elif args.command == 'historical':
            result = await orchestrator.sync_historical_stats(
                args.season, args.start_week, args.end_week, options
            )
        else:
            result = await orchestrator.full_sync(
                args.season, options, start_week=args.start_week, end_week=args.end_week
            )

        print_result(result)
        sys.exit(0 if result.status == SyncStatus.COMPLETED else 1)

    except Exception as e:
        logger.error(f"Error during sync: {e}", exc_info=True)
        sys.exit(1)
    finally:
        await provider.close()
        db.close()


if __name__ == "__main__":
    asyncio.run(main())
