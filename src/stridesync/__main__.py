"""
Main entrypoint: scheduler process and one-shot commands.

FastAPI runs separately under uvicorn.

Usage:
    python -m stridesync                       # starts the nightly refresh scheduler
    python -m stridesync refresh --days 30     # one refresh, prints a summary
    python -m stridesync recover-calories --max 30 --dry-run
    uvicorn stridesync.api.main:app --host 0.0.0.0 --port 8000  # starts API
"""
import argparse
import asyncio
import logging
import sys

from stridesync.config import get_settings

logger = logging.getLogger(__name__)


async def _run_scheduler() -> None:
    from stridesync.db.engine import get_engine
    from stridesync.scheduler.jobs import build_scheduler

    settings = get_settings()
    scheduler = build_scheduler(get_engine())
    scheduler.start()
    logger.info(
        "Scheduler started (nightly refresh at %02d:00 UTC)",
        settings.refresh_hour,
    )

    try:
        await asyncio.Event().wait()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down...")
    finally:
        scheduler.shutdown()
        logger.info("Goodbye.")


async def _run_refresh(owner_id: str, days: int, preserve_tags: bool) -> None:
    from stridesync.db.engine import get_engine
    from stridesync.sync.service import build_sync_service

    settings = get_settings()
    service = build_sync_service(get_engine(), settings)
    result = await service.refresh(
        owner_id, days, preserve_tags=preserve_tags, timeout=settings.refresh_timeout_seconds
    )
    with_calories = sum(1 for r in result.records if r.calories > 0)
    print(
        f"{len(result.records)} activities from {result.source.value}; "
        f"{with_calories} with calories; "
        f"{result.enrichment_calls_used} detail calls"
        + (" (throttled)" if result.throttled else "")
    )


def main(argv=None) -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    parser = argparse.ArgumentParser(prog="stridesync")
    sub = parser.add_subparsers(dest="command")

    refresh = sub.add_parser("refresh", help="Refresh activities from Strava once")
    refresh.add_argument("--owner", default=settings.default_owner_id)
    refresh.add_argument("--days", type=int, default=settings.default_window_days)
    refresh.add_argument(
        "--reclassify",
        action="store_true",
        help="Re-run automatic classification on auto-tagged runs",
    )

    recover = sub.add_parser("recover-calories", help="Fetch calories for stored activities missing them")
    recover.add_argument("--owner", default=settings.default_owner_id)
    recover.add_argument("--max", type=int, default=30)
    recover.add_argument("--dry-run", action="store_true")

    args = parser.parse_args(argv)

    if args.command == "refresh":
        asyncio.run(_run_refresh(args.owner, args.days, preserve_tags=not args.reclassify))
    elif args.command == "recover-calories":
        from stridesync.scripts.recover_calories import main as recover_main

        forwarded = ["--owner", args.owner, "--max", str(args.max)]
        if args.dry_run:
            forwarded.append("--dry-run")
        recover_main(forwarded)
    else:
        try:
            asyncio.run(_run_scheduler())
        except KeyboardInterrupt:
            sys.exit(0)


if __name__ == "__main__":
    main()
