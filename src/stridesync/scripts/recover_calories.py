"""
Calorie recovery: fill in calories for stored activities that still have none.

Usage:
    python -m stridesync recover-calories --max 30 [--dry-run] [--owner athlete]

Looks at stored records with calories == 0, prioritizes runs and then the
most recent, and spends one detail call per activity under the same
per-refresh and daily budget as a normal refresh. Results go through the
regular merge rules, so tags and other stored fields are untouched.

With --dry-run nothing is written (detail calls are still made and
counted against the provider's own rate limit).
"""
import argparse
import asyncio
import logging
from dataclasses import dataclass, field
from typing import List

from stridesync.models.activity import is_run_type
from stridesync.sync.budget import EnrichmentBudget
from stridesync.sync.reconciler import merge, summary_from_record
from stridesync.sync.service import ActivitySyncService, needs_enrichment
from stridesync.sync.store import utcnow

logger = logging.getLogger(__name__)

DEFAULT_MAX_ACTIVITIES = 30


@dataclass
class RecoveryReport:
    checked: int = 0
    recovered: List[str] = field(default_factory=list)
    calls_used: int = 0
    failures: int = 0
    throttled: bool = False
    dry_run: bool = False


async def recover_calories(
    service: ActivitySyncService,
    owner_id: str,
    max_activities: int = DEFAULT_MAX_ACTIVITIES,
    dry_run: bool = False,
) -> RecoveryReport:
    """
    Fetch details for up to max_activities zero-calorie records and save any calories found.

    Args:
        service: Wired ActivitySyncService (client, auth, store).
        owner_id: Whose records to repair.
        max_activities: Upper bound on activities considered.
        dry_run: Report what would be recovered without writing.
    """
    store = service.store
    settings = service.settings
    report = RecoveryReport(dry_run=dry_run)

    stored = store.zero_calorie_records(owner_id, limit=max_activities * 2)
    stored.sort(key=lambda r: r.start_time_utc, reverse=True)
    stored.sort(key=lambda r: not is_run_type(r.activity_type))
    by_id = {r.activity_id: r for r in stored}
    summaries = (summary_from_record(r) for r in stored)
    candidates = [s for s in summaries if needs_enrichment(s, by_id[s.activity_id])][:max_activities]
    report.checked = len(candidates)

    if not candidates:
        logger.info("No activities missing calories for %s", owner_id)
        return report

    logger.info(
        "%s calories for %d activities (%d runs)",
        "Checking" if dry_run else "Recovering",
        len(candidates),
        sum(1 for c in candidates if is_run_type(c.activity_type)),
    )

    now = utcnow()
    budget = EnrichmentBudget(
        max_calls=min(max_activities, settings.max_enrichment_calls),
        daily_limit=settings.daily_enrichment_limit,
        used_today=store.enrichment_calls_on(owner_id, now.date()),
    )
    credential = await service.auth.get_access_token()
    outcome = await service.fetch_details(credential, candidates, budget)
    report.calls_used = outcome.calls_used
    report.failures = outcome.failures
    report.throttled = outcome.throttled

    updated = []
    for summary in candidates:
        detail = outcome.details.get(summary.activity_id)
        if detail is None:
            continue
        previous = by_id[summary.activity_id]
        record = merge(summary, detail, previous, owner_id=owner_id, fetched_at=now)
        record.fetched_at = previous.fetched_at  # not a provider sync
        updated.append(record)
        if record.calories > 0:
            report.recovered.append(record.activity_id)
            logger.info("Recovered %d calories for %s %r", record.calories, record.activity_type, record.name)

    if not dry_run:
        store.batch_upsert(updated)
        store.add_enrichment_calls(owner_id, now.date(), outcome.calls_used)

    logger.info(
        "Recovery done: %d/%d recovered, %d detail calls%s",
        len(report.recovered), report.checked, report.calls_used,
        " (dry run, nothing saved)" if dry_run else "",
    )
    return report


def main(argv=None) -> None:
    from stridesync.config import get_settings
    from stridesync.db.engine import get_engine
    from stridesync.sync.service import build_sync_service

    settings = get_settings()
    parser = argparse.ArgumentParser(description="Recover missing activity calories")
    parser.add_argument("--owner", default=settings.default_owner_id, help="Owner id")
    parser.add_argument(
        "--max",
        type=int,
        default=DEFAULT_MAX_ACTIVITIES,
        help=f"Maximum activities to check (default: {DEFAULT_MAX_ACTIVITIES})",
    )
    parser.add_argument("--dry-run", action="store_true", help="Don't write anything")
    args = parser.parse_args(argv)

    service = build_sync_service(get_engine(), settings)
    asyncio.run(recover_calories(service, args.owner, args.max, args.dry_run))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    main()
