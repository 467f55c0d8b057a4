"""
ActivityStore: SQLModel-backed persistence for activity records.

All methods open their own short-lived Session and return detached
objects. Any SQLAlchemyError is re-raised as StoreUnavailable so callers
handle one persistence failure type.

Upserts go through Session.merge() on the (owner_id, activity_id)
primary key, so writing the same record twice updates the row in place.
"""
from contextlib import contextmanager
from datetime import date, datetime
from typing import Dict, Iterable, Iterator, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from stridesync.models.activity import ActivityRecord
from stridesync.models.sync import EnrichmentUsage, SyncLog

# SQLite's default bound-parameter limit is 999; stay well below it.
_ID_CHUNK = 500


class StoreUnavailable(RuntimeError):
    """Raised when the persistence layer can't be read or written."""

    def __init__(self, message: str):
        super().__init__(message)
        # Set by the orchestrator when records were computed but not saved.
        self.records: List[ActivityRecord] = []


def utcnow() -> datetime:
    """Naive UTC now, matching how timestamps are stored."""
    return datetime.utcnow()


class ActivityStore:
    """Keyed table of activity records, queryable by owner and time range."""

    def __init__(self, engine):
        """
        Args:
            engine: SQLAlchemy engine (SQLModel create_engine result).
        """
        self.engine = engine

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with Session(self.engine) as s:
                yield s
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Activity store unavailable: {exc}") from exc

    # ─── Activity records ─────────────────────────────────────────────────────

    def get(self, owner_id: str, activity_id: str) -> Optional[ActivityRecord]:
        with self._session() as s:
            return s.get(ActivityRecord, (owner_id, activity_id))

    def get_by_ids(self, owner_id: str, activity_ids: Iterable[str]) -> Dict[str, ActivityRecord]:
        """Batch read. Missing ids are simply absent from the result."""
        ids = list(dict.fromkeys(activity_ids))
        found: Dict[str, ActivityRecord] = {}
        with self._session() as s:
            for i in range(0, len(ids), _ID_CHUNK):
                chunk = ids[i:i + _ID_CHUNK]
                rows = s.exec(
                    select(ActivityRecord).where(
                        ActivityRecord.owner_id == owner_id,
                        ActivityRecord.activity_id.in_(chunk),
                    )
                ).all()
                for row in rows:
                    found[row.activity_id] = row
        return found

    def query(self, owner_id: str, after: datetime, before: datetime) -> List[ActivityRecord]:
        """Records with after <= start_time_utc <= before, newest first."""
        with self._session() as s:
            return list(s.exec(
                select(ActivityRecord)
                .where(
                    ActivityRecord.owner_id == owner_id,
                    ActivityRecord.start_time_utc >= after,
                    ActivityRecord.start_time_utc <= before,
                )
                .order_by(ActivityRecord.start_time_utc.desc())
            ).all())

    def batch_upsert(self, records: Iterable[ActivityRecord]) -> None:
        """
        Insert-or-update all records in a single transaction.

        A user tag already stored for a record wins over the tag fields of
        the incoming record, which may have been computed before the user
        tagged it. The incoming objects are updated in place to match.
        """
        records = list(records)
        with self._session() as s:
            self._keep_user_tags(s, records)
            for record in records:
                s.merge(record)
            s.commit()

    def _keep_user_tags(self, s: Session, records: List[ActivityRecord]) -> None:
        incoming: Dict[str, List[str]] = {}
        for r in records:
            if not r.user_override:
                incoming.setdefault(r.owner_id, []).append(r.activity_id)

        tagged: Dict[tuple, ActivityRecord] = {}
        for owner_id, ids in incoming.items():
            for i in range(0, len(ids), _ID_CHUNK):
                rows = s.exec(
                    select(ActivityRecord).where(
                        ActivityRecord.owner_id == owner_id,
                        ActivityRecord.activity_id.in_(ids[i:i + _ID_CHUNK]),
                        ActivityRecord.user_override == True,  # noqa: E712
                    )
                ).all()
                for row in rows:
                    tagged[(row.owner_id, row.activity_id)] = row

        for r in records:
            stored = tagged.get((r.owner_id, r.activity_id))
            if stored is None or r.user_override:
                continue
            r.run_tag = stored.run_tag
            r.tagged_by = stored.tagged_by
            r.user_override = True
            r.tag_confidence = stored.tag_confidence
            r.tagged_at = stored.tagged_at

    def tagged_runs(self, owner_id: str) -> List[ActivityRecord]:
        """All records carrying a run tag, newest first (stubs last)."""
        with self._session() as s:
            rows = s.exec(
                select(ActivityRecord).where(
                    ActivityRecord.owner_id == owner_id,
                    ActivityRecord.run_tag.is_not(None),
                )
            ).all()
        return sorted(rows, key=lambda r: r.start_time_utc or datetime.min, reverse=True)

    def zero_calorie_records(self, owner_id: str, limit: int) -> List[ActivityRecord]:
        """Most recent records still missing calories."""
        with self._session() as s:
            return list(s.exec(
                select(ActivityRecord)
                .where(
                    ActivityRecord.owner_id == owner_id,
                    ActivityRecord.calories == 0,
                    ActivityRecord.start_time_utc.is_not(None),
                )
                .order_by(ActivityRecord.start_time_utc.desc())
                .limit(limit)
            ).all())

    # ─── Enrichment usage ─────────────────────────────────────────────────────

    def enrichment_calls_on(self, owner_id: str, day: date) -> int:
        with self._session() as s:
            usage = s.get(EnrichmentUsage, (owner_id, day))
            return usage.calls if usage else 0

    def add_enrichment_calls(self, owner_id: str, day: date, calls: int) -> None:
        if calls <= 0:
            return
        with self._session() as s:
            usage = s.get(EnrichmentUsage, (owner_id, day))
            if usage is None:
                usage = EnrichmentUsage(owner_id=owner_id, usage_date=day, calls=0)
            usage.calls += calls
            s.add(usage)
            s.commit()

    # ─── Sync log ─────────────────────────────────────────────────────────────

    def start_sync_log(self, owner_id: str) -> SyncLog:
        log = SyncLog(owner_id=owner_id, started_at=utcnow(), status="running")
        with self._session() as s:
            s.add(log)
            s.commit()
            s.refresh(log)
        return log

    def finish_sync_log(
        self,
        log: SyncLog,
        *,
        status: str,
        activities_synced: int = 0,
        enrichment_calls_used: int = 0,
        throttled: bool = False,
        error_message: Optional[str] = None,
    ) -> None:
        with self._session() as s:
            db_log = s.get(SyncLog, log.id)
            db_log.status = status
            db_log.finished_at = utcnow()
            db_log.activities_synced = activities_synced
            db_log.enrichment_calls_used = enrichment_calls_used
            db_log.throttled = throttled
            db_log.error_message = error_message
            s.add(db_log)
            s.commit()

    def latest_sync_log(self, owner_id: Optional[str] = None) -> Optional[SyncLog]:
        with self._session() as s:
            stmt = select(SyncLog)
            if owner_id is not None:
                stmt = stmt.where(SyncLog.owner_id == owner_id)
            return s.exec(stmt.order_by(SyncLog.started_at.desc(), SyncLog.id.desc())).first()
