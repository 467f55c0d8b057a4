"""Sync audit log and enrichment usage counter models."""
from datetime import date, datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class SyncLog(SQLModel, table=True):
    """Records each refresh attempt for audit and debugging."""

    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: str = Field(index=True)
    started_at: datetime
    finished_at: Optional[datetime] = None
    status: str = "running"  # "running", "success", "partial", "cache_fallback", "error"
    activities_synced: int = 0
    enrichment_calls_used: int = 0
    throttled: bool = False
    error_message: Optional[str] = None


class EnrichmentUsage(SQLModel, table=True):
    """Detail calls spent per owner per UTC day."""

    owner_id: str = Field(primary_key=True)
    usage_date: date = Field(primary_key=True)
    calls: int = 0
