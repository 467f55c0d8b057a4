"""
Database migrations for the activity store.

Uses SQLite ALTER TABLE ADD COLUMN for incremental schema evolution.
Each migration is idempotent: columns are only added if absent.

Called automatically from get_engine() after create_all() so both
fresh installs and existing DBs are handled without manual steps.
"""
from sqlalchemy import text


def run_migrations(engine) -> None:
    """Apply all pending schema migrations.

    Safe to call multiple times. Non-SQLite backends are skipped; they
    get the full schema from create_all().

    Args:
        engine: SQLAlchemy engine (SQLModel create_engine result).
    """
    if engine.dialect.name != "sqlite":
        return

    with engine.connect() as conn:
        # ActivityRecord: detail-call enrichment beyond calories
        _add_column_if_missing(conn, "activityrecord", "gear_name", "VARCHAR")
        _add_column_if_missing(conn, "activityrecord", "suffer_score", "FLOAT")
        _add_column_if_missing(conn, "activityrecord", "splits_metric_json", "VARCHAR")

        # SyncLog: throttling flag
        _add_column_if_missing(conn, "synclog", "throttled", "BOOLEAN NOT NULL DEFAULT 0")

        conn.commit()


def _add_column_if_missing(conn, table: str, column: str, col_type: str) -> None:
    """Add a column to a table if it doesn't already exist.

    Args:
        conn: SQLAlchemy connection.
        table: Table name (lowercase, as SQLite stores it).
        column: Column name to add.
        col_type: SQLite column definition, e.g. "INTEGER", "FLOAT", "VARCHAR".
    """
    result = conn.execute(text(f"PRAGMA table_info({table})"))
    existing_columns = {row[1] for row in result}
    if existing_columns and column not in existing_columns:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {col_type}"))
