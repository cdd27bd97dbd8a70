from __future__ import annotations

import logging

from sqlalchemy import Connection, inspect, text

import gridledger.models  # noqa: F401
from gridledger.db.base import Base
from gridledger.db.session import engine

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "timetables": {"id", "level", "section", "grid", "edit_counter", "publish_counter", "status"},
    "timetable_history": {"id", "timetable_id", "history_version", "delta", "author_id", "summary", "created_at"},
    "users": {"id", "email", "role", "is_active"},
    "notifications": {"id", "user_id", "title", "message", "related_timetable_id", "is_read"},
}


def _ensure_timetables_publish_counter_column() -> None:
    # Databases created before publishing was versioned only carry a status column.
    with engine.begin() as connection:
        inspector = inspect(connection)
        if "timetables" not in set(inspector.get_table_names()):
            return
        column_names = {item["name"] for item in inspector.get_columns("timetables")}
        if "publish_counter" in column_names:
            return
        connection.execute(text("ALTER TABLE timetables ADD COLUMN publish_counter INTEGER NOT NULL DEFAULT 0"))
        logger.info("Added timetables.publish_counter column")


def missing_schema(connection: Connection) -> tuple[list[str], dict[str, list[str]]]:
    """Tables and columns from REQUIRED_COLUMNS that the connected database lacks."""
    inspector = inspect(connection)
    table_names = set(inspector.get_table_names())
    missing_tables = sorted(name for name in REQUIRED_COLUMNS if name not in table_names)
    missing_columns: dict[str, list[str]] = {}
    for table_name, required in REQUIRED_COLUMNS.items():
        if table_name in missing_tables:
            continue
        existing = {item["name"] for item in inspector.get_columns(table_name)}
        if required - existing:
            missing_columns[table_name] = sorted(required - existing)
    return missing_tables, missing_columns


def _assert_required_columns() -> None:
    with engine.begin() as connection:
        missing_tables, missing_columns = missing_schema(connection)
    if missing_tables:
        raise RuntimeError(f"Missing required tables: {', '.join(missing_tables)}")
    if missing_columns:
        flattened = [f"{table}.{column}" for table, columns in missing_columns.items() for column in columns]
        raise RuntimeError(f"Missing required columns: {', '.join(flattened)}")


def ensure_runtime_schema_compatibility() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        _ensure_timetables_publish_counter_column()
        _assert_required_columns()
    except Exception as exc:  # pragma: no cover - runtime environment dependent
        logger.exception("Runtime schema compatibility bootstrap failed")
        raise RuntimeError("Runtime schema compatibility bootstrap failed") from exc
