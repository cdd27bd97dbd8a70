from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gridledger.api.deps import get_db
from gridledger.db.bootstrap import missing_schema
from gridledger.models.timetable import Timetable
from gridledger.models.timetable_history import TimetableHistoryEntry

router = APIRouter()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/health/live")
def health_live() -> dict:
    return {"status": "ok", "timestamp": _now()}


@router.get("/health/ready")
def health_ready(db: Session = Depends(get_db)) -> JSONResponse:
    database: dict = {"ok": True, "schema_ok": False, "missing_tables": [], "missing_columns": {}, "error": None}
    ledger: dict | None = None

    try:
        missing_tables, missing_columns = missing_schema(db.connection())
        database.update(
            schema_ok=not missing_tables and not missing_columns,
            missing_tables=missing_tables,
            missing_columns=missing_columns,
        )
        if database["schema_ok"]:
            ledger = {
                "timetables": db.scalar(select(func.count()).select_from(Timetable)),
                "history_entries": db.scalar(select(func.count()).select_from(TimetableHistoryEntry)),
            }
    except SQLAlchemyError as exc:  # pragma: no cover - environment dependent
        database.update(ok=False, error=str(exc))

    ready = database["ok"] and database["schema_ok"]
    payload = {
        "status": "ok" if ready else "degraded",
        "timestamp": _now(),
        "database": database,
        "ledger": ledger,
    }
    return JSONResponse(status_code=200 if ready else 503, content=payload)
