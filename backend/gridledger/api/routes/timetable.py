from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from gridledger.api.deps import get_author_id, get_db
from gridledger.core.config import get_settings
from gridledger.core.exceptions import NoOpEdit
from gridledger.schemas.timetable import (
    Audience,
    GeneratedTimetableResult,
    GeneratedTimetableSubmit,
    HistoryEntryOut,
    LedgerIntegrityOut,
    TimetableCreate,
    TimetableEditResult,
    TimetableGridUpdate,
    TimetableOut,
    TimetableRestoreResult,
    TimetableVersionCompare,
    TimetableVersionGrid,
    ValidateTimetableRequest,
    ValidationResultOut,
)
from gridledger.services.ledger import VersionLedger, retry_on_conflict
from gridledger.services.lifecycle import TimetableLifecycle
from gridledger.services.restore import RestoreOrchestrator, restore_summary

router = APIRouter()

settings = get_settings()


def _retrying(db: Session, operation):
    return retry_on_conflict(db, operation, attempts=settings.storage_conflict_retry_attempts)


@router.post("/validate", response_model=ValidationResultOut)
def validate_timetable(payload: ValidateTimetableRequest, db: Session = Depends(get_db)) -> ValidationResultOut:
    result = TimetableLifecycle(db).validate(payload.to_grid(), payload.required(), payload.reservations())
    return ValidationResultOut(is_valid=result.is_valid, errors=result.errors)


@router.post("", response_model=TimetableOut, status_code=status.HTTP_201_CREATED)
def create_timetable(
    payload: TimetableCreate,
    author_id: str = Depends(get_author_id),
    db: Session = Depends(get_db),
) -> TimetableOut:
    return TimetableLifecycle(db).create(
        payload.level,
        payload.section,
        payload.to_grid(),
        payload.required(),
        payload.reservations(),
        author_id=author_id,
    )


@router.post("/generated", response_model=GeneratedTimetableResult)
def submit_generated_timetable(payload: GeneratedTimetableSubmit, db: Session = Depends(get_db)) -> GeneratedTimetableResult:
    lifecycle = TimetableLifecycle(db)
    timetable, entry = _retrying(
        db,
        lambda: lifecycle.submit_generated(payload.output, payload.required(), payload.reservations()),
    )
    return GeneratedTimetableResult(
        created=entry is not None and entry.history_version == 1,
        timetable=TimetableOut.model_validate(timetable),
        entry=HistoryEntryOut.model_validate(entry) if entry is not None else None,
    )


@router.get("", response_model=list[TimetableOut])
def list_visible_timetables(
    level: int = Query(...),
    audience: Audience = Query(default="general"),
    db: Session = Depends(get_db),
) -> list[TimetableOut]:
    return TimetableLifecycle(db).visible_timetables(level, audience)


@router.get("/drafts", response_model=list[TimetableOut])
def list_draft_timetables(level: int = Query(...), db: Session = Depends(get_db)) -> list[TimetableOut]:
    return TimetableLifecycle(db).drafts(level)


@router.get("/{timetable_id}", response_model=TimetableOut)
def get_timetable(timetable_id: str, db: Session = Depends(get_db)) -> TimetableOut:
    return TimetableLifecycle(db).get(timetable_id)


@router.put("/{timetable_id}/grid", response_model=TimetableEditResult)
def edit_timetable_grid(
    timetable_id: str,
    payload: TimetableGridUpdate,
    author_id: str = Depends(get_author_id),
    db: Session = Depends(get_db),
) -> TimetableEditResult:
    lifecycle = TimetableLifecycle(db)
    validate_against = None
    if payload.constraints is not None:
        validate_against = (payload.constraints.required(), payload.constraints.reservations())

    try:
        entry = _retrying(
            db,
            lambda: lifecycle.edit(
                timetable_id,
                payload.to_grid(),
                author_id,
                payload.summary,
                validate_against=validate_against,
            ),
        )
    except NoOpEdit as exc:
        return TimetableEditResult(
            changed=False,
            message=exc.message,
            timetable=TimetableOut.model_validate(lifecycle.get(timetable_id)),
        )
    return TimetableEditResult(
        changed=True,
        message=f"Saved as version {entry.history_version}.",
        timetable=TimetableOut.model_validate(lifecycle.get(timetable_id)),
        entry=HistoryEntryOut.model_validate(entry),
    )


@router.post("/{timetable_id}/publish", response_model=TimetableOut)
def publish_timetable(
    timetable_id: str,
    author_id: str = Depends(get_author_id),
    db: Session = Depends(get_db),
) -> TimetableOut:
    lifecycle = TimetableLifecycle(db)
    return _retrying(db, lambda: lifecycle.publish(timetable_id, actor_id=author_id))


@router.post("/{timetable_id}/archive", response_model=TimetableOut)
def archive_timetable(
    timetable_id: str,
    author_id: str = Depends(get_author_id),
    db: Session = Depends(get_db),
) -> TimetableOut:
    return TimetableLifecycle(db).archive(timetable_id, actor_id=author_id)


@router.get("/{timetable_id}/history", response_model=list[HistoryEntryOut])
def list_timetable_history(timetable_id: str, db: Session = Depends(get_db)) -> list[HistoryEntryOut]:
    return VersionLedger(db).history(timetable_id)


@router.get("/{timetable_id}/integrity", response_model=LedgerIntegrityOut)
def verify_timetable_history(timetable_id: str, db: Session = Depends(get_db)) -> LedgerIntegrityOut:
    ledger = VersionLedger(db)
    verified = ledger.verify_integrity(timetable_id)
    return LedgerIntegrityOut(
        timetable_id=timetable_id,
        edit_counter=ledger.load_timetable(timetable_id).edit_counter,
        verified_versions=verified,
    )


@router.get("/{timetable_id}/versions/compare", response_model=TimetableVersionCompare)
def compare_timetable_versions(
    timetable_id: str,
    from_version: int = Query(..., alias="from"),
    to_version: int = Query(..., alias="to"),
    db: Session = Depends(get_db),
) -> TimetableVersionCompare:
    delta = VersionLedger(db).compare(timetable_id, from_version, to_version)
    return TimetableVersionCompare(
        timetable_id=timetable_id,
        from_version=from_version,
        to_version=to_version,
        changed_cells=len(delta),
        delta=delta.to_payload(),
    )


@router.get("/{timetable_id}/versions/{version}", response_model=TimetableVersionGrid)
def get_timetable_version(timetable_id: str, version: int, db: Session = Depends(get_db)) -> TimetableVersionGrid:
    grid = VersionLedger(db).reconstruct(timetable_id, version)
    return TimetableVersionGrid(timetable_id=timetable_id, history_version=version, grid=grid.to_payload())


@router.post("/{timetable_id}/restore/{version}", response_model=TimetableRestoreResult)
def restore_timetable_version(
    timetable_id: str,
    version: int,
    author_id: str = Depends(get_author_id),
    db: Session = Depends(get_db),
) -> TimetableRestoreResult:
    orchestrator = RestoreOrchestrator(db)
    entry = _retrying(db, lambda: orchestrator.restore(timetable_id, version, author_id))
    return TimetableRestoreResult(
        message=restore_summary(version),
        new_history_version=entry.history_version,
        entry=HistoryEntryOut.model_validate(entry),
        timetable=TimetableOut.model_validate(orchestrator.ledger.load_timetable(timetable_id)),
    )
