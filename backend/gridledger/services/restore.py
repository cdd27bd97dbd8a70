from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from gridledger.core.exceptions import InvalidTransition, RestoreNoOp
from gridledger.models.timetable import TimetableStatus
from gridledger.models.timetable_history import TimetableHistoryEntry
from gridledger.services.audit import log_activity
from gridledger.services.delta import diff
from gridledger.services.grid import Grid
from gridledger.services.ledger import VersionLedger, commit_or_conflict

logger = logging.getLogger(__name__)


def restore_summary(version: int) -> str:
    return f"Restored to version {version}"


class RestoreOrchestrator:
    """Makes a historical grid current again by appending a forward edit.

    Nothing in the history is rewritten: the restore itself becomes the next version and can
    be restored away from like any other edit.
    """

    def __init__(self, db: Session) -> None:
        self.db = db
        self.ledger = VersionLedger(db)

    def restore(self, timetable_id: str, target_version: int, author_id: str) -> TimetableHistoryEntry:
        reconstructed = self.ledger.reconstruct(timetable_id, target_version)

        timetable = self.ledger.load_timetable(timetable_id)
        if timetable.status == TimetableStatus.archived:
            raise InvalidTransition(f"Cannot restore timetable {timetable_id}: it is archived")
        current = Grid.from_payload(timetable.grid)

        delta = diff(current, reconstructed)
        if delta.is_empty:
            raise RestoreNoOp(timetable_id, target_version)

        entry = self.ledger.record(timetable_id, delta, author_id, restore_summary(target_version), commit=False)
        log_activity(
            self.db,
            actor_id=author_id,
            action="timetable.restore",
            timetable_id=timetable_id,
            details={
                "restored_version": target_version,
                "history_version": entry.history_version,
                "changed_cells": len(delta),
            },
        )
        commit_or_conflict(self.db, timetable_id)
        logger.info(
            "Restored timetable | timetable_id=%s | target_version=%d | new_version=%d | author=%s",
            timetable_id,
            target_version,
            entry.history_version,
            author_id,
        )
        return entry
