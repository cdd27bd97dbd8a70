"""Replay every timetable's history and check it reproduces the stored grid.

Run:
  PYTHONPATH=backend python scripts/verify_history.py
"""

from __future__ import annotations

import sys

from sqlalchemy import select

from gridledger.core.exceptions import LedgerIntegrityError
from gridledger.db.session import SessionLocal
from gridledger.models.timetable import Timetable
from gridledger.services.ledger import VersionLedger


def main() -> int:
    failures = 0
    with SessionLocal() as session:
        ledger = VersionLedger(session)
        timetables = session.execute(select(Timetable).order_by(Timetable.level, Timetable.section)).scalars().all()
        if not timetables:
            print("No timetables found.")
            return 0
        for timetable in timetables:
            label = f"Level {timetable.level} / {timetable.section}"
            try:
                verified = ledger.verify_integrity(timetable.id)
            except LedgerIntegrityError as exc:
                failures += 1
                print(f"  FAIL {label}: {exc.message} {exc.details}")
                continue
            print(f"  ok   {label}: {verified} version(s), status={timetable.status.value}")
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
