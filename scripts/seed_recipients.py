"""Seed notification recipients so publishing a timetable has someone to notify.

Run:
  PYTHONPATH=backend python scripts/seed_recipients.py
"""

from __future__ import annotations

import os

from sqlalchemy import select

from gridledger.db.bootstrap import ensure_runtime_schema_compatibility
from gridledger.db.session import SessionLocal
from gridledger.models.user import User, UserRole


def _env_email(key: str, default: str) -> str:
    value = os.getenv(key, "").strip()
    return value or default


RECIPIENTS = {
    "committee": {
        "name": "Schedule Committee",
        "email": _env_email("SEED_COMMITTEE_EMAIL", "committee@gridledger.local"),
        "role": UserRole.committee,
    },
    "scheduler": {
        "name": "Department Scheduler",
        "email": _env_email("SEED_SCHEDULER_EMAIL", "scheduler@gridledger.local"),
        "role": UserRole.scheduler,
    },
    "faculty": {
        "name": "Faculty Member",
        "email": _env_email("SEED_FACULTY_EMAIL", "faculty@gridledger.local"),
        "role": UserRole.faculty,
    },
    "student": {
        "name": "Level 5 Student",
        "email": _env_email("SEED_STUDENT_EMAIL", "student@gridledger.local"),
        "role": UserRole.student,
    },
}


def _upsert_user(*, name: str, email: str, role: UserRole) -> User:
    with SessionLocal() as session:
        existing = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
        if existing is None:
            existing = User(name=name, email=email, role=role, is_active=True)
            session.add(existing)
        else:
            existing.name = name
            existing.role = role
            existing.is_active = True
        session.commit()
        session.refresh(existing)
        return existing


def main() -> None:
    ensure_runtime_schema_compatibility()
    print("Seeded recipients:")
    for label, item in RECIPIENTS.items():
        user = _upsert_user(name=item["name"], email=item["email"], role=item["role"])
        print(f"  - {label}: {user.email} | role={user.role.value} | id={user.id}")
    print("\nFirst publish notifies committee and scheduler; later publishes notify everyone.")


if __name__ == "__main__":
    main()
