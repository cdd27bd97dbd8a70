import os
import tempfile

# The app's own engine (startup bootstrap) must never point at a real server in tests.
os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite+pysqlite:///{os.path.join(tempfile.gettempdir(), 'gridledger-test.db')}",
)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import gridledger.models  # noqa: E402,F401
from gridledger.api.deps import get_db  # noqa: E402
from gridledger.db.base import Base  # noqa: E402
from gridledger.main import app  # noqa: E402
from gridledger.services.grid import TIME_SLOTS, WEEKDAYS  # noqa: E402


def build_grid_payload(cells: dict | None = None, *, days=WEEKDAYS) -> dict:
    """Full grid payload with every slot empty except the given ``{(day, slot): label}`` cells."""
    payload = {day: {slot: None for slot in TIME_SLOTS} for day in days}
    for (day, slot), value in (cells or {}).items():
        payload.setdefault(day, {})[slot] = value
    return payload


@pytest.fixture()
def grid_payload():
    return build_grid_payload


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
