from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Callable

import pytest


_TEST_ROOT = Path(tempfile.mkdtemp(prefix="peakhabit_test_"))
_DB_PATH = _TEST_ROOT / "peakhabit_test.db"

os.environ["PEAKHABIT_DB_URL"] = f"sqlite:///{_DB_PATH}"
os.environ["PEAKHABIT_AUTH_JWT_SECRET"] = "test-secret"
os.environ["PEAKHABIT_DAY_BOUNDARY_UTC_OFFSET_HOURS"] = "-3"
os.environ["PEAKHABIT_SEED_ON_BOOT"] = "false"
os.environ["PEAKHABIT_SCHEDULER_ENABLED"] = "false"


@pytest.fixture(scope="session")
def engine():
    from peakhabit_api import models  # noqa: F401
    from peakhabit_api.core.config import Settings
    from peakhabit_api.db import Base, create_db_engine

    eng = create_db_engine(Settings().db_url)
    Base.metadata.create_all(eng)
    return eng


@pytest.fixture()
def session_factory(engine):
    from peakhabit_api.db import Base, create_session_factory

    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())
    return create_session_factory(engine)


@pytest.fixture()
def session(session_factory):
    with session_factory() as s:
        yield s


@pytest.fixture()
def clock():
    from peakhabit_rules.clock import DayClock

    return DayClock(utc_offset_hours=-3)


@pytest.fixture()
def api_client(session_factory):
    from fastapi.testclient import TestClient

    from peakhabit_api.core.config import Settings
    from peakhabit_api.main import create_app
    from peakhabit_api.metrics import reset_http_metrics

    reset_http_metrics()
    app = create_app(settings=Settings(), session_factory=session_factory)
    with TestClient(app) as client:
        yield client


@pytest.fixture()
def auth_headers() -> Callable[[str], dict[str, str]]:
    from peakhabit_api.core.config import Settings
    from peakhabit_api.core.security import create_access_token

    def _headers(user_id: str) -> dict[str, str]:
        token = create_access_token(subject=user_id, settings=Settings())
        return {"Authorization": f"Bearer {token}"}

    return _headers
