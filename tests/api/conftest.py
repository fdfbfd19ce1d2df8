"""Pytest fixtures for API tests.

Provides a test client whose database dependency is bound to the shared
in-memory session, plus sample jobs in each lifecycle state.
"""

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from willregistry.api.main import app
from willregistry.db.connection import close_db, get_db
from willregistry.db.models import UploadJob
from willregistry.services.job_service import JobService


@pytest.fixture
def client(db_session: Session, tmp_path, monkeypatch) -> Generator[TestClient, None, None]:
    """Create a TestClient with overridden database dependency.

    The lifespan still runs, so it is pointed at a throwaway SQLite file.
    """
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("WILLREG_CONFIG_PATH", raising=False)
    monkeypatch.setenv("WILLREG_DB_PATH", str(tmp_path / "api.db"))

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    close_db()


@pytest.fixture
def job_service(db_session: Session) -> JobService:
    return JobService(db_session)


@pytest.fixture
def sample_job(job_service: JobService, record_factory) -> UploadJob:
    """A queued job holding 250 records."""
    return job_service.create_job(
        file_name="wills.csv",
        firm_id="FIRM-1",
        firm_name="Smith & Co",
        user_id="jane@smith.example",
        user_name="Jane Smith",
        data=[record_factory(i) for i in range(250)],
    )


@pytest.fixture
def completed_job(job_service: JobService, record_factory) -> UploadJob:
    """A finished job with one failed record."""
    job = job_service.create_job(
        file_name="march.csv",
        firm_id="FIRM-1",
        firm_name="Smith & Co",
        user_id="jane@smith.example",
        user_name="Jane Smith",
        data=[record_factory(i) for i in range(3)],
    )
    job_service.start_job(job.id)
    job_service.record_progress(job.id, 1, 2, 1)
    return job_service.complete_job(
        job.id, 2, 1, [{"row": 1, "reason": "Duplicate will", "data": record_factory(1)}]
    )
