"""Root-level pytest fixtures for all tests.

Provides shared fixtures:
- Database fixtures (in-memory SQLite session)
- CSV test data generators
- Record payload builders
"""

from collections.abc import Callable, Generator
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from willregistry.db.models import Base

TEMPLATE_HEADER = "testatorName,dob,address,postcode,willLocation,solicitorName,willDate,executorName"


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    """Create an in-memory SQLite database session.

    StaticPool keeps the single in-memory connection alive so the same
    database is shared by every session bound to the engine.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


# ============================================================================
# Test Data Fixtures
# ============================================================================


def make_record(index: int = 0, **overrides: str) -> dict[str, str]:
    """Build a valid field-keyed will record."""
    record = {
        "testatorName": f"Testator Number{index}",
        "dob": "15/03/1945",
        "address": f"{index} High Street London",
        "postcode": "SW1A 1AA",
        "willLocation": "With Solicitor",
        "solicitorName": "Sarah Johnson",
        "willDate": "10/06/2020",
        "executorName": "Jane Doe",
    }
    record.update(overrides)
    return record


@pytest.fixture
def record_factory() -> Callable[..., dict[str, str]]:
    return make_record


@pytest.fixture
def template_csv_text() -> str:
    """The three-row upload template as CSV text."""
    return (
        f"{TEMPLATE_HEADER}\n"
        "John Doe,15/03/1945,123 High Street London,SW1A 1AA,With Solicitor,Sarah Johnson,10/06/2020,Jane Doe\n"
        "Jane Smith,22/08/1952,45 Park Lane Manchester,M1 4BT,At Home,David Brown,05/11/2021,\n"
        "Robert Brown,10/12/1938,78 Oak Avenue Birmingham,B1 1BB,Bank,Emma Wilson,15/03/2019,Mary Brown\n"
    )


@pytest.fixture
def write_csv(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write CSV text to a temp file and return its path."""

    def _write(text: str, name: str = "wills.csv") -> Path:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write
