"""
Pytest configuration and fixtures.
"""

from __future__ import annotations

import os
import uuid
from datetime import date

import pytest
from sqlalchemy.orm import Session, sessionmaker

# Never touch a real database from tests; each test gets its own SQLite file below
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["MATCH_DEBOUNCE_SECONDS"] = "0"
os.environ.pop("STORAGE_BASE_URL", None)

from impacttrace.config import get_settings  # noqa: E402
from impacttrace.db.session import Base, build_engine  # noqa: E402
from impacttrace.models import (  # noqa: E402
    KPI,
    Initiative,
    KPIUpdate,
    Location,
    Organization,
)
from impacttrace.storage.file_store import FileStoreError, StoredFile  # noqa: E402


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> None:
    """Settings are cached; tests that patch the environment need a fresh instance."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite engine with the full schema; separate sessions see committed data."""
    eng = build_engine(f"sqlite:///{tmp_path / 'impacttrace_test.db'}")
    Base.metadata.create_all(eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory) -> Session:
    """Database session for service tests, on a fresh database per test."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def organization(db: Session) -> Organization:
    org = Organization(name="Clean Water Trust", storage_used_bytes=10_000)
    db.add(org)
    db.commit()
    return org


@pytest.fixture
def initiative(db: Session, organization: Organization, user_id: uuid.UUID) -> Initiative:
    row = Initiative(organization_id=organization.id, title="Wells 2024", user_id=user_id)
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def make_kpi(db: Session, initiative: Initiative, user_id: uuid.UUID):
    def _make(title: str = "Liters delivered", unit: str | None = "liters") -> KPI:
        kpi = KPI(
            initiative_id=initiative.id,
            title=title,
            unit_of_measurement=unit,
            user_id=user_id,
        )
        db.add(kpi)
        db.commit()
        return kpi

    return _make


@pytest.fixture
def kpi(make_kpi) -> KPI:
    return make_kpi()


@pytest.fixture
def make_location(db: Session, initiative: Initiative, user_id: uuid.UUID):
    def _make(name: str = "Village A", latitude: float = -1.28, longitude: float = 36.82) -> Location:
        location = Location(
            initiative_id=initiative.id,
            name=name,
            latitude=latitude,
            longitude=longitude,
            user_id=user_id,
        )
        db.add(location)
        db.commit()
        return location

    return _make


@pytest.fixture
def location(make_location) -> Location:
    return make_location()


@pytest.fixture
def make_claim(db: Session, user_id: uuid.UUID):
    """Insert a claim row directly (no auto-linking)."""

    def _make(
        kpi: KPI,
        value: float = 100.0,
        day: date | None = None,
        start: date | None = None,
        end: date | None = None,
        location: Location | None = None,
    ) -> KPIUpdate:
        claim = KPIUpdate(
            kpi_id=kpi.id,
            value=value,
            date_represented=start or day,
            date_range_start=start,
            date_range_end=end,
            location_id=location.id if location else None,
            user_id=user_id,
        )
        db.add(claim)
        db.commit()
        return claim

    return _make


class FakeFileStore:
    """In-memory FileStore; URLs listed in fail_on raise FileStoreError on delete."""

    def __init__(self, fail_on: set[str] | None = None) -> None:
        self.uploaded: list[tuple[str, int, str]] = []
        self.deleted: list[str] = []
        self.fail_on = fail_on or set()

    async def upload(self, name: str, content: bytes, content_type: str) -> StoredFile:
        url = f"https://files.example.com/storage/v1/object/public/evidence/evidence/{name}"
        self.uploaded.append((name, len(content), content_type))
        return StoredFile(url=url, size=len(content))

    async def delete(self, url: str) -> bool:
        if url in self.fail_on:
            raise FileStoreError(f"store unavailable for {url}")
        self.deleted.append(url)
        return True


@pytest.fixture
def file_store() -> FakeFileStore:
    return FakeFileStore()
