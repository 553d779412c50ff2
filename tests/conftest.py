"""
Shared test fixtures.
Each test gets its own in-memory SQLite database.
"""

import os
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

# Configure test environment BEFORE importing the application
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"
os.environ["EXTRACTION_BACKEND"] = "inline"
os.environ.pop("API_KEY", None)
os.environ.pop("SENTRY_DSN", None)

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from legacy_import.models.database import Base
from legacy_import.models import tables
from legacy_import.models.enums import CategorizationStatus, ClusterStatus, SessionStatus, ValidationStatus
from legacy_import.worker.dispatch import ExtractionDispatcher

NOW = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)


class RecordingDispatcher(ExtractionDispatcher):
    """Dispatcher double that records submissions instead of running them."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.submitted: list[uuid.UUID] = []

    @property
    def backend_name(self) -> str:
        return "recording"

    async def submit(self, session_id: uuid.UUID) -> str:
        if self.fail:
            raise ConnectionError("redis unreachable")
        self.submitted.append(session_id)
        return f"job-{len(self.submitted)}"


class Builder:
    """Inserts rows with sensible defaults and flushes them."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def session(self, **overrides) -> tables.ImportSession:
        values = {
            "firm_id": "firm-1",
            "uploaded_by": "partner-1",
            "file_name": "mailbox.pst",
            "status": SessionStatus.IN_PROGRESS.value,
        }
        values.update(overrides)
        import_session = tables.ImportSession(**values)
        self.db.add(import_session)
        await self.db.flush()
        return import_session

    async def batch(
        self,
        import_session: tables.ImportSession,
        month_year: str,
        assigned_to: Optional[str] = None,
        document_count: int = 10,
        categorized_count: int = 0,
        skipped_count: int = 0,
        updated_at: Optional[datetime] = None,
    ) -> tables.DocumentBatch:
        batch = tables.DocumentBatch(
            session_id=import_session.id,
            month_year=month_year,
            assigned_to=assigned_to,
            document_count=document_count,
            categorized_count=categorized_count,
            skipped_count=skipped_count,
            updated_at=updated_at or NOW,
        )
        self.db.add(batch)
        await self.db.flush()
        return batch

    async def document(
        self,
        import_session: tables.ImportSession,
        batch: Optional[tables.DocumentBatch] = None,
        cluster: Optional[tables.DocumentCluster] = None,
        text: str = "",
        subject: Optional[str] = None,
        email_date: Optional[datetime] = None,
        status: str = CategorizationStatus.UNCATEGORIZED.value,
        validation_status: str = ValidationStatus.PENDING.value,
        file_name: Optional[str] = None,
        note: Optional[str] = None,
    ) -> tables.ExtractedDocument:
        document = tables.ExtractedDocument(
            session_id=import_session.id,
            batch_id=batch.id if batch else None,
            cluster_id=cluster.id if cluster else None,
            file_name=file_name or f"doc-{uuid.uuid4().hex[:8]}.msg",
            extracted_text=text,
            email_subject=subject,
            email_date=email_date,
            status=status,
            validation_status=validation_status,
            reclassification_note=note,
        )
        self.db.add(document)
        await self.db.flush()
        return document

    async def cluster(
        self,
        import_session: tables.ImportSession,
        name: str = "Contracte",
        members: int = 0,
        status: str = ClusterStatus.PENDING.value,
        text: str = "",
    ) -> tables.DocumentCluster:
        """A cluster with `members` member documents and matching counters."""
        cluster = tables.DocumentCluster(
            session_id=import_session.id,
            suggested_name=name,
            document_count=members,
            sample_document_ids=[],
            status=status,
        )
        self.db.add(cluster)
        await self.db.flush()
        samples = []
        for _ in range(members):
            document = await self.document(import_session, cluster=cluster, text=text)
            samples.append(str(document.id))
        cluster.sample_document_ids = samples[:5]
        await self.db.flush()
        return cluster


# =============================================================================
# Database fixtures
# =============================================================================

@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def build(db):
    return Builder(db)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def hours_ago():
    def _ago(hours: float) -> datetime:
        return NOW - timedelta(hours=hours)
    return _ago


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def failing_dispatcher():
    return RecordingDispatcher(fail=True)


# =============================================================================
# API fixtures
# =============================================================================

@pytest.fixture
def partner_headers():
    return {"X-User-Id": "partner-1", "X-User-Role": "Partner"}


@pytest.fixture
def paralegal_headers():
    return {"X-User-Id": "paralegal-1", "X-User-Role": "Paralegal"}


@pytest.fixture
async def client(session_factory, dispatcher):
    """HTTP client over the app, bound to the test database and dispatcher."""
    from legacy_import.dependencies import get_db, get_extraction_dispatcher
    from legacy_import.main import app

    async def _get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_extraction_dispatcher] = lambda: dispatcher

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
