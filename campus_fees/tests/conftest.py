"""
Centralized Test Configuration.
"""

import pytest
from datetime import date
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from campus_fees.app.main import app
from campus_fees.app.core.jwt import create_access_token
from campus_fees.app.db.session import get_db, Base, enable_sqlite_savepoints
from campus_fees.app.domain.fees.accounting_service import FeeAccountingService
from campus_fees.app.domain.fees.structure_service import FeeStructureService
from campus_fees.app.models.fee_enums import ActorRole
from campus_fees.app.schemas.common import Actor, StudentRef
from campus_fees.app.schemas.ledger import LedgerCreateOptions
from campus_fees.tests.factories import structure_payload

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture
async def engine():
    """Fresh in-memory database per test."""
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(test_engine.sync_engine, "connect", set_sqlite_pragma)
    enable_sqlite_savepoints(test_engine)

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    """Async client for testing, bound to the test database."""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides = {}


# Identities

@pytest.fixture
def admin_actor():
    return Actor(id=1, name="Fee Admin", role=ActorRole.ADMIN)


@pytest.fixture
def admin_headers():
    token = create_access_token(data={"sub": "feeadmin", "name": "Fee Admin", "user_id": 1, "role": "admin"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def faculty_headers():
    token = create_access_token(data={"sub": "faculty1", "user_id": 2, "role": "faculty"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def student_headers():
    token = create_access_token(data={"sub": "CSE2401", "user_id": 3, "role": "student", "student_id": 1001})
    return {"Authorization": f"Bearer {token}"}


# Domain data

@pytest.fixture
def student():
    return StudentRef(id=1001, name="Aarav Sharma", roll_no="CSE2401", department="CSE", course="BTECH")


@pytest.fixture
def make_structure(db_session, admin_actor):
    """Create a structure and walk it to the requested status."""
    async def _make(status: str = "active", **overrides):
        service = FeeStructureService(db_session)
        structure = await service.create_structure(structure_payload(**overrides), admin_actor)
        if status in ("approved", "active"):
            await service.approve(structure.id, "ok", admin_actor)
        if status == "active":
            await service.activate(structure.id, admin_actor)
        return structure
    return _make


@pytest.fixture
def make_ledger(db_session, admin_actor, make_structure, student):
    """Active structure (approved total 50,000.00) assigned to one student."""
    async def _make(due_date: date = None, concession_amount: int = 0, target=None):
        structure = await make_structure()
        options = LedgerCreateOptions(due_date=due_date, concession_amount=concession_amount)
        return await FeeAccountingService(db_session).create_ledger(
            target or student, structure.id, options, admin_actor
        )
    return _make
