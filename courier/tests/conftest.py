"""
Centralized Test Configuration.

Each test gets its own SQLite file database. A file (not :memory:) with one
connection per session lets concurrent tests run real competing transactions.

Fixture rows are written through their own sessions and handed out detached,
so a rollback in the session under test never expires them.
"""

import pytest
from datetime import date, timedelta
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool, Pool

from courier.app.main import app
from courier.app.db.session import get_db, Base
from courier.app.domain.assignment.assignment_service import AssignmentService
from courier.app.domain.lifecycle.controller import ParcelLifecycleController
from courier.app.models.enums import UserRole
from courier.app.models.parcel import Parcel
from courier.app.models.parcel_enums import ParcelStatus
from courier.app.models.user import User


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@pytest.fixture
async def engine(tmp_path):
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'courier_test.db'}",
        poolclass=NullPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Factory for independent sessions, one per simulated caller."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    """Async client for testing, wired to the per-test database."""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides = {}


@pytest.fixture
def make_user(session_factory):
    """Create a user with the given role."""
    async def _make_user(username: str, role: UserRole = UserRole.CUSTOMER, **fields) -> User:
        user = User(
            email=fields.pop("email", f"{username}@courier.test"),
            username=username,
            role=role,
            **fields
        )
        async with session_factory() as session:
            session.add(user)
            await session.commit()
            await session.refresh(user)
        return user

    return _make_user


@pytest.fixture
async def admin(make_user):
    return await make_user("admin", UserRole.ADMIN)


@pytest.fixture
async def customer(make_user):
    return await make_user("customer", UserRole.CUSTOMER, full_name="Asha Customer", phone="+91-555-0100")


@pytest.fixture
async def agent(make_user):
    return await make_user("agent1", UserRole.DELIVERY_AGENT, full_name="Ravi Agent")


@pytest.fixture
async def second_agent(make_user):
    return await make_user("agent2", UserRole.DELIVERY_AGENT, full_name="Meera Agent")


@pytest.fixture
def make_parcel(session_factory, customer):
    """Create a parcel for the customer directly in the store."""
    async def _make_parcel(status: ParcelStatus = ParcelStatus.PENDING, **fields) -> Parcel:
        parcel = Parcel(
            sender_id=customer.id,
            sender_name=customer.full_name,
            sender_email=customer.email,
            receiver_name="Kiran Receiver",
            delivery_address="12 MG Road, Pune",
            weight_kg=2.5,
            cost=150.0,
            requested_delivery_date=date.today() + timedelta(days=3),
            status=status,
            **fields
        )
        async with session_factory() as session:
            session.add(parcel)
            await session.commit()
            await session.refresh(parcel)
        return parcel

    return _make_parcel


@pytest.fixture
async def parcel(make_parcel):
    return await make_parcel()


@pytest.fixture
def delivery_date():
    return date.today() + timedelta(days=2)


@pytest.fixture
def deliver(session_factory, make_parcel, delivery_date):
    """Book, assign and deliver a parcel through the services."""
    async def _deliver(agent) -> Parcel:
        parcel = await make_parcel()
        async with session_factory() as session:
            await AssignmentService.assign_parcel(session, parcel.id, agent.id, delivery_date)
            return await ParcelLifecycleController.request_transition(session, parcel.id, ParcelStatus.DELIVERED)

    return _deliver
