"""
Shared fixtures: in-memory database, ASGI client and role injection.
"""

import os
import uuid
from datetime import date

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["MOCK_DELAY_SCALE"] = "0"
os.environ["USE_LIVE_POS"] = "false"
os.environ["USE_LIVE_BLOCKCHAIN"] = "false"

import pytest
from fastapi import HTTPException, status
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from core.auth import current_active_user, get_current_role
from core.config import settings
from core.pos import mock_pos_storage
from core.qr import format_qr_code
from core.rate_limit import rate_limiter
from core.variance import calculate_expected_pints
from db.database import Base, get_async_session
from db.brewery import Brewery, Restaurant
from db.keg import Keg
from db.users import User, UserRole
from main import app

settings.mock_delay_scale = 0


class ActingAs:
    """Caller identity injected in place of JWT auth."""

    def __init__(self):
        self.user = None
        self.role = None

    def use(self, role: UserRole, user: User = None):
        self.role = role
        self.user = user

    def clear(self):
        self.role = None
        self.user = None


@pytest.fixture(autouse=True)
def reset_in_memory_state():
    rate_limiter.reset()
    mock_pos_storage.clear()
    yield
    rate_limiter.reset()
    mock_pos_storage.clear()


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def acting():
    return ActingAs()


@pytest.fixture
async def client(session_maker, acting):
    async def override_session():
        async with session_maker() as session:
            yield session

    async def override_role():
        if acting.role is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized - No role assigned")
        return acting.role

    async def override_user():
        if acting.user is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
        return acting.user

    app.dependency_overrides[get_async_session] = override_session
    app.dependency_overrides[get_current_role] = override_role
    app.dependency_overrides[current_active_user] = override_user

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def make_user(db, email: str = None) -> User:
    user = User(
        email=email or f"{uuid.uuid4().hex[:10]}@example.com",
        hashed_password="not-a-real-hash",
        is_active=True,
        is_superuser=False,
        is_verified=True,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def make_role(db, role: str, brewery_id=None, location_id=None, user: User = None) -> UserRole:
    user = user or await make_user(db)
    m = UserRole(user_id=user.id, role=role, brewery_id=brewery_id, location_id=location_id)
    db.add(m)
    await db.commit()
    await db.refresh(m)
    return m


async def make_keg(db, keg_id: str, brewery_id=None, holder_id=None, **overrides) -> Keg:
    keg_size = overrides.pop("keg_size", "1/2BBL")
    values = dict(
        id=keg_id,
        brewery_id=brewery_id,
        name="Test Keg",
        type="IPA",
        abv=65,
        ibu=45,
        brew_date=date(2024, 1, 15),
        keg_size=keg_size,
        expected_pints=calculate_expected_pints(keg_size),
        qr_code=format_qr_code("0x0000000000000000000000000000000000000000", keg_id),
        current_holder=holder_id,
        is_empty=False,
        pints_sold=0,
        variance=0,
        variance_status="NORMAL",
    )
    values.update(overrides)
    keg = Keg(**values)
    db.add(keg)
    await db.commit()
    await db.refresh(keg)
    return keg


@pytest.fixture
async def brewery(db) -> Brewery:
    m = Brewery(name="Riverbend Brewing")
    db.add(m)
    await db.commit()
    await db.refresh(m)
    return m


@pytest.fixture
async def restaurant(db) -> Restaurant:
    m = Restaurant(name="The Tap House", address="12 Harbor St")
    db.add(m)
    await db.commit()
    await db.refresh(m)
    return m


@pytest.fixture
async def brewer(db, brewery) -> UserRole:
    return await make_role(db, "BREWER", brewery_id=brewery.id)


@pytest.fixture
async def driver(db) -> UserRole:
    return await make_role(db, "DRIVER")


@pytest.fixture
async def manager(db, restaurant) -> UserRole:
    return await make_role(db, "RESTAURANT_MANAGER", location_id=restaurant.id)
