"""
Pytest configuration and shared fixtures

Every test gets its own in-memory SQLite database with the full schema.
"""
import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from wardbucket.core.database import Base, get_db
from wardbucket.core.monitoring import metrics
from wardbucket.core.security import Principal, Role, create_access_token
from wardbucket.main import app
from wardbucket.services.geo_seed import GeoSeeder
from wardbucket.services.geo_tree import geo_tree_service

import wardbucket.models  # noqa: F401  (registers tables on Base.metadata)


# ==============================================================================
# DATABASE FIXTURES
# ==============================================================================

@pytest.fixture
async def engine():
    """Fresh in-memory database per test."""
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
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def roots(db):
    """The three fixed structure roots (PNG, ABG, MKA)."""
    roots = await GeoSeeder(db).seed_geo_regions()
    await db.commit()
    return roots


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


# ==============================================================================
# PRINCIPALS
# ==============================================================================

@pytest.fixture
def root_principal():
    return Principal(user_id=uuid4(), role=Role.ROOT)


@pytest.fixture
def root_headers():
    token = create_access_token({"sub": str(uuid4()), "role": "ROOT"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_headers():
    token = create_access_token({"sub": str(uuid4()), "role": "USER", "tenant_id": str(uuid4())})
    return {"Authorization": f"Bearer {token}"}


# ==============================================================================
# SAMPLE TREES
# ==============================================================================

@pytest.fixture
async def png_tree(db, roots):
    """
    PNG/Morobe(7)/Lae(701)/Ahi LLG/Ward 1/{Butibam, Yalu}
    PNG/Madang(5)
    """
    morobe = await geo_tree_service.add(db, name="Morobe", code="7", type="province", structure="PNG")
    madang = await geo_tree_service.add(db, name="Madang", code="5", type="province", structure="PNG")
    lae = await geo_tree_service.add(db, name="Lae", code="701", type="district", parent_id=morobe.id)
    ahi = await geo_tree_service.add(db, name="Ahi LLG", code="70101", type="llg", parent_id=lae.id)
    ward = await geo_tree_service.add(db, name="Ward 1", code="1", type="ward", parent_id=ahi.id)
    butibam = await geo_tree_service.add(db, name="Butibam", type="village", parent_id=ward.id, order=0)
    yalu = await geo_tree_service.add(db, name="Yalu", type="village", parent_id=ward.id, order=1)
    await db.commit()
    return {
        "morobe": morobe, "madang": madang, "lae": lae, "ahi": ahi,
        "ward": ward, "butibam": butibam, "yalu": yalu,
    }


@pytest.fixture
async def mka_tree(db, roots):
    """MKA/Motu(1)/Hanuabada(1)/Section 1"""
    motu = await geo_tree_service.add(db, name="Motu", code="1", type="region", structure="MKA")
    hanuabada = await geo_tree_service.add(db, name="Hanuabada", code="1", type="ward", parent_id=motu.id)
    section = await geo_tree_service.add(db, name="Section 1", type="section", parent_id=hanuabada.id)
    await db.commit()
    return {"motu": motu, "hanuabada": hanuabada, "section": section}


# ==============================================================================
# HTTP CLIENT
# ==============================================================================

@pytest.fixture
async def client(session_factory):
    """HTTP client whose requests use the test database."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
