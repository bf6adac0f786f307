import os

# Must be set before ecostore.shared.utils builds its Settings
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker

from ecostore.main import app
from ecostore.auth.models import User
from ecostore.auth.routes import issue_token
from ecostore.orders.models import CartItem
from ecostore.products.models import Product
from ecostore.shared.database import Base, get_engine, get_session


@pytest.fixture
async def db_engine(tmp_path):
    # A file database gives every session its own connection and real transactions
    engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'ecostore-test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest.fixture
async def client(session_factory):
    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def create_user(session_factory):
    counter = {"n": 0}

    async def _create(name=None, role="user", green_points=0, email=None):
        counter["n"] += 1
        n = counter["n"]
        async with session_factory() as session:
            user = User(
                email=email or f"user{n}@example.com",
                password_hash="not-a-real-hash",
                name=name or f"User {n}",
                role=role,
                green_points=green_points,
                total_co2_saved=0.0,
                total_plastic_saved=0.0,
            )
            session.add(user)
            await session.commit()
            return user

    return _create


@pytest.fixture
def create_product(session_factory):
    async def _create(name="Bamboo Toothbrush", price="4.50", stock=10, category="bathroom",
                      is_eco_friendly=False, carbon_footprint=0.0, plastic_content=0.0):
        async with session_factory() as session:
            product = Product(
                name=name,
                description=f"{name} description",
                price=Decimal(price),
                stock=stock,
                category=category,
                is_eco_friendly=is_eco_friendly,
                carbon_footprint=carbon_footprint,
                plastic_content=plastic_content,
            )
            session.add(product)
            await session.commit()
            return product

    return _create


@pytest.fixture
def add_line(session_factory):
    async def _add(user, product, quantity):
        async with session_factory() as session:
            line = CartItem(user_id=user.id, product_id=product.id, quantity=quantity)
            session.add(line)
            await session.commit()
            return line

    return _add


@pytest.fixture
def fetch(session_factory):
    """Re-read a row in a fresh session."""
    async def _fetch(model, pk):
        async with session_factory() as session:
            return await session.get(model, pk)

    return _fetch


def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {issue_token(user)}"}


@pytest.fixture
def headers_for():
    return auth_headers
