import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from boosterbattle.db.database import get_session
from boosterbattle.db.operations import card_to_model, insert_card
from boosterbattle.main import app
from boosterbattle.models.card import Card, CardType, GeneratedCard, Rarity
from boosterbattle.models.db import Base
from boosterbattle.services.notifications import reset_event_broker
from boosterbattle.services.rate_limits import reset_pack_rate_limiter


@pytest.fixture(autouse=True)
def reset_singletons():
    """Give every test a fresh limiter and event broker."""
    reset_pack_rate_limiter()
    reset_event_broker()
    yield
    reset_pack_rate_limiter()
    reset_event_broker()


@pytest.fixture
async def async_engine():
    """Create an in-memory SQLite engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def session(async_engine) -> AsyncSession:
    """Provide a database session for tests."""
    async_session = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)
    async with async_session() as session:
        yield session


@pytest.fixture
async def client(async_engine):
    """Provide an async test client with overridden database session."""
    async_session = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_session():
        async with async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def make_card(async_engine):
    """Insert a card directly, bypassing packs."""
    async_session = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)

    async def _make(
        owner_id: str,
        attributes: dict[str, int] | None = None,
        card_name: str = "Space Marine",
        card_type: CardType = CardType.HUMANOID,
    ) -> Card:
        generated = GeneratedCard(
            card_type=card_type,
            card_name=card_name,
            attributes=attributes or {"str": 30, "dex": 20, "int": 20},
            rarity=Rarity.SILVER,
            primary_attribute="str",
        )
        async with async_session() as s:
            card = await insert_card(s, owner_id, generated)
            model = card_to_model(card)
            await s.commit()
        return model

    return _make
