from collections.abc import AsyncIterator

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from vendorflow.core.db import get_session
from vendorflow.main import app
from vendorflow.models import user as _user  # noqa: F401
from vendorflow.models import vendor as _vendor  # noqa: F401
from vendorflow.models import wedding as _wedding  # noqa: F401
from vendorflow.models.wedding import Wedding
from vendorflow.services.exchange_rates import ExchangeRateService, get_exchange_rate_service
from vendorflow.services.import_session import import_registry

FIXED_RATE = 1.1


def fixed_rate_service(rate: float = FIXED_RATE) -> ExchangeRateService:
    def handler(request: httpx.Request) -> httpx.Response:
        target = request.url.params["to"]
        return httpx.Response(200, json={"amount": 1.0, "base": request.url.params["from"], "rates": {target: rate}})

    return ExchangeRateService(
        api_url="https://rates.test/latest",
        ttl_seconds=3600,
        transport=httpx.MockTransport(handler),
    )


@pytest.fixture
async def db_session() -> AsyncIterator[AsyncSession]:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    async with session_maker() as session:
        yield session
    await engine.dispose()


@pytest.fixture
async def wedding(db_session: AsyncSession) -> Wedding:
    record = Wedding(
        name="Ana & Luis",
        invite_code="TESTCODE1",
        default_currency="EUR",
        converted_currency="USD",
    )
    db_session.add(record)
    await db_session.commit()
    await db_session.refresh(record)
    return record


@pytest.fixture
async def client() -> AsyncIterator[AsyncClient]:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    async def override_get_session() -> AsyncIterator[AsyncSession]:
        async with session_maker() as session:
            yield session

    rates = fixed_rate_service()
    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_exchange_rate_service] = lambda: rates

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as test_client:
        yield test_client

    app.dependency_overrides.clear()
    import_registry.clear()
    await engine.dispose()

