# tests/conftest.py
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from pulse_core.analysis import AnalysisEngine, LexiconAnalyzer
from pulse_core.config.settings import Settings
from pulse_core.db import create_tables
from pulse_core.graph import RateLimiterRegistry
from pulse_core.queue import JobStore
from pulse_core.services import connect_page
from pulse_core.vault import CredentialVault, hash_token
from pulse_worker.context import HandlerContext

from tests.fakes import FakeClock, FakeGraph, FakeGraphClient


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh SQLite database per test (file-backed so concurrent sessions get their own connection)."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'pulse.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def store(session_factory, clock):
    return JobStore(session_factory, clock=clock)


@pytest.fixture
def vault():
    return CredentialVault(bytes(range(32)))


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        db_url="sqlite://",
        encryption_key="",
        openai_api_key="",
        graph_app_id="app-id",
        graph_app_secret="app-secret",
    )


@pytest.fixture
def graph():
    return FakeGraph()


@pytest.fixture
def ctx(session_factory, store, vault, graph, clock, settings):
    limiters = RateLimiterRegistry(clock=clock)

    def client_factory(token: str) -> FakeGraphClient:
        return FakeGraphClient(graph, token, clock=clock, limiter=limiters.get(hash_token(token)))

    return HandlerContext(
        session_factory=session_factory,
        store=store,
        vault=vault,
        client_factory=client_factory,
        analysis=AnalysisEngine([LexiconAnalyzer()]),
        settings=settings,
        clock=clock,
    )


@pytest.fixture
def add_page(session_factory, vault):
    """Connect a page and return its id."""

    async def _add_page(
        external_id: str = "page-1",
        token: str = "page-token",
        platform: str = "FACEBOOK",
        owner_user_id: str = "user-1",
        name: str = "Test Page",
    ) -> str:
        async with session_factory() as session:
            page_id = await connect_page(
                session,
                vault,
                owner_user_id=owner_user_id,
                platform=platform,
                external_id=external_id,
                name=name,
                access_token=token,
            )
            await session.commit()
        return page_id

    return _add_page
