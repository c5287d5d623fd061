"""Pytest configuration and fixtures."""

import os
from collections.abc import AsyncGenerator, Generator

# Configure the app for tests before it reads settings
os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RISK_SCAN_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import StaticPool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.api.deps import get_risk_service
from app.db.base import Base
from app.main import app
from app.rules.engine import AlertEvaluator
from app.rules.loader import load_seed_rules
from app.rules.models import RuleConfig
from app.services.audit import RuleAuditLog
from app.services.dedup import NotificationDedupTracker
from app.services.persistence import InMemoryAuditPersistence, InMemoryRulePersistence
from app.services.risk_alerts import RiskAlertService
from app.services.rule_store import RuleStore
from tests.factories import (
    TZ,
    RecordingDispatcher,
    StaticSnapshotProvider,
    fixed_clock,
)

# Use SQLite for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def seed_ruleset() -> tuple[list[RuleConfig], str]:
    """Seed rules shipped with the application, with the file hash."""
    return load_seed_rules("risk-rules.yaml")


@pytest.fixture
def seed_rules(seed_ruleset: tuple[list[RuleConfig], str]) -> list[RuleConfig]:
    return seed_ruleset[0]


@pytest.fixture
def evaluator() -> AlertEvaluator:
    return AlertEvaluator(tz=TZ)


@pytest.fixture
def audit_persistence() -> InMemoryAuditPersistence:
    return InMemoryAuditPersistence()


@pytest.fixture
async def rule_store(
    seed_ruleset: tuple[list[RuleConfig], str],
    audit_persistence: InMemoryAuditPersistence,
) -> RuleStore:
    """Rule store loaded from the seed rules, backed by memory."""
    store = RuleStore(
        persistence=InMemoryRulePersistence(),
        audit_log=RuleAuditLog(audit_persistence),
        seed_rules=seed_ruleset[0],
        ruleset_hash=seed_ruleset[1],
        clock=fixed_clock,
    )
    await store.load()
    return store


@pytest.fixture
def snapshot_provider() -> StaticSnapshotProvider:
    return StaticSnapshotProvider()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
async def risk_service(
    rule_store: RuleStore,
    snapshot_provider: StaticSnapshotProvider,
    dispatcher: RecordingDispatcher,
    evaluator: AlertEvaluator,
) -> RiskAlertService:
    """Risk alert service wired to in-memory fakes."""
    dedup = NotificationDedupTracker(clock=fixed_clock)
    rule_store.subscribe(dedup.on_rule_changed)
    return RiskAlertService(
        rule_store=rule_store,
        dedup=dedup,
        snapshot_provider=snapshot_provider,
        dispatcher=dispatcher,
        evaluator=evaluator,
        snapshot_timeout=0.5,
        dispatch_timeout=0.5,
        clock=fixed_clock,
    )


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test database."""
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture(scope="function")
async def async_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture(scope="function")
def client(risk_service: RiskAlertService) -> Generator[TestClient, None, None]:
    """Create FastAPI test client with the in-memory risk service.

    The client is not entered as a context manager, so the lifespan
    handler (database and Feishu wiring) does not run.
    """
    app.dependency_overrides[get_risk_service] = lambda: risk_service
    app.state.risk_service = risk_service

    test_client = TestClient(app)
    yield test_client

    app.dependency_overrides.clear()
    app.state.risk_service = None
