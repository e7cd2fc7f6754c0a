"""
Test Configuration and Fixtures

Uses an in-memory SQLite database by default. Set TEST_DATABASE_URL to run
the integration tests against another database (e.g. PostgreSQL).
"""

import pytest
import os
from datetime import datetime
from unittest.mock import MagicMock, patch
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from crowdsec_dashboard.config import Settings
from crowdsec_dashboard.database import Base, create_database_engine
from crowdsec_dashboard.schemas.lapi_schemas import (
    AlertEvent,
    AlertSource,
    DecisionStream,
    LapiAlert,
    LapiDecision,
)


TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite://")


@pytest.fixture(scope="session")
def db_engine():
    """Create a test database engine (session-scoped for performance)"""
    import crowdsec_dashboard.models  # noqa: F401  (register models with Base)

    if TEST_DATABASE_URL.startswith("sqlite"):
        # One shared connection so the in-memory database survives across sessions
        from sqlalchemy import create_engine, event

        engine = create_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
    else:
        engine = create_database_engine(TEST_DATABASE_URL)

    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    """Session factory bound to the test engine; tables are emptied after each test"""
    factory = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    yield factory

    with db_engine.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())


@pytest.fixture(scope="function")
def db_session(session_factory):
    """Database session for one test"""
    session = session_factory()
    yield session
    session.close()


def make_decision(
    id: int,
    value: str = "1.2.3.4",
    duration: str = "1h0m0s",
    type: str = "ban",
    origin: str = "crowdsec",
    scenario: str = "crowdsecurity/http-probing",
    until: str = None,
) -> LapiDecision:
    """Build a LAPI decision as returned by the stream endpoint"""
    return LapiDecision(
        id=id,
        origin=origin,
        type=type,
        scope="Ip",
        value=value,
        duration=duration,
        until=until,
        scenario=scenario,
    )


def make_alert(
    id: int,
    decision_ids,
    ip: str = "1.2.3.4",
    scenario: str = "crowdsecurity/http-probing",
    cn: str = None,
    as_number: str = None,
    as_name: str = None,
    latitude: float = None,
    longitude: float = None,
    paths=("/wp-login.php",),
) -> LapiAlert:
    """Build a LAPI alert with HTTP access-log events"""
    events = [
        AlertEvent.model_validate({
            "timestamp": "2026-10-19T10:00:00Z",
            "meta": [
                {"key": "log_type", "value": "http_access-log"},
                {"key": "source_ip", "value": ip},
                {"key": "http_verb", "value": "GET"},
                {"key": "http_path", "value": path},
                {"key": "http_status", "value": "404"},
            ],
        })
        for path in paths
    ]
    return LapiAlert(
        id=id,
        scenario=scenario,
        message=f"Ip {ip} performed '{scenario}'",
        created_at="2026-10-19T10:00:01Z",
        source=AlertSource(
            scope="Ip",
            value=ip,
            ip=ip,
            cn=cn,
            as_number=as_number,
            as_name=as_name,
            latitude=latitude,
            longitude=longitude,
        ),
        events=events,
        decisions=[{"id": decision_id} for decision_id in decision_ids],
    )


@pytest.fixture
def decision_factory():
    return make_decision


@pytest.fixture
def alert_factory():
    return make_alert


@pytest.fixture
def mock_lapi_client():
    """LAPI client returning an empty stream and no alerts"""
    client = MagicMock()
    client.get_decision_stream.return_value = DecisionStream(new=[], deleted=[])
    client.get_alerts.return_value = []
    return client


@pytest.fixture
def scheme_less_lapi_url(monkeypatch):
    """Real settings whose LAPI_URL is missing its scheme"""
    settings = Settings(_env_file=None, lapi_url="crowdsec:8080", lapi_bouncer_api_token="key")
    monkeypatch.setattr("crowdsec_dashboard.lapi._client", None)
    with patch("crowdsec_dashboard.main.settings", settings), \
         patch("crowdsec_dashboard.lapi.get_settings", return_value=settings):
        yield settings


@pytest.fixture
def client(session_factory):
    """API test client using the test database; startup tasks are not run"""
    from fastapi.testclient import TestClient
    from crowdsec_dashboard.database import get_db
    from crowdsec_dashboard.main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
