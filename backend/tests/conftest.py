from datetime import datetime, timedelta
from pathlib import Path
import sys

import pytest
from fastapi.testclient import TestClient
import httpx
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

sys.path.append(str(Path(__file__).resolve().parents[1]))

from career_quest.api.deps import get_db
from career_quest.core.config import settings
from career_quest.core.database import Base
from career_quest.core.ratelimit import login_lockout, login_rate_limiter, quest_rate_limiter
from career_quest.main import app
from career_quest.models.entities import DiagnosticSession
from career_quest.services import outbound


@pytest.fixture(autouse=True)
def offline_settings(monkeypatch):
    monkeypatch.setattr(settings, "ai_enabled", False)
    monkeypatch.setattr(settings, "ocr_provider", "")
    login_lockout.reset()
    login_rate_limiter.reset()
    quest_rate_limiter.reset()
    yield
    login_lockout.reset()
    login_rate_limiter.reset()
    quest_rate_limiter.reset()


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    db = TestingSession()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture
def client(db_session):
    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)


def build_responses(**profile_overrides) -> dict:
    profile = {
        "declaredRole": "Project manager",
        "realRole": "Coordinator",
        "maturityLevel": "intermediate",
        "strengths": ["organisation"],
        "weaknesses": ["communication"],
        "exclusions": [],
    }
    profile.update(profile_overrides)
    return {
        "service1": {
            "phase5": {
                "aggregatedProfile": profile,
                "finalActions": [
                    {"id": "a1", "title": "Publish a case study", "description": "Write it up", "pressure": "high"},
                    {"id": "", "title": "Dropped", "description": "Missing id"},
                ],
                "skillGap": {
                    "skillName": "Public speaking",
                    "currentLevel": "low",
                    "requiredLevel": "medium",
                    "microActions": ["Record a 2 minute pitch", ""],
                },
            }
        }
    }


@pytest.fixture
def make_diagnostic(db_session):
    counter = {"n": 0}

    def _make(
        *,
        email="amina@example.com",
        full_name="Amina Ben Salah",
        whatsapp="+216 22 123 456",
        subscription_status="active",
        responses=None,
        submitted_at=None,
        unsubmitted=False,
    ) -> DiagnosticSession:
        counter["n"] += 1
        if submitted_at is None and not unsubmitted:
            submitted_at = datetime(2026, 10, 1) + timedelta(minutes=counter["n"])
        session = DiagnosticSession(
            id=f"diag-{counter['n']}",
            participant_email=email,
            participant_full_name=full_name,
            participant_whatsapp=whatsapp,
            subscription_status=subscription_status,
            responses=build_responses() if responses is None else responses,
            submitted_at=submitted_at,
            created_at=datetime(2026, 10, 1) + timedelta(minutes=counter["n"]),
        )
        db_session.add(session)
        db_session.commit()
        return session

    return _make


@pytest.fixture
def logged_in(client, make_diagnostic):
    """Creates an eligible diagnostic, logs in, and returns (login payload, headers)."""
    make_diagnostic()
    response = client.post(
        "/career-quest/login",
        json={"email": "amina@example.com", "whatsapp": "+216 22 123 456", "full_name": "Amina Ben Salah"},
    )
    assert response.status_code == 200, response.text
    data = response.json()
    headers = {
        "X-Career-Quest-Session-Id": data["session_id"],
        "X-Career-Quest-Token": data["session_token"],
    }
    return data, headers


@pytest.fixture
def mock_http(monkeypatch):
    """Routes outbound requests to `handler(request)`; returns the list of seen requests."""
    seen: list[httpx.Request] = []
    real_client = httpx.AsyncClient

    def _install(handler):
        def _record(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return handler(request)

        def _client(**kwargs):
            return real_client(transport=httpx.MockTransport(_record), **kwargs)

        monkeypatch.setattr(outbound.httpx, "AsyncClient", _client)
        return seen

    return _install
