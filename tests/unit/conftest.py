"""
Shared fixtures for API route tests
"""

import pytest
from fastapi.testclient import TestClient

from api.main import app
from api.rate_limiter import limiter
from api.routes.jobs import get_service
from api.services.chronicle_service import ChronicleService
from config.settings import settings
from core.chronicle import ChronicleConfig, MockAIClient


@pytest.fixture
def service(tmp_path):
    """Service on a throwaway database with the deterministic mock client"""
    return ChronicleService(
        ai_client=MockAIClient(),
        db_path=str(tmp_path / "chronicle.db"),
        config=ChronicleConfig(retry_base_delay=0, daily_job_limit=3),
    )


@pytest.fixture
def cron_secret(monkeypatch):
    secret = "test-cron-secret"
    monkeypatch.setattr(settings, "cron_secret", secret)
    return secret


@pytest.fixture
def cron_headers(cron_secret):
    return {"x-cron-secret": cron_secret}


@pytest.fixture
def client(service, cron_secret):
    limiter.reset()
    app.dependency_overrides[get_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()
