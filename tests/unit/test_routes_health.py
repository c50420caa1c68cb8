"""
Unit tests for api/routes/health.py: liveness and stuck-job health.
"""
from datetime import timedelta

from config.settings import settings
from core.chronicle.models import utcnow


class TestHealthCheck:
    """Test GET /health."""

    def test_health_returns_200(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200

    def test_health_response_fields(self, client):
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["version"] == settings.app_version
        assert isinstance(data["timestamp"], float)

    def test_security_headers(self, client):
        resp = client.get("/health")
        assert resp.headers["X-Content-Type-Options"] == "nosniff"


class TestJobHealth:
    """Test GET /health/jobs."""

    def _create(self, service, stale_minutes=0, attempts=0):
        job = service.create_job(genre="noir", prompt="p")
        for _ in range(attempts):
            service.repository.increment_auto_resume(job.id)
        if stale_minutes:
            service.repository.set_updated_at(job.id, utcnow() - timedelta(minutes=stale_minutes))
        return job

    def test_healthy(self, client, service):
        self._create(service)
        resp = client.get("/health/jobs")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["stuck_jobs"]["total"] == 0
        assert data["config"] == {"stale_timeout_minutes": 5, "max_auto_resume_attempts": 20}

    def test_degraded(self, client, service):
        self._create(service, stale_minutes=8)
        resp = client.get("/health/jobs")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "degraded"
        assert data["stuck_jobs"]["recoverable"] == 1

    def test_critical_returns_503(self, client, service):
        self._create(service, stale_minutes=20)
        resp = client.get("/health/jobs")
        assert resp.status_code == 503
        assert resp.json()["status"] == "critical"

    def test_exhausted_jobs_counted_separately(self, client, service):
        self._create(service, stale_minutes=20, attempts=20)
        data = client.get("/health/jobs").json()
        assert data["status"] == "healthy"
        assert data["stuck_jobs"]["permanently_failed"] == 1

    def test_no_auth_required(self, client, monkeypatch):
        monkeypatch.setattr(settings, "cron_secret", "")
        assert client.get("/health/jobs").status_code == 200
