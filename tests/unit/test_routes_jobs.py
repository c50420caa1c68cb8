"""
Unit tests for api/routes/jobs.py: create, tick, status, cancel, manuscript and the cron endpoints.
"""
from datetime import timedelta

import pytest

from config.settings import settings
from core.chronicle.models import utcnow


def _create(client, **overrides):
    body = {"genre": "literary thriller", "prompt": "Knowledge is paid for", "length": 30}
    body.update(overrides)
    return client.post("/job", json=body)


def _tick_until_done(client, job_id, limit=30):
    steps = []
    for _ in range(limit):
        data = client.post(f"/job/{job_id}/tick").json()
        steps.append(data["step"])
        if data["status"] in ("complete", "failed"):
            break
    return data, steps


class TestCreateJob:
    """Test POST /job."""

    def test_create_returns_201(self, client):
        resp = _create(client)
        assert resp.status_code == 201
        data = resp.json()
        assert data["job_id"]
        assert data["book_id"]
        assert data["status"] == "queued"
        assert data["message"] == "Job created"

    def test_create_persists_mode(self, client, service):
        job_id = _create(client, mode="draft").json()["job_id"]
        assert service.get_job(job_id).mode.value == "draft"

    def test_length_below_minimum(self, client):
        assert _create(client, length=9).status_code == 422

    def test_length_above_maximum(self, client):
        assert _create(client, length=1001).status_code == 422

    def test_missing_prompt(self, client):
        resp = client.post("/job", json={"genre": "noir"})
        assert resp.status_code == 422

    def test_daily_limit(self, client):
        for _ in range(3):
            assert _create(client, owner_id="user-1").status_code == 201
        resp = _create(client, owner_id="user-1")
        assert resp.status_code == 429
        assert resp.json()["detail"] == "Daily limit of 3 books reached"

    def test_daily_limit_is_per_owner(self, client):
        for _ in range(3):
            _create(client, owner_id="user-1")
        assert _create(client, owner_id="user-2").status_code == 201
        assert _create(client).status_code == 201


class TestTickJob:
    """Test POST /job/{job_id}/tick."""

    def test_first_tick(self, client):
        job_id = _create(client).json()["job_id"]
        data = client.post(f"/job/{job_id}/tick").json()
        assert data == {"status": "running", "step": "constitution", "progress": 5, "error": None}

    def test_ticks_to_completion(self, client):
        job_id = _create(client).json()["job_id"]

        data, steps = _tick_until_done(client, job_id)

        assert data["status"] == "complete"
        assert data["progress"] == 100
        assert len(steps) == 18
        assert steps[:3] == ["constitution", "plan", "write_ch0_s0"]
        assert steps[-2:] == ["finalize", "complete"]

    def test_tick_on_finished_job_is_noop(self, client):
        job_id = _create(client).json()["job_id"]
        _tick_until_done(client, job_id)
        data = client.post(f"/job/{job_id}/tick").json()
        assert data["status"] == "complete"
        assert data["step"] == "complete"

    def test_unknown_job(self, client):
        resp = client.post("/job/missing/tick")
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Job not found"


class TestJobStatus:
    """Test GET /job/{job_id}/status."""

    def test_queued(self, client):
        created = _create(client).json()
        data = client.get(f"/job/{created['job_id']}/status").json()
        assert data["job_id"] == created["job_id"]
        assert data["book_id"] == created["book_id"]
        assert data["status"] == "queued"
        assert data["step"] == "created"
        assert data["auto_resume_attempts"] == 0
        assert data["message"] == "Creating story foundation..."

    def test_writing_message(self, client):
        job_id = _create(client).json()["job_id"]
        for _ in range(3):
            client.post(f"/job/{job_id}/tick")
        data = client.get(f"/job/{job_id}/status").json()
        assert data["step"] == "write_ch0_s0"
        assert data["message"] == "Writing chapter 1, section 1..."

    def test_stuck_message(self, client, service):
        job_id = _create(client).json()["job_id"]
        service.repository.set_updated_at(job_id, utcnow() - timedelta(minutes=10))
        data = client.get(f"/job/{job_id}/status").json()
        assert data["message"] == "Generation appears stuck - will auto-resume shortly"

    def test_status_does_not_advance(self, client, service):
        job_id = _create(client).json()["job_id"]
        client.get(f"/job/{job_id}/status")
        assert service.get_job(job_id).step.encode() == "created"

    def test_unknown_job(self, client):
        assert client.get("/job/missing/status").status_code == 404


class TestCancelJob:
    """Test POST /job/{job_id}/cancel."""

    def test_cancel_active_job(self, client):
        job_id = _create(client).json()["job_id"]
        client.post(f"/job/{job_id}/tick")

        data = client.post(f"/job/{job_id}/cancel").json()

        assert data["status"] == "failed"
        assert data["error"] == "Cancelled by user"
        assert data["step"] == "constitution"

    def test_tick_after_cancel_is_skipped(self, client):
        job_id = _create(client).json()["job_id"]
        client.post(f"/job/{job_id}/cancel")

        data = client.post(f"/job/{job_id}/tick").json()

        assert data["status"] == "failed"
        assert data["step"] == "created"

    def test_cancel_completed_job_is_unchanged(self, client):
        job_id = _create(client).json()["job_id"]
        _tick_until_done(client, job_id)
        data = client.post(f"/job/{job_id}/cancel").json()
        assert data["status"] == "complete"
        assert data["error"] is None

    def test_unknown_job(self, client):
        assert client.post("/job/missing/cancel").status_code == 404


class TestManuscript:
    """Test GET /job/{job_id}/manuscript."""

    def test_not_ready(self, client):
        job_id = _create(client).json()["job_id"]
        resp = client.get(f"/job/{job_id}/manuscript")
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Manuscript not ready"

    def test_finished_manuscript(self, client):
        created = _create(client).json()
        _tick_until_done(client, created["job_id"])

        resp = client.get(f"/job/{created['job_id']}/manuscript")

        assert resp.status_code == 200
        data = resp.json()
        assert data["book_id"] == created["book_id"]
        assert data["title"] == "The Cost of Knowing"
        assert data["word_count"] == 8400
        assert data["quality_score"] == 80
        assert data["manuscript"].startswith("# The Cost of Knowing\n\n## Chapter 1")

    def test_unknown_job(self, client):
        assert client.get("/job/missing/manuscript").status_code == 404


class TestCronAuth:
    """Test the shared-secret guard on the watchdog endpoints."""

    @pytest.mark.parametrize("headers", [
        {},
        {"x-cron-secret": "wrong"},
        {"Authorization": "Bearer wrong"},
    ])
    def test_rejected(self, client, headers):
        assert client.post("/job/auto-resume", headers=headers).status_code == 401
        assert client.get("/job/auto-resume", headers=headers).status_code == 401
        assert client.post("/job/cleanup", headers=headers).status_code == 401

    def test_header_secret(self, client, cron_headers):
        assert client.post("/job/auto-resume", headers=cron_headers).status_code == 200

    def test_bearer_secret(self, client, cron_secret):
        resp = client.post("/job/auto-resume", headers={"Authorization": f"Bearer {cron_secret}"})
        assert resp.status_code == 200

    def test_secret_without_bearer_scheme(self, client, cron_secret):
        resp = client.post("/job/auto-resume", headers={"Authorization": cron_secret})
        assert resp.status_code == 401

    def test_bearer_scheme_is_case_insensitive(self, client, cron_secret):
        resp = client.post("/job/auto-resume", headers={"Authorization": f"bearer {cron_secret}"})
        assert resp.status_code == 200

    def test_unset_secret_rejects_everything(self, client, monkeypatch):
        monkeypatch.setattr(settings, "cron_secret", "")
        resp = client.post("/job/auto-resume", headers={"x-cron-secret": ""})
        assert resp.status_code == 401


class TestAutoResume:
    """Test POST and GET /job/auto-resume."""

    def test_nothing_stuck(self, client, cron_headers):
        _create(client)
        data = client.post("/job/auto-resume", headers=cron_headers).json()
        assert data["message"] == "No stuck jobs found"
        assert data["processed"] == 0
        assert data["results"] == []

    def test_resumes_stuck_job(self, client, service, cron_headers):
        job_id = _create(client).json()["job_id"]
        service.repository.set_updated_at(job_id, utcnow() - timedelta(minutes=10))

        data = client.post("/job/auto-resume", headers=cron_headers).json()

        assert data["resumed_count"] == 1
        assert data["results"][0]["job_id"] == job_id
        assert data["results"][0]["step"] == "constitution"
        job = service.get_job(job_id)
        assert job.auto_resume_attempts == 1
        assert job.step.encode() == "constitution"

    def test_fails_exhausted_job(self, client, service, cron_headers):
        job_id = _create(client).json()["job_id"]
        for _ in range(20):
            service.repository.increment_auto_resume(job_id)
        service.repository.set_updated_at(job_id, utcnow() - timedelta(minutes=10))

        data = client.post("/job/auto-resume", headers=cron_headers).json()

        assert data["failed_count"] == 1
        status = client.get(f"/job/{job_id}/status").json()
        assert status["status"] == "failed"
        assert "20 automatic resume attempts" in status["error"]

    def test_list_stuck(self, client, service, cron_headers):
        stuck_id = _create(client).json()["job_id"]
        _create(client)
        service.repository.set_updated_at(stuck_id, utcnow() - timedelta(minutes=8))

        data = client.get("/job/auto-resume", headers=cron_headers).json()

        assert data["count"] == 1
        assert data["stale_timeout_minutes"] == 5
        assert data["max_auto_resume_attempts"] == 20
        assert data["jobs"][0]["id"] == stuck_id
        assert data["jobs"][0]["recoverable"] is True

    def test_listing_does_not_resume(self, client, service, cron_headers):
        job_id = _create(client).json()["job_id"]
        service.repository.set_updated_at(job_id, utcnow() - timedelta(minutes=8))
        client.get("/job/auto-resume", headers=cron_headers)
        assert service.get_job(job_id).auto_resume_attempts == 0


class TestCleanup:
    """Test POST /job/cleanup."""

    def test_cleanup(self, client, service, cron_headers):
        old_id = _create(client).json()["job_id"]
        recent_id = _create(client).json()["job_id"]
        service.repository.set_updated_at(old_id, utcnow() - timedelta(hours=2))

        data = client.post("/job/cleanup", headers=cron_headers).json()

        assert data["cleaned_count"] == 1
        assert data["job_ids"] == [old_id]
        assert data["message"] == "Cleaned up 1 stale job(s)"
        assert service.get_job(recent_id).status.value == "queued"
