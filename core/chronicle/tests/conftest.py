"""
Pytest Configuration and Fixtures
"""

from datetime import datetime, timezone

import pytest
from unittest.mock import MagicMock

from core.chronicle.agents.base import AgentContext
from core.chronicle.ai_adapter import MockAIClient
from core.chronicle.book_store import BookStore
from core.chronicle.config import ChronicleConfig, GenerationMode
from core.chronicle.models import JobRecord
from core.chronicle.narrative.fingerprint import SceneFingerprint
from core.chronicle.narrative.state import CharacterPatch, StatePatch, apply_state_patch, create_initial_state
from core.chronicle.repository import JobRepository
from core.chronicle.tick import TickDriver


FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def config():
    """Default test configuration"""
    return ChronicleConfig(retry_base_delay=0)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "chronicle.db")


@pytest.fixture
def repository(db_path):
    return JobRepository(db_path)


@pytest.fixture
def book_store(db_path):
    return BookStore(db_path)


@pytest.fixture
def mock_client():
    return MockAIClient()


@pytest.fixture
def driver(repository, book_store, mock_client, config):
    return TickDriver(repository, book_store, mock_client, config)


@pytest.fixture
def context(config):
    """Test context"""
    return AgentContext(
        job_id="job-test",
        config=config,
        progress_callback=MagicMock(),
    )


@pytest.fixture
def narrative():
    return create_initial_state(
        genre="literary thriller",
        target_length_words=8500,
        theme_thesis="Knowledge is paid for",
        protagonist_name="Mara",
    )


@pytest.fixture
def costed_narrative(narrative):
    """Initial state where the protagonist has already paid for something."""
    return apply_state_patch(narrative, StatePatch(
        characters={"Mara": CharacterPatch(cost_added="her alibi")},
    ))


@pytest.fixture
def make_job(repository, book_store):
    """Create a persisted job; returns the JobRecord."""

    def _make_job(mode=GenerationMode.POLISHED, target_pages=30, owner_id=None, now=None):
        book = book_store.create_shell(owner_id, "literary thriller")
        now = now or FIXED_NOW
        job = JobRecord(
            book_id=book.id,
            genre="literary thriller",
            prompt="A lighthouse keeper learns the ships are not arriving anywhere.",
            target_pages=target_pages,
            mode=mode,
            owner_id=owner_id,
            created_at=now,
            updated_at=now,
        )
        repository.create(job)
        return job

    return _make_job


@pytest.fixture
def make_fingerprint():
    """Fingerprint with sensible defaults for editorial tests."""

    def _make_fingerprint(scene_id="a1_c0_s0_x", function="discovery", info="Mara finds the ledger", **kwargs):
        data = dict(
            scene_id=scene_id,
            narrative_function=function,
            new_information=info,
            consequence_introduced="The ledger burns",
            escalation_delta=0.3,
        )
        data.update(kwargs)
        return SceneFingerprint(**data)

    return _make_fingerprint
