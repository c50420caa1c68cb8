"""
Unit tests for config/settings.py.
"""
from config.settings import Settings
from core.chronicle.config import GenerationMode


class TestSettings:

    def test_engine_config_from_settings(self, tmp_path):
        settings = Settings(database_dir=tmp_path, stale_timeout_minutes=7, daily_job_limit=2,
                            default_mode=GenerationMode.DRAFT)
        config = settings.to_engine_config()
        assert config.stale_timeout_minutes == 7
        assert config.daily_job_limit == 2
        assert config.default_mode == GenerationMode.DRAFT

    def test_engine_config_overrides(self, tmp_path):
        config = Settings(database_dir=tmp_path).to_engine_config(max_jobs_per_run=1)
        assert config.max_jobs_per_run == 1
        assert config.max_auto_resume_attempts == 20

    def test_db_path(self, tmp_path):
        settings = Settings(database_dir=tmp_path / "db", chronicle_db_name="c.db")
        assert settings.chronicle_db_path == str(tmp_path / "db" / "c.db")
        assert (tmp_path / "db").is_dir()

    def test_cors_origins(self, tmp_path):
        settings = Settings(database_dir=tmp_path, cors_origins="https://a.example, https://b.example,")
        assert settings.get_cors_origins() == ["https://a.example", "https://b.example"]

    def test_cors_defaults(self, tmp_path):
        assert "http://localhost:3000" in Settings(database_dir=tmp_path, cors_origins="").get_cors_origins()
