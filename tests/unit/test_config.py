from __future__ import annotations

import pytest

from batch_ingestor.config import Settings, build_dsn, get_settings


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_settings_read_environment_aliases(monkeypatch) -> None:
    monkeypatch.setenv("DB_HOST", "db.internal")
    monkeypatch.setenv("INGEST_BATCH_SIZE", "250")
    monkeypatch.setenv("INGEST_PARALLELISM", "6")
    monkeypatch.setenv("RETRY_MAX_RETRIES", "5")
    monkeypatch.setenv("LOG_JSON", "true")

    settings = get_settings()

    assert settings.db_host == "db.internal"
    assert settings.ingest_batch_size == 250
    assert settings.ingest_parallelism == 6
    assert settings.retry_max_retries == 5
    assert settings.log_json is True
    assert get_settings() is settings


def test_build_dsn_composes_postgres_url() -> None:
    settings = Settings(
        db_host="h", db_port=6543, db_user="u", db_password="p", db_name="n"
    )

    assert build_dsn(settings) == "postgresql://u:p@h:6543/n"


def test_ingest_options_follow_settings_and_overrides() -> None:
    settings = Settings(ingest_batch_size=500, ingest_parallelism=3, retry_max_retries=2)

    options = settings.ingest_options(parallelism=8, batch_size=None)

    assert options.batch_size == 500
    assert options.parallelism == 8
    assert options.retry_policy is not None
    assert options.retry_policy.max_retries == 2


def test_zero_retries_disables_retry_policy() -> None:
    settings = Settings(retry_max_retries=0)

    assert settings.retry_policy() is None
    assert settings.ingest_options().retry_policy is None


def test_invalid_settings_surface_as_validation_errors() -> None:
    settings = Settings(ingest_batch_size=0)

    with pytest.raises(ValueError):
        settings.ingest_options()


def test_dialect_is_not_a_setting(monkeypatch) -> None:
    monkeypatch.setenv("DB_DIALECT", "sqlserver")

    assert "db_dialect" not in Settings.model_fields
    assert not hasattr(Settings(), "db_dialect")
