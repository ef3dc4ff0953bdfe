import pytest

from src.core.config import get_settings


def _set_minimum_production_env(monkeypatch) -> None:
    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("SECRET_KEY", "prod-secret-key-with-enough-length-123")
    monkeypatch.setenv("DATABASE_URL", "postgresql+psycopg2://app:password@db:5432/content_queue")
    monkeypatch.setenv("APP_PUBLIC_BASE_URL", "https://content.example.com")
    monkeypatch.setenv("CONTENT_GENERATION_PROVIDER", "http")
    monkeypatch.setenv("CONTENT_GENERATION_URL", "https://generator.internal")


def test_requires_secret_key_in_production(monkeypatch) -> None:
    _set_minimum_production_env(monkeypatch)
    monkeypatch.setenv("SECRET_KEY", "")
    get_settings.cache_clear()

    with pytest.raises(ValueError, match="SECRET_KEY"):
        get_settings()

    get_settings.cache_clear()


def test_loads_environment_values(monkeypatch) -> None:
    monkeypatch.setenv("ENV", "development")
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///./data/test_queue.sqlite")
    monkeypatch.setenv("QUEUE_DEFAULT_PRIORITY", "3")
    monkeypatch.setenv("PROGRESS_STREAM_POLL_SECONDS", "0.5")
    get_settings.cache_clear()

    settings = get_settings()
    assert settings.env == "development"
    assert settings.secret_key == "test-secret"
    assert settings.database_url.endswith("test_queue.sqlite")
    assert settings.queue_default_priority == 3
    assert settings.progress_stream_poll_seconds == 0.5

    get_settings.cache_clear()


def test_production_settings_accept_complete_configuration(monkeypatch) -> None:
    _set_minimum_production_env(monkeypatch)
    get_settings.cache_clear()

    settings = get_settings()
    assert settings.env == "production"
    assert settings.content_generation_provider == "http"

    get_settings.cache_clear()


def test_production_requires_generation_url_for_http_provider(monkeypatch) -> None:
    _set_minimum_production_env(monkeypatch)
    monkeypatch.setenv("CONTENT_GENERATION_URL", "")
    get_settings.cache_clear()

    with pytest.raises(ValueError, match="CONTENT_GENERATION_URL"):
        get_settings()

    get_settings.cache_clear()


def test_rejects_mock_generator_in_production(monkeypatch) -> None:
    _set_minimum_production_env(monkeypatch)
    monkeypatch.setenv("CONTENT_GENERATION_PROVIDER", "mock")
    get_settings.cache_clear()

    with pytest.raises(ValueError, match="must not be mock in production"):
        get_settings()

    get_settings.cache_clear()


def test_rejects_invalid_observability_limits(monkeypatch) -> None:
    monkeypatch.setenv("ENV", "development")
    monkeypatch.setenv("SENTRY_TRACES_SAMPLE_RATE", "1.2")
    get_settings.cache_clear()

    with pytest.raises(ValueError, match="SENTRY_TRACES_SAMPLE_RATE"):
        get_settings()

    monkeypatch.setenv("SENTRY_TRACES_SAMPLE_RATE", "0.1")
    monkeypatch.setenv("LOG_FORMAT", "xml")
    get_settings.cache_clear()

    with pytest.raises(ValueError, match="LOG_FORMAT"):
        get_settings()

    get_settings.cache_clear()


def test_rejects_invalid_queue_and_stream_limits(monkeypatch) -> None:
    monkeypatch.setenv("ENV", "development")
    monkeypatch.setenv("QUEUE_DEFAULT_PRIORITY", "11")
    get_settings.cache_clear()

    with pytest.raises(ValueError, match="QUEUE_DEFAULT_PRIORITY"):
        get_settings()

    monkeypatch.setenv("QUEUE_DEFAULT_PRIORITY", "5")
    monkeypatch.setenv("QUEUE_LIST_DEFAULT_LIMIT", "500")
    get_settings.cache_clear()

    with pytest.raises(ValueError, match="QUEUE_LIST_DEFAULT_LIMIT"):
        get_settings()

    monkeypatch.setenv("QUEUE_LIST_DEFAULT_LIMIT", "50")
    monkeypatch.setenv("PROGRESS_SUBSCRIBER_BUFFER_SIZE", "0")
    get_settings.cache_clear()

    with pytest.raises(ValueError, match="PROGRESS_SUBSCRIBER_BUFFER_SIZE"):
        get_settings()

    monkeypatch.setenv("PROGRESS_SUBSCRIBER_BUFFER_SIZE", "100")
    monkeypatch.setenv("IMAGE_PROVIDER", "dalle")
    get_settings.cache_clear()

    with pytest.raises(ValueError, match="IMAGE_PROVIDER"):
        get_settings()

    get_settings.cache_clear()
