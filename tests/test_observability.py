from src.core import observability
from src.core.config import get_settings


def _capture_init(monkeypatch):
    calls = []
    monkeypatch.setattr(observability, "FastApiIntegration", lambda: "fastapi-integration")
    monkeypatch.setattr(observability, "_call_sentry_init", lambda **kwargs: calls.append(kwargs))
    return calls


def test_sentry_stays_off_without_dsn(monkeypatch) -> None:
    calls = _capture_init(monkeypatch)

    assert observability.init_sentry() is False
    assert calls == []


def test_sentry_initializes_once_with_release_tag(monkeypatch) -> None:
    monkeypatch.setenv("SENTRY_DSN", "https://abc@example.ingest.sentry.io/1")
    monkeypatch.setenv("SENTRY_TRACES_SAMPLE_RATE", "0.25")
    get_settings.cache_clear()
    calls = _capture_init(monkeypatch)

    assert observability.init_sentry() is True
    assert observability.init_sentry() is True

    assert len(calls) == 1
    assert calls[0]["dsn"] == "https://abc@example.ingest.sentry.io/1"
    assert calls[0]["environment"] == "development"
    assert calls[0]["release"] == "content_queue@0.1.0"
    assert calls[0]["traces_sample_rate"] == 0.25
    assert calls[0]["send_default_pii"] is False
    assert calls[0]["integrations"] == ["fastapi-integration"]


def test_capture_exception_forwards_only_after_init(monkeypatch) -> None:
    captured = []
    monkeypatch.setattr(observability.sentry_sdk, "capture_exception", captured.append)
    error = RuntimeError("phase crashed")

    observability.capture_exception(error)
    assert captured == []

    monkeypatch.setenv("SENTRY_DSN", "https://abc@example.ingest.sentry.io/1")
    get_settings.cache_clear()
    _capture_init(monkeypatch)
    observability.init_sentry()
    observability.capture_exception(error)

    assert captured == [error]


def test_sentry_scope_tags_org_and_request() -> None:
    with observability.sentry_scope(org_id="org-1", request_id="req-1"):
        scope = observability.sentry_sdk.get_current_scope()
        assert scope._tags["org_id"] == "org-1"
        assert scope._tags["request_id"] == "req-1"
