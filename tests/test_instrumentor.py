import instrumentor


def test_tracing_is_skipped_without_api_key(monkeypatch):
    monkeypatch.setattr(instrumentor, "PHOENIX_API_KEY", None)
    monkeypatch.setattr(instrumentor, "register", lambda **kwargs: unexpected_register())
    assert instrumentor.set_hosted_phoenix_instrumentation() is False


def test_tracing_registers_project(monkeypatch):
    calls = []
    monkeypatch.setattr(instrumentor, "PHOENIX_API_KEY", "secret")
    monkeypatch.setattr(instrumentor, "register", lambda **kwargs: calls.append(kwargs))
    monkeypatch.setenv("OTEL_EXPORTER_OTLP_HEADERS", "")
    monkeypatch.setenv("PHOENIX_CLIENT_HEADERS", "")
    monkeypatch.setenv("PHOENIX_COLLECTOR_ENDPOINT", "http://localhost:6006")

    assert instrumentor.set_hosted_phoenix_instrumentation() is True
    assert calls[0]["project_name"] == instrumentor.PHOENIX_PROJECT
    assert calls[0]["auto_instrument"] is True


def unexpected_register():
    raise AssertionError("register should not be called")
