import importlib

import pytest


@pytest.fixture(autouse=True)
def restore_vars():
    yield
    import tunnel_relay.vars as vars_module

    importlib.reload(vars_module)


def test_relay_add_headers_parsing(monkeypatch):
    monkeypatch.setenv(
        "RELAY_ADD_HEADERS", "x-relay-origin=azure, x-env = dev,broken,=nothing"
    )
    import tunnel_relay.vars as vars_module

    importlib.reload(vars_module)

    assert vars_module.RELAY_ADD_HEADERS == [
        ("x-relay-origin", "azure"),
        ("x-env", "dev"),
    ]


def test_relay_remove_headers_parsing(monkeypatch):
    monkeypatch.setenv("RELAY_REMOVE_HEADERS", "cookie, authorization,,")
    import tunnel_relay.vars as vars_module

    importlib.reload(vars_module)

    assert vars_module.RELAY_REMOVE_HEADERS == ["cookie", "authorization"]


def test_backend_timeout_defaults_to_none(monkeypatch):
    monkeypatch.delenv("BACKEND_TIMEOUT", raising=False)
    import tunnel_relay.vars as vars_module

    importlib.reload(vars_module)

    assert vars_module.BACKEND_TIMEOUT_SECONDS is None


def test_backend_timeout_parsed_as_seconds(monkeypatch):
    monkeypatch.setenv("BACKEND_TIMEOUT", "12.5")
    import tunnel_relay.vars as vars_module

    importlib.reload(vars_module)

    assert vars_module.BACKEND_TIMEOUT_SECONDS == 12.5


def test_history_path_trailing_slash_removed(monkeypatch):
    monkeypatch.setenv("RELAY_HISTORY_PATH", "/_history/")
    import tunnel_relay.vars as vars_module

    importlib.reload(vars_module)

    assert vars_module.RELAY_HISTORY_PATH == "/_history"


def test_history_path_gets_leading_slash(monkeypatch):
    monkeypatch.setenv("RELAY_HISTORY_PATH", "history")
    import tunnel_relay.vars as vars_module

    importlib.reload(vars_module)

    assert vars_module.RELAY_HISTORY_PATH == "/history"


def test_empty_history_path_disables_history(monkeypatch):
    monkeypatch.setenv("RELAY_HISTORY_PATH", "")
    import tunnel_relay.vars as vars_module

    importlib.reload(vars_module)

    assert vars_module.RELAY_HISTORY_PATH == ""


def test_metrics_served_under_history_prefix(monkeypatch):
    monkeypatch.setenv("RELAY_HISTORY_PATH", "/_history/")
    import tunnel_relay.vars as vars_module

    importlib.reload(vars_module)

    assert vars_module.METRICS_PATH == "/_history/metrics"


def test_metrics_at_root_when_history_disabled(monkeypatch):
    monkeypatch.setenv("RELAY_HISTORY_PATH", "")
    import tunnel_relay.vars as vars_module

    importlib.reload(vars_module)

    assert vars_module.METRICS_PATH == "/metrics"
