"""Tests for the command line entry points."""

import httpx
from click.testing import CliRunner

from fitness_tracker import cli as cli_module
from fitness_tracker.cli import cli, ping_server


def test_ping_reports_status():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"status": "ok"}))

    with httpx.Client(transport=transport) as client:
        assert ping_server("http://api.test/health", client) == 200


def test_ping_failure_is_not_fatal():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        assert ping_server("http://api.test/health", client) is None


def test_keep_alive_once(monkeypatch):
    pinged = []

    def fake_ping(url, client):
        pinged.append(url)
        return 200

    monkeypatch.setattr(cli_module, "ping_server", fake_ping)

    result = CliRunner().invoke(cli, ["keep-alive", "--once", "--url", "http://api.test/health"])

    assert result.exit_code == 0
    assert pinged == ["http://api.test/health"]


def test_serve_uses_settings(monkeypatch):
    calls = []

    import uvicorn

    monkeypatch.setattr(uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))

    result = CliRunner().invoke(cli, ["serve", "--port", "8123"])

    assert result.exit_code == 0
    app_path, kwargs = calls[0]
    assert app_path == "fitness_tracker.main:app"
    assert kwargs["port"] == 8123
    assert kwargs["reload"] is False
