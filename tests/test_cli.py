from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import pytest
import typer
from typer.testing import CliRunner

from broker.events import SubscriptionError
from cli.app import app
from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from datastore.readings_table import ReadingTable
from fakes import ScriptedSource, tds_message
from services.ingestion import IngestionService

SAMPLE_READING: Dict[str, Any] = {"id": 17, "tds_ppm": 412.5, "timestamp": 1_700_000_000}


class StubClient:
    def __init__(self, config, latest: Optional[Dict[str, Any]] = SAMPLE_READING) -> None:
        self.config = config
        self.latest = latest
        self.history: List[Dict[str, Any]] = [
            SAMPLE_READING,
            {"id": 16, "tds_ppm": 401.0, "timestamp": 1_699_999_995},
        ]
        self.history_limits: List[Optional[int]] = []
        self.closed = False

    def get_latest(self) -> Optional[Dict[str, Any]]:
        return self.latest

    def get_history(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        self.history_limits.append(limit)
        return self.history if limit is None else self.history[:limit]

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


def _install_stub(monkeypatch, stub: StubClient) -> None:
    def factory(config):
        stub.config = config
        return stub

    monkeypatch.setattr("cli.app.ApiClient", factory)


def test_latest_command(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["--base-url", "http://bridge.local:8000/", "latest"])

    assert result.exit_code == 0
    assert "Latest Reading" in result.stdout
    assert "tds_ppm: 412.5" in result.stdout
    assert "timestamp: 2023-11-14T22:13:20Z" in result.stdout
    assert stub.config.base_url == "http://bridge.local:8000"
    assert stub.closed is True


def test_latest_command_without_readings(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None, latest=None)
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["latest"])

    assert result.exit_code == 0
    assert "No readings recorded yet." in result.stdout


def test_history_command_passes_limit(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["history", "--limit", "1"])

    assert result.exit_code == 0
    assert "Reading History (1)" in result.stdout
    assert "(id 17)" in result.stdout
    assert "(id 16)" not in result.stdout
    assert stub.history_limits == [1]


def test_history_command_rejects_zero_limit(monkeypatch, runner: CliRunner) -> None:
    _install_stub(monkeypatch, StubClient(config=None))

    result = runner.invoke(app, ["history", "-n", "0"])

    assert result.exit_code != 0


def test_ingest_command_reports_counters(monkeypatch, runner: CliRunner) -> None:
    _install_stub(monkeypatch, StubClient(config=None))
    source = ScriptedSource([tds_message("12.5"), tds_message("bad"), tds_message("13.0")])
    ingestor = IngestionService(source=source, store=ReadingTable(name="cli"), poll_interval=0.05)
    monkeypatch.setattr("cli.app.build_default_ingestor", lambda: ingestor)

    result = runner.invoke(app, ["ingest"])

    assert result.exit_code == 0
    assert "Ingesting readings from topic 'tds/topic'" in result.stdout
    assert "Persisted 2 of 3 messages (1 dropped, 0 store failures)." in result.stdout
    assert source.closed


def test_ingest_command_fails_when_subscription_is_refused(monkeypatch, runner: CliRunner) -> None:
    _install_stub(monkeypatch, StubClient(config=None))
    source = ScriptedSource(open_error=SubscriptionError("not authorized"))
    ingestor = IngestionService(source=source, store=ReadingTable(name="cli"), poll_interval=0.05)
    monkeypatch.setattr("cli.app.build_default_ingestor", lambda: ingestor)

    result = runner.invoke(app, ["ingest"])

    assert result.exit_code == 1


def test_load_config_reads_environment(monkeypatch) -> None:
    monkeypatch.setenv("API_BASE_URL", "http://bridge.internal:9000/")
    monkeypatch.setenv("CLI_REQUEST_TIMEOUT", "not-a-number")

    config = load_config()

    assert config.base_url == "http://bridge.internal:9000"
    assert config.request_timeout == 10.0


def _client_with(handler) -> ApiClient:
    client = ApiClient(CLIConfig(base_url="http://bridge.test"))
    client._client = httpx.Client(base_url="http://bridge.test", transport=httpx.MockTransport(handler))
    return client


def test_api_client_maps_not_found_to_none() -> None:
    client = _client_with(lambda request: httpx.Response(404, json={"detail": "none yet"}))

    assert client.get_latest() is None


def test_api_client_sends_history_limit() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[SAMPLE_READING])

    client = _client_with(handler)

    assert client.get_history(5) == [SAMPLE_READING]
    assert seen[0].url.path == "/tds_history"
    assert seen[0].url.params["limit"] == "5"


def test_api_client_exits_on_server_error() -> None:
    client = _client_with(
        lambda request: httpx.Response(500, json={"detail": "Failed to fetch history: down"})
    )

    with pytest.raises(typer.Exit):
        client.get_history()
