"""Tests for the command line runner."""

from __future__ import annotations

import io
import json

import pytest

from iotdbbridge import cli
from iotdbbridge.config import BridgeConfig, ConnectionProfileConfig
from iotdbbridge.models import KEY_RAW_LIST, RequestMethod


def _config() -> BridgeConfig:
    return BridgeConfig(profiles=[ConnectionProfileConfig(name="Demo", uri="demo://local")])


def test_build_request_applies_default_schema() -> None:
    args = cli.parse_args(["SELECT * FROM root.demo.sensor1", "--method", "gets", "--table", "demo.sensor1"])

    request = cli.build_request(args, _config())

    assert request.method is RequestMethod.GETS
    assert request.schema == "root"
    assert request.uri == "demo://local"
    assert request.sql_schema == "root"


def test_run_prints_folded_query_result() -> None:
    args = cli.parse_args(["SELECT * FROM root.demo.sensor1", "--demo", "--schema", "root.demo", "--table", "sensor1"])
    out = io.StringIO()

    assert cli.run(args, _config(), out) == 0

    payload = json.loads(out.getvalue())
    assert payload["temperature"] == 21.5
    assert len(payload[KEY_RAW_LIST]) == 3


def test_run_prints_rows_when_requested() -> None:
    args = cli.parse_args(["SELECT * FROM root.demo.sensor2", "--demo", "--rows", "--schema", "root.demo", "--table", "sensor2"])
    out = io.StringIO()

    cli.run(args, _config(), out)

    assert [row["status"] for row in json.loads(out.getvalue())] == ["online", "offline"]


def test_run_reports_update_count() -> None:
    args = cli.parse_args(["DELETE FROM root.demo.sensor1.*", "--demo", "--method", "DELETE"])
    out = io.StringIO()

    cli.run(args, _config(), out)

    assert json.loads(out.getvalue())["count"] == 1


def test_main_reports_unknown_profile(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.setattr(cli, "load_config", _config)

    code = cli.main(["SELECT 1", "--demo", "--profile", "missing"])

    assert code == 2
    assert "Profile 'missing' not found" in capsys.readouterr().err
