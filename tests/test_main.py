"""Tests for the command-line entrypoint."""

import json

import httpx
import pytest

import scan_resolver.__main__ as cli
from scan_resolver.containers import build_container
from tests.conftest import COCA_COLA, NUTELLA, open_food_facts_transport


@pytest.fixture
def offline_container(monkeypatch: pytest.MonkeyPatch, off_settings) -> None:
    def fake_build_container(_settings):  # type: ignore[no-untyped-def]
        return build_container(
            off_settings,
            http_client=httpx.AsyncClient(transport=open_food_facts_transport()),
        )

    monkeypatch.setattr(cli, "build_container", fake_build_container)


def test_validate_prints_type(capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = cli.main(["validate", "4006-3813-33931"])

    captured = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert captured == {"gtin": NUTELLA, "valid": True, "type": "EAN-13"}


def test_validate_rejects_bad_checksum(capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = cli.main(["validate", "4006381333930"])

    captured = json.loads(capsys.readouterr().out)
    assert exit_code == 2
    assert captured["reason"] == "checksum"
    assert not captured["valid"]


def test_lookup_prints_resolution(
    offline_container: None, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = cli.main(["lookup", COCA_COLA])

    captured = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert captured["product"]["brand"] == "Coca-Cola"


def test_lookup_not_found_exit_code(
    offline_container: None, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = cli.main(["lookup", NUTELLA, "--refresh"])

    captured = json.loads(capsys.readouterr().out)
    assert exit_code == 1
    assert captured["status"] == "not_found"
