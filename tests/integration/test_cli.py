"""
tests/integration/test_cli.py

Integration tests for cfdns/cli.py.
Commands run through main() end to end. Netlink is replaced by an in-memory
address source, Cloudflare is intercepted by respx, and the cache, database
and config paths point into tmp_path (see the isolated_env fixture).
"""

from __future__ import annotations

import ipaddress
import json
import logging

import httpx
import pytest

import cfdns.cli as cli
import cfdns.scheduler as scheduler
from cfdns.repositories.zone_cache_repository import ZoneCacheRepository
from cfdns.services.address_selector import CandidateAddress

_BASE = "https://api.cloudflare.com/client/v4"

_CONFIG = """\
cloudflare:
  token: secret-token
interfaces:
  eth0:
    records:
      - domain: home.example.com
        type: A
"""


class _StaticSource:
    async def list_interfaces(self):
        return ["eth0"]

    async def get_addresses(self, interface):
        return [CandidateAddress(ipaddress.ip_address("203.0.113.10"))]


@pytest.fixture(autouse=True)
def restore_logging():
    """main() reconfigures the root logger; put it back after each test."""
    root = logging.getLogger()
    level, handlers = root.level, list(root.handlers)
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture()
def config_file(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text(_CONFIG)
    return path


def _run(*argv) -> int:
    with pytest.raises(SystemExit) as info:
        cli.main(list(argv))
    return info.value.code


# ---------------------------------------------------------------------------
# show
# ---------------------------------------------------------------------------


def test_show_hides_token(config_file, capsys):
    assert _run("-c", str(config_file), "show") == 0

    out = capsys.readouterr().out
    assert "secret-token" not in out
    assert "home.example.com A" in out
    assert "Zone: example.com" in out


def test_show_json_reveal(config_file, capsys):
    assert _run("-c", str(config_file), "show", "--json", "--reveal") == 0

    data = json.loads(capsys.readouterr().out)
    assert data["cloudflare"]["token"] == "secret-token"


def test_missing_config_exits_with_config_error(tmp_path, capsys):
    assert _run("-c", str(tmp_path / "missing.yml"), "update") == 2
    assert "Configuration error" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# update / stats
# ---------------------------------------------------------------------------


def test_update_then_stats(config_file, mock_http, monkeypatch, capsys):
    monkeypatch.setattr(scheduler, "NetlinkAddressSource", _StaticSource)
    mock_http.get(f"{_BASE}/zones").mock(
        return_value=httpx.Response(200, json={"success": True, "result": [{"id": "z1"}], "errors": []})
    )
    mock_http.get(f"{_BASE}/zones/z1/dns_records").mock(
        return_value=httpx.Response(200, json={"success": True, "result": [], "errors": []})
    )
    post = mock_http.post(f"{_BASE}/zones/z1/dns_records").mock(
        return_value=httpx.Response(
            200,
            json={
                "success": True,
                "result": {"id": "r1", "name": "home.example.com", "type": "A", "content": "203.0.113.10"},
                "errors": [],
            },
        )
    )

    assert _run("-c", str(config_file), "update") == 0
    out = capsys.readouterr().out
    assert "Updating Records for: eth0" in out
    assert "home.example.com   IPv4 updated => 203.0.113.10" in out
    assert post.call_count == 1

    assert _run("stats") == 0
    stats_out = capsys.readouterr().out
    assert "home.example.com" in stats_out
    assert "updates=1" in stats_out


def test_update_failure_exits_one(config_file, mock_http, monkeypatch, capsys):
    monkeypatch.setattr(scheduler, "NetlinkAddressSource", _StaticSource)
    mock_http.get(f"{_BASE}/zones").mock(
        return_value=httpx.Response(200, json={"success": True, "result": [], "errors": []})
    )

    assert _run("-c", str(config_file), "update", "--no-stats") == 1
    captured = capsys.readouterr()
    assert "home.example.com   failed: zone `example.com` was not found" in captured.out
    assert "1 record(s) failed" in captured.err


def test_stats_before_any_run(capsys):
    assert _run("stats") == 0
    assert "No statistics recorded yet." in capsys.readouterr().out


# ---------------------------------------------------------------------------
# interfaces
# ---------------------------------------------------------------------------


def test_interfaces_lists_best_addresses(monkeypatch, capsys):
    monkeypatch.setattr(cli, "NetlinkAddressSource", _StaticSource)

    assert _run("interfaces") == 0

    line = capsys.readouterr().out.strip()
    assert line.startswith("eth0")
    assert "IPv4: 203.0.113.10" in line
    assert line.endswith("IPv6: -")


# ---------------------------------------------------------------------------
# cache
# ---------------------------------------------------------------------------


def test_cache_show_and_clear(capsys):
    repo = ZoneCacheRepository()
    repo.save({"example.com": "z1"})

    assert _run("cache", "show") == 0
    assert json.loads(capsys.readouterr().out) == {"example.com": "z1"}

    assert _run("cache", "clear") == 0
    assert "Deleted" in capsys.readouterr().out
    assert not repo.path.exists()

    assert _run("cache", "clear") == 0
    assert "No zone cache" in capsys.readouterr().out


# ---------------------------------------------------------------------------
# logging
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "verbose, level",
    [(0, logging.ERROR), (1, logging.INFO), (2, logging.DEBUG), (3, logging.DEBUG)],
)
def test_configure_logging_levels(verbose, level):
    cli.configure_logging(verbose)
    assert logging.getLogger().level == level


def test_systemd_logs_info_without_console(monkeypatch):
    monkeypatch.setenv("JOURNAL_STREAM", "8:12345")
    cli.configure_logging(0)

    assert logging.getLogger().level == logging.INFO
    assert cli.console_enabled(0) is False
