"""Tests for reconciling the hosts table with a config"""

import unittest

import pytest

from devalias_cli.config import Config
from devalias_cli.control import apply_config, run
from devalias_cli.errors import ConfigError
from devalias_cli.hosts import HostsController


class RecordingHosts:
    """In-memory hosts mutator recording the call sequence."""

    def __init__(self):
        self.calls = []
        self.staged = []
        self.committed = {"stale.local": "127.0.0.1"}

    def clear(self):
        self.calls.append("clear")
        self.staged = []

    def set(self, ip, hostname):
        self.calls.append(("set", ip, hostname))
        self.staged.append((ip, hostname))

    def apply(self):
        self.calls.append("apply")
        self.committed = {hostname: ip for ip, hostname in self.staged}


class ApplyConfigTests(unittest.TestCase):
    def test_call_sequence(self):
        hosts = RecordingHosts()
        cfg = Config.from_dict({"api.local": 4000, "https://web.local:8443": "127.0.0.1:3000"})
        apply_config(hosts, cfg)
        self.assertEqual(
            hosts.calls,
            [
                "clear",
                ("set", "127.0.0.1", "api.local"),
                ("set", "127.0.0.1", "web.local"),
                "apply",
            ],
        )

    def test_stale_aliases_are_dropped(self):
        hosts = RecordingHosts()
        apply_config(hosts, Config.from_dict({"api.local": 4000}))
        self.assertEqual(hosts.committed, {"api.local": "127.0.0.1"})

    def test_remote_upstream_still_binds_loopback(self):
        hosts = RecordingHosts()
        apply_config(hosts, Config.from_dict({"remote.local": "https://example.com:443"}))
        self.assertEqual(hosts.committed, {"remote.local": "127.0.0.1"})

    def test_invalid_upstream_never_applies(self):
        hosts = RecordingHosts()
        cfg = Config.from_dict({"good.local": 4000, "bad.local": "127.0.0.1:notaport", "later.local": 5000})
        with self.assertRaises(ConfigError):
            apply_config(hosts, cfg)
        self.assertNotIn("apply", hosts.calls)
        self.assertFalse([c for c in hosts.calls if isinstance(c, tuple)])
        self.assertEqual(hosts.committed, {"stale.local": "127.0.0.1"})

    def test_invalid_alias_never_applies(self):
        hosts = RecordingHosts()
        cfg = Config.from_dict({"good.local": 4000, "bad alias": 5000})
        with self.assertRaises(ConfigError):
            apply_config(hosts, cfg)
        self.assertNotIn("apply", hosts.calls)


def test_reconcile_twice_matches_once(tmp_path):
    path = tmp_path / "hosts"
    path.write_text("127.0.0.1 localhost\n", encoding="utf-8")
    cfg = Config.from_dict({"api.local": 4000, "web.local": 3000})

    apply_config(HostsController(path, use_sudo=False), cfg)
    once = path.read_text(encoding="utf-8")
    apply_config(HostsController(path, use_sudo=False), cfg)
    assert path.read_text(encoding="utf-8") == once


def test_reconcile_from_different_configs_leaves_no_stale_alias(tmp_path):
    path = tmp_path / "hosts"
    apply_config(HostsController(path, use_sudo=False), Config.from_dict({"old.local": 4000}))
    apply_config(HostsController(path, use_sudo=False), Config.from_dict({"new.local": 4000}))
    assert HostsController(path).entries() == {"new.local": "127.0.0.1"}


class FakeEngine:
    def __init__(self, exit_code=0, events=None):
        self.exit_code = exit_code
        self.events = events if events is not None else []
        self.process = None
        self.loaded = None

    def load(self, document, admin_address):
        self.events.append("load")
        self.loaded = (document, admin_address)

    def wait(self):
        self.events.append("wait")
        return self.exit_code

    def terminate(self):
        self.events.append("terminate")


def test_run_reconciles_before_loading():
    events = []
    hosts = RecordingHosts()
    hosts.apply = lambda: events.append("hosts-apply")
    engine = FakeEngine(events=events)

    run(hosts, Config.from_dict({"api.local": 4000}), engine=engine, on_ready=lambda: events.append("ready"))

    assert events == ["hosts-apply", "load", "ready", "wait", "terminate"]
    document, address = engine.loaded
    assert b"127.0.0.1:4000" in document
    assert address == "localhost:2019"


def test_run_never_loads_on_config_error():
    engine = FakeEngine()
    with pytest.raises(ConfigError):
        run(RecordingHosts(), Config.from_dict({"api.local": "127.0.0.1:bad"}), engine=engine)
    assert engine.loaded is None
    assert engine.events == []


def test_run_reports_engine_failure():
    from devalias_cli.errors import EngineError

    with pytest.raises(EngineError, match="code 1"):
        run(RecordingHosts(), Config.from_dict({"api.local": 4000}), engine=FakeEngine(exit_code=1))
