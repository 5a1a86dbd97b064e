"""Tests for Config loading, saving and discovery"""

import unittest

import pytest

from devalias_cli.config import DEFAULT_ADMIN_ADDRESS, Config, Directive, find_config_path
from devalias_cli.errors import ConfigError


class ConfigFromDictTests(unittest.TestCase):
    def test_structured_mapping(self):
        cfg = Config.from_dict({"admin": "127.0.0.1:2020", "aliases": {"api.local": "127.0.0.1:4000"}})
        self.assertEqual(cfg.admin, "127.0.0.1:2020")
        self.assertEqual(cfg.directives, [Directive("api.local", "127.0.0.1:4000")])

    def test_flat_mapping_keeps_order(self):
        cfg = Config.from_dict({"https://b.local": 9000, "a.local": "9001"})
        self.assertEqual([d.alias for d in cfg.directives], ["https://b.local", "a.local"])
        self.assertEqual(cfg.directives[0].upstream, "127.0.0.1:9000")
        self.assertEqual(cfg.admin_address, DEFAULT_ADMIN_ADDRESS)

    def test_empty(self):
        self.assertEqual(Config.from_dict(None).directives, [])

    def test_rejects_non_mapping(self):
        with self.assertRaises(ConfigError):
            Config.from_dict(["api.local"])
        with self.assertRaises(ConfigError):
            Config.from_dict({"aliases": ["api.local"]})
        with self.assertRaises(ConfigError):
            Config.from_dict({"admin": 2019, "aliases": {}})


class DirectiveEditTests(unittest.TestCase):
    def test_set_adds_and_replaces(self):
        cfg = Config()
        cfg.set("api.local", 4000)
        cfg.set("web.local", "127.0.0.1:3000")
        cfg.set("api.local", "5000")
        self.assertEqual(
            cfg.directives,
            [Directive("api.local", "127.0.0.1:5000"), Directive("web.local", "127.0.0.1:3000")],
        )

    def test_set_validates(self):
        cfg = Config()
        with self.assertRaises(ConfigError):
            cfg.set("api.local", "127.0.0.1:notaport")
        with self.assertRaises(ConfigError):
            cfg.set("bad host", "4000")
        self.assertEqual(cfg.directives, [])

    def test_remove_and_clear(self):
        cfg = Config.from_dict({"a.local": 1, "b.local": 2})
        self.assertTrue(cfg.remove("a.local"))
        self.assertFalse(cfg.remove("a.local"))
        cfg.clear()
        self.assertEqual(cfg.directives, [])


def test_save_and_load(tmp_path):
    path = tmp_path / "aliases.yml"
    cfg = Config(admin="localhost:2020")
    cfg.set("api.local", 4000)
    cfg.set("https://secure.local", "example.com:443")
    assert cfg.save(path) == path
    assert cfg.path == path
    assert not path.with_suffix(".tmp").exists()

    loaded = Config.load(path)
    assert loaded.directives == cfg.directives
    assert loaded.admin == "localhost:2020"
    assert loaded.path == path


def test_load_missing_explicit_path_fails(tmp_path):
    with pytest.raises(ConfigError):
        Config.load(tmp_path / "nope.yml")


def test_load_invalid_yaml_fails(tmp_path):
    path = tmp_path / "broken.yml"
    path.write_text("aliases: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="failed to load"):
        Config.load(path)


def test_find_config_path_env_override(monkeypatch, tmp_path):
    monkeypatch.setenv("DEVALIAS_CONFIG", str(tmp_path / "custom.yml"))
    assert find_config_path() == (tmp_path / "custom.yml").resolve()


def test_find_config_path_searches_parents(monkeypatch, tmp_path):
    monkeypatch.delenv("DEVALIAS_CONFIG", raising=False)
    (tmp_path / ".devalias.yml").write_text("api.local: 4000\n", encoding="utf-8")
    child = tmp_path / "sub" / "deep"
    child.mkdir(parents=True)
    assert find_config_path(child) == (tmp_path / ".devalias.yml").resolve()


def test_find_config_path_falls_back_to_home(monkeypatch, tmp_path):
    monkeypatch.delenv("DEVALIAS_CONFIG", raising=False)
    monkeypatch.setenv("DEVALIAS_HOME", str(tmp_path / "home"))
    empty = tmp_path / "project"
    empty.mkdir()
    assert find_config_path(empty) == tmp_path / "home" / "config.yml"


def test_load_without_config_is_empty(monkeypatch, tmp_path):
    monkeypatch.setenv("DEVALIAS_CONFIG", str(tmp_path / "missing.yml"))
    cfg = Config.load()
    assert cfg.directives == []
    assert cfg.path == (tmp_path / "missing.yml").resolve()
