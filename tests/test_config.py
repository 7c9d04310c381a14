"""
Tests for oddyseus/config.py and OrchestratorSettings.from_config.

Covers:
* dotted get/set, sections, in-memory configs
* persistence and unreadable files
* config_changed events
* typed settings built from the retrieval / dialogue / llm sections,
  including the API-key environment fallback
"""

from __future__ import annotations

import json

import pytest

from oddyseus.config import Config
from oddyseus.orchestrator import OrchestratorSettings


@pytest.fixture
def cfg(tmp_path, bus):
    return Config(bus, path=tmp_path / "oddyseus.json")


class TestDottedKeys:
    def test_missing_key_default(self, cfg):
        assert cfg.get("retrieval.top_k") is None
        assert cfg.get("retrieval.top_k", 5) == 5

    def test_nested_set_get(self, cfg):
        cfg.set("llm.model", "llama-3.1-8b-instant", save=False)
        assert cfg.get("llm.model") == "llama-3.1-8b-instant"

    def test_scalar_parent_returns_default(self, cfg):
        cfg.set("llm", "groq", save=False)
        assert cfg.get("llm.model", "x") == "x"

    def test_set_replaces_scalar_parent(self, cfg):
        cfg.set("llm", "groq", save=False)
        cfg.set("llm.model", "m", save=False)
        assert cfg.get("llm.model") == "m"

    def test_section_is_a_copy(self, cfg):
        cfg.set("dialogue.max_turns", 10, save=False)
        sec = cfg.section("dialogue")
        sec["max_turns"] = 99
        assert cfg.get("dialogue.max_turns") == 10

    def test_missing_section_is_empty(self, cfg):
        assert cfg.section("nothing") == {}

    def test_from_dict_is_detached(self):
        source = {"retrieval": {"top_k": 3}}
        c = Config.from_dict(source)
        c.set("retrieval.top_k", 9)
        assert source["retrieval"]["top_k"] == 3


class TestPersistence:
    def test_round_trip(self, tmp_path, bus):
        path = tmp_path / "oddyseus.json"
        Config(bus, path=path).set("retrieval.half_life_hours", 12)
        assert Config(bus, path=path).get("retrieval.half_life_hours") == 12

    def test_save_false_leaves_disk_alone(self, tmp_path, bus):
        path = tmp_path / "oddyseus.json"
        Config(bus, path=path).set("x", 1, save=False)
        assert not path.exists()

    def test_corrupt_file_ignored(self, tmp_path, bus):
        path = tmp_path / "oddyseus.json"
        path.write_text("{not json", encoding="utf-8")
        c = Config(bus, path=path)
        assert c.get("anything") is None

    def test_non_object_file_ignored(self, tmp_path, bus):
        path = tmp_path / "oddyseus.json"
        path.write_text("[1, 2]", encoding="utf-8")
        assert Config(bus, path=path).section("llm") == {}

    def test_in_memory_never_writes(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        c = Config(path=None)
        c.set("a", 1)
        assert list(tmp_path.iterdir()) == []


class TestEvents:
    def test_publishes_config_changed(self, cfg, record):
        rec = record("config_changed")
        cfg.set("retrieval.top_k", 3, save=False)
        assert rec.events == [{"key": "retrieval.top_k", "value": 3}]


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("ODDYSEUS_API_KEY", raising=False)
        monkeypatch.delenv("GROQ_API_KEY", raising=False)
        s = OrchestratorSettings.from_config(Config.from_dict({}))
        assert s.retrieval.top_k == 5
        assert s.retrieval.half_life_seconds == 6 * 3600
        assert s.retrieval.semantic_floor == 0.15
        assert s.dialogue.max_turns == 16
        assert s.dialogue.summarize_count == 8
        assert s.llm.max_attempts == 3
        assert s.llm.api_key == ""

    def test_sections_applied(self):
        c = Config.from_dict({
            "retrieval": {"top_k": 2, "half_life_hours": 1.5, "use_time_hints": False},
            "dialogue": {"max_turns": 6},
            "llm": {"model": "local", "base_url": "http://localhost:8080/v1", "api_key": "k"},
            "emotion": {"valence_blend": 0.5},
        })
        s = OrchestratorSettings.from_config(c)
        assert s.retrieval.top_k == 2
        assert s.retrieval.half_life_seconds == pytest.approx(5400)
        assert s.retrieval.use_time_hints is False
        assert s.dialogue.max_turns == 6
        assert s.llm.model == "local"
        assert s.llm.api_key == "k"
        assert s.emotion.valence_blend == 0.5

    def test_unknown_keys_ignored(self):
        c = Config.from_dict({"retrieval": {"top_k": 4, "bogus": 1}})
        assert OrchestratorSettings.from_config(c).retrieval.top_k == 4

    def test_api_key_env_fallback(self, monkeypatch):
        monkeypatch.delenv("ODDYSEUS_API_KEY", raising=False)
        monkeypatch.setenv("GROQ_API_KEY", "gsk-env")
        s = OrchestratorSettings.from_config(Config.from_dict({}))
        assert s.llm.api_key == "gsk-env"

    def test_own_env_var_wins(self, monkeypatch):
        monkeypatch.setenv("ODDYSEUS_API_KEY", "odd")
        monkeypatch.setenv("GROQ_API_KEY", "gsk-env")
        s = OrchestratorSettings.from_config(Config.from_dict({}))
        assert s.llm.api_key == "odd"

    def test_configured_key_beats_env(self, monkeypatch):
        monkeypatch.setenv("GROQ_API_KEY", "gsk-env")
        s = OrchestratorSettings.from_config(Config.from_dict({"llm": {"api_key": "file"}}))
        assert s.llm.api_key == "file"

    def test_file_backed(self, tmp_path):
        path = tmp_path / "oddyseus.json"
        path.write_text(json.dumps({"retrieval": {"min_score": 0.01}}), encoding="utf-8")
        s = OrchestratorSettings.from_config(Config(path=path))
        assert s.retrieval.min_score == 0.01
