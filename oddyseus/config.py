"""
Simple configuration store backed by a JSON file.

Provides dotted-key get/set and section namespacing so the retrieval,
dialogue and LLM settings can live in one file.  Typed settings are
built from it by ``OrchestratorSettings.from_config``.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

from .events import EventBus

logger = logging.getLogger(__name__)

_DEFAULT_PATH = Path("oddyseus.json")


class Config:
    """
    Hierarchical configuration backed by a JSON file.

    Keys use dot notation: ``"retrieval.top_k"``, ``"llm.model"``.
    Passing ``path=None`` keeps everything in memory.
    """

    def __init__(
        self,
        event_bus: Optional[EventBus] = None,
        path: Path | str | None = _DEFAULT_PATH,
    ):
        self._bus = event_bus
        self._path = Path(path) if path is not None else None
        self._data: dict[str, Any] = {}
        self._load()

    @classmethod
    def from_dict(cls, data: dict[str, Any], event_bus: Optional[EventBus] = None) -> "Config":
        cfg = cls(event_bus, path=None)
        cfg._data = json.loads(json.dumps(data))
        return cfg

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def get(self, key: str, default: Any = None) -> Any:
        parts = key.split(".")
        node = self._data
        for p in parts[:-1]:
            node = node.get(p, {})
            if not isinstance(node, dict):
                return default
        return node.get(parts[-1], default)

    def set(self, key: str, value: Any, *, save: bool = True) -> None:
        parts = key.split(".")
        node = self._data
        for p in parts[:-1]:
            child = node.get(p)
            if not isinstance(child, dict):
                child = node[p] = {}
            node = child
        node[parts[-1]] = value

        if save:
            self._save()

        if self._bus is not None:
            self._bus.publish("config_changed", {"key": key, "value": value})

    def section(self, prefix: str) -> dict[str, Any]:
        """Return a shallow copy of everything under *prefix*."""
        node = self._data
        for p in prefix.split("."):
            node = node.get(p, {})
            if not isinstance(node, dict):
                return {}
        return dict(node)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def _load(self) -> None:
        if self._path is None or not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Ignoring unreadable config %s: %s", self._path, e)
            return
        if isinstance(data, dict):
            self._data = data
        else:
            logger.warning("Ignoring config %s: top level is not an object", self._path)

    def _save(self) -> None:
        if self._path is None:
            return
        try:
            self._path.write_text(
                json.dumps(self._data, indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
        except OSError as e:
            logger.warning("Could not write config %s: %s", self._path, e)
