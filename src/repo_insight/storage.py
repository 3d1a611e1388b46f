"""Key-value stores backing settings and cached analyses."""

import json
import logging
from pathlib import Path
from typing import Any, NamedTuple, Protocol

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


class MemoryStore:
    def __init__(self, initial: dict[str, Any] | None = None):
        self._data: dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Any:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value


class JsonFileStore:
    """A store persisted as a single JSON object, rewritten on every set."""

    def __init__(self, path: str | Path):
        self._path = Path(path)
        self._data: dict[str, Any] = self._load()

    def _load(self) -> dict[str, Any]:
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(f"Ignoring unreadable store {self._path}: {exc}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring store {self._path}: expected a JSON object")
            return {}
        return data

    def get(self, key: str) -> Any:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(self._data, indent=2), encoding="utf-8")


class StoreScopes(NamedTuple):
    sync: KeyValueStore  # small settings such as credentials
    local: KeyValueStore  # bulk data such as cached analyses
