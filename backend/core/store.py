"""
Preference store port.

The engine reads its configuration and writes history/metrics through a
plain get/set interface. Two implementations: an in-process dict and a
JSON file on disk.
"""
import copy
import json
import logging
import os
from typing import Any, Dict, Optional, Protocol

from .config import HISTORY_PATH

logger = logging.getLogger(__name__)


class PreferenceStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


class MemoryPreferenceStore:
    """Dict-backed store. Values are deep-copied on the way in and out."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = copy.deepcopy(initial) if initial else {}

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def keys(self):
        return list(self._data.keys())


class JsonFilePreferenceStore:
    """
    Store that persists every write to a single JSON document.

    Args:
        path: File to load from and save to (SLOPSHIELD_HISTORY_PATH by
              default). Parent directories are created on first save.
    """

    def __init__(self, path: str = HISTORY_PATH):
        self.path = path
        self._data = self._load()

    def _load(self) -> Dict[str, Any]:
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as e:
            logger.warning(f"Preference file {self.path} is corrupt, starting empty: {e}")
            return {}

    def _save(self):
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump(self._data, f, indent=2, ensure_ascii=False)

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)
        self._save()
