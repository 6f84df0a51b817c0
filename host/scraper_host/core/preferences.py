"""Small JSON-backed key/value store for settings that are not secrets."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class PreferenceStore:
    """Persist a flat mapping in a JSON file, tolerating unreadable or unwritable files.

    The in-memory copy is authoritative for the lifetime of the process; a failed
    write is logged and retried on the next ``set``.
    """

    def __init__(self, path: Optional[Path]) -> None:
        self.path = path
        self._lock = threading.Lock()
        self._data: Dict[str, Any] = self._read()

    def _read(self) -> Dict[str, Any]:
        if self.path is None or not self.path.is_file():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable preference store %s: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("Preference store %s does not hold an object; ignoring it", self.path)
            return {}
        return data

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            value = self._data.get(key, default)
        if isinstance(value, dict):
            return dict(value)
        return value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value
            self._flush()

    def delete(self, key: str) -> None:
        with self._lock:
            if self._data.pop(key, None) is not None:
                self._flush()

    def _flush(self) -> bool:
        if self.path is None:
            return False
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("w", encoding="utf-8") as fh:
                json.dump(self._data, fh, ensure_ascii=False, indent=2)
        except OSError as exc:
            logger.warning("Failed to persist preference store %s: %s", self.path, exc)
            return False
        return True

    def close(self) -> None:
        with self._lock:
            self._flush()
