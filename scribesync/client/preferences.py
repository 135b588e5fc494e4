"""Small persistent key-value store for client flags."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "scribe_sync_prefs"


class PreferenceStore:
    """JSON file holding one namespace of preferences.

    Every write replaces the whole file atomically, so a crash leaves either
    the old or the new values on disk.
    """

    def __init__(self, path: str, namespace: str = DEFAULT_NAMESPACE):
        self.path = Path(path)
        self.namespace = namespace
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _read_all(self) -> Dict[str, Dict[str, Any]]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Cannot read preferences {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _values(self) -> Dict[str, Any]:
        return dict(self._read_all().get(self.namespace, {}))

    def get(self, key: str, default: Any = None) -> Any:
        return self._values().get(key, default)

    def get_bool(self, key: str, default: bool = False) -> bool:
        return bool(self.get(key, default))

    def update(self, **values: Any) -> None:
        """Set several keys in one atomic write."""
        data = self._read_all()
        data.setdefault(self.namespace, {}).update(values)

        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self.path)
        logger.debug(f"Preferences updated: {', '.join(values)}")

    def put(self, key: str, value: Any) -> None:
        self.update(**{key: value})
