"""
Key-value storage - flat JSON file holding the bridge's small state.

Records:
    connection:<provider>   Connection (tokens + credentials)
    switch:<switch_id>      SwitchRule
    state:<switch_id>       SwitchState (ephemeral, recomputed next tick)

No database: the whole state is a few kilobytes. Writes go to a temporary
file which then replaces the original, so a crash never leaves a half
written file behind.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union


logger = logging.getLogger("calswitch.storage")


class KeyValueStore:
    """
    JSON-file backed key-value store.

    With path=None the store is purely in memory (tests, ephemeral runs).
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self._path = Path(path) if path else None
        self._data: Dict[str, Any] = {}
        self._load()

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def put(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._flush()

    def put_many(self, items: Mapping[str, Any]) -> None:
        """Write several records with a single flush."""
        if not items:
            return
        self._data.update(items)
        self._flush()

    def delete(self, *keys: str) -> None:
        removed = False
        for key in keys:
            if self._data.pop(key, None) is not None:
                removed = True
        if removed:
            self._flush()

    def keys(self, prefix: str = "") -> List[str]:
        return sorted(k for k in self._data if k.startswith(prefix))

    # -------------------------------------------------------------------------
    # FILE I/O
    # -------------------------------------------------------------------------

    def _load(self) -> None:
        if self._path is None or not self._path.exists():
            return
        try:
            with self._path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Could not read state file {self._path}, starting empty: {e}")
            return
        if isinstance(data, dict):
            self._data = data
        else:
            logger.error(f"State file {self._path} is not a JSON object, starting empty")

    def _flush(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(self._data, f, indent=2, sort_keys=True, default=str)
        os.replace(tmp_path, self._path)
