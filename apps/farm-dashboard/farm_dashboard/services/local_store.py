"""File-backed key-value store for dashboard documents and the sensor snapshot."""
from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

_SAFE_KEY = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


class LocalStore:
    """One JSON document per key under ``root``.

    Each write goes to its own temp file in ``root`` and is swapped in with
    ``os.replace``; a reader never sees a half-written document.
    """

    def __init__(self, root: Path):
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise ValueError(f"Invalid store key {key!r}")
        return self.root / f"{key}.json"

    def read_raw(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def get(self, key: str) -> Any:
        try:
            raw = self.read_raw(key)
        except OSError as exc:
            logger.error("Local load failed for %s: %s", key, exc)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.error("Local load failed for %s: %s", key, exc)
            return None

    def set(self, key: str, data: Any) -> bool:
        path = self.path_for(key)
        try:
            text = json.dumps(data, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            logger.error("Local save failed for %s: %s", key, exc)
            return False
        temp_name = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=self.root, prefix=f"{key}.", suffix=".tmp", delete=False
            ) as handle:
                temp_name = handle.name
                handle.write(text)
            os.replace(temp_name, path)
        except OSError as exc:
            logger.error("Local save failed for %s: %s", key, exc)
            if temp_name:
                Path(temp_name).unlink(missing_ok=True)
            return False
        logger.debug("Saved %s to local store", key)
        return True

    def delete(self, key: str) -> bool:
        try:
            self.path_for(key).unlink(missing_ok=True)
        except OSError as exc:
            logger.error("Local delete failed for %s: %s", key, exc)
            return False
        return True
