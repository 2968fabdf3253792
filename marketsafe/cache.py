"""
Durable mirror of the authenticated session.

The cache is a small JSON document on disk mapping well-known keys to
serialized records, so a restarted process can rebuild its session without a
network round trip. A missing or unreadable record is simply "no session".
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

import pydantic

from marketsafe.config import SESSION_KEY
from marketsafe.errors import CacheError
from marketsafe.models import User

logger = logging.getLogger(__name__)


class PersistedSessionCache:
    def __init__(self, path: Path, key: str = SESSION_KEY) -> None:
        self.path = Path(path)
        self.key = key

    def save(self, user: User) -> None:
        document = self._read_document()
        document[self.key] = user.model_dump_json(by_alias=True)
        self._atomic_write(document)

    def load(self) -> Optional[User]:
        raw = self._read_document().get(self.key)
        if raw is None:
            return None
        try:
            return User.model_validate_json(raw)
        except (pydantic.ValidationError, TypeError) as exc:
            logger.debug("Ignoring malformed session record in %s: %s", self.path, exc)
            return None

    def clear(self) -> None:
        document = self._read_document()
        if self.key not in document:
            return
        del document[self.key]
        self._atomic_write(document)

    def _read_document(self) -> Dict[str, Any]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            logger.debug("Session cache %s unreadable, treating as empty: %s", self.path, exc)
            return {}
        return document if isinstance(document, dict) else {}

    def _atomic_write(self, document: Dict[str, Any]) -> None:
        temp_path = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="w", dir=self.path.parent, delete=False, encoding="utf-8"
            ) as tf:
                temp_path = Path(tf.name)
                json.dump(document, tf)
            os.replace(temp_path, self.path)
        except OSError as exc:
            if temp_path is not None and temp_path.exists():
                temp_path.unlink()
            raise CacheError(f"Failed to write session cache {self.path}: {exc}") from exc
