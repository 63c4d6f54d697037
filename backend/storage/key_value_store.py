# storage/key_value_store.py
# ============================================================================
# TIKTOKPAY PAYMENTS BRIDGE v1.0 - EPHEMERAL KEY-VALUE STORE
# ============================================================================
# JSON-file backed maps (transactions, captured utm queries) behind one
# capability interface so an atomic backend can be swapped in later
# ============================================================================

import asyncio
import copy
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger("Payments.Storage")


class DataType(Enum):
    """Store files with a short description of what they hold."""
    TRANSACTIONS = ("transactions.json", "merged transaction records")
    UTM_QUERIES = ("utm_queries.json", "attribution queries captured at checkout")
    WEBHOOK_LOG = ("webhook_log.txt", "diagnostic log of webhook deliveries")

    @property
    def filename(self) -> str:
        return self.value[0]

    @property
    def description(self) -> str:
        return self.value[1]


class IKeyValueStore(ABC):
    """Map of string keys to JSON objects, rewritten as a whole."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    async def get_all(self) -> Dict[str, Dict[str, Any]]:
        pass

    @abstractmethod
    async def put_all(self, data: Dict[str, Dict[str, Any]]) -> None:
        pass


class InMemoryStore(IKeyValueStore):
    """Process-local store; values are copied in and out."""

    def __init__(self, initial: Optional[Dict[str, Dict[str, Any]]] = None):
        self._data: Dict[str, Dict[str, Any]] = copy.deepcopy(initial or {})

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    async def get_all(self) -> Dict[str, Dict[str, Any]]:
        return copy.deepcopy(self._data)

    async def put_all(self, data: Dict[str, Dict[str, Any]]) -> None:
        self._data = copy.deepcopy(data)


class JsonFileStore(IKeyValueStore):
    """
    Ephemeral JSON file store.

    Handles:
    - Missing, unreadable or corrupt files (treated as an empty store)
    - Whole-file rewrites via a temp file and rename
    """

    def __init__(self, path: str):
        self.path = path

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        return (await self.get_all()).get(key)

    async def get_all(self) -> Dict[str, Dict[str, Any]]:
        return await asyncio.get_event_loop().run_in_executor(None, self._read)

    async def put_all(self, data: Dict[str, Dict[str, Any]]) -> None:
        await asyncio.get_event_loop().run_in_executor(None, self._write, data)

    def _read(self) -> Dict[str, Dict[str, Any]]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to read {self.path}, treating as empty: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Unexpected content in {self.path}, treating as empty")
            return {}
        entries = {k: v for k, v in data.items() if isinstance(v, dict)}
        if len(entries) != len(data):
            logger.warning(f"Dropped {len(data) - len(entries)} malformed entries from {self.path}")
        return entries

    def _write(self, data: Dict[str, Dict[str, Any]]) -> None:
        directory = os.path.dirname(self.path) or "."
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, ensure_ascii=False, default=str)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        logger.debug(f"Wrote {len(data)} entries to {self.path}")


# Per-file instances
_stores: Dict[str, JsonFileStore] = {}


def get_store(data_type: DataType, data_dir: str) -> JsonFileStore:
    """Get or create the store for a data type under data_dir."""
    path = os.path.join(data_dir, data_type.filename)
    if path not in _stores:
        _stores[path] = JsonFileStore(path)
    return _stores[path]


def reset_stores() -> None:
    _stores.clear()
