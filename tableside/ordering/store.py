# tableside/ordering/store.py
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Protocol

from sqlalchemy.orm import sessionmaker

from ..errors import MalformedPersistedState
from ..models import KeyValue

logger = logging.getLogger(__name__)

# Persisted keys for one dining session.
SESSION_ID_KEY = "customer_session_id"
SESSION_START_KEY = "customer_session_start"
SESSION_ACTIVE_KEY = "customer_session_active"
TABLE_NUMBER_KEY = "customer_table_number"
CART_KEY = "session_cart"
ORDERS_KEY = "customer_session_orders"

SESSION_KEYS = (
    SESSION_ID_KEY,
    SESSION_START_KEY,
    SESSION_ACTIVE_KEY,
    TABLE_NUMBER_KEY,
    CART_KEY,
    ORDERS_KEY,
)


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStore:
    """Process-local store. Useful for tests and kiosk demos."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._data)


class SqlStore:
    """Key-value rows in the `kv_entries` table, committed on every write."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def get(self, key: str) -> Optional[str]:
        with self._session_factory() as db:
            row = db.get(KeyValue, key)
            return row.value if row else None

    def set(self, key: str, value: str) -> None:
        with self._session_factory() as db:
            row = db.get(KeyValue, key)
            if row is None:
                row = KeyValue(key=key, value=value)
            else:
                row.value = value
            row.updated_at = datetime.utcnow()
            db.add(row)
            db.commit()

    def remove(self, key: str) -> None:
        with self._session_factory() as db:
            row = db.get(KeyValue, key)
            if row is not None:
                db.delete(row)
                db.commit()


def decode_json(key: str, raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError as e:
        raise MalformedPersistedState(key, str(e)) from e


class DurableStore:
    """Typed JSON view over a KeyValueStore.

    Reads never fail: a missing key, malformed JSON or a value of the wrong
    shape all come back as the caller's default.
    """

    def __init__(self, backend: KeyValueStore) -> None:
        self.backend = backend

    def get_text(self, key: str) -> Optional[str]:
        return self.backend.get(key)

    def set_text(self, key: str, value: str) -> None:
        self.backend.set(key, value)

    def get_json(self, key: str, default: Any = None, expect: type | None = None) -> Any:
        raw = self.backend.get(key)
        if raw is None or raw == "":
            return default
        try:
            value = decode_json(key, raw)
        except MalformedPersistedState as e:
            logger.warning("%s; treating as absent", e)
            return default
        if expect is not None and not isinstance(value, expect):
            logger.warning("Persisted value for %r is %s, expected %s; treating as absent",
                           key, type(value).__name__, expect.__name__)
            return default
        return value

    def set_json(self, key: str, value: Any) -> None:
        self.backend.set(key, json.dumps(value, ensure_ascii=False))

    def get_list(self, key: str) -> list:
        return self.get_json(key, [], expect=list)

    def remove(self, key: str) -> None:
        self.backend.remove(key)

    def remove_many(self, keys: Iterable[str]) -> None:
        for key in keys:
            self.backend.remove(key)
