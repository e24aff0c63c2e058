# tableside/ordering/session.py
from __future__ import annotations

import logging
import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional
from urllib.parse import parse_qs, urlencode, urlsplit, urlunsplit

from ..config import settings
from .schemas import Session
from .store import (
    SESSION_ACTIVE_KEY,
    SESSION_ID_KEY,
    SESSION_KEYS,
    SESSION_START_KEY,
    TABLE_NUMBER_KEY,
    DurableStore,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_BASE36 = string.digits + string.ascii_lowercase


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_session_id(now: Optional[datetime] = None) -> str:
    """session_<epoch-ms>_<9 random base36 chars>"""
    now = now or utcnow()
    ms = int(now.timestamp() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"session_{ms}_{suffix}"


def parse_table_number(raw: object, upper: Optional[int] = None) -> Optional[int]:
    upper = settings.max_table_number if upper is None else upper
    if isinstance(raw, bool):
        return None
    try:
        n = int(str(raw).strip())
    except (TypeError, ValueError):
        return None
    return n if 1 <= n <= upper else None


def table_url(base_url: str, table_number: int | str) -> str:
    parts = urlsplit(base_url)
    query = parse_qs(parts.query)
    query["table"] = [str(table_number)]
    return urlunsplit(parts._replace(query=urlencode(query, doseq=True)))


def table_from_url(url: str, upper: Optional[int] = None) -> Optional[int]:
    values = parse_qs(urlsplit(url or "").query).get("table") or []
    return parse_table_number(values[0], upper) if values else None


def format_elapsed(elapsed: timedelta) -> str:
    secs = max(0, int(elapsed.total_seconds()))
    return f"{secs // 60}:{secs % 60:02d}"


class SessionManager:
    """Owns the identity and lifetime of one dining visit on this device."""

    def __init__(
        self,
        store: DurableStore,
        clock: Clock = utcnow,
        max_table_number: Optional[int] = None,
    ) -> None:
        self.store = store
        self.clock = clock
        self.max_table_number = max_table_number or settings.max_table_number
        self._session: Optional[Session] = None
        self._end_listeners: List[Callable[[], None]] = []

    @property
    def session(self) -> Optional[Session]:
        return self._session

    def on_end(self, listener: Callable[[], None]) -> None:
        self._end_listeners.append(listener)

    def get_or_create_session(self) -> Session:
        session_id = self.store.get_text(SESSION_ID_KEY)
        if not session_id:
            return self._create()

        if self.store.get_text(SESSION_ACTIVE_KEY) == "false":
            # end_session was interrupted before the purge
            logger.warning("Session %s was already ended; starting a new one", session_id)
            self._purge()
            return self._create()

        started_at = self._load_start()
        if started_at is None:
            started_at = self.clock()
            self.store.set_text(SESSION_START_KEY, started_at.isoformat())
            logger.warning("Session %s had no usable start time; reset to now", session_id)

        table = parse_table_number(self.store.get_text(TABLE_NUMBER_KEY), self.max_table_number)

        self._session = Session(
            session_id=session_id,
            started_at=started_at,
            active=True,
            table_number=str(table) if table else None,
        )
        logger.info("Restored session %s", session_id)
        return self._session

    def _create(self) -> Session:
        now = self.clock()
        session = Session(session_id=generate_session_id(now), started_at=now, active=True)
        self.store.set_text(SESSION_ID_KEY, session.session_id)
        self.store.set_text(SESSION_START_KEY, session.started_at.isoformat())
        self.store.set_text(SESSION_ACTIVE_KEY, "true")
        self._session = session
        logger.info("Created session %s", session.session_id)
        return session

    def _load_start(self) -> Optional[datetime]:
        raw = self.store.get_text(SESSION_START_KEY)
        if not raw:
            return None
        try:
            started = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return None
        if started.tzinfo is None:
            started = started.replace(tzinfo=timezone.utc)
        return started

    def _purge(self) -> None:
        for listener in list(self._end_listeners):
            listener()
        self.store.remove_many(SESSION_KEYS)
        self._session = None

    def _require(self) -> Session:
        return self._session or self.get_or_create_session()

    def set_table_number(self, n: int | str) -> bool:
        """First valid table wins. Returns False for invalid or conflicting input."""
        table = parse_table_number(n, self.max_table_number)
        if table is None:
            logger.info("Rejected table number %r", n)
            return False

        session = self._require()
        if session.table_number is not None:
            if session.table_number == str(table):
                return True
            logger.warning("Table already set to %s; ignoring %s", session.table_number, table)
            return False

        self.store.set_text(TABLE_NUMBER_KEY, str(table))
        self._session = session.model_copy(update={"table_number": str(table)})
        logger.info("Session %s seated at table %s", session.session_id, table)
        return True

    def restore_table_from_url(self, url: str) -> Optional[str]:
        """A valid ?table= on load replaces whatever table was stored."""
        table = table_from_url(url, self.max_table_number)
        session = self._require()
        if table is None or session.table_number == str(table):
            return session.table_number

        if session.table_number is not None:
            logger.info("Table %s from URL replaces stored table %s", table, session.table_number)
        self.store.set_text(TABLE_NUMBER_KEY, str(table))
        self._session = session.model_copy(update={"table_number": str(table)})
        return self._session.table_number

    def share_url(self, base_url: Optional[str] = None) -> Optional[str]:
        session = self._require()
        if session.table_number is None:
            return None
        return table_url(base_url or settings.public_base_url, session.table_number)

    def elapsed(self) -> timedelta:
        session = self._require()
        return max(timedelta(0), self.clock() - session.started_at)

    def end_session(self) -> None:
        """Deactivate, notify listeners, then purge every session-scoped key."""
        session = self._require()
        self.store.set_text(SESSION_ACTIVE_KEY, "false")
        self._session = session.model_copy(update={"active": False})

        self._purge()
        logger.info("Session %s ended and local state purged", session.session_id)
