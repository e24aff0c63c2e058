# tableside/ordering/menu_feed.py
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

OnChange = Callable[[Dict[str, Any]], None]
OnError = Callable[[str], None]


class MenuFeed:
    """Push-based menu source.

    Subscribers receive the complete current menu document on every push,
    never a delta. `subscribe` returns a callable that cancels the subscription.
    """

    def __init__(self) -> None:
        self._subscribers: List[Tuple[OnChange, Optional[OnError]]] = []
        self._last: Optional[Dict[str, Any]] = None

    def subscribe(self, on_change: OnChange, on_error: Optional[OnError] = None) -> Callable[[], None]:
        entry = (on_change, on_error)
        self._subscribers.append(entry)
        if self._last is not None:
            on_change(self._last)

        def cancel() -> None:
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return cancel

    def publish(self, menu: Dict[str, Any]) -> None:
        self._last = menu
        for on_change, _ in list(self._subscribers):
            on_change(menu)

    def fail(self, message: str) -> None:
        for _, on_error in list(self._subscribers):
            if on_error is not None:
                on_error(message)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)


class FileMenuFeed(MenuFeed):
    """Publishes a menu.json from disk each time `refresh` is called."""

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self.path = Path(path).resolve()

    def refresh(self) -> bool:
        if not self.path.exists():
            self.fail(f"Menu file not found: {self.path}")
            return False

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            self.fail(f"Invalid menu file {self.path}: {e}")
            return False

        if not isinstance(data, dict):
            self.fail(f"Invalid menu file {self.path}: expected an object")
            return False

        logger.debug("Loaded menu from %s", self.path)
        self.publish(data)
        return True
