# tableside/ordering/menu.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from .schemas import MenuItem

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = ("starters", "mains", "desserts", "beverages")


def iter_menu_entries(menu: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Supports both schemas:
    - New: menu["items"] top-level
    - Back-compat: nested categories[*]["items"]
    """
    out: List[Dict[str, Any]] = []

    for cat in (menu.get("categories") or []):
        if not isinstance(cat, dict):
            continue
        for it in (cat.get("items") or []):
            if isinstance(it, dict):
                entry = dict(it)
                entry.setdefault("category", str(cat.get("id") or cat.get("name") or ""))
                out.append(entry)

    for it in (menu.get("items") or []):
        if isinstance(it, dict):
            out.append(it)

    return out


def custom_category_names(menu: Dict[str, Any]) -> List[str]:
    out: List[str] = []
    for c in (menu.get("categories") or []):
        if not isinstance(c, dict):
            continue
        n = str(c.get("id") or c.get("name") or "").strip()
        if n and n not in out:
            out.append(n)
    return out


class MenuCatalog:
    """Local cache of the live menu.

    Every push replaces the whole cache; nothing is patched in place, so an
    item removed upstream can never linger here.
    """

    def __init__(self) -> None:
        self.status = "loading"  # loading | ready | error
        self.error: Optional[str] = None
        self._by_id: Dict[str, MenuItem] = {}
        self._by_category: Dict[str, List[MenuItem]] = {}
        self._recommended: List[MenuItem] = []
        self._custom_categories: List[str] = []

    def replace(self, menu: Dict[str, Any]) -> None:
        by_id: Dict[str, MenuItem] = {}
        by_category: Dict[str, List[MenuItem]] = {}
        recommended: List[MenuItem] = []

        for raw in iter_menu_entries(menu):
            try:
                item = MenuItem.model_validate(raw)
            except ValidationError as e:
                logger.warning("Skipping malformed menu entry %r: %s", raw.get("id"), e.errors()[:1])
                continue
            if not item.available:
                continue
            by_id[item.id] = item
            by_category.setdefault(item.category, []).append(item)
            if item.featured:
                recommended.append(item)

        for items in by_category.values():
            items.sort(key=lambda it: it.display_priority, reverse=True)

        self._by_id = by_id
        self._by_category = by_category
        self._recommended = recommended
        self._custom_categories = custom_category_names(menu)
        self.status = "ready"
        self.error = None
        logger.info("Menu replaced: %d items in %d categories", len(by_id), len(by_category))

    def fail(self, message: str) -> None:
        # Keep the last good items for lookups, but make the failure visible.
        self.status = "error"
        self.error = message
        logger.error("Menu feed failed: %s", message)

    def find(self, item_id: str) -> Optional[MenuItem]:
        iid = (item_id or "").strip()
        if not iid:
            return None
        return self._by_id.get(iid)

    def items(self, category: str = "all") -> List[MenuItem]:
        if category == "all":
            out: List[MenuItem] = []
            for name, _count in self.categories():
                out.extend(self._by_category.get(name, []))
            return out
        return list(self._by_category.get(category, []))

    def recommended(self) -> List[MenuItem]:
        return list(self._recommended)

    def categories(self) -> List[Tuple[str, int]]:
        """Default categories first, then custom ones, skipping empty ones."""
        names: List[str] = list(DEFAULT_CATEGORIES)
        for n in self._custom_categories + sorted(self._by_category):
            if n not in names:
                names.append(n)
        return [(n, len(self._by_category[n])) for n in names if self._by_category.get(n)]

    def __len__(self) -> int:
        return len(self._by_id)
