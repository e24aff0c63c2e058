# tableside/ordering/cart.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from ..errors import ItemNotFound
from .menu import MenuCatalog
from .schemas import CartLine
from .store import CART_KEY, DurableStore

logger = logging.getLogger(__name__)


def load_cart(raw_lines: List[Any]) -> List[CartLine]:
    lines: List[CartLine] = []
    seen: set[str] = set()
    for raw in raw_lines:
        if not isinstance(raw, dict):
            continue
        try:
            line = CartLine.model_validate(raw)
        except ValidationError:
            logger.warning("Dropping malformed cart line %r", raw.get("item_id"))
            continue
        if line.item_id in seen:
            continue
        seen.add(line.item_id)
        lines.append(line)
    return lines


def dump_cart(lines: List[CartLine]) -> List[Dict[str, Any]]:
    return [line.model_dump(mode="json") for line in lines]


def cart_total(lines: List[CartLine]) -> float:
    return sum(line.unit_price * line.quantity for line in lines)


def format_amount(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:.2f}"


def build_summary(lines: List[CartLine], currency_symbol: str = "₹") -> Tuple[str, float]:
    if not lines:
        return ("Your cart is empty.", 0.0)

    rows: List[str] = []
    for i, line in enumerate(lines, start=1):
        rows.append(f"{i}. x{line.quantity} {line.name} = {currency_symbol}{format_amount(line.line_total)}")

    total = cart_total(lines)
    return ("Cart summary:\n" + "\n".join(rows) + f"\n\nTotal: {currency_symbol}{format_amount(total)}", total)


class Cart:
    """The diner's unsubmitted selection, persisted after every mutation."""

    def __init__(self, store: DurableStore, catalog: MenuCatalog) -> None:
        self.store = store
        self.catalog = catalog
        self._lines: List[CartLine] = load_cart(store.get_list(CART_KEY))

    def _find(self, item_id: str) -> Optional[CartLine]:
        for line in self._lines:
            if line.item_id == item_id:
                return line
        return None

    def _save(self) -> None:
        self.store.set_json(CART_KEY, dump_cart(self._lines))

    def add(self, item_id: str) -> CartLine:
        item = self.catalog.find(item_id)
        if item is None:
            logger.error("Item not found: %s", item_id)
            raise ItemNotFound(item_id)

        line = self._find(item.id)
        if line is not None:
            line.quantity += 1
        else:
            # snapshot: later menu price changes must not reach this line
            line = CartLine(
                item_id=item.id,
                name=item.name,
                unit_price=item.price,
                quantity=1,
                category=item.category,
                image_ref=item.image_url,
                description=item.description,
            )
            self._lines.append(line)

        self._save()
        logger.debug("Added to cart: %s (x%d)", line.name, line.quantity)
        return line.model_copy()

    def set_quantity(self, item_id: str, n: int) -> None:
        if n <= 0:
            self._lines = [line for line in self._lines if line.item_id != item_id]
        else:
            line = self._find(item_id)
            if line is not None:
                line.quantity = int(n)
        self._save()

    def increase(self, item_id: str) -> None:
        line = self._find(item_id)
        if line is not None:
            self.set_quantity(item_id, line.quantity + 1)

    def decrease(self, item_id: str) -> None:
        line = self._find(item_id)
        if line is not None:
            self.set_quantity(item_id, line.quantity - 1)

    def clear(self) -> None:
        self._lines = []
        self._save()

    def forget(self) -> None:
        """Drop in-memory lines after the store was purged."""
        self._lines = []

    def reload(self) -> None:
        self._lines = load_cart(self.store.get_list(CART_KEY))

    @property
    def lines(self) -> List[CartLine]:
        return [line.model_copy() for line in self._lines]

    @property
    def total(self) -> float:
        return cart_total(self._lines)

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self._lines)

    def is_empty(self) -> bool:
        return not self._lines

    def __len__(self) -> int:
        return len(self._lines)

    def summary(self, currency_symbol: str = "₹") -> str:
        text, _ = build_summary(self._lines, currency_symbol=currency_symbol)
        return text
