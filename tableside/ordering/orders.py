# tableside/ordering/orders.py
from __future__ import annotations

import logging
from typing import Any, List, Tuple

from pydantic import ValidationError

from ..errors import EmptyCart, NoTable, SubmissionFailed, SubmissionInProgress
from .cart import Cart, cart_total
from .remote import OrderLog
from .schemas import Order, OrderLine, Session
from .session import Clock, utcnow
from .store import ORDERS_KEY, DurableStore

logger = logging.getLogger(__name__)


def load_orders(raw_orders: List[Any]) -> List[Order]:
    orders: List[Order] = []
    for raw in raw_orders:
        if not isinstance(raw, dict):
            continue
        try:
            orders.append(Order.model_validate(raw))
        except ValidationError:
            logger.warning("Dropping malformed session order %r", raw.get("order_number"))
    return orders


class OrderHistory:
    """Orders placed in the current session, oldest first. Append only."""

    def __init__(self, store: DurableStore) -> None:
        self.store = store
        self._orders: List[Order] = load_orders(store.get_list(ORDERS_KEY))

    def append(self, order: Order) -> None:
        self._orders.append(order)
        self.store.set_json(ORDERS_KEY, [o.model_dump(mode="json") for o in self._orders])

    @property
    def orders(self) -> Tuple[Order, ...]:
        return tuple(self._orders)

    @property
    def next_order_number(self) -> int:
        return len(self._orders) + 1

    @property
    def total(self) -> float:
        return sum(o.total for o in self._orders)

    @property
    def item_count(self) -> int:
        return sum(o.item_count for o in self._orders)

    def forget(self) -> None:
        self._orders = []

    def reload(self) -> None:
        self._orders = load_orders(self.store.get_list(ORDERS_KEY))

    def __len__(self) -> int:
        return len(self._orders)

    def __iter__(self):
        return iter(self._orders)


class OrderPipeline:
    """Turns the cart into an immutable order on the kitchen log.

    At most one submission is in flight; `state` is "idle" or "submitting".
    """

    def __init__(
        self,
        history: OrderHistory,
        log: OrderLog,
        restaurant_id: str,
        clock: Clock = utcnow,
    ) -> None:
        self.history = history
        self.log = log
        self.restaurant_id = restaurant_id
        self.clock = clock
        self.state = "idle"

    @property
    def submitting(self) -> bool:
        return self.state == "submitting"

    async def submit(self, cart: Cart, session: Session) -> Order:
        if cart.is_empty():
            raise EmptyCart()
        if not session.table_number:
            raise NoTable()
        if self.submitting:
            logger.debug("Submission already in flight for %s; dropped", session.session_id)
            raise SubmissionInProgress()

        self.state = "submitting"
        try:
            items = tuple(OrderLine.model_validate(line.model_dump()) for line in cart.lines)
            order = Order(
                session_id=session.session_id,
                table_number=session.table_number,
                items=items,
                status="pending",
                created_at=self.clock(),
                total=cart_total(list(items)),
                order_number=self.history.next_order_number,
                restaurant_id=self.restaurant_id,
            )

            logger.info("Placing order #%d for table %s", order.order_number, order.table_number)
            try:
                external_id = await self.log.append(order)
            except Exception as e:
                logger.error("Order #%d failed: %s", order.order_number, e)
                raise SubmissionFailed(str(e)) from e

            placed = order.model_copy(update={"external_id": external_id})
            self.history.append(placed)
            cart.clear()
            logger.info("Order #%d placed (%s)", placed.order_number, external_id)
            return placed
        finally:
            self.state = "idle"
