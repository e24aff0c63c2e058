# tableside/diner.py
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, Protocol

from .config import settings
from .errors import OrderingError, UnsubmittedCart
from .ordering.billing import BillCalculator
from .ordering.cart import Cart
from .ordering.menu import MenuCatalog
from .ordering.menu_feed import MenuFeed
from .ordering.orders import OrderHistory, OrderPipeline
from .ordering.remote import OrderLog
from .ordering.schemas import Bill, CartLine, Order, Session
from .ordering.session import Clock, SessionManager, utcnow
from .ordering.store import DurableStore, KeyValueStore

logger = logging.getLogger(__name__)


class Presenter(Protocol):
    """What the core tells the presentation layer.

    Diner calls every hook. Subclass NullPresenter to override only some.
    """

    def cart_changed(self, cart: Cart) -> None: ...

    def order_placed(self, order: Order) -> None: ...

    def bill_ready(self, bill: Bill) -> None: ...

    def error(self, err: OrderingError) -> None: ...

    def menu_changed(self, catalog: MenuCatalog) -> None: ...

    def session_restored(self, session: Session, order_count: int) -> None: ...


class NullPresenter:
    def cart_changed(self, cart: Cart) -> None:
        pass

    def order_placed(self, order: Order) -> None:
        pass

    def bill_ready(self, bill: Bill) -> None:
        pass

    def error(self, err: OrderingError) -> None:
        pass

    def menu_changed(self, catalog: MenuCatalog) -> None:
        pass

    def session_restored(self, session: Session, order_count: int) -> None:
        pass


class Diner:
    """One dining visit on this device.

    Build exactly one per process and hand it to whatever needs it; nothing
    here is reachable through module globals.
    """

    def __init__(
        self,
        backend: KeyValueStore,
        log: OrderLog,
        restaurant_id: Optional[str] = None,
        presenter: Optional[Presenter] = None,
        clock: Clock = utcnow,
        calculator: Optional[BillCalculator] = None,
    ) -> None:
        self.store = DurableStore(backend)
        self.catalog = MenuCatalog()
        self.sessions = SessionManager(self.store, clock=clock)
        self.cart = Cart(self.store, self.catalog)
        self.history = OrderHistory(self.store)
        self.pipeline = OrderPipeline(self.history, log, restaurant_id or settings.restaurant_id, clock=clock)
        self.calculator = calculator or BillCalculator(clock=clock)
        self.presenter: Presenter = presenter or NullPresenter()
        self._cancel_feed: Optional[Callable[[], None]] = None

        self.sessions.on_end(self.cart.forget)
        self.sessions.on_end(self.history.forget)

    # -------------------
    # Session
    # -------------------
    @property
    def session(self) -> Session:
        return self.ensure_session()

    def ensure_session(self) -> Session:
        return self.sessions.session or self.sessions.get_or_create_session()

    def start(self, url: Optional[str] = None) -> Session:
        session = self.sessions.get_or_create_session()
        if url:
            self.sessions.restore_table_from_url(url)
            session = self.sessions.session or session
        if len(self.history):
            logger.info("Session restored with %d previous orders", len(self.history))
            self.presenter.session_restored(session, len(self.history))
        return session

    def select_table(self, n: int | str) -> bool:
        return self.sessions.set_table_number(n)

    # -------------------
    # Menu
    # -------------------
    def attach_feed(self, feed: MenuFeed) -> Callable[[], None]:
        if self._cancel_feed is not None:
            self._cancel_feed()
        self._cancel_feed = feed.subscribe(self._on_menu, self._on_menu_error)
        return self._cancel_feed

    def _on_menu(self, menu: Dict[str, Any]) -> None:
        self.catalog.replace(menu)
        self.presenter.menu_changed(self.catalog)

    def _on_menu_error(self, message: str) -> None:
        self.catalog.fail(message)
        self.presenter.menu_changed(self.catalog)

    # -------------------
    # Cart
    # -------------------
    def add_to_cart(self, item_id: str) -> CartLine:
        self.ensure_session()
        try:
            line = self.cart.add(item_id)
        except OrderingError as e:
            self.presenter.error(e)
            raise
        self.presenter.cart_changed(self.cart)
        return line

    def set_quantity(self, item_id: str, n: int) -> None:
        self.cart.set_quantity(item_id, n)
        self.presenter.cart_changed(self.cart)

    # -------------------
    # Orders & bill
    # -------------------
    async def place_order(self) -> Order:
        try:
            order = await self.pipeline.submit(self.cart, self.session)
        except OrderingError as e:
            self.presenter.error(e)
            raise
        self.presenter.cart_changed(self.cart)
        self.presenter.order_placed(order)
        return order

    def preview_bill(self) -> Bill:
        return self.calculator.calculate(self.history, self.session)

    def request_bill(self) -> Bill:
        self.ensure_session()
        try:
            if not self.cart.is_empty():
                raise UnsubmittedCart()
            bill = self.calculator.finalize(self.sessions, self.history.orders)
        except OrderingError as e:
            self.presenter.error(e)
            raise
        self.presenter.bill_ready(bill)
        return bill
