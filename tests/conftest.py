from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from tableside.ordering.cart import Cart
from tableside.ordering.menu import MenuCatalog
from tableside.ordering.orders import OrderHistory, OrderPipeline
from tableside.ordering.remote import OrderLogError
from tableside.ordering.session import SessionManager
from tableside.ordering.store import DurableStore, MemoryStore

T0 = datetime(2026, 3, 14, 19, 30, 0, tzinfo=timezone.utc)

MENU = {
    "meta": {"slug": "dosa-cafe", "currency": "INR"},
    "categories": [{"id": "chef-specials", "name": "Chef Specials"}],
    "items": [
        {"id": "p1", "name": "Paneer Tikka", "price": 100, "category": "starters",
         "imageUrl": "img/p1.jpg", "displayPriority": 3},
        {"id": "p2", "name": "Masala Dosa", "price": 50, "category": "mains", "isBestseller": True},
        {"id": "p3", "name": "Sweet Lassi", "price": 30, "category": "beverages"},
        {"id": "p4", "name": "Mango Kulfi", "price": 60, "category": "desserts", "available": False},
        {"id": "p5", "name": "Hara Bhara Kabab", "price": 90, "category": "starters",
         "displayPriority": 9, "isNew": True},
        {"id": "p6", "name": "Ghee Roast", "price": 140, "category": "chef-specials"},
    ],
}


class FakeClock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FakeOrderLog:
    """Kitchen log double: records appends, can fail or hold the next call."""

    def __init__(self) -> None:
        self.appended = []
        self.fail_next = 0
        self.gate: asyncio.Event | None = None

    async def append(self, order) -> str:
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_next:
            self.fail_next -= 1
            raise OrderLogError("kitchen unreachable")
        self.appended.append(order)
        return f"ext-{len(self.appended)}"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def store(backend) -> DurableStore:
    return DurableStore(backend)


@pytest.fixture
def catalog() -> MenuCatalog:
    c = MenuCatalog()
    c.replace(MENU)
    return c


@pytest.fixture
def sessions(store, clock) -> SessionManager:
    return SessionManager(store, clock=clock)


@pytest.fixture
def cart(store, catalog) -> Cart:
    return Cart(store, catalog)


@pytest.fixture
def history(store) -> OrderHistory:
    return OrderHistory(store)


@pytest.fixture
def order_log() -> FakeOrderLog:
    return FakeOrderLog()


@pytest.fixture
def pipeline(history, order_log, clock) -> OrderPipeline:
    return OrderPipeline(history, order_log, "restaurant_1", clock=clock)
