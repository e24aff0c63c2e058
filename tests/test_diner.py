from __future__ import annotations

import asyncio

import pytest

from tableside.diner import Diner, NullPresenter
from tableside.errors import ItemNotFound, NothingToBill, SubmissionFailed, UnsubmittedCart
from tableside.ordering.billing import BillCalculator
from tableside.ordering.menu_feed import MenuFeed

from .conftest import MENU


class RecordingPresenter(NullPresenter):
    def __init__(self) -> None:
        self.events = []

    def cart_changed(self, cart):
        self.events.append(("cart", cart.item_count))

    def order_placed(self, order):
        self.events.append(("order", order.order_number))

    def bill_ready(self, bill):
        self.events.append(("bill", bill.total))

    def error(self, err):
        self.events.append(("error", type(err).__name__, err.surfaced))

    def menu_changed(self, catalog):
        self.events.append(("menu", catalog.status))

    def session_restored(self, session, order_count):
        self.events.append(("restored", order_count))


@pytest.fixture
def feed():
    f = MenuFeed()
    f.publish(MENU)
    return f


def _diner(backend, order_log, clock, presenter=None):
    return Diner(
        backend,
        order_log,
        restaurant_id="restaurant_1",
        presenter=presenter,
        clock=clock,
        calculator=BillCalculator(0.10, 0.05, clock=clock),
    )


def test_full_visit(backend, order_log, clock, feed):
    presenter = RecordingPresenter()
    diner = _diner(backend, order_log, clock, presenter)
    diner.attach_feed(feed)
    first = diner.start("https://menu.test/?table=12")
    assert first.table_number == "12"

    diner.add_to_cart("p1")
    diner.add_to_cart("p1")
    diner.add_to_cart("p2")
    asyncio.run(diner.place_order())
    diner.add_to_cart("p3")
    asyncio.run(diner.place_order())

    assert diner.preview_bill().total == 323
    bill = diner.request_bill()
    assert bill.total == 323
    assert ("bill", 323) in presenter.events
    assert ("order", 2) in presenter.events

    assert diner.cart.is_empty()
    assert len(diner.history) == 0
    assert backend.keys() == []
    second = diner.start()
    assert second.session_id != first.session_id
    assert second.table_number is None


def test_menu_events_reach_presenter(backend, order_log, clock):
    presenter = RecordingPresenter()
    diner = _diner(backend, order_log, clock, presenter)
    feed = MenuFeed()
    diner.attach_feed(feed)
    feed.fail("Failed to load menu items. Please refresh the page.")
    feed.publish(MENU)
    assert presenter.events == [("menu", "error"), ("menu", "ready")]


def test_reattaching_feed_cancels_previous(backend, order_log, clock, feed):
    diner = _diner(backend, order_log, clock)
    diner.attach_feed(feed)
    diner.attach_feed(feed)
    assert feed.subscriber_count == 1


def test_restored_session_is_reported(backend, order_log, clock, feed):
    diner = _diner(backend, order_log, clock)
    diner.attach_feed(feed)
    diner.start()
    diner.select_table(3)
    diner.add_to_cart("p2")
    asyncio.run(diner.place_order())
    diner.add_to_cart("p3")

    presenter = RecordingPresenter()
    reloaded = _diner(backend, order_log, clock, presenter)
    reloaded.attach_feed(feed)
    session = reloaded.start()
    assert session.session_id == diner.session.session_id
    assert ("restored", 1) in presenter.events
    assert [l.item_id for l in reloaded.cart.lines] == ["p3"]
    assert reloaded.history.next_order_number == 2


def test_bill_refused_with_items_in_cart(backend, order_log, clock, feed):
    presenter = RecordingPresenter()
    diner = _diner(backend, order_log, clock, presenter)
    diner.attach_feed(feed)
    diner.start("https://menu.test/?table=1")

    with pytest.raises(NothingToBill):
        diner.request_bill()

    diner.add_to_cart("p1")
    with pytest.raises(UnsubmittedCart):
        diner.request_bill()
    assert len(diner.cart) == 1
    assert ("error", "UnsubmittedCart", True) in presenter.events


def test_errors_are_reported_then_raised(backend, order_log, clock, feed):
    presenter = RecordingPresenter()
    diner = _diner(backend, order_log, clock, presenter)
    diner.attach_feed(feed)
    diner.start("https://menu.test/?table=8")

    with pytest.raises(ItemNotFound):
        diner.add_to_cart("ghost")

    diner.add_to_cart("p1")
    order_log.fail_next = 1
    with pytest.raises(SubmissionFailed):
        asyncio.run(diner.place_order())
    assert ("error", "ItemNotFound", True) in presenter.events
    assert ("error", "SubmissionFailed", True) in presenter.events
    assert asyncio.run(diner.place_order()).order_number == 1


def test_works_without_presenter(backend, order_log, clock, feed):
    diner = _diner(backend, order_log, clock)
    diner.attach_feed(feed)
    diner.start()
    diner.set_quantity("p1", 3)
    diner.add_to_cart("p1")
    assert diner.cart.item_count == 1


def test_partial_presenter_only_overrides_what_it_needs(backend, order_log, clock, feed):
    class BillOnly(NullPresenter):
        def __init__(self) -> None:
            self.bills = []

        def bill_ready(self, bill):
            self.bills.append(bill.total)

    presenter = BillOnly()
    diner = _diner(backend, order_log, clock, presenter)
    diner.attach_feed(feed)
    diner.start("https://menu.test/?table=5")
    diner.add_to_cart("p3")
    asyncio.run(diner.place_order())
    diner.request_bill()
    assert presenter.bills == [35]
