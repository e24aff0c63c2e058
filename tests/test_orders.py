from __future__ import annotations

import asyncio
import json
import threading

import httpx
import pytest
from pydantic import ValidationError

from tableside.db import make_engine, make_session_factory
from tableside.errors import EmptyCart, NoTable, SubmissionFailed, SubmissionInProgress
from tableside.ordering.orders import OrderHistory, OrderPipeline
from tableside.ordering.remote import HttpOrderLog, OrderLogError, SqlOrderLog
from tableside.ordering.store import CART_KEY, ORDERS_KEY


@pytest.fixture
def seated(sessions):
    sessions.get_or_create_session()
    sessions.set_table_number(12)
    return sessions.session


def test_worked_example(cart, seated, pipeline, history, backend):
    cart.add("p1")
    cart.add("p1")
    cart.add("p2")

    first = asyncio.run(pipeline.submit(cart, seated))
    assert first.total == 250
    assert first.order_number == 1
    assert first.external_id == "ext-1"
    assert first.status == "pending"
    assert first.table_number == "12"
    assert first.session_id == seated.session_id
    assert first.restaurant_id == "restaurant_1"
    assert cart.is_empty()
    assert json.loads(backend.get(CART_KEY)) == []

    cart.add("p3")
    second = asyncio.run(pipeline.submit(cart, seated))
    assert second.total == 30
    assert second.order_number == 2

    assert [o.order_number for o in history] == [1, 2]
    stored = json.loads(backend.get(ORDERS_KEY))
    assert [o["external_id"] for o in stored] == ["ext-1", "ext-2"]


def test_preconditions_in_order(cart, sessions, pipeline):
    session = sessions.get_or_create_session()
    with pytest.raises(EmptyCart):
        asyncio.run(pipeline.submit(cart, session))

    cart.add("p1")
    with pytest.raises(NoTable):
        asyncio.run(pipeline.submit(cart, session))
    assert len(cart) == 1


def test_second_submit_while_in_flight_is_rejected(cart, seated, pipeline, order_log):
    cart.add("p2")

    async def scenario():
        order_log.gate = asyncio.Event()
        first = asyncio.create_task(pipeline.submit(cart, seated))
        await asyncio.sleep(0)
        assert pipeline.state == "submitting"
        with pytest.raises(SubmissionInProgress):
            await pipeline.submit(cart, seated)
        order_log.gate.set()
        return await first

    order = asyncio.run(scenario())
    assert order.order_number == 1
    assert pipeline.state == "idle"
    assert len(order_log.appended) == 1


def test_failed_submit_rolls_back_and_releases_guard(cart, seated, pipeline, history, order_log, backend):
    cart.add("p1")
    cart.add("p3")
    cart_before = backend.get(CART_KEY)
    total_before = cart.total

    order_log.fail_next = 1
    with pytest.raises(SubmissionFailed) as exc:
        asyncio.run(pipeline.submit(cart, seated))
    assert exc.value.retryable

    assert pipeline.state == "idle"
    assert backend.get(CART_KEY) == cart_before
    assert cart.total == total_before
    assert len(history) == 0
    assert backend.get(ORDERS_KEY) is None

    retried = asyncio.run(pipeline.submit(cart, seated))
    assert retried.order_number == 1
    assert retried.total == 130


def test_order_numbers_stay_gap_free_across_failures(cart, seated, pipeline, order_log):
    numbers = []
    for attempt in range(6):
        cart.add("p3")
        if attempt % 2:
            order_log.fail_next = 2
            for _ in range(2):
                with pytest.raises(SubmissionFailed):
                    asyncio.run(pipeline.submit(cart, seated))
        numbers.append(asyncio.run(pipeline.submit(cart, seated)).order_number)
    assert numbers == [1, 2, 3, 4, 5, 6]


def test_submitted_order_is_a_snapshot(cart, seated, pipeline):
    cart.add("p1")
    order = asyncio.run(pipeline.submit(cart, seated))

    cart.add("p1")
    cart.add("p1")
    assert order.items[0].quantity == 1
    assert order.total == 100


def test_placed_orders_are_read_only(cart, seated, pipeline, history):
    cart.add("p1")
    asyncio.run(pipeline.submit(cart, seated))

    with pytest.raises(ValidationError):
        history.orders[0].items[0].quantity = 50
    with pytest.raises(ValidationError):
        history.orders[0].total = 1
    assert history.orders[0].items[0].quantity == 1
    assert history.total == 100


def test_history_reload_and_corruption(store, backend, cart, seated, pipeline):
    cart.add("p2")
    asyncio.run(pipeline.submit(cart, seated))
    assert len(OrderHistory(store)) == 1
    assert OrderHistory(store).next_order_number == 2

    backend.set(ORDERS_KEY, "{{{")
    assert len(OrderHistory(store)) == 0


def test_sql_order_log_is_append_only(tmp_path, cart, seated, history, clock):
    log = SqlOrderLog(make_session_factory(make_engine(f"sqlite:///{tmp_path}/kitchen.db")))
    pipeline = OrderPipeline(history, log, "restaurant_1", clock=clock)

    cart.add("p1")
    first = asyncio.run(pipeline.submit(cart, seated))
    cart.add("p6")
    second = asyncio.run(pipeline.submit(cart, seated))

    rows = log.list_for_session(seated.session_id)
    assert [r["id"] for r in rows] == [first.external_id, second.external_id]
    assert [r["order_number"] for r in rows] == [1, 2]
    assert rows[1]["items"][0]["item_id"] == "p6"


def test_sql_order_log_writes_off_the_event_loop(tmp_path, cart, seated, history, clock):
    threads = []

    class RecordingSqlOrderLog(SqlOrderLog):
        def _insert(self, row):
            threads.append(threading.get_ident())
            super()._insert(row)

    log = RecordingSqlOrderLog(make_session_factory(make_engine(f"sqlite:///{tmp_path}/kitchen.db")))
    cart.add("p3")
    asyncio.run(OrderPipeline(history, log, "restaurant_1", clock=clock).submit(cart, seated))

    assert len(threads) == 1
    assert threads[0] != threading.get_ident()


def test_http_order_log(cart, seated, history, clock):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["key"] = request.headers.get("X-API-KEY")
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"id": "kitchen-77"})

    log = HttpOrderLog("https://kitchen.test/api/", api_key="k1", transport=httpx.MockTransport(handler))
    pipeline = OrderPipeline(history, log, "restaurant_1", clock=clock)
    cart.add("p2")
    order = asyncio.run(pipeline.submit(cart, seated))

    assert order.external_id == "kitchen-77"
    assert seen["url"] == "https://kitchen.test/api/restaurants/restaurant_1/orders"
    assert seen["key"] == "k1"
    assert seen["body"]["order_number"] == 1
    assert "external_id" not in seen["body"]


def test_http_order_log_failure_is_retryable(cart, seated, history, clock):
    log = HttpOrderLog(
        "https://kitchen.test",
        transport=httpx.MockTransport(lambda request: httpx.Response(503, json={"detail": "busy"})),
    )
    pipeline = OrderPipeline(history, log, "restaurant_1", clock=clock)
    cart.add("p2")
    with pytest.raises(SubmissionFailed) as exc:
        asyncio.run(pipeline.submit(cart, seated))
    assert isinstance(exc.value.__cause__, OrderLogError)
    assert len(cart) == 1


def test_http_order_log_needs_url():
    with pytest.raises(OrderLogError):
        HttpOrderLog("")
