# tableside/main.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from pydantic import BaseModel

from .config import currency_symbol, settings
from .db import default_session_factory
from .diner import Diner
from .errors import (
    EmptyCart,
    ItemNotFound,
    NoTable,
    NothingToBill,
    OrderingError,
    SubmissionFailed,
    SubmissionInProgress,
    UnsubmittedCart,
)
from .ordering.billing import share_text
from .ordering.menu_feed import FileMenuFeed, MenuFeed
from .ordering.remote import HttpOrderLog, SqlOrderLog
from .ordering.schemas import Bill
from .ordering.session import format_elapsed
from .ordering.store import SqlStore

logger = logging.getLogger(__name__)


# -------------------
# Schemas
# -------------------
class StartIn(BaseModel):
    url: Optional[str] = None


class TableIn(BaseModel):
    table: int


class AddItemIn(BaseModel):
    item_id: str


class QuantityIn(BaseModel):
    quantity: int


# -------------------
# Helpers
# -------------------
_STATUS_BY_ERROR = {
    ItemNotFound: 404,
    EmptyCart: 400,
    NoTable: 400,
    NothingToBill: 400,
    UnsubmittedCart: 400,
    SubmissionInProgress: 409,
    SubmissionFailed: 502,
}


def _http_error(err: OrderingError) -> HTTPException:
    status = _STATUS_BY_ERROR.get(type(err), 400)
    return HTTPException(
        status_code=status,
        detail={"error": type(err).__name__, "message": err.user_message, "retryable": err.retryable},
    )


def build_default_diner() -> tuple[Diner, MenuFeed]:
    factory = default_session_factory()
    if settings.order_log_url:
        log = HttpOrderLog(settings.order_log_url, settings.order_log_key)
    else:
        log = SqlOrderLog(factory)
    logger.info("Kitchen order log: %s", type(log).__name__)

    diner = Diner(SqlStore(factory), log)
    feed = FileMenuFeed(settings.menu_path)
    diner.attach_feed(feed)
    feed.refresh()
    return diner, feed


def _ensure_diner(app: FastAPI) -> Diner:
    state = app.state
    if getattr(state, "diner", None) is None:
        state.diner, state.feed = build_default_diner()
        state.diner.start()
    return state.diner


async def get_diner(request: Request) -> Diner:
    # async so the Diner is only ever touched from the event loop thread
    return _ensure_diner(request.app)


def _session_out(diner: Diner) -> Dict[str, Any]:
    s = diner.session
    return {
        "session_id": s.session_id,
        "started_at": s.started_at.isoformat(),
        "active": s.active,
        "table_number": s.table_number,
        "elapsed": format_elapsed(diner.sessions.elapsed()),
        "share_url": diner.sessions.share_url(),
        "order_count": len(diner.history),
    }


def _cart_out(diner: Diner) -> Dict[str, Any]:
    return {
        "items": [line.model_dump(mode="json") for line in diner.cart.lines],
        "total": diner.cart.total,
        "item_count": diner.cart.item_count,
        "summary": diner.cart.summary(currency_symbol()),
    }


def _bill_out(bill: Bill) -> Dict[str, Any]:
    return {"bill": bill.model_dump(mode="json"), "share_text": share_text(bill)}


def create_app(diner: Optional[Diner] = None, feed: Optional[MenuFeed] = None) -> FastAPI:
    app = FastAPI(
        title="Tableside Ordering API",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.diner = diner
    app.state.feed = feed

    @app.on_event("startup")
    async def on_startup():
        _ensure_diner(app)

    # -------------------
    # Health
    # -------------------
    @app.get("/")
    async def root():
        return {"ok": True, "service": "tableside", "restaurant": settings.restaurant_id}

    # -------------------
    # Session
    # -------------------
    @app.get("/session")
    async def session(d: Diner = Depends(get_diner)):
        return _session_out(d)

    @app.post("/session")
    async def start_session(payload: StartIn, d: Diner = Depends(get_diner)):
        d.start(payload.url)
        return _session_out(d)

    @app.post("/session/table")
    async def select_table(payload: TableIn, d: Diner = Depends(get_diner)):
        if not d.select_table(payload.table):
            raise HTTPException(status_code=400, detail="Invalid or already selected table number")
        return _session_out(d)

    # -------------------
    # Menu
    # -------------------
    @app.get("/menu")
    async def menu(d: Diner = Depends(get_diner)):
        catalog = d.catalog
        if catalog.status == "error":
            raise HTTPException(status_code=503, detail=catalog.error or "Menu unavailable")
        return {
            "status": catalog.status,
            "categories": [{"name": n, "count": c} for n, c in catalog.categories()],
            "items": [it.model_dump(mode="json") for it in catalog.items()],
            "recommended": [it.id for it in catalog.recommended()],
        }

    @app.post("/menu/refresh")
    async def refresh_menu(request: Request, d: Diner = Depends(get_diner)):
        feed = request.app.state.feed
        if isinstance(feed, FileMenuFeed):
            feed.refresh()
        return {"status": d.catalog.status, "error": d.catalog.error, "items": len(d.catalog)}

    # -------------------
    # Cart
    # -------------------
    @app.get("/cart")
    async def cart(d: Diner = Depends(get_diner)):
        return _cart_out(d)

    @app.post("/cart/items")
    async def add_item(payload: AddItemIn, d: Diner = Depends(get_diner)):
        try:
            d.add_to_cart(payload.item_id)
        except OrderingError as e:
            raise _http_error(e) from e
        return _cart_out(d)

    @app.put("/cart/items/{item_id}")
    async def set_quantity(item_id: str, payload: QuantityIn, d: Diner = Depends(get_diner)):
        d.set_quantity(item_id, payload.quantity)
        return _cart_out(d)

    # -------------------
    # Orders
    # -------------------
    @app.get("/orders")
    async def orders(d: Diner = Depends(get_diner)):
        return {"orders": [o.model_dump(mode="json") for o in d.history]}

    @app.post("/orders")
    async def place_order(d: Diner = Depends(get_diner)):
        try:
            order = await d.place_order()
        except OrderingError as e:
            raise _http_error(e) from e
        return {"ok": True, "order": order.model_dump(mode="json")}

    # -------------------
    # Bill
    # -------------------
    @app.get("/bill")
    async def preview_bill(d: Diner = Depends(get_diner)):
        return _bill_out(d.preview_bill())

    @app.post("/bill")
    async def request_bill(d: Diner = Depends(get_diner)):
        try:
            bill = d.request_bill()
        except OrderingError as e:
            raise _http_error(e) from e
        return _bill_out(bill)

    return app


app = create_app()
