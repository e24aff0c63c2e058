# tableside/ordering/remote.py
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Protocol
from uuid import uuid4

import httpx
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..models import RemoteOrder
from .schemas import Order

logger = logging.getLogger(__name__)


class OrderLogError(RuntimeError):
    pass


class OrderLog(Protocol):
    async def append(self, order: Order) -> str: ...


def order_payload(order: Order) -> Dict[str, Any]:
    return order.model_dump(mode="json", exclude={"external_id"})


class SqlOrderLog:
    """Kitchen log kept in the `remote_orders` table (insert only)."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    async def append(self, order: Order) -> str:
        external_id = uuid4().hex
        row = RemoteOrder(
            id=external_id,
            restaurant_id=order.restaurant_id,
            session_id=order.session_id,
            order_number=order.order_number,
            table_number=order.table_number,
            status=order.status,
            created_at=order.created_at.replace(tzinfo=None),
            payload_json=json.dumps(order_payload(order), ensure_ascii=False),
        )
        try:
            await run_in_threadpool(self._insert, row)
        except SQLAlchemyError as e:
            raise OrderLogError(f"append failed: {e}") from e
        logger.info("Order #%d for %s logged as %s", order.order_number, order.session_id, external_id)
        return external_id

    def _insert(self, row: RemoteOrder) -> None:
        with self._session_factory() as db:
            db.add(row)
            db.commit()

    def list_for_session(self, session_id: str) -> List[Dict[str, Any]]:
        with self._session_factory() as db:
            rows = (
                db.query(RemoteOrder)
                .filter(RemoteOrder.session_id == session_id)
                .order_by(RemoteOrder.order_number.asc())
                .all()
            )
            return [{"id": r.id, **json.loads(r.payload_json or "{}")} for r in rows]


class HttpOrderLog:
    """Kitchen API client.

    POST {base}/restaurants/{restaurant_id}/orders -> {"id": "..."}
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout_s: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not base_url:
            raise OrderLogError("ORDER_LOG_URL is not set")
        self.base = base_url.rstrip("/")
        self.key = api_key
        self.timeout_s = timeout_s
        self.transport = transport

    def _headers(self) -> dict[str, str]:
        h = {"Content-Type": "application/json"}
        if self.key:
            h["X-API-KEY"] = self.key
        return h

    async def append(self, order: Order) -> str:
        url = f"{self.base}/restaurants/{order.restaurant_id}/orders"
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self.transport) as c:
                r = await c.post(url, headers=self._headers(), json=order_payload(order))
            r.raise_for_status()
            data = r.json()
        except (httpx.HTTPError, ValueError) as e:
            raise OrderLogError(f"append failed: {e}") from e

        external_id = data.get("id") if isinstance(data, dict) else None
        if not external_id:
            raise OrderLogError("append failed: response carried no order id")
        return str(external_id)
