# tableside/ordering/billing.py
from __future__ import annotations

import logging
import math
from datetime import timedelta
from typing import Iterable, Optional

from ..config import currency_symbol, settings
from ..errors import NothingToBill
from .cart import format_amount
from .schemas import Bill, Order, Session
from .session import Clock, SessionManager, format_elapsed, utcnow

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    # 12.5 -> 13, not banker's rounding
    return int(math.floor(value + 0.5))


class BillCalculator:
    """Derives the bill from session order history. Holds no state of its own."""

    def __init__(
        self,
        service_charge_rate: Optional[float] = None,
        gst_rate: Optional[float] = None,
        clock: Clock = utcnow,
    ) -> None:
        self.service_charge_rate = settings.service_charge_rate if service_charge_rate is None else service_charge_rate
        self.gst_rate = settings.gst_rate if gst_rate is None else gst_rate
        self.clock = clock

    def calculate(self, history: Iterable[Order], session: Optional[Session] = None) -> Bill:
        orders = tuple(history)

        subtotal = sum(o.total for o in orders)
        # Each stage is rounded before the next one uses it.
        service_charge = round_half_up(subtotal * self.service_charge_rate)
        gst = round_half_up((subtotal + service_charge) * self.gst_rate)
        total = subtotal + service_charge + gst

        now = self.clock()
        if session is not None:
            session_id, table = session.session_id, session.table_number
            duration = max(now - session.started_at, timedelta(0))
        else:
            session_id = orders[0].session_id if orders else ""
            table = orders[0].table_number if orders else None
            duration = None

        return Bill(
            session_id=session_id,
            table_number=table,
            subtotal=subtotal,
            service_charge=service_charge,
            gst=gst,
            total=total,
            item_count=sum(o.item_count for o in orders),
            orders=orders,
            generated_at=now,
            session_duration=duration,
        )

    def finalize(self, sessions: SessionManager, history: Iterable[Order]) -> Bill:
        orders = tuple(history)
        if not orders:
            raise NothingToBill()

        bill = self.calculate(orders, sessions.session)
        sessions.end_session()
        logger.info("Bill for %s finalized: %s over %d orders", bill.session_id, bill.total, len(orders))
        return bill


def share_text(bill: Bill, currency: Optional[str] = None) -> str:
    """Plain-text bill for the clipboard or a share sheet."""
    sym = currency_symbol(currency)
    lines = [
        "Restaurant Bill",
        "-----------------------",
        f"Date: {bill.generated_at.strftime('%d/%m/%Y')}",
        f"Time: {bill.generated_at.strftime('%H:%M:%S')}",
        f"Table: {bill.table_number or '-'}",
    ]
    if bill.session_duration is not None:
        lines.append(f"Session: {format_elapsed(bill.session_duration)}")
    lines += [
        "",
        f"Orders Placed: {bill.order_count}",
        f"Total Items: {bill.item_count}",
        f"Total Amount: {sym}{format_amount(bill.total)}",
        "",
        "Thank you for dining with us!",
    ]
    return "\n".join(lines)
