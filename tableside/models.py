# tableside/models.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, Text

from .db import Base


class KeyValue(Base):
    """Device-local durable state, one row per key."""

    __tablename__ = "kv_entries"
    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False, default="")
    updated_at = Column(DateTime, default=datetime.utcnow)


class RemoteOrder(Base):
    """Append-only kitchen log. Rows are inserted, never updated by this app."""

    __tablename__ = "remote_orders"
    id = Column(String, primary_key=True)
    restaurant_id = Column(String, index=True, nullable=False)
    session_id = Column(String, index=True, nullable=False)
    order_number = Column(Integer, nullable=False)
    table_number = Column(String, nullable=True)
    status = Column(String, default="pending")  # pending | preparing | served (kitchen side)
    created_at = Column(DateTime, default=datetime.utcnow)
    payload_json = Column(Text, default="{}")
