# tableside/config.py
from __future__ import annotations

import os

from dotenv import load_dotenv
from pydantic import BaseModel

# Load .env locally (safe in prod too)
load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, str(default))
    try:
        return float(raw)
    except ValueError:
        return default


# -------------------
# Config (env-driven)
# -------------------
class Settings(BaseModel):
    restaurant_id: str = os.getenv("RESTAURANT_ID", "restaurant_1").strip()

    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./data/tableside.db")
    order_log_url: str = os.getenv("ORDER_LOG_URL", "").strip()
    order_log_key: str = os.getenv("ORDER_LOG_KEY", "").strip()
    menu_path: str = os.getenv("MENU_PATH", "data/menu.json")
    public_base_url: str = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000/")

    currency: str = os.getenv("CURRENCY", "INR").strip().upper()

    # Tables 1..max are accepted; the picker only offers the first N.
    max_table_number: int = _env_int("MAX_TABLE_NUMBER", 50)
    table_picker_count: int = _env_int("TABLE_PICKER_COUNT", 30)

    service_charge_rate: float = _env_float("SERVICE_CHARGE_RATE", 0.10)
    gst_rate: float = _env_float("GST_RATE", 0.05)


settings = Settings()


def currency_symbol(code: str | None = None) -> str:
    cur = (code or settings.currency).upper()
    return {"INR": "₹", "GBP": "£", "USD": "$", "EUR": "€"}.get(cur, "")
