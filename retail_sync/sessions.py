"""Deterministic session ids, one per store + date (+ zone) and submission type."""

from datetime import datetime
from zoneinfo import ZoneInfo

TW_TZ = ZoneInfo("Asia/Taipei")


def inventory_session_id(store_id: str, date: str, zone_code: str = "") -> str:
    zone = zone_code.lower() if zone_code else ""
    return f"{store_id}_{date}_{zone}" if zone else f"{store_id}_{date}"


def order_session_id(store_id: str, date: str) -> str:
    return f"{store_id}_{date}"


def settlement_session_id(store_id: str, date: str) -> str:
    return f"{store_id}_{date}"


def shipment_session_id(store_id: str, date: str) -> str:
    return f"{store_id}_{date}"


def material_stock_session_id(date: str) -> str:
    return f"kitchen_{date}"


def material_order_session_id(date: str) -> str:
    return f"kitchen_{date}"


def today_tw(now: datetime | None = None) -> str:
    """YYYY-MM-DD in Asia/Taipei."""
    now = now or datetime.now(TW_TZ)
    if now.tzinfo is None:
        raise ValueError("now must be timezone-aware")
    return now.astimezone(TW_TZ).strftime("%Y-%m-%d")
