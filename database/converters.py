"""
Conversions between Python values and sqlite column values
"""
import json
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Optional


def to_db_time(value: Optional[datetime]) -> Optional[str]:
    # Fixed width so text comparisons in SQL follow time order
    if value is None:
        return None
    return value.replace(microsecond=0).isoformat(sep=" ")


def from_db_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


def from_db_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    return date.fromisoformat(value)


def from_db_clock(value: Optional[str]) -> Optional[time]:
    if not value:
        return None
    return time.fromisoformat(value)


def to_db_money(value: Optional[Decimal]) -> Optional[str]:
    if value is None:
        return None
    return str(Decimal(value).quantize(Decimal("0.01")))


def from_db_money(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value)).quantize(Decimal("0.01"))


def to_db_json(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


def from_db_json(value: Optional[str], default: Any = None) -> Any:
    if not value:
        return default
    return json.loads(value)
