import time
from decimal import Decimal
from typing import Any

WEI_PER_ETHER = 10 ** 18


def now_ts() -> float:
    # cooldowns never outlive the process, so a monotonic clock is enough
    return time.monotonic()


def to_quantity(value: int) -> str:
    if value < 0:
        raise ValueError("quantity must be >= 0")
    return hex(value)


def parse_quantity(value: Any) -> int:
    if isinstance(value, int):
        return value
    if not isinstance(value, str) or not value.startswith(("0x", "0X")):
        raise ValueError(f"invalid quantity: {value!r}")
    return int(value, 16)


def format_ether(wei: int) -> str:
    return f"{Decimal(wei) / WEI_PER_ETHER:f}"


def round_minutes(seconds: float) -> int:
    """Round a duration to the nearest whole minute, halves rounding up."""
    return int((seconds + 30) // 60)


def format_duration(seconds: float) -> str:
    minutes = round_minutes(seconds)
    if seconds > 0 and minutes == 0:
        minutes = 1
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h{minutes}m"
    return f"{minutes}m"
