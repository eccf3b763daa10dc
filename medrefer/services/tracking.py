"""
Referral tracking numbers

Format: REF-<epoch millis from the 7th digit on>-<epoch millis mod 10000>
Uniqueness is not guaranteed here; the referrals table enforces it.
"""
import re
import time
from typing import Optional

TRACKING_NUMBER_PATTERN = re.compile(r"^REF-\d+-\d+$")


def generate_tracking_number(now_ms: Optional[int] = None) -> str:
    """
    Generate a timestamp-derived tracking number

    Args:
        now_ms: Epoch milliseconds to derive from (defaults to the current time)

    Returns:
        Tracking number string, e.g. "REF-2345678-5678"
    """
    timestamp = int(time.time() * 1000) if now_ms is None else int(now_ms)
    return f"REF-{str(timestamp)[6:]}-{timestamp % 10000}"


def is_tracking_number(value: str) -> bool:
    return bool(TRACKING_NUMBER_PATTERN.match(value or ""))
