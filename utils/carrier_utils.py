"""
Carrier detection from tracking numbers.
"""

from typing import Optional

from config.carriers import CARRIER_PATTERNS


def classify_carrier(tracking_number: Optional[str]) -> str:
    """
    Guess the carrier that issued a tracking number.

    Best-effort hint only: the rules in config.carriers overlap, and the
    first matching rule wins.

    "ZTO12345678901" -> "中通"
    "yt894185215852" -> "圆通" (case-insensitive)
    "98574940403" -> "" (unrecognized)

    Args:
        tracking_number: Raw tracking number (may be None or padded)

    Returns:
        Carrier name, or "" when no rule matches
    """
    if not tracking_number:
        return ""

    normalized = str(tracking_number).strip().upper()

    for carrier, pattern in CARRIER_PATTERNS:
        if pattern.match(normalized):
            return carrier

    return ""
