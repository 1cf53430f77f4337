"""
Manifest field names and the helpers that interpret their values.

Both the consignee index and the analytics reports go through these helpers,
so a weight or a lane is read the same way everywhere.
"""

import math
import re
from datetime import datetime, timezone
from typing import Mapping, Optional, Tuple

CONSIGNEE = "Consignee"
CARRIER_CODE = "Carrier Code"
COMMODITY = "Commodity"
PORT_OF_LADING = "Foreign Port of Lading"
PORT_OF_DESTINATION = "US Port of Destination"
PORT_OF_UNLADING = "US Port of Unlading"
WEIGHT_KG = "Weight (kg)"
ARRIVAL_DATE = "Arrival Date"

LANE_SEPARATOR = " → "

Record = Mapping[str, Optional[str]]

_LEADING_NUMBER = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

_DATE_FORMATS = ("%m/%d/%Y", "%Y/%m/%d", "%Y%m%d", "%m/%d/%Y %H:%M:%S", "%m/%d/%Y %H:%M")


def clean(value: Optional[str]) -> Optional[str]:
    """Return the trimmed value, or None when it is missing or blank."""
    if value is None:
        return None
    value = value.strip()
    return value or None


def parse_weight(value: Optional[str]) -> float:
    """
    Read a weight the lenient way: the leading decimal number counts.

    "12.5 kg" is 12.5, "N/A" is 0. Never raises.
    """
    if not value:
        return 0.0
    match = _LEADING_NUMBER.match(value.strip())
    if not match:
        return 0.0
    weight = float(match.group())
    return weight if math.isfinite(weight) else 0.0


def parse_arrival_date(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an arrival date into a naive UTC datetime.

    Returns None for anything that is not a recognised date.
    """
    value = clean(value)
    if value is None:
        return None

    parsed = None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        for fmt in _DATE_FORMATS:
            try:
                parsed = datetime.strptime(value, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def destination_port(record: Record) -> Optional[str]:
    """US Port of Destination, falling back to US Port of Unlading."""
    return clean(record.get(PORT_OF_DESTINATION)) or clean(record.get(PORT_OF_UNLADING))


def trade_lane(record: Record) -> Optional[Tuple[str, str]]:
    """(origin, destination) for the record, or None if either end is missing."""
    origin = clean(record.get(PORT_OF_LADING))
    destination = destination_port(record)
    if origin is None or destination is None:
        return None
    return origin, destination


def lane_label(lane: Tuple[str, str]) -> str:
    return f"{lane[0]}{LANE_SEPARATOR}{lane[1]}"


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves going up."""
    return int(math.floor(value + 0.5))
