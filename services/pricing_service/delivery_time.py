# CREATE FILE: services/pricing_service/delivery_time.py

import math
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Dict, Any, Optional

DEFAULT_DISH_MINUTES = 5
MAX_PREPARATION_MINUTES = 90
MAX_TRAVEL_MINUTES = 240
SLOWEST_DISH_WEIGHT = 0.7

MINUTES_PER_HOUR = 60
MINUTES_PER_DAY = 1440
MINUTES_PER_MONTH = 43200

_MIN_RE = re.compile(r"^(\d+)min$")
_HR_MIN_RE = re.compile(r"^(\d+)hr(\d+)min$")
_HR_RE = re.compile(r"^(\d+)hr$")
_NUM_RE = re.compile(r"^(\d+)$")


@dataclass(frozen=True)
class PreparationTime:
    """Parsed dish preparation time.

    ``source`` is ``"empty"`` (nothing recorded), ``"parsed"`` or
    ``"unparsed"`` (text present but not understood).
    """
    minutes: int
    source: str

    @property
    def effective_minutes(self) -> int:
        # No data, "ready now" and garbage all get the same floor
        return self.minutes if self.minutes > 0 else DEFAULT_DISH_MINUTES


@dataclass(frozen=True)
class RestaurantItem:
    preparation_time_text: Optional[str] = ""
    quantity: int = 1


@dataclass(frozen=True)
class DeliveryEstimate:
    timestamp: datetime
    travel_minutes: int
    processing_minutes: int

    @property
    def total_minutes(self) -> int:
        return self.travel_minutes + self.processing_minutes

    @property
    def iso_timestamp(self) -> str:
        return self.timestamp.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def read_preparation_time(text: Optional[str]) -> PreparationTime:
    if not text or not text.strip():
        return PreparationTime(0, "empty")

    clean = text.strip().lower()

    match = _MIN_RE.match(clean)
    if match:
        return PreparationTime(int(match.group(1)), "parsed")

    match = _HR_MIN_RE.match(clean)
    if match:
        return PreparationTime(int(match.group(1)) * 60 + int(match.group(2)), "parsed")

    match = _HR_RE.match(clean)
    if match:
        return PreparationTime(int(match.group(1)) * 60, "parsed")

    match = _NUM_RE.match(clean)
    if match:
        return PreparationTime(int(match.group(1)), "parsed")

    return PreparationTime(0, "unparsed")


def parse_preparation_time(text: Optional[str]) -> int:
    """Minutes for "15min", "1hr", "2hr30min" or "45"; 0 for empty or unknown text."""
    return read_preparation_time(text).minutes


def format_preparation_time(text: Optional[str]) -> str:
    minutes = parse_preparation_time(text)

    if minutes == 0:
        return "Ready now"
    if minutes < 60:
        return f"{minutes} min"

    hours, remaining = divmod(minutes, 60)
    if remaining == 0:
        return f"{hours}h"
    return f"{hours}h {remaining}min"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def aggregate_minutes(times: List[int]) -> int:
    """
    Combine per-dish minutes for dishes cooked in parallel.

    The slowest dish dominates; faster dishes add their mean (weighted 0.7
    when the slowest dish takes more than 30 minutes). Capped at 90 minutes.
    """
    if not times:
        return 0
    if len(times) == 1:
        return min(times[0], MAX_PREPARATION_MINUTES)

    max_time = max(times)
    lower_times = [t for t in times if t < max_time]

    if not lower_times:
        total = max_time
    else:
        avg_lower = sum(lower_times) / len(lower_times)
        if max_time > 30:
            total = _round_half_up(max_time + SLOWEST_DISH_WEIGHT * avg_lower)
        else:
            total = _round_half_up(max_time + avg_lower)

    return min(total, MAX_PREPARATION_MINUTES)


def aggregate_preparation_time(items: List[RestaurantItem]) -> int:
    times = [read_preparation_time(item.preparation_time_text).effective_minutes for item in items]
    return aggregate_minutes(times)


def compute_travel_minutes(distance_km: float, altitude_delta_meters: float = 0) -> int:
    alt_km = (altitude_delta_meters or 0) / 1000
    distance_3d = math.sqrt(distance_km ** 2 + alt_km ** 2)
    # 1 km is roughly one minute of travel
    return min(math.ceil(distance_3d), MAX_TRAVEL_MINUTES)


def estimate_delivery_timestamp(distance_km: float, altitude_delta_meters: float,
                                is_food_order: bool, prep_or_shop_minutes: int,
                                now: datetime = None) -> DeliveryEstimate:
    """Absolute delivery instant: now + travel time + preparation/shopping time.

    ``prep_or_shop_minutes`` is the aggregated preparation time for food
    orders and the configured shopping time otherwise.
    """
    now = now or datetime.now(timezone.utc)
    travel_minutes = compute_travel_minutes(distance_km, altitude_delta_meters)
    processing_minutes = int(prep_or_shop_minutes)

    return DeliveryEstimate(
        timestamp=now + timedelta(minutes=travel_minutes + processing_minutes),
        travel_minutes=travel_minutes,
        processing_minutes=processing_minutes,
    )


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'}"


def format_duration(total_minutes: int) -> str:
    total_minutes = max(0, int(total_minutes))

    if total_minutes < MINUTES_PER_HOUR:
        return _plural(total_minutes, "minute")

    if total_minutes < MINUTES_PER_DAY:
        hours, minutes = divmod(total_minutes, MINUTES_PER_HOUR)
        text = _plural(hours, "hour")
        return f"{text} {_plural(minutes, 'minute')}" if minutes else text

    if total_minutes < MINUTES_PER_MONTH:
        days, rest = divmod(total_minutes, MINUTES_PER_DAY)
        hours = rest // MINUTES_PER_HOUR
        text = _plural(days, "day")
        return f"{text} {_plural(hours, 'hour')}" if hours else text

    months, rest = divmod(total_minutes, MINUTES_PER_MONTH)
    days = rest // MINUTES_PER_DAY
    text = _plural(months, "month")
    return f"{text} {_plural(days, 'day')}" if days else text


def format_delivery_label(total_minutes: int, is_food_order: bool, prep_minutes: int,
                          travel_minutes: int, distance_km: float) -> str:
    duration = format_duration(total_minutes)

    if not is_food_order:
        return f"Will be delivered in {duration}"

    return (f"Delivered in {duration} "
            f"({prep_minutes} min prep + {travel_minutes} min delivery, {distance_km:.1f} km)")


def describe_time_remaining(estimated: datetime, now: datetime = None) -> str:
    """Tracking text for an order, e.g. "Delivery in 1h 5m" or "Delayed by 2 days"."""
    now = now or datetime.now(timezone.utc)
    diff_seconds = (estimated - now).total_seconds()

    prefix = "Delivery in" if diff_seconds >= 0 else "Delayed by"
    remaining = int(abs(diff_seconds) // 60)

    days, rest = divmod(remaining, MINUTES_PER_DAY)
    hours, minutes = divmod(rest, MINUTES_PER_HOUR)

    if days > 0:
        return f"{prefix} {_plural(days, 'day')}{f' {hours}h' if hours else ''}"
    if hours > 0:
        return f"{prefix} {hours}h{f' {minutes}m' if minutes else ''}"
    return f"{prefix} {_plural(minutes, 'minute')}"


def summarize_items(items: List[RestaurantItem]) -> List[Dict[str, Any]]:
    return [
        {
            "preparation_time_text": item.preparation_time_text or "",
            "quantity": item.quantity,
            "minutes": parsed.minutes,
            "effective_minutes": parsed.effective_minutes,
            "source": parsed.source,
            "display": format_preparation_time(item.preparation_time_text),
        }
        for item, parsed in ((item, read_preparation_time(item.preparation_time_text)) for item in items)
    ]
