"""Time-slot arithmetic for table bookings."""
from datetime import time
from enum import Enum
from typing import Iterable, Union


class WindowPolicy(str, Enum):
    # A booking at T occupies [T, T + duration)
    FORWARD = "forward"
    # A request at T collides with any booking starting within [T - duration, T + duration]
    SYMMETRIC = "symmetric"


def to_minutes(value: Union[str, time]) -> int:
    """Minutes since midnight for a 'HH:MM' / 'HH:MM:SS' string or a time."""
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    parts = value.split(":")
    if len(parts) < 2:
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    hours, minutes = int(parts[0]), int(parts[1])
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    return hours * 60 + minutes


def format_time(value: Union[str, time]) -> str:
    """Normalizes a time to the stored 'HH:MM' form."""
    minutes = to_minutes(value)
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def slots_conflict(requested: int, existing: int, duration: int, policy: WindowPolicy = WindowPolicy.FORWARD) -> bool:
    if policy == WindowPolicy.SYMMETRIC:
        return requested - duration <= existing <= requested + duration
    return requested < existing + duration and existing < requested + duration


def has_conflict(
    requested: Union[str, time],
    existing_times: Iterable[Union[str, time]],
    duration: int,
    policy: WindowPolicy = WindowPolicy.FORWARD,
) -> bool:
    start = to_minutes(requested)
    return any(slots_conflict(start, to_minutes(t), duration, policy) for t in existing_times)
