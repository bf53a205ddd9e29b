"""Escalation level classification.

A ticket's level is derived from its category and the time-to-resolve (TTR) it
arrived with. Higher levels mean the incident has been open longer relative to
what its category allows; each category has its own ceiling.
"""
from typing import Optional, Union

LEVELS = ("L1", "L2", "L3", "L4", "L5", "L6", "L7")
UNKNOWN_LEVEL = "Unknown"

CATEGORY_MAX_LEVEL = {"K1": "L7", "K2": "L3", "K3": "L2"}

# (exclusive lower bound in minutes, level), highest first.
_THRESHOLDS = {
    "K1": ((540, "L7"), (360, "L6"), (240, "L5"), (150, "L4"), (90, "L3"), (60, "L2")),
    "K2": ((90, "L3"), (60, "L2")),
    "K3": ((60, "L2"),),
}

# Sort ranks: smaller sorts first.
CATEGORY_RANK = {"K1": 1, "K2": 2, "K3": 3}
LEVEL_RANK = {level: len(LEVELS) - i for i, level in enumerate(LEVELS)}  # L7 -> 1 ... L1 -> 7


def parse_ttr_minutes(ttr: Union[str, int, float]) -> float:
    """Convert an ``HH:MM:SS`` TTR string to minutes. Numbers are taken as minutes."""
    if isinstance(ttr, (int, float)):
        if ttr < 0:
            raise ValueError("TTR cannot be negative")
        return float(ttr)

    parts = ttr.strip().split(":")
    if len(parts) == 2:
        parts.append("0")
    if len(parts) != 3:
        raise ValueError(f"TTR must look like HH:MM:SS, got {ttr!r}")
    try:
        hours, minutes, seconds = (int(p) for p in parts)
    except ValueError as e:
        raise ValueError(f"TTR must look like HH:MM:SS, got {ttr!r}") from e
    if hours < 0 or minutes < 0 or seconds < 0:
        raise ValueError("TTR cannot be negative")
    return hours * 60 + minutes + seconds / 60


def classify_level(category: Optional[str], ttr: Union[str, int, float, None]) -> str:
    """Map a category and TTR to a level.

    Returns ``UNKNOWN_LEVEL`` when the category or TTR is missing (or the category
    is not one we know), which callers treat as "do not classify".
    """
    if not category or ttr is None or ttr == "":
        return UNKNOWN_LEVEL
    thresholds = _THRESHOLDS.get(category)
    if thresholds is None:
        return UNKNOWN_LEVEL

    minutes = parse_ttr_minutes(ttr)
    for bound, level in thresholds:
        if minutes > bound:
            return level
    return "L1"


def max_level_for(category: str) -> str:
    return CATEGORY_MAX_LEVEL[category]


def is_max_level(category: str, level: str) -> bool:
    return level == CATEGORY_MAX_LEVEL.get(category)


def level_index(level: str) -> int:
    return LEVELS.index(level)


def clamp_level(category: str, level: Optional[str]) -> str:
    """Bring a stored level back inside L1..category max."""
    if level not in LEVELS:
        return "L1"
    ceiling = CATEGORY_MAX_LEVEL[category]
    if level_index(level) > level_index(ceiling):
        return ceiling
    return level


def next_level(level: Optional[str], category: str) -> str:
    """One escalation step, never past the category maximum."""
    if level not in LEVELS:
        return "L1"
    current = clamp_level(category, level)
    ceiling = CATEGORY_MAX_LEVEL[category]
    return LEVELS[min(level_index(current) + 1, level_index(ceiling))]


def higher_level(a: str, b: str) -> str:
    return a if level_index(a) >= level_index(b) else b


def priority_key(category: str, level: str) -> tuple:
    """Most urgent category first, then the most escalated level."""
    return (CATEGORY_RANK.get(category, len(CATEGORY_RANK) + 1), LEVEL_RANK.get(level, len(LEVELS) + 1))
