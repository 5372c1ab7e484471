"""
Weekday enumeration for branch training schedules.

Ordinals follow date.weekday(): MO=0 .. SU=6. Localized day names are a
display concern and never enter the engine.
"""
from enum import IntEnum
from typing import Iterable


class Weekday(IntEnum):
    MO = 0
    TU = 1
    WE = 2
    TH = 3
    FR = 4
    SA = 5
    SU = 6


WEEKDAY_MAP = {w.name: w for w in Weekday}

_ALIASES = {
    "MON": Weekday.MO, "MONDAY": Weekday.MO,
    "TUE": Weekday.TU, "TUESDAY": Weekday.TU,
    "WED": Weekday.WE, "WEDNESDAY": Weekday.WE,
    "THU": Weekday.TH, "THURSDAY": Weekday.TH,
    "FRI": Weekday.FR, "FRIDAY": Weekday.FR,
    "SAT": Weekday.SA, "SATURDAY": Weekday.SA,
    "SUN": Weekday.SU, "SUNDAY": Weekday.SU,
}


def parse_weekday(value) -> Weekday | None:
    """Parse a weekday code ('SA'), English name ('saturday') or ordinal (5).

    Returns None for anything unrecognised.
    """
    if isinstance(value, Weekday):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return Weekday(value) if 0 <= value <= 6 else None
    if not isinstance(value, str):
        return None
    key = value.strip().upper()
    if key in WEEKDAY_MAP:
        return WEEKDAY_MAP[key]
    return _ALIASES.get(key)


def parse_training_days(values: Iterable | str | None) -> frozenset[Weekday]:
    """Parse a comma-separated string ('SA,TU') or an iterable of weekday values.

    Unknown entries are skipped.
    """
    if values is None:
        return frozenset()
    if isinstance(values, str):
        values = [part for part in values.split(",") if part.strip()]
    out: set[Weekday] = set()
    for v in values:
        wd = parse_weekday(v)
        if wd is not None:
            out.add(wd)
    return frozenset(out)


def format_training_days(days: Iterable[Weekday]) -> str:
    """Inverse of parse_training_days for the comma-separated storage form."""
    return ",".join(w.name for w in sorted(days))
