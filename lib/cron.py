"""Cron expression parsing and tick computation.

Expressions have five or six whitespace-separated fields:

    [second] minute hour day-of-month month day-of-week

Seconds are optional (0 when omitted). Each field accepts `*`, single values,
ranges `A-B`, lists `A,B,C` and steps `*/N`, `A-B/N`, `A/N`. Months and
weekdays also accept three-letter names; weekday 7 is Sunday, same as 0.

A parsed schedule is just the set of allowed values per field, so matching a
timestamp is a pure function and needs no timer.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, FrozenSet, Iterator, List, Optional, Tuple


MONTH_NAMES = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}
WEEKDAY_NAMES = {
    "sun": 0, "mon": 1, "tue": 2, "wed": 3, "thu": 4, "fri": 5, "sat": 6,
}

# Longest month length for each month, Feb counted in leap years
MAX_MONTH_DAYS = {1: 31, 2: 29, 3: 31, 4: 30, 5: 31, 6: 30, 7: 31, 8: 31, 9: 30, 10: 31, 11: 30, 12: 31}

# How far ahead next_after() searches before giving up
SEARCH_LIMIT_YEARS = 100


class CronSyntaxError(ValueError):
    """Raised for a malformed or unsatisfiable cron expression."""


@dataclass(frozen=True)
class _Field:
    name: str
    low: int
    high: int
    aliases: Optional[Dict[str, int]] = None


FIELDS: Tuple[_Field, ...] = (
    _Field("second", 0, 59),
    _Field("minute", 0, 59),
    _Field("hour", 0, 23),
    _Field("day-of-month", 1, 31),
    _Field("month", 1, 12, MONTH_NAMES),
    _Field("day-of-week", 0, 7, WEEKDAY_NAMES),
)


def _parse_value(token: str, field: _Field) -> int:
    key = token.lower()
    if field.aliases and key in field.aliases:
        return field.aliases[key]
    if not token.isdigit():
        raise CronSyntaxError(f"Invalid {field.name} value {token!r}")
    value = int(token)
    if value < field.low or value > field.high:
        raise CronSyntaxError(
            f"{field.name} value {value} out of range {field.low}-{field.high}"
        )
    return value


def _parse_part(part: str, field: _Field) -> List[int]:
    """Expand one comma-separated part of a field into its values."""
    step = 1
    base = part
    if "/" in part:
        base, step_token = part.split("/", 1)
        if not step_token.isdigit() or int(step_token) == 0:
            raise CronSyntaxError(f"Invalid {field.name} step {step_token!r} in {part!r}")
        step = int(step_token)

    if base == "*":
        start, end = field.low, field.high
    elif "-" in base:
        first, _, last = base.partition("-")
        start = _parse_value(first, field)
        end = _parse_value(last, field)
        if start > end:
            raise CronSyntaxError(f"Invalid {field.name} range {base!r}: start is after end")
    elif base:
        start = _parse_value(base, field)
        # "A/N" means every N starting at A
        end = field.high if "/" in part else start
    else:
        raise CronSyntaxError(f"Empty {field.name} value in {part!r}")

    return list(range(start, end + 1, step))


def parse_field(token: str, field: _Field) -> FrozenSet[int]:
    """Parse a single field into the set of values it allows."""
    values = set()
    for part in token.split(","):
        values.update(_parse_part(part, field))
    if field.name == "day-of-week" and 7 in values:
        values.discard(7)
        values.add(0)
    return frozenset(values)


def _cron_weekday(dt: datetime) -> int:
    # datetime: Monday=0 .. Sunday=6; cron: Sunday=0 .. Saturday=6
    return (dt.weekday() + 1) % 7


@dataclass(frozen=True)
class CronSchedule:
    """A parsed cron expression: one set of allowed values per time field."""

    expression: str
    seconds: FrozenSet[int]
    minutes: FrozenSet[int]
    hours: FrozenSet[int]
    days: FrozenSet[int]
    months: FrozenSet[int]
    weekdays: FrozenSet[int]

    @classmethod
    def parse(cls, expression: str) -> "CronSchedule":
        """Parse an expression, raising CronSyntaxError if it is malformed."""
        if not isinstance(expression, str):
            raise CronSyntaxError(f"Cron expression must be a string, got {type(expression).__name__}")

        tokens = expression.split()
        if len(tokens) == 5:
            tokens = ["0"] + tokens
        elif len(tokens) != 6:
            raise CronSyntaxError(
                f"Cron expression {expression!r} has {len(tokens)} fields, expected 5 or 6"
            )

        try:
            parsed = [parse_field(token, field) for token, field in zip(tokens, FIELDS)]
        except CronSyntaxError as e:
            raise CronSyntaxError(f"{e} (in {expression!r})") from None

        schedule = cls(expression.strip(), *parsed)
        if not any(
            day <= MAX_MONTH_DAYS[month]
            for month in schedule.months
            for day in schedule.days
        ):
            raise CronSyntaxError(f"Cron expression {expression!r} can never match a real date")
        return schedule

    def matches(self, dt: datetime) -> bool:
        """True if `dt` (to the second) is a tick of this schedule."""
        return (
            dt.second in self.seconds
            and dt.minute in self.minutes
            and dt.hour in self.hours
            and dt.day in self.days
            and dt.month in self.months
            and _cron_weekday(dt) in self.weekdays
        )

    def next_after(self, dt: datetime) -> datetime:
        """Return the first tick strictly after `dt`, keeping its tzinfo."""
        t = dt.replace(microsecond=0) + timedelta(seconds=1)
        limit = dt.year + SEARCH_LIMIT_YEARS

        while t.year <= limit:
            if t.month not in self.months:
                if t.month == 12:
                    t = t.replace(year=t.year + 1, month=1, day=1, hour=0, minute=0, second=0)
                else:
                    t = t.replace(month=t.month + 1, day=1, hour=0, minute=0, second=0)
                continue
            if t.day not in self.days or _cron_weekday(t) not in self.weekdays:
                t = t.replace(hour=0, minute=0, second=0) + timedelta(days=1)
                continue
            if t.hour not in self.hours:
                t = t.replace(minute=0, second=0) + timedelta(hours=1)
                continue
            if t.minute not in self.minutes:
                t = t.replace(second=0) + timedelta(minutes=1)
                continue
            if t.second not in self.seconds:
                t = t + timedelta(seconds=1)
                continue
            return t

        raise CronSyntaxError(
            f"Cron expression {self.expression!r} has no tick within {SEARCH_LIMIT_YEARS} years of {dt}"
        )

    def iter_ticks(self, start: datetime, end: datetime) -> Iterator[datetime]:
        """Yield every tick in the half-open interval (start, end]."""
        t = start
        while True:
            t = self.next_after(t)
            if t > end:
                return
            yield t

    def __str__(self) -> str:
        return self.expression
