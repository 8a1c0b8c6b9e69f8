"""Cron schedules with a seconds field, and a loop that runs a task on them."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator, Mapping, Optional

logger = logging.getLogger(__name__)

_MONTH_NAMES = {
    name: number
    for number, name in enumerate(
        ("JAN", "FEB", "MAR", "APR", "MAY", "JUN", "JUL", "AUG", "SEP", "OCT", "NOV", "DEC"),
        start=1,
    )
}
_DAY_NAMES = {
    name: number
    for number, name in enumerate(("SUN", "MON", "TUE", "WED", "THU", "FRI", "SAT"), start=1)
}
_FIELDS = (
    ("seconds", 0, 59, None),
    ("minutes", 0, 59, None),
    ("hours", 0, 23, None),
    ("days of month", 1, 31, None),
    ("months", 1, 12, _MONTH_NAMES),
    ("days of week", 1, 7, _DAY_NAMES),
    ("years", 1970, 2100, None),
)


class CronError(ValueError):
    """A cron expression could not be parsed."""


def _value(text: str, lo: int, hi: int, names: Optional[Mapping[str, int]], field: str) -> int:
    if names is not None and text.upper() in names:
        number = names[text.upper()]
    else:
        try:
            number = int(text)
        except ValueError:
            raise CronError(f"invalid value {text!r} in {field}") from None
    if not lo <= number <= hi:
        raise CronError(f"value {number} in {field} is outside {lo}-{hi}")
    return number


def _parse_field(
    text: str, lo: int, hi: int, names: Optional[Mapping[str, int]], field: str
) -> frozenset[int]:
    values: set[int] = set()
    for part in text.split(","):
        if not part:
            raise CronError(f"empty item in {field}")
        base, slash, step_text = part.partition("/")
        step = 1
        if slash:
            try:
                step = int(step_text)
            except ValueError:
                raise CronError(f"invalid step {step_text!r} in {field}") from None
            if step <= 0:
                raise CronError(f"step in {field} must be positive")
        if base in ("*", "?"):
            start, end = lo, hi
        elif "-" in base:
            first, _, last = base.partition("-")
            start = _value(first, lo, hi, names, field)
            end = _value(last, lo, hi, names, field)
            if start > end:
                raise CronError(f"range {base!r} in {field} is reversed")
        else:
            start = _value(base, lo, hi, names, field)
            end = hi if slash else start
        values.update(range(start, end + 1, step))
    return frozenset(values)


def _cron_weekday(moment: datetime) -> int:
    # 1 is Sunday, 7 is Saturday.
    return (moment.weekday() + 1) % 7 + 1


def _next_month(moment: datetime) -> datetime:
    if moment.month == 12:
        return datetime(moment.year + 1, 1, 1, tzinfo=moment.tzinfo)
    return datetime(moment.year, moment.month + 1, 1, tzinfo=moment.tzinfo)


class CronSchedule:
    """A schedule of the form ``sec min hour day-of-month month day-of-week [year]``."""

    def __init__(self, expression: str) -> None:
        parts = expression.split()
        if len(parts) not in (6, 7):
            raise CronError(
                f"expected 6 or 7 fields in cron expression, got {len(parts)}"
            )
        if len(parts) == 6:
            parts.append("*")
        parsed = [
            _parse_field(text, lo, hi, names, field)
            for text, (field, lo, hi, names) in zip(parts, _FIELDS)
        ]
        self.expression = expression
        (
            self.seconds,
            self.minutes,
            self.hours,
            self.days_of_month,
            self.months,
            self.days_of_week,
            self.years,
        ) = parsed

    def __repr__(self) -> str:
        return f"CronSchedule({self.expression!r})"

    def upcoming(self, after: datetime) -> Iterator[datetime]:
        """Yield the times of the schedule strictly after ``after``, in order."""
        last_year = max(self.years)
        moment = after.replace(microsecond=0) + timedelta(seconds=1)
        tz = moment.tzinfo
        while moment.year <= last_year:
            if moment.year not in self.years:
                moment = datetime(moment.year + 1, 1, 1, tzinfo=tz)
            elif moment.month not in self.months:
                moment = _next_month(moment)
            elif (
                moment.day not in self.days_of_month
                or _cron_weekday(moment) not in self.days_of_week
            ):
                moment = datetime(moment.year, moment.month, moment.day, tzinfo=tz) + timedelta(
                    days=1
                )
            elif moment.hour not in self.hours:
                moment = moment.replace(minute=0, second=0) + timedelta(hours=1)
            elif moment.minute not in self.minutes:
                moment = moment.replace(second=0) + timedelta(minutes=1)
            elif moment.second not in self.seconds:
                moment += timedelta(seconds=1)
            else:
                yield moment
                moment += timedelta(seconds=1)


def run_cron(expression: str, task: Callable[[], object]) -> None:
    """Run ``task`` at every time of the schedule, forever.

    An invalid expression is logged and nothing runs. Errors raised by the
    task are logged and do not stop the loop. The loop ends when the
    schedule has no further times.
    """
    try:
        schedule = CronSchedule(expression)
    except CronError as exc:
        logger.error("Failed to parse CRON expression: %s", exc)
        return
    while True:
        now = datetime.now(timezone.utc)
        upcoming = next(schedule.upcoming(now), None)
        if upcoming is None:
            logger.error("CRON expression %r has no upcoming times", expression)
            return
        delay = (upcoming - now).total_seconds()
        if delay < 0:
            delay = 1.0
        time.sleep(delay)
        try:
            task()
        except Exception:
            logger.exception("Scheduled task failed")