"""Task temporal model: deadlines, timeline intervals and calendar placement.

All functions take the reference day explicitly so results never depend on
the wall clock. Dates are calendar dates: ``"2024-03-15"`` is March 15 for
every viewer, whatever their UTC offset.
"""

import calendar
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from project_tracker.core.errors import ValidationError
from project_tracker.db.models import Task

DEFAULT_HORIZON_DAYS = 7

_DATE_PREFIX = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")


def parse_local_date(value) -> date | None:
    """Return the calendar date named by ``value``.

    Accepts ``date``, ``datetime`` and ISO-8601 text. For text, only the
    leading ``YYYY-MM-DD`` is read; any time or offset that follows is
    ignored rather than converted, so a date never shifts across midnight.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        m = _DATE_PREFIX.match(value.strip())
        if m:
            try:
                return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
            except ValueError:
                pass
    raise ValidationError(f"Invalid calendar date: {value!r}")


def _as_day(today) -> date:
    day = parse_local_date(today)
    if day is None:
        raise ValidationError("A reference day is required")
    return day


def is_overdue(task: Task, today) -> bool:
    """True when the task is open and its due date is strictly before today."""
    if task.due_date is None or task.status == "completed":
        return False
    return parse_local_date(task.due_date) < _as_day(today)


def is_upcoming(task: Task, today, horizon_days: int = DEFAULT_HORIZON_DAYS) -> bool:
    """True when the task is open and due strictly between today and today + horizon."""
    if task.due_date is None or task.status == "completed":
        return False
    day = _as_day(today)
    due = parse_local_date(task.due_date)
    return day < due < day + timedelta(days=horizon_days)


def effective_interval(task: Task) -> tuple[date, date] | None:
    """The [start, end] span used to place a task on a timeline.

    A task with a single date gets a one-day interval on that date. A task
    with neither date has no interval.
    """
    start = parse_local_date(task.start_date)
    due = parse_local_date(task.due_date)
    if start is None and due is None:
        return None
    if start is None:
        return due, due
    if due is None:
        return start, start
    # Inverted ranges still render, so keep start <= end.
    return (start, due) if start <= due else (due, start)


def month_window(year: int, month: int) -> tuple[date, date]:
    """First and last day of a calendar month."""
    if not 1 <= month <= 12:
        raise ValidationError(f"Invalid month: {month}", field="month")
    last = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last)


@dataclass
class GanttBar:
    task: Task
    start: date
    end: date
    visible_start: date
    visible_end: date
    clamped_start: bool
    clamped_end: bool
    offset_days: int
    span_days: int


def gantt_bar(task: Task, window_start: date, window_end: date) -> GanttBar | None:
    """Clip a task's interval to the window. None when it falls outside."""
    interval = effective_interval(task)
    if interval is None:
        return None
    start, end = interval
    if end < window_start or start > window_end:
        return None

    visible_start = max(start, window_start)
    visible_end = min(end, window_end)
    return GanttBar(
        task=task,
        start=start,
        end=end,
        visible_start=visible_start,
        visible_end=visible_end,
        clamped_start=start < window_start,
        clamped_end=end > window_end,
        offset_days=(visible_start - window_start).days,
        span_days=(visible_end - visible_start).days + 1,
    )


def gantt_rows(tasks: list[Task], window_start: date, window_end: date) -> list[GanttBar]:
    """Bars for every dated task overlapping the window, earliest start first.

    The sort is stable, so tasks starting on the same day keep input order.
    """
    if window_end < window_start:
        raise ValidationError("Window end precedes window start")
    dated = [t for t in tasks if effective_interval(t) is not None]
    dated.sort(key=lambda t: effective_interval(t)[0])
    bars = []
    for task in dated:
        bar = gantt_bar(task, window_start, window_end)
        if bar is not None:
            bars.append(bar)
    return bars


def tasks_due_on(tasks: list[Task], day) -> list[Task]:
    """Tasks whose due date is the given calendar day."""
    target = _as_day(day)
    return [t for t in tasks if t.due_date is not None and parse_local_date(t.due_date) == target]


def calendar_month(tasks: list[Task], year: int, month: int) -> dict[date, list[Task]]:
    """Tasks grouped by due date for every day of the month, empty days included."""
    first, last = month_window(year, month)
    days = {first + timedelta(days=i): [] for i in range((last - first).days + 1)}
    for task in tasks:
        due = parse_local_date(task.due_date)
        if due in days:
            days[due].append(task)
    return days
