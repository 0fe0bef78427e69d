from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta

from lambdacost.errors import InvalidDateFormat

_TIMESTAMP_FORMAT = "%Y-%m-%dT00:00:00Z"


@dataclass(frozen=True, slots=True)
class DateBucket:
    """
    DateBucket covers one calendar month. Both ends
    are inclusive: start is always day 1 and end the
    last day of the same month.
    """

    start: "date"
    end: "date"

    @property
    def start_timestamp(self) -> "str":
        return self.start.strftime(_TIMESTAMP_FORMAT)

    @property
    def end_timestamp(self) -> "str":
        return self.end.strftime(_TIMESTAMP_FORMAT)

    @property
    def start_datetime(self) -> "datetime":
        return datetime(self.start.year, self.start.month, self.start.day, tzinfo=UTC)

    @property
    def end_datetime(self) -> "datetime":
        return datetime(self.end.year, self.end.month, self.end.day, tzinfo=UTC)


def parse_month(value: "str") -> "date":
    """
    parses a "YYYY-MM" string into the first day of that month.
    """
    try:
        parsed = datetime.strptime(f"{value}-01", "%Y-%m-%d").date()
    except (TypeError, ValueError) as exc:
        raise InvalidDateFormat(str(value)) from exc

    # strptime accepts "2024-7"; only the zero padded form is valid
    if parsed.strftime("%Y-%m") != value:
        raise InvalidDateFormat(value)
    return parsed


def add_months(day: "date", months: "int") -> "date":
    """
    moves a date forward by whole calendar months, clamping
    the day to the length of the target month.
    """
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    return date(year, month, min(day.day, last_day_of_month(year, month).day))


def last_day_of_month(year: "int", month: "int") -> "date":
    # first day of the next month minus one day, rolling
    # December over into January of the next year
    if month == 12:
        first_of_next = date(year + 1, 1, 1)
    else:
        first_of_next = date(year, month + 1, 1)
    return first_of_next - timedelta(days=1)


def partition(start_month: "str", end_month: "str") -> "list[DateBucket]":
    """
    splits the inclusive month range into one DateBucket per
    calendar month, in ascending order. Returns an empty list
    when start_month is after end_month.
    """
    current = parse_month(start_month)
    last = parse_month(end_month)

    buckets: "list[DateBucket]" = []
    while current <= last:
        buckets.append(
            DateBucket(
                start=current,
                end=last_day_of_month(current.year, current.month),
            )
        )
        current = add_months(current, 1)

    return buckets
