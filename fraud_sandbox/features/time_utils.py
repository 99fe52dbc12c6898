from datetime import date, datetime, timedelta
from typing import Callable, Iterable, List, Optional, TypeVar

T = TypeVar("T")

VELOCITY_WINDOW = timedelta(seconds=60)
RATE_LIMIT_WINDOW = timedelta(seconds=60)


def get_history_slice(
        records: Iterable[T],
        entity_of: Callable[[T], str],
        entity_value: str,
        current_time: datetime,
        window: timedelta,
        timestamp_of: Callable[[T], datetime] = lambda r: r.timestamp,
        ) -> List[T]:

    """
    Retrieves the records of one entity inside a trailing window.

    Logic:
    1. Filter by entity (sender user id, login user id, ...)
    2. Filter by elapsed time: 0 <= current_time - ts < window
       STRICTLY LESS THAN the window: a record exactly `window` old is out.
       Records stamped after current_time are never counted.
    """

    assert window > timedelta(0), "window must be positive"

    history = []
    for record in records:
        if entity_of(record) != entity_value:
            continue
        elapsed = current_time - timestamp_of(record)
        if timedelta(0) <= elapsed < window:
            history.append(record)
    return history


def amount_for_day(stored_amount, stored_date: Optional[date], today: date):
    """
    Daily accumulator read: the stored amount only counts if it was
    accumulated on `today`. Any other stored date reads as zero.
    """
    if stored_date != today:
        return type(stored_amount)(0)
    return stored_amount
