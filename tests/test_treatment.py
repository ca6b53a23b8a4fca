from datetime import date, datetime, timezone

import pytest

from services.scheduler.errors import InvalidDateRange
from services.scheduler.treatment import completion_percentage, treatment_days


def test_treatment_days_counts_both_ends():
    assert treatment_days(date(2026, 3, 1), date(2026, 3, 1)) == 1
    assert treatment_days(date(2026, 2, 27), date(2026, 3, 2)) == 4


def test_treatment_days_rejects_inverted_range():
    with pytest.raises(InvalidDateRange):
        treatment_days(date(2026, 3, 2), date(2026, 3, 1))


@pytest.mark.parametrize(
    "now, expected",
    [
        (datetime(2026, 2, 28, 12, 0, tzinfo=timezone.utc), 0),
        (datetime(2026, 3, 1, 0, 0, tzinfo=timezone.utc), 0),
        (datetime(2026, 3, 2, 0, 0, tzinfo=timezone.utc), 50),
        (datetime(2026, 3, 2, 12, 0), 75),
        (datetime(2026, 3, 9, 0, 0, tzinfo=timezone.utc), 100),
    ],
)
def test_completion_percentage(now, expected):
    assert completion_percentage(date(2026, 3, 1), date(2026, 3, 3), now) == expected


def test_single_day_treatment_is_complete_once_started():
    now = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
    assert completion_percentage(date(2026, 3, 1), date(2026, 3, 1), now) == 100
