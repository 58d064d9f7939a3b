from datetime import datetime, timedelta, timezone

import pytest

from timepass.domain.chat.instants import format_relative, to_instant


NOW = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


def test_to_instant_normalises_supported_shapes():
    expected = datetime(2024, 1, 1, tzinfo=timezone.utc)
    epoch = int(expected.timestamp())

    assert to_instant(None) is None
    assert to_instant(datetime(2024, 1, 1)) == expected
    assert to_instant(epoch) == expected
    assert to_instant(epoch * 1000) == expected
    assert to_instant("2024-01-01T00:00:00Z") == expected
    assert to_instant({"seconds": epoch, "nanoseconds": 0}) == expected


def test_to_instant_rejects_garbage():
    with pytest.raises(ValueError):
        to_instant(True)
    with pytest.raises(ValueError):
        to_instant("   ")
    with pytest.raises(ValueError):
        to_instant(object())


@pytest.mark.parametrize(
    "delta,expected",
    [
        (timedelta(seconds=20), "just now"),
        (timedelta(minutes=1), "1 minute ago"),
        (timedelta(minutes=5), "5 minutes ago"),
        (timedelta(hours=3), "3 hours ago"),
        (timedelta(days=1), "1 day ago"),
        (timedelta(days=6), "6 days ago"),
    ],
)
def test_format_relative(delta, expected):
    assert format_relative(NOW - delta, NOW) == expected


def test_format_relative_falls_back_to_date_after_a_week():
    assert format_relative(NOW - timedelta(days=9), NOW) == "Mar 01"
    assert format_relative(None, NOW) == ""
