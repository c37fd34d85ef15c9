from datetime import datetime, timedelta, timezone

from utils.timefmt import from_unix_ms, is_stale, plan_name, to_utc


def test_to_utc_parses_strings():
    dt = to_utc("2024-01-01T00:00:00")
    assert dt.tzinfo == timezone.utc
    assert to_utc("2024-01-01T02:00:00+02:00") == dt


def test_from_unix_ms():
    assert from_unix_ms(1704067200000) == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert from_unix_ms(None) is None
    assert from_unix_ms(float("nan")) is None


def test_is_stale():
    now = datetime.now(timezone.utc)
    assert not is_stale(now - timedelta(hours=1), 6)
    assert is_stale(now - timedelta(hours=7), 6)
    assert is_stale("garbage", 6)
    # naive datetimes are treated as UTC
    assert not is_stale(datetime.now(timezone.utc).replace(tzinfo=None), 1)


def test_plan_name():
    assert plan_name(datetime(2024, 5, 6, 7, 8)) == "Plan 2024-05-06 07:08"
