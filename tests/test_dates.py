from datetime import date, datetime, timedelta, timezone

import pytest

import leitner_core as core

from conftest import SGT


def test_local_day_uses_configured_zone_not_utc():
    # 20:00 UTC is already the next day in UTC+8
    instant = datetime(2026, 2, 19, 20, 0, tzinfo=timezone.utc)
    assert core.local_day(instant, timezone.utc) == "2026-02-19"
    assert core.local_day(instant, SGT) == "2026-02-20"


@pytest.mark.parametrize("box,days", [(1, 1), (2, 2), (3, 3)])
def test_next_review_is_local_midnight_plus_interval(box, days):
    now = datetime(2026, 2, 19, 10, 0, tzinfo=timezone.utc)  # 18:00 local
    nxt = core.next_review_date(box, now, SGT)
    local = nxt.astimezone(SGT)
    assert (local.hour, local.minute, local.second) == (0, 0, 0)
    assert local.date() == date(2026, 2, 19) + timedelta(days=days)


@pytest.mark.parametrize("box", [0, 4, -1, "2", None])
def test_next_review_falls_back_to_one_day(box, caplog):
    now = datetime(2026, 2, 19, 10, 0, tzinfo=timezone.utc)
    with caplog.at_level("WARNING"):
        nxt = core.next_review_date(box, now, SGT)
    assert nxt == now + timedelta(days=1)
    assert "defaulting to 1 day" in caplog.text


def test_next_review_across_month_end():
    now = datetime(2026, 2, 28, 15, 0, tzinfo=SGT)
    assert core.next_review_date(3, now, SGT) == datetime(2026, 3, 3, tzinfo=SGT)


def test_next_review_with_named_zone_keeps_local_midnight_over_dst():
    tz = core.resolve_tz("America/New_York")
    # DST starts 2026-03-08
    now = datetime(2026, 3, 7, 12, 0, tzinfo=tz)
    nxt = core.next_review_date(2, now, tz).astimezone(tz)
    assert nxt.date() == date(2026, 3, 9)
    assert nxt.hour == 0


def test_is_due_compares_local_days():
    now = datetime(2026, 2, 19, 10, 0, tzinfo=timezone.utc)  # 2026-02-19 local
    assert core.is_due("2026-02-18T16:00:00.000Z", now, SGT)  # 00:00 local on the 19th
    assert core.is_due("2026-02-19T15:59:59.000Z", now, SGT)  # 23:59 local
    assert not core.is_due("2026-02-19T16:00:00.000Z", now, SGT)  # tomorrow local


@pytest.mark.parametrize("bad", ["", "not a date", "2026-13-40", None, 12345])
def test_is_due_fails_closed_on_malformed_dates(bad, caplog):
    now = datetime(2026, 2, 19, 10, 0, tzinfo=timezone.utc)
    with caplog.at_level("WARNING"):
        assert core.is_due(bad, now, SGT) is False
    assert "Invalid stored date" in caplog.text


def test_format_and_parse_instant():
    dt = datetime(2026, 2, 19, 18, 0, 0, 123456, tzinfo=SGT)
    s = core.format_instant(dt)
    assert s == "2026-02-19T10:00:00.123Z"
    assert core.parse_instant(s) == datetime(2026, 2, 19, 10, 0, 0, 123000, tzinfo=timezone.utc)


def test_parse_instant_reads_naive_stamps_in_configured_zone():
    dt = core.parse_instant("2026-02-19T00:30:00", SGT)
    assert dt.utcoffset() == timedelta(hours=8)


def test_resolve_tz():
    assert core.resolve_tz(None) is None
    assert core.resolve_tz("") is None
    assert core.resolve_tz(SGT) is SGT
    assert core.resolve_tz("UTC").utcoffset(datetime(2026, 1, 1)) == timedelta(0)


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("LEITNER_TIMEZONE", "Asia/Singapore")
    monkeypatch.setenv("LEITNER_MIN_DUE_ITEMS", "20")
    monkeypatch.setenv("LEITNER_REVIEW_PROBABILITY", "1.5")
    cfg = core.LeitnerConfig.from_env()
    assert cfg.timezone == "Asia/Singapore"
    assert cfg.min_due_items == 20
    assert cfg.review_probability == 1.0
    assert cfg.tz.utcoffset(datetime(2026, 1, 1)) == timedelta(hours=8)
