from datetime import date

import pytest

import leitner_core as core

from conftest import make_items, make_record

TODAY = date(2026, 2, 19)


# ---------- streak ----------
def test_streak_counts_back_from_yesterday_when_today_is_quiet():
    days = {"2026-02-18", "2026-02-17", "2026-02-16"}
    assert core.calculate_streak_days(days, TODAY) == 3


def test_streak_breaks_at_first_gap():
    assert core.calculate_streak_days({"2026-02-18", "2026-02-16"}, TODAY) == 1


def test_streak_includes_today():
    assert core.calculate_streak_days({"2026-02-19", "2026-02-18"}, TODAY) == 2


def test_streak_zero_when_today_and_yesterday_quiet():
    assert core.calculate_streak_days({"2026-02-17"}, TODAY) == 0
    assert core.calculate_streak_days(set(), TODAY) == 0


def test_streak_caps_at_window():
    every_day = {date.fromordinal(TODAY.toordinal() - i).isoformat() for i in range(60)}
    assert core.calculate_streak_days(every_day, TODAY) == 30


def test_streak_from_records_uses_local_days(config):
    # 2026-02-17T17:00Z is 01:00 on the 18th in UTC+8
    records = [
        make_record("a", last_reviewed="2026-02-17T17:00:00.000Z"),
        make_record("b", last_reviewed="2026-02-16T12:00:00.000Z"),
    ]
    days = core.active_days(records, tz=config.tz)
    assert days == {"2026-02-18", "2026-02-16"}
    assert core.calculate_streak_days(days, TODAY) == 1


# ---------- daily target ----------
def test_daily_progress_math():
    assert core.daily_progress(45, 60) == {"target": 60, "completed": 45, "remaining": 15, "percentage": 75.0}
    assert core.daily_progress(80, 60)["remaining"] == 0
    assert core.daily_progress(80, 60)["percentage"] == 100.0


def test_today_progress_counts_records_reviewed_today(system):
    for i in range(45):
        system.process_answer(f"q{i}", i % 3 != 0)
    system.store.records["old"] = make_record("old", last_reviewed="2026-02-18T10:00:00.000Z")
    p = system.get_today_progress()
    assert (p["target"], p["completed"], p["remaining"], p["percentage"]) == (60, 45, 15, 75.0)


# ---------- stats ----------
def test_stats_on_fresh_catalog(system):
    stats = system.get_stats(make_items(10))
    assert stats == {
        "total_count": 10,
        "started_count": 0,
        "box_distribution": {1: 10, 2: 0, 3: 0},
        "due_today": 60,
        "accuracy_rate": 0.0,
        "streak_days": 0,
    }


def test_stats_after_answers(system, clock):
    items = make_items(5)
    system.process_answer("q0", True)   # box 2
    system.process_answer("q1", True)
    system.process_answer("q1", True)   # box 3
    system.process_answer("q2", False)  # box 1
    system.process_answer("elsewhere", True)  # not in catalog

    stats = system.get_stats(items)
    assert stats["started_count"] == 3
    assert stats["box_distribution"] == {1: 3, 2: 1, 3: 1}
    assert stats["accuracy_rate"] == pytest.approx(3 / 4)
    assert stats["due_today"] == 60 - 4
    assert stats["streak_days"] == 1


def test_stats_streak_comes_from_record_review_days(system):
    system.store.records.update({
        "a": make_record("a", last_reviewed="2026-02-18T10:00:00.000Z"),
        "b": make_record("b", last_reviewed="2026-02-17T10:00:00.000Z"),
        "c": make_record("c", last_reviewed="2026-02-16T10:00:00.000Z"),
    })
    assert system.get_stats(make_items(1))["streak_days"] == 3


def test_stats_streak_ignores_activity_history(system, clock):
    clock.advance(days=-1)
    system.process_answer("q1", True)
    clock.advance(days=1)
    system.process_answer("q1", True)

    # the second answer overwrote lastReviewed; only the history remembers the 18th
    assert system.get_daily_activity_history() == {"2026-02-18": 1, "2026-02-19": 1}
    assert system.get_stats(make_items(2))["streak_days"] == 1


def test_activity_history_tracks_answers(system, clock):
    system.process_answer("q1", True)
    clock.advance(days=1)
    system.process_answer("q1", True)
    system.process_answer("q2", False)
    assert system.get_daily_activity_history() == {"2026-02-19": 1, "2026-02-20": 2}


def test_completion_progress(system):
    items = make_items(4)
    system.process_answer("q0", True)
    system.process_answer("q0", True)
    system.process_answer("q1", False)
    system.process_answer("q2", True)
    system.process_answer("q2", False)
    p = system.get_completion_progress(items)
    assert p == {
        "total_count": 4,
        "answered_count": 3,
        "correct_count": 1,
        "incorrect_count": 2,
        "accuracy": pytest.approx(3 / 5),
    }


def test_describe_pool(system):
    items = make_items(4, topics=("A", "B"))
    system.store.records["q0"] = make_record("q0", box=2, next_review="2026-02-25T00:00:00.000Z")
    system.store.records["q1"] = make_record("q1", box=3, next_review="2026-02-18T00:00:00.000Z")
    report = system.describe_pool(items)
    assert report["total_count"] == 4
    assert report["progress"] == {"records": 2, "new": 2, "due": 1, "not_due": 1, "box1": 0, "box2": 1, "box3": 1}
    assert report["due_count"] == 3
    assert report["topic_distribution"] == {"A": 2, "B": 2}
    assert [s["id"] for s in report["sample_due"]] == ["q1", "q2", "q3"]
    assert report["sample_due"][1]["next_review_date"] == "new"


# ---------- content helpers ----------
def test_load_questions(tmp_path):
    (tmp_path / "networking.json").write_text(
        '[{"id": 1, "question": "Q?", "options": ["a", "b"], "answerIndexes": [1]},'
        ' {"id": "x", "question": "Q2", "topic": "Other", "options": []}]',
        encoding="utf-8",
    )
    (tmp_path / "security.json").write_text(
        '{"questions": [{"id": "s1", "question": "S?", "options": ["a"], "answer_indexes": [0]}]}',
        encoding="utf-8",
    )
    qs = core.load_questions(tmp_path)
    assert [(q["id"], q["topic"]) for q in qs] == [("1", "networking"), ("x", "Other"), ("s1", "security")]
    assert qs[0]["answer_indexes"] == [1]
    assert [core.has_options(q) for q in qs] == [True, False, True]


def test_load_questions_errors(tmp_path):
    assert core.load_questions(tmp_path / "missing") == []
    (tmp_path / "bad.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(ValueError, match="Invalid JSON"):
        core.load_questions(tmp_path)


def test_is_correct_answer():
    q = {"answer_indexes": [0, 2]}
    assert core.is_correct_answer(q, [2, 0])
    assert not core.is_correct_answer(q, [0])
    assert not core.is_correct_answer({"answer_indexes": []}, [])
