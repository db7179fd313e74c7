import random
from datetime import datetime, timedelta, timezone

import pytest

import leitner_core as core
from leitner_store import MemoryStore
from leitner_system import LeitnerSystem

SGT = timezone(timedelta(hours=8))


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kw) -> None:
        self.now = self.now + timedelta(**kw)


class ManualTimer:
    """Stands in for threading.Timer; fires only when the test says so."""

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if self.started and not self.cancelled:
            self.function()


class TimerFactory:
    def __init__(self):
        self.timers = []

    def __call__(self, interval, function):
        t = ManualTimer(interval, function)
        self.timers.append(t)
        return t

    @property
    def live(self):
        return [t for t in self.timers if t.started and not t.cancelled]

    def fire_all(self):
        for t in list(self.live):
            t.fire()


@pytest.fixture
def clock():
    # 18:00 local in UTC+8
    return FakeClock(datetime(2026, 2, 19, 10, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def config():
    return core.LeitnerConfig(timezone=SGT)


@pytest.fixture
def timers():
    return TimerFactory()


@pytest.fixture
def kv():
    return MemoryStore()


@pytest.fixture
def system(kv, config, clock, timers):
    s = LeitnerSystem(kv, config=config, clock=clock, rng=random.Random(7), seed=1000, timer_factory=timers)
    s.load()
    return s


def make_items(n, topics=("A",), prefix="q"):
    return [
        {"id": f"{prefix}{i}", "topic": topics[i % len(topics)], "options": ["x", "y"], "answer_indexes": [0]}
        for i in range(n)
    ]


def make_record(item_id, box=1, next_review="2026-02-19T00:00:00.000Z",
                last_reviewed="2026-02-18T10:00:00.000Z", correct=0, incorrect=0):
    return core.ReviewRecord(
        item_id=item_id,
        current_box=box,
        next_review_date=next_review,
        times_correct=correct,
        times_incorrect=incorrect,
        last_reviewed=last_reviewed,
        last_answer_correct=False,
    )
