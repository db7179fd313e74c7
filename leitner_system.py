from __future__ import annotations

"""
leitner_system.py — the scheduler object a host constructs once and passes around.

    system = LeitnerSystem(store_backend)
    system.load()
    queue = system.get_due_items(questions)
    result = system.process_answer(queue[0]["id"], was_correct=True)
"""

import logging
import random
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import leitner_core as core
from leitner_store import KeyValueStore, ProgressStore

logger = logging.getLogger(__name__)


@dataclass
class AnswerResult:
    correct: bool
    from_box: int
    to_box: int
    next_review: str  # ISO instant


def _seed_from(now: datetime) -> int:
    return int(now.timestamp() * 1000)


class LeitnerSystem:
    def __init__(
        self,
        kv: KeyValueStore,
        config: Optional[core.LeitnerConfig] = None,
        clock: Callable[[], datetime] = core.utc_now,
        rng: Optional[random.Random] = None,
        seed: Optional[int] = None,
        timer_factory: Callable[..., Any] = threading.Timer,
    ):
        self.config = config or core.LeitnerConfig()
        self.clock = clock
        self.rng = rng or random.Random()
        self.seed = _seed_from(clock()) if seed is None else int(seed)
        self.store = ProgressStore(kv, self.config, clock=clock, timer_factory=timer_factory)

    # ---------- lifecycle ----------
    @property
    def initialized(self) -> bool:
        return self.store.loaded

    def load(self) -> "LeitnerSystem":
        self.store.load()
        return self

    def _require_loaded(self) -> None:
        if not self.store.loaded:
            raise core.NotInitializedError("Leitner system not initialized. Call load() first.")

    def flush(self) -> bool:
        return self.store.flush()

    # ---------- answers ----------
    def process_answer(self, item_id: str, was_correct: bool) -> AnswerResult:
        self._require_loaded()
        if not isinstance(item_id, str) or not item_id:
            raise core.InvalidArgumentError(f"Invalid item id: {item_id!r}")
        if not isinstance(was_correct, bool):
            raise core.InvalidArgumentError(f"was_correct must be bool, got {type(was_correct).__name__}")

        now = self.clock()
        record = self.store.records.get(item_id)
        if record is None:
            record = core.new_record(item_id, now, self.config)

        from_box = record.current_box
        to_box = core.move_box(from_box, was_correct, self.config)
        next_review = core.format_instant(
            core.next_review_date(to_box, now, self.config.tz, self.config.intervals)
        )

        self.store.put(
            core.ReviewRecord(
                item_id=item_id,
                current_box=to_box,
                next_review_date=next_review,
                times_correct=record.times_correct + (1 if was_correct else 0),
                times_incorrect=record.times_incorrect + (0 if was_correct else 1),
                last_reviewed=core.format_instant(now),
                last_answer_correct=was_correct,
            )
        )
        self.store.record_attempt(now)

        return AnswerResult(correct=was_correct, from_box=from_box, to_box=to_box, next_review=next_review)

    def get_item_progress(self, item_id: str) -> Optional[core.ReviewRecord]:
        self._require_loaded()
        return self.store.snapshot().get(item_id)

    # ---------- queries ----------
    def get_due_items(
        self,
        items: List[Dict[str, Any]],
        eligible: Optional[Callable[[Dict[str, Any]], bool]] = core.has_options,
    ) -> List[Dict[str, Any]]:
        self._require_loaded()
        # refreshers are sampled once; a failed interleave serves this same set sorted
        ordered = core.select_due_items(
            items, self.store.snapshot(), self.clock(), self.seed, self.config, self.rng, eligible, interleave=False
        )
        try:
            return core.interleave_by_topic(ordered, self.config.max_interleave_factor)
        except core.InterleaveLimitError as e:
            logger.error("Interleaving aborted, serving sorted order: %s", e)
            return ordered

    def get_stats(self, items: List[Dict[str, Any]]) -> Dict[str, Any]:
        self._require_loaded()
        return core.compute_stats(
            items,
            self.store.snapshot(),
            self.clock(),
            self.get_daily_target(),
            config=self.config,
        )

    def get_today_progress(self) -> Dict[str, Any]:
        self._require_loaded()
        done = core.reviewed_today_count(self.store.snapshot().values(), self.clock(), self.config.tz)
        return core.daily_progress(done, self.get_daily_target())

    def get_completion_progress(self, items: List[Dict[str, Any]]) -> Dict[str, Any]:
        self._require_loaded()
        return core.completion_progress(items, self.store.snapshot())

    def get_daily_activity_history(self) -> Dict[str, int]:
        self._require_loaded()
        return {d: n for d, n in self.store.activity.items() if n > 0}

    def describe_pool(self, items: List[Dict[str, Any]]) -> Dict[str, Any]:
        self._require_loaded()
        return core.describe_pool(items, self.store.snapshot(), self.clock(), self.config)

    # ---------- settings ----------
    def get_daily_target(self) -> int:
        self._require_loaded()
        return int(self.store.settings.get("dailyTarget", self.config.default_daily_target))

    def set_daily_target(self, target: int) -> None:
        self._require_loaded()
        if not core.validate_daily_target(target, self.config):
            raise core.InvalidArgumentError(
                f"Invalid daily target: {target!r}. Must be between "
                f"{self.config.min_daily_target} and {self.config.max_daily_target}."
            )
        self.store.settings["dailyTarget"] = target
        self.store.save_settings()
        logger.info("Daily target updated to %d items per day", target)

    # ---------- maintenance ----------
    def refresh_seed(self) -> int:
        self._require_loaded()
        new_seed = _seed_from(self.clock())
        if new_seed == self.seed:
            new_seed += 1
        self.seed = new_seed
        logger.info("Tie-break seed refreshed; due items will come in a new order")
        return self.seed

    def cleanup_stale(self) -> int:
        self._require_loaded()
        evicted = self.store.cleanup_stale()
        if evicted:
            self.store.schedule_save()
        return evicted

    def clear_progress(self) -> None:
        self._require_loaded()
        self.store.clear()
        self.refresh_seed()
