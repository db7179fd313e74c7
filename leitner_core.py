from __future__ import annotations

"""
leitner_core.py — 3-box Leitner review scheduler core

- Calendar-day arithmetic in one fixed local timezone (never raw UTC days).
- Review record model, blob validation and legacy migration helpers.
- Box transitions, stable tie-break hashing, due-set selection + topic interleaving.
- Streak / daily target / stats math.

Pure functions only: persistence lives in leitner_store, the stateful
facade in leitner_system. This file does NOT import Streamlit.
"""

import json
import logging
import os
import random
from collections import deque
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from json import JSONDecodeError
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Union
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)


# ============================================================
# Constants / Defaults
# ============================================================
BOX_INTERVALS: Dict[int, int] = {
    1: 1,  # new / difficult
    2: 2,  # improving
    3: 3,  # mastered
}
MIN_BOX = 1
MAX_BOX = 3
LEGACY_MAX_BOX = 5  # older 5-box data, clamped on load

BOX_LABELS = {
    1: "Learning",
    2: "Practicing",
    3: "Mastered",
}

MIN_DAILY_TARGET = 1
MAX_DAILY_TARGET = 500
DEFAULT_DAILY_TARGET = 60

CLEANUP_THRESHOLD_DAYS = 30
MIN_DUE_ITEMS = 50
REVIEW_PROBABILITY = 0.5

SAVE_DEBOUNCE_SEC = 0.1
MAX_INTERLEAVE_FACTOR = 1000

STREAK_WINDOW_DAYS = 30
ACTIVITY_RETENTION_DAYS = 90

PROGRESS_KEY = "leitner-progress"
SETTINGS_KEY = "leitner-settings"
ACTIVITY_KEY = "leitner-daily-attempts"

MASK32 = 0xFFFFFFFF


# ============================================================
# Errors
# ============================================================
class LeitnerError(Exception):
    """Base class for scheduler errors."""


class InvalidArgumentError(LeitnerError, ValueError):
    pass


class NotInitializedError(InvalidArgumentError, RuntimeError):
    pass


class CorruptStateError(LeitnerError, ValueError):
    pass


class StorageQuotaError(LeitnerError, OSError):
    """Raised by store backends when a write does not fit."""


class InterleaveLimitError(LeitnerError, RuntimeError):
    pass


# ============================================================
# Config
# ============================================================
TzSpec = Union[str, tzinfo, None]


@dataclass
class LeitnerConfig:
    intervals: Dict[int, int] = field(default_factory=lambda: dict(BOX_INTERVALS))
    min_box: int = MIN_BOX
    max_box: int = MAX_BOX
    legacy_max_box: int = LEGACY_MAX_BOX
    min_daily_target: int = MIN_DAILY_TARGET
    max_daily_target: int = MAX_DAILY_TARGET
    default_daily_target: int = DEFAULT_DAILY_TARGET
    cleanup_threshold_days: int = CLEANUP_THRESHOLD_DAYS
    min_due_items: int = MIN_DUE_ITEMS
    review_probability: float = REVIEW_PROBABILITY
    save_debounce_sec: float = SAVE_DEBOUNCE_SEC
    max_interleave_factor: int = MAX_INTERLEAVE_FACTOR
    streak_window_days: int = STREAK_WINDOW_DAYS
    activity_retention_days: int = ACTIVITY_RETENTION_DAYS
    progress_key: str = PROGRESS_KEY
    settings_key: str = SETTINGS_KEY
    activity_key: str = ACTIVITY_KEY
    timezone: TzSpec = None

    @property
    def tz(self) -> Optional[tzinfo]:
        return resolve_tz(self.timezone)

    @classmethod
    def from_env(cls) -> "LeitnerConfig":
        cfg = cls()
        cfg.timezone = os.getenv("LEITNER_TIMEZONE", "") or None
        cfg.min_due_items = int(os.getenv("LEITNER_MIN_DUE_ITEMS", str(MIN_DUE_ITEMS)))
        cfg.review_probability = clamp(
            float(os.getenv("LEITNER_REVIEW_PROBABILITY", str(REVIEW_PROBABILITY))), 0.0, 1.0
        )
        cfg.save_debounce_sec = float(os.getenv("LEITNER_SAVE_DEBOUNCE_SEC", str(SAVE_DEBOUNCE_SEC)))
        return cfg


# ============================================================
# Helpers
# ============================================================
def clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def safe_load_json(path: Path) -> Any:
    try:
        txt = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ValueError(f"Failed reading {path}: {e}") from e
    try:
        return json.loads(txt)
    except JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {path} (line {e.lineno}, col {e.colno}): {e.msg}") from e


def is_int(x: Any) -> bool:
    # bool is an int subclass; a stored `true` is not a box number
    return isinstance(x, int) and not isinstance(x, bool)


# ============================================================
# Dates (fixed local timezone)
# ============================================================
def resolve_tz(value: TzSpec) -> Optional[tzinfo]:
    """None means the process local zone."""
    if value is None or isinstance(value, tzinfo):
        return value
    name = str(value).strip()
    return ZoneInfo(name) if name else None


def to_local(dt: datetime, tz: Optional[tzinfo] = None) -> datetime:
    if dt.tzinfo is None:
        dt = dt.astimezone()
    return dt.astimezone(tz)


def local_midnight(d: date, tz: Optional[tzinfo] = None) -> datetime:
    if tz is None:
        return datetime.combine(d, time()).astimezone()
    return datetime.combine(d, time(), tzinfo=tz)


def format_instant(dt: datetime) -> str:
    """UTC ISO-8601 with milliseconds and a Z suffix, e.g. 2026-02-19T10:00:00.000Z."""
    u = to_local(dt, timezone.utc)
    return u.strftime("%Y-%m-%dT%H:%M:%S.") + f"{u.microsecond // 1000:03d}Z"


def parse_instant(value: Union[str, datetime], tz: Optional[tzinfo] = None) -> datetime:
    """Raises ValueError on anything that is not an ISO-8601 instant."""
    if isinstance(value, datetime):
        dt = value
    else:
        if not isinstance(value, str):
            raise ValueError(f"Not a timestamp: {value!r}")
        s = value.strip()
        if s.endswith(("Z", "z")):
            s = s[:-1] + "+00:00"
        dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        # naive stamps are read as wall-clock time in the configured zone
        dt = dt.astimezone() if tz is None else dt.replace(tzinfo=tz)
    return dt


def local_day(instant: datetime, tz: Optional[tzinfo] = None) -> str:
    return to_local(instant, tz).date().isoformat()


def local_day_from_stored(stored: Any, tz: Optional[tzinfo] = None) -> Optional[str]:
    try:
        return local_day(parse_instant(stored, tz), tz)
    except (ValueError, TypeError, OverflowError):
        logger.warning("Invalid stored date: %r", stored)
        return None


def next_review_date(
    box: int,
    from_instant: datetime,
    tz: Optional[tzinfo] = None,
    intervals: Optional[Dict[int, int]] = None,
) -> datetime:
    """Local midnight of `from_instant` plus the box interval in days."""
    table = BOX_INTERVALS if intervals is None else intervals
    interval = table.get(box) if is_int(box) else None
    if not interval or interval < 1:
        logger.warning("Invalid interval for box %r, defaulting to 1 day", box)
        return from_instant + timedelta(days=1)

    local = to_local(from_instant, tz)
    return local_midnight(local.date() + timedelta(days=interval), tz)


def is_due(review: Any, now: datetime, tz: Optional[tzinfo] = None) -> bool:
    review_day = local_day_from_stored(review, tz)
    if review_day is None:
        return False
    return review_day <= local_day(now, tz)


# ============================================================
# Review record model
# ============================================================
RECORD_FIELDS = (
    ("itemId", str),
    ("currentBox", int),
    ("nextReviewDate", str),
    ("timesCorrect", int),
    ("timesIncorrect", int),
    ("lastReviewed", str),
    ("lastAnswerCorrect", bool),
)


@dataclass
class ReviewRecord:
    item_id: str
    current_box: int
    next_review_date: str
    times_correct: int = 0
    times_incorrect: int = 0
    last_reviewed: str = ""
    last_answer_correct: bool = False

    @property
    def times_answered(self) -> int:
        return self.times_correct + self.times_incorrect

    def to_dict(self) -> Dict[str, Any]:
        return {
            "itemId": self.item_id,
            "currentBox": self.current_box,
            "nextReviewDate": self.next_review_date,
            "timesCorrect": self.times_correct,
            "timesIncorrect": self.times_incorrect,
            "lastReviewed": self.last_reviewed,
            "lastAnswerCorrect": self.last_answer_correct,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ReviewRecord":
        return cls(
            item_id=d["itemId"],
            current_box=d["currentBox"],
            next_review_date=d["nextReviewDate"],
            times_correct=d["timesCorrect"],
            times_incorrect=d["timesIncorrect"],
            last_reviewed=d["lastReviewed"],
            last_answer_correct=d["lastAnswerCorrect"],
        )


def new_record(item_id: str, now: datetime, config: LeitnerConfig) -> ReviewRecord:
    return ReviewRecord(
        item_id=item_id,
        current_box=config.min_box,
        next_review_date=format_instant(
            next_review_date(config.min_box, now, config.tz, config.intervals)
        ),
        last_reviewed=format_instant(now),
    )


# ============================================================
# Validation / wire format
# ============================================================
def _upgrade_legacy_fields(raw: Dict[str, Any]) -> Dict[str, Any]:
    if "itemId" not in raw and "questionId" in raw:
        raw = dict(raw)
        raw["itemId"] = raw.pop("questionId")
    return raw


def record_problems(key: str, raw: Any, config: LeitnerConfig) -> List[str]:
    """
    Returns a list of human-readable problems; empty means the record is trusted.
    Boxes above max_box (up to legacy_max_box) pass so they can be migrated.
    """
    if not isinstance(raw, dict):
        return [f"{key}: record must be an object"]

    issues: List[str] = []
    for name, typ in RECORD_FIELDS:
        if name not in raw:
            issues.append(f"{key}: missing {name}")
            continue
        v = raw[name]
        ok = is_int(v) if typ is int else isinstance(v, typ)
        if not ok:
            issues.append(f"{key}: {name} must be {typ.__name__}")
    if issues:
        return issues

    if raw["itemId"] != key:
        issues.append(f"{key}: itemId {raw['itemId']!r} does not match its key")
    if not config.min_box <= raw["currentBox"] <= max(config.max_box, config.legacy_max_box):
        issues.append(f"{key}: currentBox {raw['currentBox']} out of range")
    if raw["timesCorrect"] < 0 or raw["timesIncorrect"] < 0:
        issues.append(f"{key}: counters must be non-negative")
    return issues


def decode_progress(text: str, config: LeitnerConfig) -> Dict[str, ReviewRecord]:
    """
    Parses the persisted progress blob. Any problem rejects the whole blob:
    corrupt data is never partially trusted.
    """
    try:
        data = json.loads(text)
    except JSONDecodeError as e:
        raise CorruptStateError(f"Progress blob is not JSON (line {e.lineno}, col {e.colno}): {e.msg}") from e
    if not isinstance(data, dict):
        raise CorruptStateError("Progress blob must be a JSON object")

    issues: List[str] = []
    cleaned: Dict[str, Dict[str, Any]] = {}
    for k, v in data.items():
        v = _upgrade_legacy_fields(v) if isinstance(v, dict) else v
        issues.extend(record_problems(k, v, config))
        cleaned[k] = v

    if issues:
        shown = "; ".join(issues[:5])
        more = f" (+{len(issues) - 5} more)" if len(issues) > 5 else ""
        raise CorruptStateError(f"Invalid progress records: {shown}{more}")

    return {k: ReviewRecord.from_dict(v) for k, v in cleaned.items()}


def encode_progress(records: Dict[str, ReviewRecord]) -> str:
    return json.dumps({k: r.to_dict() for k, r in records.items()}, ensure_ascii=False)


def migrate_records(records: Dict[str, ReviewRecord], now: datetime, config: LeitnerConfig) -> int:
    """Clamps boxes above max_box and recomputes their next review. Returns count migrated."""
    tz = config.tz
    migrated = 0
    for r in records.values():
        if r.current_box <= config.max_box:
            continue
        r.current_box = config.max_box
        try:
            base = parse_instant(r.last_reviewed, tz)
        except (ValueError, TypeError):
            logger.warning("Unparseable lastReviewed %r for %s, migrating from now", r.last_reviewed, r.item_id)
            base = now
        r.next_review_date = format_instant(next_review_date(config.max_box, base, tz, config.intervals))
        migrated += 1
    return migrated


def validate_daily_target(target: Any, config: LeitnerConfig) -> bool:
    return is_int(target) and config.min_daily_target <= target <= config.max_daily_target


def stale_record_ids(records: Dict[str, ReviewRecord], now: datetime, config: LeitnerConfig) -> List[str]:
    """Mastered records not reviewed within the cleanup threshold. Lower boxes are never stale."""
    tz = config.tz
    cutoff = local_day(now - timedelta(days=config.cleanup_threshold_days), tz)
    out: List[str] = []
    for k, r in records.items():
        if r.current_box != config.max_box:
            continue
        reviewed = local_day_from_stored(r.last_reviewed, tz)
        # keep it if the date can't be read
        if reviewed is not None and reviewed < cutoff:
            out.append(k)
    return out


def prune_activity(history: Dict[str, Any], today: date, retention_days: int) -> Dict[str, int]:
    """Drops malformed keys/counts and days older than the retention window."""
    out: Dict[str, int] = {}
    for k, v in history.items():
        try:
            d = date.fromisoformat(str(k))
        except ValueError:
            continue
        if not is_int(v) or v < 0:
            continue
        if (today - d).days > retention_days:
            continue
        out[d.isoformat()] = v
    return out


# ============================================================
# Box transitions
# ============================================================
def move_box(current_box: int, was_correct: bool, config: Optional[LeitnerConfig] = None) -> int:
    cfg = config or LeitnerConfig()
    if not is_int(current_box) or not cfg.min_box <= current_box <= cfg.max_box:
        logger.warning("Invalid current box: %r, defaulting to %s", current_box, cfg.min_box)
        return cfg.min_box
    if was_correct:
        return min(current_box + 1, cfg.max_box)
    return cfg.min_box


# ============================================================
# Stable random
# ============================================================
def stable_random(item_id: str, seed: int) -> float:
    """
    Deterministic hash of (item_id, seed) in [0, 1).
    32-bit multiplicative/XOR mixing per character, then a final avalanche.
    """
    h = int(seed) & MASK32
    for ch in str(item_id):
        h = ((h << 5) - h + ord(ch)) & MASK32
        h = ((h << 13) ^ h) & MASK32
        h = ((h * 0x85EBCA6B) & MASK32) ^ (h >> 16)

    h ^= h >> 16
    h = (h * 0x9E3779B9) & MASK32
    h ^= h >> 16
    return (h & 0x7FFFFFFF) / 0x80000000


# ============================================================
# Content loaders (host helpers)
# ============================================================
def _unwrap_question_container(data: Any) -> Any:
    if isinstance(data, dict) and isinstance(data.get("questions"), list):
        return data["questions"]
    return data


def load_questions(qdir: Path) -> List[Dict[str, Any]]:
    """
    Loads questions from <qdir>/*.json, one topic per file unless an entry has its own:
      {id, question, options: [...], answer_indexes|answerIndexes: [...], topic?, explanation?}
    """
    qdir = Path(qdir)
    if not qdir.exists():
        return []

    out: List[Dict[str, Any]] = []
    for f in sorted(qdir.glob("*.json")):
        data = _unwrap_question_container(safe_load_json(f))
        if not isinstance(data, list):
            raise ValueError(f"{f.name} must hold a list of questions.")

        for q in data:
            if not isinstance(q, dict):
                continue
            if "id" not in q or "question" not in q:
                raise ValueError(f"Bad question entry in {f.name}. Need id + question.")

            options = q.get("options", [])
            if not isinstance(options, list):
                raise ValueError(f"Question {q.get('id')} options must be a list.")
            raw_ai = q.get("answer_indexes", q.get("answerIndexes", []))
            try:
                answer_indexes = [int(i) for i in (raw_ai or [])]
            except (TypeError, ValueError):
                raise ValueError(f"Question {q.get('id')} answer indexes must be ints.")

            out.append(
                {
                    "id": str(q["id"]),
                    "topic": str(q.get("topic") or f.stem),
                    "question": str(q["question"]),
                    "options": [str(o) for o in options],
                    "answer_indexes": answer_indexes,
                    "explanation": str(q.get("explanation", "") or ""),
                }
            )
    return out


def has_options(item: Dict[str, Any]) -> bool:
    opts = item.get("options")
    return isinstance(opts, list) and len(opts) > 0


def is_correct_answer(item: Dict[str, Any], selected: Iterable[int]) -> bool:
    expected = {int(i) for i in item.get("answer_indexes", [])}
    return bool(expected) and set(int(i) for i in selected) == expected


# ============================================================
# Due-set selection
# ============================================================
def annotate_item(
    item: Dict[str, Any],
    record: Optional[ReviewRecord],
    now: datetime,
    tz: Optional[tzinfo] = None,
) -> Dict[str, Any]:
    out = dict(item)
    if record is None:
        out.update(priority=1, is_due=True, current_box=1, times_incorrect=0)
        return out
    out.update(
        priority=record.current_box,
        is_due=is_due(record.next_review_date, now, tz),
        current_box=record.current_box,
        times_incorrect=record.times_incorrect,
    )
    return out


def sort_due_items(items: List[Dict[str, Any]], seed: int) -> List[Dict[str, Any]]:
    return sorted(
        items,
        key=lambda q: (
            not q["is_due"],
            q["priority"],
            -int(q.get("times_incorrect") or 0),
            stable_random(q["id"], seed),
        ),
    )


def interleave_by_topic(items: List[Dict[str, Any]], max_factor: int = MAX_INTERLEAVE_FACTOR) -> List[Dict[str, Any]]:
    """
    Round-robin one item per topic, topics in encounter order, dropping
    exhausted topics from the rotation. Within a topic the input order holds.
    """
    groups: Dict[str, deque] = {}
    for it in items:
        groups.setdefault(str(it.get("topic", "")), deque()).append(it)
    if len(groups) <= 1:
        return list(items)

    rotation = deque(groups)
    cap = max(1, max_factor * len(items))
    out: List[Dict[str, Any]] = []
    steps = 0
    while rotation:
        steps += 1
        if steps > cap:
            raise InterleaveLimitError(f"Interleaving exceeded {cap} iterations for {len(items)} items")
        topic = rotation.popleft()
        group = groups[topic]
        out.append(group.popleft())
        if group:
            rotation.append(topic)
    return out


def select_due_items(
    candidates: List[Dict[str, Any]],
    records: Dict[str, ReviewRecord],
    now: datetime,
    seed: int,
    config: Optional[LeitnerConfig] = None,
    rng: Optional[random.Random] = None,
    eligible: Optional[Callable[[Dict[str, Any]], bool]] = has_options,
    interleave: bool = True,
) -> List[Dict[str, Any]]:
    """
    Ordered review session for `candidates`:
      1) keep eligible items            2) annotate with box / due state
      3) due items + some mastered ones 4) backfill to config.min_due_items
      5) sort (due, box, misses, stable random)  6) interleave topics
    The input list and its dicts are never mutated.
    """
    cfg = config or LeitnerConfig()
    rng = rng or random.Random()
    tz = cfg.tz

    pool = [it for it in candidates if eligible is None or eligible(it)]
    if not pool:
        return []

    annotated = [annotate_item(it, records.get(it["id"]), now, tz) for it in pool]

    chosen: List[Dict[str, Any]] = []
    chosen_ids: Set[str] = set()
    for q in annotated:
        take = q["is_due"]
        if not take and q["current_box"] == cfg.max_box:
            take = rng.random() < cfg.review_probability
        if take:
            chosen.append(q)
            chosen_ids.add(q["id"])

    if len(chosen) < cfg.min_due_items:
        for q in annotated:
            if len(chosen) >= cfg.min_due_items:
                break
            if q["id"] in chosen_ids:
                continue
            chosen.append(q)
            chosen_ids.add(q["id"])

    ordered = sort_due_items(chosen, seed)
    if not interleave:
        return ordered
    return interleave_by_topic(ordered, cfg.max_interleave_factor)


# ============================================================
# Streak / daily target / stats
# ============================================================
def calculate_streak_days(active_days: Set[str], today: date, window: int = STREAK_WINDOW_DAYS) -> int:
    """
    Consecutive active days counting back from today. A quiet *today*
    doesn't break the streak; the first quiet earlier day does.
    """
    streak = 0
    for i in range(window):
        day = (today - timedelta(days=i)).isoformat()
        if day in active_days:
            streak += 1
        elif i > 0:
            break
    return streak


def active_days(records: Iterable[ReviewRecord], tz: Optional[tzinfo] = None) -> Set[str]:
    """Local days on which some record was last reviewed."""
    days: Set[str] = set()
    for r in records:
        d = local_day_from_stored(r.last_reviewed, tz)
        if d:
            days.add(d)
    return days


def reviewed_today_count(records: Iterable[ReviewRecord], now: datetime, tz: Optional[tzinfo] = None) -> int:
    today = local_day(now, tz)
    return sum(1 for r in records if local_day_from_stored(r.last_reviewed, tz) == today)


def daily_progress(completed: int, target: int) -> Dict[str, Any]:
    target = max(1, int(target))
    return {
        "target": target,
        "completed": completed,
        "remaining": max(0, target - completed),
        "percentage": min(100.0, completed / target * 100.0),
    }


def compute_stats(
    items: List[Dict[str, Any]],
    records: Dict[str, ReviewRecord],
    now: datetime,
    daily_target: int,
    config: Optional[LeitnerConfig] = None,
) -> Dict[str, Any]:
    cfg = config or LeitnerConfig()
    tz = cfg.tz

    dist = {b: 0 for b in range(cfg.min_box, cfg.max_box + 1)}
    started = 0
    total_correct = 0
    total_answered = 0

    for it in items:
        r = records.get(it["id"])
        if r is None:
            dist[cfg.min_box] += 1
            continue
        dist[r.current_box] = dist.get(r.current_box, 0) + 1
        started += 1
        total_correct += r.times_correct
        total_answered += r.times_answered

    today = to_local(now, tz).date()
    progress = daily_progress(reviewed_today_count(records.values(), now, tz), daily_target)

    return {
        "total_count": len(items),
        "started_count": started,
        "box_distribution": dist,
        "due_today": progress["remaining"],
        "accuracy_rate": (total_correct / total_answered) if total_answered else 0.0,
        "streak_days": calculate_streak_days(
            active_days(records.values(), tz), today, cfg.streak_window_days
        ),
    }


def completion_progress(items: List[Dict[str, Any]], records: Dict[str, ReviewRecord]) -> Dict[str, Any]:
    answered = 0
    correct = 0
    total_correct = 0
    total_answered = 0
    for it in items:
        r = records.get(it["id"])
        if r is None:
            continue
        answered += 1
        total_correct += r.times_correct
        total_answered += r.times_answered
        if r.times_correct > r.times_incorrect:
            correct += 1
    return {
        "total_count": len(items),
        "answered_count": answered,
        "correct_count": correct,
        "incorrect_count": answered - correct,
        "accuracy": (total_correct / total_answered) if total_answered else 0.0,
    }


def describe_pool(
    items: List[Dict[str, Any]],
    records: Dict[str, ReviewRecord],
    now: datetime,
    config: Optional[LeitnerConfig] = None,
    sample_size: int = 20,
) -> Dict[str, Any]:
    cfg = config or LeitnerConfig()
    tz = cfg.tz
    counts: Dict[str, int] = {"records": len(records), "new": 0, "due": 0, "not_due": 0}
    for b in range(cfg.min_box, cfg.max_box + 1):
        counts[f"box{b}"] = 0

    topics: Dict[str, int] = {}
    sample: List[Dict[str, Any]] = []
    for it in items:
        topic = str(it.get("topic", ""))
        topics[topic] = topics.get(topic, 0) + 1

        r = records.get(it["id"])
        if r is None:
            counts["new"] += 1
            due_flag = True
        else:
            counts[f"box{r.current_box}"] = counts.get(f"box{r.current_box}", 0) + 1
            due_flag = is_due(r.next_review_date, now, tz)
            counts["due" if due_flag else "not_due"] += 1

        if due_flag and len(sample) < sample_size:
            sample.append(
                {
                    "id": it["id"],
                    "topic": topic,
                    "current_box": r.current_box if r else cfg.min_box,
                    "next_review_date": r.next_review_date if r else "new",
                    "times_correct": r.times_correct if r else 0,
                    "times_incorrect": r.times_incorrect if r else 0,
                }
            )

    return {
        "total_count": len(items),
        "progress": counts,
        "due_count": counts["new"] + counts["due"],
        "sample_due": sample,
        "topic_distribution": topics,
    }
