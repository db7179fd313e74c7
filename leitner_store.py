from __future__ import annotations

"""
leitner_store.py — persistence for the Leitner scheduler

- Key-value backends selectable per host:
    - "disk":    one JSON file per key in a data directory (desktop)
    - "session": any mutable mapping, e.g. st.session_state (Streamlit Cloud friendly)
    - MemoryStore for tests, with an optional byte quota.
- ProgressStore owns the in-memory record map, settings and daily activity,
  loads + validates + migrates them, and writes through a trailing-edge debounce.
"""

import errno
import json
import logging
import threading
from datetime import datetime
from json import JSONDecodeError
from pathlib import Path
from typing import Any, Callable, Dict, List, MutableMapping, Optional

import leitner_core as core

logger = logging.getLogger(__name__)


# ============================================================
# Key-value backends
# ============================================================
class KeyValueStore:
    """get/set/remove by string key. Any call may raise."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    def __init__(self, data: Optional[Dict[str, str]] = None, quota_bytes: Optional[int] = None):
        self.data: Dict[str, str] = dict(data or {})
        self.quota_bytes = quota_bytes
        self.writes = 0

    def used_bytes(self, exclude: str = "") -> int:
        return sum(len(k) + len(v.encode("utf-8")) for k, v in self.data.items() if k != exclude)

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.quota_bytes is not None:
            need = self.used_bytes(exclude=key) + len(key) + len(value.encode("utf-8"))
            if need > self.quota_bytes:
                raise core.StorageQuotaError(f"Quota exceeded writing {key}: {need} > {self.quota_bytes} bytes")
        self.data[key] = value
        self.writes += 1

    def remove(self, key: str) -> None:
        self.data.pop(key, None)


class SessionStateStore(KeyValueStore):
    """Wraps a mutable mapping (Streamlit session state) under a key prefix."""

    def __init__(self, mapping: MutableMapping[str, Any], prefix: str = "kv::"):
        self.mapping = mapping
        self.prefix = prefix

    def get(self, key: str) -> Optional[str]:
        v = self.mapping.get(self.prefix + key)
        return v if isinstance(v, str) else None

    def set(self, key: str, value: str) -> None:
        self.mapping[self.prefix + key] = value

    def remove(self, key: str) -> None:
        self.mapping.pop(self.prefix + key, None)


class JsonFileStore(KeyValueStore):
    def __init__(self, root: Path):
        self.root = Path(root)

    def path_for(self, key: str) -> Path:
        safe = "".join(c if c.isalnum() or c in "-_." else "_" for c in key)
        return self.root / f"{safe}.json"

    def get(self, key: str) -> Optional[str]:
        p = self.path_for(key)
        if not p.exists():
            return None
        return p.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        p = self.path_for(key)
        tmp = p.with_suffix(p.suffix + ".tmp")
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            tmp.write_text(value, encoding="utf-8")
            tmp.replace(p)
        except OSError as e:
            if e.errno in (errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)):
                raise core.StorageQuotaError(e.errno, f"No space left writing {p}") from e
            raise

    def remove(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)


def make_store(mode: str, root: Path = Path("data"), session: Optional[MutableMapping[str, Any]] = None) -> KeyValueStore:
    m = str(mode or "").strip().lower()
    if m == "session":
        return SessionStateStore(session if session is not None else {})
    return JsonFileStore(root)


# ============================================================
# Debounce
# ============================================================
class Debouncer:
    """
    Trailing-edge debounce: every trigger() cancels the pending timer and
    schedules a new one, so a burst of triggers produces one call.
    """

    def __init__(self, delay: float, fn: Callable[[], Any], timer_factory: Callable[..., Any] = threading.Timer):
        self.delay = delay
        self.fn = fn
        self.timer_factory = timer_factory
        self._timer = None
        self._lock = threading.Lock()

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def trigger(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            t = self.timer_factory(self.delay, self._fire)
            t.daemon = True
            self._timer = t
            t.start()

    def _fire(self) -> None:
        with self._lock:
            if self._timer is None:
                return
            self._timer = None
        self.fn()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def flush(self) -> bool:
        """Runs the pending call now. Returns False if nothing was pending."""
        with self._lock:
            if self._timer is None:
                return False
            self._timer.cancel()
            self._timer = None
        self.fn()
        return True


# ============================================================
# Persistence adapter
# ============================================================
class ProgressStore:
    def __init__(
        self,
        kv: KeyValueStore,
        config: Optional[core.LeitnerConfig] = None,
        clock: Callable[[], datetime] = core.utc_now,
        timer_factory: Callable[..., Any] = threading.Timer,
    ):
        self.kv = kv
        self.config = config or core.LeitnerConfig()
        self.clock = clock
        self.records: Dict[str, core.ReviewRecord] = {}
        self.settings: Dict[str, Any] = {"dailyTarget": self.config.default_daily_target}
        self.activity: Dict[str, int] = {}
        self.loaded = False
        self.last_save_error: Optional[BaseException] = None
        self._lock = threading.RLock()
        self._debouncer = Debouncer(self.config.save_debounce_sec, self.save_now, timer_factory)

    # ---------- load ----------
    def _read(self, key: str) -> Optional[str]:
        try:
            return self.kv.get(key)
        except Exception as e:
            logger.warning("Failed to read storage key %s: %s", key, e)
            return None

    def load(self) -> None:
        with self._lock:
            self.records = self._load_records()
            self.settings = self._load_settings()
            self.activity = self._load_activity()
            self.loaded = True

            migrated = core.migrate_records(self.records, self.clock(), self.config)
            if migrated:
                logger.info("Migrated %d records down to %d boxes", migrated, self.config.max_box)
                self.schedule_save()

    def _load_records(self) -> Dict[str, core.ReviewRecord]:
        raw = self._read(self.config.progress_key)
        if not raw:
            return {}
        try:
            return core.decode_progress(raw, self.config)
        except core.CorruptStateError as e:
            logger.warning("Discarding stored progress: %s", e)
            return {}

    def _load_settings(self) -> Dict[str, Any]:
        settings: Dict[str, Any] = {"dailyTarget": self.config.default_daily_target}
        raw = self._read(self.config.settings_key)
        if not raw:
            return settings
        try:
            stored = json.loads(raw)
        except JSONDecodeError as e:
            logger.warning("Failed to parse settings, using defaults: %s", e)
            return settings
        if not isinstance(stored, dict):
            logger.warning("Settings blob is not an object, using defaults")
            return settings

        settings.update(stored)
        if not core.validate_daily_target(settings.get("dailyTarget"), self.config):
            logger.warning("Invalid stored daily target %r, using %d",
                           settings.get("dailyTarget"), self.config.default_daily_target)
            settings["dailyTarget"] = self.config.default_daily_target
        return settings

    def _load_activity(self) -> Dict[str, int]:
        raw = self._read(self.config.activity_key)
        if not raw:
            return {}
        try:
            stored = json.loads(raw)
        except JSONDecodeError as e:
            logger.warning("Failed to parse daily activity, starting fresh: %s", e)
            return {}
        if not isinstance(stored, dict):
            return {}
        today = core.to_local(self.clock(), self.config.tz).date()
        return core.prune_activity(stored, today, self.config.activity_retention_days)

    # ---------- save ----------
    def snapshot(self) -> Dict[str, core.ReviewRecord]:
        """Shallow copy of the record map, safe to iterate while a timer thread saves."""
        with self._lock:
            return dict(self.records)

    def schedule_save(self) -> None:
        self._debouncer.trigger()

    def flush(self) -> bool:
        """Writes any pending debounced save now. True if the store is in sync."""
        if self._debouncer.pending:
            self._debouncer.flush()
        return self.last_save_error is None

    def cancel_pending_save(self) -> None:
        self._debouncer.cancel()

    def _write(self, key: str, payload: str) -> bool:
        try:
            self.kv.set(key, payload)
            return True
        except core.StorageQuotaError:
            raise
        except Exception as e:
            logger.warning("Failed to write storage key %s: %s", key, e)
            self.last_save_error = e
            return False

    def save_now(self) -> bool:
        """
        Writes progress + activity. On quota exhaustion evicts stale mastered
        records and retries once; a second failure keeps the in-memory state.
        """
        with self._lock:
            self.last_save_error = None
            try:
                ok = self._write(self.config.progress_key, core.encode_progress(self.records))
            except core.StorageQuotaError as e:
                evicted = self.cleanup_stale()
                logger.warning("Storage quota exceeded (%s); evicted %d stale records, retrying", e, evicted)
                try:
                    ok = self._write(self.config.progress_key, core.encode_progress(self.records))
                except core.StorageQuotaError as retry_error:
                    logger.warning("Failed to save progress even after cleanup: %s", retry_error)
                    self.last_save_error = retry_error
                    ok = False

            if not self._write_activity():
                ok = False
            return ok

    def _write_activity(self) -> bool:
        try:
            return self._write(self.config.activity_key, json.dumps(self.activity, sort_keys=True))
        except core.StorageQuotaError as e:
            logger.warning("Storage quota exceeded writing daily activity: %s", e)
            self.last_save_error = e
            return False

    def save_settings(self) -> bool:
        with self._lock:
            try:
                return self._write(self.config.settings_key, json.dumps(self.settings))
            except core.StorageQuotaError as e:
                logger.warning("Failed to save settings: %s", e)
                self.last_save_error = e
                return False

    # ---------- mutations ----------
    def put(self, record: core.ReviewRecord) -> None:
        with self._lock:
            self.records[record.item_id] = record
        self.schedule_save()

    def record_attempt(self, when: datetime) -> None:
        tz = self.config.tz
        with self._lock:
            day = core.local_day(when, tz)
            self.activity[day] = self.activity.get(day, 0) + 1
            today = core.to_local(when, tz).date()
            self.activity = core.prune_activity(self.activity, today, self.config.activity_retention_days)
        self.schedule_save()

    def cleanup_stale(self) -> int:
        with self._lock:
            stale: List[str] = core.stale_record_ids(self.records, self.clock(), self.config)
            for k in stale:
                del self.records[k]
        if stale:
            logger.info("Cleaned up %d old mastered records", len(stale))
        return len(stale)

    def clear(self) -> None:
        self.cancel_pending_save()
        with self._lock:
            self.records.clear()
            self.activity.clear()
            for key in (self.config.progress_key, self.config.activity_key):
                try:
                    self.kv.remove(key)
                except Exception as e:
                    logger.warning("Failed to remove storage key %s: %s", key, e)
