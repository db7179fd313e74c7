from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import streamlit as st

import leitner_core as core
from leitner_store import make_store
from leitner_system import LeitnerSystem

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))


# ============================================================
# Paths / backend
# ============================================================
CONTENT_DIR = Path("content")
QUESTIONS_DIR = CONTENT_DIR / "questions"
DATA_DIR = Path("data")

# "disk"    -> JSON files under data/
# "session" -> st.session_state only (no file I/O)
PERSISTENCE_BACKEND = os.getenv("LEITNER_BACKEND", "disk")


# ============================================================
# Loading (cached content; mutable progress not cached)
# ============================================================
@st.cache_data(show_spinner=False)
def load_content_cached() -> List[Dict[str, Any]]:
    return core.load_questions(QUESTIONS_DIR)


# ============================================================
# State
# ============================================================
def ensure_state():
    if st.session_state.get("initialized"):
        return

    store = make_store(PERSISTENCE_BACKEND, DATA_DIR, session=st.session_state)
    system = LeitnerSystem(store, config=core.LeitnerConfig.from_env())
    system.load()

    st.session_state.initialized = True
    st.session_state.system = system
    st.session_state.questions = load_content_cached()
    st.session_state.topic_filter = set()

    st.session_state.queue = []
    st.session_state.queue_i = 0
    st.session_state.answered = False
    st.session_state.last_result = None  # Optional[AnswerResult]

    st.session_state.session_done = 0
    st.session_state.session_correct = 0

    rebuild_queue()


def system() -> LeitnerSystem:
    return st.session_state.system


def filtered_questions() -> List[Dict[str, Any]]:
    topics = st.session_state.topic_filter
    qs = st.session_state.questions
    if not topics:
        return qs
    return [q for q in qs if q.get("topic") in topics]


def rebuild_queue():
    st.session_state.queue = system().get_due_items(filtered_questions())
    st.session_state.queue_i = 0
    reset_answer_state()


def reset_answer_state():
    st.session_state.answered = False
    st.session_state.last_result = None
    for k in list(st.session_state.keys()):
        if str(k).startswith("pick::"):
            del st.session_state[k]


def current_item() -> Optional[Dict[str, Any]]:
    q = st.session_state.queue
    i = st.session_state.queue_i
    return q[i] if 0 <= i < len(q) else None


def next_item():
    st.session_state.queue_i += 1
    if st.session_state.queue_i >= len(st.session_state.queue):
        rebuild_queue()
        return
    reset_answer_state()


# ============================================================
# Rendering
# ============================================================
def render_stats():
    stats = system().get_stats(filtered_questions())
    today = system().get_today_progress()
    dist = stats["box_distribution"]

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Started", f"{stats['started_count']}/{stats['total_count']}")
    c2.metric("Accuracy", f"{stats['accuracy_rate'] * 100:.0f}%")
    c3.metric("Streak", f"{stats['streak_days']}d")
    c4.metric("Left today", stats["due_today"])

    st.progress(today["percentage"] / 100.0, text=f"Today {today['completed']}/{today['target']}")
    st.caption(" | ".join(f"{core.BOX_LABELS[b]}: {dist.get(b, 0)}" for b in sorted(core.BOX_LABELS)))


def render_question(q: Dict[str, Any]):
    st.caption(f"Topic: {q.get('topic', '')} | Box {q['current_box']} ({core.BOX_LABELS.get(q['current_box'], '')})"
               + ("" if q["is_due"] else " | extra practice"))
    st.subheader(q["question"])

    options = q.get("options", [])
    multi = len(q.get("answer_indexes", [])) > 1
    key = f"pick::{q['id']}"

    if multi:
        selected = [
            i for i, opt in enumerate(options)
            if st.checkbox(opt, key=f"{key}::{i}", disabled=st.session_state.answered)
        ]
    else:
        pick = st.radio(
            "Pick one:",
            options=list(range(len(options))),
            format_func=lambda i: options[i],
            index=None,
            key=key,
            disabled=st.session_state.answered,
        )
        selected = [] if pick is None else [pick]

    if st.button("Submit", type="primary", disabled=st.session_state.answered):
        if not selected:
            st.warning("Pick an option first.")
            return
        got_right = core.is_correct_answer(q, selected)
        st.session_state.last_result = system().process_answer(q["id"], got_right)
        st.session_state.answered = True
        st.session_state.session_done += 1
        st.session_state.session_correct += 1 if got_right else 0
        st.rerun()

    res = st.session_state.last_result
    if st.session_state.answered and res is not None:
        correct_text = ", ".join(options[i] for i in q.get("answer_indexes", []) if 0 <= i < len(options))
        if res.correct:
            st.success(f"✅ Correct. Box {res.from_box} → {res.to_box}")
        else:
            st.error(f"❌ Incorrect: {correct_text}. Back to box {res.to_box}")
        if q.get("explanation"):
            with st.expander("Explanation", expanded=True):
                st.write(q["explanation"])
        if st.button("Next", use_container_width=True):
            next_item()
            st.rerun()


# ============================================================
# Main
# ============================================================
def main():
    st.set_page_config(page_title="Leitner Review", layout="wide")
    ensure_state()

    st.title("Leitner Review")

    with st.sidebar:
        st.header("Filters")
        topics = sorted({q.get("topic", "") for q in st.session_state.questions})
        chosen = set(st.multiselect("Topics", topics, default=sorted(st.session_state.topic_filter)))
        if chosen != st.session_state.topic_filter:
            st.session_state.topic_filter = chosen
            rebuild_queue()

        st.divider()
        st.header("Settings")
        target = st.number_input(
            "Daily target",
            core.MIN_DAILY_TARGET,
            core.MAX_DAILY_TARGET,
            system().get_daily_target(),
            1,
        )
        if int(target) != system().get_daily_target():
            system().set_daily_target(int(target))

        if st.button("Shuffle due items", use_container_width=True):
            system().refresh_seed()
            rebuild_queue()
            st.rerun()
        if st.button("Clear all progress", use_container_width=True):
            system().clear_progress()
            rebuild_queue()
            st.rerun()

        with st.expander("Pool details", expanded=False):
            st.json(system().describe_pool(filtered_questions()))

    render_stats()

    done = st.session_state.session_done
    acc = (st.session_state.session_correct / done * 100.0) if done else 0.0
    st.write(f"**Session:** {done} answered | Acc {acc:.0f}% | Queue {len(st.session_state.queue)}")
    st.divider()

    q = current_item()
    if not q:
        st.info("Nothing to review. Add questions under content/questions/ or adjust the topic filter.")
    else:
        render_question(q)

    # Streamlit reruns the script per interaction; don't leave writes on a timer thread.
    if not system().flush():
        st.warning(f"Progress not saved: {system().store.last_save_error}")


if __name__ == "__main__":
    main()
