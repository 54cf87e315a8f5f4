"""
UI Helper Functions

Contains utility functions used across UI components: session-state
wiring, settings and the wall-clock quiz timer.
"""

import time

import streamlit as st
from streamlit.runtime.scriptrunner import RerunException, StopException

from state_management import (
    AppState, QuizStore, get_data_dir, load_global_settings, save_global_settings
)
from llm_extraction import get_extraction_logger, get_model_id
from cost_tracking import (
    new_cost_tracker, merge_cost_tracking, load_cost_tracking, append_cost_tracking
)
from quiz_session import tick


def init_session_state():
    """Initialize session state variables and load saved data once."""
    if "app_state" not in st.session_state:
        data_dir = get_data_dir()
        get_extraction_logger(data_dir)
        store = QuizStore(data_dir)
        st.session_state.app_state = AppState(store).load()
        st.session_state.settings = load_global_settings(store)
        st.session_state.usage_history = load_cost_tracking(data_dir)
    if "cost_tracker" not in st.session_state:
        st.session_state.cost_tracker = new_cost_tracker()
    if "selected_bank_ids" not in st.session_state:
        st.session_state.selected_bank_ids = set()
    if "show_upload" not in st.session_state:
        st.session_state.show_upload = False
    if "show_exit_confirm" not in st.session_state:
        st.session_state.show_exit_confirm = False
    if "draft_selection" not in st.session_state:
        st.session_state.draft_selection = {}
    if "timer_anchor" not in st.session_state:
        st.session_state.timer_anchor = None


def get_app_state() -> AppState:
    return st.session_state.app_state


def record_usage(run_tracker: dict):
    """Add one import's API usage to this session and to the saved history."""
    merge_cost_tracking(st.session_state.cost_tracker, run_tracker)
    data_dir = str(get_app_state().store.base_dir)
    st.session_state.usage_history = append_cost_tracking(run_tracker, data_dir)


# Raised by st.rerun() and st.stop(); error boundaries must let them through
SCRIPT_CONTROL_EXCEPTIONS = (RerunException, StopException)


def is_script_control(error: BaseException) -> bool:
    return isinstance(error, SCRIPT_CONTROL_EXCEPTIONS)


def get_selected_model_id() -> str:
    """Get the currently selected Claude model ID."""
    return get_model_id(st.session_state.settings["selected_model"])


def save_settings():
    save_global_settings(get_app_state().store, st.session_state.settings)


def sync_timer():
    """
    Apply wall-clock seconds elapsed since the last render to the active
    session's timer.

    Streamlit reruns on interaction, so elapsed time is measured between
    reruns instead of by a background ticker.
    """
    session = get_app_state().session
    now = time.monotonic()
    anchor = st.session_state.timer_anchor
    if session is None:
        st.session_state.timer_anchor = None
        return

    if anchor is not None and anchor[0] == session.id:
        elapsed = int(now - anchor[1])
        if elapsed > 0:
            tick(session, elapsed)
            st.session_state.timer_anchor = (session.id, anchor[1] + elapsed)
    else:
        st.session_state.timer_anchor = (session.id, now)


def reset_ui_state():
    """Drop all UI state; the next run reloads from disk."""
    for key in list(st.session_state.keys()):
        del st.session_state[key]
