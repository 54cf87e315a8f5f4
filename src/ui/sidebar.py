"""
UI Sidebar Module

Contains extraction settings and status display.
"""

import streamlit as st

from llm_extraction import get_api_key, get_log_file_path, get_model_options
from cost_tracking import format_cost, format_tokens
from ui.helpers import get_app_state, save_settings


def render_sidebar():
    """Render sidebar with settings and library status."""
    st.sidebar.title("SmartQuiz")
    st.sidebar.caption("Turn documents into practice exams")

    st.sidebar.markdown("---")
    st.sidebar.subheader("Extraction Settings")

    settings = st.session_state.settings
    options = get_model_options()
    current = settings["selected_model"]
    index = options.index(current) if current in options else 0
    selected = st.sidebar.selectbox("Model", options, index=index, key="model_select")

    chunk_size = st.sidebar.number_input(
        "Chunk size (characters)", min_value=1000, max_value=100000,
        value=int(settings["chunk_size"]), step=1000,
        help="Each chunk is sent to the model as one extraction call"
    )
    max_workers = st.sidebar.slider("Parallel calls", 1, 10, int(settings["max_workers"]))

    if (selected, chunk_size, max_workers) != (current, settings["chunk_size"], settings["max_workers"]):
        settings.update(selected_model=selected, chunk_size=int(chunk_size), max_workers=int(max_workers))
        save_settings()

    if get_api_key():
        st.sidebar.success("API key: configured")
    else:
        st.sidebar.error("API key: missing (set ANTHROPIC_API_KEY)")

    st.sidebar.markdown("---")
    st.sidebar.subheader("Status")
    state = get_app_state()
    question_count = sum(len(b.questions) for b in state.banks)
    st.sidebar.info(f"Banks: {len(state.banks)} ({question_count} questions)")
    st.sidebar.info(f"Saved sessions: {len(state.saved_sessions)}")
    if state.mistakes:
        st.sidebar.warning(f"Mistakes to review: {len(state.mistakes)}")
    else:
        st.sidebar.success("Mistake notebook: empty")

    tracker = st.session_state.cost_tracker
    history = st.session_state.usage_history
    if history["total_cost"] > 0:
        st.sidebar.markdown("---")
        st.sidebar.subheader("API Usage")
        col1, col2 = st.sidebar.columns(2)
        col1.metric("Session Cost", format_cost(tracker["total_cost"]))
        col2.metric("Total Cost", format_cost(history["total_cost"]))
        st.sidebar.caption(
            f"All imports: {format_tokens(history['total_input_tokens'])} in / "
            f"{format_tokens(history['total_output_tokens'])} out"
        )

    log_path = get_log_file_path()
    if log_path:
        st.sidebar.caption(f"Log file: {log_path}")
