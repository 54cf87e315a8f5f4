#!/usr/bin/env python3
"""
SmartQuiz - Web Interface

A Streamlit app that turns documents into practice exams.

Workflow:
1. Import a PDF, Word or text document as a question bank
2. Take an exam over one or more banks (optional timer)
3. Review results; missed questions go to the mistake notebook
4. Review the notebook until each question is mastered

Usage:
    streamlit run src/app.py
"""

import logging

import streamlit as st

# Page config
st.set_page_config(
    page_title="SmartQuiz",
    page_icon="📝",
    layout="wide",
    initial_sidebar_state="expanded"
)

from state_management import VIEW_QUIZ, VIEW_RESULT
from ui import (
    init_session_state, get_app_state, render_sidebar, sync_timer, reset_ui_state,
    is_script_control
)
from ui_components import render_home_view, render_quiz_view, render_result_view

logger = logging.getLogger("smartquiz.app")


def render_recovery_screen(error: Exception):
    """Last-resort screen shown when a view raises unexpectedly."""
    st.error("Something went wrong")
    st.caption(f"{type(error).__name__}: {error}")
    st.write("Your saved banks, sessions and mistakes are stored on disk.")
    if st.button("Reload", type="primary", key="recovery_reload"):
        reset_ui_state()
        st.rerun()


def main():
    try:
        init_session_state()
        render_sidebar()
        sync_timer()

        view = get_app_state().view
        if view == VIEW_QUIZ:
            render_quiz_view()
        elif view == VIEW_RESULT:
            render_result_view()
        else:
            render_home_view()
    except Exception as e:
        if is_script_control(e):
            raise
        logger.exception("Uncaught error")
        render_recovery_screen(e)


if __name__ == "__main__":
    main()
