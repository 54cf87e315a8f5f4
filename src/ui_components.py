"""
UI Components Module

Contains the Streamlit rendering functions for the home, quiz and result views.
Helper functions and sidebar are in the ui/ package.
"""

from datetime import datetime

import streamlit as st

from cost_tracking import new_cost_tracker
from document_extraction import DocumentReadError, read_document, bank_name_from_filename
from llm_extraction import MissingApiKeyError, get_api_key, get_extraction_logger, parse_document_to_quiz
from quiz_models import QuestionType, SessionStatus
from quiz_session import (
    confirm_answer, format_time, go_next, go_previous, is_answered, is_question_correct,
    is_time_up, jump_to, score_session, session_progress, skip_question, toggle_selection
)
from mistake_tracking import MASTERY_THRESHOLD
from ui.helpers import (
    get_app_state, get_selected_model_id, is_script_control, record_usage, save_settings, sync_timer
)

NO_QUESTIONS_MESSAGE = "No questions found. The document might not contain recognizable question formats."


def option_label(index: int, option: str) -> str:
    return f"{chr(65 + index)}. {option}"


# =============================================================================
# Home: Upload
# =============================================================================

def render_upload_panel():
    """Upload a document and extract a new question bank."""
    st.subheader("Import Questions")
    st.caption("Upload a document (.pdf, .docx, .txt) containing questions.")

    uploaded = st.file_uploader("Document", type=["pdf", "docx", "txt"], key="upload_file")
    if uploaded is None:
        return

    name = st.text_input("Bank name", value=bank_name_from_filename(uploaded.name), key="upload_name")
    if not st.button("Generate Question Bank", type="primary", key="upload_generate"):
        return

    logger = get_extraction_logger()
    settings = st.session_state.settings
    run_tracker = new_cost_tracker()
    try:
        text = read_document(uploaded.name, uploaded.getvalue())
        with st.spinner("Analyzing Document (this may take a moment)..."):
            questions = parse_document_to_quiz(
                text,
                get_api_key(),
                model_id=get_selected_model_id(),
                chunk_size=settings["chunk_size"],
                max_workers=settings["max_workers"],
                tracker=run_tracker,
            )
    except (DocumentReadError, MissingApiKeyError) as e:
        logger.warning(f"Import of {uploaded.name} failed: {e}")
        st.error(str(e))
        return
    record_usage(run_tracker)

    if not questions:
        st.error(NO_QUESTIONS_MESSAGE)
        return

    get_app_state().add_bank(name, questions)
    settings["last_bank_name"] = name
    save_settings()
    st.session_state.show_upload = False
    st.rerun()


# =============================================================================
# Home: Notebook, Saved Sessions, Library
# =============================================================================

def render_mistake_card():
    state = get_app_state()
    with st.container(border=True):
        st.subheader(f"Mistake Notebook ({len(state.mistakes)})")
        st.caption(
            f"Review questions you've missed. Correctly answer {MASTERY_THRESHOLD} "
            "times in a row to master them."
        )
        if st.button("Start Review Session", disabled=not state.mistakes, key="start_review"):
            state.start_mistake_review()
            st.rerun()


def render_saved_sessions():
    state = get_app_state()
    if not state.saved_sessions:
        return

    st.subheader("Continue Learning")
    for saved in state.saved_sessions:
        col_name, col_resume, col_delete = st.columns([5, 1, 1])
        with col_name:
            updated = datetime.fromtimestamp(saved.last_updated / 1000).strftime("%Y-%m-%d %H:%M")
            st.markdown(f"**{saved.bank_name}**")
            st.progress(session_progress(saved) / 100, text=f"{session_progress(saved)}% · {updated}")
        with col_resume:
            if st.button("Resume", key=f"resume_{saved.id}"):
                state.resume_session(saved.id)
                st.rerun()
        with col_delete:
            if st.button("Delete", key=f"delete_session_{saved.id}"):
                state.delete_saved_session(saved.id)
                st.rerun()


def render_bank_card(bank):
    state = get_app_state()
    selected = st.session_state.selected_bank_ids

    with st.container(border=True):
        checked = st.checkbox(
            f"**{bank.name}** · {len(bank.questions)} questions",
            value=bank.id in selected,
            key=f"select_{bank.id}",
        )
        if checked:
            selected.add(bank.id)
        else:
            selected.discard(bank.id)

        created = datetime.fromtimestamp(bank.created_at / 1000).strftime("%Y-%m-%d")
        st.caption(f"Created {created}")

        with st.expander("Manage"):
            new_name = st.text_input("Rename", value=bank.name, key=f"rename_{bank.id}")
            col_save, col_delete = st.columns(2)
            with col_save:
                if st.button("Save name", key=f"save_name_{bank.id}") and new_name.strip():
                    state.rename_bank(bank.id, new_name.strip())
                    st.rerun()
            with col_delete:
                if st.session_state.get("bank_to_delete") == bank.id:
                    if st.button("Confirm delete", type="primary", key=f"confirm_delete_{bank.id}"):
                        state.delete_bank(bank.id)
                        selected.discard(bank.id)
                        st.session_state.bank_to_delete = None
                        st.rerun()
                elif st.button("Delete", key=f"delete_{bank.id}"):
                    st.session_state.bank_to_delete = bank.id
                    st.rerun()


def render_exam_config():
    """Exam settings for the selected banks."""
    state = get_app_state()
    selected = [b for b in state.banks if b.id in st.session_state.selected_bank_ids]
    if not selected:
        return

    total = sum(len(b.questions) for b in selected)
    with st.form("exam_config"):
        st.subheader(f"Start Exam · {len(selected)} selected ({total} questions)")
        minutes = st.number_input("Time limit (minutes, 0 = unlimited)", min_value=0, max_value=600, value=0)
        instant_feedback = st.checkbox("Instant feedback", value=True)
        auto_submit = st.checkbox("Finish automatically when time runs out", value=False)
        if st.form_submit_button("Start Exam", type="primary"):
            state.start_exam(
                [b.id for b in selected],
                time_limit_minutes=int(minutes),
                instant_feedback=instant_feedback,
                auto_submit_on_timeout=auto_submit,
            )
            st.rerun()


def render_home_view():
    state = get_app_state()

    col_title, col_toggle = st.columns([4, 1])
    with col_title:
        st.header("Your Library")
    with col_toggle:
        label = "Cancel" if st.session_state.show_upload else "New Import"
        if st.button(label, key="toggle_upload"):
            st.session_state.show_upload = not st.session_state.show_upload
            st.rerun()

    if st.session_state.show_upload:
        render_upload_panel()
        return

    render_mistake_card()
    render_saved_sessions()

    if not state.banks and not state.saved_sessions and not state.mistakes:
        st.info(
            "Upload a PDF, Word doc, or text file with practice questions. "
            "AI will automatically structure them."
        )
        return

    columns = st.columns(2)
    for i, bank in enumerate(state.banks):
        with columns[i % 2]:
            render_bank_card(bank)

    render_exam_config()


# =============================================================================
# Quiz
# =============================================================================

def render_exit_dialog():
    state = get_app_state()
    st.warning("Leave this exam? Saving keeps your progress so you can resume later.")
    col_save, col_discard, col_cancel = st.columns(3)
    with col_save:
        if st.button("Save & Exit", type="primary", key="exit_save"):
            state.save_and_exit()
            st.session_state.show_exit_confirm = False
            st.rerun()
    with col_discard:
        if st.button("Discard", key="exit_discard"):
            state.discard_and_exit()
            st.session_state.show_exit_confirm = False
            st.rerun()
    with col_cancel:
        if st.button("Cancel", key="exit_cancel"):
            st.session_state.show_exit_confirm = False
            st.rerun()


def render_feedback(question, answer):
    if is_question_correct(question, answer):
        st.success("Correct Answer!")
    else:
        st.error("Incorrect")
    with st.expander("Explanation", expanded=True):
        correct = ", ".join(option_label(i, question.options[i]) for i in question.correct_indices)
        st.markdown(f"**Correct answer:** {correct}")
        if question.explanation:
            st.markdown(question.explanation)


@st.fragment(run_every=1)
def render_timer():
    """
    Countdown that re-renders every second on its own.

    Fragment reruns skip main(), so this carries its own error boundary.
    """
    session = get_app_state().session
    if session is None or session.status != SessionStatus.ACTIVE:
        return
    try:
        sync_timer()
        st.markdown(f"⏱ **{format_time(session.time_remaining)}**")
        if session.status == SessionStatus.FINISHED:
            # Timed out with auto-submit; the full page has to switch to results
            st.rerun(scope="app")
    except Exception as e:
        if is_script_control(e):
            raise
        get_extraction_logger().exception("Timer update failed")
        st.error(f"Timer stopped: {e}")


def render_navigator(session):
    st.caption("Questions")
    per_row = 10
    for row_start in range(0, len(session.questions), per_row):
        columns = st.columns(per_row)
        for offset, question in enumerate(session.questions[row_start:row_start + per_row]):
            index = row_start + offset
            answer = session.answers.get(question.id)
            label = str(index + 1)
            if answer and session.config.instant_feedback:
                label += " ✓" if is_question_correct(question, answer) else " ✗"
            elif answer:
                label += " •"
            with columns[offset]:
                if st.button(label, key=f"nav_{index}", disabled=index == session.current_question_index):
                    jump_to(session, index)
                    st.rerun()


def render_quiz_view():
    state = get_app_state()
    session = state.session
    if session is None or not session.questions:
        state.go_home()
        st.rerun()
        return
    if session.status == SessionStatus.FINISHED:
        state.complete_session()
        st.rerun()
        return

    question = session.current_question
    answer = session.answers.get(question.id)
    locked = is_answered(session, question)
    drafts = st.session_state.draft_selection
    draft_key = f"{session.id}:{question.id}"
    draft = answer or drafts.get(draft_key, [])

    col_back, col_progress, col_meta = st.columns([1, 3, 2])
    with col_back:
        if st.button("← Library", key="request_exit"):
            st.session_state.show_exit_confirm = True
            st.rerun()
    with col_progress:
        st.markdown(f"**{session.bank_name}** · Question {session.current_question_index + 1} of {len(session.questions)}")
    with col_meta:
        st.markdown(f"`{question.type.value}`")
        if session.config.enable_timer:
            render_timer()

    if st.session_state.show_exit_confirm:
        render_exit_dialog()
        return

    if is_time_up(session):
        st.warning("Time is up. You can still finish the remaining questions.")

    st.subheader(question.text)
    if question.type == QuestionType.MULTIPLE:
        st.caption("Select all that apply")

    for index, option in enumerate(question.options):
        selected = index in draft
        if st.button(
            option_label(index, option),
            key=f"opt_{draft_key}_{index}",
            type="primary" if selected else "secondary",
            disabled=locked,
            use_container_width=True,
        ):
            drafts[draft_key] = toggle_selection(question, draft, index)
            st.rerun()

    if locked and session.config.instant_feedback:
        render_feedback(question, answer)

    col_prev, col_skip, col_main = st.columns(3)
    with col_prev:
        if st.button("Previous", key="prev", disabled=session.current_question_index == 0):
            go_previous(session)
            st.rerun()

    moved = finished = False
    if answer is None:
        with col_skip:
            if st.button("Skip", key="skip"):
                moved, finished = True, skip_question(session)
        with col_main:
            if st.button("Submit Answer", type="primary", key="submit", disabled=not draft):
                confirm_answer(session, draft)
                drafts.pop(draft_key, None)
                st.rerun()
    else:
        with col_main:
            label = "Finish Exam" if session.is_last_question else "Next Question"
            if st.button(label, type="primary", key="next"):
                moved, finished = True, go_next(session)

    if finished:
        state.complete_session()
    if moved:
        st.rerun()

    st.markdown("---")
    render_navigator(session)


# =============================================================================
# Result
# =============================================================================

def render_result_view():
    state = get_app_state()
    session = state.session
    if session is None:
        state.go_home()
        st.rerun()
        return

    score = score_session(session)
    st.header(f"Results · {session.bank_name}")
    st.metric("Score", f"{score.percentage}%")

    col_correct, col_incorrect, col_skipped = st.columns(3)
    col_correct.metric("Correct", score.correct)
    col_incorrect.metric("Incorrect", score.incorrect)
    col_skipped.metric("Skipped", score.skipped)

    col_retry, col_home = st.columns(2)
    with col_retry:
        if st.button("Retry", key="retry"):
            state.retry_session()
            st.rerun()
    with col_home:
        if st.button("Home", type="primary", key="home"):
            state.go_home()
            st.rerun()

    st.markdown("---")
    for i, question in enumerate(session.questions, 1):
        answer = session.answers.get(question.id)
        if not answer:
            status = "Skipped"
        elif is_question_correct(question, answer):
            status = "Correct"
        else:
            status = "Incorrect"
        with st.expander(f"{i}. [{status}] {question.text[:80]}"):
            for index, option in enumerate(question.options):
                marks = []
                if index in question.correct_indices:
                    marks.append("correct")
                if answer and index in answer:
                    marks.append("your answer")
                suffix = f" _({', '.join(marks)})_" if marks else ""
                st.markdown(f"- {option_label(index, option)}{suffix}")
            if question.explanation:
                st.caption(question.explanation)
