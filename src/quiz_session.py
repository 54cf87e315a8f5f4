"""
Quiz Session Module

State machine for one exam or review attempt: answer capture, navigation,
timer bookkeeping and scoring. Functions mutate the session in place.
"""

import random
from typing import Optional

from quiz_models import (
    MistakeRecord, Question, QuestionBank, QuestionType, QuizConfig,
    QuizSession, SessionScore, SessionStatus, now_ms
)
from mistake_tracking import answers_match, review_questions

REVIEW_SESSION_NAME = "Mistake Notebook Review"


# =============================================================================
# Session Creation
# =============================================================================

def exam_display_name(banks: list[QuestionBank]) -> str:
    """Session title: the bank name, or "<first> + N others" for several banks."""
    if len(banks) > 1:
        return f"{banks[0].name} + {len(banks) - 1} others"
    return banks[0].name


def new_exam_session(
    banks: list[QuestionBank],
    time_limit_minutes: int = 0,
    instant_feedback: bool = True,
    auto_submit_on_timeout: bool = False,
    shuffle: bool = True,
    rng: Optional[random.Random] = None,
    now: Optional[int] = None
) -> QuizSession:
    """
    Start an exam over the questions of one or more banks.

    A time limit of 0 means no timer.
    """
    if not banks:
        raise ValueError("Select at least one question bank")

    now = now if now is not None else now_ms()
    questions = [q for bank in banks for q in bank.questions]
    if shuffle:
        (rng or random).shuffle(questions)

    limit_seconds = time_limit_minutes * 60 if time_limit_minutes > 0 else 0
    return QuizSession(
        id=str(now),
        bank_name=exam_display_name(banks),
        questions=questions,
        start_time=now,
        last_updated=now,
        time_remaining=limit_seconds,
        config=QuizConfig(
            enable_timer=limit_seconds > 0,
            time_limit=limit_seconds,
            instant_feedback=instant_feedback,
            auto_submit_on_timeout=auto_submit_on_timeout,
        ),
    )


def new_review_session(
    mistakes: list[MistakeRecord],
    rng: Optional[random.Random] = None,
    now: Optional[int] = None
) -> QuizSession:
    """Start an untimed, instant-feedback review of the mistake notebook."""
    if not mistakes:
        raise ValueError("The mistake notebook is empty")

    now = now if now is not None else now_ms()
    return QuizSession(
        id=str(now),
        bank_name=REVIEW_SESSION_NAME,
        questions=review_questions(mistakes, rng),
        start_time=now,
        last_updated=now,
        time_remaining=0,
        config=QuizConfig(enable_timer=False, time_limit=0, instant_feedback=True),
    )


def restart_session(session: QuizSession, now: Optional[int] = None):
    """Retry a finished session from the first question with a fresh timer."""
    now = now if now is not None else now_ms()
    session.current_question_index = 0
    session.answers = {}
    session.recorded_answers = set()
    session.status = SessionStatus.ACTIVE
    session.start_time = now
    session.last_updated = now
    session.time_remaining = session.config.time_limit


# =============================================================================
# Answers
# =============================================================================

def toggle_selection(question: Question, draft: list[int], index: int) -> list[int]:
    """Return the draft selection after the user clicks option `index`."""
    if question.type == QuestionType.MULTIPLE:
        if index in draft:
            return [i for i in draft if i != index]
        return draft + [index]
    return [index]


def is_answered(session: QuizSession, question: Question) -> bool:
    return question.id in session.answers


def confirm_answer(session: QuizSession, selection: list[int], now: Optional[int] = None) -> bool:
    """
    Lock in an answer for the current question.

    Returns False without changes if the question is already answered, the
    selection is empty or the session is not active.
    """
    question = session.current_question
    if question is None or session.status != SessionStatus.ACTIVE:
        return False
    if not selection or is_answered(session, question):
        return False

    for index in selection:
        if not 0 <= index < len(question.options):
            raise ValueError(f"Option {index} out of range for question {question.id}")
    if question.type != QuestionType.MULTIPLE and len(set(selection)) > 1:
        raise ValueError(f"{question.type.value} question accepts a single option")

    session.answers[question.id] = sorted(set(selection))
    session.last_updated = now if now is not None else now_ms()
    return True


def is_question_correct(question: Question, selection: list) -> bool:
    return answers_match(selection, question.correct_indices)


# =============================================================================
# Navigation
# =============================================================================

def finish(session: QuizSession):
    session.status = SessionStatus.FINISHED
    session.last_updated = now_ms()


def go_next(session: QuizSession) -> bool:
    """
    Move to the next question, or finish at the last one.

    Returns:
        True if the session was finalized
    """
    if session.status != SessionStatus.ACTIVE:
        return session.status == SessionStatus.FINISHED
    if not session.is_last_question:
        session.current_question_index += 1
        return False
    finish(session)
    return True


# Skipping leaves the question unanswered
skip_question = go_next


def go_previous(session: QuizSession):
    if session.current_question_index > 0:
        session.current_question_index -= 1


def jump_to(session: QuizSession, index: int):
    if not 0 <= index < len(session.questions):
        raise ValueError(f"Question index {index} out of range")
    session.current_question_index = index


# =============================================================================
# Timer
# =============================================================================

def tick(session: QuizSession, seconds: int = 1) -> bool:
    """
    Advance the session clock.

    With a time limit the countdown stops at zero; it only finishes the
    session when auto_submit_on_timeout is set. Without a limit the counter
    keeps decreasing from its baseline to track elapsed time.

    Returns:
        True if the session was finalized by the timeout
    """
    if session.status != SessionStatus.ACTIVE or seconds <= 0:
        return False

    if not session.config.has_time_limit:
        session.time_remaining -= seconds
        return False

    if session.time_remaining <= 0:
        return False
    session.time_remaining = max(0, session.time_remaining - seconds)
    if session.time_remaining == 0 and session.config.auto_submit_on_timeout:
        finish(session)
        return True
    return False


def is_time_up(session: QuizSession) -> bool:
    return session.config.has_time_limit and session.time_remaining <= 0


def format_time(seconds: int) -> str:
    """Format seconds as MM:SS (negative elapsed counters use their magnitude)."""
    seconds = abs(seconds)
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


# =============================================================================
# Scoring
# =============================================================================

def score_session(session: QuizSession) -> SessionScore:
    correct = incorrect = skipped = 0
    for question in session.questions:
        answer = session.answers.get(question.id)
        if not answer:
            skipped += 1
        elif is_question_correct(question, answer):
            correct += 1
        else:
            incorrect += 1
    return SessionScore(correct=correct, incorrect=incorrect, skipped=skipped, total=len(session.questions))


def session_progress(session: QuizSession) -> int:
    """Percentage of questions answered."""
    if not session.questions:
        return 0
    return int(len(session.answers) * 100 / len(session.questions) + 0.5)
