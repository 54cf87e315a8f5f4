"""
Mistake Tracking Module

The mistake notebook: questions answered wrong are tracked until they are
answered correctly MASTERY_THRESHOLD times in a row.
"""

import random
import logging
from typing import Iterable, Optional

from quiz_models import MistakeRecord, Question, QuizSession, now_ms

logger = logging.getLogger("smartquiz.mistakes")

# Consecutive correct answers needed to remove a question from the notebook
MASTERY_THRESHOLD = 3


def answers_match(selected: Iterable, correct: Iterable) -> bool:
    """
    Compare an answer with the correct indices as sets.

    Elements are compared by their string form so that 1 and "1" are equal
    and order does not matter.
    """
    return {str(i) for i in selected} == {str(i) for i in correct}


def apply_session(
    mistakes: list[MistakeRecord],
    session: QuizSession,
    now: Optional[int] = None
) -> tuple[list[MistakeRecord], bool]:
    """
    Apply a session's answers to the mistake notebook.

    Wrong answers add a question (or reset its streak); right answers advance
    the streak of tracked questions and remove them at the threshold.
    Unanswered questions and answers already recorded for this session are
    ignored. Marks applied answers in session.recorded_answers.

    Args:
        mistakes: Current notebook records
        session: Finished or exited session
        now: Epoch ms for last_reviewed (now if None)

    Returns:
        Tuple of (new record list, whether anything changed)
    """
    now = now if now is not None else now_ms()
    records = {m.question.id: m for m in mistakes}
    changed = False

    for question_id, selected in session.answers.items():
        if question_id in session.recorded_answers:
            continue
        question = session.find_question(question_id)
        if question is None:
            continue
        session.recorded_answers.add(question_id)

        existing = records.get(question_id)
        if answers_match(selected, question.correct_indices):
            if existing is None:
                continue
            existing.consecutive_correct += 1
            existing.last_reviewed = now
            if existing.consecutive_correct >= MASTERY_THRESHOLD:
                logger.info(f"Mastered {question_id}, removing from notebook")
                del records[question_id]
        elif existing is not None:
            existing.consecutive_correct = 0
            existing.last_reviewed = now
        else:
            records[question_id] = MistakeRecord(
                question=question,
                consecutive_correct=0,
                last_reviewed=now,
                original_bank_name=session.bank_name,
            )
        changed = True

    return list(records.values()), changed


def review_questions(mistakes: list[MistakeRecord], rng: Optional[random.Random] = None) -> list[Question]:
    """All notebook questions in shuffled order."""
    questions = [m.question for m in mistakes]
    (rng or random).shuffle(questions)
    return questions
