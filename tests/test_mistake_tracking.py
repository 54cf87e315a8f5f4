"""
Tests for the mistake notebook state machine.
"""

import random

import pytest

from mistake_tracking import MASTERY_THRESHOLD, answers_match, apply_session, review_questions
from quiz_models import MistakeRecord, QuizSession
from quiz_session import new_review_session


def session_with(questions, answers, bank_name="Biology"):
    return QuizSession(id="s1", bank_name=bank_name, questions=questions, answers=dict(answers))


class TestAnswersMatch:
    """Tests for set comparison of answers."""

    @pytest.mark.parametrize("selected, correct, expected", [
        ([0], [0], True),
        ([1, 0], [0, 1], True),
        (["1"], [1], True),
        ([0, "2"], ["2", 0], True),
        ([0], [0, 1], False),
        ([0, 1], [0], False),
        ([], [0], False),
    ])
    def test_set_equality(self, selected, correct, expected):
        assert answers_match(selected, correct) is expected


class TestApplySession:
    """Tests for applying session answers to the notebook."""

    def test_wrong_answers_are_added(self, make_question):
        questions = [make_question(f"q{i}") for i in range(5)]
        answers = {"q0": [0], "q1": [0], "q2": [0], "q3": [1], "q4": [2]}
        mistakes, changed = apply_session([], session_with(questions, answers), now=50)

        assert changed
        assert [m.question.id for m in mistakes] == ["q3", "q4"]
        for record in mistakes:
            assert record.consecutive_correct == 0
            assert record.last_reviewed == 50
            assert record.original_bank_name == "Biology"

    def test_tracked_correct_answers_advance_without_removal(self, make_question):
        questions = [make_question(f"q{i}") for i in range(5)]
        records = [
            MistakeRecord(question=questions[0], consecutive_correct=0, last_reviewed=1),
            MistakeRecord(question=questions[1], consecutive_correct=1, last_reviewed=1),
        ]
        answers = {"q0": [0], "q1": [0], "q2": [0], "q3": [1], "q4": [2]}
        mistakes, changed = apply_session(records, session_with(questions, answers), now=70)

        assert changed
        assert [(m.question.id, m.consecutive_correct) for m in mistakes] == [
            ("q0", 1), ("q1", 2), ("q3", 0), ("q4", 0)
        ]
        assert all(m.last_reviewed == 70 for m in mistakes)

    def test_unanswered_questions_are_ignored(self, make_question):
        questions = [make_question("q0"), make_question("q1")]
        mistakes, changed = apply_session([], session_with(questions, {}))
        assert mistakes == []
        assert not changed

    def test_correct_answer_on_untracked_question_changes_nothing(self, make_question):
        q = make_question("q0")
        mistakes, changed = apply_session([], session_with([q], {"q0": [0]}))
        assert mistakes == []
        assert not changed

    def test_correct_answer_advances_streak(self, make_question):
        q = make_question("q0")
        records = [MistakeRecord(question=q, consecutive_correct=1, last_reviewed=1)]
        mistakes, changed = apply_session(records, session_with([q], {"q0": [0]}), now=99)
        assert changed
        assert mistakes[0].consecutive_correct == 2
        assert mistakes[0].last_reviewed == 99

    def test_threshold_removes_record(self, make_question):
        q = make_question("q0")
        records = [MistakeRecord(question=q, consecutive_correct=MASTERY_THRESHOLD - 1)]
        mistakes, changed = apply_session(records, session_with([q], {"q0": [0]}))
        assert changed
        assert mistakes == []

    def test_wrong_answer_resets_streak(self, make_question):
        q = make_question("q0")
        records = [MistakeRecord(question=q, consecutive_correct=2, original_bank_name="Chem")]
        mistakes, _ = apply_session(records, session_with([q], {"q0": [3]}))
        assert len(mistakes) == 1
        assert mistakes[0].consecutive_correct == 0
        assert mistakes[0].original_bank_name == "Chem"

    def test_existing_records_keep_order(self, make_question):
        old = [MistakeRecord(question=make_question("old1")), MistakeRecord(question=make_question("old2"))]
        q = make_question("new")
        mistakes, _ = apply_session(old, session_with([q], {"new": [1]}))
        assert [m.question.id for m in mistakes] == ["old1", "old2", "new"]

    def test_answers_are_applied_once(self, make_question):
        q = make_question("q0")
        records = [MistakeRecord(question=q, consecutive_correct=0)]
        session = session_with([q], {"q0": [0]})

        mistakes, changed = apply_session(records, session)
        assert changed and mistakes[0].consecutive_correct == 1

        mistakes, changed = apply_session(mistakes, session)
        assert not changed
        assert mistakes[0].consecutive_correct == 1
        assert session.recorded_answers == {"q0"}

    def test_answers_for_unknown_questions_are_skipped(self, make_question):
        q = make_question("q0")
        mistakes, changed = apply_session([], session_with([q], {"ghost": [1]}))
        assert mistakes == []
        assert not changed

    def test_mastery_through_review_sessions(self, make_question):
        q = make_question("q0", correct=[2])
        mistakes, _ = apply_session([], session_with([q], {"q0": [0]}))
        assert len(mistakes) == 1

        for round_number in range(MASTERY_THRESHOLD):
            review = new_review_session(mistakes, now=round_number)
            review.answers[q.id] = [2]
            mistakes, _ = apply_session(mistakes, review)

        assert mistakes == []


class TestReviewQuestions:
    """Tests for review ordering."""

    def test_contains_every_notebook_question(self, make_question):
        records = [MistakeRecord(question=make_question(f"q{i}")) for i in range(10)]
        questions = review_questions(records, random.Random(7))
        assert sorted(q.id for q in questions) == sorted(f"q{i}" for i in range(10))
