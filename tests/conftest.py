"""Shared fixtures for SmartQuiz tests."""

import pytest

from llm_extraction import reset_logger
from quiz_models import Question, QuestionBank, QuestionType


@pytest.fixture(autouse=True)
def fresh_logger():
    """Close any log file a test opened so the next test starts clean."""
    yield
    reset_logger()


@pytest.fixture
def make_question():
    """Factory for four-option questions."""
    def _make(qid, correct=(0,), qtype=QuestionType.SINGLE, options=None, text=None):
        return Question(
            id=qid,
            text=text or f"Question {qid}?",
            options=list(options or ["Alpha", "Beta", "Gamma", "Delta"]),
            type=qtype,
            correct_indices=list(correct),
            explanation=f"Because {qid}",
        )
    return _make


@pytest.fixture
def make_bank(make_question):
    def _make(bank_id="b1", name="Biology", count=3, created_at=1000):
        questions = [make_question(f"{bank_id}-q{i}") for i in range(count)]
        return QuestionBank(id=bank_id, name=name, created_at=created_at, questions=questions)
    return _make
