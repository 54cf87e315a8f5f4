"""
Quiz Models Module

Dataclasses for questions, banks, sessions and mistake records, plus the
dict conversions used for JSON persistence.
"""

import time
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


class QuestionType(str, Enum):
    SINGLE = "Single Choice"
    MULTIPLE = "Multiple Choice"
    JUDGMENT = "True/False"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    REVIEW = "review"  # reserved, nothing transitions into it
    FINISHED = "finished"


# =============================================================================
# Question / Bank
# =============================================================================

@dataclass(frozen=True)
class Question:
    id: str
    text: str
    options: list[str]
    type: QuestionType
    correct_indices: list[int]
    explanation: str = ""

    def to_dict(self) -> dict:
        data = asdict(self)
        data["type"] = self.type.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Question":
        return cls(
            id=str(data["id"]),
            text=data.get("text", ""),
            options=list(data.get("options", [])),
            type=QuestionType(data.get("type", QuestionType.SINGLE.value)),
            correct_indices=[int(i) for i in data.get("correct_indices", [])],
            explanation=data.get("explanation", ""),
        )


@dataclass
class QuestionBank:
    id: str
    name: str
    created_at: int
    questions: list[Question] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at,
            "questions": [q.to_dict() for q in self.questions],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "QuestionBank":
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            created_at=int(data.get("created_at", 0)),
            questions=[Question.from_dict(q) for q in data.get("questions", [])],
        )


# =============================================================================
# Session
# =============================================================================

@dataclass
class QuizConfig:
    enable_timer: bool = False
    time_limit: int = 0  # seconds, 0 = no limit
    instant_feedback: bool = True
    auto_submit_on_timeout: bool = False

    @property
    def has_time_limit(self) -> bool:
        return self.enable_timer and self.time_limit > 0

    @classmethod
    def from_dict(cls, data: dict) -> "QuizConfig":
        return cls(
            enable_timer=bool(data.get("enable_timer", False)),
            time_limit=int(data.get("time_limit", 0)),
            instant_feedback=bool(data.get("instant_feedback", True)),
            auto_submit_on_timeout=bool(data.get("auto_submit_on_timeout", False)),
        )


@dataclass
class QuizSession:
    id: str
    bank_name: str
    questions: list[Question]
    current_question_index: int = 0
    answers: dict[str, list[int]] = field(default_factory=dict)
    status: SessionStatus = SessionStatus.ACTIVE
    start_time: int = 0
    time_remaining: int = 0
    config: QuizConfig = field(default_factory=QuizConfig)
    last_updated: int = 0
    # Answers already applied to the mistake notebook
    recorded_answers: set[str] = field(default_factory=set)

    @property
    def current_question(self) -> Optional[Question]:
        if 0 <= self.current_question_index < len(self.questions):
            return self.questions[self.current_question_index]
        return None

    @property
    def is_last_question(self) -> bool:
        return self.current_question_index >= len(self.questions) - 1

    def find_question(self, question_id: str) -> Optional[Question]:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bank_name": self.bank_name,
            "questions": [q.to_dict() for q in self.questions],
            "current_question_index": self.current_question_index,
            "answers": {qid: list(sel) for qid, sel in self.answers.items()},
            "status": self.status.value,
            "start_time": self.start_time,
            "time_remaining": self.time_remaining,
            "config": asdict(self.config),
            "last_updated": self.last_updated,
            "recorded_answers": sorted(self.recorded_answers),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "QuizSession":
        questions = [Question.from_dict(q) for q in data.get("questions", [])]
        known_ids = {q.id for q in questions}
        answers = {
            qid: [int(i) for i in sel]
            for qid, sel in data.get("answers", {}).items()
            if qid in known_ids
        }
        return cls(
            id=str(data["id"]),
            bank_name=data.get("bank_name", ""),
            questions=questions,
            current_question_index=int(data.get("current_question_index", 0)),
            answers=answers,
            status=SessionStatus(data.get("status", SessionStatus.ACTIVE.value)),
            start_time=int(data.get("start_time", 0)),
            time_remaining=int(data.get("time_remaining", 0)),
            config=QuizConfig.from_dict(data.get("config", {})),
            last_updated=int(data.get("last_updated", 0)),
            recorded_answers=set(data.get("recorded_answers", [])),
        )


# =============================================================================
# Mistake Notebook
# =============================================================================

@dataclass
class MistakeRecord:
    question: Question
    consecutive_correct: int = 0
    last_reviewed: int = 0
    original_bank_name: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "question": self.question.to_dict(),
            "consecutive_correct": self.consecutive_correct,
            "last_reviewed": self.last_reviewed,
            "original_bank_name": self.original_bank_name,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MistakeRecord":
        return cls(
            question=Question.from_dict(data["question"]),
            consecutive_correct=int(data.get("consecutive_correct", 0)),
            last_reviewed=int(data.get("last_reviewed", 0)),
            original_bank_name=data.get("original_bank_name"),
        )


@dataclass(frozen=True)
class SessionScore:
    correct: int
    incorrect: int
    skipped: int
    total: int

    @property
    def percentage(self) -> int:
        if self.total == 0:
            return 0
        # Half rounds up
        return int(self.correct * 100 / self.total + 0.5)
