"""
State Management Module

Contains the application state object and its JSON file persistence.
Question banks, saved sessions and the mistake notebook each live under a
fixed key in the data directory.
"""

import os
import json
import logging
from pathlib import Path
from datetime import datetime
from typing import Optional

from quiz_models import MistakeRecord, Question, QuestionBank, QuizSession, now_ms
from mistake_tracking import apply_session
from quiz_session import new_exam_session, new_review_session, restart_session
from llm_extraction import DEFAULT_MODEL_NAME, DEFAULT_CHUNK_CHARS, DEFAULT_MAX_WORKERS

logger = logging.getLogger("smartquiz.state")

# =============================================================================
# Path Constants
# =============================================================================

BASE_DATA_DIR = "data"

BANKS_KEY = "smartquiz_banks_v1"
SESSIONS_KEY = "smartquiz_sessions_v1"
MISTAKES_KEY = "smartquiz_mistakes_v1"

VIEW_HOME = "HOME"
VIEW_QUIZ = "QUIZ"
VIEW_RESULT = "RESULT"


def get_data_dir() -> str:
    """Data directory from SMARTQUIZ_DATA_DIR (loaded from .env), else "data"."""
    from dotenv import load_dotenv
    load_dotenv()
    return os.environ.get("SMARTQUIZ_DATA_DIR", BASE_DATA_DIR)


# =============================================================================
# Key-Value Store
# =============================================================================

class QuizStore:
    """JSON file per key under a base directory."""

    def __init__(self, base_dir: str = BASE_DATA_DIR):
        self.base_dir = Path(base_dir)

    def get_file(self, key: str) -> Path:
        return self.base_dir / f"{key}.json"

    def load(self, key: str, default=None):
        path = self.get_file(key)
        if not path.exists():
            return default
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Could not load {path}: {e}")
            return default

    def save(self, key: str, value):
        self.base_dir.mkdir(parents=True, exist_ok=True)
        with open(self.get_file(key), "w", encoding="utf-8") as f:
            json.dump(value, f, indent=2, ensure_ascii=False)


# =============================================================================
# Global Settings
# =============================================================================

SETTINGS_KEY = "settings"


def load_global_settings(store: QuizStore) -> dict:
    """Load settings that persist across sessions (model, chunking)."""
    settings = {
        "selected_model": DEFAULT_MODEL_NAME,
        "chunk_size": DEFAULT_CHUNK_CHARS,
        "max_workers": DEFAULT_MAX_WORKERS,
        "last_bank_name": "",
    }
    saved = store.load(SETTINGS_KEY, {})
    if isinstance(saved, dict):
        settings.update({k: v for k, v in saved.items() if k in settings})
    return settings


def save_global_settings(store: QuizStore, settings: dict):
    store.save(SETTINGS_KEY, dict(settings, last_saved=datetime.now().isoformat()))


# =============================================================================
# Application State
# =============================================================================

def _load_list(store: QuizStore, key: str, factory) -> list:
    items = []
    for data in store.load(key, []) or []:
        try:
            items.append(factory(data))
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Skipping unreadable entry in {key}: {e}")
    return items


class AppState:
    """
    Banks, saved sessions, mistakes and the active session.

    Owned by the top-level control loop; every mutating operation writes
    its namespace through the injected store.
    """

    def __init__(self, store: QuizStore):
        self.store = store
        self.banks: list[QuestionBank] = []
        self.saved_sessions: list[QuizSession] = []
        self.mistakes: list[MistakeRecord] = []
        self.session: Optional[QuizSession] = None
        self.view = VIEW_HOME

    def load(self) -> "AppState":
        self.banks = _load_list(self.store, BANKS_KEY, QuestionBank.from_dict)
        self.saved_sessions = _load_list(self.store, SESSIONS_KEY, QuizSession.from_dict)
        self.mistakes = _load_list(self.store, MISTAKES_KEY, MistakeRecord.from_dict)
        logger.info(
            f"Loaded {len(self.banks)} banks, {len(self.saved_sessions)} saved sessions, "
            f"{len(self.mistakes)} mistakes"
        )
        return self

    # -------------------------------------------------------------------------
    # Save Functions
    # -------------------------------------------------------------------------

    def save_banks(self):
        self.store.save(BANKS_KEY, [b.to_dict() for b in self.banks])

    def save_sessions(self):
        self.store.save(SESSIONS_KEY, [s.to_dict() for s in self.saved_sessions])

    def save_mistakes(self):
        self.store.save(MISTAKES_KEY, [m.to_dict() for m in self.mistakes])

    # -------------------------------------------------------------------------
    # Banks
    # -------------------------------------------------------------------------

    def add_bank(self, name: str, questions: list[Question]) -> QuestionBank:
        created = now_ms()
        bank = QuestionBank(
            id=str(created),
            name=name or f"Question Bank {len(self.banks) + 1}",
            created_at=created,
            questions=list(questions),
        )
        self.banks.append(bank)
        self.save_banks()
        logger.info(f"Added bank '{bank.name}' with {len(questions)} questions")
        return bank

    def rename_bank(self, bank_id: str, name: str):
        for bank in self.banks:
            if bank.id == bank_id:
                bank.name = name
                self.save_banks()
                return
        raise KeyError(bank_id)

    def delete_bank(self, bank_id: str):
        self.banks = [b for b in self.banks if b.id != bank_id]
        self.save_banks()

    def get_banks(self, bank_ids) -> list[QuestionBank]:
        wanted = set(bank_ids)
        return [b for b in self.banks if b.id in wanted]

    # -------------------------------------------------------------------------
    # Session Lifecycle
    # -------------------------------------------------------------------------

    def start_exam(self, bank_ids, time_limit_minutes: int = 0, instant_feedback: bool = True,
                   auto_submit_on_timeout: bool = False) -> QuizSession:
        self.session = new_exam_session(
            self.get_banks(bank_ids),
            time_limit_minutes=time_limit_minutes,
            instant_feedback=instant_feedback,
            auto_submit_on_timeout=auto_submit_on_timeout,
        )
        self.view = VIEW_QUIZ
        return self.session

    def start_mistake_review(self) -> QuizSession:
        self.session = new_review_session(self.mistakes)
        self.view = VIEW_QUIZ
        return self.session

    def resume_session(self, session_id: str) -> QuizSession:
        for saved in self.saved_sessions:
            if saved.id == session_id:
                self.session = saved
                break
        else:
            raise KeyError(session_id)
        self.saved_sessions = [s for s in self.saved_sessions if s.id != session_id]
        self.save_sessions()
        self.view = VIEW_QUIZ
        return self.session

    def delete_saved_session(self, session_id: str):
        self.saved_sessions = [s for s in self.saved_sessions if s.id != session_id]
        self.save_sessions()

    def record_session_mistakes(self, session: QuizSession) -> bool:
        """Apply a session to the notebook, persisting only on change."""
        self.mistakes, changed = apply_session(self.mistakes, session)
        if changed:
            self.save_mistakes()
        return changed

    def save_and_exit(self):
        if self.session is not None:
            self.record_session_mistakes(self.session)
            self.session.last_updated = now_ms()
            others = [s for s in self.saved_sessions if s.id != self.session.id]
            self.saved_sessions = [self.session] + others
            self.save_sessions()
        self.session = None
        self.view = VIEW_HOME

    def discard_and_exit(self):
        self.session = None
        self.view = VIEW_HOME

    def complete_session(self):
        if self.session is not None:
            self.record_session_mistakes(self.session)
        self.view = VIEW_RESULT

    def retry_session(self):
        if self.session is not None:
            restart_session(self.session)
            self.view = VIEW_QUIZ

    def go_home(self):
        self.view = VIEW_HOME
