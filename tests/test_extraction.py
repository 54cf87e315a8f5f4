"""
Tests for parallel document extraction with a fake model.

stream_message is replaced so no network call is made; the fake answers
based on the "Part N of M" marker in the prompt.
"""

import json
import re
import threading
import time

import pytest

import llm_extraction
from llm_extraction import FALLBACK_MODELS, fetch_available_models, get_extraction_logger, get_log_file_path
from cost_tracking import get_step_cost, new_cost_tracker
from llm_extraction import EXTRACTION_TEMPERATURE, MissingApiKeyError, parse_document_to_quiz
from quiz_models import QuestionType

# Three one-line chunks at this chunk size
DOCUMENT = "alpha\nbeta\ngamma"
CHUNK_SIZE = 6

USAGE = {"input_tokens": 100, "output_tokens": 50, "stop_reason": "end_turn"}


def question_json(text, correct=0, qtype="Single Choice"):
    return {
        "text": text,
        "type": qtype,
        "options": ["A", "B", "C"],
        "correctIndices": [correct],
        "explanation": f"About {text}",
    }


def answer_for(*texts):
    return json.dumps({"questions": [question_json(t) for t in texts]})


class FakeModel:
    """Stand-in for stream_message; answers per document part."""

    def __init__(self, answers):
        self.answers = answers
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, client, model_id, messages, max_tokens=None, temperature=None,
                 system=None):
        prompt = messages[0]["content"]
        part = int(re.search(r"Part (\d+) of (\d+)", prompt).group(1))
        with self._lock:
            self.calls.append({"part": part, "prompt": prompt, "temperature": temperature,
                               "system": system, "model_id": model_id})
        answer = self.answers[part]
        if isinstance(answer, Exception):
            raise answer
        if part == 1:
            # First chunk finishes last
            time.sleep(0.05)
        return answer, dict(USAGE)


@pytest.fixture
def fake_model(monkeypatch):
    def _install(answers):
        fake = FakeModel(answers)
        monkeypatch.setattr(llm_extraction, "stream_message", fake)
        return fake
    return _install


def run(document=DOCUMENT, **kwargs):
    kwargs.setdefault("chunk_size", CHUNK_SIZE)
    kwargs.setdefault("extraction_time", 1000)
    return parse_document_to_quiz(document, "test-key", client=object(), **kwargs)


class TestApiKey:
    """Tests for the missing-key check."""

    @pytest.mark.parametrize("api_key", [None, ""])
    def test_missing_key_fails_before_any_call(self, fake_model, api_key):
        fake = fake_model({1: answer_for("a")})
        with pytest.raises(MissingApiKeyError):
            parse_document_to_quiz(DOCUMENT, api_key, chunk_size=CHUNK_SIZE)
        assert fake.calls == []


class TestParseDocumentToQuiz:
    """Tests for merging chunk results."""

    def test_questions_are_merged_in_chunk_order(self, fake_model):
        fake_model({
            1: answer_for("one-a", "one-b"),
            2: answer_for("two-a", "two-b"),
            3: answer_for("three-a", "three-b"),
        })
        questions = run()
        assert [q.text for q in questions] == ["one-a", "one-b", "two-a", "two-b", "three-a", "three-b"]
        assert [q.id for q in questions] == [f"q-1000-{i}" for i in range(6)]

    def test_ids_are_unique(self, fake_model):
        fake_model({1: answer_for("a", "b"), 2: answer_for("c"), 3: answer_for("d")})
        ids = [q.id for q in run()]
        assert len(ids) == len(set(ids))

    def test_thirty_thousand_char_document(self, fake_model):
        fake_model({
            1: answer_for("one-a", "one-b"),
            2: answer_for("two-a", "two-b"),
            3: answer_for("three-a", "three-b"),
        })
        document = ("a" * 99 + "\n") * 300
        questions = run(document=document, chunk_size=12000)
        assert [q.text for q in questions] == ["one-a", "one-b", "two-a", "two-b", "three-a", "three-b"]

    def test_answer_cut_inside_explanation(self, fake_model):
        partial = dict(question_json("two-b"))
        partial.pop("explanation")
        truncated = (
            '{"questions": [' + json.dumps(question_json("two-a")) + ", "
            + json.dumps(partial)[:-1] + ', "explanation": "partial'
        )
        fake_model({1: answer_for("one-a"), 2: truncated, 3: answer_for("three-a")})
        assert [q.text for q in run()] == ["one-a", "two-a", "three-a"]

    def test_truncated_chunk_keeps_complete_questions(self, fake_model):
        truncated = '{"questions": [' + json.dumps(question_json("two-a")) + ', {"text": "two-b", "opt'
        fake_model({1: answer_for("one-a"), 2: truncated, 3: answer_for("three-a")})
        assert [q.text for q in run()] == ["one-a", "two-a", "three-a"]

    def test_unparseable_chunk_is_isolated(self, fake_model):
        fake_model({1: answer_for("one-a"), 2: "I could not find questions.", 3: answer_for("three-a")})
        assert [q.text for q in run()] == ["one-a", "three-a"]

    def test_failing_chunk_is_isolated(self, fake_model):
        fake_model({1: answer_for("one-a", "one-b"), 2: RuntimeError("overloaded"), 3: answer_for("three-a")})
        questions = run()
        assert [q.text for q in questions] == ["one-a", "one-b", "three-a"]
        assert [q.id for q in questions] == ["q-1000-0", "q-1000-1", "q-1000-2"]

    def test_no_questions_gives_empty_list(self, fake_model):
        empty = '{"questions": []}'
        fake_model({1: empty, 2: empty, 3: empty})
        assert run() == []

    def test_empty_document_makes_no_calls(self, fake_model):
        fake = fake_model({})
        assert run(document="") == []
        assert fake.calls == []

    def test_invalid_items_are_dropped_before_numbering(self, fake_model):
        bad = dict(question_json("bad"), correctIndices=[9])
        fake_model({
            1: json.dumps({"questions": [bad, question_json("good-1")]}),
            2: answer_for("good-2"),
            3: '{"questions": []}',
        })
        questions = run()
        assert [(q.id, q.text) for q in questions] == [("q-1000-0", "good-1"), ("q-1000-1", "good-2")]

    def test_types_are_normalized(self, fake_model):
        fake_model({
            1: json.dumps({"questions": [question_json("m", qtype="多选题")]}),
            2: json.dumps({"questions": [question_json("j", qtype="判断题")]}),
            3: json.dumps({"questions": [question_json("s", qtype="whatever")]}),
        })
        assert [q.type for q in run()] == [QuestionType.MULTIPLE, QuestionType.JUDGMENT, QuestionType.SINGLE]

    def test_prompt_and_sampling(self, fake_model):
        fake = fake_model({1: answer_for("a"), 2: answer_for("b"), 3: answer_for("c")})
        run(model_id="claude-haiku-4-5-20251001")
        by_part = {call["part"]: call for call in fake.calls}
        assert sorted(by_part) == [1, 2, 3]
        assert "Part 2 of 3" in by_part[2]["prompt"]
        assert "beta" in by_part[2]["prompt"]
        assert by_part[2]["temperature"] == EXTRACTION_TEMPERATURE
        assert by_part[2]["system"]
        assert by_part[2]["model_id"] == "claude-haiku-4-5-20251001"

    def test_usage_is_tracked_per_call(self, fake_model):
        fake_model({1: answer_for("a"), 2: answer_for("b"), 3: answer_for("c")})
        tracker = new_cost_tracker()
        run(tracker=tracker, max_workers=2)
        assert tracker["total_input_tokens"] == 300
        assert tracker["total_output_tokens"] == 150
        assert get_step_cost(tracker, "extract_questions")["call_count"] == 3

    @pytest.mark.parametrize("options", [5, True, 1.5, "ABC", {"a": 1}])
    def test_item_with_non_list_options_is_dropped(self, fake_model, options):
        bad = dict(question_json("bad"), options=options)
        fake_model({
            1: answer_for("one-a"),
            2: json.dumps({"questions": [bad, question_json("two-a")]}),
            3: answer_for("three-a"),
        })
        questions = run()
        assert [q.text for q in questions] == ["one-a", "two-a", "three-a"]
        assert [q.id for q in questions] == ["q-1000-0", "q-1000-1", "q-1000-2"]

    def test_unusual_index_strings_do_not_abort(self, fake_model):
        odd = dict(question_json("two-a"), correctIndices=["²", 1])
        fake_model({1: answer_for("one-a"), 2: json.dumps({"questions": [odd]}), 3: answer_for("three-a")})
        questions = run()
        assert [q.text for q in questions] == ["one-a", "two-a", "three-a"]
        assert questions[1].correct_indices == [1]

    def test_item_that_fails_to_build_is_dropped(self, fake_model, monkeypatch):
        real = llm_extraction.normalize_question

        def flaky(raw, question_id):
            if raw.get("text") == "bad":
                raise ValueError("broken item")
            return real(raw, question_id)

        monkeypatch.setattr(llm_extraction, "normalize_question", flaky)
        fake_model({1: answer_for("one-a", "bad"), 2: answer_for("two-a"), 3: answer_for("three-a")})
        assert [q.text for q in run()] == ["one-a", "two-a", "three-a"]


class FakeModelPage:
    def __init__(self, models):
        self.data = models


class FakeModels:
    def __init__(self, models):
        self.models = models

    def list(self, limit=None):
        return FakeModelPage(self.models)


class FakeClient:
    def __init__(self, models):
        self.models = FakeModels(models)


class FakeModelInfo:
    def __init__(self, model_id, display_name):
        self.id = model_id
        self.display_name = display_name


class TestFetchAvailableModels:
    """Tests for the cached model list."""

    @pytest.fixture(autouse=True)
    def empty_cache(self, monkeypatch):
        monkeypatch.setattr(llm_extraction, "_cached_models", None)

    def test_missing_key_falls_back_without_caching(self, monkeypatch):
        def no_key(api_key=None):
            raise MissingApiKeyError("no key")

        monkeypatch.setattr(llm_extraction, "get_anthropic_client", no_key)
        models = fetch_available_models()
        assert models == {name: model_id for model_id, name in FALLBACK_MODELS.items()}
        assert llm_extraction._cached_models is None

        live = FakeClient([FakeModelInfo("claude-new-1", "Claude New")])
        monkeypatch.setattr(llm_extraction, "get_anthropic_client", lambda api_key=None: live)
        assert fetch_available_models() == {"Claude New": "claude-new-1"}
        assert llm_extraction._cached_models == {"Claude New": "claude-new-1"}

    def test_api_failure_caches_fallback(self, monkeypatch):
        def broken(api_key=None):
            raise RuntimeError("connection refused")

        monkeypatch.setattr(llm_extraction, "get_anthropic_client", broken)
        fetch_available_models()
        assert llm_extraction._cached_models == {name: model_id for model_id, name in FALLBACK_MODELS.items()}


class TestLogger:
    """Tests for the shared log file."""

    def test_log_file_is_created_in_data_dir(self, tmp_path):
        logger = get_extraction_logger(str(tmp_path))
        logger.info("hello")
        assert get_log_file_path() == tmp_path / "smartquiz.log"
        assert "hello" in (tmp_path / "smartquiz.log").read_text(encoding="utf-8")

    def test_reset_clears_file_handler(self, tmp_path):
        get_extraction_logger(str(tmp_path))
        llm_extraction.reset_logger()
        assert get_log_file_path() is None
        assert len(get_extraction_logger().handlers) == 1
