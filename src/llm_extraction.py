"""
LLM Extraction Module

Turns document text into structured practice questions.
Text is split into line-aligned chunks, each chunk is sent to Claude in
parallel, and the JSON answers are repaired, merged and normalized.
Prompts are loaded from config/prompts.yaml for easy editing.
"""

import os
import re
import json
import logging
from pathlib import Path
from typing import Optional
from concurrent.futures import ThreadPoolExecutor, as_completed

import yaml

from quiz_models import Question, QuestionType, now_ms
from cost_tracking import track_api_call

# =============================================================================
# Logging Setup
# =============================================================================

LOGGER_NAME = "smartquiz"

_logger = None
_log_file_path = None


def get_extraction_logger(output_dir: Optional[str] = None) -> logging.Logger:
    """
    Get or create the application logger.

    Args:
        output_dir: Directory to save log file. If provided and file handler
                   doesn't exist yet, creates a new log file there.

    Returns:
        Logger instance
    """
    global _logger, _log_file_path

    if _logger is None:
        _logger = logging.getLogger(LOGGER_NAME)
        _logger.setLevel(logging.DEBUG)
        _logger.handlers = []

        # Console handler - only warnings and above
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))
        _logger.addHandler(console_handler)

    if output_dir and _log_file_path is None:
        log_dir = Path(output_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        _log_file_path = log_dir / "smartquiz.log"

        file_handler = logging.FileHandler(_log_file_path, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s | %(levelname)s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        _logger.addHandler(file_handler)
        _logger.info("=" * 60)
        _logger.info("SmartQuiz session started")

    return _logger


def get_log_file_path() -> Optional[Path]:
    """Get the current log file path, if logging to file is enabled."""
    return _log_file_path


def reset_logger():
    """Reset the logger (useful for testing or changing data directories)."""
    global _logger, _log_file_path
    if _logger:
        for handler in _logger.handlers:
            handler.close()
        _logger.handlers = []
    _logger = None
    _log_file_path = None


# =============================================================================
# Model Management
# =============================================================================

MODEL_OUTPUT_LIMITS = {
    "claude-3-5-haiku": 8192,
    "claude-3-5-sonnet": 8192,
    "claude-haiku-4-5": 64000,
    "claude-sonnet-4": 64000,
    "claude-opus-4": 32000,
}
DEFAULT_MAX_OUTPUT_TOKENS = 8192

# Fallback Claude models (used if API fetch fails)
FALLBACK_MODELS = {
    "claude-haiku-4-5-20251001": "Claude Haiku 4.5",
    "claude-sonnet-4-20250514": "Claude Sonnet 4",
    "claude-opus-4-1-20250805": "Claude Opus 4.1",
    "claude-3-5-haiku-20241022": "Claude Haiku 3.5",
}
DEFAULT_MODEL_ID = "claude-haiku-4-5-20251001"
DEFAULT_MODEL_NAME = "Claude Haiku 4.5"

# Questions extraction output rarely needs more than this per chunk
EXTRACTION_MAX_TOKENS = 8000
EXTRACTION_TEMPERATURE = 0.1

_cached_models = None


class MissingApiKeyError(ValueError):
    """Raised before any network call when no API key is configured."""


def get_api_key() -> Optional[str]:
    """Read ANTHROPIC_API_KEY, loading .env first."""
    from dotenv import load_dotenv
    load_dotenv()
    return os.environ.get("ANTHROPIC_API_KEY") or None


def get_anthropic_client(api_key: Optional[str] = None):
    """Get Anthropic client for the given key (or the environment key)."""
    api_key = api_key or get_api_key()
    if not api_key:
        raise MissingApiKeyError("API Key is required (set ANTHROPIC_API_KEY)")

    import anthropic
    return anthropic.Anthropic(api_key=api_key)


def fetch_available_models() -> dict:
    """
    Fetch available models from the Anthropic API.
    Returns dict mapping display_name to model_id.
    Falls back to static list if API call fails.
    """
    global _cached_models

    if _cached_models is not None:
        return _cached_models

    logger = get_extraction_logger()
    try:
        client = get_anthropic_client()
        response = client.models.list(limit=100)

        models = {}
        for model in response.data:
            display_name = getattr(model, 'display_name', None) or model.id
            models[display_name] = model.id

        if models:
            _cached_models = models
            return _cached_models

    except MissingApiKeyError:
        # Not cached, so a key added later still fetches the live list
        return {v: k for k, v in FALLBACK_MODELS.items()}
    except Exception as e:
        logger.warning(f"Failed to fetch models from API: {type(e).__name__}: {e}")

    _cached_models = {v: k for k, v in FALLBACK_MODELS.items()}
    return _cached_models


def get_model_options() -> list[str]:
    """Get list of model display names for dropdown."""
    return list(fetch_available_models().keys())


def get_model_id(display_name: str) -> str:
    """Get model ID from display name."""
    return fetch_available_models().get(display_name, DEFAULT_MODEL_ID)


def get_model_max_tokens(model_id: str) -> int:
    """Maximum output tokens for a model, by known model family."""
    for pattern, limit in MODEL_OUTPUT_LIMITS.items():
        if pattern in model_id:
            return limit
    return DEFAULT_MAX_OUTPUT_TOKENS


def stream_message(
    client,
    model_id: str,
    messages: list[dict],
    max_tokens: int = None,
    temperature: float = None,
    system: str = None
) -> tuple[str, dict]:
    """
    Stream a message from the Anthropic API.

    Args:
        client: Anthropic client
        model_id: Model ID to use
        messages: List of message dicts
        max_tokens: Max output tokens (defaults to model max)
        temperature: Sampling temperature (API default if None)
        system: Optional system prompt

    Returns:
        Tuple of (response_text, usage_dict)
        usage_dict contains: input_tokens, output_tokens, stop_reason
    """
    if max_tokens is None:
        max_tokens = get_model_max_tokens(model_id)

    request = {"model": model_id, "max_tokens": max_tokens, "messages": messages}
    if temperature is not None:
        request["temperature"] = temperature
    if system:
        request["system"] = system

    response_text = ""
    input_tokens = 0
    output_tokens = 0
    stop_reason = None

    with client.messages.stream(**request) as stream:
        for event in stream:
            if not hasattr(event, 'type'):
                continue
            if event.type == 'message_start':
                if hasattr(event, 'message') and hasattr(event.message, 'usage'):
                    input_tokens = event.message.usage.input_tokens
            elif event.type == 'content_block_delta':
                if hasattr(event, 'delta') and hasattr(event.delta, 'text'):
                    response_text += event.delta.text
            elif event.type == 'message_delta':
                if hasattr(event, 'usage'):
                    output_tokens = event.usage.output_tokens
                if hasattr(event, 'delta') and hasattr(event.delta, 'stop_reason'):
                    stop_reason = event.delta.stop_reason

        # No text deltas: fall back to the text parts of the final message
        if not response_text:
            final_message = stream.get_final_message()
            response_text = "".join(
                block.text for block in final_message.content
                if getattr(block, 'type', None) == 'text'
            )

    usage = {
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "stop_reason": stop_reason
    }

    return response_text, usage


# =============================================================================
# Text Chunking
# =============================================================================

# Chunk budget in characters. Keeps each extraction call (and its JSON
# answer) comfortably inside the output token limit.
DEFAULT_CHUNK_CHARS = 12000
DEFAULT_MAX_WORKERS = 4


def chunk_text(text: str, max_chars: int = DEFAULT_CHUNK_CHARS) -> list[str]:
    """
    Split text into line-aligned chunks of at most max_chars characters.

    Lines are never split; a single line longer than max_chars is kept whole
    in its own chunk. Whitespace-only chunks are dropped.

    Args:
        text: Full document text
        max_chars: Maximum characters per chunk

    Returns:
        List of text chunks, in document order
    """
    if not text:
        return []

    chunks = []
    current = ""
    lines = text.split('\n')

    for i, line in enumerate(lines):
        piece = line + '\n' if i < len(lines) - 1 else line
        if current and len(current) + len(piece) > max_chars:
            if current.strip():
                chunks.append(current)
            current = ""
        current += piece

    if current.strip():
        chunks.append(current)

    return chunks


# =============================================================================
# JSON Handling
# =============================================================================

_FENCE_PATTERN = re.compile(r'^```(?:json)?\s*|\s*```$')


def strip_code_fences(text: str) -> str:
    """Remove a leading ```json / ``` fence and the closing fence."""
    text = text.strip()
    if text.startswith("```"):
        text = _FENCE_PATTERN.sub('', text)
    return text


def repair_json(text: str) -> str:
    """
    Best-effort repair of a truncated {"questions": [...]} JSON answer.

    Valid JSON is returned unchanged. Otherwise the text is cut back to the
    last complete array element and the array and object are closed. Never
    raises; the result may still fail to parse.
    """
    try:
        json.loads(text)
        return text
    except (TypeError, ValueError):
        pass

    if not isinstance(text, str):
        return "{}"

    trimmed = strip_code_fences(text)

    open_bracket = trimmed.find('[')
    if open_bracket == -1:
        return "{}"

    last_element_end = trimmed.rfind('},')
    if last_element_end > open_bracket:
        return trimmed[:last_element_end + 1] + "]}"
    if trimmed.endswith('}'):
        return trimmed + "]}"

    return trimmed


def parse_questions_payload(text: str) -> Optional[list]:
    """
    Parse a model answer into its raw "questions" list.

    Returns:
        The list of raw question dicts, or None if the text cannot be
        parsed (even after repair) or has no questions array.
    """
    if not text:
        return None

    text = strip_code_fences(text)
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        try:
            data = json.loads(repair_json(text))
        except json.JSONDecodeError:
            return None

    if isinstance(data, dict) and isinstance(data.get("questions"), list):
        return data["questions"]
    return None


# =============================================================================
# Prompt Loading
# =============================================================================

_cached_prompts = None


def get_prompts_path() -> Path:
    """Get path to prompts.yaml file."""
    return Path(__file__).parent / "config" / "prompts.yaml"


def load_prompts() -> dict:
    """Load prompts from YAML file. Caches after first load."""
    global _cached_prompts

    if _cached_prompts is not None:
        return _cached_prompts

    prompts_path = get_prompts_path()
    if not prompts_path.exists():
        raise FileNotFoundError(f"Prompts file not found: {prompts_path}")

    with open(prompts_path, encoding="utf-8") as f:
        _cached_prompts = yaml.safe_load(f)

    return _cached_prompts


def get_prompt(name: str, **kwargs) -> str:
    """
    Get a formatted prompt by name.

    Args:
        name: Prompt name (e.g., 'extract_questions')
        **kwargs: Variables to substitute into the prompt template

    Returns:
        Formatted prompt string
    """
    prompts = load_prompts()

    if name not in prompts:
        raise ValueError(f"Unknown prompt: {name}. Available: {list(prompts.keys())}")

    try:
        return prompts[name]["prompt"].format(**kwargs)
    except KeyError as e:
        raise ValueError(f"Missing variable for prompt '{name}': {e}")


def get_system_prompt(name: str) -> Optional[str]:
    """Optional system prompt stored next to a prompt template."""
    return load_prompts().get(name, {}).get("system")


# =============================================================================
# Question Normalization
# =============================================================================

QUESTION_SCHEMA = {
    "type": "object",
    "properties": {
        "questions": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "text": {"type": "string"},
                    "type": {
                        "type": "string",
                        "enum": [t.value for t in QuestionType],
                    },
                    "options": {"type": "array", "items": {"type": "string"}},
                    "correctIndices": {"type": "array", "items": {"type": "integer"}},
                    "explanation": {"type": "string"},
                },
                "required": ["text", "type", "options", "correctIndices", "explanation"],
            },
        },
    },
    "required": ["questions"],
}

MULTIPLE_CHOICE_MARKERS = ("multiple", "check", "多选")
TRUE_FALSE_MARKERS = ("true", "false", "judgment", "判断")


def normalize_question_type(raw_type) -> QuestionType:
    """Map a free-form type label onto one of the three question types."""
    if not isinstance(raw_type, str):
        return QuestionType.SINGLE

    lower = raw_type.lower()
    if any(marker in lower for marker in MULTIPLE_CHOICE_MARKERS):
        return QuestionType.MULTIPLE
    if any(marker in lower for marker in TRUE_FALSE_MARKERS):
        return QuestionType.JUDGMENT
    return QuestionType.SINGLE


def _coerce_index(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        stripped = value.strip()
        digits = stripped[1:] if stripped.startswith('-') else stripped
        if digits.isascii() and digits.isdecimal():
            return int(stripped)
    return None


def normalize_question(raw, question_id: str) -> Optional[Question]:
    """
    Build a Question from one raw model item.

    Correct indices are coerced to int, de-duplicated and limited to the
    option range. Returns None when the item has no text, no options or no
    usable correct index.
    """
    if not isinstance(raw, dict):
        return None

    raw_options = raw.get("options")
    if not isinstance(raw_options, list):
        return None

    text = str(raw.get("text") or "").strip()
    options = [str(opt).strip() for opt in raw_options if opt is not None]
    if not text or not options:
        return None

    raw_indices = raw.get("correctIndices", raw.get("correct_indices")) or []
    if not isinstance(raw_indices, list):
        raw_indices = [raw_indices]

    correct = []
    for value in raw_indices:
        index = _coerce_index(value)
        if index is not None and 0 <= index < len(options) and index not in correct:
            correct.append(index)
    if not correct:
        return None

    return Question(
        id=question_id,
        text=text,
        options=options,
        type=normalize_question_type(raw.get("type")),
        correct_indices=sorted(correct),
        explanation=str(raw.get("explanation") or "").strip(),
    )


# =============================================================================
# Extraction
# =============================================================================

def extract_chunk_questions(
    client,
    chunk: str,
    chunk_index: int,
    total_chunks: int,
    model_id: str,
    tracker: Optional[dict] = None
) -> list:
    """
    Extract raw question dicts from one chunk.

    Any failure (API error, unparseable JSON) is logged and yields an empty
    list so the other chunks are unaffected.
    """
    logger = get_extraction_logger()
    log_prefix = f"Chunk {chunk_index + 1}/{total_chunks}"

    try:
        prompt = get_prompt(
            "extract_questions",
            part=chunk_index + 1,
            total=total_chunks,
            chunk=chunk,
            single=QuestionType.SINGLE.value,
            multiple=QuestionType.MULTIPLE.value,
            judgment=QuestionType.JUDGMENT.value,
            schema=json.dumps(QUESTION_SCHEMA, indent=2),
        )

        response_text, usage = stream_message(
            client,
            model_id,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=min(EXTRACTION_MAX_TOKENS, get_model_max_tokens(model_id)),
            temperature=EXTRACTION_TEMPERATURE,
            system=get_system_prompt("extract_questions"),
        )

        logger.debug(
            f"{log_prefix}: in={usage['input_tokens']}, "
            f"out={usage['output_tokens']}, stop={usage['stop_reason']}"
        )
        if tracker is not None:
            track_api_call(tracker, "extract_questions", model_id, usage)
        if usage.get("stop_reason") == "max_tokens":
            logger.warning(f"{log_prefix}: Response may be truncated")

        questions = parse_questions_payload(response_text)
        if questions is None:
            logger.warning(f"{log_prefix}: Could not parse JSON, skipping chunk")
            return []

        logger.info(f"{log_prefix}: {len(questions)} questions")
        return questions

    except Exception as e:
        logger.warning(f"{log_prefix}: Failed - {type(e).__name__}: {e}")
        return []


def parse_document_to_quiz(
    document_text: str,
    api_key: Optional[str],
    model_id: str = DEFAULT_MODEL_ID,
    chunk_size: int = DEFAULT_CHUNK_CHARS,
    max_workers: int = DEFAULT_MAX_WORKERS,
    tracker: Optional[dict] = None,
    client=None,
    extraction_time: Optional[int] = None
) -> list[Question]:
    """
    Extract a flat, ordered list of questions from a document.

    Args:
        document_text: Plain text of the document
        api_key: Anthropic API key; a missing key fails before any call
        model_id: Model to use
        chunk_size: Character budget per chunk
        max_workers: Maximum concurrent extraction calls
        tracker: Optional cost tracker for usage
        client: Pre-built client (built from api_key if None)
        extraction_time: Epoch ms used in question IDs (now if None)

    Returns:
        Questions in chunk order. Empty if nothing was found; the caller
        decides how to report that.
    """
    if not api_key:
        raise MissingApiKeyError("API Key is required")

    logger = get_extraction_logger()
    if client is None:
        client = get_anthropic_client(api_key)

    chunks = chunk_text(document_text, chunk_size)
    total = len(chunks)
    logger.info(f"Processing {total} chunks with {model_id} ({max_workers} workers)")
    if not chunks:
        return []

    results: list[list] = [[] for _ in chunks]
    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        future_to_index = {
            executor.submit(
                extract_chunk_questions, client, chunk, i, total, model_id, tracker
            ): i
            for i, chunk in enumerate(chunks)
        }
        for future in as_completed(future_to_index):
            index = future_to_index[future]
            try:
                results[index] = future.result()
            except Exception as e:
                logger.warning(f"Chunk {index + 1}/{total}: Failed - {e}")

    raw_questions = [q for chunk_questions in results for q in chunk_questions]

    stamp = extraction_time if extraction_time is not None else now_ms()
    questions = []
    for raw in raw_questions:
        try:
            question = normalize_question(raw, f"q-{stamp}-{len(questions)}")
        except (TypeError, ValueError) as e:
            logger.warning(f"Dropping malformed question ({type(e).__name__}: {e}): {str(raw)[:80]}")
            continue
        if question is None:
            logger.warning(f"Dropping malformed question: {str(raw)[:80]}")
            continue
        questions.append(question)

    logger.info(f"Extracted {len(questions)} questions from {total} chunks")
    return questions
