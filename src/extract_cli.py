#!/usr/bin/env python3
"""
Headless question extraction.
Run this to turn a document into a question bank without the Streamlit UI.

Usage:
    python extract_cli.py DOCUMENT [--name NAME] [--chunk-size N] [--model MODEL]

Examples:
    python extract_cli.py exam.pdf
    python extract_cli.py notes.docx --name "Chapter 3" --chunk-size 8000
    python extract_cli.py questions.txt --dry-run
"""

import os
import sys
import argparse
from pathlib import Path

# Allow running from any directory
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from cost_tracking import new_cost_tracker, append_cost_tracking, format_cost, format_cost_display
from document_extraction import DocumentReadError, read_document, bank_name_from_filename
from llm_extraction import (
    DEFAULT_CHUNK_CHARS, DEFAULT_MAX_WORKERS, DEFAULT_MODEL_ID,
    MissingApiKeyError, chunk_text, get_api_key, get_extraction_logger,
    parse_document_to_quiz
)
from state_management import AppState, QuizStore, get_data_dir


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Extract a question bank from a document")
    parser.add_argument("document", help="Path to a .pdf, .docx or .txt file")
    parser.add_argument("--name", help="Bank name (defaults to the file name)")
    parser.add_argument("--chunk-size", type=int, default=DEFAULT_CHUNK_CHARS,
                        help=f"Characters per extraction chunk (default {DEFAULT_CHUNK_CHARS})")
    parser.add_argument("--max-workers", type=int, default=DEFAULT_MAX_WORKERS,
                        help=f"Parallel extraction calls (default {DEFAULT_MAX_WORKERS})")
    parser.add_argument("--model", default=DEFAULT_MODEL_ID, help="Model ID")
    parser.add_argument("--data-dir", help="Data directory (default SMARTQUIZ_DATA_DIR or ./data)")
    parser.add_argument("--dry-run", action="store_true", help="Print questions without saving the bank")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    data_dir = args.data_dir or get_data_dir()
    logger = get_extraction_logger(data_dir)

    api_key = get_api_key()
    if not api_key:
        print("ERROR: ANTHROPIC_API_KEY environment variable not set", file=sys.stderr)
        return 2

    path = Path(args.document)
    try:
        text = read_document(path.name, path.read_bytes())
    except (OSError, DocumentReadError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    chunks = chunk_text(text, args.chunk_size)
    print(f"Read {len(text):,} characters from {path.name} ({len(chunks)} chunks)")

    tracker = new_cost_tracker()
    try:
        questions = parse_document_to_quiz(
            text,
            api_key,
            model_id=args.model,
            chunk_size=args.chunk_size,
            max_workers=args.max_workers,
            tracker=tracker,
        )
    except MissingApiKeyError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    print(f"Usage: {format_cost_display(tracker)}")
    history = append_cost_tracking(tracker, data_dir)
    print(f"All runs: {format_cost(history['total_cost'])}")

    if not questions:
        print("No questions found. The document might not contain recognizable question formats.")
        return 1

    for i, q in enumerate(questions, 1):
        answer = ", ".join(chr(65 + idx) for idx in q.correct_indices)
        print(f"{i:3d}. [{q.type.value}] {q.text[:70]} -> {answer}")

    if args.dry_run:
        print(f"\nDry run: {len(questions)} questions not saved")
        return 0

    state = AppState(QuizStore(data_dir)).load()
    bank = state.add_bank(args.name or bank_name_from_filename(path.name), questions)
    logger.info(f"CLI saved bank {bank.id} ({len(questions)} questions)")
    print(f"\nSaved bank '{bank.name}' with {len(questions)} questions to {data_dir}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
