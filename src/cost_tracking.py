"""
Cost Tracking Module

Tracks API usage and costs during question extraction.
Provides functions for recording calls, calculating costs, and formatting displays.
"""

import os
import json
import threading
from datetime import datetime

# =============================================================================
# Model Pricing ($ per 1M tokens)
# =============================================================================

MODEL_PRICING = {
    # Claude 3.5 models
    "claude-3-5-haiku-20241022": {"input": 0.80, "output": 4.00},
    "claude-3-5-sonnet-20241022": {"input": 3.00, "output": 15.00},
    # Claude 4 models
    "claude-haiku-4-5-20251001": {"input": 1.00, "output": 5.00},
    "claude-sonnet-4-20250514": {"input": 3.00, "output": 15.00},
    "claude-opus-4-1-20250805": {"input": 15.00, "output": 75.00},
}

# Default pricing for unknown models (use Haiku pricing as conservative estimate)
DEFAULT_PRICING = {"input": 1.00, "output": 5.00}

# Worker threads record calls concurrently
_tracker_lock = threading.Lock()


# =============================================================================
# Cost Calculation Functions
# =============================================================================

def get_model_pricing(model_id: str) -> dict:
    """
    Get pricing for a model.

    Args:
        model_id: The model ID (e.g., "claude-3-5-haiku-20241022")

    Returns:
        Dict with "input" and "output" prices per 1M tokens
    """
    if model_id in MODEL_PRICING:
        return MODEL_PRICING[model_id]

    # Match by model family prefix (date suffix removed)
    for pattern, pricing in MODEL_PRICING.items():
        base_pattern = "-".join(pattern.split("-")[:-1])
        if model_id.startswith(base_pattern):
            return pricing

    return DEFAULT_PRICING


def calculate_cost(model_id: str, input_tokens: int, output_tokens: int) -> float:
    """Calculate the dollar cost of an API call."""
    pricing = get_model_pricing(model_id)
    input_cost = (input_tokens / 1_000_000) * pricing["input"]
    output_cost = (output_tokens / 1_000_000) * pricing["output"]
    return input_cost + output_cost


# =============================================================================
# Tracker
# =============================================================================

def new_cost_tracker() -> dict:
    """Create an empty usage tracker."""
    return {
        "total_input_tokens": 0,
        "total_output_tokens": 0,
        "total_cost": 0.0,
        "by_step": {},
        "calls": []
    }


def track_api_call(tracker: dict, step_name: str, model_id: str, usage: dict):
    """
    Record an API call to the cost tracker.

    Args:
        tracker: Tracker dict from new_cost_tracker()
        step_name: Name of the step (e.g., "extract_questions")
        model_id: The model ID used
        usage: Usage dict from stream_message with input_tokens, output_tokens
    """
    input_tokens = usage.get("input_tokens") or 0
    output_tokens = usage.get("output_tokens") or 0
    cost = calculate_cost(model_id, input_tokens, output_tokens)

    with _tracker_lock:
        tracker["total_input_tokens"] += input_tokens
        tracker["total_output_tokens"] += output_tokens
        tracker["total_cost"] += cost

        step_data = tracker["by_step"].setdefault(step_name, {
            "input": 0,
            "output": 0,
            "cost": 0.0,
            "call_count": 0
        })
        step_data["input"] += input_tokens
        step_data["output"] += output_tokens
        step_data["cost"] += cost
        step_data["call_count"] += 1

        tracker["calls"].append({
            "step": step_name,
            "model": model_id,
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "cost": cost,
            "timestamp": datetime.now().isoformat()
        })


def get_step_cost(tracker: dict, step_name: str) -> dict:
    """Get input, output, cost and call_count for a step."""
    default = {"input": 0, "output": 0, "cost": 0.0, "call_count": 0}
    return tracker["by_step"].get(step_name, default)


# =============================================================================
# Display Formatting Functions
# =============================================================================

def format_tokens(tokens: int) -> str:
    """Format token count for display (e.g., 125000 -> '125.0k')."""
    if tokens >= 1_000_000:
        return f"{tokens / 1_000_000:.1f}M"
    elif tokens >= 1_000:
        return f"{tokens / 1_000:.1f}k"
    else:
        return str(tokens)


def format_cost(cost: float) -> str:
    """Format cost for display (e.g., 0.0825 -> '$0.08')."""
    if cost >= 0.01:
        return f"${cost:.2f}"
    return f"${cost:.4f}"


def format_cost_display(tracker: dict) -> str:
    """Format a tracker as "125.0k in / 45.0k out | $0.25"."""
    return (
        f"{format_tokens(tracker['total_input_tokens'])} in / "
        f"{format_tokens(tracker['total_output_tokens'])} out | "
        f"{format_cost(tracker['total_cost'])}"
    )


# =============================================================================
# Persistence Functions
# =============================================================================

def get_cost_tracking_file(output_dir: str) -> str:
    return os.path.join(output_dir, "cost_tracking.json")


def save_cost_tracking(tracker: dict, output_dir: str):
    """Save tracker totals and calls to JSON."""
    os.makedirs(output_dir, exist_ok=True)
    data = dict(tracker, last_updated=datetime.now().isoformat())
    with open(get_cost_tracking_file(output_dir), "w") as f:
        json.dump(data, f, indent=2)


def load_cost_tracking(output_dir: str) -> dict:
    """Load a tracker saved by save_cost_tracking, or a fresh one."""
    cost_file = get_cost_tracking_file(output_dir)
    tracker = new_cost_tracker()
    if os.path.exists(cost_file):
        with open(cost_file) as f:
            data = json.load(f)
        for key in tracker:
            if key in data:
                tracker[key] = data[key]
    return tracker


def merge_cost_tracking(target: dict, source: dict) -> dict:
    """Add the totals, per-step usage and calls of source into target."""
    with _tracker_lock:
        for key in ("total_input_tokens", "total_output_tokens", "total_cost"):
            target[key] += source[key]
        for step_name, data in source["by_step"].items():
            step_data = target["by_step"].setdefault(step_name, {
                "input": 0,
                "output": 0,
                "cost": 0.0,
                "call_count": 0
            })
            for key in step_data:
                step_data[key] += data.get(key, 0)
        target["calls"].extend(source["calls"])
    return target


def append_cost_tracking(tracker: dict, output_dir: str) -> dict:
    """
    Add one run's usage to the history saved in output_dir.

    Returns:
        The updated all-time tracker
    """
    history = merge_cost_tracking(load_cost_tracking(output_dir), tracker)
    save_cost_tracking(history, output_dir)
    return history
