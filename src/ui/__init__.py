"""
UI Package

Modular UI pieces for SmartQuiz.

This package provides helper functions and sidebar rendering.
View rendering functions remain in ui_components.py to avoid circular imports.

Usage:
    from ui import render_sidebar
    from ui.helpers import get_app_state, sync_timer, ...
"""

from ui.helpers import (
    init_session_state,
    get_app_state,
    get_selected_model_id,
    save_settings,
    sync_timer,
    reset_ui_state,
    record_usage,
    is_script_control,
)

from ui.sidebar import render_sidebar

__all__ = [
    # Helpers
    'init_session_state',
    'get_app_state',
    'get_selected_model_id',
    'save_settings',
    'sync_timer',
    'reset_ui_state',
    'record_usage',
    'is_script_control',
    # Sidebar
    'render_sidebar',
]
