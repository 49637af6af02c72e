"""UI layer -- Rich dashboard, output formatters and logging setup."""

from .dashboard import (
    PHASE_TITLES,
    ProgressDisplay,
    console,
    create_histogram,
    print_capabilities,
    print_header,
    print_log,
    print_profiles,
    print_results,
)
from .logging_setup import configure_logging
from .output import create_result_json, format_text_result, save_json

__all__ = [
    "PHASE_TITLES",
    "ProgressDisplay",
    "configure_logging",
    "console",
    "create_histogram",
    "create_result_json",
    "format_text_result",
    "print_capabilities",
    "print_header",
    "print_log",
    "print_profiles",
    "print_results",
    "save_json",
]
