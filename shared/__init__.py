"""
FORMCOACH Shared Module

Common utilities used across all services.
"""

from .utils import (
    setup_logger,
    parse_log_level,
    success_response,
    error_response,
    handle_exceptions,
)

__all__ = [
    'setup_logger',
    'parse_log_level',
    'success_response',
    'error_response',
    'handle_exceptions',
]
