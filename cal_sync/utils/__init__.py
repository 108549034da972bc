"""
Utility functions for cal-sync.
"""

from .io import safe_read_json, safe_write_json
from .date import parse_date, parse_datetime, format_time_range

__all__ = [
    # I/O utilities
    'safe_read_json',
    'safe_write_json',
    # Date utilities
    'parse_date',
    'parse_datetime',
    'format_time_range',
]
