"""
include package — разворачивание директив \\i
"""

from .processor import IncludeProcessor, INCLUDE_RE

__all__ = [
    "IncludeProcessor",
    "INCLUDE_RE",
]
