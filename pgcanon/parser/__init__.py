"""
parser package — модуль разбора DDL
"""

from .normalizer import SQLNormalizer
from .sql_parser import SQLParser
from .tokenizer import SQLTokenizer, Token, TokenType

from .scanner import (
    mask_text,
    find_matching_paren,
    split_top_level,
    strip_outer_parens,
    search_top_level,
    split_clauses,
)

__all__ = [
    "SQLNormalizer",
    "SQLParser",
    "SQLTokenizer",
    "Token",
    "TokenType",
    "mask_text",
    "find_matching_paren",
    "split_top_level",
    "strip_outer_parens",
    "search_top_level",
    "split_clauses",
]
