"""
Нормализатор SQL для PostgreSQL.

- разбиение текста на операторы (sqlparse.split) с удалением комментариев
  и пустых операторов, которые остаются после ";;";
- каноническая запись выражений: токенная реконструкция через SQLTokenizer
  с фиксированными правилами пробелов;
- классификация операторов для диспетчеризации в парсере.
"""
import logging
import re
from typing import Iterable, List, Optional

import sqlparse

from ..core.constants import IGNORED_STATEMENT_PREFIXES, RESERVED_KEYWORDS
from .tokenizer import SQLTokenizer, Token, TokenType

logger = logging.getLogger(__name__)

_PLAIN_IDENT_RE = re.compile(r"^[a-z_][a-z0-9_$]*$")

# ключевые слова, которые в выражениях бывают именами функций
_FUNCTION_KEYWORDS = {"LEFT", "RIGHT", "CAST"}

# после этих токенов "-"/"+" унарные
_UNARY_CONTEXT = {
    TokenType.OPERATOR, TokenType.LPAREN, TokenType.COMMA, TokenType.LBRACKET,
    TokenType.KEYWORD, TokenType.CAST,
}

# ключевые слова-значения: после них "-" бинарный
_VALUE_KEYWORDS = {
    "END", "NULL", "CURRENT_DATE", "CURRENT_TIME", "CURRENT_TIMESTAMP",
    "CURRENT_USER", "SESSION_USER", "LOCALTIME", "LOCALTIMESTAMP",
}


class SQLNormalizer:
    """
    Нормализатор SQL для PostgreSQL.

    Канонизация выражений:
    1) ключевые слова — верхний регистр, идентификаторы — нижний
    2) лишние кавычки у идентификаторов снимаются
    3) литералы и тела в $$ не изменяются
    4) пробелы расставляются по фиксированным правилам
    """

    STATEMENT_PATTERNS = [
        (re.compile(r"^CREATE\s+MATERIALIZED\s+VIEW\b"), "CREATE_MATERIALIZED_VIEW"),
        (re.compile(r"^CREATE\s+(OR\s+REPLACE\s+)?((TEMP|TEMPORARY)\s+)?(RECURSIVE\s+)?VIEW\b"), "CREATE_VIEW"),
        (re.compile(r"^CREATE\s+((UNLOGGED|TEMP|TEMPORARY)\s+)?TABLE\b"), "CREATE_TABLE"),
        (re.compile(r"^CREATE\s+(UNIQUE\s+)?INDEX\b"), "CREATE_INDEX"),
        (re.compile(r"^CREATE\s+TYPE\b"), "CREATE_TYPE"),
        (re.compile(r"^CREATE\s+DOMAIN\b"), "CREATE_DOMAIN"),
        (re.compile(r"^CREATE\s+((TEMP|TEMPORARY|UNLOGGED)\s+)?SEQUENCE\b"), "CREATE_SEQUENCE"),
        (re.compile(r"^CREATE\s+(OR\s+REPLACE\s+)?FUNCTION\b"), "CREATE_FUNCTION"),
        (re.compile(r"^CREATE\s+(OR\s+REPLACE\s+)?PROCEDURE\b"), "CREATE_PROCEDURE"),
        (re.compile(r"^CREATE\s+(OR\s+REPLACE\s+)?TRIGGER\b"), "CREATE_TRIGGER"),
        (re.compile(r"^CREATE\s+POLICY\b"), "CREATE_POLICY"),
        (re.compile(r"^COMMENT\s+ON\b"), "COMMENT"),
        (re.compile(r"^ALTER\s+(?!TABLE\b).+?\s+OWNER\s+TO\b"), "IGNORED"),
        (re.compile(r"^ALTER\s+TABLE\b"), "ALTER_TABLE"),
        (re.compile(r"^ALTER\s+SEQUENCE\b"), "ALTER_SEQUENCE"),
    ]

    def __init__(self, extra_keywords: Optional[Iterable[str]] = None):
        self.tokenizer = SQLTokenizer(extra_keywords=extra_keywords)
        self._trivia_tokenizer = SQLTokenizer(preserve_case=True, keep_trivia=True)

    # ==========================================================
    # ОПЕРАТОРЫ
    # ==========================================================

    def strip_comments(self, sql_text: str) -> str:
        return self.tokenizer.strip_comments(sql_text)

    def split_statements(self, sql_text: str) -> List[str]:
        """
        Делит SQL на операторы через sqlparse.split().
        Комментарии удаляются, строки psql-метакоманд отбрасываются,
        завершающие ";" снимаются, пустые операторы (";;") пропускаются.
        """
        if not sql_text or not sql_text.strip():
            return []

        text = self.strip_comments(sql_text)
        text = self._drop_meta_commands(text)

        statements: List[str] = []
        for raw in sqlparse.split(text):
            stmt = raw.strip()
            while stmt.endswith(";"):
                stmt = stmt[:-1].rstrip()
            if stmt:
                statements.append(stmt)
        return statements

    def _drop_meta_commands(self, text: str) -> str:
        lines = []
        for line in text.split("\n"):
            if line.lstrip().startswith("\\"):
                logger.debug("Пропущена метакоманда psql: %s", line.strip())
                continue
            lines.append(line)
        return "\n".join(lines)

    def collapse_whitespace(self, sql_text: str) -> str:
        """Сжимает пробельные последовательности вне литералов до одного пробела."""
        parts: List[str] = []
        pending_space = False
        for tok in self._trivia_tokenizer.tokenize(sql_text):
            if tok.type == TokenType.EOF:
                break
            if tok.is_trivia():
                pending_space = True
                continue
            if pending_space and parts:
                parts.append(" ")
            pending_space = False
            parts.append(tok.value)
        return "".join(parts)

    def get_statement_type(self, sql_text: str) -> str:
        head = self.collapse_whitespace(sql_text[:200]).upper()

        for prefix in IGNORED_STATEMENT_PREFIXES:
            if head.startswith(prefix):
                return "IGNORED"

        for pattern, kind in self.STATEMENT_PATTERNS:
            if pattern.match(head):
                return kind
        return "UNKNOWN"

    # ==========================================================
    # ВЫРАЖЕНИЯ
    # ==========================================================

    def normalize_expression(self, expr: Optional[str], extra_keywords: Optional[Iterable[str]] = None) -> Optional[str]:
        if expr is None:
            return None
        if not expr.strip():
            return ""

        return self.join_tokens(self.expression_tokens(expr, extra_keywords))

    def expression_tokens(self, expr: str, extra_keywords: Optional[Iterable[str]] = None) -> List[Token]:
        """Токены выражения в канонической записи (без EOF), для раскладки по предложениям."""
        tokenizer = SQLTokenizer(extra_keywords=extra_keywords) if extra_keywords else self.tokenizer
        tokens = [t for t in tokenizer.tokenize(expr) if t.type != TokenType.EOF]
        tokens = self._unquote_identifiers(tokens, tokenizer)
        return self._keywords_as_identifiers(tokens)

    def _unquote_identifiers(self, tokens: List[Token], tokenizer: SQLTokenizer) -> List[Token]:
        for tok in tokens:
            if tok.type != TokenType.QUOTED_IDENTIFIER:
                continue
            inner = tok.value[1:-1]
            if (
                _PLAIN_IDENT_RE.match(inner)
                and inner not in RESERVED_KEYWORDS
                and inner.upper() not in tokenizer.keywords
            ):
                tok.type = TokenType.IDENTIFIER
                tok.value = inner
        return tokens

    def _keywords_as_identifiers(self, tokens: List[Token]) -> List[Token]:
        # "u.first", "t.key": ключевое слово рядом с точкой считается именем
        for i, tok in enumerate(tokens):
            if tok.type != TokenType.KEYWORD:
                continue
            prev_dot = i > 0 and tokens[i - 1].type == TokenType.DOT
            next_dot = i + 1 < len(tokens) and tokens[i + 1].type == TokenType.DOT
            next_paren = i + 1 < len(tokens) and tokens[i + 1].type == TokenType.LPAREN
            if prev_dot or next_dot:
                tok.type = TokenType.IDENTIFIER
                tok.value = tok.value.lower()
            elif next_paren and tok.value in ("LEFT", "RIGHT"):
                tok.type = TokenType.IDENTIFIER
                tok.value = tok.value.lower()
        return tokens

    def join_tokens(self, tokens: List[Token]) -> str:
        parts: List[str] = []

        for i, tok in enumerate(tokens):
            parts.append(tok.value)

            # Решаем, нужен ли пробел после текущего токена
            if i == len(tokens) - 1:
                continue

            next_tok = tokens[i + 1]
            prev_tok = tokens[i - 1] if i > 0 else None

            # Не ставим пробел перед некоторыми токенами
            if next_tok.type in (
                TokenType.COMMA, TokenType.RPAREN, TokenType.DOT, TokenType.SEMICOLON,
                TokenType.RBRACKET, TokenType.CAST,
            ):
                continue

            # Не ставим пробел после '(' '[' '.' '::'
            if tok.type in (TokenType.LPAREN, TokenType.LBRACKET, TokenType.DOT, TokenType.CAST):
                continue

            # вызов функции и индексирование массива
            if next_tok.type == TokenType.LPAREN and (
                tok.is_identifier() or (tok.type == TokenType.KEYWORD and tok.value in _FUNCTION_KEYWORDS)
            ):
                continue
            if next_tok.type == TokenType.LBRACKET and (
                tok.is_identifier() or tok.type == TokenType.RPAREN or tok.is_keyword("ARRAY")
            ):
                continue

            # унарный минус/плюс
            if tok.type == TokenType.OPERATOR and tok.value in ("-", "+") and (
                prev_tok is None
                or (prev_tok.type in _UNARY_CONTEXT and prev_tok.value not in _VALUE_KEYWORDS)
            ):
                continue

            parts.append(" ")

        return "".join(parts)

    def normalize_whitespace(self, text: str) -> str:
        """
        Нормализация текста для сравнения "байт в байт":
        концы строк, хвостовые пробелы, пустые строки по краям,
        серии пустых строк сжимаются до одной.
        """
        lines = [line.rstrip() for line in text.replace("\r\n", "\n").replace("\r", "\n").split("\n")]
        result: List[str] = []
        for line in lines:
            if not line and (not result or not result[-1]):
                continue
            result.append(line)
        while result and not result[-1]:
            result.pop()
        return "\n".join(result) + ("\n" if result else "")
