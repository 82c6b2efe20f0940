from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Tuple


class TokenType(str, Enum):
    KEYWORD = "KEYWORD"
    IDENTIFIER = "IDENTIFIER"
    QUOTED_IDENTIFIER = "QUOTED_IDENTIFIER"
    STRING = "STRING"
    DOLLAR_STRING = "DOLLAR_STRING"
    NUMBER = "NUMBER"
    PARAMETER = "PARAMETER"

    OPERATOR = "OPERATOR"
    CAST = "CAST"
    COMMA = "COMMA"
    DOT = "DOT"
    SEMICOLON = "SEMICOLON"
    LPAREN = "LPAREN"
    RPAREN = "RPAREN"
    LBRACKET = "LBRACKET"
    RBRACKET = "RBRACKET"

    WHITESPACE = "WHITESPACE"
    NEWLINE = "NEWLINE"
    COMMENT = "COMMENT"

    EOF = "EOF"


@dataclass
class Token:
    type: TokenType
    value: str
    line: int
    column: int
    position: int

    def normalize(self) -> str:
        return self.value.lower()

    def is_identifier(self) -> bool:
        return self.type in (TokenType.IDENTIFIER, TokenType.QUOTED_IDENTIFIER)

    def is_keyword(self, *values: str) -> bool:
        if self.type != TokenType.KEYWORD:
            return False
        return not values or self.value.upper() in values

    def is_trivia(self) -> bool:
        return self.type in (TokenType.WHITESPACE, TokenType.NEWLINE, TokenType.COMMENT)


class SQLTokenizer:
    """
    Лексический анализатор PostgreSQL.
    Делает токены + позиционную разметку (line/column/position).
    """

    KEYWORDS = {
        # DDL
        "CREATE", "ALTER", "DROP", "TABLE", "SCHEMA", "COLUMN",
        "CONSTRAINT", "PRIMARY", "KEY", "FOREIGN", "REFERENCES",
        "UNIQUE", "CHECK", "DEFAULT", "NOT", "NULL",
        "ADD", "RENAME", "TO", "IF", "EXISTS",
        "ON", "DELETE", "UPDATE", "INSERT", "TRUNCATE", "CASCADE", "RESTRICT", "SET",
        # запросы
        "SELECT", "DISTINCT", "FROM", "WHERE", "GROUP", "BY", "HAVING",
        "ORDER", "LIMIT", "OFFSET", "FETCH", "UNION", "INTERSECT", "EXCEPT", "ALL",
        "AS", "JOIN", "INNER", "LEFT", "RIGHT", "FULL", "OUTER", "CROSS",
        "NATURAL", "LATERAL", "USING", "WITH", "RECURSIVE", "ASC", "DESC", "NULLS",
        "FIRST", "LAST", "WINDOW", "OVER", "PARTITION", "FILTER", "VALUES",
        # выражения
        "AND", "OR", "IN", "IS", "LIKE", "ILIKE", "SIMILAR", "BETWEEN", "CASE",
        "WHEN", "THEN", "ELSE", "END", "CAST", "ANY", "SOME", "ARRAY", "ESCAPE",
        "COLLATE", "INTERVAL", "ISNULL", "NOTNULL", "OF",
        "CURRENT_DATE", "CURRENT_TIME", "CURRENT_TIMESTAMP", "CURRENT_USER",
        "SESSION_USER", "LOCALTIME", "LOCALTIMESTAMP",
    }

    # NEWLINE ДО WHITESPACE, иначе \s+ “съест” \n и NEWLINE никогда не появится
    _TOKEN_SPECS: List[Tuple[str, TokenType]] = [
        (r"--[^\n]*", TokenType.COMMENT),
        (r"/\*[\s\S]*?\*/", TokenType.COMMENT),  # безопаснее, чем DOTALL на .*?
        (r"\r\n|\r|\n", TokenType.NEWLINE),
        (r"[ \t\f\v]+", TokenType.WHITESPACE),

        (r"[Ee]'(?:[^'\\]|\\.|'')*'", TokenType.STRING),
        (r"'(?:[^']|'')*'", TokenType.STRING),
        (r"\$(?P<dq>(?:[A-Za-z_][A-Za-z0-9_]*)?)\$[\s\S]*?\$(?P=dq)\$", TokenType.DOLLAR_STRING),
        (r'"(?:[^"]|"")*"', TokenType.QUOTED_IDENTIFIER),
        (r"\$\d+", TokenType.PARAMETER),

        (r"(?:\d+\.\d*|\.\d+|\d+)(?:[Ee][+-]?\d+)?", TokenType.NUMBER),

        (r"::", TokenType.CAST),
        (r"->>|->|#>>|#>|<=|>=|<>|!=|!~~\*|!~~|~~\*|~~|!~\*|!~|~\*|\|\||@>|<@|&&|<<|>>|\?\||\?&", TokenType.OPERATOR),
        (r"[=<>!@#%^&|*/+\-~?]", TokenType.OPERATOR),

        (r",", TokenType.COMMA),
        (r"\.", TokenType.DOT),
        (r";", TokenType.SEMICOLON),
        (r"\(", TokenType.LPAREN),
        (r"\)", TokenType.RPAREN),
        (r"\[", TokenType.LBRACKET),
        (r"\]", TokenType.RBRACKET),

        (r"[A-Za-z_\u0080-\uffff][A-Za-z0-9_$\u0080-\uffff]*", TokenType.IDENTIFIER),
    ]

    def __init__(
        self,
        preserve_case: bool = False,
        keep_trivia: bool = False,
        extra_keywords: Optional[Iterable[str]] = None,
    ):
        self.preserve_case = preserve_case
        self.keep_trivia = keep_trivia
        self.keywords = set(self.KEYWORDS)
        if extra_keywords:
            self.keywords.update(k.upper() for k in extra_keywords)

        parts = []
        for i, (pat, _) in enumerate(self._TOKEN_SPECS):
            parts.append(f"(?P<T{i}>{pat})")
        self._master = re.compile("|".join(parts))

        # отображение group name -> TokenType
        self._group_to_type = {f"T{i}": t for i, (_, t) in enumerate(self._TOKEN_SPECS)}

    def tokenize(self, sql_text: str) -> List[Token]:
        """
        Быстрая токенизация (один проход).
        Возвращает токены без WHITESPACE/COMMENT/NEWLINE (если не keep_trivia).
        """
        tokens: List[Token] = []
        line = 1
        col = 1

        pos = 0
        n = len(sql_text)

        while pos < n:
            m = self._master.match(sql_text, pos)
            if not m:
                # гарантируем прогресс: 1 символ как OPERATOR, чтобы не зависнуть
                value = sql_text[pos]
                tokens.append(Token(TokenType.OPERATOR, value, line, col, pos))
                pos += 1
                col += 1
                continue

            group = self._top_group(m)
            base_type = self._group_to_type[group]
            value = m.group(group)
            start_line, start_col, start_pos = line, col, pos

            # координаты обновляем ДО фильтрации
            newlines = value.count("\n")
            if newlines:
                line += newlines
                col = len(value) - value.rfind("\n")
            else:
                col += len(value)

            pos = m.end()

            # фильтрация шума
            if base_type in (TokenType.WHITESPACE, TokenType.COMMENT, TokenType.NEWLINE) and not self.keep_trivia:
                continue

            precise = self._determine_token_type(base_type, value)

            if not self.preserve_case:
                if precise == TokenType.IDENTIFIER:
                    value = value.lower()
                elif precise == TokenType.KEYWORD:
                    value = value.upper()

            tokens.append(Token(precise, value, start_line, start_col, start_pos))

        tokens.append(Token(TokenType.EOF, "", line, col, pos))
        return tokens

    def _top_group(self, m: re.Match) -> str:
        # lastgroup может указывать на вложенную группу (dq), ищем Ti
        for name, value in m.groupdict().items():
            if value is not None and name.startswith("T"):
                return name
        raise ValueError(f"Tokenizer matched empty token at position {m.start()}")

    def _determine_token_type(self, base_type: TokenType, value: str) -> TokenType:
        if base_type != TokenType.IDENTIFIER:
            return base_type

        if value.upper() in self.keywords:
            return TokenType.KEYWORD

        return TokenType.IDENTIFIER

    def strip_comments(self, sql_text: str) -> str:
        """
        Удаляет комментарии вне строк и dollar-quoted тел.
        Переводы строк сохраняются, чтобы не склеивать операторы.
        """
        tokenizer = SQLTokenizer(preserve_case=True, keep_trivia=True)
        parts: List[str] = []
        for tok in tokenizer.tokenize(sql_text):
            if tok.type == TokenType.EOF:
                break
            if tok.type == TokenType.COMMENT:
                parts.append("\n" if tok.value.startswith("--") else " ")
                continue
            parts.append(tok.value)
        return "".join(parts)
