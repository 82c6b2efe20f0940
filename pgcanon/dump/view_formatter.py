"""
view_formatter.py

Раскладка тела представления в стиле pg_get_viewdef.

Запрос разбирается на токены (SQLNormalizer.expression_tokens), делится на
предложения верхнего уровня и собирается заново с фиксированными отступами:

     SELECT u.id,
        count(o.id) AS order_count
       FROM users u
         LEFT JOIN orders o ON u.id = o.user_id
      GROUP BY u.id

Всё, что внутри скобок (подзапросы, аргументы функций, CTE),
остаётся в одну строку в канонической записи выражений.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from ..parser.normalizer import SQLNormalizer
from ..parser.tokenizer import Token, TokenType

logger = logging.getLogger(__name__)

SET_OPERATIONS = ("UNION", "INTERSECT", "EXCEPT")

# предложение -> начало строки
CLAUSE_PREFIXES = {
    "SELECT": " SELECT",
    "FROM": "   FROM",
    "WHERE": "  WHERE",
    "GROUP BY": "  GROUP BY",
    "HAVING": " HAVING",
    "WINDOW": "  WINDOW",
    "ORDER BY": "  ORDER BY",
    "LIMIT": " LIMIT",
    "OFFSET": " OFFSET",
    "FETCH": " FETCH",
}

ITEM_SEPARATOR = ",\n    "
JOIN_INDENT = "\n     "

# токены, после которых идентификатор в конце элемента списка считается алиасом
_ALIAS_PRECEDERS = {
    TokenType.IDENTIFIER,
    TokenType.QUOTED_IDENTIFIER,
    TokenType.RPAREN,
    TokenType.RBRACKET,
    TokenType.NUMBER,
    TokenType.STRING,
}

# типы токенов, из которых состоит имя типа после "::"
_TYPE_TOKENS = {
    TokenType.IDENTIFIER,
    TokenType.QUOTED_IDENTIFIER,
    TokenType.KEYWORD,
    TokenType.NUMBER,
    TokenType.LPAREN,
    TokenType.RPAREN,
    TokenType.LBRACKET,
    TokenType.RBRACKET,
    TokenType.COMMA,
    TokenType.DOT,
}


def _keyword(value: str) -> Token:
    return Token(TokenType.KEYWORD, value, 0, 0, 0)


def _depths(tokens: List[Token]) -> List[int]:
    """Глубина вложенности скобок для каждого токена (скобка — на внешнем уровне)."""
    result = []
    depth = 0
    for tok in tokens:
        if tok.type in (TokenType.RPAREN, TokenType.RBRACKET):
            depth = max(depth - 1, 0)
        result.append(depth)
        if tok.type in (TokenType.LPAREN, TokenType.LBRACKET):
            depth += 1
    return result


def _split_top_level_commas(tokens: List[Token]) -> List[List[Token]]:
    items: List[List[Token]] = [[]]
    for tok, depth in zip(tokens, _depths(tokens)):
        if depth == 0 and tok.type == TokenType.COMMA:
            items.append([])
            continue
        items[-1].append(tok)
    return [item for item in items if item]


def _is_column_ref(tokens: List[Token]) -> bool:
    """a, t.a, s.t.a"""
    if len(tokens) % 2 == 0:
        return False
    for i, tok in enumerate(tokens):
        if i % 2 == 0 and not tok.is_identifier():
            return False
        if i % 2 == 1 and tok.type != TokenType.DOT:
            return False
    return True


class ViewFormatter:
    """
    Форматирование тела представления.

    Преобразования:
    - INNER JOIN -> JOIN, LEFT/RIGHT/FULL OUTER JOIN -> LEFT/RIGHT/FULL JOIN
    - неявный алиас столбца получает AS, алиас, совпадающий с именем столбца, убирается
    - AS перед алиасом таблицы убирается
    - операции над множествами (UNION, ...) выносятся на отдельную строку

    Повторное форматирование результата его не меняет.
    """

    def __init__(self, normalizer: Optional[SQLNormalizer] = None):
        self.normalizer = normalizer or SQLNormalizer()

    def format(self, body: str) -> str:
        if not body or not body.strip():
            return body

        text = body.strip()
        while text.endswith(";"):
            text = text[:-1].rstrip()

        tokens = self.normalizer.expression_tokens(text)
        if not tokens:
            return ""
        return self._format_query(tokens)

    # ==========================================================
    # ЗАПРОС
    # ==========================================================

    def _join(self, tokens: List[Token]) -> str:
        return self.normalizer.join_tokens(tokens)

    def _format_query(self, tokens: List[Token]) -> str:
        head, rest = self._split_with(tokens)

        lines: List[str] = []
        if head:
            lines.append(" " + self._join(head))

        for operation, part in self._split_set_operations(rest):
            if operation:
                lines.append(operation)
            lines.append(self._format_select(part))

        return "\n".join(lines)

    def _split_with(self, tokens: List[Token]) -> Tuple[List[Token], List[Token]]:
        """WITH ... до SELECT верхнего уровня."""
        if not tokens[0].is_keyword("WITH"):
            return [], tokens

        for i, (tok, depth) in enumerate(zip(tokens, _depths(tokens))):
            if i > 0 and depth == 0 and tok.is_keyword("SELECT"):
                return tokens[:i], tokens[i:]

        logger.debug("WITH без SELECT верхнего уровня, тело оставлено одной строкой")
        return [], tokens

    def _split_set_operations(self, tokens: List[Token]) -> List[Tuple[str, List[Token]]]:
        parts: List[Tuple[str, List[Token]]] = [("", [])]
        depths = _depths(tokens)
        i = 0
        while i < len(tokens):
            tok = tokens[i]
            if depths[i] == 0 and tok.type == TokenType.KEYWORD and tok.value in SET_OPERATIONS:
                operation = tok.value
                if i + 1 < len(tokens) and tokens[i + 1].is_keyword("ALL", "DISTINCT"):
                    operation += " " + tokens[i + 1].value
                    i += 1
                parts.append((operation, []))
                i += 1
                continue
            parts[-1][1].append(tok)
            i += 1
        return [(op, part) for op, part in parts if part]

    # ==========================================================
    # SELECT
    # ==========================================================

    def _format_select(self, tokens: List[Token]) -> str:
        if not tokens[0].is_keyword("SELECT"):
            # VALUES, (подзапрос) и прочее - одной строкой
            return " " + self._join(tokens)

        lines = []
        for clause, body in self._split_clauses(tokens):
            if clause == "SELECT":
                lines.append(self._format_target_list(body))
            elif clause == "FROM":
                lines.append(self._format_from(body))
            elif body:
                lines.append(f"{CLAUSE_PREFIXES[clause]} {self._join(body)}")
            else:
                lines.append(CLAUSE_PREFIXES[clause])
        return "\n".join(lines)

    def _split_clauses(self, tokens: List[Token]) -> List[Tuple[str, List[Token]]]:
        clauses: List[Tuple[str, List[Token]]] = []
        depths = _depths(tokens)
        i = 0
        while i < len(tokens):
            tok = tokens[i]
            clause = None
            width = 1

            if depths[i] == 0 and tok.type == TokenType.KEYWORD:
                nxt = tokens[i + 1] if i + 1 < len(tokens) else None
                prev = tokens[i - 1] if i > 0 else None
                if tok.value in ("GROUP", "ORDER") and nxt is not None and nxt.is_keyword("BY"):
                    clause, width = f"{tok.value} BY", 2
                elif tok.value == "FROM" and prev is not None and prev.is_keyword("DISTINCT"):
                    # IS [NOT] DISTINCT FROM
                    clause = None
                elif tok.value in CLAUSE_PREFIXES and (tok.value != "SELECT" or i == 0):
                    clause = tok.value

            if clause:
                clauses.append((clause, []))
                i += width
                continue

            clauses[-1][1].append(tok)
            i += 1
        return clauses

    def _format_target_list(self, tokens: List[Token]) -> str:
        prefix = ""
        if tokens and tokens[0].is_keyword("DISTINCT", "ALL"):
            end = 1
            if tokens[0].value == "DISTINCT" and len(tokens) > 2 and tokens[1].is_keyword("ON"):
                depths = _depths(tokens)
                end = 2
                while end < len(tokens) and not (depths[end] == 0 and tokens[end].type == TokenType.RPAREN):
                    end += 1
                end += 1
            if tokens[0].value == "DISTINCT":
                prefix = self._join(tokens[:end]) + " "
            tokens = tokens[end:]

        items = [self._join(self._column_item(item)) for item in _split_top_level_commas(tokens)]
        if not items:
            return CLAUSE_PREFIXES["SELECT"]
        return f"{CLAUSE_PREFIXES['SELECT']} {prefix}{ITEM_SEPARATOR.join(items)}"

    def _column_item(self, tokens: List[Token]) -> List[Token]:
        # u.name AS name -> u.name
        if len(tokens) >= 3 and tokens[-2].is_keyword("AS") and tokens[-1].is_identifier():
            expr = tokens[:-2]
            if _is_column_ref(expr) and expr[-1].value == tokens[-1].value:
                return expr
            return tokens

        if len(tokens) < 2 or not tokens[-1].is_identifier():
            return tokens

        prev = tokens[-2]
        if prev.type not in _ALIAS_PRECEDERS and not prev.is_keyword("END", "NULL"):
            return tokens
        if self._ends_with_type_name(tokens):
            return tokens

        # count(o.id) order_count -> count(o.id) AS order_count
        alias = tokens[-1]
        if _is_column_ref(tokens[:-1]) and tokens[-2].value == alias.value:
            return tokens[:-1]
        return tokens[:-1] + [_keyword("AS"), alias]

    @staticmethod
    def _ends_with_type_name(tokens: List[Token]) -> bool:
        """x::double precision: хвост после '::' верхнего уровня — имя типа, а не алиас."""
        depths = _depths(tokens)
        last_cast = None
        for i, (tok, depth) in enumerate(zip(tokens, depths)):
            if depth == 0 and tok.type == TokenType.CAST:
                last_cast = i
        if last_cast is None:
            return False
        return all(tok.type in _TYPE_TOKENS for tok in tokens[last_cast + 1:])

    # ==========================================================
    # FROM
    # ==========================================================

    def _format_from(self, tokens: List[Token]) -> str:
        entries: List[Tuple[str, List[Token], str, List[Token]]] = []
        separator = ""
        ref: List[Token] = []
        cond: List[Token] = []
        cond_keyword = ""

        def flush():
            if ref or cond:
                entries.append((separator, list(ref), cond_keyword, list(cond)))

        depths = _depths(tokens)
        i = 0
        while i < len(tokens):
            tok = tokens[i]
            if depths[i] == 0:
                join, width = self._match_join(tokens, i)
                if join:
                    flush()
                    separator, ref, cond, cond_keyword = join, [], [], ""
                    i += width
                    continue
                if tok.type == TokenType.COMMA:
                    flush()
                    separator, ref, cond, cond_keyword = ",", [], [], ""
                    i += 1
                    continue
                if tok.is_keyword("ON", "USING") and not cond_keyword:
                    cond_keyword = tok.value
                    i += 1
                    continue
            (cond if cond_keyword else ref).append(tok)
            i += 1
        flush()

        parts: List[str] = []
        for separator, ref, cond_keyword, cond in entries:
            item = self._join(self._drop_alias_as(ref))
            if cond_keyword:
                item += f" {cond_keyword} {self._join(cond)}"

            if not parts:
                parts.append(f"{CLAUSE_PREFIXES['FROM']} {item}")
            elif separator == ",":
                parts.append(f"{ITEM_SEPARATOR}{item}")
            else:
                parts.append(f"{JOIN_INDENT}{separator} {item}")
        return "".join(parts)

    @staticmethod
    def _match_join(tokens: List[Token], i: int) -> Tuple[str, int]:
        """[NATURAL] [INNER | CROSS | LEFT|RIGHT|FULL [OUTER]] JOIN -> (каноническая запись, длина)"""
        words: List[str] = []
        j = i
        if j < len(tokens) and tokens[j].is_keyword("NATURAL"):
            words.append("NATURAL")
            j += 1
        if j < len(tokens) and tokens[j].is_keyword("INNER"):
            j += 1
        elif j < len(tokens) and tokens[j].is_keyword("CROSS"):
            words.append("CROSS")
            j += 1
        elif j < len(tokens) and tokens[j].is_keyword("LEFT", "RIGHT", "FULL"):
            words.append(tokens[j].value)
            j += 1
            if j < len(tokens) and tokens[j].is_keyword("OUTER"):
                j += 1
        if j < len(tokens) and tokens[j].is_keyword("JOIN"):
            words.append("JOIN")
            return " ".join(words), j + 1 - i
        return "", 0

    @staticmethod
    def _drop_alias_as(tokens: List[Token]) -> List[Token]:
        return [
            tok for tok, depth in zip(tokens, _depths(tokens))
            if not (depth == 0 and tok.is_keyword("AS"))
        ]
