"""
utils/naming.py

Утилиты для работы с именами объектов.
Нужны для:
- разбора квалифицированных имён (schema.name, "Quoted".name),
- вывода идентификаторов в каноническом виде (кавычки только при необходимости),
- генерации имён по умолчанию, как это делает PostgreSQL
  (users_pkey, orders_user_id_fkey, users_id_seq, ...).

Принцип:
- PostgreSQL неquoted идентификаторы приводит к lower-case.
- quoted идентификаторы ("User") сохраняют регистр и символы.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional, Sequence, Tuple

from ..core.constants import DEFAULT_SCHEMA, MAX_IDENTIFIER_LENGTH, RESERVED_KEYWORDS

_QUOTED_RE = re.compile(r'^".*"$', re.DOTALL)
_WS_RE = re.compile(r"\s+")
_PLAIN_RE = re.compile(r"^[a-z_][a-z0-9_$]*$")


def is_quoted_identifier(identifier: str) -> bool:
    """True если идентификатор заключён в двойные кавычки."""
    if not identifier:
        return False
    s = identifier.strip()
    return bool(_QUOTED_RE.match(s))


def strip_quotes(identifier: str) -> str:
    """Убирает внешние двойные кавычки, если они есть."""
    s = (identifier or "").strip()
    if len(s) >= 2 and s[0] == '"' and s[-1] == '"':
        return s[1:-1].replace('""', '"')
    return s


def normalize_identifier(identifier: str) -> str:
    """
    Нормализует идентификатор в стиле PostgreSQL:
    - если quoted: сохраняем внутреннее содержимое как есть (без внешних кавычек)
    - если не quoted: lower-case + trim + collapse spaces
    """
    if not identifier:
        return ""
    s = identifier.strip()

    if is_quoted_identifier(s):
        return strip_quotes(s)
    return _WS_RE.sub(" ", s).lower()


def split_name_parts(name: str) -> List[str]:
    """
    Делит квалифицированное имя по точкам вне кавычек.
      'public."My.Table"' -> ['public', '"My.Table"']
    """
    parts: List[str] = []
    buf: List[str] = []
    in_quotes = False
    for ch in (name or "").strip():
        if ch == '"':
            in_quotes = not in_quotes
            buf.append(ch)
        elif ch == "." and not in_quotes:
            parts.append("".join(buf).strip())
            buf = []
        else:
            buf.append(ch)
    parts.append("".join(buf).strip())
    return parts


def split_qualified_name(name: str) -> Tuple[Optional[str], str]:
    """
    Делит имя на (schema, object_name), если оно квалифицировано через точку.
    Примеры:
      "public.users" -> ("public", "users")
      "users" -> (None, "users")
    """
    if not name or not name.strip():
        return None, ""
    parts = split_name_parts(name)
    if len(parts) == 1:
        return None, normalize_identifier(parts[0])
    return normalize_identifier(parts[-2]), normalize_identifier(parts[-1])


def resolve_name(name: str, default_schema: str = DEFAULT_SCHEMA) -> Tuple[str, str]:
    """Как split_qualified_name, но схема всегда заполнена."""
    schema, obj = split_qualified_name(name)
    return schema or default_schema, obj


def needs_quotes(identifier: str) -> bool:
    return not _PLAIN_RE.match(identifier) or identifier in RESERVED_KEYWORDS


def quote_identifier(identifier: str) -> str:
    """Выводит идентификатор, добавляя кавычки только если без них он изменится."""
    if not identifier:
        return identifier
    if needs_quotes(identifier):
        return '"' + identifier.replace('"', '""') + '"'
    return identifier


def qualify(schema: Optional[str], name: str, target_schema: str = DEFAULT_SCHEMA) -> str:
    """Имя для вывода: объекты целевой схемы не квалифицируются."""
    if not schema or schema == target_schema:
        return quote_identifier(name)
    return f"{quote_identifier(schema)}.{quote_identifier(name)}"


def quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def unquote_literal(literal: str) -> str:
    """'It''s' -> It's; E'a\\nb' -> a\\nb (escape-последовательности не раскрываются)."""
    s = literal.strip()
    if s[:1] in ("E", "e") and s[1:2] == "'":
        s = s[1:]
    if len(s) >= 2 and s[0] == "'" and s[-1] == "'":
        return s[1:-1].replace("''", "'")
    return s


# ==========================================================
# ИМЕНА ПО УМОЛЧАНИЮ
# ==========================================================

def make_object_name(name1: str, name2: Optional[str], label: str) -> str:
    """
    Аналог makeObjectName из PostgreSQL: name1_name2_label,
    усечение до 63 символов за счёт более длинной части.
    """
    overhead = len(label) + 1 if label else 0
    if name2:
        overhead += 1

    avail = MAX_IDENTIFIER_LENGTH - overhead
    n1 = len(name1)
    n2 = len(name2) if name2 else 0

    while n1 + n2 > avail:
        if n1 > n2:
            n1 -= 1
        else:
            n2 -= 1

    result = name1[:n1]
    if name2:
        result += "_" + name2[:n2]
    if label:
        result += "_" + label
    return result


def choose_name(name1: str, name2: Optional[str], label: str, taken: Iterable[str]) -> str:
    """
    Аналог ChooseRelationName: при коллизии к метке добавляется номер
    (users_email_key, users_email_key1, ...).
    """
    used = set(taken)
    candidate = make_object_name(name1, name2, label)
    counter = 0
    while candidate in used:
        counter += 1
        candidate = make_object_name(name1, name2, f"{label}{counter}")
    return candidate


def column_list_addition(columns: Sequence[str]) -> str:
    """Часть имени из списка колонок: a, b -> a_b."""
    return "_".join(c for c in columns if c)
