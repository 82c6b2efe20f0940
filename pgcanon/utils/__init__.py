"""
Пакет utils: вспомогательные утилиты.

Содержит чистые функции без побочных эффектов, используемые
различными слоями системы (parser, rules, dump).

Состав пакета:
- naming: разбор, вывод и генерация имён объектов БД
- types: нормализация типов данных PostgreSQL
"""

from .naming import (
    normalize_identifier,
    strip_quotes,
    split_name_parts,
    split_qualified_name,
    resolve_name,
    quote_identifier,
    qualify,
    quote_literal,
    unquote_literal,
    make_object_name,
    choose_name,
    column_list_addition,
)

from .types import (
    TYPE_ALIASES,
    SERIAL_TYPES,
    normalize_type,
    base_type_name,
    is_builtin_type,
    is_serial_type,
    serial_base_type,
)

__all__ = [
    # naming
    "normalize_identifier",
    "strip_quotes",
    "split_name_parts",
    "split_qualified_name",
    "resolve_name",
    "quote_identifier",
    "qualify",
    "quote_literal",
    "unquote_literal",
    "make_object_name",
    "choose_name",
    "column_list_addition",

    # types
    "TYPE_ALIASES",
    "SERIAL_TYPES",
    "normalize_type",
    "base_type_name",
    "is_builtin_type",
    "is_serial_type",
    "serial_base_type",
]
