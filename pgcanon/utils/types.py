"""
Нормализация имён типов данных PostgreSQL.

Каноническая запись — та, что выводит pg_dump/format_type в сокращённом
виде: integer, bigint, varchar(255), numeric(10,2), timestamptz, text[] ...
"""

from __future__ import annotations

import re
from typing import Dict, Optional, Tuple

from ..core.constants import DEFAULT_SCHEMA
from .naming import split_qualified_name, quote_identifier


# Синонимы -> каноническое имя
TYPE_ALIASES: Dict[str, str] = {
    "int": "integer",
    "int4": "integer",
    "integer": "integer",
    "int2": "smallint",
    "smallint": "smallint",
    "int8": "bigint",
    "bigint": "bigint",
    "float4": "real",
    "real": "real",
    "float8": "double precision",
    "double precision": "double precision",
    "float": "double precision",
    "bool": "boolean",
    "boolean": "boolean",
    "decimal": "numeric",
    "numeric": "numeric",
    "character varying": "varchar",
    "varchar": "varchar",
    "char": "character",
    "character": "character",
    "bpchar": "character",
    "text": "text",
    "timestamp with time zone": "timestamptz",
    "timestamptz": "timestamptz",
    "timestamp without time zone": "timestamp",
    "timestamp": "timestamp",
    "time with time zone": "timetz",
    "timetz": "timetz",
    "time without time zone": "time",
    "time": "time",
    "date": "date",
    "interval": "interval",
    "bit varying": "bit varying",
    "varbit": "bit varying",
    "bit": "bit",
    "json": "json",
    "jsonb": "jsonb",
    "uuid": "uuid",
    "xml": "xml",
    "bytea": "bytea",
    "money": "money",
    "oid": "oid",
    "inet": "inet",
    "cidr": "cidr",
    "macaddr": "macaddr",
    "tsvector": "tsvector",
    "tsquery": "tsquery",
    "point": "point",
    "regclass": "regclass",
    "void": "void",
    "trigger": "trigger",
    "record": "record",
    "anyelement": "anyelement",
    "serial": "serial",
    "serial4": "serial",
    "bigserial": "bigserial",
    "serial8": "bigserial",
    "smallserial": "smallserial",
    "serial2": "smallserial",
}

SERIAL_TYPES: Dict[str, str] = {
    "serial": "integer",
    "bigserial": "bigint",
    "smallserial": "smallint",
}

_WS_RE = re.compile(r"\s+")
_ARRAY_RE = re.compile(r"(\s*\[\s*\d*\s*\])+\s*$")
_ARRAY_KEYWORD_RE = re.compile(r"\s+array(\s*\[\s*\d*\s*\])?\s*$", re.IGNORECASE)
_MODIFIER_RE = re.compile(r"^(?P<base>[^(]+?)\s*\((?P<mods>[^)]*)\)\s*(?P<tail>.*)$")
_ZONE_RE = re.compile(r"^(?P<base>timestamp|time)\s+(?P<zone>with|without)\s+time\s+zone$")


def _split_array(type_text: str) -> Tuple[str, int]:
    dims = 0
    m = _ARRAY_KEYWORD_RE.search(type_text)
    if m:
        return type_text[:m.start()].strip(), 1

    m = _ARRAY_RE.search(type_text)
    if m:
        dims = m.group(0).count("[")
        type_text = type_text[:m.start()].strip()
    return type_text, dims


def _lower_unquoted(type_text: str) -> str:
    # "MyType" с кавычками сохраняет регистр
    parts = re.split(r'("(?:[^"]|"")*")', type_text)
    return "".join(p if p.startswith('"') else p.lower() for p in parts)


def normalize_type(type_text: Optional[str], target_schema: str = DEFAULT_SCHEMA) -> Optional[str]:
    """
    Приводит запись типа к канонической форме.

    >>> normalize_type("INT4")
    'integer'
    >>> normalize_type("CHARACTER VARYING(255)")
    'varchar(255)'
    >>> normalize_type("timestamp(3) with time zone")
    'timestamptz(3)'
    >>> normalize_type("public.user_status")
    'user_status'
    """
    if type_text is None:
        return None

    s = _WS_RE.sub(" ", type_text.strip())
    if not s:
        return s

    s = _lower_unquoted(s)
    s, dims = _split_array(s)

    # модификаторы: varchar(255), numeric(10, 2), timestamp(3) with time zone
    mods = ""
    m = _MODIFIER_RE.match(s)
    if m:
        mods = "(" + ",".join(x.strip() for x in m.group("mods").split(",")) + ")"
        s = f"{m.group('base').strip()} {m.group('tail').strip()}".strip()

    zone = _ZONE_RE.match(s)
    if zone:
        key = f"{zone.group('base')} {zone.group('zone')} time zone"
        base = TYPE_ALIASES[key]
    else:
        schema, name = split_qualified_name(s)
        if schema in ("pg_catalog", None) and name in TYPE_ALIASES:
            base = TYPE_ALIASES[name]
        elif schema is None or schema == target_schema:
            base = quote_identifier(name)
        else:
            base = f"{quote_identifier(schema)}.{quote_identifier(name)}"

    # float(p): p <= 24 -> real
    if base == "double precision" and mods and s.startswith("float"):
        digits = mods.strip("()")
        base = "real" if digits.isdigit() and int(digits) <= 24 else "double precision"
        mods = ""

    return f"{base}{mods}" + "[]" * dims


def base_type_name(type_text: str) -> str:
    """Имя типа без модификаторов и массивности: varchar(10)[] -> varchar."""
    s, _ = _split_array(type_text.strip())
    m = _MODIFIER_RE.match(s)
    if m:
        s = f"{m.group('base').strip()} {m.group('tail').strip()}".strip()
    return s


def is_builtin_type(type_text: str) -> bool:
    """True, если текст целиком является встроенным типом (с модификаторами/массивом)."""
    s = _lower_unquoted(_WS_RE.sub(" ", type_text.strip()))
    base = base_type_name(s)
    if _ZONE_RE.match(base):
        return True
    schema, name = split_qualified_name(base)
    return schema in (None, "pg_catalog") and name in TYPE_ALIASES


def is_serial_type(type_text: Optional[str]) -> bool:
    if not type_text:
        return False
    return TYPE_ALIASES.get(type_text.strip().lower()) in SERIAL_TYPES


def serial_base_type(type_text: str) -> str:
    return SERIAL_TYPES[TYPE_ALIASES[type_text.strip().lower()]]
