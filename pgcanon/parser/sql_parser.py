"""
Парсер PostgreSQL DDL в объектную модель (Catalog).

Каждый оператор классифицируется SQLNormalizer.get_statement_type()
и передаётся своему обработчику. Обработчики работают с исходным текстом
оператора: заголовок разбирается регулярным выражением, списки и
предложения — по маске верхнего уровня (scanner.py).
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..core.constants import DEFAULT_SCHEMA
from ..core.exceptions import ParsingError, UnsupportedFeatureError
from ..core.models import (
    Argument,
    Catalog,
    Column,
    CompositeField,
    Constraint,
    ConstraintType,
    DatabaseObject,
    Domain,
    DomainConstraint,
    Function,
    Index,
    Policy,
    Procedure,
    Routine,
    Sequence,
    Table,
    Trigger,
    TypeDef,
    TypeKind,
    View,
)
from ..utils.naming import (
    normalize_identifier,
    resolve_name,
    split_name_parts,
    unquote_literal,
)
from ..utils.types import is_builtin_type, normalize_type
from .normalizer import SQLNormalizer
from .scanner import (
    find_matching_paren,
    search_top_level,
    split_clauses,
    split_top_level,
    strip_outer_parens,
)

logger = logging.getLogger(__name__)

IDENT = r'(?:"(?:[^"]|"")+"|[A-Za-z_][A-Za-z0-9_$]*)'
QNAME = rf"{IDENT}(?:\s*\.\s*{IDENT})?"

_FLAGS = re.IGNORECASE | re.DOTALL

COLUMN_CLAUSE_RE = re.compile(
    r"\b(CONSTRAINT|NOT\s+NULL|NULL|DEFAULT|PRIMARY\s+KEY|UNIQUE|REFERENCES|CHECK|GENERATED|COLLATE)\b",
    re.IGNORECASE,
)
DOMAIN_CLAUSE_RE = re.compile(r"\b(CONSTRAINT|NOT\s+NULL|NULL|CHECK|DEFAULT|COLLATE)\b", re.IGNORECASE)
ROUTINE_OPTION_RE = re.compile(
    r"\b(RETURNS\s+NULL\s+ON\s+NULL\s+INPUT|CALLED\s+ON\s+NULL\s+INPUT|RETURNS|LANGUAGE|"
    r"IMMUTABLE|STABLE|VOLATILE|(?:EXTERNAL\s+)?SECURITY\s+DEFINER|(?:EXTERNAL\s+)?SECURITY\s+INVOKER|"
    r"STRICT|NOT\s+LEAKPROOF|LEAKPROOF|PARALLEL|COST|ROWS|SET|WINDOW)\b",
    re.IGNORECASE,
)
POLICY_CLAUSE_RE = re.compile(r"\b(AS|FOR|TO|USING|WITH\s+CHECK)\b", re.IGNORECASE)

# "SET NULL", "SET DEFAULT", "BY DEFAULT", "DEFAULT NULL" не начинают новое предложение
_SKIP_AFTER = {
    "NULL": ("SET", "DEFAULT"),
    "DEFAULT": ("SET", "BY"),
}

_REF_ACTION = r"(NO\s+ACTION|RESTRICT|CASCADE|SET\s+NULL|SET\s+DEFAULT)"


def _collapse(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


class SQLParser:
    """
    Разбор DDL-операторов в Catalog.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.config.setdefault("target_schema", DEFAULT_SCHEMA)
        self.config.setdefault("strict", False)

        self.target_schema: str = self.config["target_schema"]
        self.normalizer = SQLNormalizer()
        self.skipped: List[str] = []

        self._handlers: Dict[str, Callable[[str, Catalog], None]] = {
            "CREATE_TYPE": self._parse_create_type,
            "CREATE_DOMAIN": self._parse_create_domain,
            "CREATE_SEQUENCE": self._parse_sequence,
            "ALTER_SEQUENCE": self._parse_sequence,
            "CREATE_TABLE": self._parse_create_table,
            "ALTER_TABLE": self._parse_alter_table,
            "CREATE_INDEX": self._parse_create_index,
            "CREATE_POLICY": self._parse_create_policy,
            "COMMENT": self._parse_comment,
            "CREATE_FUNCTION": self._parse_routine,
            "CREATE_PROCEDURE": self._parse_routine,
            "CREATE_VIEW": self._parse_create_view,
            "CREATE_MATERIALIZED_VIEW": self._parse_create_materialized_view,
            "CREATE_TRIGGER": self._parse_create_trigger,
        }

    # ==========================================================
    # PUBLIC API
    # ==========================================================

    def parse(self, sql_text: str, catalog: Optional[Catalog] = None) -> Catalog:
        """Разбирает весь текст (после разворачивания \\i) в каталог."""
        catalog = catalog or Catalog(self.target_schema)
        self.skipped = []

        statements = self.normalizer.split_statements(sql_text)
        logger.debug("Операторов к разбору: %d", len(statements))

        for stmt in statements:
            self.parse_statement(stmt, catalog)

        # внешние ключи могут ссылаться вперёд, поэтому проверка после всего текста
        self._check_foreign_keys(catalog)
        return catalog

    def parse_statement(self, stmt: str, catalog: Catalog) -> None:
        kind = self.normalizer.get_statement_type(stmt)

        if kind == "IGNORED":
            logger.debug("Оператор не влияет на структуру, пропущен: %s", _collapse(stmt)[:80])
            return

        handler = self._handlers.get(kind)
        if handler is None:
            self._unsupported(_collapse(stmt)[:60], stmt)
            return

        try:
            handler(stmt, catalog)
        except ValueError as e:
            # дубликаты из Catalog.add
            raise ParsingError(str(e), sql_fragment=stmt) from e

    # ==========================================================
    # ВСПОМОГАТЕЛЬНОЕ
    # ==========================================================

    def _unsupported(self, feature: str, stmt: str) -> None:
        if self.config.get("strict"):
            raise UnsupportedFeatureError(feature, sql_fragment=stmt)
        logger.warning("Неподдерживаемая конструкция пропущена: %s", feature)
        self.skipped.append(feature)

    def _check_foreign_keys(self, catalog: Catalog) -> None:
        for table in catalog.tables.values():
            for fk in table.constraints:
                if fk.constraint_type != ConstraintType.FOREIGN_KEY:
                    continue
                ref_schema = fk.ref_schema or table.schema
                if catalog.get_table(ref_schema, fk.ref_table) is not None:
                    continue

                message = (
                    f"Внешний ключ {table.name}.{fk.name or '-'} ссылается "
                    f"на неизвестную таблицу {ref_schema}.{fk.ref_table}"
                )
                if self.config.get("strict"):
                    raise ParsingError(message, sql_fragment=f"REFERENCES {ref_schema}.{fk.ref_table}")
                logger.warning(message)
                self.skipped.append(message)

    def _name(self, qname: str) -> Tuple[str, str]:
        return resolve_name(qname, self.target_schema)

    def _match(self, pattern: str, stmt: str, what: str) -> re.Match:
        m = re.match(pattern, stmt, _FLAGS)
        if not m:
            raise ParsingError(f"Не удалось разобрать {what}", sql_fragment=stmt)
        return m

    def _add(self, catalog: Catalog, obj: DatabaseObject, *, if_not_exists: bool = False, replace: bool = False) -> None:
        key = catalog.key_of(obj)
        container = catalog._container(obj)
        if key in container and if_not_exists:
            logger.debug("%s %s уже существует (IF NOT EXISTS)", obj.type.value, key)
            return

        obj.position = catalog.next_position()
        if replace:
            catalog.replace(obj)
        else:
            catalog.add(obj)

    def _require_table(self, catalog: Catalog, qname: str, stmt: str) -> Table:
        schema, name = self._name(qname)
        table = catalog.get_table(schema, name)
        if table is None:
            raise ParsingError(f"Таблица {schema}.{name} не определена", sql_fragment=stmt)
        return table

    @staticmethod
    def _paren_list(text: str) -> Tuple[List[str], str]:
        """'(a, b) rest' -> (['a', 'b'], 'rest')"""
        s = text.lstrip()
        if not s.startswith("("):
            raise ParsingError("Ожидался список в скобках", sql_fragment=text)
        close = find_matching_paren(s, 0)
        return split_top_level(s[1:close]), s[close + 1:].strip()

    @staticmethod
    def _deferral(text: str) -> Tuple[bool, bool]:
        deferrable = bool(re.search(r"(?<!NOT )\bDEFERRABLE\b", _collapse(text), re.IGNORECASE))
        initially_deferred = bool(re.search(r"\bINITIALLY\s+DEFERRED\b", text, re.IGNORECASE))
        return deferrable or initially_deferred, initially_deferred

    # ==========================================================
    # ТИПЫ И ДОМЕНЫ
    # ==========================================================

    def _parse_create_type(self, stmt: str, catalog: Catalog) -> None:
        m = re.match(rf"^CREATE\s+TYPE\s+({QNAME})\s+AS\s+(ENUM\s*)?\(", stmt, _FLAGS)
        if not m:
            self._unsupported("CREATE TYPE (только ENUM и составные типы)", stmt)
            return

        schema, name = self._name(m.group(1))
        items, rest = self._paren_list(stmt[m.end() - 1:])
        if rest:
            raise ParsingError("Лишний текст после определения типа", sql_fragment=stmt)

        if m.group(2):
            obj = TypeDef(name=name, schema=schema, kind=TypeKind.ENUM, values=[unquote_literal(v) for v in items])
        else:
            fields = []
            for item in items:
                fm = self._match(rf"^({IDENT})\s+(.+?)(?:\s+COLLATE\s+({QNAME}))?$", item, "поле составного типа")
                fields.append(CompositeField(
                    name=normalize_identifier(fm.group(1)),
                    data_type=_collapse(fm.group(2)),
                    collation=fm.group(3),
                ))
            obj = TypeDef(name=name, schema=schema, kind=TypeKind.COMPOSITE, fields=fields)

        self._add(catalog, obj)

    def _parse_create_domain(self, stmt: str, catalog: Catalog) -> None:
        m = self._match(rf"^CREATE\s+DOMAIN\s+({QNAME})\s+(?:AS\s+)?(.*)$", stmt, "CREATE DOMAIN")
        schema, name = self._name(m.group(1))

        head, clauses = split_clauses(m.group(2), DOMAIN_CLAUSE_RE, skip_after=_SKIP_AFTER)
        domain = Domain(name=name, schema=schema, base_type=_collapse(head))

        pending_name: Optional[str] = None
        for keyword, body in clauses:
            if keyword == "CONSTRAINT":
                pending_name = normalize_identifier(body.split()[0]) if body else None
                continue
            if keyword == "CHECK":
                expr = body[:find_matching_paren(body, 0) + 1] if body.startswith("(") else body
                domain.constraints.append(DomainConstraint(name=pending_name, check_clause=strip_outer_parens(expr)))
            elif keyword == "NOT NULL":
                domain.not_null = True
            elif keyword == "NULL":
                domain.not_null = False
            elif keyword == "DEFAULT":
                domain.default = body
            elif keyword == "COLLATE":
                domain.collation = body
            pending_name = None

        self._add(catalog, domain)

    # ==========================================================
    # ПОСЛЕДОВАТЕЛЬНОСТИ
    # ==========================================================

    def _parse_sequence(self, stmt: str, catalog: Catalog) -> None:
        m = self._match(
            rf"^(CREATE|ALTER)\s+(?:(?:TEMP|TEMPORARY|UNLOGGED)\s+)?SEQUENCE\s+"
            rf"(IF\s+(?:NOT\s+)?EXISTS\s+)?({QNAME})(.*)$",
            stmt,
            "SEQUENCE",
        )
        schema, name = self._name(m.group(3))
        options = m.group(4)

        if m.group(1).upper() == "CREATE":
            seq = Sequence(name=name, schema=schema)
            self._apply_sequence_options(seq, options, stmt)
            self._add(catalog, seq, if_not_exists=bool(m.group(2)))
            return

        seq = catalog.get_sequence(schema, name)
        if seq is None:
            if m.group(2):
                logger.debug("ALTER SEQUENCE IF EXISTS: %s.%s не определена", schema, name)
                return
            raise ParsingError(f"Последовательность {schema}.{name} не определена", sql_fragment=stmt)
        if re.match(r"^\s*(RENAME|SET\s+SCHEMA)\b", options, re.IGNORECASE):
            self._unsupported("ALTER SEQUENCE RENAME/SET SCHEMA", stmt)
            return
        self._apply_sequence_options(seq, options, stmt)

    def _apply_sequence_options(self, seq: Sequence, options: str, stmt: str) -> None:
        def number(pattern: str) -> Optional[int]:
            found = re.search(pattern, options, re.IGNORECASE)
            return int(found.group(1)) if found else None

        found = re.search(r"\bAS\s+([A-Za-z_][A-Za-z0-9_]*)", options, re.IGNORECASE)
        if found:
            seq.data_type = found.group(1)

        value = number(r"\bINCREMENT\s+(?:BY\s+)?([+-]?\d+)")
        if value is not None:
            seq.increment = value

        if re.search(r"\bNO\s+MINVALUE\b", options, re.IGNORECASE):
            seq.min_value = None
        else:
            value = number(r"(?<!NO )\bMINVALUE\s+([+-]?\d+)")
            if value is not None:
                seq.min_value = value

        if re.search(r"\bNO\s+MAXVALUE\b", options, re.IGNORECASE):
            seq.max_value = None
        else:
            value = number(r"\bMAXVALUE\s+([+-]?\d+)")
            if value is not None:
                seq.max_value = value

        value = number(r"\bSTART\s+(?:WITH\s+)?([+-]?\d+)")
        if value is not None:
            seq.start = value

        value = number(r"\bCACHE\s+(\d+)")
        if value is not None:
            seq.cache = value

        if re.search(r"\bNO\s+CYCLE\b", options, re.IGNORECASE):
            seq.cycle = False
        elif re.search(r"\bCYCLE\b", options, re.IGNORECASE):
            seq.cycle = True

        owned = re.search(rf"\bOWNED\s+BY\s+(NONE\b|{QNAME}(?:\s*\.\s*{IDENT})?)", options, re.IGNORECASE)
        if owned:
            target = owned.group(1)
            if target.upper() == "NONE":
                seq.owned_by_table = seq.owned_by_column = None
            else:
                parts = [normalize_identifier(p) for p in split_name_parts(target)]
                if len(parts) < 2:
                    raise ParsingError("OWNED BY требует table.column", sql_fragment=stmt)
                seq.owned_by_column = parts[-1]
                seq.owned_by_table = parts[-2]

    # ==========================================================
    # ТАБЛИЦЫ
    # ==========================================================

    def _parse_create_table(self, stmt: str, catalog: Catalog) -> None:
        m = re.match(
            rf"^CREATE\s+(?:(UNLOGGED|TEMP|TEMPORARY)\s+)?TABLE\s+(IF\s+NOT\s+EXISTS\s+)?({QNAME})\s*\(",
            stmt,
            _FLAGS,
        )
        if not m:
            self._unsupported("CREATE TABLE (PARTITION OF / AS / OF type)", stmt)
            return
        if m.group(1) and m.group(1).upper().startswith("TEMP"):
            self._unsupported("CREATE TEMPORARY TABLE", stmt)
            return

        schema, name = self._name(m.group(3))
        if m.group(2) and catalog.get_table(schema, name):
            logger.debug("Таблица %s.%s уже существует (IF NOT EXISTS)", schema, name)
            return

        table = Table(
            name=name,
            schema=schema,
            unlogged=bool(m.group(1) and m.group(1).upper() == "UNLOGGED"),
            position=catalog.next_position(),
        )

        elements, tail = self._paren_list(stmt[m.end() - 1:])
        for element in elements:
            if re.match(r"^(CONSTRAINT|PRIMARY\s+KEY|UNIQUE|FOREIGN\s+KEY|CHECK|EXCLUDE)\b", element, re.IGNORECASE):
                table.constraints.append(self._parse_table_constraint(element, table, stmt))
            elif re.match(r"^LIKE\b", element, re.IGNORECASE):
                self._unsupported("CREATE TABLE (LIKE ...)", stmt)
            else:
                self._add_column(table, element, stmt)

        if tail:
            pm = re.match(r"^PARTITION\s+BY\s+(.*)$", tail, _FLAGS)
            if pm:
                table.partition_by = _collapse(pm.group(1))
            else:
                self._unsupported(f"параметры таблицы: {_collapse(tail)[:40]}", stmt)

        catalog.add(table)

    def _add_column(self, table: Table, element: str, stmt: str) -> None:
        m = self._match(rf"^({IDENT})\s+(.*)$", element, "определение колонки")
        name = normalize_identifier(m.group(1))

        head, clauses = split_clauses(m.group(2), COLUMN_CLAUSE_RE, skip_after=_SKIP_AFTER)
        if not head:
            raise ParsingError(f"Не указан тип колонки {name}", sql_fragment=stmt)

        column = Column(name=name, table=table.name, schema=table.schema, data_type=_collapse(head))
        column.position = len(table.columns) + 1

        pending_name: Optional[str] = None
        for keyword, body in clauses:
            if keyword == "CONSTRAINT":
                pending_name = normalize_identifier(body.split()[0]) if body else None
                continue

            if keyword == "NOT NULL":
                column.not_null = True
            elif keyword == "NULL":
                column.not_null = False
            elif keyword == "DEFAULT":
                column.default = body
            elif keyword == "COLLATE":
                column.collation = body
            elif keyword == "GENERATED":
                self._apply_generated(column, body, stmt)
            elif keyword == "PRIMARY KEY":
                deferrable, deferred = self._deferral(body)
                table.constraints.append(Constraint(
                    name=pending_name, table=table.name, schema=table.schema,
                    constraint_type=ConstraintType.PRIMARY_KEY, columns=[name],
                    deferrable=deferrable, initially_deferred=deferred,
                ))
            elif keyword == "UNIQUE":
                deferrable, deferred = self._deferral(body)
                table.constraints.append(Constraint(
                    name=pending_name, table=table.name, schema=table.schema,
                    constraint_type=ConstraintType.UNIQUE, columns=[name],
                    nulls_not_distinct=bool(re.search(r"NULLS\s+NOT\s+DISTINCT", body, re.IGNORECASE)),
                    deferrable=deferrable, initially_deferred=deferred,
                ))
            elif keyword == "REFERENCES":
                fk = Constraint(
                    name=pending_name, table=table.name, schema=table.schema,
                    constraint_type=ConstraintType.FOREIGN_KEY, columns=[name],
                )
                self._apply_references(fk, body, stmt)
                table.constraints.append(fk)
            elif keyword == "CHECK":
                table.constraints.append(self._check_constraint(pending_name, table, body, stmt))
            pending_name = None

        table.add_column(column)

    def _apply_generated(self, column: Column, body: str, stmt: str) -> None:
        if re.match(r"^ALWAYS\s+AS\s+IDENTITY\b", body, re.IGNORECASE):
            column.identity_kind = "ALWAYS"
            column.not_null = True
        elif re.match(r"^BY\s+DEFAULT\s+AS\s+IDENTITY\b", body, re.IGNORECASE):
            column.identity_kind = "BY DEFAULT"
            column.not_null = True
        else:
            gm = re.match(r"^ALWAYS\s+AS\s*(\(.*\))\s*STORED$", body, _FLAGS)
            if not gm:
                raise ParsingError("Не удалось разобрать GENERATED", sql_fragment=stmt)
            column.generated = strip_outer_parens(gm.group(1))

    def _check_constraint(self, name: Optional[str], table: Table, body: str, stmt: str) -> Constraint:
        body = body.strip()
        if not body.startswith("("):
            raise ParsingError("CHECK без выражения в скобках", sql_fragment=stmt)
        close = find_matching_paren(body, 0)
        rest = body[close + 1:]
        return Constraint(
            name=name, table=table.name, schema=table.schema,
            constraint_type=ConstraintType.CHECK,
            check_clause=strip_outer_parens(body[:close + 1]),
            no_inherit=bool(re.search(r"\bNO\s+INHERIT\b", rest, re.IGNORECASE)),
            not_valid=bool(re.search(r"\bNOT\s+VALID\b", rest, re.IGNORECASE)),
        )

    def _apply_references(self, fk: Constraint, text: str, stmt: str) -> None:
        m = self._match(rf"^\s*({QNAME})\s*", text, "REFERENCES")
        fk.ref_schema, fk.ref_table = self._name(m.group(1))
        rest = text[m.end():]

        if rest.startswith("("):
            cols, rest = self._paren_list(rest)
            fk.ref_columns = [normalize_identifier(c) for c in cols]

        match_type = re.search(r"\bMATCH\s+(FULL|PARTIAL|SIMPLE)\b", rest, re.IGNORECASE)
        if match_type:
            fk.match_type = match_type.group(1).upper()

        on_delete = re.search(rf"\bON\s+DELETE\s+{_REF_ACTION}", rest, re.IGNORECASE)
        if on_delete:
            fk.on_delete = _collapse(on_delete.group(1)).upper()
        on_update = re.search(rf"\bON\s+UPDATE\s+{_REF_ACTION}", rest, re.IGNORECASE)
        if on_update:
            fk.on_update = _collapse(on_update.group(1)).upper()

        fk.deferrable, fk.initially_deferred = self._deferral(rest)
        fk.not_valid = bool(re.search(r"\bNOT\s+VALID\b", rest, re.IGNORECASE))

    def _parse_table_constraint(self, element: str, table: Table, stmt: str) -> Constraint:
        name: Optional[str] = None
        m = re.match(rf"^CONSTRAINT\s+({IDENT})\s+(.*)$", element, _FLAGS)
        if m:
            name = normalize_identifier(m.group(1))
            element = m.group(2)

        pk = re.match(r"^PRIMARY\s+KEY\s*", element, re.IGNORECASE)
        if pk:
            cols, rest = self._paren_list(element[pk.end():])
            deferrable, deferred = self._deferral(rest)
            return Constraint(
                name=name, table=table.name, schema=table.schema,
                constraint_type=ConstraintType.PRIMARY_KEY,
                columns=[normalize_identifier(c) for c in cols],
                include_columns=self._include_list(rest),
                deferrable=deferrable, initially_deferred=deferred,
            )

        uq = re.match(r"^UNIQUE\s*(NULLS\s+(NOT\s+)?DISTINCT\s*)?", element, re.IGNORECASE)
        if uq:
            cols, rest = self._paren_list(element[uq.end():])
            deferrable, deferred = self._deferral(rest)
            return Constraint(
                name=name, table=table.name, schema=table.schema,
                constraint_type=ConstraintType.UNIQUE,
                columns=[normalize_identifier(c) for c in cols],
                include_columns=self._include_list(rest),
                nulls_not_distinct=bool(uq.group(2)),
                deferrable=deferrable, initially_deferred=deferred,
            )

        fk_m = re.match(r"^FOREIGN\s+KEY\s*", element, re.IGNORECASE)
        if fk_m:
            cols, rest = self._paren_list(element[fk_m.end():])
            ref = re.match(r"^REFERENCES\b", rest, re.IGNORECASE)
            if not ref:
                raise ParsingError("FOREIGN KEY без REFERENCES", sql_fragment=stmt)
            fk = Constraint(
                name=name, table=table.name, schema=table.schema,
                constraint_type=ConstraintType.FOREIGN_KEY,
                columns=[normalize_identifier(c) for c in cols],
            )
            self._apply_references(fk, rest[ref.end():], stmt)
            return fk

        ck = re.match(r"^CHECK\s*", element, re.IGNORECASE)
        if ck:
            return self._check_constraint(name, table, element[ck.end():], stmt)

        raise UnsupportedFeatureError(f"ограничение таблицы: {_collapse(element)[:40]}", sql_fragment=stmt)

    def _include_list(self, rest: str) -> List[str]:
        m = re.search(r"\bINCLUDE\s*\(", rest, re.IGNORECASE)
        if not m:
            return []
        cols, _ = self._paren_list(rest[m.end() - 1:])
        return [normalize_identifier(c) for c in cols]

    def _parse_alter_table(self, stmt: str, catalog: Catalog) -> None:
        m = self._match(
            rf"^ALTER\s+TABLE\s+(IF\s+EXISTS\s+)?(?:ONLY\s+)?({QNAME})\s+(.*)$",
            stmt,
            "ALTER TABLE",
        )
        schema, name = self._name(m.group(2))
        table = catalog.get_table(schema, name)
        if table is None:
            if m.group(1):
                logger.debug("ALTER TABLE IF EXISTS: %s.%s не определена", schema, name)
                return
            raise ParsingError(f"Таблица {schema}.{name} не определена", sql_fragment=stmt)

        for action in split_top_level(m.group(3)):
            self._apply_alter_action(table, action, stmt, catalog)

    def _apply_alter_action(self, table: Table, action: str, stmt: str, catalog: Catalog) -> None:
        if re.match(r"^ADD\s+(CONSTRAINT|PRIMARY\s+KEY|UNIQUE|FOREIGN\s+KEY|CHECK|EXCLUDE)\b", action, re.IGNORECASE):
            constraint = self._parse_table_constraint(action[3:].strip(), table, stmt)
            constraint.position = catalog.next_position()
            if constraint.name and table.get_constraint(constraint.name):
                raise ParsingError(f"Ограничение {constraint.name} уже существует", sql_fragment=stmt)
            table.constraints.append(constraint)
            return

        m = re.match(r"^ADD\s+(?:COLUMN\s+)?(IF\s+NOT\s+EXISTS\s+)?(.*)$", action, _FLAGS)
        if m:
            column_name = normalize_identifier(m.group(2).split()[0])
            if column_name in table.columns:
                if m.group(1):
                    return
                raise ParsingError(f"Колонка {column_name} уже существует", sql_fragment=stmt)
            self._add_column(table, m.group(2), stmt)
            return

        m = re.match(r"^(ENABLE|DISABLE)\s+ROW\s+LEVEL\s+SECURITY$", action, _FLAGS)
        if m:
            table.rls_enabled = m.group(1).upper() == "ENABLE"
            return

        m = re.match(r"^(NO\s+)?FORCE\s+ROW\s+LEVEL\s+SECURITY$", action, _FLAGS)
        if m:
            table.rls_forced = not m.group(1)
            return

        m = re.match(rf"^ALTER\s+(?:COLUMN\s+)?({IDENT})\s+(.*)$", action, _FLAGS)
        if m:
            column = table.columns.get(normalize_identifier(m.group(1)))
            if column is None:
                raise ParsingError(f"Колонка {m.group(1)} не определена", sql_fragment=stmt)
            self._apply_alter_column(column, m.group(2).strip(), stmt)
            return

        m = re.match(rf"^DROP\s+CONSTRAINT\s+(IF\s+EXISTS\s+)?({IDENT})", action, _FLAGS)
        if m:
            constraint = table.get_constraint(normalize_identifier(m.group(2)))
            if constraint is None and not m.group(1):
                raise ParsingError(f"Ограничение {m.group(2)} не определено", sql_fragment=stmt)
            if constraint is not None:
                table.constraints.remove(constraint)
            return

        m = re.match(rf"^DROP\s+(?:COLUMN\s+)?(IF\s+EXISTS\s+)?({IDENT})", action, _FLAGS)
        if m:
            column_name = normalize_identifier(m.group(2))
            if column_name not in table.columns:
                if m.group(1):
                    return
                raise ParsingError(f"Колонка {column_name} не определена", sql_fragment=stmt)
            del table.columns[column_name]
            table.constraints = [c for c in table.constraints if column_name not in c.columns]
            return

        if re.match(r"^(OWNER\s+TO|ENABLE\s+TRIGGER|DISABLE\s+TRIGGER|SET\s+\(|RESET\s+\()", action, re.IGNORECASE):
            logger.debug("ALTER TABLE %s: действие не влияет на структуру: %s", table.name, _collapse(action))
            return

        self._unsupported(f"ALTER TABLE {_collapse(action)[:40]}", stmt)

    def _apply_alter_column(self, column: Column, action: str, stmt: str) -> None:
        if re.match(r"^SET\s+NOT\s+NULL$", action, re.IGNORECASE):
            column.not_null = True
        elif re.match(r"^DROP\s+NOT\s+NULL$", action, re.IGNORECASE):
            column.not_null = False
        elif re.match(r"^DROP\s+DEFAULT$", action, re.IGNORECASE):
            column.default = None
        elif re.match(r"^SET\s+DEFAULT\s+", action, re.IGNORECASE):
            column.default = re.sub(r"^SET\s+DEFAULT\s+", "", action, flags=re.IGNORECASE).strip()
        elif re.match(r"^ADD\s+GENERATED\s+", action, re.IGNORECASE):
            self._apply_generated(column, re.sub(r"^ADD\s+GENERATED\s+", "", action, flags=re.IGNORECASE), stmt)
        else:
            tm = re.match(r"^(?:SET\s+DATA\s+)?TYPE\s+(.*?)(?:\s+USING\s+.*)?$", action, _FLAGS)
            if not tm:
                self._unsupported(f"ALTER COLUMN {_collapse(action)[:40]}", stmt)
                return
            column.data_type = _collapse(tm.group(1))

    # ==========================================================
    # ИНДЕКСЫ, ПОЛИТИКИ, КОММЕНТАРИИ
    # ==========================================================

    def _parse_create_index(self, stmt: str, catalog: Catalog) -> None:
        m = self._match(
            rf"^CREATE\s+(UNIQUE\s+)?INDEX\s+(?:CONCURRENTLY\s+)?(IF\s+NOT\s+EXISTS\s+)?"
            rf"(?:({IDENT})\s+)?ON\s+(?:ONLY\s+)?({QNAME})\s*(?:USING\s+({IDENT})\s*)?\(",
            stmt,
            "CREATE INDEX",
        )
        schema, relation = self._name(m.group(4))
        if catalog.get_relation(schema, relation) is None:
            raise ParsingError(f"Отношение {schema}.{relation} не определено", sql_fragment=stmt)

        elements, rest = self._paren_list(stmt[m.end() - 1:])

        where = None
        wm = search_top_level(rest, r"\bWHERE\b")
        if wm:
            where = rest[wm.end():].strip()
            rest = rest[:wm.start()]

        index = Index(
            name=normalize_identifier(m.group(3)) if m.group(3) else None,
            table=relation,
            schema=schema,
            elements=[_collapse(e) for e in elements],
            unique=bool(m.group(1)),
            method=(m.group(5) or "btree").lower(),
            where=where,
            include_columns=self._include_list(rest),
            nulls_not_distinct=bool(re.search(r"NULLS\s+NOT\s+DISTINCT", rest, re.IGNORECASE)),
        )
        if not index.name:
            # имя выдаст правило именования; ключ временный
            index.name = f"__unnamed_{catalog.next_position()}"
            index.attributes["unnamed"] = True
        self._add(catalog, index, if_not_exists=bool(m.group(2)))

    def _parse_create_policy(self, stmt: str, catalog: Catalog) -> None:
        m = self._match(rf"^CREATE\s+POLICY\s+({IDENT})\s+ON\s+({QNAME})(.*)$", stmt, "CREATE POLICY")
        table = self._require_table(catalog, m.group(2), stmt)
        policy = Policy(name=normalize_identifier(m.group(1)), table=table.name, schema=table.schema)

        _, clauses = split_clauses(m.group(3), POLICY_CLAUSE_RE)
        for keyword, body in clauses:
            if keyword == "AS":
                policy.permissive = body.upper() != "RESTRICTIVE"
            elif keyword == "FOR":
                policy.command = body.upper()
            elif keyword == "TO":
                policy.roles = [self._role(r) for r in split_top_level(body)]
            elif keyword == "USING":
                policy.using = strip_outer_parens(body)
            elif keyword == "WITH CHECK":
                policy.with_check = strip_outer_parens(body)

        self._add(catalog, policy)

    @staticmethod
    def _role(role: str) -> str:
        upper = role.strip().upper()
        if upper in ("PUBLIC", "CURRENT_USER", "SESSION_USER", "CURRENT_ROLE"):
            return upper
        return normalize_identifier(role)

    def _parse_comment(self, stmt: str, catalog: Catalog) -> None:
        m = self._match(
            r"^COMMENT\s+ON\s+(TABLE|COLUMN|MATERIALIZED\s+VIEW|VIEW|INDEX|TYPE|DOMAIN|SEQUENCE|"
            r"FUNCTION|PROCEDURE|TRIGGER|POLICY|CONSTRAINT|SCHEMA|EXTENSION)\s+(.*?)\s+IS\s+(NULL|[Ee]?'(?:[^']|'')*')\s*$",
            stmt,
            "COMMENT ON",
        )
        kind = _collapse(m.group(1)).upper()
        target_text = m.group(2).strip()
        text = None if m.group(3).upper() == "NULL" else unquote_literal(m.group(3))

        if kind in ("SCHEMA", "EXTENSION"):
            logger.debug("Комментарий к %s пропущен", kind)
            return

        if kind == "COLUMN":
            parts = [normalize_identifier(p) for p in split_name_parts(target_text)]
            if len(parts) < 2:
                raise ParsingError("COMMENT ON COLUMN требует table.column", sql_fragment=stmt)
            schema = parts[-3] if len(parts) > 2 else self.target_schema
            if catalog.get_table(schema, parts[-2]) is None and catalog.get_view(schema, parts[-2]):
                logger.debug("Комментарий к колонке представления пропущен: %s", target_text)
                return

        target = self._comment_target(kind, target_text, catalog, stmt)
        target.comment = text

    def _comment_target(self, kind: str, target_text: str, catalog: Catalog, stmt: str) -> DatabaseObject:
        target: Optional[DatabaseObject] = None

        if kind == "COLUMN":
            parts = [normalize_identifier(p) for p in split_name_parts(target_text)]
            schema = parts[-3] if len(parts) > 2 else self.target_schema
            table = catalog.get_table(schema, parts[-2])
            if table is not None:
                target = table.columns.get(parts[-1])

        elif kind in ("TRIGGER", "POLICY", "CONSTRAINT"):
            om = self._match(rf"^({IDENT})\s+ON\s+(?:DOMAIN\s+)?({QNAME})$", target_text, f"COMMENT ON {kind}")
            name = normalize_identifier(om.group(1))
            schema, rel = self._name(om.group(2))
            if kind == "TRIGGER":
                target = catalog.triggers.get(catalog.make_key(schema, name, rel))
            elif kind == "POLICY":
                target = catalog.policies.get(catalog.make_key(schema, name, rel))
            else:
                table = catalog.get_table(schema, rel)
                target = table.get_constraint(name) if table else None

        elif kind in ("FUNCTION", "PROCEDURE"):
            target = self._find_routine(kind, target_text, catalog, stmt)

        else:
            schema, name = self._name(target_text)
            lookup = {
                "TABLE": lambda: catalog.get_table(schema, name),
                "VIEW": lambda: catalog.get_view(schema, name),
                "MATERIALIZED VIEW": lambda: catalog.get_view(schema, name),
                "INDEX": lambda: catalog.indexes.get(catalog.make_key(schema, name)),
                "TYPE": lambda: catalog.get_type(schema, name),
                "DOMAIN": lambda: catalog.domains.get(catalog.make_key(schema, name)),
                "SEQUENCE": lambda: catalog.get_sequence(schema, name),
            }
            target = lookup[kind]()

        if target is None:
            raise ParsingError(f"COMMENT ON {kind}: объект {target_text} не определён", sql_fragment=stmt)
        return target

    def _find_routine(self, kind: str, target_text: str, catalog: Catalog, stmt: str) -> Optional[Routine]:
        fm = self._match(rf"^({QNAME})\s*(\(.*\))?$", target_text, f"COMMENT ON {kind}")
        schema, name = self._name(fm.group(1))
        candidates = [r for r in catalog.find_routines(schema, name) if r.type.value == kind.lower()]
        if fm.group(2) is not None:
            arguments = self._parse_arguments(fm.group(2)[1:-1])
            wanted = [normalize_type(a.data_type, self.target_schema) for a in arguments if a.mode != "OUT"]
            for routine in candidates:
                have = [normalize_type(a.data_type, self.target_schema) for a in routine.arguments if a.mode != "OUT"]
                if have == wanted:
                    return routine
            return None
        if len(candidates) > 1:
            raise ParsingError(f"Неоднозначное имя {name}: укажите аргументы", sql_fragment=stmt)
        return candidates[0] if candidates else None

    # ==========================================================
    # ФУНКЦИИ И ПРОЦЕДУРЫ
    # ==========================================================

    def _parse_routine(self, stmt: str, catalog: Catalog) -> None:
        m = self._match(
            rf"^CREATE\s+(OR\s+REPLACE\s+)?(FUNCTION|PROCEDURE)\s+({QNAME})\s*\(",
            stmt,
            "CREATE FUNCTION/PROCEDURE",
        )
        is_function = m.group(2).upper() == "FUNCTION"
        schema, name = self._name(m.group(3))

        open_index = m.end() - 1
        close = find_matching_paren(stmt, open_index)
        arguments = self._parse_arguments(stmt[open_index + 1:close])
        rest = stmt[close + 1:]

        body, options_text = self._extract_body(rest, stmt)

        routine: Routine
        if is_function:
            routine = Function(name=name, schema=schema, arguments=arguments, body=body)
        else:
            routine = Procedure(name=name, schema=schema, arguments=arguments, body=body)

        _, options = split_clauses(options_text, ROUTINE_OPTION_RE)
        for keyword, value in options:
            self._apply_routine_option(routine, keyword, value, stmt)

        if is_function and not getattr(routine, "returns", None):
            raise ParsingError(f"У функции {name} не указан RETURNS", sql_fragment=stmt)

        self._add(catalog, routine, replace=bool(m.group(1)))

    def _extract_body(self, rest: str, stmt: str) -> Tuple[str, str]:
        am = search_top_level(rest, r"\bAS\s+(\$[A-Za-z0-9_]*\$|[Ee]?')")
        if not am:
            if search_top_level(rest, r"\b(BEGIN\s+ATOMIC|RETURN)\b"):
                raise UnsupportedFeatureError("тело функции в стиле SQL-стандарта", sql_fragment=stmt)
            raise ParsingError("Не найдено тело функции (AS ...)", sql_fragment=stmt)

        start = am.start(1)
        if rest[start] == "$":
            tag = am.group(1)
            body_start = start + len(tag)
            end = rest.find(tag, body_start)
            if end == -1:
                raise ParsingError("Незакрытое $-тело функции", sql_fragment=stmt)
            body = rest[body_start:end]
            body_end = end + len(tag)
        else:
            lm = re.compile(r"[Ee]?'((?:[^']|'')*)'").match(rest, start)
            if not lm:
                raise ParsingError("Незакрытое строковое тело функции", sql_fragment=stmt)
            body = lm.group(1).replace("''", "'")
            body_end = lm.end()

        options_text = rest[:am.start()] + " " + rest[body_end:]
        return body, options_text

    def _apply_routine_option(self, routine: Routine, keyword: str, value: str, stmt: str) -> None:
        is_function = isinstance(routine, Function)

        if keyword == "RETURNS" and is_function:
            routine.returns = self._parse_returns(value)
        elif keyword == "LANGUAGE":
            routine.language = value.strip().strip("'\"")
        elif keyword in ("IMMUTABLE", "STABLE", "VOLATILE") and is_function:
            routine.volatility = keyword
        elif keyword.endswith("SECURITY DEFINER"):
            routine.security_definer = True
        elif keyword.endswith("SECURITY INVOKER"):
            routine.security_definer = False
        elif keyword in ("STRICT", "RETURNS NULL ON NULL INPUT") and is_function:
            routine.strict = True
        elif keyword == "CALLED ON NULL INPUT" and is_function:
            routine.strict = False
        elif keyword == "PARALLEL" and is_function:
            routine.parallel = value.upper()
        elif keyword == "LEAKPROOF" and is_function:
            routine.leakproof = True
        elif keyword == "NOT LEAKPROOF" and is_function:
            routine.leakproof = False
        elif keyword == "COST" and is_function:
            routine.cost = value
        elif keyword == "ROWS" and is_function:
            routine.rows = value
        elif keyword == "SET":
            routine.set_options.append(_collapse(value))
        else:
            self._unsupported(f"параметр {keyword} у {routine.name}", stmt)

    def _parse_returns(self, value: str) -> str:
        value = value.strip()
        tm = re.match(r"^TABLE\s*\(", value, re.IGNORECASE)
        if tm:
            columns, _ = self._paren_list(value[tm.end() - 1:])
            return "TABLE(" + ", ".join(_collapse(c) for c in columns) + ")"
        sm = re.match(r"^SETOF\s+(.*)$", value, _FLAGS)
        if sm:
            return "SETOF " + _collapse(sm.group(1))
        return _collapse(value)

    def _parse_arguments(self, text: str) -> List[Argument]:
        arguments: List[Argument] = []
        for raw in split_top_level(text):
            arg = raw.strip()
            default = None

            dm = search_top_level(arg, r"\s+DEFAULT\s+|\s*=\s*")
            if dm:
                default = arg[dm.end():].strip()
                arg = arg[:dm.start()].strip()

            mode = "IN"
            mm = re.match(r"^(IN|OUT|INOUT|VARIADIC)\s+(.*)$", arg, _FLAGS)
            if mm:
                mode = mm.group(1).upper()
                arg = mm.group(2).strip()

            name = None
            if not is_builtin_type(arg):
                nm = re.match(rf"^({IDENT})\s+(.+)$", arg, _FLAGS)
                if nm:
                    name = normalize_identifier(nm.group(1))
                    arg = nm.group(2)

            arguments.append(Argument(data_type=_collapse(arg), name=name, mode=mode, default=default))
        return arguments

    # ==========================================================
    # ПРЕДСТАВЛЕНИЯ
    # ==========================================================

    def _parse_create_view(self, stmt: str, catalog: Catalog) -> None:
        m = self._match(
            rf"^CREATE\s+(OR\s+REPLACE\s+)?(?:(?:TEMP|TEMPORARY)\s+)?(RECURSIVE\s+)?VIEW\s+({QNAME})\s*",
            stmt,
            "CREATE VIEW",
        )
        if m.group(2):
            self._unsupported("CREATE RECURSIVE VIEW", stmt)
            return

        schema, name = self._name(m.group(3))
        rest = stmt[m.end():]

        column_names: List[str] = []
        if rest.startswith("("):
            cols, rest = self._paren_list(rest)
            column_names = [normalize_identifier(c) for c in cols]

        options: List[str] = []
        wm = re.match(r"^WITH\s*\(", rest, re.IGNORECASE)
        if wm:
            opts, rest = self._paren_list(rest[wm.end() - 1:])
            options = [_collapse(o).lower() for o in opts]

        am = self._match(r"^AS\s+(.*)$", rest, "CREATE VIEW ... AS")
        query = am.group(1).strip()

        check_option = None
        cm = search_top_level(query, r"\s+WITH\s+(CASCADED\s+|LOCAL\s+)?CHECK\s+OPTION\s*$")
        if cm:
            check_option = (cm.group(1) or "CASCADED").strip().upper()
            query = query[:cm.start()].rstrip()

        view = View(
            name=name,
            schema=schema,
            body=query,
            column_names=column_names,
            options=options,
            check_option=check_option,
        )
        self._add(catalog, view, replace=bool(m.group(1)))

    def _parse_create_materialized_view(self, stmt: str, catalog: Catalog) -> None:
        m = self._match(
            rf"^CREATE\s+MATERIALIZED\s+VIEW\s+(IF\s+NOT\s+EXISTS\s+)?({QNAME})\s*",
            stmt,
            "CREATE MATERIALIZED VIEW",
        )
        schema, name = self._name(m.group(2))
        rest = stmt[m.end():]

        column_names: List[str] = []
        if rest.startswith("("):
            cols, rest = self._paren_list(rest)
            column_names = [normalize_identifier(c) for c in cols]

        um = re.match(rf"^USING\s+{IDENT}\s*", rest, re.IGNORECASE)
        if um:
            rest = rest[um.end():]

        options: List[str] = []
        wm = re.match(r"^WITH\s*\(", rest, re.IGNORECASE)
        if wm:
            opts, rest = self._paren_list(rest[wm.end() - 1:])
            options = [_collapse(o).lower() for o in opts]

        tm = re.match(rf"^TABLESPACE\s+{IDENT}\s*", rest, re.IGNORECASE)
        if tm:
            rest = rest[tm.end():]

        am = self._match(r"^AS\s+(.*)$", rest, "CREATE MATERIALIZED VIEW ... AS")
        query = am.group(1).strip()

        with_data = True
        dm = search_top_level(query, r"\s+WITH\s+(NO\s+)?DATA\s*$")
        if dm:
            with_data = not dm.group(1)
            query = query[:dm.start()].rstrip()

        view = View(
            name=name,
            schema=schema,
            body=query,
            materialized=True,
            column_names=column_names,
            options=options,
            with_data=with_data,
        )
        self._add(catalog, view, if_not_exists=bool(m.group(1)))

    # ==========================================================
    # ТРИГГЕРЫ
    # ==========================================================

    def _parse_create_trigger(self, stmt: str, catalog: Catalog) -> None:
        m = self._match(
            rf"^CREATE\s+(OR\s+REPLACE\s+)?(CONSTRAINT\s+)?TRIGGER\s+({IDENT})\s+"
            rf"(BEFORE|AFTER|INSTEAD\s+OF)\s+(.+?)\s+ON\s+({QNAME})(.*)$",
            stmt,
            "CREATE TRIGGER",
        )
        if m.group(2):
            self._unsupported("CREATE CONSTRAINT TRIGGER", stmt)
            return

        schema, relation = self._name(m.group(6))
        if catalog.get_relation(schema, relation) is None:
            raise ParsingError(f"Отношение {schema}.{relation} не определено", sql_fragment=stmt)

        events: List[str] = []
        update_columns: List[str] = []
        for event in re.split(r"\s+OR\s+", m.group(5).strip(), flags=re.IGNORECASE):
            em = re.match(r"^(INSERT|UPDATE|DELETE|TRUNCATE)(?:\s+OF\s+(.*))?$", event.strip(), _FLAGS)
            if not em:
                raise ParsingError(f"Неизвестное событие триггера: {event}", sql_fragment=stmt)
            events.append(em.group(1).upper())
            if em.group(2):
                update_columns = [normalize_identifier(c) for c in split_top_level(em.group(2))]

        rest = m.group(7)

        referencing = [
            f"{rm.group(1).upper()} TABLE AS {normalize_identifier(rm.group(2))}"
            for rm in re.finditer(rf"\b(OLD|NEW)\s+TABLE\s+(?:AS\s+)?({IDENT})", rest, re.IGNORECASE)
        ]

        level = None
        lm = re.search(r"\bFOR\s+(?:EACH\s+)?(ROW|STATEMENT)\b", rest, re.IGNORECASE)
        if lm:
            level = lm.group(1).upper()

        condition = None
        wm = search_top_level(rest, r"\bWHEN\s*\(")
        if wm:
            open_index = wm.end() - 1
            close = find_matching_paren(rest, open_index)
            condition = strip_outer_parens(rest[open_index:close + 1])

        xm = re.search(rf"\bEXECUTE\s+(FUNCTION|PROCEDURE)\s+({QNAME})\s*\((.*)\)\s*$", rest, _FLAGS)
        if not xm:
            raise ParsingError("Не найден EXECUTE FUNCTION", sql_fragment=stmt)

        trigger = Trigger(
            name=normalize_identifier(m.group(3)),
            table=relation,
            schema=schema,
            timing=_collapse(m.group(4)).upper(),
            events=events,
            function=f"{_collapse(xm.group(2))}({xm.group(3).strip()})",
            update_columns=update_columns,
            level=level,
            condition=condition,
            referencing=referencing,
        )
        if xm.group(1).upper() == "PROCEDURE":
            trigger.attributes["execute_procedure"] = True
        self._add(catalog, trigger, replace=bool(m.group(1)))
