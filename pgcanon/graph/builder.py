# pgcanon/graph/builder.py

from __future__ import annotations

import logging
import re
from typing import List, Optional, Set, Tuple

from pgcanon.core.models import (
    Catalog,
    Constraint,
    ConstraintType,
    DatabaseObject,
    Function,
    RelationType,
    Routine,
    Table,
    TypeKind,
)
from pgcanon.graph.schema_graph import SchemaGraph
from pgcanon.parser.tokenizer import SQLTokenizer, TokenType
from pgcanon.utils.naming import normalize_identifier, resolve_name
from pgcanon.utils.types import base_type_name

logger = logging.getLogger(__name__)

_NEXTVAL_RE = re.compile(r"nextval\(\s*'([^']+)'", re.IGNORECASE)


class GraphBuilder:
    """
    Строит ориентированный граф схемы БД: G = (V, E).

    Вершины — все объекты каталога, включая колонки и ограничения;
    рёбра — связи вложенности и зависимости между ними.
    """

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.graph: Optional[SchemaGraph] = None
        self._tokenizer = SQLTokenizer(preserve_case=True)

    def build_from_catalog(self, catalog: Catalog, name: str = "") -> SchemaGraph:
        self.graph = SchemaGraph(name=name)
        self.catalog = catalog

        # ---------- VERTICES ----------
        for obj in catalog.all_objects():
            self.graph.add_vertex(obj)

        # ---------- TYPES / DOMAINS ----------
        for type_def in catalog.types.values():
            if type_def.kind == TypeKind.COMPOSITE:
                for field in type_def.fields:
                    self._link_type(type_def, field.data_type)
        for domain in catalog.domains.values():
            self._link_type(domain, domain.base_type)

        # ---------- SEQUENCES ----------
        for seq in catalog.sequences.values():
            if not seq.is_owned:
                continue
            table = catalog.get_table(seq.schema, seq.owned_by_table)
            column = table.columns.get(seq.owned_by_column) if table else None
            if column is not None:
                self.graph.add_edge(seq.id, column.id, RelationType.OWNED_BY)

        # ---------- TABLES ----------
        for table in catalog.tables.values():
            self._add_table(table)

        # ---------- INDEXES / POLICIES / TRIGGERS ----------
        for index in catalog.indexes.values():
            relation = catalog.get_relation(index.schema, index.table)
            if relation is not None:
                self.graph.add_edge(index.id, relation.id, RelationType.CONTAINS)
                self._link_text(index, " ".join(index.elements + [index.where or ""]), calls_only=True)

        for policy in catalog.policies.values():
            table = catalog.get_table(policy.schema, policy.table)
            if table is not None:
                self.graph.add_edge(policy.id, table.id, RelationType.CONTAINS)
            self._link_text(policy, f"{policy.using or ''} {policy.with_check or ''}")

        for trigger in catalog.triggers.values():
            relation = catalog.get_relation(trigger.schema, trigger.table)
            if relation is not None:
                self.graph.add_edge(trigger.id, relation.id, RelationType.TRIGGERS)
            schema, fname = resolve_name(trigger.function_name, catalog.target_schema)
            for routine in catalog.find_routines(schema, fname):
                self.graph.add_edge(trigger.id, routine.id, RelationType.USES)

        # ---------- ROUTINES ----------
        for routine in list(catalog.functions.values()) + list(catalog.procedures.values()):
            self._add_routine(routine)

        # ---------- VIEWS ----------
        for view in catalog.views.values():
            self._link_text(view, view.body)

        if self.verbose:
            logger.debug(
                "Граф %s: вершин %d, рёбер %d", name, len(self.graph.vertices), len(self.graph.edges)
            )
        return self.graph

    # ==========================================================
    # ВНУТРЕННИЕ МЕТОДЫ
    # ==========================================================

    def _add_table(self, table: Table) -> None:
        for column in table.columns.values():
            self.graph.add_edge(column.id, table.id, RelationType.CONTAINS)
            self._link_type(column, column.data_type)

            for expr in (column.default, column.generated):
                if not expr:
                    continue
                self._link_text(column, expr, calls_only=True)
                self._link_sequences(column, expr)

        for constraint in table.constraints:
            self.graph.add_edge(constraint.id, table.id, RelationType.CONTAINS)
            self._add_constraint(table, constraint)

    def _add_constraint(self, table: Table, constraint: Constraint) -> None:
        for col_name in constraint.columns:
            column = table.columns.get(col_name)
            if column is not None:
                self.graph.add_edge(constraint.id, column.id, RelationType.DEPENDS_ON)

        if constraint.constraint_type == ConstraintType.FOREIGN_KEY:
            ref = self.catalog.get_table(constraint.ref_schema, constraint.ref_table)
            if ref is None:
                logger.debug(
                    "Внешний ключ %s.%s ссылается на неизвестную таблицу %s.%s",
                    table.name, constraint.name, constraint.ref_schema, constraint.ref_table,
                )
                return
            self.graph.add_edge(constraint.id, ref.id, RelationType.REFERENCES)
            for col_name in constraint.ref_columns:
                ref_column = ref.columns.get(col_name)
                if ref_column is not None:
                    self.graph.add_edge(constraint.id, ref_column.id, RelationType.REFERENCES)

        elif constraint.constraint_type == ConstraintType.CHECK and constraint.check_clause:
            self._link_text(constraint, constraint.check_clause, calls_only=True)

    def _add_routine(self, routine: Routine) -> None:
        for arg in routine.arguments:
            self._link_type(routine, arg.data_type)
        if isinstance(routine, Function) and routine.returns:
            returns = routine.returns
            if returns.upper().startswith("TABLE("):
                for col in returns[6:-1].split(","):
                    parts = col.strip().split(None, 1)
                    if len(parts) == 2:
                        self._link_type(routine, parts[1])
            else:
                self._link_type(routine, re.sub(r"^SETOF\s+", "", returns, flags=re.IGNORECASE))
        self._link_text(routine, routine.body)

    def _link_type(self, obj: DatabaseObject, type_text: Optional[str]) -> None:
        if not type_text:
            return
        schema, name = resolve_name(base_type_name(type_text), self.catalog.target_schema)
        target = self.catalog.get_type(schema, name)
        if target is not None and target.id != obj.id:
            self.graph.add_edge(obj.id, target.id, RelationType.USES)

    def _link_sequences(self, obj: DatabaseObject, expr: str) -> None:
        for m in _NEXTVAL_RE.finditer(expr):
            schema, name = resolve_name(m.group(1), self.catalog.target_schema)
            seq = self.catalog.get_sequence(schema, name)
            if seq is not None:
                self.graph.add_edge(obj.id, seq.id, RelationType.USES)

    def _link_text(self, obj: DatabaseObject, text: Optional[str], calls_only: bool = False) -> None:
        """
        Связи по тексту выражения или тела: отношения (DEPENDS_ON)
        и вызываемые функции (USES).
        """
        if not text:
            return
        for (schema, name), is_call in self.referenced_names(text):
            if is_call:
                for routine in self.catalog.find_routines(schema, name):
                    if routine.id != obj.id:
                        self.graph.add_edge(obj.id, routine.id, RelationType.USES)
            elif not calls_only:
                relation = self.catalog.get_relation(schema, name)
                if relation is not None and relation.id != obj.id:
                    self.graph.add_edge(obj.id, relation.id, RelationType.DEPENDS_ON)

    def referenced_names(self, text: str) -> Set[Tuple[Tuple[str, str], bool]]:
        """
        Имена из текста: ((schema, name), is_call).
        Литералы и $-строки не просматриваются.
        """
        tokens = [t for t in self._tokenizer.tokenize(text) if t.type != TokenType.EOF]
        result: Set[Tuple[Tuple[str, str], bool]] = set()

        i = 0
        while i < len(tokens):
            tok = tokens[i]
            if tok.type not in (TokenType.IDENTIFIER, TokenType.QUOTED_IDENTIFIER, TokenType.KEYWORD):
                i += 1
                continue
            # часть составного имени уже учтена
            if i > 0 and tokens[i - 1].type == TokenType.DOT:
                i += 1
                continue

            parts: List[str] = [tok.value]
            j = i
            while (
                j + 2 < len(tokens)
                and tokens[j + 1].type == TokenType.DOT
                and tokens[j + 2].type in (TokenType.IDENTIFIER, TokenType.QUOTED_IDENTIFIER, TokenType.KEYWORD)
            ):
                parts.append(tokens[j + 2].value)
                j += 2

            is_call = j + 1 < len(tokens) and tokens[j + 1].type == TokenType.LPAREN
            if tok.type != TokenType.KEYWORD or len(parts) > 1:
                names = [normalize_identifier(p) for p in parts]
                if len(names) == 1:
                    result.add(((self.catalog.target_schema, names[0]), is_call))
                elif len(names) == 2:
                    result.add(((names[0], names[1]), is_call))
            i = j + 1

        return result


def build_graph(catalog: Catalog, name: str = "") -> SchemaGraph:
    return GraphBuilder().build_from_catalog(catalog, name)
