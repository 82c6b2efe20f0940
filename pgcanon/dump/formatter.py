"""
formatter.py

Сборка канонического дампа из каталога.

Порядок разделов:
    типы, домены, последовательности,
    таблицы без ссылок на функции (с комментариями, индексами, RLS, политиками),
    функции, процедуры,
    таблицы, ссылающиеся на функции,
    отложенные внешние ключи (циклы и ссылки вперёд),
    триггеры,
    представления и материализованные представления.

Внутри раздела порядок задаёт граф зависимостей (SchemaGraph.topological_order),
а среди независимых объектов — имя или позиция в исходном тексте (object_order).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple

from ..core.constants import DEFAULT_SCHEMA, OBJECT_DIRECTORIES, TOOL_NAME, VERSION
from ..core.models import (
    Catalog,
    Constraint,
    ConstraintType,
    DatabaseObject,
    ObjectType,
    Table,
)
from ..graph.builder import GraphBuilder
from ..graph.schema_graph import SchemaGraph
from .sql_generator import TYPE_LABELS, SQLGenerator

logger = logging.getLogger(__name__)

# каталог многофайлового дампа по типу объекта-владельца
OBJECT_DIRECTORY = {
    ObjectType.TYPE: "types",
    ObjectType.DOMAIN: "domains",
    ObjectType.SEQUENCE: "sequences",
    ObjectType.FUNCTION: "functions",
    ObjectType.PROCEDURE: "procedures",
    ObjectType.TABLE: "tables",
    ObjectType.VIEW: "views",
    ObjectType.MATERIALIZED_VIEW: "materialized_views",
}

_UNSAFE_FILE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


@dataclass
class DumpStep:
    """Один оператор дампа с заголовком и комментариями."""
    name: str
    type_label: str
    schema_label: str
    sql: str
    file: str


class DumpFormatter:
    """
    Форматирование каталога в канонический дамп (один файл или набор файлов).
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.config.setdefault("target_schema", DEFAULT_SCHEMA)
        self.config.setdefault("header", True)
        self.config.setdefault("object_comments", True)
        self.config.setdefault("object_order", "name")

        self.target_schema: str = self.config["target_schema"]
        self.generator = SQLGenerator(self.target_schema)

    # ==========================================================
    # PUBLIC API
    # ==========================================================

    def format_single_file(self, catalog: Catalog, graph: Optional[SchemaGraph] = None) -> str:
        steps = self.build_steps(catalog, graph)
        return self._render_file(steps, with_header=self.config["header"])

    def format_multi_file(
        self,
        catalog: Catalog,
        graph: Optional[SchemaGraph] = None,
        main_file: str = "main.sql",
    ) -> Dict[str, str]:
        """
        Файлы дампа: относительный путь -> содержимое.
        Главный файл подключает остальные директивами \\i.
        """
        steps = self.build_steps(catalog, graph)

        grouped: Dict[str, List[DumpStep]] = {}
        for step in steps:
            grouped.setdefault(step.file, []).append(step)

        appearance = {path: i for i, path in enumerate(grouped)}
        ordered_paths = sorted(grouped, key=lambda p: (self._directory_rank(p), appearance[p]))

        files: Dict[str, str] = {}
        includes = "\n".join(f"\\i {path}" for path in ordered_paths)
        header = self._file_header() + "\n\n" if self.config["header"] else ""
        files[main_file] = f"{header}{includes}\n" if includes else header

        for path in ordered_paths:
            files[path] = self._render_file(grouped[path], with_header=False)

        logger.debug("Многофайловый дамп: %d файлов", len(files))
        return files

    @staticmethod
    def write_files(files: Dict[str, str], out_dir) -> List[Path]:
        out = Path(out_dir)
        written: List[Path] = []
        for rel_path, content in files.items():
            target = out / rel_path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
            written.append(target)
        return written

    def build_steps(self, catalog: Catalog, graph: Optional[SchemaGraph] = None) -> List[DumpStep]:
        if graph is None:
            graph = GraphBuilder().build_from_catalog(catalog, name="dump")

        steps: List[DumpStep] = []
        emitted: Set[str] = set()
        deferred: List[Constraint] = []

        for type_def in self._order(graph, catalog.types.values()):
            steps.append(self._step(type_def, self.generator.create_type(type_def)))

        for domain in self._order(graph, catalog.domains.values()):
            steps.append(self._step(domain, self.generator.create_domain(domain)))

        for seq in self._order(graph, catalog.sequences.values()):
            steps.append(self._step(seq, self.generator.create_sequence(seq)))

        plain_tables, routine_tables = [], []
        for table in catalog.tables.values():
            (routine_tables if self._uses_routines(graph, table) else plain_tables).append(table)

        for table in self._order(graph, plain_tables):
            steps.extend(self._table_steps(catalog, table, emitted, deferred))

        for func in self._order(graph, catalog.functions.values()):
            steps.append(self._step(func, self.generator.create_routine(func)))

        for proc in self._order(graph, catalog.procedures.values()):
            steps.append(self._step(proc, self.generator.create_routine(proc)))

        for table in self._order(graph, routine_tables):
            steps.extend(self._table_steps(catalog, table, emitted, deferred))

        for fk in deferred:
            steps.append(self._deferred_fk_step(catalog, fk))

        for trigger in sorted(catalog.triggers.values(), key=self._sort_key):
            relation = catalog.get_relation(trigger.schema, trigger.table)
            steps.append(self._step(
                trigger, self._with_comments(self.generator.create_trigger(trigger), [trigger]),
                file=self._file_for(relation) if relation is not None else None,
            ))

        for view in self._order(graph, catalog.views.values()):
            steps.append(self._step(view, self._with_comments(self.generator.create_view(view), [view])))
            steps.extend(self._index_steps(catalog, view))

        return steps

    # ==========================================================
    # ТАБЛИЦЫ
    # ==========================================================

    def _table_steps(
        self,
        catalog: Catalog,
        table: Table,
        emitted: Set[str],
        deferred: List[Constraint],
    ) -> List[DumpStep]:
        emitted.add(Catalog.make_key(table.schema, table.name))

        inline: List[Constraint] = []
        for constraint in table.constraints:
            if self._is_forward_reference(catalog, constraint, emitted):
                deferred.append(constraint)
            else:
                inline.append(constraint)

        commented: List[DatabaseObject] = [table]
        commented.extend(table.columns.values())
        commented.extend(self.generator.ordered_constraints(inline))

        steps = [self._step(table, self._with_comments(self.generator.create_table(table, inline), commented))]

        for seq in sorted(catalog.sequences.values(), key=self._sort_key):
            if seq.is_owned and seq.schema == table.schema and seq.owned_by_table == table.name:
                steps.append(self._step(
                    seq, self.generator.sequence_owned_by(seq),
                    type_label="SEQUENCE OWNED BY", file=self._file_for(table),
                ))

        steps.extend(self._index_steps(catalog, table))

        rls = self.generator.row_level_security(table)
        if rls:
            steps.append(self._step(table, "\n\n".join(rls)))

        for policy in sorted(catalog.policies_for(table.schema, table.name), key=self._sort_key):
            steps.append(self._step(
                policy, self._with_comments(self.generator.create_policy(policy), [policy]),
                file=self._file_for(table),
            ))

        return steps

    @staticmethod
    def _is_forward_reference(catalog: Catalog, constraint: Constraint, emitted: Set[str]) -> bool:
        """Внешний ключ на таблицу, которая в дампе ещё не создана."""
        if constraint.constraint_type != ConstraintType.FOREIGN_KEY or not constraint.ref_table:
            return False
        ref_schema = constraint.ref_schema or constraint.schema
        if catalog.get_table(ref_schema, constraint.ref_table) is None:
            return False
        return Catalog.make_key(ref_schema, constraint.ref_table) not in emitted

    def _deferred_fk_step(self, catalog: Catalog, fk: Constraint) -> DumpStep:
        ref = catalog.get_table(fk.ref_schema or fk.schema, fk.ref_table)
        sql = self._with_comments(self.generator.add_constraint(fk), [fk])
        return DumpStep(
            name=f"{fk.table} {fk.name}",
            type_label="FK CONSTRAINT",
            schema_label=self.generator.schema_label(fk),
            sql=sql,
            file=self._file_for(ref),
        )

    def _index_steps(self, catalog: Catalog, relation: DatabaseObject) -> List[DumpStep]:
        steps = []
        for index in sorted(catalog.indexes_for(relation.schema, relation.name), key=self._sort_key):
            steps.append(self._step(
                index, self._with_comments(self.generator.create_index(index), [index]),
                file=self._file_for(relation),
            ))
        return steps

    # ==========================================================
    # ПОРЯДОК
    # ==========================================================

    def _sort_key(self, obj: DatabaseObject) -> Tuple:
        if self.config["object_order"] == "source":
            return (obj.position, obj.schema, obj.parent, obj.name)
        name = obj.identity()[3]
        return (obj.schema, obj.parent, name)

    def _order(self, graph: SchemaGraph, objects) -> List[DatabaseObject]:
        return graph.topological_order(list(objects), key=self._sort_key)

    @staticmethod
    def _uses_routines(graph: SchemaGraph, table: Table) -> bool:
        return any(
            dep.type in (ObjectType.FUNCTION, ObjectType.PROCEDURE)
            for dep in graph.lifted_dependencies(table)
        )

    # ==========================================================
    # ВЫВОД
    # ==========================================================

    def _step(
        self,
        obj: DatabaseObject,
        sql: str,
        type_label: Optional[str] = None,
        file: Optional[str] = None,
    ) -> DumpStep:
        return DumpStep(
            name=obj.name,
            type_label=type_label or TYPE_LABELS[obj.type],
            schema_label=self.generator.schema_label(obj),
            sql=sql,
            file=file or self._file_for(obj),
        )

    def _with_comments(self, sql: str, objects: List[DatabaseObject]) -> str:
        comments = [c for c in (self.generator.comment(o) for o in objects) if c]
        return "\n\n".join([sql] + comments)

    def _render_step(self, step: DumpStep) -> str:
        if not self.config["object_comments"]:
            return step.sql
        header = self.generator.header(step.name, step.type_label, step.schema_label)
        return f"{header}\n{step.sql}"

    def _render_file(self, steps: List[DumpStep], with_header: bool) -> str:
        parts = []
        if with_header:
            parts.append(self._file_header())
        parts.extend(self._render_step(s) for s in steps)
        if not parts:
            return ""
        return "\n\n".join(parts) + "\n"

    @staticmethod
    def _file_header() -> str:
        return f"--\n-- {TOOL_NAME} database dump\n-- Version: {VERSION}\n--"

    # ==========================================================
    # ФАЙЛЫ
    # ==========================================================

    def _file_for(self, obj: DatabaseObject) -> str:
        directory = OBJECT_DIRECTORY.get(obj.type, "tables")
        name = obj.name if obj.schema == self.target_schema else f"{obj.schema}.{obj.name}"
        return f"{directory}/{_UNSAFE_FILE_CHARS.sub('_', name)}.sql"

    @staticmethod
    def _directory_rank(path: str) -> int:
        directory = path.split("/", 1)[0]
        # представления обоих видов подключаются вперемешку, в порядке зависимостей
        if directory == "materialized_views":
            directory = "views"
        return OBJECT_DIRECTORIES.index(directory)
