"""
sql_generator.py

Генерация канонического SQL для отдельных объектов каталога.
Раскладка повторяет pg_dump: один оператор на объект, предложения
длинных операторов на отдельных строках с фиксированным отступом.
"""

from __future__ import annotations

from typing import List, Optional

from ..core.constants import CONSTRAINT_GROUP_ORDER, DEFAULT_SCHEMA
from ..core.models import (
    Argument,
    Column,
    Constraint,
    ConstraintType,
    DatabaseObject,
    Domain,
    Function,
    Index,
    ObjectType,
    Policy,
    Routine,
    Sequence,
    Table,
    Trigger,
    TypeDef,
    TypeKind,
    View,
)
from ..utils.naming import qualify, quote_identifier, quote_literal

INDENT = "    "

# метка объекта в заголовке "-- Name: ...; Type: ..."
TYPE_LABELS = {
    ObjectType.TYPE: "TYPE",
    ObjectType.DOMAIN: "DOMAIN",
    ObjectType.SEQUENCE: "SEQUENCE",
    ObjectType.TABLE: "TABLE",
    ObjectType.COLUMN: "COLUMN",
    ObjectType.CONSTRAINT: "CONSTRAINT",
    ObjectType.INDEX: "INDEX",
    ObjectType.POLICY: "POLICY",
    ObjectType.TRIGGER: "TRIGGER",
    ObjectType.FUNCTION: "FUNCTION",
    ObjectType.PROCEDURE: "PROCEDURE",
    ObjectType.VIEW: "VIEW",
    ObjectType.MATERIALIZED_VIEW: "MATERIALIZED VIEW",
}

_DOLLAR_TAGS = ("$$", "$function$", "$body$", "$pgcanon$")


def dollar_quote(body: str) -> str:
    """Тело в $$ ... $$; тег меняется, если тело само содержит $$."""
    for tag in _DOLLAR_TAGS:
        if tag not in body:
            return f"{tag}\n{body}\n{tag}"
    raise ValueError("Тело функции содержит все допустимые теги $-кавычек")


class SQLGenerator:
    """Канонический SQL-текст объекта (без заголовка и завершающего перевода строки)."""

    def __init__(self, target_schema: str = DEFAULT_SCHEMA):
        self.target_schema = target_schema

    # ==========================================================
    # ИМЕНА
    # ==========================================================

    def name(self, obj: DatabaseObject) -> str:
        return qualify(obj.schema, obj.name, self.target_schema)

    def relation_name(self, schema: str, name: str) -> str:
        return qualify(schema, name, self.target_schema)

    def schema_label(self, obj: DatabaseObject) -> str:
        return "-" if obj.schema == self.target_schema else obj.schema

    def header(self, name: str, type_label: str, schema_label: str = "-") -> str:
        return f"--\n-- Name: {name}; Type: {type_label}; Schema: {schema_label}; Owner: -\n--\n"

    # ==========================================================
    # ТИПЫ, ДОМЕНЫ, ПОСЛЕДОВАТЕЛЬНОСТИ
    # ==========================================================

    def create_type(self, type_def: TypeDef) -> str:
        name = self.name(type_def)
        if type_def.kind == TypeKind.ENUM:
            if not type_def.values:
                return f"CREATE TYPE {name} AS ENUM ();"
            values = ",\n".join(f"{INDENT}{quote_literal(v)}" for v in type_def.values)
            return f"CREATE TYPE {name} AS ENUM (\n{values}\n);"

        fields = []
        for f in type_def.fields:
            text = f"{quote_identifier(f.name)} {f.data_type}"
            if f.collation:
                text += f" COLLATE {f.collation}"
            fields.append(text)
        return f"CREATE TYPE {name} AS ({', '.join(fields)});"

    def create_domain(self, domain: Domain) -> str:
        lines = [f"CREATE DOMAIN {self.name(domain)} AS {domain.base_type}"]
        if domain.collation:
            lines.append(f"  COLLATE {domain.collation}")
        if domain.default is not None:
            lines.append(f"  DEFAULT {domain.default}")
        if domain.not_null:
            lines.append("  NOT NULL")
        for constraint in domain.constraints:
            prefix = f"CONSTRAINT {quote_identifier(constraint.name)} " if constraint.name else ""
            lines.append(f"  {prefix}CHECK ({constraint.check_clause})")
        return "\n".join(lines) + ";"

    def create_sequence(self, seq: Sequence) -> str:
        parts = [f"CREATE SEQUENCE IF NOT EXISTS {self.name(seq)}"]
        if seq.data_type:
            parts.append(f"AS {seq.data_type}")
        if seq.increment is not None:
            parts.append(f"INCREMENT BY {seq.increment}")
        if seq.min_value is not None:
            parts.append(f"MINVALUE {seq.min_value}")
        if seq.max_value is not None:
            parts.append(f"MAXVALUE {seq.max_value}")
        if seq.start is not None:
            parts.append(f"START WITH {seq.start}")
        if seq.cache is not None:
            parts.append(f"CACHE {seq.cache}")
        if seq.cycle:
            parts.append("CYCLE")
        return " ".join(parts) + ";"

    def sequence_owned_by(self, seq: Sequence) -> str:
        table = self.relation_name(seq.schema, seq.owned_by_table)
        return f"ALTER SEQUENCE {self.name(seq)} OWNED BY {table}.{quote_identifier(seq.owned_by_column)};"

    # ==========================================================
    # ТАБЛИЦЫ
    # ==========================================================

    def create_table(self, table: Table, constraints: Optional[List[Constraint]] = None) -> str:
        """
        CREATE TABLE с колонками и именованными ограничениями уровня таблицы.

        constraints: ограничения, выводимые внутри CREATE TABLE
        (по умолчанию все; отложенные внешние ключи передаются отдельно).
        """
        if constraints is None:
            constraints = table.constraints

        pk = table.primary_key()
        pk_columns = set(pk.columns) if pk is not None else set()

        elements = [self.column_definition(c, c.name in pk_columns) for c in table.columns.values()]
        elements.extend(self.constraint_definition(c) for c in self.ordered_constraints(constraints))

        unlogged = "UNLOGGED " if table.unlogged else ""
        head = f"CREATE {unlogged}TABLE IF NOT EXISTS {self.name(table)} ("
        tail = ")"
        if table.partition_by:
            tail += f" PARTITION BY {table.partition_by}"

        if not elements:
            return f"{head}\n{tail};"
        body = ",\n".join(INDENT + e for e in elements)
        return f"{head}\n{body}\n{tail};"

    @staticmethod
    def ordered_constraints(constraints: List[Constraint]) -> List[Constraint]:
        """PRIMARY KEY, UNIQUE, FOREIGN KEY, CHECK; внутри группы — по имени."""
        return sorted(
            constraints,
            key=lambda c: (CONSTRAINT_GROUP_ORDER.index(c.constraint_type.value), c.name),
        )

    def column_definition(self, column: Column, in_primary_key: bool = False) -> str:
        parts = [quote_identifier(column.name), column.data_type]
        if column.collation:
            parts.append(f"COLLATE {column.collation}")
        if column.identity_kind:
            parts.append(f"GENERATED {column.identity_kind} AS IDENTITY")
        if column.generated is not None:
            parts.append(f"GENERATED ALWAYS AS ({column.generated}) STORED")
        if column.default is not None:
            parts.append(f"DEFAULT {column.default}")
        # NOT NULL колонок первичного ключа подразумевается самим ключом
        if column.not_null and not in_primary_key and not column.identity_kind:
            parts.append("NOT NULL")
        return " ".join(parts)

    def constraint_definition(self, constraint: Constraint) -> str:
        kind = constraint.constraint_type
        columns = ", ".join(quote_identifier(c) for c in constraint.columns)
        text = f"CONSTRAINT {quote_identifier(constraint.name)} " if constraint.name else ""

        if kind == ConstraintType.PRIMARY_KEY:
            text += f"PRIMARY KEY ({columns})"
        elif kind == ConstraintType.UNIQUE:
            nulls = " NULLS NOT DISTINCT" if constraint.nulls_not_distinct else ""
            text += f"UNIQUE{nulls} ({columns})"
        elif kind == ConstraintType.FOREIGN_KEY:
            ref = self.relation_name(constraint.ref_schema or self.target_schema, constraint.ref_table)
            ref_columns = ", ".join(quote_identifier(c) for c in constraint.ref_columns)
            text += f"FOREIGN KEY ({columns}) REFERENCES {ref}"
            if ref_columns:
                text += f"({ref_columns})"
            if constraint.match_type:
                text += f" MATCH {constraint.match_type}"
            if constraint.on_update:
                text += f" ON UPDATE {constraint.on_update}"
            if constraint.on_delete:
                text += f" ON DELETE {constraint.on_delete}"
        else:
            text += f"CHECK ({constraint.check_clause})"
            if constraint.no_inherit:
                text += " NO INHERIT"

        if constraint.include_columns:
            text += f" INCLUDE ({', '.join(quote_identifier(c) for c in constraint.include_columns)})"
        if constraint.deferrable:
            text += " DEFERRABLE"
            if constraint.initially_deferred:
                text += " INITIALLY DEFERRED"
        if constraint.not_valid:
            text += " NOT VALID"
        return text

    def add_constraint(self, constraint: Constraint) -> str:
        table = self.relation_name(constraint.schema, constraint.table)
        return f"ALTER TABLE {table}\n{INDENT}ADD {self.constraint_definition(constraint)};"

    def row_level_security(self, table: Table) -> List[str]:
        statements = []
        if table.rls_enabled:
            statements.append(f"ALTER TABLE {self.name(table)} ENABLE ROW LEVEL SECURITY;")
        if table.rls_forced:
            statements.append(f"ALTER TABLE {self.name(table)} FORCE ROW LEVEL SECURITY;")
        return statements

    def create_index(self, index: Index) -> str:
        unique = "UNIQUE " if index.unique else ""
        relation = self.relation_name(index.schema, index.table)
        text = f"CREATE {unique}INDEX IF NOT EXISTS {quote_identifier(index.name)} ON {relation}"
        if index.method and index.method != "btree":
            text += f" USING {index.method}"
        text += f" ({', '.join(index.elements)})"
        if index.include_columns:
            text += f" INCLUDE ({', '.join(quote_identifier(c) for c in index.include_columns)})"
        if index.nulls_not_distinct:
            text += " NULLS NOT DISTINCT"
        if index.where:
            text += f" WHERE {index.where}"
        return text + ";"

    def create_policy(self, policy: Policy) -> str:
        table = self.relation_name(policy.schema, policy.table)
        text = f"CREATE POLICY {quote_identifier(policy.name)} ON {table}"
        if not policy.permissive:
            text += " AS RESTRICTIVE"
        if policy.command and policy.command != "ALL":
            text += f" FOR {policy.command}"
        if policy.roles:
            text += f" TO {', '.join(policy.roles)}"
        if policy.using is not None:
            text += f" USING ({policy.using})"
        if policy.with_check is not None:
            text += f" WITH CHECK ({policy.with_check})"
        return text + ";"

    def create_trigger(self, trigger: Trigger) -> str:
        events = []
        for event in trigger.events:
            if event == "UPDATE" and trigger.update_columns:
                event += " OF " + ", ".join(quote_identifier(c) for c in trigger.update_columns)
            events.append(event)

        table = self.relation_name(trigger.schema, trigger.table)
        lines = [
            f"CREATE OR REPLACE TRIGGER {quote_identifier(trigger.name)}",
            f"{INDENT}{trigger.timing} {' OR '.join(events)} ON {table}",
        ]
        if trigger.referencing:
            lines.append(f"{INDENT}REFERENCING {' '.join(trigger.referencing)}")
        lines.append(f"{INDENT}FOR EACH {trigger.level or 'STATEMENT'}")
        if trigger.condition:
            lines.append(f"{INDENT}WHEN ({trigger.condition})")
        lines.append(f"{INDENT}EXECUTE FUNCTION {trigger.function};")
        return "\n".join(lines)

    # ==========================================================
    # ФУНКЦИИ И ПРОЦЕДУРЫ
    # ==========================================================

    @staticmethod
    def argument_definition(arg: Argument) -> str:
        parts = []
        if arg.mode != "IN":
            parts.append(arg.mode)
        if arg.name:
            parts.append(quote_identifier(arg.name))
        parts.append(arg.data_type)
        if arg.default is not None:
            parts.append(f"DEFAULT {arg.default}")
        return " ".join(parts)

    def routine_signature(self, routine: Routine) -> str:
        args = ", ".join(a.data_type for a in routine.arguments if a.signature_part())
        return f"{self.name(routine)}({args})"

    def create_routine(self, routine: Routine) -> str:
        kind = "FUNCTION" if routine.type == ObjectType.FUNCTION else "PROCEDURE"

        if routine.arguments:
            args = ",\n".join(INDENT + self.argument_definition(a) for a in routine.arguments)
            lines = [f"CREATE OR REPLACE {kind} {self.name(routine)}(\n{args}\n)"]
        else:
            lines = [f"CREATE OR REPLACE {kind} {self.name(routine)}()"]

        if isinstance(routine, Function) and routine.returns:
            lines.append(f"RETURNS {routine.returns}")
        lines.append(f"LANGUAGE {routine.language or 'sql'}")
        lines.append("SECURITY DEFINER" if routine.security_definer else "SECURITY INVOKER")

        if isinstance(routine, Function):
            if routine.volatility:
                lines.append(routine.volatility)
            if routine.strict:
                lines.append("STRICT")
            if routine.leakproof:
                lines.append("LEAKPROOF")
            if routine.parallel:
                lines.append(f"PARALLEL {routine.parallel}")
            if routine.cost is not None:
                lines.append(f"COST {routine.cost}")
            if routine.rows is not None:
                lines.append(f"ROWS {routine.rows}")

        for option in routine.set_options:
            lines.append(f"SET {option}")

        lines.append(f"AS {dollar_quote(routine.body)};")
        return "\n".join(lines)

    # ==========================================================
    # ПРЕДСТАВЛЕНИЯ
    # ==========================================================

    def create_view(self, view: View) -> str:
        name = self.name(view)
        if view.column_names:
            name += f" ({', '.join(quote_identifier(c) for c in view.column_names)})"
        options = f" WITH ({', '.join(view.options)})" if view.options else ""

        if view.materialized:
            text = f"CREATE MATERIALIZED VIEW IF NOT EXISTS {name}{options} AS\n{view.body}"
            if not view.with_data:
                text += "\n  WITH NO DATA"
        else:
            text = f"CREATE OR REPLACE VIEW {name}{options} AS\n{view.body}"
            if view.check_option:
                text += f"\n  WITH {view.check_option} CHECK OPTION"
        return text + ";"

    # ==========================================================
    # КОММЕНТАРИИ
    # ==========================================================

    def comment(self, obj: DatabaseObject) -> Optional[str]:
        """COMMENT ON для объекта; None, если комментария нет."""
        if obj.comment is None:
            return None

        if obj.type == ObjectType.COLUMN:
            target = f"COLUMN {self.relation_name(obj.schema, obj.table)}.{quote_identifier(obj.name)}"
        elif obj.type == ObjectType.CONSTRAINT:
            target = f"CONSTRAINT {quote_identifier(obj.name)} ON {self.relation_name(obj.schema, obj.table)}"
        elif obj.type in (ObjectType.POLICY, ObjectType.TRIGGER):
            target = f"{TYPE_LABELS[obj.type]} {quote_identifier(obj.name)} ON {self.relation_name(obj.schema, obj.table)}"
        elif obj.type in (ObjectType.FUNCTION, ObjectType.PROCEDURE):
            target = f"{TYPE_LABELS[obj.type]} {self.routine_signature(obj)}"
        elif obj.type == ObjectType.INDEX:
            target = f"INDEX {qualify(obj.schema, obj.name, self.target_schema)}"
        else:
            target = f"{TYPE_LABELS[obj.type]} {self.name(obj)}"

        return f"COMMENT ON {target} IS {quote_literal(obj.comment)};"
