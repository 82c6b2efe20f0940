from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional, Tuple, Iterator
from enum import Enum

from .constants import DEFAULT_SCHEMA


class ObjectType(Enum):
    TYPE = "type"
    DOMAIN = "domain"
    SEQUENCE = "sequence"
    TABLE = "table"
    COLUMN = "column"
    CONSTRAINT = "constraint"
    INDEX = "index"
    POLICY = "policy"
    TRIGGER = "trigger"
    FUNCTION = "function"
    PROCEDURE = "procedure"
    VIEW = "view"
    MATERIALIZED_VIEW = "materialized_view"


class RelationType(Enum):
    CONTAINS = "contains"
    REFERENCES = "references"
    DEPENDS_ON = "depends_on"
    USES = "uses"
    TRIGGERS = "triggers"
    OWNED_BY = "owned_by"


class ConstraintType(Enum):
    PRIMARY_KEY = "PRIMARY KEY"
    UNIQUE = "UNIQUE"
    FOREIGN_KEY = "FOREIGN KEY"
    CHECK = "CHECK"


class TypeKind(Enum):
    ENUM = "enum"
    COMPOSITE = "composite"


@dataclass
class DatabaseObject:
    id: int
    type: ObjectType
    name: str
    schema: str = DEFAULT_SCHEMA
    attributes: Any = field(default_factory=dict)
    # порядковый номер оператора в исходном тексте
    position: int = 0
    comment: Optional[str] = None

    def __post_init__(self):
        # ГАРАНТИЯ: attributes ВСЕГДА dict
        if self.attributes is None:
            self.attributes = {}
        elif not isinstance(self.attributes, dict):
            self.attributes = {
                "value": self.attributes
            }

    @property
    def parent(self) -> str:
        """Имя родительского отношения (для колонок, ограничений, политик, триггеров)."""
        return ""

    @property
    def qualified_name(self) -> str:
        return f"{self.schema}.{self.name}"

    def identity(self) -> Tuple[str, str, str, str]:
        return (self.type.value, self.schema, self.parent, self.name)

    def describe(self) -> Dict[str, Any]:
        """Семантические атрибуты объекта (то, что сравнивается)."""
        result = dict(self.attributes)
        result["comment"] = self.comment
        return result

    def __eq__(self, other):
        return (
                isinstance(other, DatabaseObject)
                and self.identity() == other.identity()
        )

    def __hash__(self):
        return hash(self.identity())


# ==========================================================
# ТИПЫ, ДОМЕНЫ, ПОСЛЕДОВАТЕЛЬНОСТИ
# ==========================================================

@dataclass
class CompositeField:
    name: str
    data_type: str
    collation: Optional[str] = None


class TypeDef(DatabaseObject):
    def __init__(
        self,
        *,
        name: str,
        kind: TypeKind,
        schema: str = DEFAULT_SCHEMA,
        values: Optional[List[str]] = None,
        fields: Optional[List[CompositeField]] = None,
        id: int = 0,
        position: int = 0,
    ):
        super().__init__(id=id, type=ObjectType.TYPE, name=name, schema=schema, position=position)
        self.kind = kind
        self.values = values or []
        self.fields = fields or []

    def describe(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "values": list(self.values),
            "fields": [(f.name, f.data_type, f.collation) for f in self.fields],
            "comment": self.comment,
        }


@dataclass
class DomainConstraint:
    name: Optional[str]
    check_clause: str


class Domain(DatabaseObject):
    def __init__(
        self,
        *,
        name: str,
        base_type: str,
        schema: str = DEFAULT_SCHEMA,
        default: Optional[str] = None,
        not_null: bool = False,
        collation: Optional[str] = None,
        constraints: Optional[List[DomainConstraint]] = None,
        id: int = 0,
        position: int = 0,
    ):
        super().__init__(id=id, type=ObjectType.DOMAIN, name=name, schema=schema, position=position)
        self.base_type = base_type
        self.default = default
        self.not_null = not_null
        self.collation = collation
        self.constraints = constraints or []

    def describe(self) -> Dict[str, Any]:
        return {
            "base_type": self.base_type,
            "default": self.default,
            "not_null": self.not_null,
            "collation": self.collation,
            "constraints": sorted((c.name or "", c.check_clause) for c in self.constraints),
            "comment": self.comment,
        }


class Sequence(DatabaseObject):
    def __init__(
        self,
        *,
        name: str,
        schema: str = DEFAULT_SCHEMA,
        data_type: Optional[str] = None,
        increment: Optional[int] = None,
        min_value: Optional[int] = None,
        max_value: Optional[int] = None,
        start: Optional[int] = None,
        cache: Optional[int] = None,
        cycle: bool = False,
        owned_by_table: Optional[str] = None,
        owned_by_column: Optional[str] = None,
        id: int = 0,
        position: int = 0,
    ):
        super().__init__(id=id, type=ObjectType.SEQUENCE, name=name, schema=schema, position=position)
        self.data_type = data_type
        self.increment = increment
        self.min_value = min_value
        self.max_value = max_value
        self.start = start
        self.cache = cache
        self.cycle = cycle
        self.owned_by_table = owned_by_table
        self.owned_by_column = owned_by_column

    @property
    def is_owned(self) -> bool:
        return bool(self.owned_by_table and self.owned_by_column)

    def describe(self) -> Dict[str, Any]:
        return {
            "data_type": self.data_type,
            "increment": self.increment,
            "min_value": self.min_value,
            "max_value": self.max_value,
            "start": self.start,
            "cache": self.cache,
            "cycle": self.cycle,
            "owned_by": f"{self.owned_by_table}.{self.owned_by_column}" if self.is_owned else None,
            "comment": self.comment,
        }


# ==========================================================
# ТАБЛИЦЫ
# ==========================================================

class Column(DatabaseObject):
    def __init__(
        self,
        *,
        name: str,
        table: str,
        schema: str = DEFAULT_SCHEMA,
        data_type: str = "",
        not_null: bool = False,
        default: Optional[str] = None,
        generated: Optional[str] = None,
        identity_kind: Optional[str] = None,
        collation: Optional[str] = None,
        id: int = 0,
        position: int = 0,
    ):
        super().__init__(id=id, type=ObjectType.COLUMN, name=name, schema=schema, position=position)
        self.table = table
        self.data_type = data_type
        self.not_null = not_null
        self.default = default
        # выражение GENERATED ALWAYS AS (...) STORED
        self.generated = generated
        # ALWAYS | BY DEFAULT
        self.identity_kind = identity_kind
        self.collation = collation

    @property
    def parent(self) -> str:
        return self.table

    def describe(self) -> Dict[str, Any]:
        return {
            "data_type": self.data_type,
            "not_null": self.not_null,
            "default": self.default,
            "generated": self.generated,
            "identity": self.identity_kind,
            "collation": self.collation,
            "comment": self.comment,
        }


class Constraint(DatabaseObject):
    def __init__(
        self,
        *,
        name: Optional[str],
        table: str,
        constraint_type: ConstraintType,
        schema: str = DEFAULT_SCHEMA,
        columns: Optional[List[str]] = None,
        ref_schema: Optional[str] = None,
        ref_table: Optional[str] = None,
        ref_columns: Optional[List[str]] = None,
        on_delete: Optional[str] = None,
        on_update: Optional[str] = None,
        match_type: Optional[str] = None,
        deferrable: bool = False,
        initially_deferred: bool = False,
        not_valid: bool = False,
        check_clause: Optional[str] = None,
        no_inherit: bool = False,
        nulls_not_distinct: bool = False,
        include_columns: Optional[List[str]] = None,
        id: int = 0,
        position: int = 0,
    ):
        super().__init__(id=id, type=ObjectType.CONSTRAINT, name=name or "", schema=schema, position=position)
        self.table = table
        self.constraint_type = constraint_type
        self.columns = columns or []
        self.ref_schema = ref_schema
        self.ref_table = ref_table
        self.ref_columns = ref_columns or []
        self.on_delete = on_delete
        self.on_update = on_update
        self.match_type = match_type
        self.deferrable = deferrable
        self.initially_deferred = initially_deferred
        self.not_valid = not_valid
        self.check_clause = check_clause
        self.no_inherit = no_inherit
        self.nulls_not_distinct = nulls_not_distinct
        self.include_columns = include_columns or []

    @property
    def parent(self) -> str:
        return self.table

    @property
    def is_named(self) -> bool:
        return bool(self.name)

    def describe(self) -> Dict[str, Any]:
        return {
            "constraint_type": self.constraint_type.value,
            "columns": list(self.columns),
            "references": (
                f"{self.ref_schema}.{self.ref_table}({', '.join(self.ref_columns)})"
                if self.ref_table else None
            ),
            "on_delete": self.on_delete,
            "on_update": self.on_update,
            "match_type": self.match_type,
            "deferrable": self.deferrable,
            "initially_deferred": self.initially_deferred,
            "not_valid": self.not_valid,
            "check_clause": self.check_clause,
            "no_inherit": self.no_inherit,
            "nulls_not_distinct": self.nulls_not_distinct,
            "include_columns": list(self.include_columns),
            "comment": self.comment,
        }


class Table(DatabaseObject):
    def __init__(
        self,
        *,
        name: str,
        schema: str = DEFAULT_SCHEMA,
        columns: Optional[Dict[str, Column]] = None,
        constraints: Optional[List[Constraint]] = None,
        unlogged: bool = False,
        partition_by: Optional[str] = None,
        id: int = 0,
        position: int = 0,
    ):
        super().__init__(id=id, type=ObjectType.TABLE, name=name, schema=schema, position=position)

        # dict сохраняет порядок объявления колонок
        self.columns: Dict[str, Column] = columns or {}
        self.constraints: List[Constraint] = constraints or []
        self.unlogged = unlogged
        self.partition_by = partition_by
        self.rls_enabled = False
        self.rls_forced = False

    def add_column(self, column: Column) -> None:
        self.columns[column.name] = column

    def get_constraint(self, name: str) -> Optional[Constraint]:
        for c in self.constraints:
            if c.name == name:
                return c
        return None

    def primary_key(self) -> Optional[Constraint]:
        for c in self.constraints:
            if c.constraint_type == ConstraintType.PRIMARY_KEY:
                return c
        return None

    def describe(self) -> Dict[str, Any]:
        return {
            "columns": list(self.columns.keys()),
            "unlogged": self.unlogged,
            "partition_by": self.partition_by,
            "rls_enabled": self.rls_enabled,
            "rls_forced": self.rls_forced,
            "comment": self.comment,
        }


class Index(DatabaseObject):
    def __init__(
        self,
        *,
        name: Optional[str],
        table: str,
        schema: str = DEFAULT_SCHEMA,
        elements: Optional[List[str]] = None,
        unique: bool = False,
        method: str = "btree",
        where: Optional[str] = None,
        include_columns: Optional[List[str]] = None,
        nulls_not_distinct: bool = False,
        id: int = 0,
        position: int = 0,
    ):
        super().__init__(id=id, type=ObjectType.INDEX, name=name or "", schema=schema, position=position)
        self.table = table
        # элементы индекса: колонки или выражения с ASC/DESC, opclass и т.п.
        self.elements = elements or []
        self.unique = unique
        self.method = method
        self.where = where
        self.include_columns = include_columns or []
        self.nulls_not_distinct = nulls_not_distinct

    def describe(self) -> Dict[str, Any]:
        return {
            "table": self.table,
            "elements": list(self.elements),
            "unique": self.unique,
            "method": self.method,
            "where": self.where,
            "include_columns": list(self.include_columns),
            "nulls_not_distinct": self.nulls_not_distinct,
            "comment": self.comment,
        }


class Policy(DatabaseObject):
    def __init__(
        self,
        *,
        name: str,
        table: str,
        schema: str = DEFAULT_SCHEMA,
        command: Optional[str] = None,
        permissive: bool = True,
        roles: Optional[List[str]] = None,
        using: Optional[str] = None,
        with_check: Optional[str] = None,
        id: int = 0,
        position: int = 0,
    ):
        super().__init__(id=id, type=ObjectType.POLICY, name=name, schema=schema, position=position)
        self.table = table
        self.command = command
        self.permissive = permissive
        self.roles = roles or []
        self.using = using
        self.with_check = with_check

    @property
    def parent(self) -> str:
        return self.table

    def describe(self) -> Dict[str, Any]:
        return {
            "command": self.command,
            "permissive": self.permissive,
            "roles": list(self.roles),
            "using": self.using,
            "with_check": self.with_check,
            "comment": self.comment,
        }


class Trigger(DatabaseObject):
    def __init__(
        self,
        *,
        name: str,
        table: str,
        timing: str,
        events: List[str],
        function: str,
        schema: str = DEFAULT_SCHEMA,
        update_columns: Optional[List[str]] = None,
        level: Optional[str] = None,
        condition: Optional[str] = None,
        referencing: Optional[List[str]] = None,
        id: int = 0,
        position: int = 0,
    ):
        super().__init__(id=id, type=ObjectType.TRIGGER, name=name, schema=schema, position=position)
        self.table = table
        self.timing = timing
        self.events = events
        # вызов функции целиком: "update_timestamp()"
        self.function = function
        self.update_columns = update_columns or []
        # ROW | STATEMENT
        self.level = level
        self.condition = condition
        self.referencing = referencing or []

    @property
    def parent(self) -> str:
        return self.table

    @property
    def function_name(self) -> str:
        return self.function.split("(", 1)[0].strip()

    def describe(self) -> Dict[str, Any]:
        return {
            "timing": self.timing,
            "events": list(self.events),
            "update_columns": list(self.update_columns),
            "level": self.level,
            "condition": self.condition,
            "referencing": list(self.referencing),
            "function": self.function,
            "comment": self.comment,
        }


# ==========================================================
# ФУНКЦИИ И ПРОЦЕДУРЫ
# ==========================================================

@dataclass
class Argument:
    data_type: str
    name: Optional[str] = None
    mode: str = "IN"
    default: Optional[str] = None

    def signature_part(self) -> str:
        if self.mode in ("IN", "INOUT", "VARIADIC"):
            return self.data_type
        return ""


class Routine(DatabaseObject):
    """Общая часть функций и процедур."""

    def __init__(
        self,
        *,
        type: ObjectType,
        name: str,
        schema: str = DEFAULT_SCHEMA,
        arguments: Optional[List[Argument]] = None,
        language: Optional[str] = None,
        body: str = "",
        security_definer: Optional[bool] = None,
        set_options: Optional[List[str]] = None,
        id: int = 0,
        position: int = 0,
    ):
        super().__init__(id=id, type=type, name=name, schema=schema, position=position)
        self.arguments = arguments or []
        self.language = language
        self.body = body
        self.security_definer = security_definer
        self.set_options = set_options or []

    @property
    def signature(self) -> str:
        parts = [a.signature_part() for a in self.arguments]
        return f"{self.name}({', '.join(p for p in parts if p)})"

    def identity(self) -> Tuple[str, str, str, str]:
        # перегрузки различаются сигнатурой
        return (self.type.value, self.schema, self.parent, self.signature)

    def describe(self) -> Dict[str, Any]:
        return {
            "arguments": [(a.mode, a.name, a.data_type, a.default) for a in self.arguments],
            "language": self.language,
            "security_definer": self.security_definer,
            "set_options": list(self.set_options),
            "body": self.body,
            "comment": self.comment,
        }


class Function(Routine):
    def __init__(
        self,
        *,
        name: str,
        schema: str = DEFAULT_SCHEMA,
        arguments: Optional[List[Argument]] = None,
        returns: Optional[str] = None,
        language: Optional[str] = None,
        volatility: Optional[str] = None,
        strict: bool = False,
        parallel: Optional[str] = None,
        leakproof: bool = False,
        cost: Optional[str] = None,
        rows: Optional[str] = None,
        body: str = "",
        security_definer: Optional[bool] = None,
        set_options: Optional[List[str]] = None,
        id: int = 0,
        position: int = 0,
    ):
        super().__init__(
            type=ObjectType.FUNCTION,
            name=name,
            schema=schema,
            arguments=arguments,
            language=language,
            body=body,
            security_definer=security_definer,
            set_options=set_options,
            id=id,
            position=position,
        )
        self.returns = returns
        self.volatility = volatility
        self.strict = strict
        self.parallel = parallel
        self.leakproof = leakproof
        self.cost = cost
        self.rows = rows

    def describe(self) -> Dict[str, Any]:
        result = super().describe()
        result.update({
            "returns": self.returns,
            "volatility": self.volatility,
            "strict": self.strict,
            "parallel": self.parallel,
            "leakproof": self.leakproof,
            "cost": self.cost,
            "rows": self.rows,
        })
        return result


class Procedure(Routine):
    def __init__(
        self,
        *,
        name: str,
        schema: str = DEFAULT_SCHEMA,
        arguments: Optional[List[Argument]] = None,
        language: Optional[str] = None,
        body: str = "",
        security_definer: Optional[bool] = None,
        set_options: Optional[List[str]] = None,
        id: int = 0,
        position: int = 0,
    ):
        super().__init__(
            type=ObjectType.PROCEDURE,
            name=name,
            schema=schema,
            arguments=arguments,
            language=language,
            body=body,
            security_definer=security_definer,
            set_options=set_options,
            id=id,
            position=position,
        )


# ==========================================================
# ПРЕДСТАВЛЕНИЯ
# ==========================================================

class View(DatabaseObject):
    def __init__(
        self,
        *,
        name: str,
        body: str,
        schema: str = DEFAULT_SCHEMA,
        materialized: bool = False,
        column_names: Optional[List[str]] = None,
        options: Optional[List[str]] = None,
        check_option: Optional[str] = None,
        with_data: bool = True,
        id: int = 0,
        position: int = 0,
    ):
        super().__init__(
            id=id,
            type=ObjectType.MATERIALIZED_VIEW if materialized else ObjectType.VIEW,
            name=name,
            schema=schema,
            position=position,
        )
        self.body = body
        self.materialized = materialized
        self.column_names = column_names or []
        self.options = options or []
        # LOCAL | CASCADED
        self.check_option = check_option
        self.with_data = with_data

    def describe(self) -> Dict[str, Any]:
        return {
            "body": self.body,
            "column_names": list(self.column_names),
            "options": list(self.options),
            "check_option": self.check_option,
            "with_data": self.with_data,
            "comment": self.comment,
        }


# ==========================================================
# КАТАЛОГ
# ==========================================================

class Catalog:
    """
    Упорядоченное хранилище объектов одной логической схемы.

    Ключи словарей — "schema.name"; для политик и триггеров
    "schema.table.name", для функций — "schema.signature".
    """

    def __init__(self, target_schema: str = DEFAULT_SCHEMA):
        self.target_schema = target_schema
        self.types: Dict[str, TypeDef] = {}
        self.domains: Dict[str, Domain] = {}
        self.sequences: Dict[str, Sequence] = {}
        self.tables: Dict[str, Table] = {}
        self.indexes: Dict[str, Index] = {}
        self.policies: Dict[str, Policy] = {}
        self.triggers: Dict[str, Trigger] = {}
        self.functions: Dict[str, Function] = {}
        self.procedures: Dict[str, Procedure] = {}
        self.views: Dict[str, View] = {}
        self._position = 0

    @staticmethod
    def make_key(schema: str, name: str, parent: str = "") -> str:
        if parent:
            return f"{schema}.{parent}.{name}"
        return f"{schema}.{name}"

    def next_position(self) -> int:
        self._position += 1
        return self._position

    def _container(self, obj: DatabaseObject) -> Dict[str, Any]:
        mapping = {
            ObjectType.TYPE: self.types,
            ObjectType.DOMAIN: self.domains,
            ObjectType.SEQUENCE: self.sequences,
            ObjectType.TABLE: self.tables,
            ObjectType.INDEX: self.indexes,
            ObjectType.POLICY: self.policies,
            ObjectType.TRIGGER: self.triggers,
            ObjectType.FUNCTION: self.functions,
            ObjectType.PROCEDURE: self.procedures,
            ObjectType.VIEW: self.views,
            ObjectType.MATERIALIZED_VIEW: self.views,
        }
        if obj.type not in mapping:
            raise ValueError(f"Объект типа {obj.type.value} не хранится в каталоге напрямую")
        return mapping[obj.type]

    def key_of(self, obj: DatabaseObject) -> str:
        if isinstance(obj, Routine):
            return f"{obj.schema}.{obj.signature}"
        if isinstance(obj, (Policy, Trigger)):
            return self.make_key(obj.schema, obj.name, obj.table)
        return self.make_key(obj.schema, obj.name)

    def add(self, obj: DatabaseObject) -> None:
        container = self._container(obj)
        key = self.key_of(obj)
        if key in container:
            raise ValueError(f"Объект {obj.type.value} {key} уже определён")
        container[key] = obj

    def replace(self, obj: DatabaseObject) -> None:
        """CREATE OR REPLACE: новое определение замещает старое на его месте."""
        container = self._container(obj)
        key = self.key_of(obj)
        old = container.get(key)
        if old is not None:
            obj.position = old.position
            obj.comment = obj.comment or old.comment
        container[key] = obj

    def remove(self, obj: DatabaseObject) -> None:
        self._container(obj).pop(self.key_of(obj), None)

    def rekey(self, container: Dict[str, Any]) -> None:
        """Перестраивает ключи после переименования объектов (безымянные индексы и т.п.)."""
        items = list(container.values())
        container.clear()
        for obj in items:
            container[self.key_of(obj)] = obj

    # ---------- поиск ----------

    def get_table(self, schema: str, name: str) -> Optional[Table]:
        return self.tables.get(self.make_key(schema, name))

    def get_view(self, schema: str, name: str) -> Optional[View]:
        return self.views.get(self.make_key(schema, name))

    def get_relation(self, schema: str, name: str) -> Optional[DatabaseObject]:
        return self.get_table(schema, name) or self.get_view(schema, name)

    def get_sequence(self, schema: str, name: str) -> Optional[Sequence]:
        return self.sequences.get(self.make_key(schema, name))

    def get_type(self, schema: str, name: str) -> Optional[DatabaseObject]:
        key = self.make_key(schema, name)
        return self.types.get(key) or self.domains.get(key)

    def find_routines(self, schema: str, name: str) -> List[Routine]:
        result: List[Routine] = []
        for routine in list(self.functions.values()) + list(self.procedures.values()):
            if routine.schema == schema and routine.name == name:
                result.append(routine)
        return result

    def indexes_for(self, schema: str, table: str) -> List[Index]:
        return [i for i in self.indexes.values() if i.schema == schema and i.table == table]

    def policies_for(self, schema: str, table: str) -> List[Policy]:
        return [p for p in self.policies.values() if p.schema == schema and p.table == table]

    def all_objects(self) -> Iterator[DatabaseObject]:
        """Все объекты верхнего уровня, колонки и ограничения таблиц."""
        yield from self.types.values()
        yield from self.domains.values()
        yield from self.sequences.values()
        for table in self.tables.values():
            yield table
            yield from table.columns.values()
            yield from table.constraints
        yield from self.indexes.values()
        yield from self.policies.values()
        yield from self.triggers.values()
        yield from self.functions.values()
        yield from self.procedures.values()
        yield from self.views.values()

    def summary(self) -> Dict[str, int]:
        return {
            "types": len(self.types),
            "domains": len(self.domains),
            "sequences": len(self.sequences),
            "tables": len(self.tables),
            "indexes": len(self.indexes),
            "policies": len(self.policies),
            "triggers": len(self.triggers),
            "functions": len(self.functions),
            "procedures": len(self.procedures),
            "views": len([v for v in self.views.values() if not v.materialized]),
            "materialized_views": len([v for v in self.views.values() if v.materialized]),
        }
