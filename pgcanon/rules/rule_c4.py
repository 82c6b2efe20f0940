import logging
from typing import List, Optional, Set

from pgcanon.core.models import Catalog, Constraint, ConstraintType, Index, Table
from pgcanon.parser.tokenizer import SQLTokenizer, TokenType
from pgcanon.rules.base import BaseRule
from pgcanon.utils.naming import choose_name, column_list_addition, normalize_identifier

logger = logging.getLogger(__name__)

_LABELS = {
    ConstraintType.PRIMARY_KEY: "pkey",
    ConstraintType.UNIQUE: "key",
    ConstraintType.FOREIGN_KEY: "fkey",
    ConstraintType.CHECK: "check",
}


class RuleC4(BaseRule):
    RULE_ID = "C4"
    RULE_NAME = "Имена ограничений и индексов"
    RULE_DESCRIPTION = (
        "Безымянные ограничения и индексы получают имена по умолчанию PostgreSQL "
        "(<t>_pkey, <t>_<cols>_key, <t>_<cols>_fkey, <t>_<col>_check, <t>_<cols>_idx); "
        "внешний ключ без списка колонок ссылается на первичный ключ; "
        "колонки первичного ключа становятся NOT NULL."
    )

    def __init__(self, config=None):
        super().__init__(config)
        self._tokenizer = SQLTokenizer()

    def apply(self, catalog: Catalog) -> List[dict]:

        rewrites = []
        taken = self._taken_names(catalog)

        for table in catalog.tables.values():
            for constraint in table.constraints:

                if constraint.constraint_type == ConstraintType.PRIMARY_KEY:
                    for col_name in constraint.columns:
                        column = table.columns.get(col_name)
                        if column is not None and not column.not_null:
                            column.not_null = True
                            rewrites.append(self.rewrite(column, "колонка первичного ключа получила NOT NULL"))

                if constraint.constraint_type == ConstraintType.FOREIGN_KEY and not constraint.ref_columns:
                    rewrites.extend(self._resolve_ref_columns(catalog, table, constraint))

                if constraint.constraint_type == ConstraintType.FOREIGN_KEY:
                    rewrites.extend(self._drop_default_actions(constraint))

                if constraint.is_named:
                    continue

                name = choose_name(table.name, self._name_addition(table, constraint), _LABELS[constraint.constraint_type], taken)
                constraint.name = name
                taken.add(name)
                rewrites.append(self.rewrite(constraint, f"ограничению присвоено имя {name}", after=name))

        for domain in catalog.domains.values():
            for constraint in domain.constraints:
                if constraint.name:
                    continue
                name = choose_name(domain.name, None, "check", taken)
                constraint.name = name
                taken.add(name)
                rewrites.append(self.rewrite(domain, f"ограничению домена присвоено имя {name}", after=name))

        renamed = False
        for index in catalog.indexes.values():
            if not index.attributes.pop("unnamed", False):
                continue
            name = choose_name(index.table, self._index_addition(index), "idx", taken)
            index.name = name
            taken.add(name)
            renamed = True
            rewrites.append(self.rewrite(index, f"индексу присвоено имя {name}", after=name))

        if renamed:
            catalog.rekey(catalog.indexes)

        return rewrites

    # ==========================================================
    # ВНУТРЕННИЕ МЕТОДЫ
    # ==========================================================

    @staticmethod
    def _taken_names(catalog: Catalog) -> Set[str]:
        names: Set[str] = set()
        for container in (catalog.tables, catalog.sequences, catalog.views, catalog.indexes):
            names.update(obj.name for obj in container.values())
        for table in catalog.tables.values():
            names.update(c.name for c in table.constraints if c.is_named)
        for domain in catalog.domains.values():
            names.update(c.name for c in domain.constraints if c.name)
        return names

    def _resolve_ref_columns(self, catalog: Catalog, table: Table, fk: Constraint) -> List[dict]:
        ref = catalog.get_table(fk.ref_schema, fk.ref_table)
        if ref is None:
            # о неизвестной таблице уже сообщил парсер
            return []
        pk = ref.primary_key()
        if pk is None:
            logger.warning(
                "Внешний ключ таблицы %s: у %s.%s нет первичного ключа, колонки ссылки не определены",
                table.name, fk.ref_schema, fk.ref_table,
            )
            return []
        fk.ref_columns = list(pk.columns)
        return [self.rewrite(
            table, f"внешний ключ ссылается на первичный ключ {fk.ref_table}({', '.join(pk.columns)})",
        )]

    def _drop_default_actions(self, fk: Constraint) -> List[dict]:
        # ON DELETE/UPDATE NO ACTION и MATCH SIMPLE совпадают с поведением по умолчанию
        dropped = []
        if fk.on_delete == "NO ACTION":
            fk.on_delete = None
            dropped.append("ON DELETE NO ACTION")
        if fk.on_update == "NO ACTION":
            fk.on_update = None
            dropped.append("ON UPDATE NO ACTION")
        if fk.match_type == "SIMPLE":
            fk.match_type = None
            dropped.append("MATCH SIMPLE")
        if not dropped:
            return []
        return [self.rewrite(fk, f"опущено: {', '.join(dropped)}")]

    def _name_addition(self, table: Table, constraint: Constraint) -> Optional[str]:
        if constraint.constraint_type == ConstraintType.PRIMARY_KEY:
            return None
        if constraint.constraint_type == ConstraintType.CHECK:
            # <t>_<col>_check, если выражение ссылается ровно на одну колонку
            referenced = self._referenced_columns(table, constraint.check_clause or "")
            return referenced[0] if len(referenced) == 1 else None
        return column_list_addition(constraint.columns)

    def _referenced_columns(self, table: Table, expr: str) -> List[str]:
        tokens = [t for t in self._tokenizer.tokenize(expr) if t.type != TokenType.EOF]
        found: List[str] = []
        for i, tok in enumerate(tokens):
            if not tok.is_identifier():
                continue
            if i + 1 < len(tokens) and tokens[i + 1].type in (TokenType.LPAREN, TokenType.DOT):
                continue
            name = normalize_identifier(tok.value)
            if name in table.columns and name not in found:
                found.append(name)
        return found

    def _index_addition(self, index: Index) -> str:
        names = []
        for element in index.elements:
            tokens = [t for t in self._tokenizer.tokenize(element) if t.type != TokenType.EOF]
            if tokens and tokens[0].is_identifier():
                names.append(normalize_identifier(tokens[0].value))
            else:
                names.append("expr")
        return column_list_addition(names)
