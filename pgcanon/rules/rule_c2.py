import re
from typing import List, Optional

from pgcanon.core.models import Catalog, DatabaseObject, Function
from pgcanon.parser.scanner import find_matching_paren, split_top_level
from pgcanon.rules.base import BaseRule
from pgcanon.utils.naming import normalize_identifier, quote_identifier
from pgcanon.utils.types import normalize_type


class RuleC2(BaseRule):
    RULE_ID = "C2"
    RULE_NAME = "Нормализация типов данных"
    RULE_DESCRIPTION = (
        "Синонимы типов приводятся к каноническим именам "
        "(int4 -> integer, decimal -> numeric, timestamp with time zone -> timestamptz), "
        "префикс целевой схемы у пользовательских типов убирается."
    )

    def apply(self, catalog: Catalog) -> List[dict]:

        self._rewrites = []

        for type_def in catalog.types.values():
            for field in type_def.fields:
                field.data_type = self._normalize(type_def, field.data_type)

        for domain in catalog.domains.values():
            domain.base_type = self._normalize(domain, domain.base_type)

        for seq in catalog.sequences.values():
            if seq.data_type:
                seq.data_type = self._normalize(seq, seq.data_type)

        for table in catalog.tables.values():
            for column in table.columns.values():
                column.data_type = self._normalize(column, column.data_type)

        for routine in list(catalog.functions.values()) + list(catalog.procedures.values()):
            for arg in routine.arguments:
                arg.data_type = self._normalize(routine, arg.data_type)
            if isinstance(routine, Function) and routine.returns:
                routine.returns = self._normalize_returns(routine, routine.returns)

        # сигнатуры функций могли измениться
        catalog.rekey(catalog.functions)
        catalog.rekey(catalog.procedures)

        return self._rewrites

    def _normalize(self, obj: DatabaseObject, type_text: Optional[str]) -> Optional[str]:
        normalized = normalize_type(type_text, self.target_schema)
        if normalized != type_text:
            self._rewrites.append(self.rewrite(
                obj, f"тип {type_text} -> {normalized}", before=type_text, after=normalized,
            ))
        return normalized

    def _normalize_returns(self, func: Function, returns: str) -> str:
        m = re.match(r"^TABLE\s*\(", returns, re.IGNORECASE)
        if m:
            open_index = m.end() - 1
            close = find_matching_paren(returns, open_index)
            columns = []
            for col in split_top_level(returns[open_index + 1:close]):
                name, _, col_type = col.strip().partition(" ")
                columns.append(
                    f"{quote_identifier(normalize_identifier(name))} {self._normalize(func, col_type.strip())}"
                )
            return "TABLE(" + ", ".join(columns) + ")"

        m = re.match(r"^SETOF\s+(.*)$", returns, re.IGNORECASE | re.DOTALL)
        if m:
            return "SETOF " + self._normalize(func, m.group(1))

        return self._normalize(func, returns)
