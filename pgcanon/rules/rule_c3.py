import re
from typing import List, Optional

from pgcanon.core.models import Catalog, DatabaseObject
from pgcanon.rules.base import BaseRule


class RuleC3(BaseRule):
    RULE_ID = "C3"
    RULE_NAME = "Нормализация выражений"
    RULE_DESCRIPTION = (
        "DEFAULT, GENERATED, CHECK, выражения политик, элементы и предикаты "
        "индексов, условия триггеров записываются в канонической форме."
    )

    def apply(self, catalog: Catalog) -> List[dict]:

        self._rewrites = []

        for domain in catalog.domains.values():
            domain.default = self._normalize(domain, domain.default)
            for constraint in domain.constraints:
                # VALUE внутри CHECK домена остаётся ключевым словом
                constraint.check_clause = self._normalize(domain, constraint.check_clause, extra_keywords=["VALUE"])

        for table in catalog.tables.values():
            for column in table.columns.values():
                column.default = self._strip_nextval_schema(self._normalize(column, column.default))
                column.generated = self._normalize(column, column.generated)
            for constraint in table.constraints:
                constraint.check_clause = self._normalize(constraint, constraint.check_clause)
            table.partition_by = self._normalize_partition(table)

        for index in catalog.indexes.values():
            index.elements = [self._normalize(index, e) for e in index.elements]
            index.where = self._normalize(index, index.where)

        for policy in catalog.policies.values():
            policy.using = self._normalize(policy, policy.using)
            policy.with_check = self._normalize(policy, policy.with_check)

        for trigger in catalog.triggers.values():
            trigger.condition = self._normalize(trigger, trigger.condition)

        for routine in list(catalog.functions.values()) + list(catalog.procedures.values()):
            for arg in routine.arguments:
                arg.default = self._normalize(routine, arg.default)

        return self._rewrites

    def _normalize(self, obj: DatabaseObject, expr: Optional[str], extra_keywords=None) -> Optional[str]:
        if expr is None:
            return None
        normalized = self.normalizer.normalize_expression(expr, extra_keywords=extra_keywords)
        if normalized != expr:
            self._rewrites.append(self.rewrite(
                obj, "выражение записано в канонической форме", before=expr, after=normalized,
            ))
        return normalized

    def _normalize_partition(self, table) -> Optional[str]:
        # RANGE (created_at): метод отдельно, иначе он читается как вызов функции
        if not table.partition_by:
            return table.partition_by
        m = re.match(r"^(\w+)\s*(\(.*\))$", table.partition_by, re.DOTALL)
        if not m:
            return self._normalize(table, table.partition_by)
        return f"{m.group(1).upper()} {self._normalize(table, m.group(2))}"

    def _strip_nextval_schema(self, expr: Optional[str]) -> Optional[str]:
        # nextval('public.users_id_seq'::regclass) -> nextval('users_id_seq'::regclass)
        if not expr:
            return expr
        return re.sub(
            rf"nextval\('{re.escape(self.target_schema)}\.",
            "nextval('",
            expr,
        )
