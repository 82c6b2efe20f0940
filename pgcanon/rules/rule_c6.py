import re
from typing import List

from pgcanon.core.models import Catalog, Function, Routine
from pgcanon.rules.base import BaseRule

_SET_OPTION_RE = re.compile(r"^([A-Za-z_][A-Za-z0-9_.]*)\s*(?:=|\bTO\b)\s*(.*)$", re.IGNORECASE | re.DOTALL)


def canonical_body(body: str) -> str:
    """
    Тело функции: хвостовые пробелы строк и пустые строки по краям
    убираются; однострочное тело обрезается целиком.
    """
    lines = [line.rstrip() for line in body.replace("\r\n", "\n").split("\n")]
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    if len(lines) == 1:
        return lines[0].strip()
    return "\n".join(lines)


class RuleC6(BaseRule):
    RULE_ID = "C6"
    RULE_NAME = "Канонизация функций и процедур"
    RULE_DESCRIPTION = (
        "Язык в нижнем регистре, VOLATILE и SECURITY INVOKER явно, "
        "значения по умолчанию (PARALLEL UNSAFE, COST 100, ROWS 1000) опускаются, "
        "тело обрезается по краям."
    )

    def apply(self, catalog: Catalog) -> List[dict]:

        rewrites = []

        for routine in list(catalog.functions.values()) + list(catalog.procedures.values()):
            changes = self._canonicalize(routine)
            if changes:
                rewrites.append(self.rewrite(routine, "; ".join(changes)))

        return rewrites

    def _canonicalize(self, routine: Routine) -> List[str]:
        changes = []

        language = (routine.language or "sql").lower()
        if language != routine.language:
            changes.append(f"LANGUAGE {language}")
            routine.language = language

        if routine.security_definer is None:
            routine.security_definer = False
            changes.append("SECURITY INVOKER")

        body = canonical_body(routine.body)
        if body != routine.body:
            routine.body = body
            changes.append("тело обрезано")

        options = [self._set_option(o) for o in routine.set_options]
        if options != routine.set_options:
            routine.set_options = options
            changes.append("SET")

        if isinstance(routine, Function):
            changes.extend(self._function_defaults(routine, language))

        return changes

    @staticmethod
    def _set_option(option: str) -> str:
        m = _SET_OPTION_RE.match(option.strip())
        if not m:
            return option.strip()
        return f"{m.group(1).lower()} TO {m.group(2).strip()}"

    @staticmethod
    def _function_defaults(func: Function, language: str) -> List[str]:
        changes = []

        if func.volatility is None:
            func.volatility = "VOLATILE"
            changes.append("VOLATILE")
        else:
            func.volatility = func.volatility.upper()

        if func.parallel == "UNSAFE":
            func.parallel = None
            changes.append("PARALLEL UNSAFE опущен")

        # COST по умолчанию: 1 для C/internal, 100 для остальных языков
        default_cost = "1" if language in ("c", "internal") else "100"
        if func.cost is not None and func.cost == default_cost:
            func.cost = None
            changes.append(f"COST {default_cost} опущен")

        if func.rows is not None and func.rows == "1000":
            func.rows = None
            changes.append("ROWS 1000 опущен")

        return changes
