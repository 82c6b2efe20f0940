"""
Исключение объектов из дампа и сравнения по шаблонам имён.

Раздел конфигурации "ignore" задаёт для каждого вида объектов список
шаблонов fnmatch:

    ignore:
      tables:
        patterns: ["tmp_*", "!tmp_keep"]
      functions:
        patterns: ["debug_*"]

Шаблон с "!" возвращает объект, попавший под обычный шаблон.
Сравнивается имя объекта без схемы, с учётом регистра.
Вместе с таблицей или представлением уходят их индексы, политики,
триггеры и принадлежащие таблице последовательности; домены
подчиняются разделу types.
"""

from __future__ import annotations

import logging
from fnmatch import fnmatchcase
from typing import Any, Dict, List, Optional

from .constants import IGNORE_KINDS
from .models import Catalog, DatabaseObject

logger = logging.getLogger(__name__)


class ObjectFilter:
    """Удаляет из каталога объекты, попавшие под шаблоны "ignore"."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        section = (config or {}).get("ignore") or {}
        self.patterns: Dict[str, List[str]] = {
            kind: list((section.get(kind) or {}).get("patterns", []))
            for kind in IGNORE_KINDS
        }

    @property
    def is_empty(self) -> bool:
        return not any(self.patterns.values())

    def should_ignore(self, kind: str, name: str) -> bool:
        patterns = self.patterns.get(kind, [])
        included = any(fnmatchcase(name, p) for p in patterns if not p.startswith("!"))
        if not included:
            return False
        return not any(fnmatchcase(name, p[1:]) for p in patterns if p.startswith("!"))

    def apply(self, catalog: Catalog) -> List[str]:
        """Удаляет объекты на месте; возвращает описания удалённых."""
        if self.is_empty:
            return []

        removed: List[DatabaseObject] = []

        for kind, containers in (
            ("types", (catalog.types, catalog.domains)),
            ("sequences", (catalog.sequences,)),
            ("functions", (catalog.functions,)),
            ("procedures", (catalog.procedures,)),
        ):
            for container in containers:
                removed.extend(o for o in container.values() if self.should_ignore(kind, o.name))

        relations = [t for t in catalog.tables.values() if self.should_ignore("tables", t.name)]
        relations += [v for v in catalog.views.values() if self.should_ignore("views", v.name)]
        for relation in relations:
            removed.append(relation)
            removed.extend(self._attached(catalog, relation))

        seen = set()
        result: List[str] = []
        for obj in removed:
            if id(obj) in seen:
                continue
            seen.add(id(obj))
            catalog.remove(obj)
            result.append(f"{obj.type.value} {obj.qualified_name}")

        if result:
            logger.info("Исключено по шаблонам ignore: %d объектов", len(result))
            logger.debug("Исключены: %s", ", ".join(result))
        return result

    @staticmethod
    def _attached(catalog: Catalog, relation: DatabaseObject) -> List[DatabaseObject]:
        schema, name = relation.schema, relation.name
        attached: List[DatabaseObject] = []
        attached.extend(catalog.indexes_for(schema, name))
        attached.extend(catalog.policies_for(schema, name))
        attached.extend(t for t in catalog.triggers.values() if t.schema == schema and t.table == name)
        attached.extend(
            s for s in catalog.sequences.values()
            if s.schema == schema and s.owned_by_table == name
        )
        return attached
