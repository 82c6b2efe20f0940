"""
Базовый класс для правил канонизации.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..core.constants import DEFAULT_SCHEMA
from ..core.models import Catalog, DatabaseObject
from ..parser.normalizer import SQLNormalizer


class BaseRule(ABC):
    """
    Абстрактный базовый класс для всех правил канонизации.

    Каждое правило C_i представляет собой преобразование каталога:
    C_i(K) → K'
    и возвращает список применённых переписываний {w_i} (пустой, если
    каталог уже находится в канонической форме по этому правилу).
    """

    RULE_ID: str = ""
    RULE_NAME: str = ""
    RULE_DESCRIPTION: str = ""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self._init_config()
        self.normalizer = SQLNormalizer()

    def _init_config(self) -> None:
        defaults = {
            "enabled": True,
            "target_schema": DEFAULT_SCHEMA,
            "max_reports_per_rule": 500,
        }
        for k, v in defaults.items():
            self.config.setdefault(k, v)

    @property
    def target_schema(self) -> str:
        return self.config["target_schema"]

    @abstractmethod
    def apply(self, catalog: Catalog) -> List[Dict[str, Any]]:
        """
        Применяет правило к каталогу (на месте).
        Возвращает список переписываний (list[dict]).
        """
        raise NotImplementedError

    def rewrite(self, obj: DatabaseObject, message: str, before: Any = None, after: Any = None) -> Dict[str, Any]:
        """Запись об одном переписывании."""
        record: Dict[str, Any] = {
            "object_type": obj.type.value,
            "object": obj.qualified_name if not obj.parent else f"{obj.schema}.{obj.parent}.{obj.name}",
            "message": message,
        }
        if before is not None or after is not None:
            record["before"] = before
            record["after"] = after
        return record

    def post_process_rewrites(self, rewrites: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Унификация и постобработка: лимиты, rule/rule_name.
        """
        if not rewrites or not isinstance(rewrites, list):
            return []

        normalized = [r for r in rewrites if isinstance(r, dict)]
        if not normalized:
            return []

        original_total = len(normalized)
        max_reports = int(self.config.get("max_reports_per_rule", 500))

        trimmed = normalized
        trimmed_flag = False
        if original_total > max_reports:
            trimmed = normalized[:max_reports]
            trimmed_flag = True

        for r in trimmed:
            r.setdefault("rule", self.RULE_ID)
            r.setdefault("rule_name", self.RULE_NAME)

        if trimmed_flag:
            trimmed.append({
                "rule": self.RULE_ID,
                "rule_name": self.RULE_NAME,
                "message": f"Применено {original_total} переписываний. Показаны первые {max_reports}.",
                "details": {
                    "total_rewrites": original_total,
                    "reported_rewrites": max_reports,
                },
            })

        return trimmed

    def get_info(self) -> Dict[str, Any]:
        return {
            "id": self.RULE_ID,
            "name": self.RULE_NAME,
            "description": self.RULE_DESCRIPTION,
            "enabled": self.is_enabled(),
            "class_name": self.__class__.__name__,
        }

    def is_enabled(self) -> bool:
        return bool(self.config.get("enabled", True))

    def validate(self) -> bool:
        return bool(self.RULE_ID and self.RULE_NAME and self.RULE_DESCRIPTION)

    def __str__(self) -> str:
        enabled = "✓" if self.is_enabled() else "✗"
        return f"[{enabled}] {self.RULE_ID}: {self.RULE_NAME}"

    def __repr__(self) -> str:
        return f"<Rule {self.RULE_ID}: {self.__class__.__name__}>"
