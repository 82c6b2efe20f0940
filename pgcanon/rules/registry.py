"""
Реестр правил канонизации.
Управляет регистрацией, конфигурацией и применением правил.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Type

from ..core.exceptions import CanonicalizationError
from ..core.models import Catalog
from .base import BaseRule

logger = logging.getLogger(__name__)

# общие ключи конфигурации, которые получает каждое правило
_SHARED_KEYS = ("target_schema", "keep_sequence_start")


class RuleRegistry:
    """
    Реестр для управления правилами канонизации.

    config — общая конфигурация системы; раздел "rules" задаёт
    порядок (rule_order, custom_order) и настройки отдельных правил
    ("C4": {"enabled": false}).
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self._rules: Dict[str, BaseRule] = {}
        self._rule_classes: Dict[str, Type[BaseRule]] = {}
        self._init_defaults()

    def _init_defaults(self) -> None:
        self.config.setdefault("rules", {})
        defaults = {
            "rule_order": "by_id",  # by_id | custom
            "custom_order": [],
        }
        for k, v in defaults.items():
            self.config["rules"].setdefault(k, v)

    def register_rule(self, rule_class: Type[BaseRule], rule_config: Optional[Dict[str, Any]] = None) -> None:
        if not issubclass(rule_class, BaseRule):
            raise TypeError(f"{rule_class} должен быть подклассом BaseRule")

        rule_id = rule_class.RULE_ID
        config = {k: self.config[k] for k in _SHARED_KEYS if k in self.config}

        # глобальная конфигурация под правило
        per_rule = self.config["rules"].get(rule_id)
        if isinstance(per_rule, dict):
            config.update(per_rule)
        config.update(rule_config or {})

        instance = rule_class(config)
        if not instance.validate():
            raise ValueError(f"Правило {rule_id} не прошло валидацию")

        self._rules[rule_id] = instance
        self._rule_classes[rule_id] = rule_class

    def register_rules(self, rules: List[Type[BaseRule]], configs: Optional[Dict[str, Dict[str, Any]]] = None) -> None:
        configs = configs or {}
        for rc in rules:
            self.register_rule(rc, configs.get(rc.RULE_ID, {}))

    def get_rule(self, rule_id: str) -> Optional[BaseRule]:
        return self._rules.get(rule_id)

    def get_enabled_rules(self) -> List[BaseRule]:
        return [r for r in self._rules.values() if r.is_enabled()]

    def list_rules(self) -> List[Dict[str, Any]]:
        return [r.get_info() for r in self._order_rules(list(self._rules.values()))]

    def _order_rules(self, rules: List[BaseRule]) -> List[BaseRule]:
        order = self.config["rules"].get("rule_order", "by_id")

        if order == "by_id":
            return sorted(rules, key=lambda r: int(r.RULE_ID[1:]) if r.RULE_ID[1:].isdigit() else 10_000)

        # custom: порядок задаётся списком ids
        if order == "custom":
            custom = self.config["rules"].get("custom_order", [])
            index = {rid: i for i, rid in enumerate(custom)}
            return sorted(rules, key=lambda r: index.get(r.RULE_ID, 10_000))

        return rules

    def apply_all(self, catalog: Catalog) -> Dict[str, Any]:
        if not self._rules:
            return {"rewrites": [], "statistics": [], "summary": {"total_rewrites": 0}}

        enabled = self.get_enabled_rules()
        ordered = self._order_rules(enabled)

        all_rewrites: List[Dict[str, Any]] = []
        stats: List[Dict[str, Any]] = []

        for rule in ordered:
            try:
                raw = rule.apply(catalog)
            except Exception as e:
                logger.exception("Правило %s завершилось ошибкой", rule.RULE_ID)
                raise CanonicalizationError(str(e), rule_id=rule.RULE_ID, rule_name=rule.RULE_NAME) from e

            raw = [r for r in raw or [] if isinstance(r, dict)]
            processed = rule.post_process_rewrites(raw)
            all_rewrites.extend(processed)

            logger.debug("%s: переписываний %d", rule.RULE_ID, len(raw))
            stats.append({
                "rule_id": rule.RULE_ID,
                "rule_name": rule.RULE_NAME,
                "applied": True,
                "rewrites": len(raw),
            })

        summary = {
            "total_rewrites": len(all_rewrites),
            "total_rules": len(self._rules),
            "enabled_rules": len(enabled),
        }

        return {"rewrites": all_rewrites, "statistics": stats, "summary": summary}
