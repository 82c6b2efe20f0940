from typing import List

from pgcanon.core.constants import TRIGGER_EVENT_ORDER
from pgcanon.core.models import Catalog, Trigger
from pgcanon.rules.base import BaseRule
from pgcanon.utils.naming import qualify, resolve_name


class RuleC7(BaseRule):
    RULE_ID = "C7"
    RULE_NAME = "Канонизация триггеров"
    RULE_DESCRIPTION = (
        "События упорядочиваются (INSERT, UPDATE, DELETE, TRUNCATE), "
        "EXECUTE PROCEDURE заменяется на EXECUTE FUNCTION, "
        "уровень по умолчанию — FOR EACH STATEMENT."
    )

    def apply(self, catalog: Catalog) -> List[dict]:

        rewrites = []

        for trigger in catalog.triggers.values():
            changes = self._canonicalize(trigger)
            if changes:
                rewrites.append(self.rewrite(trigger, "; ".join(changes)))

        return rewrites

    def _canonicalize(self, trigger: Trigger) -> List[str]:
        changes = []

        events = sorted(trigger.events, key=TRIGGER_EVENT_ORDER.index)
        if events != trigger.events:
            trigger.events = events
            changes.append("порядок событий")

        if trigger.level is None:
            trigger.level = "STATEMENT"
            changes.append("FOR EACH STATEMENT")

        if trigger.attributes.pop("execute_procedure", False):
            changes.append("EXECUTE PROCEDURE -> EXECUTE FUNCTION")

        name, _, rest = trigger.function.partition("(")
        args = rest[:-1] if rest.endswith(")") else rest
        schema, fname = resolve_name(name, trigger.schema)
        args = self.normalizer.normalize_expression(args) or ""
        function = f"{qualify(schema, fname, self.target_schema)}({args})"
        if function != trigger.function:
            trigger.function = function
            changes.append("вызов функции")

        return changes
