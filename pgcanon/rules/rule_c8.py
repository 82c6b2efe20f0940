from typing import List

from pgcanon.core.models import Catalog
from pgcanon.rules.base import BaseRule


class RuleC8(BaseRule):
    RULE_ID = "C8"
    RULE_NAME = "Канонизация политик RLS"
    RULE_DESCRIPTION = (
        "Команда политики по умолчанию — ALL, роли по умолчанию — PUBLIC."
    )

    def apply(self, catalog: Catalog) -> List[dict]:

        rewrites = []

        for policy in catalog.policies.values():

            if policy.command is None:
                policy.command = "ALL"
                rewrites.append(self.rewrite(policy, "FOR ALL"))

            if not policy.roles:
                policy.roles = ["PUBLIC"]
                rewrites.append(self.rewrite(policy, "TO PUBLIC"))

        return rewrites
