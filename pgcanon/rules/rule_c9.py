from typing import List

from pgcanon.core.models import Catalog
from pgcanon.dump.view_formatter import ViewFormatter
from pgcanon.rules.base import BaseRule


class RuleC9(BaseRule):
    RULE_ID = "C9"
    RULE_NAME = "Канонизация представлений"
    RULE_DESCRIPTION = (
        "Тело представления переписывается в раскладку планировщика "
        "(pg_get_viewdef): один столбец на строку, JOIN с отступом, "
        "явные AS у столбцов; хвостовые ';' отбрасываются."
    )

    def __init__(self, config=None):
        super().__init__(config)
        self.formatter = ViewFormatter()

    def apply(self, catalog: Catalog) -> List[dict]:

        rewrites = []

        for view in catalog.views.values():
            body = self.formatter.format(view.body)
            if body != view.body:
                view.body = body
                rewrites.append(self.rewrite(view, "тело представления приведено к раскладке планировщика"))

            options = sorted(view.options)
            if options != view.options:
                view.options = options
                rewrites.append(self.rewrite(view, "параметры WITH упорядочены"))

        return rewrites
