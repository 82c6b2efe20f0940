from typing import List

from pgcanon.core.models import Catalog, Sequence
from pgcanon.rules.base import BaseRule
from pgcanon.utils.naming import choose_name, qualify, quote_literal
from pgcanon.utils.types import is_serial_type, serial_base_type


class RuleC1(BaseRule):
    RULE_ID = "C1"
    RULE_NAME = "Раскрытие SERIAL"
    RULE_DESCRIPTION = (
        "Колонки SERIAL/BIGSERIAL/SMALLSERIAL заменяются целым типом "
        "с NOT NULL, DEFAULT nextval(...) и принадлежащей колонке последовательностью."
    )

    def apply(self, catalog: Catalog) -> List[dict]:

        rewrites = []

        for table in catalog.tables.values():
            for column in table.columns.values():

                if not is_serial_type(column.data_type):
                    continue

                original = column.data_type
                base = serial_base_type(original)

                taken = [
                    s.name for s in catalog.sequences.values() if s.schema == table.schema
                ] + [
                    t.name for t in catalog.tables.values() if t.schema == table.schema
                ]
                seq_name = choose_name(table.name, column.name, "seq", taken)

                seq = Sequence(
                    name=seq_name,
                    schema=table.schema,
                    data_type=base,
                    owned_by_table=table.name,
                    owned_by_column=column.name,
                    position=table.position,
                )
                catalog.add(seq)

                seq_ref = qualify(table.schema, seq_name, self.target_schema)
                column.data_type = base
                column.not_null = True
                column.default = f"nextval({quote_literal(seq_ref)}::regclass)"

                rewrites.append(self.rewrite(
                    column,
                    f"{original} раскрыт в {base} с последовательностью {seq_name}",
                    before=original,
                    after=base,
                ))

        return rewrites
