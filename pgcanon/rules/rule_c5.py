from typing import Dict, List, Tuple

from pgcanon.core.models import Catalog, Sequence
from pgcanon.rules.base import BaseRule

# (min, max) для последовательностей по типу
_TYPE_BOUNDS: Dict[str, Tuple[int, int]] = {
    "smallint": (-32768, 32767),
    "integer": (-2147483648, 2147483647),
    "bigint": (-9223372036854775808, 9223372036854775807),
}


class RuleC5(BaseRule):
    RULE_ID = "C5"
    RULE_NAME = "Канонизация последовательностей"
    RULE_DESCRIPTION = (
        "Начальное значение последовательности отбрасывается; "
        "параметры, совпадающие со значениями по умолчанию "
        "(AS bigint, INCREMENT BY 1, MINVALUE, MAXVALUE, CACHE 1), опускаются."
    )

    def _init_config(self) -> None:
        super()._init_config()
        self.config.setdefault("keep_sequence_start", False)

    def apply(self, catalog: Catalog) -> List[dict]:

        rewrites = []

        for seq in catalog.sequences.values():
            dropped = self._drop_defaults(seq)
            if dropped:
                rewrites.append(self.rewrite(seq, f"опущены параметры: {', '.join(dropped)}"))

        return rewrites

    def _drop_defaults(self, seq: Sequence) -> List[str]:
        dropped = []

        data_type = seq.data_type or "bigint"
        increment = seq.increment if seq.increment is not None else 1
        low, high = _TYPE_BOUNDS.get(data_type, _TYPE_BOUNDS["bigint"])

        if seq.start is not None and not self.config["keep_sequence_start"]:
            seq.start = None
            dropped.append("START")

        if seq.data_type == "bigint":
            seq.data_type = None
            dropped.append("AS")

        if seq.increment == 1:
            seq.increment = None
            dropped.append("INCREMENT")

        default_min = 1 if increment > 0 else low
        default_max = high if increment > 0 else -1

        if seq.min_value is not None and seq.min_value == default_min:
            seq.min_value = None
            dropped.append("MINVALUE")

        if seq.max_value is not None and seq.max_value == default_max:
            seq.max_value = None
            dropped.append("MAXVALUE")

        if seq.cache == 1:
            seq.cache = None
            dropped.append("CACHE")

        return dropped
