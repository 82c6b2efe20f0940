from .base import BaseRule
from .registry import RuleRegistry

from .rule_c1 import RuleC1
from .rule_c2 import RuleC2
from .rule_c3 import RuleC3
from .rule_c4 import RuleC4
from .rule_c5 import RuleC5
from .rule_c6 import RuleC6
from .rule_c7 import RuleC7
from .rule_c8 import RuleC8
from .rule_c9 import RuleC9

DEFAULT_RULES = [
    RuleC1,
    RuleC2,
    RuleC3,
    RuleC4,
    RuleC5,
    RuleC6,
    RuleC7,
    RuleC8,
    RuleC9,
]

__all__ = [
    "BaseRule",
    "RuleRegistry",
    "RuleC1",
    "RuleC2",
    "RuleC3",
    "RuleC4",
    "RuleC5",
    "RuleC6",
    "RuleC7",
    "RuleC8",
    "RuleC9",
    "DEFAULT_RULES",
]
