from .formatter import DumpFormatter, DumpStep
from .sql_generator import SQLGenerator, dollar_quote
from .view_formatter import ViewFormatter

__all__ = [
    "DumpFormatter",
    "DumpStep",
    "SQLGenerator",
    "ViewFormatter",
    "dollar_quote",
]
