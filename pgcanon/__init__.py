"""
pgcanon — канонизация схем PostgreSQL.

Разворачивание директив \\i, разбор DDL в объектную модель, приведение
к каноническому виду в стиле pg_dump и сравнение фикстур.
"""

from .core.constants import VERSION
from .core.config import load_config
from .core.exceptions import PgCanonError
from .pipeline import FixtureComparator, Reporter, SchemaProcessor

__version__ = VERSION

__all__ = [
    "__version__",
    "load_config",
    "PgCanonError",
    "SchemaProcessor",
    "FixtureComparator",
    "Reporter",
]
