from .orchestrator import FixtureComparator, ProcessingResult, SchemaProcessor, is_equivalent
from .reporter import Reporter

__all__ = [
    "SchemaProcessor",
    "ProcessingResult",
    "FixtureComparator",
    "is_equivalent",
    "Reporter",
]
