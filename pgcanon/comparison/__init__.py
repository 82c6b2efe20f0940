"""
comparison — сравнение схем.

Экспортирует:
- GraphComparator: сравнение графов и построение Δ
- Delta / ModifiedObject: структура различий Δ = (O_added, O_removed, O_modified, E_added, E_removed)
- TextComparator / TextDiffResult: текстовое сравнение канонических дампов
"""

from .comparator import GraphComparator
from .delta import Delta, ModifiedObject
from .text_diff import TextComparator, TextDiffResult

__all__ = [
    "GraphComparator",
    "Delta",
    "ModifiedObject",
    "TextComparator",
    "TextDiffResult",
]
