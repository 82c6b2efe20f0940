"""
text_diff.py

Текстовое сравнение канонических дампов: нормализация пробельных
символов и унифицированный diff (difflib).
"""

from __future__ import annotations

import difflib
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pgcanon.parser.normalizer import SQLNormalizer

_WS_RE = re.compile(r"\s+")


@dataclass
class TextDiffResult:
    equal: bool
    equal_ignoring_whitespace: bool
    diff: List[str] = field(default_factory=list)
    truncated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "equal": self.equal,
            "equal_ignoring_whitespace": self.equal_ignoring_whitespace,
            "diff": list(self.diff),
            "truncated": self.truncated,
        }


class TextComparator:
    """
    Сравнение "байт в байт" после нормализации концов строк,
    хвостовых пробелов и серий пустых строк.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.config.setdefault("max_diff_lines", 200)
        self.normalizer = SQLNormalizer()

    def normalize(self, text: str) -> str:
        return self.normalizer.normalize_whitespace(text)

    @staticmethod
    def collapse(text: str) -> str:
        return _WS_RE.sub(" ", text).strip()

    def compare(
        self,
        text_a: str,
        text_b: str,
        label_a: str = "input",
        label_b: str = "expected",
    ) -> TextDiffResult:
        norm_a = self.normalize(text_a)
        norm_b = self.normalize(text_b)

        if norm_a == norm_b:
            return TextDiffResult(equal=True, equal_ignoring_whitespace=True)

        diff = list(difflib.unified_diff(
            norm_a.splitlines(),
            norm_b.splitlines(),
            fromfile=label_a,
            tofile=label_b,
            lineterm="",
        ))

        limit = self.config["max_diff_lines"]
        truncated = bool(limit) and len(diff) > limit
        if truncated:
            diff = diff[:limit]

        return TextDiffResult(
            equal=False,
            equal_ignoring_whitespace=self.collapse(norm_a) == self.collapse(norm_b),
            diff=diff,
            truncated=truncated,
        )
