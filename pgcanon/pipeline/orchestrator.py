"""
Координатор конвейера канонизации и сравнения фикстур.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..comparison import Delta, GraphComparator, TextComparator, TextDiffResult
from ..core.config import build_config
from ..core.exceptions import ComparisonError, PgCanonError, handle_exception
from ..core.ignore import ObjectFilter
from ..core.models import Catalog
from ..dump import DumpFormatter
from ..graph import GraphBuilder, SchemaGraph
from ..include import IncludeProcessor
from ..parser import SQLParser
from ..rules import DEFAULT_RULES, RuleRegistry
from .reporter import Reporter

logger = logging.getLogger(__name__)


@dataclass
class ProcessingResult:
    """Результат прогона одной схемы через конвейер."""
    name: str
    source_sql: str
    catalog: Catalog
    graph: SchemaGraph
    canonical_sql: str
    rewrites: List[Dict[str, Any]] = field(default_factory=list)
    statistics: List[Dict[str, Any]] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    included_files: List[str] = field(default_factory=list)
    ignored: List[str] = field(default_factory=list)


class SchemaProcessor:
    """
    Полный конвейер для одной схемы:
    \\i -> операторы -> Catalog -> правила C1..C9 -> граф -> дамп.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = build_config(config)

        self.graph_builder = GraphBuilder()
        self.object_filter = ObjectFilter(self.config)
        self.formatter = DumpFormatter(self.config)

        self.registry = RuleRegistry(self.config)
        self.registry.register_rules(DEFAULT_RULES)

        self.included_files: List[str] = []
        self.skipped: List[str] = []
        self.ignored: List[str] = []
        self.last_rewrites: Dict[str, Any] = {}

        self.stats: Dict[str, float] = {
            "include_time": 0.0,
            "parsing_time": 0.0,
            "canonicalization_time": 0.0,
            "graph_building_time": 0.0,
            "formatting_time": 0.0,
            "total_time": 0.0,
        }

    # ==========================================================
    # ЭТАПЫ
    # ==========================================================

    def expand(self, path: Union[str, Path]) -> str:
        """Разворачивает \\i, начиная с корневого файла."""
        t0 = time.perf_counter()

        # базовый каталог у каждого корневого файла свой
        processor = IncludeProcessor()
        text = processor.process_file(path)
        self.included_files = [str(p) for p in processor.included_files]

        self.stats["include_time"] += time.perf_counter() - t0
        logger.debug("%s: подключено файлов %d", path, len(self.included_files))
        return text

    def parse(self, sql_text: str) -> Catalog:
        t0 = time.perf_counter()

        parser = SQLParser(self.config)
        catalog = parser.parse(sql_text)
        self.skipped = list(parser.skipped)
        self.ignored = self.object_filter.apply(catalog)

        self.stats["parsing_time"] += time.perf_counter() - t0
        logger.debug("Каталог: %s", catalog.summary())
        return catalog

    def canonicalize(self, catalog: Catalog) -> Dict[str, Any]:
        """Применяет правила канонизации к каталогу (на месте)."""
        t0 = time.perf_counter()
        result = self.registry.apply_all(catalog)
        self.stats["canonicalization_time"] += time.perf_counter() - t0

        self.last_rewrites = result
        for rewrite in result.get("rewrites", []):
            logger.debug("%s %s: %s", rewrite.get("rule"), rewrite.get("object", ""), rewrite.get("message"))
        return result

    def build_graph(self, catalog: Catalog, name: str = "") -> SchemaGraph:
        t0 = time.perf_counter()
        graph = self.graph_builder.build_from_catalog(catalog, name)
        self.stats["graph_building_time"] += time.perf_counter() - t0
        return graph

    # ==========================================================
    # PUBLIC API
    # ==========================================================

    def process_text(self, sql_text: str, name: str = "schema") -> ProcessingResult:
        total_start = time.perf_counter()

        catalog = self.parse(sql_text)
        result = self.canonicalize(catalog)
        graph = self.build_graph(catalog, name)

        t0 = time.perf_counter()
        canonical = self.formatter.format_single_file(catalog, graph)
        self.stats["formatting_time"] += time.perf_counter() - t0

        self.stats["total_time"] += time.perf_counter() - total_start

        return ProcessingResult(
            name=name,
            source_sql=sql_text,
            catalog=catalog,
            graph=graph,
            canonical_sql=canonical,
            rewrites=result.get("rewrites", []),
            statistics=result.get("statistics", []),
            skipped=list(self.skipped),
            included_files=list(self.included_files),
            ignored=list(self.ignored),
        )

    def process_file(self, path: Union[str, Path]) -> ProcessingResult:
        t0 = time.perf_counter()
        sql_text = self.expand(path)
        self.stats["total_time"] += time.perf_counter() - t0
        return self.process_text(sql_text, name=Path(path).name)

    def dump_multi_file(
        self,
        path: Union[str, Path],
        out_dir: Union[str, Path],
        main_file: str = "main.sql",
    ) -> List[Path]:
        """Канонический дамп схемы в виде каталога файлов с главным файлом \\i."""
        result = self.process_file(path)

        t0 = time.perf_counter()
        files = self.formatter.format_multi_file(result.catalog, result.graph, main_file=main_file)
        written = self.formatter.write_files(files, out_dir)
        self.stats["formatting_time"] += time.perf_counter() - t0

        logger.info("Дамп записан в %s: %d файлов", out_dir, len(written))
        return written

    def reset_stats(self) -> None:
        for key in self.stats:
            self.stats[key] = 0.0


class FixtureComparator:
    """
    Сравнение входной фикстуры с ожидаемой.

    Обе стороны проходят конвейер SchemaProcessor (ожидаемая — только при
    canonicalize_expected), затем сравниваются текст дампов и графы.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = build_config(config)
        self.processor = SchemaProcessor(self.config)
        self.text_comparator = TextComparator(self.config)
        self.graph_comparator = GraphComparator()
        self.reporter = Reporter(self.config)

    def compare(self, input_path: Union[str, Path], expected_path: Union[str, Path]) -> Dict[str, Any]:
        self.processor.reset_stats()
        total_start = time.perf_counter()

        try:
            # ---------- Этап 1: входная схема ----------
            actual = self.processor.process_file(input_path)

            # ---------- Этап 2: ожидаемая схема ----------
            if self.config["canonicalize_expected"]:
                expected = self.processor.process_file(expected_path)
                expected_text = expected.canonical_sql
                expected_graph = expected.graph
                expected_rewrites = expected.rewrites
            else:
                expected_text = self._read_expected(expected_path)
                expected_catalog = self.processor.parse(expected_text)
                expected_graph = self.processor.build_graph(expected_catalog, Path(expected_path).name)
                expected_rewrites = []

            # ---------- Этап 3: сравнение ----------
            t0 = time.perf_counter()
            text_result = self.text_comparator.compare(
                actual.canonical_sql, expected_text,
                label_a=str(input_path), label_b=str(expected_path),
            )
            delta = self.graph_comparator.compare(actual.graph, expected_graph)
            comparison_time = time.perf_counter() - t0

        except PgCanonError as e:
            logger.error("Сравнение %s и %s прервано: %s", input_path, expected_path, e)
            return self.reporter.build_error_report(
                handle_exception(e), input_path=str(input_path), expected_path=str(expected_path),
            )

        performance = dict(self.processor.stats)
        performance["comparison_time"] = comparison_time
        performance["total_time"] = time.perf_counter() - total_start

        return self.reporter.build_report(
            input_path=str(input_path),
            expected_path=str(expected_path),
            text_result=text_result,
            delta=delta,
            rewrites={"input": actual.rewrites, "expected": expected_rewrites},
            skipped=actual.skipped,
            ignored=actual.ignored,
            performance=performance,
            equivalent=is_equivalent(
                text_result, delta, strict_text=not self.config["canonicalize_expected"],
            ),
        )

    @staticmethod
    def _read_expected(path: Union[str, Path]) -> str:
        try:
            return Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ComparisonError(f"Не удалось прочитать ожидаемый файл: {e}", expected_path=str(path)) from e


def is_equivalent(text_result: TextDiffResult, delta: Delta, strict_text: bool = False) -> bool:
    """
    Текст совпадает после нормализации пробелов; при сравнении двух
    канонизированных сторон дополнительно не должно быть различий в графах.
    """
    if strict_text:
        return text_result.equal
    return text_result.equal and delta.is_empty()
