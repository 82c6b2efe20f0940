"""
reporter.py

Построение и экспорт отчётов сравнения фикстур.

Контракт отчёта:
    metadata     — время, инструмент, версия, пути к файлам, статус
    summary      — equivalent / text_equal / semantic_equal и счётчики
    text_diff    — унифицированный diff канонических текстов
    delta        — различия графов (объекты и рёбра)
    rewrites     — переписывания, применённые правилами канонизации
    performance  — время этапов

Экспорт: json / text / markdown.
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..comparison import Delta, TextDiffResult
from ..core.constants import TOOL_NAME, VERSION


class Reporter:
    """
    Построитель и экспортёр отчётов.
    """

    FORMATS = ("json", "text", "markdown")

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.max_items_in_text = int(self.config.get("max_items_in_text", 20))
        self.tool_name = self.config.get("tool_name", TOOL_NAME)
        self.version = self.config.get("version", VERSION)

    # ---------------------------------------------------------------------
    # 1) BUILD REPORT
    # ---------------------------------------------------------------------

    def build_report(
            self,
            *,
            input_path: str,
            expected_path: str,
            text_result: TextDiffResult,
            delta: Delta,
            equivalent: bool,
            rewrites: Optional[Dict[str, List[Dict[str, Any]]]] = None,
            skipped: Optional[List[str]] = None,
            ignored: Optional[List[str]] = None,
            performance: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Формирует единый отчёт сравнения.

        Args:
            input_path / expected_path: сравниваемые файлы
            text_result: результат TextComparator.compare
            delta: результат GraphComparator.compare
            equivalent: итоговый вердикт
            rewrites: {"input": [...], "expected": [...]}
            skipped: операторы, пропущенные парсером
            ignored: объекты, исключённые шаблонами ignore
            performance: время этапов
        """
        rewrites = rewrites or {}
        delta_summary = delta.summary()

        return {
            "metadata": self._metadata("OK", input_path, expected_path),
            "summary": {
                "equivalent": bool(equivalent),
                "text_equal": text_result.equal,
                "text_equal_ignoring_whitespace": text_result.equal_ignoring_whitespace,
                "semantic_equal": delta.is_empty(),
                "objects_added": delta_summary["objects_added"],
                "objects_removed": delta_summary["objects_removed"],
                "objects_modified": delta_summary["objects_modified"],
                "diff_lines": len(text_result.diff),
            },
            "text_diff": text_result.to_dict(),
            "delta": delta.to_dict(),
            "rewrites": {
                side: {"total": len(items), "list": items}
                for side, items in (("input", rewrites.get("input", [])), ("expected", rewrites.get("expected", [])))
            },
            "skipped": list(skipped or []),
            "ignored": list(ignored or []),
            "performance": performance or {},
        }

    def build_error_report(
            self,
            error: Dict[str, Any],
            *,
            input_path: Optional[str] = None,
            expected_path: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Отчёт об ошибке обработки: сравнение не состоялось, схемы не эквивалентны."""
        return {
            "metadata": self._metadata("ERROR", input_path, expected_path),
            "error": {
                "message": error.get("error", ""),
                "code": error.get("code", "UNKNOWN_ERROR"),
                "details": error.get("details", {}),
            },
            "summary": {
                "equivalent": False,
                "text_equal": False,
                "semantic_equal": False,
            },
            "text_diff": {},
            "delta": {},
            "rewrites": {},
            "skipped": [],
            "ignored": [],
            "performance": {},
        }

    def _metadata(self, status: str, input_path: Optional[str], expected_path: Optional[str]) -> Dict[str, Any]:
        return {
            "timestamp": datetime.now().isoformat(),
            "tool": self.tool_name,
            "version": self.version,
            "status": status,
            "input": input_path,
            "expected": expected_path,
        }

    # ---------------------------------------------------------------------
    # 2) EXPORT
    # ---------------------------------------------------------------------

    def export(
            self,
            report: Dict[str, Any],
            *,
            format: str = "json",
            output_file: Optional[Union[str, Path]] = None
    ) -> str:
        """
        Экспорт отчёта в заданном формате.

        Args:
            report: отчёт
            format: json | text | markdown
            output_file: если задан — сохраняет в файл и возвращает пустую строку

        Returns:
            строка отчёта (если output_file=None)
        """
        fmt = (format or "json").lower().strip()

        if fmt == "json":
            output = self._export_json(report)
        elif fmt == "text":
            output = self._export_text(report)
        elif fmt == "markdown":
            output = self._export_markdown(report)
        else:
            raise ValueError(f"Неподдерживаемый формат: {format}. Доступные: {', '.join(self.FORMATS)}")

        if output_file:
            path = Path(output_file)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(output, encoding="utf-8")
            return ""
        return output

    def _export_json(self, report: Dict[str, Any]) -> str:
        return json.dumps(report, indent=2, ensure_ascii=False)

    def _export_text(self, report: Dict[str, Any]) -> str:
        summary = report.get("summary", {}) or {}
        metadata = report.get("metadata", {}) or {}
        delta = report.get("delta", {}) or {}
        text_diff = report.get("text_diff", {}) or {}

        out: List[str] = []
        out.append("=" * 70)
        out.append("ОТЧЁТ О СРАВНЕНИИ СХЕМ")
        out.append("=" * 70)
        out.append("")
        out.append("МЕТАДАННЫЕ:")
        out.append(f"  Время анализа: {metadata.get('timestamp', 'N/A')}")
        out.append(f"  Версия инструмента: {metadata.get('version', 'N/A')}")
        out.append(f"  Инструмент: {metadata.get('tool', 'N/A')}")
        out.append(f"  Входной файл: {metadata.get('input', 'N/A')}")
        out.append(f"  Ожидаемый файл: {metadata.get('expected', 'N/A')}")
        out.append("")

        error = report.get("error")
        if error:
            out.append("ОШИБКА:")
            out.append(f"  [{error.get('code')}] {error.get('message')}")
            out.append("\n" + "=" * 70)
            return "\n".join(out)

        out.append("СВОДКА:")
        out.append(f"  Схемы эквивалентны: {'ДА' if summary.get('equivalent') else 'НЕТ'}")
        out.append(f"  Текст совпадает: {'ДА' if summary.get('text_equal') else 'НЕТ'}")
        out.append(f"  Объекты совпадают: {'ДА' if summary.get('semantic_equal') else 'НЕТ'}")
        out.append("")

        for title, key in (
            ("ЛИШНИЕ ОБЪЕКТЫ (только во входной схеме)", "objects_removed"),
            ("НЕДОСТАЮЩИЕ ОБЪЕКТЫ (только в ожидаемой схеме)", "objects_added"),
        ):
            items = delta.get(key) or []
            if items:
                out.append(f"{title}:")
                out.extend(self._limited([f"  - {item}" for item in items]))
                out.append("")

        modified = delta.get("objects_modified") or []
        if modified:
            out.append("ИЗМЕНЁННЫЕ ОБЪЕКТЫ:")
            lines: List[str] = []
            for m in modified:
                lines.append(f"  - {m['object']}")
                for field_name, change in m.get("changes", {}).items():
                    lines.append(f"      {field_name}: {change.get('before')!r} -> {change.get('after')!r}")
            out.extend(self._limited(lines))
            out.append("")

        diff = text_diff.get("diff") or []
        if diff:
            out.append("РАЗЛИЧИЯ ТЕКСТА:")
            out.extend(diff)
            if text_diff.get("truncated"):
                out.append("  ... diff обрезан")

        perf = report.get("performance", {})
        if perf:
            out.append("\n" + "=" * 70)
            out.append("ПРОИЗВОДИТЕЛЬНОСТЬ:")
            out.append(f"  Общее время: {perf.get('total_time', 0):.4f}с")
            out.append(f"  Подключение файлов: {perf.get('include_time', 0):.4f}с")
            out.append(f"  Парсинг: {perf.get('parsing_time', 0):.4f}с")
            out.append(f"  Канонизация: {perf.get('canonicalization_time', 0):.4f}с")
            out.append(f"  Построение графов: {perf.get('graph_building_time', 0):.4f}с")
            out.append(f"  Форматирование: {perf.get('formatting_time', 0):.4f}с")
            out.append(f"  Сравнение: {perf.get('comparison_time', 0):.4f}с")

        out.append("\n" + "=" * 70)
        return "\n".join(out)

    def _export_markdown(self, report: Dict[str, Any]) -> str:
        """Экспорт в Markdown формат."""
        summary = report.get("summary", {}) or {}
        metadata = report.get("metadata", {}) or {}
        delta = report.get("delta", {}) or {}
        text_diff = report.get("text_diff", {}) or {}

        out: List[str] = []
        out.append("# Отчёт о сравнении схем")
        out.append("")

        out.append("## Метаданные")
        out.append(f"- **Время анализа:** {metadata.get('timestamp', 'N/A')}")
        out.append(f"- **Версия инструмента:** {metadata.get('version', 'N/A')}")
        out.append(f"- **Входной файл:** `{metadata.get('input', 'N/A')}`")
        out.append(f"- **Ожидаемый файл:** `{metadata.get('expected', 'N/A')}`")
        out.append("")

        error = report.get("error")
        if error:
            out.append("## Ошибка")
            out.append(f"`{error.get('code')}`: {error.get('message')}")
            return "\n".join(out) + "\n"

        out.append("## Сводка")
        out.append(f"- **Схемы эквивалентны:** {'да' if summary.get('equivalent') else '**НЕТ**'}")
        out.append(f"- **Текст совпадает:** {'да' if summary.get('text_equal') else 'нет'}")
        out.append(f"- **Объекты совпадают:** {'да' if summary.get('semantic_equal') else 'нет'}")
        out.append("")

        changes = (
            [("Лишний", item) for item in delta.get("objects_removed") or []]
            + [("Недостающий", item) for item in delta.get("objects_added") or []]
            + [("Изменён", m["object"]) for m in delta.get("objects_modified") or []]
        )
        out.append("## Различия объектов")
        if not changes:
            out.append("Различий не обнаружено.")
        else:
            out.append("| Изменение | Объект |")
            out.append("|---|---|")
            for kind, obj in changes:
                out.append(f"| {kind} | `{obj}` |")
        out.append("")

        diff = text_diff.get("diff") or []
        if diff:
            out.append("## Различия текста")
            out.append("```diff")
            out.extend(diff)
            out.append("```")
            out.append("")

        perf = report.get("performance", {})
        if perf:
            out.append("## Производительность")
            for key, value in perf.items():
                out.append(f"- **{key}:** {value:.4f}с")
            out.append("")

        return "\n".join(out)

    def _limited(self, lines: List[str]) -> List[str]:
        if len(lines) <= self.max_items_in_text:
            return lines
        rest = len(lines) - self.max_items_in_text
        return lines[: self.max_items_in_text] + [f"  ... и ещё {rest}"]
