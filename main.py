"""
main.py

Точка входа pgcanon: разворачивание \\i, канонический дамп и сравнение фикстур.

Запуск:
    python main.py expand schema/main.sql --out expanded.sql
    python main.py dump schema/main.sql
    python main.py dump schema/main.sql --multi-file --out dump/
    python main.py compare input/main.sql expected.sql --format markdown

Коды возврата: 0 — успех (схемы эквивалентны), 1 — схемы различаются,
2 — ошибка обработки.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from pgcanon.core.config import load_config
from pgcanon.core.constants import VERSION
from pgcanon.core.exceptions import PgCanonError
from pgcanon.core.logging_config import setup_logging
from pgcanon.pipeline import FixtureComparator, Reporter, SchemaProcessor

logger = logging.getLogger("pgcanon")

EXIT_OK = 0
EXIT_DIFFERENT = 1
EXIT_ERROR = 2


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="pgcanon",
        description="Канонизация и сравнение схем PostgreSQL",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument(
        "--config",
        help="YAML-файл конфигурации",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Подробный журнал (DEBUG)",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    # --- expand ---
    expand = sub.add_parser("expand", help="Развернуть директивы \\i в один файл")
    expand.add_argument("file", help="Корневой SQL-файл")
    expand.add_argument("--out", help="Файл результата (если не указан — вывод в stdout)")

    # --- dump ---
    dump = sub.add_parser("dump", help="Канонический дамп схемы")
    dump.add_argument("file", help="Корневой SQL-файл")
    dump.add_argument("--out", help="Файл (или каталог при --multi-file) для результата")
    dump.add_argument(
        "--multi-file",
        action="store_true",
        help="Файл на объект и главный файл с \\i (требует --out)",
    )
    dump.add_argument("--no-comments", action="store_true", help="Без заголовков '-- Name: ...'")
    dump.add_argument("--no-header", action="store_true", help="Без заголовка файла")
    dump.add_argument("--schema", help="Целевая схема (по умолчанию: public)")

    # --- compare ---
    compare = sub.add_parser("compare", help="Сравнить входную фикстуру с ожидаемой")
    compare.add_argument("input", help="Корневой SQL-файл входной схемы")
    compare.add_argument("expected", help="SQL-файл ожидаемой схемы")
    compare.add_argument(
        "--format",
        choices=list(Reporter.FORMATS),
        default="text",
        help="Формат отчёта (по умолчанию: text)",
    )
    compare.add_argument("--out", help="Файл для сохранения отчёта (если не указан — вывод в stdout)")
    compare.add_argument(
        "--raw-expected",
        action="store_true",
        help="Сравнивать с ожидаемым файлом как он написан, без канонизации",
    )
    compare.add_argument("--schema", help="Целевая схема (по умолчанию: public)")

    return parser.parse_args(argv)


def build_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Параметры командной строки поверх файла конфигурации."""
    overrides: Dict[str, Any] = {}
    if getattr(args, "schema", None):
        overrides["target_schema"] = args.schema
    if getattr(args, "no_comments", False):
        overrides["object_comments"] = False
    if getattr(args, "no_header", False):
        overrides["header"] = False
    if getattr(args, "raw_expected", False):
        overrides["canonicalize_expected"] = False
    return overrides


def write_output(text: str, out: Optional[str]) -> None:
    if out:
        path = Path(out)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    else:
        sys.stdout.write(text)


# ==========================================================
# КОМАНДЫ
# ==========================================================

def run_expand(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    processor = SchemaProcessor(config)
    text = processor.expand(args.file)
    if text and not text.endswith("\n"):
        text += "\n"
    write_output(text, args.out)
    return EXIT_OK


def run_dump(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    processor = SchemaProcessor(config)

    if args.multi_file:
        if not args.out:
            print("--multi-file требует --out КАТАЛОГ", file=sys.stderr)
            return EXIT_ERROR
        written = processor.dump_multi_file(args.file, args.out)
        logger.info("Записано файлов: %d", len(written))
        return EXIT_OK

    result = processor.process_file(args.file)
    write_output(result.canonical_sql, args.out)
    return EXIT_OK


def run_compare(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    comparator = FixtureComparator(config)
    report = comparator.compare(args.input, args.expected)

    output = comparator.reporter.export(report, format=args.format, output_file=args.out)
    if output:
        print(output)

    if "error" in report:
        error = report["error"]
        print(f"[{error['code']}] {error['message']}", file=sys.stderr)
        return EXIT_ERROR
    return EXIT_OK if report["summary"]["equivalent"] else EXIT_DIFFERENT


COMMANDS = {
    "expand": run_expand,
    "dump": run_dump,
    "compare": run_compare,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    try:
        config = load_config(args.config, build_overrides(args))
        setup_logging(config.get("logging", {}).get("level"), verbose=args.verbose)
        return COMMANDS[args.command](args, config)
    except PgCanonError as e:
        print(str(e), file=sys.stderr)
        return EXIT_ERROR
    except OSError as e:
        print(f"[IO_ERROR] {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
