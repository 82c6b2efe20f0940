"""
include/processor.py

Разворачивание директив psql \\i (и \\ir) в один SQL-текст.

Правила:
- путь разрешается относительно каталога файла, в котором стоит директива;
- путь, оканчивающийся на "/", подключает каталог: все *.sql в алфавитном
  порядке, подкаталоги обходятся в глубину;
- выход за каталог корневого файла и компоненты ".." запрещены;
- повторный вход в файл, который уже находится в цепочке подключений,
  считается циклом; один и тот же файл из разных веток подключать можно.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import List, Optional, Union

from ..core.exceptions import (
    CircularIncludeError,
    IncludeError,
    IncludeNotFoundError,
    IncludePathError,
)

logger = logging.getLogger(__name__)

INCLUDE_RE = re.compile(r"^\s*\\ir?\s+([^\s;]+)\s*;?\s*$")


class IncludeProcessor:
    """
    Собирает логическую схему из корневого файла и подключаемых файлов.
    """

    def __init__(self, base_dir: Union[str, Path, None] = None, encoding: str = "utf-8"):
        self.base_dir: Optional[Path] = Path(base_dir).resolve() if base_dir else None
        self.encoding = encoding
        self.included_files: List[Path] = []
        self._stack: List[Path] = []

    # ==========================================================
    # PUBLIC API
    # ==========================================================

    def process_file(self, filename: Union[str, Path]) -> str:
        """
        Читает файл и рекурсивно подставляет все подключения.
        Базовым каталогом становится каталог корневого файла,
        если он не был задан явно.
        """
        path = Path(filename).resolve()
        if not path.is_file():
            raise IncludeNotFoundError(str(filename))

        self._stack = []
        self.included_files = []
        if self.base_dir is None:
            self.base_dir = path.parent

        logger.debug("Обработка подключений: %s (база %s)", path, self.base_dir)
        return self._process_file(path)

    def process_text(self, text: str, current_dir: Union[str, Path, None] = None) -> str:
        """Подставляет подключения в уже прочитанный текст."""
        directory = Path(current_dir).resolve() if current_dir else (self.base_dir or Path.cwd())
        if self.base_dir is None:
            self.base_dir = directory
        self._stack = []
        self.included_files = []
        return self._process_includes(text, directory)

    # ==========================================================
    # INTERNAL METHODS
    # ==========================================================

    def _process_file(self, path: Path) -> str:
        if path in self._stack:
            raise CircularIncludeError(str(path), [str(p) for p in self._stack])

        self._stack.append(path)
        try:
            try:
                content = path.read_text(encoding=self.encoding)
            except (OSError, UnicodeDecodeError) as e:
                raise IncludeError(f"Не удалось прочитать файл {path}: {e}", str(path)) from e

            self.included_files.append(path)
            return self._process_includes(content, path.parent)
        finally:
            self._stack.pop()

    def _process_includes(self, content: str, current_dir: Path) -> str:
        result: List[str] = []

        for line in content.split("\n"):
            m = INCLUDE_RE.match(line)
            if not m:
                result.append(line)
                continue

            include_path = m.group(1)
            resolved, is_folder = self._resolve(include_path, current_dir)

            if is_folder:
                included = self._process_folder(resolved)
            else:
                included = self._process_file(resolved)

            lines = included.split("\n")
            # завершающий перевод строки не должен давать пустую строку
            if lines and lines[-1] == "":
                lines.pop()
            result.extend(lines)

        return "\n".join(result)

    def _resolve(self, include_path: str, current_dir: Path):
        is_folder = include_path.endswith("/")
        relative = Path(include_path.rstrip("/") or ".")

        if ".." in relative.parts:
            raise IncludePathError(f"Переход в родительский каталог запрещён: {include_path}", include_path)

        resolved = (current_dir / relative).resolve()
        base = self.base_dir or current_dir

        if resolved != base and base not in resolved.parents:
            raise IncludePathError(
                f"Путь {include_path} выходит за пределы каталога {base}",
                include_path,
            )

        if not resolved.exists():
            raise IncludeNotFoundError(str(resolved), str(self._stack[-1]) if self._stack else None)

        if is_folder and not resolved.is_dir():
            raise IncludePathError(f"Ожидался каталог, найден файл: {resolved}", include_path)
        if not is_folder and resolved.is_dir():
            raise IncludePathError(
                f"Ожидался файл, найден каталог: {resolved} (используйте {include_path}/)",
                include_path,
            )

        return resolved, is_folder

    def _process_folder(self, folder: Path) -> str:
        parts: List[str] = []

        for entry in sorted(folder.iterdir(), key=lambda p: p.name):
            if entry.is_dir():
                content = self._process_folder(entry)
            elif entry.suffix == ".sql":
                content = self._process_file(entry)
            else:
                continue

            if content and not content.endswith("\n"):
                content += "\n"
            parts.append(content)

        logger.debug("Каталог %s: подключено элементов %d", folder, len(parts))
        return "".join(parts)
