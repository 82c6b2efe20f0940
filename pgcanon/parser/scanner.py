"""
Вспомогательный разбор текста оператора "на верхнем уровне".

Основной приём — маскирование: строка той же длины, в которой содержимое
литералов, quoted-идентификаторов, $$-тел и вложенных скобок заменено
символом-заполнителем. По маске ищутся ключевые слова и запятые
верхнего уровня, а позиции применяются к исходному тексту.
"""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Pattern, Tuple, Union

from ..core.exceptions import ParsingError

_DOLLAR_TAG_RE = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)?\$")

FILL = "_"


def mask_text(text: str, fill: str = FILL) -> str:
    """
    Маска текста: содержимое строк, идентификаторов в кавычках, $$-тел
    и всего внутри скобок заменено на fill; сами кавычки и внешние
    скобки остаются на месте.
    """
    out = list(text)
    n = len(text)
    i = 0
    depth = 0

    while i < n:
        ch = text[i]

        if ch == "'":
            escape = i > 0 and text[i - 1] in "Ee" and (i < 2 or not (text[i - 2].isalnum() or text[i - 2] == "_"))
            j = i + 1
            while j < n:
                if escape and text[j] == "\\":
                    j += 2
                    continue
                if text[j] == "'":
                    if j + 1 < n and text[j + 1] == "'":
                        j += 2
                        continue
                    break
                j += 1
            for k in range(i + 1, min(j, n)):
                out[k] = fill
            if depth > 0:
                out[i] = fill
                if j < n:
                    out[j] = fill
            i = j + 1
            continue

        if ch == '"':
            j = text.find('"', i + 1)
            while j != -1 and j + 1 < n and text[j + 1] == '"':
                j = text.find('"', j + 2)
            if j == -1:
                j = n
            for k in range(i + 1, min(j, n)):
                out[k] = fill
            if depth > 0:
                out[i] = fill
                if j < n:
                    out[j] = fill
            i = j + 1
            continue

        if ch == "$":
            m = _DOLLAR_TAG_RE.match(text, i)
            if m and (i == 0 or not (text[i - 1].isalnum() or text[i - 1] == "_")):
                tag = m.group(0)
                end = text.find(tag, m.end())
                if end == -1:
                    end = n
                    close = n
                else:
                    close = end + len(tag)
                start = i if depth > 0 else m.end()
                stop = close if depth > 0 else end
                for k in range(start, min(stop, n)):
                    out[k] = fill
                i = close
                continue

        if ch == "(":
            if depth > 0:
                out[i] = fill
            depth += 1
            i += 1
            continue

        if ch == ")":
            depth -= 1
            if depth > 0:
                out[i] = fill
            elif depth < 0:
                depth = 0
            i += 1
            continue

        if depth > 0:
            out[i] = fill
        i += 1

    return "".join(out)


def find_matching_paren(text: str, open_index: int) -> int:
    """Индекс закрывающей скобки для скобки в позиции open_index."""
    if open_index >= len(text) or text[open_index] != "(":
        raise ParsingError("Ожидалась открывающая скобка", sql_fragment=text, position=open_index)

    masked = mask_text(text[open_index:])
    close = masked.find(")", 1)
    if close == -1:
        raise ParsingError("Несбалансированные скобки", sql_fragment=text, position=open_index)
    return open_index + close


def split_top_level(text: str, sep: str = ",") -> List[str]:
    """Делит текст по разделителю, игнорируя вложенные скобки и литералы."""
    masked = mask_text(text)
    parts: List[str] = []
    start = 0
    for i, ch in enumerate(masked):
        if ch == sep:
            parts.append(text[start:i].strip())
            start = i + 1
    tail = text[start:].strip()
    if tail or parts:
        parts.append(tail)
    return [p for p in parts if p]


def strip_outer_parens(text: str) -> str:
    """'((a > 0))' -> 'a > 0'; '(a) + (b)' не меняется."""
    s = text.strip()
    while s.startswith("(") and s.endswith(")"):
        if find_matching_paren(s, 0) != len(s) - 1:
            break
        s = s[1:-1].strip()
    return s


def search_top_level(text: str, pattern: Union[str, Pattern], flags: int = re.IGNORECASE) -> Optional[re.Match]:
    regex = re.compile(pattern, flags) if isinstance(pattern, str) else pattern
    return regex.search(mask_text(text))


_PREV_WORD_RE = re.compile(r"([A-Za-z_]+)\s*$")


def split_clauses(
    text: str,
    pattern: Union[str, Pattern],
    flags: int = re.IGNORECASE,
    skip_after: Optional[Dict[str, Tuple[str, ...]]] = None,
) -> Tuple[str, List[Tuple[str, str]]]:
    """
    Делит текст на предложения по ключевым словам верхнего уровня.

    Возвращает (текст до первого ключевого слова, [(ключевое слово, тело), ...]),
    ключевое слово приводится к верхнему регистру с одинарными пробелами.

    skip_after: ключевое слово -> предшествующие слова, после которых оно
    не начинает предложение ("SET NULL", "BY DEFAULT").
    """
    masked = mask_text(text)
    regex = re.compile(pattern, flags) if isinstance(pattern, str) else pattern
    matches = []
    for m in regex.finditer(masked):
        keyword = re.sub(r"\s+", " ", m.group(0)).upper()
        if skip_after and keyword in skip_after:
            prev = _PREV_WORD_RE.search(masked[:m.start()])
            if prev and prev.group(1).upper() in skip_after[keyword]:
                continue
        matches.append(m)

    if not matches:
        return text.strip(), []

    head = text[:matches[0].start()].strip()
    clauses: List[Tuple[str, str]] = []
    for idx, m in enumerate(matches):
        end = matches[idx + 1].start() if idx + 1 < len(matches) else len(text)
        keyword = re.sub(r"\s+", " ", m.group(0)).upper()
        clauses.append((keyword, text[m.end():end].strip()))
    return head, clauses
