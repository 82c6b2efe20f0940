"""
Настройка журналирования для CLI.

Модули библиотеки только получают логгер через logging.getLogger(__name__);
обработчики настраиваются здесь, один раз, точкой входа.
"""

from __future__ import annotations

import logging
from typing import Union

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def setup_logging(level: Union[str, int, None] = None, verbose: bool = False) -> None:
    if verbose:
        resolved: Union[str, int] = logging.DEBUG
    elif level is None:
        resolved = logging.WARNING
    elif isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            resolved = logging.WARNING
    else:
        resolved = level

    logging.basicConfig(level=resolved, format=LOG_FORMAT, force=True)
