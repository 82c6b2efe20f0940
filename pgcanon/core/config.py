"""
Конфигурация системы.

Конфигурация — обычный dict. Компоненты принимают config и сами
добавляют значения по умолчанию через setdefault; здесь собраны общие
умолчания и загрузка YAML-файла.
"""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .constants import DEFAULT_SCHEMA, IGNORE_KINDS
from .exceptions import ConfigError

logger = logging.getLogger(__name__)


DEFAULT_CONFIG: Dict[str, Any] = {
    "target_schema": DEFAULT_SCHEMA,
    # неизвестный оператор: True -> UnsupportedFeatureError, False -> предупреждение
    "strict": False,
    "header": True,
    "object_comments": True,
    "object_order": "name",  # name | source
    "keep_sequence_start": False,
    "canonicalize_expected": True,
    "max_diff_lines": 200,
    "rules": {
        "rule_order": "by_id",  # by_id | custom
        "custom_order": [],
    },
    "logging": {
        "level": "WARNING",
    },
    # ignore: {tables: {patterns: ["tmp_*", "!tmp_keep"]}, views: ..., ...}
    "ignore": {},
}

_VALID_ORDERS = ("name", "source")


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def build_config(overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Собирает конфигурацию: умолчания + переопределения."""
    config = _deep_merge(DEFAULT_CONFIG, overrides or {})
    validate_config(config)
    return config


def validate_config(config: Dict[str, Any]) -> None:
    if config.get("object_order") not in _VALID_ORDERS:
        raise ConfigError(
            f"object_order должен быть одним из {', '.join(_VALID_ORDERS)}",
            config_key="object_order",
            config_value=str(config.get("object_order")),
        )

    schema = config.get("target_schema")
    if not isinstance(schema, str) or not schema.strip():
        raise ConfigError("target_schema должен быть непустой строкой", config_key="target_schema")

    if not isinstance(config.get("rules"), dict):
        raise ConfigError("rules должен быть словарём", config_key="rules")

    _validate_ignore(config.get("ignore"))


def _validate_ignore(section: Any) -> None:
    if not isinstance(section, dict):
        raise ConfigError("ignore должен быть словарём", config_key="ignore")

    for kind, value in section.items():
        key = f"ignore.{kind}"
        if kind not in IGNORE_KINDS:
            raise ConfigError(
                f"Неизвестный раздел ignore: {kind} (допустимы: {', '.join(IGNORE_KINDS)})",
                config_key=key,
            )
        patterns = value.get("patterns") if isinstance(value, dict) else None
        if not isinstance(patterns, list) or not all(isinstance(p, str) and p.strip("!") for p in patterns):
            raise ConfigError(f"{key}.patterns должен быть списком непустых строк", config_key=key)


def load_config(path: Union[str, Path, None] = None, overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Загружает YAML-конфигурацию и накладывает её на DEFAULT_CONFIG.

    Args:
        path: путь к YAML-файлу (None -> только умолчания)
        overrides: значения из командной строки, имеют наивысший приоритет
    """
    data: Dict[str, Any] = {}

    if path is not None:
        config_path = Path(path)
        try:
            raw = config_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(f"Не удалось прочитать конфигурацию {config_path}: {e}") from e

        try:
            loaded = yaml.safe_load(raw)
        except yaml.YAMLError as e:
            raise ConfigError(f"Некорректный YAML в {config_path}: {e}") from e

        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigError(f"Корень конфигурации {config_path} должен быть словарём")

        logger.debug("Загружена конфигурация %s", config_path)
        data = loaded

    merged = _deep_merge(data, overrides or {})
    return build_config(merged)
