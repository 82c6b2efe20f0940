"""
Пользовательские исключения системы канонизации схем.
"""

from __future__ import annotations
from typing import Optional, Dict, Any, List


class PgCanonError(Exception):
    """Базовое исключение для системы канонизации."""

    def __init__(self, message: str, code: str = "UNKNOWN", details: Optional[dict] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details,
        }


class ParsingError(PgCanonError):
    """Ошибка парсинга SQL."""

    def __init__(self, message: str, sql_fragment: str = None, position: int = None):
        details: Dict[str, Any] = {}
        if sql_fragment:
            # длинные операторы в отчёте не нужны целиком
            details["sql_fragment"] = sql_fragment if len(sql_fragment) <= 200 else sql_fragment[:200] + "..."
        if position is not None:
            details["position"] = position
        super().__init__(message, "PARSING_ERROR", details)


class UnsupportedFeatureError(ParsingError):
    """Неподдерживаемая конструкция PostgreSQL."""

    def __init__(self, feature: str, sql_fragment: str = None):
        message = f"Неподдерживаемая конструкция: {feature}"
        super().__init__(message, sql_fragment=sql_fragment)
        self.code = "UNSUPPORTED_FEATURE"
        self.details["feature"] = feature


class IncludeError(PgCanonError):
    """Ошибка обработки директивы \\i."""

    def __init__(self, message: str, path: str = None, code: str = "INCLUDE_ERROR"):
        details: Dict[str, Any] = {}
        if path:
            details["path"] = path
        super().__init__(message, code, details)


class CircularIncludeError(IncludeError):
    """Файл подключает сам себя (напрямую или через цепочку)."""

    def __init__(self, path: str, chain: Optional[List[str]] = None):
        chain = chain or []
        message = f"Циклическое подключение файла: {' -> '.join(chain + [path])}"
        super().__init__(message, path, "CIRCULAR_INCLUDE")
        self.details["chain"] = chain


class IncludePathError(IncludeError):
    """Недопустимый путь подключения (выход за базовый каталог, файл вместо папки и т.п.)."""

    def __init__(self, message: str, path: str = None):
        super().__init__(message, path, "INCLUDE_PATH_ERROR")


class IncludeNotFoundError(IncludeError):
    """Подключаемый файл или каталог не найден."""

    def __init__(self, path: str, including_file: str = None):
        message = f"Подключаемый путь не найден: {path}"
        if including_file:
            message += f" (из {including_file})"
        super().__init__(message, path, "INCLUDE_NOT_FOUND")


class CanonicalizationError(PgCanonError):
    """Ошибка применения правила канонизации."""

    def __init__(self, message: str, rule_id: str = None, rule_name: str = None):
        details: Dict[str, Any] = {}
        if rule_id:
            details["rule_id"] = rule_id
        if rule_name:
            details["rule_name"] = rule_name
        super().__init__(message, "CANONICALIZATION_ERROR", details)


class GraphBuildingError(PgCanonError):
    """Ошибка построения графа зависимостей."""

    def __init__(self, message: str, object_type: str = None, object_name: str = None):
        details: Dict[str, Any] = {}
        if object_type:
            details["object_type"] = object_type
        if object_name:
            details["object_name"] = object_name
        super().__init__(message, "GRAPH_BUILDING_ERROR", details)


class CircularDependencyError(GraphBuildingError):
    """Обнаружена циклическая зависимость."""

    def __init__(self, cycle: list):
        message = f"Обнаружена циклическая зависимость: {' -> '.join(cycle)}"
        super().__init__(message)
        self.code = "CIRCULAR_DEPENDENCY"
        self.details["cycle"] = cycle


class ComparisonError(PgCanonError):
    """Ошибка сравнения схем."""

    def __init__(self, message: str, input_path: str = None, expected_path: str = None):
        details: Dict[str, Any] = {}
        if input_path:
            details["input"] = input_path
        if expected_path:
            details["expected"] = expected_path
        super().__init__(message, "COMPARISON_ERROR", details)


class ConfigError(PgCanonError):
    """Ошибка конфигурации системы."""

    def __init__(self, message: str, config_key: str = None, config_value: str = None):
        details: Dict[str, Any] = {}
        if config_key:
            details["config_key"] = config_key
        if config_value:
            details["config_value"] = config_value
        super().__init__(message, "CONFIGURATION_ERROR", details)


def handle_exception(exception: Exception) -> dict:
    if isinstance(exception, PgCanonError):
        return exception.to_dict()
    return {
        "error": str(exception),
        "code": "UNKNOWN_ERROR",
        "details": {
            "exception_type": exception.__class__.__name__,
        },
    }
