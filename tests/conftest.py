"""
Общие фикстуры тестов pgcanon.
"""

from pathlib import Path

import pytest

from pgcanon.core.config import build_config
from pgcanon.core.models import Catalog
from pgcanon.parser import SQLParser
from pgcanon.pipeline import SchemaProcessor
from pgcanon.rules import DEFAULT_RULES, RuleRegistry

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES


@pytest.fixture
def shop_main() -> Path:
    """Корневой файл схемы магазина, собранной из нескольких файлов через \\i."""
    return FIXTURES / "shop" / "main.sql"


@pytest.fixture
def shop_expected() -> Path:
    return FIXTURES / "shop_expected.sql"


@pytest.fixture
def shop_drifted() -> Path:
    return FIXTURES / "shop_drifted.sql"


@pytest.fixture
def processor() -> SchemaProcessor:
    return SchemaProcessor()


@pytest.fixture
def parse():
    """Разбор SQL-текста в каталог без правил канонизации."""
    def _parse(sql: str, **config) -> Catalog:
        return SQLParser(build_config(config)).parse(sql)
    return _parse


@pytest.fixture
def canonicalize(parse):
    """Разбор и применение всех правил C1..C9."""
    def _canonicalize(sql: str, **config) -> Catalog:
        catalog = parse(sql, **config)
        registry = RuleRegistry(build_config(config))
        registry.register_rules(DEFAULT_RULES)
        registry.apply_all(catalog)
        return catalog
    return _canonicalize


@pytest.fixture
def dump():
    """Канонический дамп SQL-текста без заголовка файла и заголовков объектов."""
    def _dump(sql: str, **config) -> str:
        config.setdefault("header", False)
        config.setdefault("object_comments", False)
        return SchemaProcessor(config).process_text(sql).canonical_sql
    return _dump
