"""
Тесты конфигурации и исключений.
"""

import logging

import pytest

from pgcanon.core.config import DEFAULT_CONFIG, build_config, load_config
from pgcanon.core.exceptions import (
    CircularIncludeError,
    ConfigError,
    ParsingError,
    UnsupportedFeatureError,
    handle_exception,
)
from pgcanon.core.logging_config import setup_logging


class TestBuildConfig:
    """Умолчания и переопределения."""

    def test_defaults(self):
        config = build_config()

        assert config["target_schema"] == "public"
        assert config["object_order"] == "name"
        assert config["rules"]["rule_order"] == "by_id"

    def test_nested_override_keeps_siblings(self):
        config = build_config({"rules": {"C5": {"enabled": False}}})

        assert config["rules"]["C5"] == {"enabled": False}
        assert config["rules"]["rule_order"] == "by_id"

    def test_defaults_not_mutated(self):
        build_config({"rules": {"custom_order": ["C2"]}})

        assert DEFAULT_CONFIG["rules"]["custom_order"] == []

    @pytest.mark.parametrize("overrides, key", [
        ({"object_order": "random"}, "object_order"),
        ({"target_schema": "  "}, "target_schema"),
        ({"target_schema": 1}, "target_schema"),
        ({"rules": ["C1"]}, "rules"),
    ])
    def test_invalid(self, overrides, key):
        with pytest.raises(ConfigError) as exc:
            build_config(overrides)
        assert exc.value.code == "CONFIGURATION_ERROR"
        assert exc.value.details["config_key"] == key


class TestLoadConfig:
    """Загрузка YAML."""

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "pgcanon.yaml"
        path.write_text(
            "target_schema: app\n"
            "object_order: source\n"
            "rules:\n"
            "  C5:\n"
            "    enabled: false\n",
            encoding="utf-8",
        )

        config = load_config(path)

        assert config["target_schema"] == "app"
        assert config["object_order"] == "source"
        assert config["rules"]["C5"]["enabled"] is False
        assert config["header"] is True

    def test_overrides_win(self, tmp_path):
        path = tmp_path / "pgcanon.yaml"
        path.write_text("target_schema: app\n", encoding="utf-8")

        assert load_config(path, {"target_schema": "billing"})["target_schema"] == "billing"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")

        assert load_config(path) == build_config()

    def test_no_file(self):
        assert load_config() == build_config()

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(tmp_path / "absent.yaml")

    def test_undecodable_file(self, tmp_path):
        path = tmp_path / "latin1.yaml"
        path.write_bytes("target_schema: café\n".encode("latin-1"))

        with pytest.raises(ConfigError) as exc:
            load_config(path)
        assert exc.value.code == "CONFIGURATION_ERROR"

    def test_broken_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("rules: [unclosed\n", encoding="utf-8")

        with pytest.raises(ConfigError):
            load_config(path)

    def test_root_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ConfigError):
            load_config(path)


class TestExceptions:
    """Коды и детали ошибок."""

    def test_str_has_code(self):
        assert str(ParsingError("плохо")) == "[PARSING_ERROR] плохо"

    def test_long_fragment_truncated(self):
        error = ParsingError("плохо", sql_fragment="x" * 300)

        assert len(error.details["sql_fragment"]) == 203

    def test_unsupported_feature(self):
        error = UnsupportedFeatureError("CREATE RULE")

        assert isinstance(error, ParsingError)
        assert error.code == "UNSUPPORTED_FEATURE"
        assert error.details["feature"] == "CREATE RULE"

    def test_circular_include_chain(self):
        error = CircularIncludeError("a.sql", ["main.sql", "a.sql"])

        assert "main.sql -> a.sql -> a.sql" in error.message
        assert error.details["chain"] == ["main.sql", "a.sql"]

    def test_handle_exception(self):
        assert handle_exception(ConfigError("нет", config_key="rules")) == {
            "error": "нет",
            "code": "CONFIGURATION_ERROR",
            "details": {"config_key": "rules"},
        }
        assert handle_exception(KeyError("x"))["details"] == {"exception_type": "KeyError"}


class TestLogging:
    """Настройка журнала точкой входа."""

    @pytest.fixture(autouse=True)
    def restore_logging(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    @pytest.mark.parametrize("level, verbose, expected", [
        (None, False, logging.WARNING),
        ("info", False, logging.INFO),
        ("nonsense", False, logging.WARNING),
        ("ERROR", True, logging.DEBUG),
        (logging.ERROR, False, logging.ERROR),
    ])
    def test_levels(self, level, verbose, expected):
        setup_logging(level, verbose=verbose)

        assert logging.getLogger().level == expected
