"""
Тесты командной строки.
"""

import json
import logging

import pytest

from main import EXIT_DIFFERENT, EXIT_ERROR, EXIT_OK, build_overrides, main, parse_args


@pytest.fixture(autouse=True)
def restore_logging():
    """main() перенастраивает корневой логгер; возвращаем как было."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestArguments:
    """Разбор аргументов."""

    def test_overrides(self):
        args = parse_args(["dump", "main.sql", "--no-comments", "--no-header", "--schema", "app"])

        assert build_overrides(args) == {
            "target_schema": "app",
            "object_comments": False,
            "header": False,
        }

    def test_raw_expected_flag(self):
        args = parse_args(["compare", "a.sql", "b.sql", "--raw-expected"])

        assert build_overrides(args) == {"canonicalize_expected": False}

    def test_command_required(self):
        with pytest.raises(SystemExit):
            parse_args([])


class TestExpand:
    """pgcanon expand"""

    def test_stdout(self, shop_main, capsys):
        assert main(["expand", str(shop_main)]) == EXIT_OK

        out = capsys.readouterr().out
        assert "CREATE TABLE users" in out
        assert "\\i" not in out

    def test_missing_file(self, tmp_path, capsys):
        assert main(["expand", str(tmp_path / "absent.sql")]) == EXIT_ERROR
        assert "[INCLUDE_NOT_FOUND]" in capsys.readouterr().err


class TestDump:
    """pgcanon dump"""

    def test_single_file(self, shop_main, shop_expected, tmp_path):
        out = tmp_path / "dump.sql"

        assert main(["dump", str(shop_main), "--out", str(out)]) == EXIT_OK
        assert out.read_text(encoding="utf-8") == shop_expected.read_text(encoding="utf-8")

    def test_no_comments(self, shop_main, capsys):
        assert main(["dump", str(shop_main), "--no-comments", "--no-header"]) == EXIT_OK

        out = capsys.readouterr().out
        assert out.startswith("CREATE TYPE user_status AS ENUM (")
        assert "-- Name:" not in out

    def test_multi_file(self, shop_main, tmp_path):
        out_dir = tmp_path / "dump"

        assert main(["dump", str(shop_main), "--multi-file", "--out", str(out_dir)]) == EXIT_OK
        assert (out_dir / "main.sql").exists()
        assert (out_dir / "tables" / "orders.sql").exists()

    def test_multi_file_requires_out(self, shop_main, capsys):
        assert main(["dump", str(shop_main), "--multi-file"]) == EXIT_ERROR
        assert "--out" in capsys.readouterr().err

    def test_parse_error(self, tmp_path, capsys):
        bad = tmp_path / "bad.sql"
        bad.write_text("CREATE TABLE t (a int);\nCREATE INDEX i ON ghost (a);\n", encoding="utf-8")

        assert main(["dump", str(bad)]) == EXIT_ERROR
        assert "[PARSING_ERROR]" in capsys.readouterr().err


class TestCompare:
    """pgcanon compare"""

    def test_equivalent(self, shop_main, shop_expected, capsys):
        assert main(["compare", str(shop_main), str(shop_expected)]) == EXIT_OK
        assert "Схемы эквивалентны: ДА" in capsys.readouterr().out

    def test_different(self, shop_main, shop_drifted, capsys):
        assert main(["compare", str(shop_main), str(shop_drifted), "--format", "json"]) == EXIT_DIFFERENT

        report = json.loads(capsys.readouterr().out)
        assert report["summary"]["equivalent"] is False

    def test_report_to_file(self, shop_main, shop_drifted, tmp_path, capsys):
        out = tmp_path / "report.md"

        code = main(["compare", str(shop_main), str(shop_drifted), "--format", "markdown", "--out", str(out)])

        assert code == EXIT_DIFFERENT
        assert capsys.readouterr().out == ""
        assert "view public.user_orders" in out.read_text(encoding="utf-8")

    def test_processing_error(self, shop_expected, tmp_path, capsys):
        code = main(["compare", str(tmp_path / "absent.sql"), str(shop_expected)])

        assert code == EXIT_ERROR
        assert "[INCLUDE_NOT_FOUND]" in capsys.readouterr().err

    def test_bad_config(self, shop_main, shop_expected, tmp_path, capsys):
        config = tmp_path / "pgcanon.yaml"
        config.write_text("object_order: random\n", encoding="utf-8")

        code = main(["--config", str(config), "compare", str(shop_main), str(shop_expected)])

        assert code == EXIT_ERROR
        assert "[CONFIGURATION_ERROR]" in capsys.readouterr().err

    def test_undecodable_input(self, shop_expected, tmp_path, capsys):
        bad = tmp_path / "bad.sql"
        bad.write_bytes(b"\xff\xfeCREATE TABLE t (id int);\n")

        assert main(["compare", str(bad), str(shop_expected)]) == EXIT_ERROR
        assert "[INCLUDE_ERROR]" in capsys.readouterr().err

        assert main(["dump", str(bad)]) == EXIT_ERROR
        assert "[INCLUDE_ERROR]" in capsys.readouterr().err
