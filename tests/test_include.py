"""
Тесты разворачивания директив \\i.
"""

import pytest

from pgcanon.core.exceptions import (
    CircularIncludeError,
    IncludeError,
    IncludeNotFoundError,
    IncludePathError,
)
from pgcanon.include import INCLUDE_RE, IncludeProcessor


class TestIncludeDirective:
    """Распознавание строки-директивы."""

    @pytest.mark.parametrize("line, path", [
        ("\\i types.sql", "types.sql"),
        ("  \\i tables/", "tables/"),
        ("\\ir functions.sql;", "functions.sql"),
    ])
    def test_directive_recognized(self, line, path):
        m = INCLUDE_RE.match(line)
        assert m is not None
        assert m.group(1) == path

    def test_regular_sql_is_not_directive(self):
        assert INCLUDE_RE.match("SELECT '\\i x.sql';") is None


class TestIncludeProcessor:
    """Сборка логической схемы из дерева файлов."""

    def test_expands_shop_fixture(self, shop_main):
        processor = IncludeProcessor()
        text = processor.process_file(shop_main)

        assert "\\i" not in text
        assert "CREATE TYPE user_status" in text
        assert "CREATE VIEW user_orders" in text

    def test_folder_included_in_alphabetical_order(self, shop_main):
        text = IncludeProcessor().process_file(shop_main)

        assert text.index("CREATE TABLE users") < text.index("CREATE TABLE orders")
        assert text.index("CREATE TABLE orders") < text.index("CREATE FUNCTION touch_updated")

    def test_non_sql_files_in_folder_are_skipped(self, shop_main):
        processor = IncludeProcessor()
        text = processor.process_file(shop_main)

        assert "README" not in text
        assert "пропускаются" not in text
        assert all(p.suffix == ".sql" for p in processor.included_files)

    def test_included_files_recorded(self, shop_main):
        processor = IncludeProcessor()
        processor.process_file(shop_main)

        names = [p.name for p in processor.included_files]
        assert names == [
            "main.sql",
            "types.sql",
            "sequences.sql",
            "01_users.sql",
            "02_orders.sql",
            "functions.sql",
            "views.sql",
        ]

    def test_nested_folders_are_walked(self, tmp_path):
        (tmp_path / "schema" / "a").mkdir(parents=True)
        (tmp_path / "schema" / "a" / "t1.sql").write_text("CREATE TABLE t1 (id int);\n")
        (tmp_path / "schema" / "b.sql").write_text("CREATE TABLE b (id int);\n")
        root = tmp_path / "main.sql"
        root.write_text("\\i schema/\n")

        text = IncludeProcessor().process_file(root)

        assert text.index("t1") < text.index("CREATE TABLE b")

    def test_same_file_from_two_branches_is_allowed(self, tmp_path):
        (tmp_path / "common.sql").write_text("CREATE TYPE mood AS ENUM ('ok');\n")
        (tmp_path / "a.sql").write_text("\\i common.sql\n")
        (tmp_path / "b.sql").write_text("\\i common.sql\n")
        root = tmp_path / "main.sql"
        root.write_text("\\i a.sql\n\\i b.sql\n")

        text = IncludeProcessor().process_file(root)

        assert text.count("CREATE TYPE mood") == 2

    def test_relative_to_including_file(self, tmp_path):
        (tmp_path / "sub").mkdir()
        (tmp_path / "sub" / "inner.sql").write_text("CREATE TABLE inner_t (id int);\n")
        (tmp_path / "sub" / "outer.sql").write_text("\\ir inner.sql\n")
        root = tmp_path / "main.sql"
        root.write_text("\\i sub/outer.sql\n")

        assert "inner_t" in IncludeProcessor().process_file(root)

    def test_lines_around_directive_are_kept(self, tmp_path):
        (tmp_path / "part.sql").write_text("-- part\n")
        root = tmp_path / "main.sql"
        root.write_text("-- before\n\\i part.sql\n-- after\n")

        text = IncludeProcessor().process_file(root)

        assert text.split("\n")[:3] == ["-- before", "-- part", "-- after"]

    def test_process_text_uses_given_directory(self, tmp_path):
        (tmp_path / "t.sql").write_text("CREATE TABLE t (id int);\n")

        text = IncludeProcessor().process_text("\\i t.sql\n", current_dir=tmp_path)

        assert "CREATE TABLE t" in text


class TestIncludeErrors:
    """Ошибочные подключения."""

    def test_missing_root_file(self, tmp_path):
        with pytest.raises(IncludeNotFoundError):
            IncludeProcessor().process_file(tmp_path / "nope.sql")

    def test_missing_included_file(self, tmp_path):
        root = tmp_path / "main.sql"
        root.write_text("\\i absent.sql\n")

        with pytest.raises(IncludeNotFoundError) as exc:
            IncludeProcessor().process_file(root)
        assert exc.value.code == "INCLUDE_NOT_FOUND"

    def test_direct_cycle(self, tmp_path):
        root = tmp_path / "main.sql"
        root.write_text("\\i main.sql\n")

        with pytest.raises(CircularIncludeError):
            IncludeProcessor().process_file(root)

    def test_indirect_cycle(self, tmp_path):
        (tmp_path / "a.sql").write_text("\\i b.sql\n")
        (tmp_path / "b.sql").write_text("\\i a.sql\n")
        root = tmp_path / "main.sql"
        root.write_text("\\i a.sql\n")

        with pytest.raises(CircularIncludeError) as exc:
            IncludeProcessor().process_file(root)
        assert exc.value.code == "CIRCULAR_INCLUDE"
        assert len(exc.value.details["chain"]) == 3

    def test_parent_directory_is_rejected(self, tmp_path):
        (tmp_path / "outside.sql").write_text("CREATE TABLE x (id int);\n")
        (tmp_path / "root").mkdir()
        root = tmp_path / "root" / "main.sql"
        root.write_text("\\i ../outside.sql\n")

        with pytest.raises(IncludePathError):
            IncludeProcessor().process_file(root)

    def test_folder_without_trailing_slash(self, tmp_path):
        (tmp_path / "tables").mkdir()
        root = tmp_path / "main.sql"
        root.write_text("\\i tables\n")

        with pytest.raises(IncludePathError):
            IncludeProcessor().process_file(root)

    def test_file_with_trailing_slash(self, tmp_path):
        (tmp_path / "t.sql").write_text("CREATE TABLE t (id int);\n")
        root = tmp_path / "main.sql"
        root.write_text("\\i t.sql/\n")

        with pytest.raises(IncludePathError):
            IncludeProcessor().process_file(root)

    def test_undecodable_file(self, tmp_path):
        (tmp_path / "bad.sql").write_bytes(b"\xff\xfeCREATE TABLE t (id int);\n")
        root = tmp_path / "main.sql"
        root.write_text("\\i bad.sql\n")

        with pytest.raises(IncludeError) as exc:
            IncludeProcessor().process_file(root)
        assert exc.value.code == "INCLUDE_ERROR"
        assert exc.value.details["path"].endswith("bad.sql")
