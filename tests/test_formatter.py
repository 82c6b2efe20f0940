"""
Тесты сборки канонического дампа (один файл и набор файлов).
"""

import logging

from pgcanon.dump import DumpFormatter
from pgcanon.parser import SQLNormalizer
from pgcanon.pipeline import SchemaProcessor

FILE_HEADER = "--\n-- pgcanon database dump\n-- Version: 0.1.0\n--\n"


class TestSingleFileDump:
    """Канонический дамп в одном файле."""

    def test_shop_matches_expected(self, processor, shop_main, shop_expected):
        result = processor.process_file(shop_main)

        normalizer = SQLNormalizer()
        expected = shop_expected.read_text(encoding="utf-8")
        assert normalizer.normalize_whitespace(result.canonical_sql) == normalizer.normalize_whitespace(expected)

    def test_dump_is_idempotent(self, processor, shop_main):
        first = processor.process_file(shop_main).canonical_sql
        second = SchemaProcessor().process_text(first).canonical_sql

        assert second == first

    def test_canonical_input_dumps_to_itself(self, processor, shop_expected):
        expected = shop_expected.read_text(encoding="utf-8")

        assert processor.process_file(shop_expected).canonical_sql == expected

    def test_file_and_object_headers(self, processor):
        text = processor.process_text("CREATE TABLE t (a int);").canonical_sql

        assert text == (
            FILE_HEADER
            + "\n"
            + "--\n-- Name: t; Type: TABLE; Schema: -; Owner: -\n--\n\n"
            + "CREATE TABLE IF NOT EXISTS t (\n    a integer\n);\n"
        )

    def test_headers_can_be_disabled(self, dump):
        assert dump("CREATE TABLE t (a int);") == "CREATE TABLE IF NOT EXISTS t (\n    a integer\n);\n"

    def test_foreign_schema_in_object_header(self):
        text = SchemaProcessor({"header": False}).process_text("CREATE TABLE billing.t (a int);").canonical_sql

        assert text.startswith("--\n-- Name: t; Type: TABLE; Schema: billing; Owner: -\n--\n")

    def test_empty_schema(self, dump):
        assert dump("SET search_path = public;") == ""

    def test_section_order(self, dump):
        text = dump(
            "CREATE VIEW v AS SELECT a FROM t;\n"
            "CREATE TABLE t (a int);\n"
            "CREATE FUNCTION f() RETURNS int AS 'SELECT 1' LANGUAGE sql;\n"
            "CREATE SEQUENCE s;\n"
            "CREATE TYPE e AS ENUM ('x');"
        )
        positions = [
            text.index("CREATE TYPE e"),
            text.index("CREATE SEQUENCE IF NOT EXISTS s"),
            text.index("CREATE TABLE IF NOT EXISTS t"),
            text.index("CREATE OR REPLACE FUNCTION f"),
            text.index("CREATE OR REPLACE VIEW v"),
        ]
        assert positions == sorted(positions)

    def test_table_using_function_follows_it(self, dump):
        text = dump(
            "CREATE TABLE a (id int DEFAULT next_id());\n"
            "CREATE TABLE b (id int);\n"
            "CREATE FUNCTION next_id() RETURNS int AS 'SELECT 1' LANGUAGE sql;"
        )

        assert text.index("TABLE IF NOT EXISTS b") < text.index("FUNCTION next_id")
        assert text.index("FUNCTION next_id") < text.index("TABLE IF NOT EXISTS a")

    def test_object_order(self, dump):
        sql = "CREATE TABLE b (id int);\nCREATE TABLE a (id int);"

        by_name = dump(sql)
        by_source = dump(sql, object_order="source")

        assert by_name.index("TABLE IF NOT EXISTS a") < by_name.index("TABLE IF NOT EXISTS b")
        assert by_source.index("TABLE IF NOT EXISTS b") < by_source.index("TABLE IF NOT EXISTS a")


class TestDeferredForeignKeys:
    """Циклические внешние ключи выносятся в ALTER TABLE."""

    CYCLE = (
        "CREATE TABLE a (id int PRIMARY KEY, b_id int REFERENCES b (id));\n"
        "CREATE TABLE b (id int PRIMARY KEY, a_id int REFERENCES a (id));"
    )

    def test_cycle_broken_with_alter_table(self, dump, caplog):
        with caplog.at_level(logging.WARNING, logger="pgcanon"):
            text = dump(self.CYCLE)

        assert "Циклическая зависимость" in caplog.text
        assert text.index("TABLE IF NOT EXISTS a") < text.index("TABLE IF NOT EXISTS b")
        assert "CONSTRAINT b_a_id_fkey FOREIGN KEY (a_id) REFERENCES a(id)" in text
        assert text.endswith(
            "ALTER TABLE a\n"
            "    ADD CONSTRAINT a_b_id_fkey FOREIGN KEY (b_id) REFERENCES b(id);\n"
        )

    def test_deferred_step(self, canonicalize):
        catalog = canonicalize(self.CYCLE)
        steps = DumpFormatter({}).build_steps(catalog)

        fk_steps = [s for s in steps if s.type_label == "FK CONSTRAINT"]
        assert [(s.name, s.file) for s in fk_steps] == [("a a_b_id_fkey", "tables/b.sql")]

    def test_deferred_dump_is_stable(self, dump):
        first = dump(self.CYCLE)

        assert dump(first) == first


class TestMultiFileDump:
    """Файл на объект и главный файл с \\i."""

    EXPECTED_INCLUDES = [
        "\\i types/user_status.sql",
        "\\i sequences/global_id_seq.sql",
        "\\i sequences/users_id_seq.sql",
        "\\i functions/touch_updated.sql",
        "\\i tables/users.sql",
        "\\i tables/orders.sql",
        "\\i views/user_orders.sql",
    ]

    def test_main_file_includes(self, processor, shop_main):
        result = processor.process_file(shop_main)
        files = processor.formatter.format_multi_file(result.catalog, result.graph)

        main = files["main.sql"]
        assert main.startswith(FILE_HEADER)
        assert [line for line in main.splitlines() if line.startswith("\\i")] == self.EXPECTED_INCLUDES
        assert set(files) == {"main.sql"} | {line[3:] for line in self.EXPECTED_INCLUDES}

    def test_dependent_statements_live_with_table(self, processor, shop_main):
        result = processor.process_file(shop_main)
        files = processor.formatter.format_multi_file(result.catalog, result.graph)

        users = files["tables/users.sql"]
        assert "ALTER SEQUENCE users_id_seq OWNED BY users.id;" in users
        assert "CREATE INDEX IF NOT EXISTS users_created_at_idx" in users

        orders = files["tables/orders.sql"]
        assert "CREATE POLICY orders_owner" in orders
        assert "CREATE OR REPLACE TRIGGER orders_touch" in orders
        assert not orders.startswith(FILE_HEADER)

    def test_written_tree_round_trips(self, processor, shop_main, tmp_path):
        single = processor.process_file(shop_main).canonical_sql

        written = processor.dump_multi_file(shop_main, tmp_path / "out")

        assert tmp_path / "out" / "main.sql" in written
        assert all(path.exists() for path in written)
        assert SchemaProcessor().process_file(tmp_path / "out" / "main.sql").canonical_sql == single

    def test_non_target_schema_file_names(self, canonicalize):
        catalog = canonicalize("CREATE TABLE billing.invoices (id int);")
        files = DumpFormatter({"header": False}).format_multi_file(catalog)

        assert files["main.sql"] == "\\i tables/billing.invoices.sql\n"
        assert "CREATE TABLE IF NOT EXISTS billing.invoices" in files["tables/billing.invoices.sql"]

    def test_write_files(self, tmp_path):
        written = DumpFormatter.write_files({"main.sql": "x\n", "types/t.sql": "y\n"}, tmp_path)

        assert written == [tmp_path / "main.sql", tmp_path / "types" / "t.sql"]
        assert (tmp_path / "types" / "t.sql").read_text(encoding="utf-8") == "y\n"
