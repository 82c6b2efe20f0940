"""
Тесты генерации канонического SQL отдельных объектов.
"""

import pytest

from pgcanon.dump.sql_generator import SQLGenerator, dollar_quote


class TestDollarQuote:
    """Выбор тега $-кавычек для тела функции."""

    def test_plain_body(self):
        assert dollar_quote("SELECT 1") == "$$\nSELECT 1\n$$"

    def test_body_with_dollars_gets_named_tag(self):
        assert dollar_quote("SELECT '$$'") == "$function$\nSELECT '$$'\n$function$"

    def test_all_tags_taken(self):
        with pytest.raises(ValueError):
            dollar_quote("$$ $function$ $body$ $pgcanon$")


class TestHeaders:
    """Заголовки объектов и квалификация имён."""

    def test_object_header(self):
        header = SQLGenerator().header("users", "TABLE")
        assert header == "--\n-- Name: users; Type: TABLE; Schema: -; Owner: -\n--\n"

    def test_foreign_schema_is_qualified(self, canonicalize):
        catalog = canonicalize("CREATE TABLE billing.invoices (id int);")
        table = catalog.tables["billing.invoices"]
        generator = SQLGenerator()

        assert generator.schema_label(table) == "billing"
        assert generator.create_table(table) == (
            "CREATE TABLE IF NOT EXISTS billing.invoices (\n"
            "    id integer\n"
            ");"
        )

    def test_other_target_schema(self, canonicalize):
        catalog = canonicalize("CREATE TABLE app.t (id int);", target_schema="app")
        table = catalog.tables["app.t"]

        assert SQLGenerator("app").name(table) == "t"
        assert SQLGenerator().name(table) == "app.t"


class TestTypesAndSequences:
    """Типы, домены, последовательности."""

    def test_enum(self, dump):
        assert dump("CREATE TYPE mood AS ENUM ('sad', 'ok');") == (
            "CREATE TYPE mood AS ENUM (\n"
            "    'sad',\n"
            "    'ok'\n"
            ");\n"
        )

    def test_composite(self, dump):
        assert dump("CREATE TYPE pair AS (a INT4, b text);") == "CREATE TYPE pair AS (a integer, b text);\n"

    def test_domain(self, dump):
        assert dump("CREATE DOMAIN posint AS int DEFAULT 1 NOT NULL CHECK (VALUE > 0);") == (
            "CREATE DOMAIN posint AS integer\n"
            "  DEFAULT 1\n"
            "  NOT NULL\n"
            "  CONSTRAINT posint_check CHECK (VALUE > 0);\n"
        )

    def test_sequence_defaults_dropped(self, dump):
        sql = "CREATE SEQUENCE s INCREMENT BY 5 START WITH 10 CACHE 1;"
        assert dump(sql) == "CREATE SEQUENCE IF NOT EXISTS s INCREMENT BY 5;\n"

    def test_sequence_start_kept_on_request(self, dump):
        sql = "CREATE SEQUENCE s INCREMENT BY 5 START WITH 10 CACHE 1;"
        assert dump(sql, keep_sequence_start=True) == "CREATE SEQUENCE IF NOT EXISTS s INCREMENT BY 5 START WITH 10;\n"

    def test_serial_becomes_sequence(self, dump):
        text = dump("CREATE TABLE t (id serial PRIMARY KEY);")

        assert "CREATE SEQUENCE IF NOT EXISTS t_id_seq AS integer;" in text
        assert "id integer DEFAULT nextval('t_id_seq'::regclass)" in text
        assert "ALTER SEQUENCE t_id_seq OWNED BY t.id;" in text
        assert text.index("CREATE SEQUENCE") < text.index("CREATE TABLE") < text.index("ALTER SEQUENCE")


class TestTables:
    """CREATE TABLE и связанные операторы."""

    def test_columns_and_named_constraints(self, dump):
        text = dump(
            "CREATE TABLE parent (id int PRIMARY KEY);\n"
            "CREATE TABLE child (\n"
            "    id bigint GENERATED ALWAYS AS IDENTITY PRIMARY KEY,\n"
            "    parent_id int REFERENCES parent ON DELETE CASCADE,\n"
            "    total numeric GENERATED ALWAYS AS (parent_id * 2) STORED,\n"
            "    CHECK (total > 0)\n"
            ");"
        )

        assert "CREATE TABLE IF NOT EXISTS child (\n" in text
        assert "    id bigint GENERATED ALWAYS AS IDENTITY,\n" in text
        assert "    parent_id integer,\n" in text
        assert "    total numeric GENERATED ALWAYS AS (parent_id * 2) STORED,\n" in text
        assert "    CONSTRAINT child_pkey PRIMARY KEY (id),\n" in text
        assert (
            "    CONSTRAINT child_parent_id_fkey FOREIGN KEY (parent_id) "
            "REFERENCES parent(id) ON DELETE CASCADE,\n"
        ) in text
        assert "    CONSTRAINT child_total_check CHECK (total > 0)\n);" in text

    def test_parent_created_first(self, dump):
        text = dump(
            "CREATE TABLE child (parent_id int REFERENCES parent (id));\n"
            "CREATE TABLE parent (id int PRIMARY KEY);"
        )
        assert text.index("TABLE IF NOT EXISTS parent") < text.index("TABLE IF NOT EXISTS child")
        assert "ALTER TABLE" not in text

    def test_not_null_kept_outside_primary_key(self, dump):
        text = dump("CREATE TABLE t (id int PRIMARY KEY, email text NOT NULL);")

        assert "    id integer,\n" in text
        assert "    email text NOT NULL,\n" in text

    def test_unlogged_and_partitioned(self, dump):
        assert dump("CREATE UNLOGGED TABLE cache (k text);") == (
            "CREATE UNLOGGED TABLE IF NOT EXISTS cache (\n"
            "    k text\n"
            ");\n"
        )
        text = dump("CREATE TABLE events (created_at timestamp) PARTITION BY range (created_at);")
        assert text.endswith(") PARTITION BY RANGE (created_at);\n")

    def test_indexes(self, dump):
        text = dump(
            "CREATE TABLE t (email text, tags text[]);\n"
            "CREATE UNIQUE INDEX ON t (lower(email));\n"
            "CREATE INDEX t_tags ON t USING GIN (tags);"
        )

        assert "CREATE UNIQUE INDEX IF NOT EXISTS t_lower_idx ON t (lower(email));" in text
        assert "CREATE INDEX IF NOT EXISTS t_tags ON t USING gin (tags);" in text

    def test_partial_index(self, dump):
        text = dump(
            "CREATE TABLE t (a int, deleted boolean);\n"
            "CREATE INDEX t_a ON t (a) WHERE deleted IS NULL;"
        )
        assert "CREATE INDEX IF NOT EXISTS t_a ON t (a) WHERE deleted IS NULL;" in text

    def test_policy(self, dump):
        text = dump(
            "CREATE TABLE t (a int);\n"
            "ALTER TABLE t ENABLE ROW LEVEL SECURITY;\n"
            "CREATE POLICY p ON t AS RESTRICTIVE FOR SELECT TO reader USING (a=1);"
        )

        assert "ALTER TABLE t ENABLE ROW LEVEL SECURITY;" in text
        assert "CREATE POLICY p ON t AS RESTRICTIVE FOR SELECT TO reader USING (a = 1);" in text
        assert text.index("ROW LEVEL SECURITY") < text.index("CREATE POLICY")

    def test_trigger(self, dump):
        text = dump(
            "CREATE TABLE t (a int);\n"
            "CREATE TRIGGER tr AFTER UPDATE OF a OR INSERT ON t FOR EACH ROW EXECUTE PROCEDURE f();"
        )
        assert text.endswith(
            "CREATE OR REPLACE TRIGGER tr\n"
            "    AFTER INSERT OR UPDATE OF a ON t\n"
            "    FOR EACH ROW\n"
            "    EXECUTE FUNCTION f();\n"
        )

    def test_comments(self, dump):
        text = dump(
            "CREATE TABLE t (a int);\n"
            "COMMENT ON TABLE t IS 'Таблица';\n"
            "COMMENT ON COLUMN t.a IS 'It''s a';"
        )

        assert "COMMENT ON TABLE t IS 'Таблица';" in text
        assert "COMMENT ON COLUMN t.a IS 'It''s a';" in text
        assert text.index("COMMENT ON TABLE") < text.index("COMMENT ON COLUMN")


class TestRoutinesAndViews:
    """Функции, процедуры, представления."""

    def test_function(self, dump):
        sql = "CREATE FUNCTION add(a int, b int) RETURNS int AS $$ SELECT a + b $$ LANGUAGE SQL IMMUTABLE;"
        assert dump(sql) == (
            "CREATE OR REPLACE FUNCTION add(\n"
            "    a integer,\n"
            "    b integer\n"
            ")\n"
            "RETURNS integer\n"
            "LANGUAGE sql\n"
            "SECURITY INVOKER\n"
            "IMMUTABLE\n"
            "AS $$\n"
            "SELECT a + b\n"
            "$$;\n"
        )

    def test_function_options(self, dump):
        text = dump(
            "CREATE FUNCTION f() RETURNS int LANGUAGE sql STABLE STRICT SECURITY DEFINER "
            "PARALLEL SAFE COST 100 SET search_path = public AS 'SELECT 1';"
        )
        assert text == (
            "CREATE OR REPLACE FUNCTION f()\n"
            "RETURNS integer\n"
            "LANGUAGE sql\n"
            "SECURITY DEFINER\n"
            "STABLE\n"
            "STRICT\n"
            "PARALLEL SAFE\n"
            "SET search_path TO public\n"
            "AS $$\n"
            "SELECT 1\n"
            "$$;\n"
        )

    def test_procedure(self, dump):
        assert dump("CREATE PROCEDURE p() LANGUAGE plpgsql AS $$ BEGIN NULL; END $$;") == (
            "CREATE OR REPLACE PROCEDURE p()\n"
            "LANGUAGE plpgsql\n"
            "SECURITY INVOKER\n"
            "AS $$\n"
            "BEGIN NULL; END\n"
            "$$;\n"
        )

    def test_view_with_check_option(self, dump):
        text = dump(
            "CREATE TABLE t (a int);\n"
            "CREATE VIEW v (x) WITH (security_barrier) AS SELECT a FROM t WITH LOCAL CHECK OPTION;"
        )
        assert text.endswith(
            "CREATE OR REPLACE VIEW v (x) WITH (security_barrier) AS\n"
            " SELECT a\n"
            "   FROM t\n"
            "  WITH LOCAL CHECK OPTION;\n"
        )

    def test_materialized_view(self, dump):
        assert dump("CREATE MATERIALIZED VIEW mv AS SELECT 1 AS one WITH NO DATA;") == (
            "CREATE MATERIALIZED VIEW IF NOT EXISTS mv AS\n"
            " SELECT 1 AS one\n"
            "  WITH NO DATA;\n"
        )
