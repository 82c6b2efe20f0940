"""
Тесты правил канонизации C1..C9 и реестра правил.
"""

import pytest

from pgcanon.core.exceptions import CanonicalizationError
from pgcanon.core.models import ConstraintType
from pgcanon.rules import (
    DEFAULT_RULES,
    BaseRule,
    RuleC1,
    RuleC2,
    RuleC3,
    RuleC5,
    RuleC6,
    RuleC7,
    RuleC8,
    RuleC9,
    RuleRegistry,
)


class TestRuleC1:
    """Раскрытие SERIAL."""

    def test_serial_expanded(self, parse):
        catalog = parse("CREATE TABLE users (id SERIAL PRIMARY KEY);")
        rewrites = RuleC1({}).apply(catalog)

        column = catalog.tables["public.users"].columns["id"]
        assert column.data_type == "integer"
        assert column.not_null
        assert column.default == "nextval('users_id_seq'::regclass)"

        seq = catalog.sequences["public.users_id_seq"]
        assert seq.data_type == "integer"
        assert (seq.owned_by_table, seq.owned_by_column) == ("users", "id")

        assert len(rewrites) == 1
        assert rewrites[0]["object"] == "public.users.id"
        assert (rewrites[0]["before"], rewrites[0]["after"]) == ("SERIAL", "integer")

    def test_bigserial_and_smallserial(self, parse):
        catalog = parse("CREATE TABLE t (a bigserial, b serial2);")
        RuleC1({}).apply(catalog)
        assert catalog.sequences["public.t_a_seq"].data_type == "bigint"
        assert catalog.sequences["public.t_b_seq"].data_type == "smallint"

    def test_sequence_name_collision(self, parse):
        catalog = parse("CREATE SEQUENCE users_id_seq;\nCREATE TABLE users (id serial);")
        RuleC1({}).apply(catalog)
        column = catalog.tables["public.users"].columns["id"]
        assert column.default == "nextval('users_id_seq1'::regclass)"
        assert "public.users_id_seq1" in catalog.sequences

    def test_other_schema_is_qualified(self, parse):
        catalog = parse("CREATE TABLE billing.t (id serial);")
        RuleC1({}).apply(catalog)
        column = catalog.tables["billing.t"].columns["id"]
        assert column.default == "nextval('billing.t_id_seq'::regclass)"

    def test_no_serial_no_rewrites(self, parse):
        assert RuleC1({}).apply(parse("CREATE TABLE t (id integer);")) == []


class TestRuleC2:
    """Нормализация типов."""

    def test_column_types(self, parse):
        catalog = parse(
            "CREATE TYPE user_status AS ENUM ('a');\n"
            "CREATE TABLE t (a INT4, b character varying(20), c public.user_status, "
            "d timestamp with time zone, e DECIMAL(10, 2));"
        )
        RuleC2({}).apply(catalog)
        types = [c.data_type for c in catalog.tables["public.t"].columns.values()]
        assert types == ["integer", "varchar(20)", "user_status", "timestamptz", "numeric(10,2)"]

    def test_function_signature_rekeyed(self, parse):
        catalog = parse("CREATE FUNCTION f(a int4) RETURNS int8 AS 'select 1' LANGUAGE sql;")
        assert list(catalog.functions) == ["public.f(int4)"]

        RuleC2({}).apply(catalog)

        assert list(catalog.functions) == ["public.f(integer)"]
        assert catalog.functions["public.f(integer)"].returns == "bigint"

    def test_returns_table_and_setof(self, parse):
        catalog = parse(
            "CREATE FUNCTION a() RETURNS TABLE (id int4, Name text) AS 'x' LANGUAGE sql;\n"
            "CREATE FUNCTION b() RETURNS SETOF int8 AS 'x' LANGUAGE sql;"
        )
        RuleC2({}).apply(catalog)
        assert catalog.functions["public.a()"].returns == "TABLE(id integer, name text)"
        assert catalog.functions["public.b()"].returns == "SETOF bigint"

    def test_domain_and_composite(self, parse):
        catalog = parse(
            "CREATE DOMAIN d AS INT;\n"
            "CREATE TYPE c AS (x float8, y bool);"
        )
        RuleC2({}).apply(catalog)
        assert catalog.domains["public.d"].base_type == "integer"
        assert [f.data_type for f in catalog.types["public.c"].fields] == ["double precision", "boolean"]

    def test_canonical_types_untouched(self, parse):
        catalog = parse("CREATE TABLE t (a integer, b text);")
        assert RuleC2({}).apply(catalog) == []


class TestRuleC3:
    """Нормализация выражений."""

    def test_defaults_and_checks(self, parse):
        catalog = parse(
            "CREATE TABLE t (\n"
            "    a numeric CHECK ( A>=0 ),\n"
            "    b timestamptz DEFAULT NOW(),\n"
            "    c bigint DEFAULT nextval( 'public.s'::regclass )\n"
            ");"
        )
        RuleC3({}).apply(catalog)
        table = catalog.tables["public.t"]
        assert table.constraints[0].check_clause == "a >= 0"
        assert table.columns["b"].default == "now()"
        assert table.columns["c"].default == "nextval('s'::regclass)"

    def test_domain_value_keyword(self, parse):
        catalog = parse("CREATE DOMAIN posint AS int CHECK (value>0);")
        RuleC3({}).apply(catalog)
        assert catalog.domains["public.posint"].constraints[0].check_clause == "VALUE > 0"

    def test_partition_and_index(self, parse):
        catalog = parse(
            "CREATE TABLE e (At date) PARTITION BY range (At);\n"
            "CREATE INDEX e_at ON e (LOWER( at::text )) WHERE At IS NOT NULL;"
        )
        RuleC3({}).apply(catalog)
        assert catalog.tables["public.e"].partition_by == "RANGE (at)"
        index = catalog.indexes["public.e_at"]
        assert index.elements == ["lower(at::text)"]
        assert index.where == "at IS NOT NULL"

    def test_policy_and_trigger_condition(self, parse):
        catalog = parse(
            "CREATE TABLE t (a int);\n"
            "CREATE POLICY p ON t USING (A  =  1);\n"
            "CREATE TRIGGER tr BEFORE UPDATE ON t FOR EACH ROW "
            "WHEN (new.a<>old.a) EXECUTE FUNCTION f();"
        )
        RuleC3({}).apply(catalog)
        assert catalog.policies["public.t.p"].using == "a = 1"
        assert catalog.triggers["public.t.tr"].condition == "new.a <> old.a"


class TestRuleC4:
    """Имена ограничений и индексов по умолчанию."""

    def test_default_constraint_names(self, canonicalize):
        catalog = canonicalize(
            "CREATE TABLE users (id int PRIMARY KEY);\n"
            "CREATE TABLE orders (\n"
            "    id int PRIMARY KEY,\n"
            "    user_id int REFERENCES users,\n"
            "    code text UNIQUE,\n"
            "    a int, b int,\n"
            "    qty int CHECK (qty > 0),\n"
            "    CHECK (a > b),\n"
            "    UNIQUE (a, b)\n"
            ");"
        )
        names = [c.name for c in catalog.tables["public.orders"].constraints]
        assert names == [
            "orders_pkey",
            "orders_user_id_fkey",
            "orders_code_key",
            "orders_qty_check",
            "orders_check",
            "orders_a_b_key",
        ]

    def test_primary_key_columns_not_null(self, canonicalize):
        table = canonicalize("CREATE TABLE t (a int, b int, PRIMARY KEY (a, b));").tables["public.t"]
        assert table.columns["a"].not_null and table.columns["b"].not_null

    def test_foreign_key_to_primary_key(self, canonicalize):
        catalog = canonicalize(
            "CREATE TABLE p (x int, y int, PRIMARY KEY (x, y));\n"
            "CREATE TABLE c (x int, y int, FOREIGN KEY (x, y) REFERENCES p);"
        )
        fk = catalog.tables["public.c"].constraints[0]
        assert fk.constraint_type == ConstraintType.FOREIGN_KEY
        assert fk.ref_columns == ["x", "y"]

    def test_default_actions_dropped(self, canonicalize):
        catalog = canonicalize(
            "CREATE TABLE p (id int PRIMARY KEY);\n"
            "CREATE TABLE c (p_id int REFERENCES p (id) MATCH SIMPLE ON DELETE NO ACTION ON UPDATE CASCADE);"
        )
        fk = catalog.tables["public.c"].constraints[0]
        assert fk.match_type is None
        assert fk.on_delete is None
        assert fk.on_update == "CASCADE"

    def test_name_collision(self, canonicalize):
        table = canonicalize(
            "CREATE TABLE t (a int UNIQUE, CONSTRAINT t_a_key CHECK (a > 0));"
        ).tables["public.t"]
        assert [c.name for c in table.constraints] == ["t_a_key1", "t_a_key"]

    def test_unnamed_indexes(self, canonicalize):
        catalog = canonicalize(
            "CREATE TABLE t (a int, b text);\n"
            "CREATE INDEX ON t (a, lower(b));\n"
            "CREATE INDEX ON t ((a + 1));\n"
            "CREATE INDEX ON t (a);\n"
            "CREATE INDEX ON t (a);"
        )
        assert sorted(catalog.indexes) == [
            "public.t_a_idx",
            "public.t_a_idx1",
            "public.t_a_lower_idx",
            "public.t_expr_idx",
        ]
        assert not any("unnamed" in i.attributes for i in catalog.indexes.values())

    def test_unnamed_domain_check(self, canonicalize):
        domain = canonicalize("CREATE DOMAIN posint AS int CHECK (VALUE > 0);").domains["public.posint"]
        assert domain.constraints[0].name == "posint_check"


class TestRuleC5:
    """Параметры последовательностей."""

    def test_defaults_dropped(self, parse):
        catalog = parse(
            "CREATE SEQUENCE s AS bigint INCREMENT 1 MINVALUE 1 "
            "MAXVALUE 9223372036854775807 START 5 CACHE 1;"
        )
        RuleC5({}).apply(catalog)
        seq = catalog.sequences["public.s"]
        assert seq.describe() == {
            "data_type": None,
            "increment": None,
            "min_value": None,
            "max_value": None,
            "start": None,
            "cache": None,
            "cycle": False,
            "owned_by": None,
            "comment": None,
        }

    def test_keep_start(self, parse):
        catalog = parse("CREATE SEQUENCE s START WITH 1000;")
        RuleC5({"keep_sequence_start": True}).apply(catalog)
        assert catalog.sequences["public.s"].start == 1000

    def test_descending_defaults(self, parse):
        catalog = parse(
            "CREATE SEQUENCE s INCREMENT BY -1 MINVALUE -9223372036854775808 MAXVALUE -1;"
        )
        RuleC5({}).apply(catalog)
        seq = catalog.sequences["public.s"]
        assert seq.increment == -1
        assert seq.min_value is None and seq.max_value is None

    def test_integer_bounds(self, parse):
        catalog = parse("CREATE SEQUENCE s AS integer MAXVALUE 2147483647 CACHE 10;")
        RuleC5({}).apply(catalog)
        seq = catalog.sequences["public.s"]
        assert seq.data_type == "integer"
        assert seq.max_value is None
        assert seq.cache == 10


class TestRuleC6:
    """Функции и процедуры."""

    def test_function_defaults(self, parse):
        catalog = parse(
            "CREATE FUNCTION f() RETURNS int LANGUAGE SQL PARALLEL UNSAFE COST 100 ROWS 1000 "
            "SET Search_Path = public AS $$\n  select 1\n$$;"
        )
        RuleC6({}).apply(catalog)
        fn = catalog.functions["public.f()"]
        assert fn.language == "sql"
        assert fn.volatility == "VOLATILE"
        assert fn.security_definer is False
        assert fn.parallel is None
        assert fn.cost is None
        assert fn.rows is None
        assert fn.set_options == ["search_path TO public"]
        assert fn.body == "select 1"

    def test_multiline_body_trimmed(self, parse):
        catalog = parse(
            "CREATE PROCEDURE p() LANGUAGE plpgsql AS $$\n\nBEGIN\n    NULL;   \nEND;\n\n$$;"
        )
        RuleC6({}).apply(catalog)
        assert catalog.procedures["public.p()"].body == "BEGIN\n    NULL;\nEND;"

    def test_explicit_values_kept(self, parse):
        catalog = parse(
            "CREATE FUNCTION f() RETURNS int LANGUAGE sql STABLE SECURITY DEFINER COST 5 "
            "AS 'select 1';"
        )
        RuleC6({}).apply(catalog)
        fn = catalog.functions["public.f()"]
        assert fn.volatility == "STABLE"
        assert fn.security_definer is True
        assert fn.cost == "5"


class TestRuleC7:
    """Триггеры."""

    def test_trigger_canonicalized(self, parse):
        catalog = parse(
            "CREATE TABLE t (a int);\n"
            "CREATE TRIGGER tr AFTER DELETE OR INSERT ON t EXECUTE PROCEDURE public.F( 'A' , 1 );"
        )
        rewrites = RuleC7({}).apply(catalog)
        trigger = catalog.triggers["public.t.tr"]
        assert trigger.events == ["INSERT", "DELETE"]
        assert trigger.level == "STATEMENT"
        assert trigger.function == "f('A', 1)"
        assert "execute_procedure" not in trigger.attributes
        assert len(rewrites) == 1

    def test_canonical_trigger_untouched(self, parse):
        catalog = parse(
            "CREATE TABLE t (a int);\n"
            "CREATE TRIGGER tr BEFORE INSERT OR UPDATE ON t FOR EACH ROW EXECUTE FUNCTION f();"
        )
        assert RuleC7({}).apply(catalog) == []


class TestRuleC8:
    """Политики RLS."""

    def test_policy_defaults(self, parse):
        catalog = parse("CREATE TABLE t (a int);\nCREATE POLICY p ON t USING (true);")
        RuleC8({}).apply(catalog)
        policy = catalog.policies["public.t.p"]
        assert policy.command == "ALL"
        assert policy.roles == ["PUBLIC"]

    def test_explicit_roles_kept(self, parse):
        catalog = parse("CREATE TABLE t (a int);\nCREATE POLICY p ON t FOR SELECT TO reader USING (true);")
        assert RuleC8({}).apply(catalog) == []


class TestRuleC9:
    """Представления."""

    def test_options_sorted(self, parse):
        catalog = parse(
            "CREATE TABLE t (a int);\n"
            "CREATE VIEW v WITH (security_barrier, check_option=local) AS SELECT a FROM t;"
        )
        RuleC9({}).apply(catalog)
        assert catalog.views["public.v"].options == ["check_option=local", "security_barrier"]


class _BrokenRule(BaseRule):
    RULE_ID = "C99"
    RULE_NAME = "Сломанное правило"
    RULE_DESCRIPTION = "Всегда завершается ошибкой."

    def apply(self, catalog):
        raise RuntimeError("boom")


class TestRuleRegistry:
    """Регистрация и применение правил."""

    SQL = (
        "CREATE SEQUENCE s START 10;\n"
        "CREATE TABLE t (id serial PRIMARY KEY, amount DECIMAL(10,2) CHECK (amount>0));\n"
        "CREATE FUNCTION f() RETURNS trigger AS $$ BEGIN RETURN NEW; END $$ LANGUAGE plpgsql;\n"
        "CREATE TRIGGER tr BEFORE UPDATE OR INSERT ON t FOR EACH ROW EXECUTE PROCEDURE f();\n"
        "CREATE POLICY p ON t USING (true);"
    )

    def test_apply_all(self, parse):
        catalog = parse(self.SQL)
        registry = RuleRegistry({})
        registry.register_rules(DEFAULT_RULES)

        result = registry.apply_all(catalog)

        assert [s["rule_id"] for s in result["statistics"]] == [f"C{i}" for i in range(1, 10)]
        assert result["summary"]["total_rewrites"] == len(result["rewrites"])
        assert all("rule" in r and "rule_name" in r for r in result["rewrites"])

    def test_second_pass_is_noop(self, parse):
        catalog = parse(self.SQL)
        registry = RuleRegistry({})
        registry.register_rules(DEFAULT_RULES)
        registry.apply_all(catalog)

        again = registry.apply_all(catalog)

        assert again["rewrites"] == []

    def test_disabled_rule(self, parse):
        catalog = parse(self.SQL)
        registry = RuleRegistry({"rules": {"C5": {"enabled": False}}})
        registry.register_rules(DEFAULT_RULES)

        result = registry.apply_all(catalog)

        assert "C5" not in [s["rule_id"] for s in result["statistics"]]
        assert catalog.sequences["public.s"].start == 10

    def test_custom_order(self):
        registry = RuleRegistry({"rules": {"rule_order": "custom", "custom_order": ["C3", "C1"]}})
        registry.register_rules([RuleC1, RuleC3, RuleC2])
        assert [r["id"] for r in registry.list_rules()] == ["C3", "C1", "C2"]

    def test_rule_failure(self, parse):
        registry = RuleRegistry({})
        registry.register_rule(_BrokenRule)

        with pytest.raises(CanonicalizationError) as exc:
            registry.apply_all(parse("CREATE TABLE t (a int);"))
        assert exc.value.details["rule_id"] == "C99"

    def test_report_limit(self, parse):
        catalog = parse("CREATE TABLE t (a INT4, b INT4, c INT4);")
        registry = RuleRegistry({"rules": {"C2": {"max_reports_per_rule": 2}}})
        registry.register_rule(RuleC2)

        rewrites = registry.apply_all(catalog)["rewrites"]

        assert len(rewrites) == 3
        assert rewrites[-1]["details"]["total_rewrites"] == 3

    def test_empty_registry(self, parse):
        result = RuleRegistry({}).apply_all(parse("CREATE TABLE t (a int);"))
        assert result["summary"]["total_rewrites"] == 0
