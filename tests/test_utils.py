"""
Тесты утилит имён и типов.
"""

import pytest

from pgcanon.utils import (
    choose_name,
    is_builtin_type,
    is_serial_type,
    make_object_name,
    normalize_identifier,
    normalize_type,
    qualify,
    quote_identifier,
    resolve_name,
    serial_base_type,
    split_name_parts,
    unquote_literal,
)


class TestIdentifiers:
    """Разбор и вывод идентификаторов."""

    @pytest.mark.parametrize("raw, expected", [
        ("Users", "users"),
        ('"Users"', "Users"),
        ('"say ""hi"""', 'say "hi"'),
        ("  orders ", "orders"),
    ])
    def test_normalize_identifier(self, raw, expected):
        assert normalize_identifier(raw) == expected

    def test_split_name_parts_respects_quotes(self):
        assert split_name_parts('public."My.Table"') == ["public", '"My.Table"']

    def test_resolve_name_defaults_schema(self):
        assert resolve_name("Users") == ("public", "users")
        assert resolve_name("billing.Invoices", "public") == ("billing", "invoices")
        assert resolve_name("t", "app") == ("app", "t")

    @pytest.mark.parametrize("name, expected", [
        ("users", "users"),
        ("Users", '"Users"'),
        ("user", '"user"'),
        ("order items", '"order items"'),
        ("1st", '"1st"'),
    ])
    def test_quote_identifier(self, name, expected):
        assert quote_identifier(name) == expected

    def test_qualify_skips_target_schema(self):
        assert qualify("public", "users") == "users"
        assert qualify("billing", "invoices") == "billing.invoices"
        assert qualify("app", "t", target_schema="app") == "t"

    def test_unquote_literal(self):
        assert unquote_literal("'It''s'") == "It's"
        assert unquote_literal("E'a\\nb'") == "a\\nb"


class TestDefaultNames:
    """Имена, которые выдал бы PostgreSQL."""

    def test_simple(self):
        assert make_object_name("orders", "user_id", "fkey") == "orders_user_id_fkey"
        assert make_object_name("users", None, "pkey") == "users_pkey"

    def test_truncated_to_identifier_length(self):
        name = make_object_name("a" * 60, "id", "seq")
        assert len(name) == 63
        assert name.endswith("_id_seq")

    def test_collision_gets_counter(self):
        assert choose_name("users", "email", "key", ["users_email_key"]) == "users_email_key1"
        assert choose_name("users", "email", "key", ["users_email_key", "users_email_key1"]) == "users_email_key2"


class TestTypes:
    """Нормализация записи типов."""

    @pytest.mark.parametrize("raw, expected", [
        ("INT4", "integer"),
        ("int", "integer"),
        ("CHARACTER VARYING(255)", "varchar(255)"),
        ("numeric(10, 2)", "numeric(10,2)"),
        ("DECIMAL", "numeric"),
        ("timestamp with time zone", "timestamptz"),
        ("timestamp(3) with time zone", "timestamptz(3)"),
        ("TIMESTAMP WITHOUT TIME ZONE", "timestamp"),
        ("int[]", "integer[]"),
        ("text[][]", "text[][]"),
        ("integer ARRAY", "integer[]"),
        ("float(10)", "real"),
        ("float8", "double precision"),
        ("bool", "boolean"),
        ("public.user_status", "user_status"),
        ("billing.money_kind", "billing.money_kind"),
        ('"MyType"', '"MyType"'),
        ("pg_catalog.int8", "bigint"),
    ])
    def test_normalize_type(self, raw, expected):
        assert normalize_type(raw) == expected

    def test_none(self):
        assert normalize_type(None) is None

    def test_builtin_detection(self):
        assert is_builtin_type("varchar(10)")
        assert is_builtin_type("timestamp with time zone")
        assert not is_builtin_type("user_status")
        assert not is_builtin_type("user_id integer")

    def test_serial(self):
        assert is_serial_type("SERIAL")
        assert is_serial_type("serial8")
        assert not is_serial_type("integer")
        assert serial_base_type("bigserial") == "bigint"
        assert serial_base_type("smallserial") == "smallint"
