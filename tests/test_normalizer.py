"""
Тесты токенизатора, нормализатора и разбора верхнего уровня.
"""

import pytest

from pgcanon.core.exceptions import ParsingError
from pgcanon.parser import (
    SQLNormalizer,
    SQLTokenizer,
    TokenType,
    find_matching_paren,
    mask_text,
    split_clauses,
    split_top_level,
    strip_outer_parens,
)


@pytest.fixture
def normalizer():
    return SQLNormalizer()


class TestTokenizer:
    """Лексический анализ."""

    def test_keywords_upper_identifiers_lower(self):
        tokens = SQLTokenizer().tokenize("select Email from Users")
        values = [(t.type, t.value) for t in tokens[:-1]]
        assert values == [
            (TokenType.KEYWORD, "SELECT"),
            (TokenType.IDENTIFIER, "email"),
            (TokenType.KEYWORD, "FROM"),
            (TokenType.IDENTIFIER, "users"),
        ]
        assert tokens[-1].type == TokenType.EOF

    @pytest.mark.parametrize("word", ["count", "now", "user", "status", "note", "amount"])
    def test_common_names_are_not_keywords(self, word):
        token = SQLTokenizer().tokenize(word)[0]
        assert token.type == TokenType.IDENTIFIER

    def test_dollar_string_is_single_token(self):
        tokens = SQLTokenizer().tokenize("$body$ SELECT 1; $body$")
        assert tokens[0].type == TokenType.DOLLAR_STRING
        assert tokens[0].value == "$body$ SELECT 1; $body$"

    def test_string_with_escaped_quote(self):
        tokens = SQLTokenizer().tokenize("'it''s'")
        assert tokens[0].type == TokenType.STRING
        assert tokens[0].value == "'it''s'"

    def test_positions(self):
        tokens = SQLTokenizer().tokenize("a\n  b")
        assert (tokens[1].line, tokens[1].column) == (2, 3)

    def test_trivia_kept_on_request(self):
        tokens = SQLTokenizer(keep_trivia=True).tokenize("a -- c\nb")
        types = [t.type for t in tokens]
        assert TokenType.COMMENT in types
        assert TokenType.NEWLINE in types

    def test_extra_keywords(self):
        token = SQLTokenizer(extra_keywords=["status"]).tokenize("status")[0]
        assert token.is_keyword("STATUS")

    def test_strip_comments_keeps_literals(self):
        text = "SELECT '-- not a comment' -- comment\n/* block */ FROM t"
        stripped = SQLTokenizer().strip_comments(text)
        assert "'-- not a comment'" in stripped
        assert "comment\n" not in stripped
        assert "block" not in stripped


class TestSplitStatements:
    """Разбиение текста на операторы."""

    def test_splits_and_drops_semicolons(self, normalizer):
        sql = "CREATE TABLE a (id int);\nCREATE TABLE b (id int);"
        assert normalizer.split_statements(sql) == [
            "CREATE TABLE a (id int)",
            "CREATE TABLE b (id int)",
        ]

    def test_empty_statements_skipped(self, normalizer):
        assert normalizer.split_statements("CREATE TABLE a (id int);;\n;") == ["CREATE TABLE a (id int)"]

    def test_comments_removed(self, normalizer):
        sql = "-- header\nCREATE TABLE a (id int); -- tail\n/* block */"
        assert normalizer.split_statements(sql) == ["CREATE TABLE a (id int)"]

    def test_semicolon_inside_dollar_body(self, normalizer):
        sql = (
            "CREATE FUNCTION f() RETURNS int AS $$\n"
            "SELECT 1;\n"
            "$$ LANGUAGE sql;\n"
            "CREATE TABLE a (id int);"
        )
        statements = normalizer.split_statements(sql)
        assert len(statements) == 2
        assert statements[0].endswith("LANGUAGE sql")

    def test_meta_commands_dropped(self, normalizer):
        sql = "\\set ON_ERROR_STOP on\nCREATE TABLE a (id int);"
        assert normalizer.split_statements(sql) == ["CREATE TABLE a (id int)"]

    def test_blank_text(self, normalizer):
        assert normalizer.split_statements("  \n ") == []


class TestStatementType:
    """Классификация операторов."""

    @pytest.mark.parametrize("sql, kind", [
        ("create   table foo (id int)", "CREATE_TABLE"),
        ("CREATE UNLOGGED TABLE foo (id int)", "CREATE_TABLE"),
        ("CREATE OR REPLACE VIEW v AS SELECT 1", "CREATE_VIEW"),
        ("CREATE MATERIALIZED VIEW mv AS SELECT 1", "CREATE_MATERIALIZED_VIEW"),
        ("CREATE UNIQUE INDEX i ON t (a)", "CREATE_INDEX"),
        ("CREATE TYPE mood AS ENUM ('ok')", "CREATE_TYPE"),
        ("CREATE DOMAIN posint AS int", "CREATE_DOMAIN"),
        ("CREATE SEQUENCE s", "CREATE_SEQUENCE"),
        ("CREATE OR REPLACE FUNCTION f() RETURNS int AS 'select 1' LANGUAGE sql", "CREATE_FUNCTION"),
        ("CREATE PROCEDURE p() LANGUAGE sql AS 'select 1'", "CREATE_PROCEDURE"),
        ("CREATE TRIGGER tr BEFORE INSERT ON t FOR EACH ROW EXECUTE FUNCTION f()", "CREATE_TRIGGER"),
        ("CREATE POLICY p ON t USING (true)", "CREATE_POLICY"),
        ("COMMENT ON TABLE t IS 'x'", "COMMENT"),
        ("ALTER TABLE t ADD COLUMN a int", "ALTER_TABLE"),
        ("ALTER SEQUENCE s OWNED BY t.id", "ALTER_SEQUENCE"),
        ("ALTER FUNCTION f() OWNER TO admin", "IGNORED"),
        ("SET search_path = public", "IGNORED"),
        ("GRANT SELECT ON t TO reader", "IGNORED"),
        ("CREATE EXTENSION IF NOT EXISTS pgcrypto", "IGNORED"),
        ("DROP TABLE t", "UNKNOWN"),
    ])
    def test_statement_type(self, normalizer, sql, kind):
        assert normalizer.get_statement_type(sql) == kind


class TestNormalizeExpression:
    """Каноническая запись выражений."""

    @pytest.mark.parametrize("expr, expected", [
        ("  Amount   >=  0 ", "amount >= 0"),
        ("nextval( 'Seq' )", "nextval('Seq')"),
        ("x :: TEXT", "x::text"),
        ('"amount" > 0', "amount > 0"),
        ('"Amount" > 0', '"Amount" > 0'),
        ('"user" IS NOT NULL', '"user" IS NOT NULL'),
        ("-1", "-1"),
        ("a - 1", "a - 1"),
        ("a * (-1)", "a * (-1)"),
        ("u.FIRST", "u.first"),
        ("coalesce(a,b , c)", "coalesce(a, b, c)"),
        ("tags [ 1 ]", "tags[1]"),
        ("left(name, 2)", "left(name, 2)"),
        ("status in ('a','b')", "status IN ('a', 'b')"),
    ])
    def test_normalize(self, normalizer, expr, expected):
        assert normalizer.normalize_expression(expr) == expected

    def test_none_and_blank(self, normalizer):
        assert normalizer.normalize_expression(None) is None
        assert normalizer.normalize_expression("   ") == ""

    def test_literals_untouched(self, normalizer):
        assert normalizer.normalize_expression("'MiXeD  Case'") == "'MiXeD  Case'"

    def test_collapse_whitespace_keeps_literals(self, normalizer):
        assert normalizer.collapse_whitespace("a   'x  y'\n  b") == "a 'x  y' b"


class TestNormalizeWhitespace:
    """Нормализация текста перед сравнением."""

    def test_line_endings_and_blank_runs(self, normalizer):
        assert normalizer.normalize_whitespace("\n\na  \r\n\n\n\nb\n\n") == "a\n\nb\n"

    def test_empty(self, normalizer):
        assert normalizer.normalize_whitespace(" \n \n") == ""


class TestScanner:
    """Разбор на верхнем уровне скобок."""

    def test_mask_hides_literals_and_nested(self):
        masked = mask_text("a ('x,y', b) 'c,d'")
        assert "," not in masked
        assert len(masked) == len("a ('x,y', b) 'c,d'")

    def test_split_top_level(self):
        parts = split_top_level("id int, amount numeric(10, 2), note text DEFAULT 'a,b'")
        assert parts == ["id int", "amount numeric(10, 2)", "note text DEFAULT 'a,b'"]

    def test_find_matching_paren(self):
        text = "(a, (b), ')')"
        assert find_matching_paren(text, 0) == len(text) - 1

    def test_unbalanced_paren(self):
        with pytest.raises(ParsingError):
            find_matching_paren("(a, (b)", 0)

    @pytest.mark.parametrize("text, expected", [
        ("((a > 0))", "a > 0"),
        ("(a) + (b)", "(a) + (b)"),
        ("a", "a"),
    ])
    def test_strip_outer_parens(self, text, expected):
        assert strip_outer_parens(text) == expected

    def test_split_clauses(self):
        head, clauses = split_clauses(
            "orders FOR EACH ROW WHEN (x) EXECUTE FUNCTION f()",
            r"\bFOR\s+EACH\b|\bWHEN\b|\bEXECUTE\b",
        )
        assert head == "orders"
        assert [k for k, _ in clauses] == ["FOR EACH", "WHEN", "EXECUTE"]
        assert clauses[1][1] == "(x)"
