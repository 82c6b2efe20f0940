"""
Константы системы канонизации схем PostgreSQL.
"""

# Версия системы
VERSION = "0.1.0"
TOOL_NAME = "pgcanon"

# Схема, объекты которой выводятся без квалификации
DEFAULT_SCHEMA = "public"

# NAMEDATALEN - 1: длина идентификатора в PostgreSQL
MAX_IDENTIFIER_LENGTH = 63

# Каталоги многофайлового дампа (порядок подключения в главном файле)
OBJECT_DIRECTORIES = [
    "types",
    "domains",
    "sequences",
    "functions",
    "procedures",
    "tables",
    "views",
    "materialized_views",
]

# Порядок событий триггера в каноническом виде
TRIGGER_EVENT_ORDER = ["INSERT", "UPDATE", "DELETE", "TRUNCATE"]

# Порядок групп ограничений внутри CREATE TABLE
CONSTRAINT_GROUP_ORDER = ["PRIMARY KEY", "UNIQUE", "FOREIGN KEY", "CHECK", "EXCLUDE"]

# Зарезервированные слова, которые требуют кавычек в роли идентификатора
RESERVED_KEYWORDS = {
    "all", "analyse", "analyze", "and", "any", "array", "as", "asc",
    "asymmetric", "both", "case", "cast", "check", "collate", "column",
    "constraint", "create", "current_catalog", "current_date", "current_role",
    "current_time", "current_timestamp", "current_user", "default",
    "deferrable", "desc", "distinct", "do", "else", "end", "except", "false",
    "fetch", "for", "foreign", "from", "grant", "group", "having", "in",
    "initially", "intersect", "into", "lateral", "leading", "limit",
    "localtime", "localtimestamp", "not", "null", "offset", "on", "only",
    "or", "order", "placing", "primary", "references", "returning", "select",
    "session_user", "some", "symmetric", "table", "then", "to", "trailing",
    "true", "union", "unique", "user", "using", "variadic", "when", "where",
    "window", "with",
}

# Операторы, не влияющие на структуру схемы
IGNORED_STATEMENT_PREFIXES = (
    "SET ",
    "RESET ",
    "BEGIN",
    "COMMIT",
    "ROLLBACK",
    "START TRANSACTION",
    "END",
    "GRANT ",
    "REVOKE ",
    "CREATE SCHEMA",
    "CREATE EXTENSION",
    "ALTER DEFAULT PRIVILEGES",
    "SELECT PG_CATALOG.SET_CONFIG",
    "SELECT SET_CONFIG",
    "\\",
)

# Разделы "ignore" конфигурации: шаблоны имён объектов, исключаемых из дампа
IGNORE_KINDS = ("tables", "views", "functions", "procedures", "types", "sequences")
