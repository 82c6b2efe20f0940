# pgcanon/core/__init__.py

from .models import (
    DatabaseObject,
    ObjectType,
    RelationType,
    ConstraintType,
    TypeKind,
    TypeDef,
    CompositeField,
    Domain,
    DomainConstraint,
    Sequence,
    Table,
    Column,
    Constraint,
    Index,
    Policy,
    Trigger,
    Argument,
    Routine,
    Function,
    Procedure,
    View,
    Catalog,
)

from .exceptions import (
    PgCanonError,
    ParsingError,
    UnsupportedFeatureError,
    IncludeError,
    CircularIncludeError,
    IncludePathError,
    IncludeNotFoundError,
    CanonicalizationError,
    GraphBuildingError,
    CircularDependencyError,
    ComparisonError,
    ConfigError,
)

from .config import DEFAULT_CONFIG, build_config, load_config
from .ignore import ObjectFilter

__all__ = [
    # models
    "DatabaseObject",
    "ObjectType",
    "RelationType",
    "ConstraintType",
    "TypeKind",
    "TypeDef",
    "CompositeField",
    "Domain",
    "DomainConstraint",
    "Sequence",
    "Table",
    "Column",
    "Constraint",
    "Index",
    "Policy",
    "Trigger",
    "Argument",
    "Routine",
    "Function",
    "Procedure",
    "View",
    "Catalog",

    # exceptions
    "PgCanonError",
    "ParsingError",
    "UnsupportedFeatureError",
    "IncludeError",
    "CircularIncludeError",
    "IncludePathError",
    "IncludeNotFoundError",
    "CanonicalizationError",
    "GraphBuildingError",
    "CircularDependencyError",
    "ComparisonError",
    "ConfigError",

    # config
    "DEFAULT_CONFIG",
    "build_config",
    "load_config",

    # ignore
    "ObjectFilter",
]
