"""
models/objects.py
-----------------
Typed descriptions of the catalog objects read from a source database.

Design Decision:
    Descriptors are frozen dataclasses holding everything the script
    generator needs, so generation never has to go back to the server.
    Tuples (not lists) keep them hashable and immutable once enumerated.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ObjectCategory(str, Enum):
    """Unit of policy inclusion."""
    SCHEMA = "schema"
    USER_DEFINED_DATA_TYPE = "user_defined_data_type"
    USER_DEFINED_TABLE_TYPE = "user_defined_table_type"
    SEQUENCE = "sequence"
    TABLE = "table"
    VIEW = "view"
    DEFAULT = "default"
    RULE = "rule"
    STORED_PROCEDURE = "stored_procedure"
    USER_DEFINED_FUNCTION = "user_defined_function"
    USER_DEFINED_AGGREGATE = "user_defined_aggregate"
    SYNONYM = "synonym"
    ASSEMBLY = "assembly"
    DATABASE_TRIGGER = "database_trigger"
    TRIGGER = "trigger"
    ROLE = "role"
    USER = "user"


# sys.objects.type → category (object triggers come from sys.triggers instead)
OBJECT_TYPE_CATEGORIES: dict[str, ObjectCategory] = {
    "U": ObjectCategory.TABLE,
    "V": ObjectCategory.VIEW,
    "D": ObjectCategory.DEFAULT,
    "R": ObjectCategory.RULE,
    "P": ObjectCategory.STORED_PROCEDURE,
    "PC": ObjectCategory.STORED_PROCEDURE,
    "FN": ObjectCategory.USER_DEFINED_FUNCTION,
    "IF": ObjectCategory.USER_DEFINED_FUNCTION,
    "TF": ObjectCategory.USER_DEFINED_FUNCTION,
    "FS": ObjectCategory.USER_DEFINED_FUNCTION,
    "FT": ObjectCategory.USER_DEFINED_FUNCTION,
    "AF": ObjectCategory.USER_DEFINED_AGGREGATE,
    "SN": ObjectCategory.SYNONYM,
    "SO": ObjectCategory.SEQUENCE,
}


class PermissionState(str, Enum):
    GRANT = "G"
    GRANT_WITH_GRANT_OPTION = "W"
    DENY = "D"


class SecurableClass(str, Enum):
    DATABASE = "database"
    OBJECT = "object"
    SCHEMA = "schema"


@dataclass(frozen=True)
class PermissionGrant:
    """One row of ``sys.database_permissions`` relevant to a securable."""
    state: PermissionState
    permission: str
    securable_class: SecurableClass
    grantee: str
    column: str | None = None


@dataclass(frozen=True)
class ColumnDescriptor:
    """
    A table (or table type) column.

    Attributes:
        type_name:  Base or user-defined type name.
        type_schema: Schema of *type_name* (``sys`` for built-ins).
        max_length: Bytes as stored in ``sys.columns`` (-1 → MAX).
        computed:   Expression text for computed columns, else None.
        default_name / default_definition: Bound default constraint.
        identity:   ``(seed, increment)`` for identity columns.
    """
    name: str
    type_name: str
    type_schema: str = "sys"
    max_length: int = 0
    precision: int = 0
    scale: int = 0
    is_nullable: bool = True
    identity: tuple[Any, Any] | None = None
    computed: str | None = None
    is_persisted: bool = False
    collation: str | None = None
    default_name: str | None = None
    default_definition: str | None = None


@dataclass(frozen=True)
class IndexDescriptor:
    """An index or a key constraint backing one (PK / UNIQUE)."""
    name: str
    columns: tuple[tuple[str, bool], ...]  # (column, descending)
    is_unique: bool = False
    is_clustered: bool = False
    is_primary_key: bool = False
    is_unique_constraint: bool = False
    included_columns: tuple[str, ...] = ()
    filter_definition: str | None = None


@dataclass(frozen=True)
class ForeignKeyDescriptor:
    name: str
    columns: tuple[str, ...]
    referenced_schema: str
    referenced_table: str
    referenced_columns: tuple[str, ...]
    on_delete: str = "NO_ACTION"
    on_update: str = "NO_ACTION"


@dataclass(frozen=True)
class CheckConstraintDescriptor:
    name: str
    definition: str


@dataclass(frozen=True)
class ObjectDescriptor:
    """
    One enumerated object ready for scripting.

    ``schema`` is ``None`` for database-scoped objects (schemas themselves,
    principals, assemblies, database triggers).
    """
    category: ObjectCategory
    name: str
    schema: str | None = None
    owner: str | None = None
    object_id: int | None = None
    is_ms_shipped: bool = False
    definition: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)
    columns: tuple[ColumnDescriptor, ...] = ()
    indexes: tuple[IndexDescriptor, ...] = ()
    foreign_keys: tuple[ForeignKeyDescriptor, ...] = ()
    check_constraints: tuple[CheckConstraintDescriptor, ...] = ()
    permissions: tuple[PermissionGrant, ...] = ()
    role_memberships: tuple[str, ...] = ()
    dependencies: tuple[int, ...] = ()

    @property
    def qualified_name(self) -> str:
        """``[schema].[name]`` or ``[name]`` for database-scoped objects."""
        if self.schema is None:
            return quote_name(self.name)
        return f"{quote_name(self.schema)}.{quote_name(self.name)}"

    def __str__(self) -> str:
        return f"{self.category.value} {self.qualified_name}"


def quote_name(name: str) -> str:
    """Bracket-quote a SQL Server identifier (``]`` is doubled)."""
    return "[" + name.replace("]", "]]") + "]"


def quote_string(value: str) -> str:
    """Render *value* as an N'...' Unicode literal."""
    return "N'" + value.replace("'", "''") + "'"
