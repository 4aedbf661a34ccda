"""
core/enumerator.py
------------------
Reads the source catalog of one system database and yields the objects
the transfer policy selects.

Design Decisions:
    * Read-only: only SELECTs against catalog views are issued.
    * The enumeration is lazy and restartable. Iterating an
      :class:`ObjectEnumeration` twice queries the catalog twice, so each
      pass reflects the live source state at that moment.
    * Objects are yielded grouped by category; the generator still owns
      the final statement ordering.
    * Objects shipped with the engine are filtered here, as are the
      principals and schemas every database already has.
"""
from __future__ import annotations

from collections import defaultdict
from itertools import groupby
from typing import Any, Iterator

from core.database import ServerConnection
from logger import get_logger
from models.objects import (
    OBJECT_TYPE_CATEGORIES,
    CheckConstraintDescriptor,
    ColumnDescriptor,
    ForeignKeyDescriptor,
    IndexDescriptor,
    ObjectCategory,
    ObjectDescriptor,
    PermissionGrant,
    PermissionState,
    SecurableClass,
)
from models.policy import SYSTEM_DATABASES, TransferPolicy

log = get_logger(__name__)

# dbo, guest, INFORMATION_SCHEMA, sys
_BUILTIN_SCHEMA_MAX_ID = 4
_FIXED_ROLE_SCHEMA_MIN_ID = 16384
# public (0) .. sys (4)
_BUILTIN_PRINCIPAL_MAX_ID = 4

_USER_TYPES = ("S", "U", "G", "C", "K", "E", "X")

# Roles and users msdb ships with; none of them is flagged is_fixed_role.
_SHIPPED_PRINCIPALS = frozenset({
    "DatabaseMailUserRole",
    "db_ssisadmin",
    "db_ssisltduser",
    "db_ssisoperator",
    "dc_admin",
    "dc_operator",
    "dc_proxy",
    "MS_DataCollectorInternalUser",
    "PolicyAdministratorRole",
    "ServerGroupAdministratorRole",
    "ServerGroupReaderRole",
    "SQLAgentOperatorRole",
    "SQLAgentReaderRole",
    "SQLAgentUserRole",
    "TargetServersRole",
    "UtilityCMRReader",
    "UtilityIMRReader",
    "UtilityIMRWriter",
})

_OBJECTS_SQL = """
SELECT o.object_id, o.name, SCHEMA_NAME(o.schema_id) AS schema_name, o.type,
       o.is_ms_shipped, USER_NAME(o.principal_id) AS owner,
       OBJECT_DEFINITION(o.object_id) AS definition,
       sn.base_object_name
FROM sys.objects AS o
LEFT JOIN sys.synonyms AS sn ON sn.object_id = o.object_id
WHERE o.type IN ('U', 'V', 'D', 'R', 'P', 'PC', 'FN', 'IF', 'TF', 'FS', 'FT', 'AF', 'SN')
  AND o.parent_object_id = 0
ORDER BY SCHEMA_NAME(o.schema_id), o.name
"""

_SCHEMAS_SQL = """
SELECT s.schema_id, s.name, p.name AS owner
FROM sys.schemas AS s
JOIN sys.database_principals AS p ON p.principal_id = s.principal_id
WHERE s.schema_id > %s
ORDER BY s.name
"""

_TYPES_SQL = """
SELECT t.user_type_id, t.name, SCHEMA_NAME(t.schema_id) AS schema_name,
       bt.name AS base_type, t.max_length, t.precision, t.scale, t.is_nullable,
       t.is_table_type, t.is_assembly_type, tt.type_table_object_id,
       USER_NAME(t.principal_id) AS owner,
       a.name AS assembly_name, at.assembly_class
FROM sys.types AS t
LEFT JOIN sys.types AS bt
       ON bt.user_type_id = t.system_type_id AND t.is_table_type = 0 AND t.is_assembly_type = 0
LEFT JOIN sys.table_types AS tt ON tt.user_type_id = t.user_type_id
LEFT JOIN sys.assembly_types AS at ON at.user_type_id = t.user_type_id
LEFT JOIN sys.assemblies AS a ON a.assembly_id = at.assembly_id
WHERE t.is_user_defined = 1
ORDER BY SCHEMA_NAME(t.schema_id), t.name
"""

_SEQUENCES_SQL = """
SELECT s.object_id, s.name, SCHEMA_NAME(s.schema_id) AS schema_name, s.is_ms_shipped,
       USER_NAME(s.principal_id) AS owner, TYPE_NAME(s.user_type_id) AS type_name,
       CONVERT(nvarchar(100), s.start_value) AS start_value,
       CONVERT(nvarchar(100), s.increment) AS increment,
       CONVERT(nvarchar(100), s.minimum_value) AS minimum_value,
       CONVERT(nvarchar(100), s.maximum_value) AS maximum_value,
       s.is_cycling, s.is_cached, s.cache_size
FROM sys.sequences AS s
ORDER BY SCHEMA_NAME(s.schema_id), s.name
"""

_ASSEMBLIES_SQL = """
SELECT a.assembly_id, a.name, USER_NAME(a.principal_id) AS owner,
       a.permission_set_desc, a.is_user_defined, af.content
FROM sys.assemblies AS a
LEFT JOIN sys.assembly_files AS af ON af.assembly_id = a.assembly_id AND af.file_id = 1
ORDER BY a.name
"""

_TRIGGERS_SQL = """
SELECT tr.object_id, tr.name, tr.parent_class, tr.is_ms_shipped, tr.is_disabled,
       OBJECT_DEFINITION(tr.object_id) AS definition,
       OBJECT_SCHEMA_NAME(tr.parent_id) AS parent_schema,
       OBJECT_NAME(tr.parent_id) AS parent_name,
       OBJECT_SCHEMA_NAME(tr.object_id) AS schema_name
FROM sys.triggers AS tr
ORDER BY tr.parent_class, OBJECT_SCHEMA_NAME(tr.object_id), tr.name
"""

_PRINCIPALS_SQL = """
SELECT dp.principal_id, dp.name, dp.type, dp.default_schema_name,
       dp.authentication_type_desc, dp.is_fixed_role,
       SUSER_SNAME(dp.sid) AS login_name, USER_NAME(dp.owning_principal_id) AS owner
FROM sys.database_principals AS dp
WHERE dp.principal_id > %s
  AND dp.type IN ('R', 'S', 'U', 'G', 'C', 'K', 'E', 'X')
ORDER BY dp.name
"""

_ROLE_MEMBERS_SQL = """
SELECT rm.member_principal_id, USER_NAME(rm.role_principal_id) AS role_name
FROM sys.database_role_members AS rm
ORDER BY USER_NAME(rm.role_principal_id)
"""

_PERMISSIONS_SQL = """
SELECT p.class, p.major_id, p.permission_name, p.state,
       USER_NAME(p.grantee_principal_id) AS grantee,
       CASE WHEN p.class = 1 AND p.minor_id > 0
            THEN COL_NAME(p.major_id, p.minor_id) END AS column_name
FROM sys.database_permissions AS p
WHERE p.class IN (0, 1, 3)
  AND p.state IN ('G', 'W', 'D')
  AND p.grantee_principal_id <> 1
ORDER BY p.class, p.major_id, USER_NAME(p.grantee_principal_id), p.permission_name
"""

_DEPENDENCIES_SQL = """
SELECT d.referencing_id, d.referenced_id, d.referenced_class
FROM sys.sql_expression_dependencies AS d
WHERE d.referenced_id IS NOT NULL
  AND d.referenced_database_name IS NULL
  AND d.referenced_class IN (1, 6)
UNION
SELECT fk.parent_object_id, fk.referenced_object_id, 1
FROM sys.foreign_keys AS fk
WHERE fk.parent_object_id <> fk.referenced_object_id
"""

_COLUMNS_SQL = """
SELECT c.column_id, c.name, t.name AS type_name, SCHEMA_NAME(t.schema_id) AS type_schema,
       c.max_length, c.precision, c.scale, c.is_nullable, c.collation_name, c.is_identity,
       CONVERT(nvarchar(100), ic.seed_value) AS seed_value,
       CONVERT(nvarchar(100), ic.increment_value) AS increment_value,
       cc.definition AS computed_definition, cc.is_persisted,
       dc.name AS default_name, dc.definition AS default_definition
FROM sys.columns AS c
JOIN sys.types AS t ON t.user_type_id = c.user_type_id
LEFT JOIN sys.identity_columns AS ic ON ic.object_id = c.object_id AND ic.column_id = c.column_id
LEFT JOIN sys.computed_columns AS cc ON cc.object_id = c.object_id AND cc.column_id = c.column_id
LEFT JOIN sys.default_constraints AS dc
       ON dc.parent_object_id = c.object_id AND dc.parent_column_id = c.column_id
WHERE c.object_id = %s
ORDER BY c.column_id
"""

_INDEXES_SQL = """
SELECT i.index_id, i.name, i.type, i.is_unique, i.is_primary_key, i.is_unique_constraint,
       i.filter_definition, col.name AS column_name, ic.is_descending_key, ic.is_included_column
FROM sys.indexes AS i
JOIN sys.index_columns AS ic ON ic.object_id = i.object_id AND ic.index_id = i.index_id
JOIN sys.columns AS col ON col.object_id = ic.object_id AND col.column_id = ic.column_id
WHERE i.object_id = %s AND i.type IN (1, 2) AND i.is_hypothetical = 0
ORDER BY i.index_id, ic.is_included_column, ic.key_ordinal, ic.index_column_id
"""

_FOREIGN_KEYS_SQL = """
SELECT fk.name, fk.delete_referential_action_desc, fk.update_referential_action_desc,
       SCHEMA_NAME(rt.schema_id) AS referenced_schema, rt.name AS referenced_table,
       pc.name AS column_name, rc.name AS referenced_column
FROM sys.foreign_keys AS fk
JOIN sys.foreign_key_columns AS fkc ON fkc.constraint_object_id = fk.object_id
JOIN sys.tables AS rt ON rt.object_id = fk.referenced_object_id
JOIN sys.columns AS pc ON pc.object_id = fkc.parent_object_id AND pc.column_id = fkc.parent_column_id
JOIN sys.columns AS rc ON rc.object_id = fkc.referenced_object_id AND rc.column_id = fkc.referenced_column_id
WHERE fk.parent_object_id = %s
ORDER BY fk.name, fkc.constraint_column_id
"""

_CHECKS_SQL = """
SELECT cc.name, cc.definition
FROM sys.check_constraints AS cc
WHERE cc.parent_object_id = %s
ORDER BY cc.name
"""

_CLR_MODULE_SQL = """
SELECT a.name AS assembly_name, am.assembly_class, am.assembly_method
FROM sys.assembly_modules AS am
JOIN sys.assemblies AS a ON a.assembly_id = am.assembly_id
WHERE am.object_id = %s
"""

_PARAMETERS_SQL = """
SELECT p.parameter_id, p.name, t.name AS type_name, SCHEMA_NAME(t.schema_id) AS type_schema,
       p.max_length, p.precision, p.scale, p.is_output
FROM sys.parameters AS p
JOIN sys.types AS t ON t.user_type_id = p.user_type_id
WHERE p.object_id = %s
ORDER BY p.parameter_id
"""

_CLR_TYPES = frozenset({"PC", "FS", "FT", "AF"})

# Dependency keys: (referenced_class, id). Class 1 is an object, 6 a type.
DependencyKey = tuple[int, int]


class ObjectEnumeration:
    """
    Restartable sequence of :class:`ObjectDescriptor` for one database.

    Example::

        objects = enumerate_objects(conn, "msdb", TransferPolicy())
        for obj in objects:
            print(obj)
    """

    def __init__(
        self,
        db: ServerConnection,
        database_name: str,
        policy: TransferPolicy,
    ) -> None:
        if database_name not in SYSTEM_DATABASES:
            raise ValueError(
                f"{database_name!r} is not a system database; expected one of {SYSTEM_DATABASES}"
            )
        self._db = db
        self.database_name = database_name
        self._policy = policy

    def __iter__(self) -> Iterator[ObjectDescriptor]:
        return self._enumerate()

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def _enumerate(self) -> Iterator[ObjectDescriptor]:
        self._db.select_database(self.database_name)
        log.info("Enumerating objects in %s on %s", self.database_name, self._db.address)

        permissions = self._load_permissions() if self._policy.include_permissions else {}
        dependencies = self._load_dependencies() if self._policy.include_dependencies else {}
        closure = self._dependency_closure(dependencies) if dependencies else set()

        def wanted(category: ObjectCategory, key: DependencyKey | None = None) -> bool:
            return self._policy.includes(category) or (key is not None and key in closure)

        count = 0
        for obj in self._schemas(permissions):
            if wanted(obj.category):
                count += 1
                yield obj
        for obj in self._types():
            if wanted(obj.category, (6, obj.object_id)):
                count += 1
                yield obj
        for obj in self._sequences(permissions):
            if wanted(obj.category, (1, obj.object_id)):
                count += 1
                yield obj
        for obj in self._objects(permissions, dependencies, wanted):
            count += 1
            yield obj
        for obj in self._assemblies(permissions):
            if wanted(obj.category):
                count += 1
                yield obj
        for obj in self._triggers(dependencies):
            if wanted(obj.category, (1, obj.object_id) if obj.object_id else None):
                count += 1
                yield obj
        for obj in self._principals(permissions):
            if wanted(obj.category):
                count += 1
                yield obj
        log.info("Enumerated %d object(s) in %s", count, self.database_name)

    def _skip_shipped(self, is_ms_shipped: Any) -> bool:
        return bool(is_ms_shipped) and not self._policy.include_system_objects

    # ------------------------------------------------------------------
    # Shared lookups
    # ------------------------------------------------------------------

    def _load_permissions(self) -> dict[tuple[SecurableClass, Any], list[PermissionGrant]]:
        """Index grants by securable: ``(class, major_id)``; database grants by grantee."""
        classes = {0: SecurableClass.DATABASE, 1: SecurableClass.OBJECT, 3: SecurableClass.SCHEMA}
        index: dict[tuple[SecurableClass, Any], list[PermissionGrant]] = defaultdict(list)
        for row in self._db.query(_PERMISSIONS_SQL):
            securable = classes[row["class"]]
            grant = PermissionGrant(
                state=PermissionState(row["state"].strip()),
                permission=row["permission_name"],
                securable_class=securable,
                grantee=row["grantee"],
                column=row.get("column_name"),
            )
            key = row["grantee"] if securable is SecurableClass.DATABASE else row["major_id"]
            index[(securable, key)].append(grant)
        return index

    def _load_dependencies(self) -> dict[int, list[DependencyKey]]:
        graph: dict[int, list[DependencyKey]] = defaultdict(list)
        for row in self._db.query(_DEPENDENCIES_SQL):
            graph[row["referencing_id"]].append((row["referenced_class"], row["referenced_id"]))
        return graph

    def _dependency_closure(self, graph: dict[int, list[DependencyKey]]) -> set[DependencyKey]:
        """Everything transitively referenced by objects whose category is selected."""
        seeds: list[DependencyKey] = []
        for row in self._db.query(_OBJECTS_SQL):
            category = OBJECT_TYPE_CATEGORIES.get(row["type"].strip())
            if category and self._policy.includes(category):
                seeds.append((1, row["object_id"]))
        if self._policy.includes(ObjectCategory.TRIGGER):
            seeds.extend((1, row["object_id"]) for row in self._db.query(_TRIGGERS_SQL) if row["parent_class"] == 1)

        closure: set[DependencyKey] = set()
        pending = list(seeds)
        while pending:
            cls, ident = pending.pop()
            if cls != 1:
                continue
            for ref in graph.get(ident, ()):
                if ref not in closure:
                    closure.add(ref)
                    pending.append(ref)
        log.debug("Dependency closure adds %d referenced object(s)", len(closure))
        return closure

    # ------------------------------------------------------------------
    # Per-category readers
    # ------------------------------------------------------------------

    def _schemas(self, permissions) -> Iterator[ObjectDescriptor]:
        for row in self._db.query(_SCHEMAS_SQL, (_BUILTIN_SCHEMA_MAX_ID,)):
            if not self._policy.include_system_objects and (
                row["schema_id"] >= _FIXED_ROLE_SCHEMA_MIN_ID or row["name"] in _SHIPPED_PRINCIPALS
            ):
                continue
            yield ObjectDescriptor(
                category=ObjectCategory.SCHEMA,
                name=row["name"],
                owner=row["owner"],
                object_id=row["schema_id"],
                permissions=tuple(permissions.get((SecurableClass.SCHEMA, row["schema_id"]), ())),
            )

    def _types(self) -> Iterator[ObjectDescriptor]:
        for row in self._db.query(_TYPES_SQL):
            attributes: dict[str, Any] = {
                "base_type": row.get("base_type"),
                "max_length": row.get("max_length"),
                "precision": row.get("precision"),
                "scale": row.get("scale"),
                "is_nullable": bool(row.get("is_nullable")),
            }
            columns: tuple[ColumnDescriptor, ...] = ()
            indexes: tuple[IndexDescriptor, ...] = ()
            checks: tuple[CheckConstraintDescriptor, ...] = ()
            if row["is_table_type"]:
                category = ObjectCategory.USER_DEFINED_TABLE_TYPE
                table_id = row["type_table_object_id"]
                columns = self._columns(table_id)
                indexes = self._indexes(table_id)
                checks = self._checks(table_id)
            else:
                category = ObjectCategory.USER_DEFINED_DATA_TYPE
                if row["is_assembly_type"]:
                    attributes["assembly_name"] = row.get("assembly_name")
                    attributes["assembly_class"] = row.get("assembly_class")
            yield ObjectDescriptor(
                category=category,
                name=row["name"],
                schema=row["schema_name"],
                owner=row.get("owner"),
                object_id=row["user_type_id"],
                attributes=attributes,
                columns=columns,
                indexes=indexes,
                check_constraints=checks,
            )

    def _sequences(self, permissions) -> Iterator[ObjectDescriptor]:
        for row in self._db.query(_SEQUENCES_SQL):
            if self._skip_shipped(row["is_ms_shipped"]):
                continue
            yield ObjectDescriptor(
                category=ObjectCategory.SEQUENCE,
                name=row["name"],
                schema=row["schema_name"],
                owner=row.get("owner"),
                object_id=row["object_id"],
                attributes={
                    key: row.get(key)
                    for key in (
                        "type_name", "start_value", "increment", "minimum_value",
                        "maximum_value", "is_cycling", "is_cached", "cache_size",
                    )
                },
                permissions=tuple(permissions.get((SecurableClass.OBJECT, row["object_id"]), ())),
            )

    def _objects(self, permissions, dependencies, wanted) -> Iterator[ObjectDescriptor]:
        for row in self._db.query(_OBJECTS_SQL):
            if self._skip_shipped(row["is_ms_shipped"]):
                continue
            object_type = row["type"].strip()
            category = OBJECT_TYPE_CATEGORIES[object_type]
            object_id = row["object_id"]
            if not wanted(category, (1, object_id)):
                continue

            attributes: dict[str, Any] = {"type": object_type}
            columns: tuple[ColumnDescriptor, ...] = ()
            indexes: tuple[IndexDescriptor, ...] = ()
            foreign_keys: tuple[ForeignKeyDescriptor, ...] = ()
            checks: tuple[CheckConstraintDescriptor, ...] = ()

            if category is ObjectCategory.TABLE:
                columns = self._columns(object_id)
                indexes = self._indexes(object_id)
                foreign_keys = self._foreign_keys(object_id)
                checks = self._checks(object_id)
            elif category is ObjectCategory.SYNONYM:
                attributes["base_object_name"] = row.get("base_object_name")
            elif object_type in _CLR_TYPES:
                rows = self._db.query(_CLR_MODULE_SQL, (object_id,))
                if rows:
                    attributes.update(rows[0])
                attributes["parameters"] = self._parameters(object_id)

            yield ObjectDescriptor(
                category=category,
                name=row["name"],
                schema=row["schema_name"],
                owner=row.get("owner"),
                object_id=object_id,
                is_ms_shipped=bool(row["is_ms_shipped"]),
                definition=row.get("definition"),
                attributes=attributes,
                columns=columns,
                indexes=indexes,
                foreign_keys=foreign_keys,
                check_constraints=checks,
                permissions=tuple(permissions.get((SecurableClass.OBJECT, object_id), ())),
                dependencies=tuple(ident for cls, ident in dependencies.get(object_id, ()) if cls == 1),
            )

    def _assemblies(self, permissions) -> Iterator[ObjectDescriptor]:
        for row in self._db.query(_ASSEMBLIES_SQL):
            if not row["is_user_defined"] and not self._policy.include_system_objects:
                continue
            yield ObjectDescriptor(
                category=ObjectCategory.ASSEMBLY,
                name=row["name"],
                owner=row.get("owner"),
                object_id=row["assembly_id"],
                is_ms_shipped=not row["is_user_defined"],
                attributes={
                    "permission_set": row.get("permission_set_desc"),
                    "content": row.get("content"),
                },
            )

    def _triggers(self, dependencies) -> Iterator[ObjectDescriptor]:
        for row in self._db.query(_TRIGGERS_SQL):
            if self._skip_shipped(row["is_ms_shipped"]):
                continue
            database_level = row["parent_class"] == 0
            yield ObjectDescriptor(
                category=ObjectCategory.DATABASE_TRIGGER if database_level else ObjectCategory.TRIGGER,
                name=row["name"],
                schema=None if database_level else row.get("schema_name"),
                object_id=row["object_id"],
                is_ms_shipped=bool(row["is_ms_shipped"]),
                definition=row.get("definition"),
                attributes={
                    "is_disabled": bool(row.get("is_disabled")),
                    "parent_schema": row.get("parent_schema"),
                    "parent_name": row.get("parent_name"),
                },
                dependencies=tuple(ident for cls, ident in dependencies.get(row["object_id"], ()) if cls == 1),
            )

    def _principals(self, permissions) -> Iterator[ObjectDescriptor]:
        memberships: dict[int, list[str]] = defaultdict(list)
        if self._policy.include_role_memberships:
            for row in self._db.query(_ROLE_MEMBERS_SQL):
                memberships[row["member_principal_id"]].append(row["role_name"])

        for row in self._db.query(_PRINCIPALS_SQL, (_BUILTIN_PRINCIPAL_MAX_ID,)):
            name = row["name"]
            principal_type = row["type"].strip()
            if not self._policy.include_system_objects and (
                row.get("is_fixed_role") or name.startswith("##") or name in _SHIPPED_PRINCIPALS
            ):
                continue
            if principal_type == "R":
                category = ObjectCategory.ROLE
            elif principal_type in _USER_TYPES:
                category = ObjectCategory.USER
            else:
                continue
            yield ObjectDescriptor(
                category=category,
                name=name,
                owner=row.get("owner"),
                object_id=row["principal_id"],
                attributes={
                    "type": principal_type,
                    "default_schema": row.get("default_schema_name"),
                    "login_name": row.get("login_name"),
                    "authentication_type": row.get("authentication_type_desc"),
                },
                permissions=tuple(permissions.get((SecurableClass.DATABASE, name), ())),
                role_memberships=tuple(memberships.get(row["principal_id"], ())),
            )

    # ------------------------------------------------------------------
    # Table detail readers
    # ------------------------------------------------------------------

    def _columns(self, object_id: int) -> tuple[ColumnDescriptor, ...]:
        columns = []
        for row in self._db.query(_COLUMNS_SQL, (object_id,)):
            identity = None
            if row.get("is_identity"):
                identity = (row.get("seed_value") or "1", row.get("increment_value") or "1")
            columns.append(
                ColumnDescriptor(
                    name=row["name"],
                    type_name=row["type_name"],
                    type_schema=row.get("type_schema") or "sys",
                    max_length=row.get("max_length") or 0,
                    precision=row.get("precision") or 0,
                    scale=row.get("scale") or 0,
                    is_nullable=bool(row.get("is_nullable")),
                    identity=identity,
                    computed=row.get("computed_definition"),
                    is_persisted=bool(row.get("is_persisted")),
                    collation=row.get("collation_name"),
                    default_name=row.get("default_name"),
                    default_definition=row.get("default_definition"),
                )
            )
        return tuple(columns)

    def _indexes(self, object_id: int) -> tuple[IndexDescriptor, ...]:
        indexes = []
        rows = self._db.query(_INDEXES_SQL, (object_id,))
        for _, group in groupby(rows, key=lambda r: r["index_id"]):
            group = list(group)
            first = group[0]
            indexes.append(
                IndexDescriptor(
                    name=first["name"],
                    columns=tuple(
                        (r["column_name"], bool(r["is_descending_key"]))
                        for r in group if not r["is_included_column"]
                    ),
                    is_unique=bool(first["is_unique"]),
                    is_clustered=first["type"] == 1,
                    is_primary_key=bool(first["is_primary_key"]),
                    is_unique_constraint=bool(first["is_unique_constraint"]),
                    included_columns=tuple(r["column_name"] for r in group if r["is_included_column"]),
                    filter_definition=first.get("filter_definition"),
                )
            )
        return tuple(indexes)

    def _foreign_keys(self, object_id: int) -> tuple[ForeignKeyDescriptor, ...]:
        keys = []
        rows = self._db.query(_FOREIGN_KEYS_SQL, (object_id,))
        for name, group in groupby(rows, key=lambda r: r["name"]):
            group = list(group)
            first = group[0]
            keys.append(
                ForeignKeyDescriptor(
                    name=name,
                    columns=tuple(r["column_name"] for r in group),
                    referenced_schema=first["referenced_schema"],
                    referenced_table=first["referenced_table"],
                    referenced_columns=tuple(r["referenced_column"] for r in group),
                    on_delete=first.get("delete_referential_action_desc") or "NO_ACTION",
                    on_update=first.get("update_referential_action_desc") or "NO_ACTION",
                )
            )
        return tuple(keys)

    def _checks(self, object_id: int) -> tuple[CheckConstraintDescriptor, ...]:
        return tuple(
            CheckConstraintDescriptor(name=r["name"], definition=r["definition"])
            for r in self._db.query(_CHECKS_SQL, (object_id,))
        )

    def _parameters(self, object_id: int) -> tuple[tuple[ColumnDescriptor, bool], ...]:
        """``(parameter, is_output)`` pairs; parameter_id 0 is the return value."""
        params = []
        for row in self._db.query(_PARAMETERS_SQL, (object_id,)):
            column = ColumnDescriptor(
                name=row["name"] or "",
                type_name=row["type_name"],
                type_schema=row.get("type_schema") or "sys",
                max_length=row.get("max_length") or 0,
                precision=row.get("precision") or 0,
                scale=row.get("scale") or 0,
            )
            params.append((column, bool(row.get("is_output"))))
        return tuple(params)


def enumerate_objects(
    db: ServerConnection,
    database_name: str,
    policy: TransferPolicy,
) -> ObjectEnumeration:
    """Return the lazy, restartable object sequence for *database_name*."""
    return ObjectEnumeration(db, database_name, policy)
