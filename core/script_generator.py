"""
core/script_generator.py
------------------------
Turns enumerated catalog objects into an ordered T-SQL transfer script.

Design Decisions:
    * Ordering is a fixed category ordering (:class:`ScriptPhase`), not a
      dependency solver. Statements are stable-sorted by phase, so objects
      inside one phase keep the enumeration order.
    * One object that cannot be scripted raises :class:`GenerationError`.
      With ``continue_on_generation_error`` the object is skipped and a
      :class:`GenerationDiagnostic` is recorded; otherwise the error aborts
      the whole database pass.
    * Statements that SQL Server would accept again on a re-run (role
      membership, grants, ownership transfers, disabling a trigger) are
      wrapped in an existence guard that raises an "already exists" error,
      so a re-applied script classifies uniformly.
    * Module definitions (views, procedures, functions, triggers, rules,
      defaults) are emitted verbatim from the source catalog.
"""
from __future__ import annotations

from typing import Callable, Iterable

from logger import get_logger
from models.objects import (
    ColumnDescriptor,
    ObjectCategory,
    ObjectDescriptor,
    PermissionGrant,
    PermissionState,
    SecurableClass,
    quote_name,
    quote_string,
)
from models.policy import TransferPolicy
from models.script import (
    GenerationDiagnostic,
    ScriptPhase,
    ScriptStatement,
    TransferScript,
)

log = get_logger(__name__)

_DEFAULT_SCHEMA = "dbo"

_MODULE_PHASES: dict[ObjectCategory, ScriptPhase] = {
    ObjectCategory.VIEW: ScriptPhase.VIEW,
    ObjectCategory.DEFAULT: ScriptPhase.DEFAULT_RULE,
    ObjectCategory.RULE: ScriptPhase.DEFAULT_RULE,
    ObjectCategory.STORED_PROCEDURE: ScriptPhase.ROUTINE,
    ObjectCategory.USER_DEFINED_FUNCTION: ScriptPhase.ROUTINE,
    ObjectCategory.USER_DEFINED_AGGREGATE: ScriptPhase.ROUTINE,
    ObjectCategory.DATABASE_TRIGGER: ScriptPhase.DATABASE_TRIGGER,
    ObjectCategory.TRIGGER: ScriptPhase.TRIGGER,
}

# Containers and principals are never dropped: the server refuses while they
# hold objects, members or ownerships.
_DROP_KEYWORDS: dict[ObjectCategory, str] = {
    ObjectCategory.USER_DEFINED_DATA_TYPE: "TYPE",
    ObjectCategory.USER_DEFINED_TABLE_TYPE: "TYPE",
    ObjectCategory.SEQUENCE: "SEQUENCE",
    ObjectCategory.TABLE: "TABLE",
    ObjectCategory.VIEW: "VIEW",
    ObjectCategory.DEFAULT: "DEFAULT",
    ObjectCategory.RULE: "RULE",
    ObjectCategory.STORED_PROCEDURE: "PROCEDURE",
    ObjectCategory.USER_DEFINED_FUNCTION: "FUNCTION",
    ObjectCategory.USER_DEFINED_AGGREGATE: "AGGREGATE",
    ObjectCategory.SYNONYM: "SYNONYM",
    ObjectCategory.TRIGGER: "TRIGGER",
}

# Non-module objects follow preserve_owner_schema; modules keep their text.
_REBINDABLE = frozenset({
    ObjectCategory.USER_DEFINED_DATA_TYPE,
    ObjectCategory.USER_DEFINED_TABLE_TYPE,
    ObjectCategory.SEQUENCE,
    ObjectCategory.TABLE,
    ObjectCategory.SYNONYM,
})

_CHAR_TYPES = frozenset({"char", "varchar", "binary", "varbinary"})
_UNICODE_TYPES = frozenset({"nchar", "nvarchar"})
_DECIMAL_TYPES = frozenset({"decimal", "numeric"})
_SCALE_TYPES = frozenset({"datetime2", "time", "datetimeoffset"})
_COLLATABLE = frozenset({"char", "varchar", "nchar", "nvarchar", "text", "ntext"})

_PERMISSION_SETS = {
    "SAFE_ACCESS": "SAFE",
    "EXTERNAL_ACCESS": "EXTERNAL_ACCESS",
    "UNSAFE_ACCESS": "UNSAFE",
}


class GenerationError(Exception):
    """Raised when one object's definition cannot be scripted."""

    def __init__(self, obj: ObjectDescriptor, reason: str) -> None:
        super().__init__(f"Cannot script {obj}: {reason}")
        self.obj = obj
        self.reason = reason


# ---------------------------------------------------------------------------
# Rendering helpers
# ---------------------------------------------------------------------------

def render_type(column: ColumnDescriptor) -> str:
    """Render a column/parameter data type, e.g. ``nvarchar(128)``."""
    if column.type_schema and column.type_schema != "sys":
        return f"{quote_name(column.type_schema)}.{quote_name(column.type_name)}"
    name = column.type_name.lower()
    if name in _CHAR_TYPES:
        return f"{name}({'max' if column.max_length == -1 else column.max_length})"
    if name in _UNICODE_TYPES:
        return f"{name}({'max' if column.max_length == -1 else column.max_length // 2})"
    if name in _DECIMAL_TYPES:
        return f"{name}({column.precision}, {column.scale})"
    if name in _SCALE_TYPES:
        return f"{name}({column.scale})"
    return name


def render_column(column: ColumnDescriptor) -> str:
    parts = [quote_name(column.name)]
    if column.computed is not None:
        parts.append(f"AS {column.computed}")
        if column.is_persisted:
            parts.append("PERSISTED")
        return " ".join(parts)

    parts.append(render_type(column))
    if column.collation and column.type_name.lower() in _COLLATABLE:
        parts.append(f"COLLATE {column.collation}")
    if column.identity is not None:
        seed, increment = column.identity
        parts.append(f"IDENTITY({seed}, {increment})")
    parts.append("NULL" if column.is_nullable else "NOT NULL")
    if column.default_definition is not None:
        if column.default_name:
            parts.append(f"CONSTRAINT {quote_name(column.default_name)}")
        parts.append(f"DEFAULT {column.default_definition}")
    return " ".join(parts)


def _key_columns(columns: Iterable[tuple[str, bool]]) -> str:
    return ", ".join(f"{quote_name(c)} {'DESC' if desc else 'ASC'}" for c, desc in columns)


def guarded(condition: str, what: str, statement: str) -> str:
    """
    Wrap *statement* so it raises an "already exists" error when
    *condition* holds instead of silently succeeding again.
    """
    message = quote_string(f"{what} already exists.".replace("%", "%%"))
    return (
        f"IF {condition}\n"
        f"    RAISERROR({message}, 16, 1);\n"
        f"ELSE\n"
        f"    {statement};"
    )


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------

class ScriptGenerator:
    """
    Builds a :class:`TransferScript` from enumerated objects.

    Args:
        policy: The immutable transfer policy of this run.

    Example::

        generator = ScriptGenerator(TransferPolicy())
        script = generator.generate("msdb", enumerate_objects(conn, "msdb", policy))
        for statement in script:
            print(statement)
    """

    def __init__(self, policy: TransferPolicy) -> None:
        self._policy = policy
        self._scripters: dict[ObjectCategory, Callable[[ObjectDescriptor], list[ScriptStatement]]] = {
            ObjectCategory.SCHEMA: self._script_schema,
            ObjectCategory.USER_DEFINED_DATA_TYPE: self._script_data_type,
            ObjectCategory.USER_DEFINED_TABLE_TYPE: self._script_table_type,
            ObjectCategory.SEQUENCE: self._script_sequence,
            ObjectCategory.TABLE: self._script_table,
            ObjectCategory.SYNONYM: self._script_synonym,
            ObjectCategory.ASSEMBLY: self._script_assembly,
            ObjectCategory.ROLE: self._script_role,
            ObjectCategory.USER: self._script_user,
        }

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------

    def generate(self, database: str, objects: Iterable[ObjectDescriptor]) -> TransferScript:
        """
        Script every object in *objects*.

        Raises:
            GenerationError: When an object fails and the policy does not
                             allow continuing.
        """
        script = TransferScript(database=database)
        statements: list[ScriptStatement] = []

        for obj in objects:
            try:
                statements.extend(self.script_object(obj))
            except GenerationError as exc:
                if not self._policy.continue_on_generation_error:
                    log.error("Generation aborted for %s: %s", database, exc)
                    raise
                log.warning("Skipping %s in %s: %s", obj, database, exc.reason)
                script.diagnostics.append(
                    GenerationDiagnostic(
                        category=obj.category,
                        object_name=self._qualified(obj),
                        reason=exc.reason,
                    )
                )

        # sorted() is stable: enumeration order survives inside each phase
        script.statements = sorted(statements, key=lambda s: s.phase)
        log.info(
            "Generated %d statement(s) for %s (%d object(s) skipped)",
            len(script.statements), database, len(script.diagnostics),
        )
        return script

    def script_object(self, obj: ObjectDescriptor) -> list[ScriptStatement]:
        """All statements for one object, including its grants and ownership."""
        if not self._policy.includes(obj.category) and not self._policy.include_dependencies:
            return []
        scripter = self._scripters.get(obj.category, self._script_module)
        statements = scripter(obj)
        statements.extend(self._script_ownership(obj))
        if self._policy.include_permissions:
            statements.extend(self._script_permission(obj, grant) for grant in obj.permissions)
        if self._policy.include_role_memberships:
            statements.extend(self._script_membership(obj, role) for role in obj.role_memberships)
        return statements

    # ------------------------------------------------------------------
    # Naming
    # ------------------------------------------------------------------

    def _schema_of(self, obj: ObjectDescriptor) -> str | None:
        if obj.schema is not None and obj.category in _REBINDABLE and not self._policy.preserve_owner_schema:
            return _DEFAULT_SCHEMA
        return obj.schema

    def _qualified(self, obj: ObjectDescriptor) -> str:
        schema = self._schema_of(obj)
        if schema is None:
            return quote_name(obj.name)
        return f"{quote_name(schema)}.{quote_name(obj.name)}"

    def _statement(
        self,
        obj: ObjectDescriptor,
        text: str,
        phase: ScriptPhase,
        drop: bool = True,
    ) -> ScriptStatement:
        drop_text = None
        if drop and obj.category in _DROP_KEYWORDS:
            drop_text = f"DROP {_DROP_KEYWORDS[obj.category]} {self._qualified(obj)}"
        elif drop and obj.category is ObjectCategory.DATABASE_TRIGGER:
            drop_text = f"DROP TRIGGER {quote_name(obj.name)} ON DATABASE"
        return ScriptStatement(
            text=text,
            phase=phase,
            category=obj.category,
            object_name=self._qualified(obj),
            drop_text=drop_text,
        )

    # ------------------------------------------------------------------
    # Per-category scripters
    # ------------------------------------------------------------------

    def _script_schema(self, obj: ObjectDescriptor) -> list[ScriptStatement]:
        return [self._statement(obj, f"CREATE SCHEMA {quote_name(obj.name)}", ScriptPhase.SCHEMA)]

    def _script_data_type(self, obj: ObjectDescriptor) -> list[ScriptStatement]:
        attrs = obj.attributes
        if attrs.get("assembly_name"):
            text = (
                f"CREATE TYPE {self._qualified(obj)} EXTERNAL NAME "
                f"{quote_name(attrs['assembly_name'])}.{quote_name(attrs['assembly_class'])}"
            )
        else:
            if not attrs.get("base_type"):
                raise GenerationError(obj, "base type could not be resolved")
            base = ColumnDescriptor(
                name="",
                type_name=attrs["base_type"],
                max_length=attrs.get("max_length") or 0,
                precision=attrs.get("precision") or 0,
                scale=attrs.get("scale") or 0,
            )
            nullability = "NULL" if attrs.get("is_nullable", True) else "NOT NULL"
            text = f"CREATE TYPE {self._qualified(obj)} FROM {render_type(base)} {nullability}"
        return [self._statement(obj, text, ScriptPhase.TYPE)]

    def _script_table_type(self, obj: ObjectDescriptor) -> list[ScriptStatement]:
        body = self._table_body(obj)
        text = f"CREATE TYPE {self._qualified(obj)} AS TABLE (\n{body}\n)"
        return [self._statement(obj, text, ScriptPhase.TYPE)]

    def _script_sequence(self, obj: ObjectDescriptor) -> list[ScriptStatement]:
        attrs = obj.attributes
        lines = [f"CREATE SEQUENCE {self._qualified(obj)}"]
        if attrs.get("type_name"):
            lines.append(f"    AS {attrs['type_name']}")
        for clause, key in (
            ("START WITH", "start_value"),
            ("INCREMENT BY", "increment"),
            ("MINVALUE", "minimum_value"),
            ("MAXVALUE", "maximum_value"),
        ):
            if attrs.get(key) is not None:
                lines.append(f"    {clause} {attrs[key]}")
        lines.append("    CYCLE" if attrs.get("is_cycling") else "    NO CYCLE")
        if attrs.get("is_cached"):
            size = attrs.get("cache_size")
            lines.append(f"    CACHE {size}" if size else "    CACHE")
        else:
            lines.append("    NO CACHE")
        return [self._statement(obj, "\n".join(lines), ScriptPhase.SEQUENCE)]

    def _table_body(self, obj: ObjectDescriptor) -> str:
        if not obj.columns:
            raise GenerationError(obj, "no column metadata")
        lines = [render_column(c) for c in obj.columns]
        for index in obj.indexes:
            if not (index.is_primary_key or index.is_unique_constraint):
                continue
            kind = "PRIMARY KEY" if index.is_primary_key else "UNIQUE"
            clustering = "CLUSTERED" if index.is_clustered else "NONCLUSTERED"
            prefix = f"CONSTRAINT {quote_name(index.name)} " if index.name else ""
            lines.append(f"{prefix}{kind} {clustering} ({_key_columns(index.columns)})")
        for check in obj.check_constraints:
            lines.append(f"CONSTRAINT {quote_name(check.name)} CHECK {check.definition}")
        return ",\n".join(f"    {line}" for line in lines)

    def _script_table(self, obj: ObjectDescriptor) -> list[ScriptStatement]:
        table = self._qualified(obj)
        statements = [
            self._statement(obj, f"CREATE TABLE {table} (\n{self._table_body(obj)}\n)", ScriptPhase.TABLE)
        ]

        if self._policy.include_indexes:
            for index in obj.indexes:
                if index.is_primary_key or index.is_unique_constraint:
                    continue
                text = (
                    f"CREATE {'UNIQUE ' if index.is_unique else ''}"
                    f"{'CLUSTERED' if index.is_clustered else 'NONCLUSTERED'} INDEX "
                    f"{quote_name(index.name)} ON {table} ({_key_columns(index.columns)})"
                )
                if index.included_columns:
                    text += f" INCLUDE ({', '.join(quote_name(c) for c in index.included_columns)})"
                if index.filter_definition:
                    text += f" WHERE {index.filter_definition}"
                statements.append(
                    ScriptStatement(
                        text=text,
                        phase=ScriptPhase.TABLE,
                        category=obj.category,
                        object_name=f"{table}.{quote_name(index.name)}",
                        drop_text=f"DROP INDEX {quote_name(index.name)} ON {table}",
                    )
                )

        for fk in obj.foreign_keys:
            ref_schema = fk.referenced_schema if self._policy.preserve_owner_schema else _DEFAULT_SCHEMA
            text = (
                f"ALTER TABLE {table} WITH CHECK ADD CONSTRAINT {quote_name(fk.name)} "
                f"FOREIGN KEY ({', '.join(quote_name(c) for c in fk.columns)}) "
                f"REFERENCES {quote_name(ref_schema)}.{quote_name(fk.referenced_table)} "
                f"({', '.join(quote_name(c) for c in fk.referenced_columns)})"
            )
            if fk.on_delete != "NO_ACTION":
                text += f" ON DELETE {fk.on_delete.replace('_', ' ')}"
            if fk.on_update != "NO_ACTION":
                text += f" ON UPDATE {fk.on_update.replace('_', ' ')}"
            statements.append(
                ScriptStatement(
                    text=text,
                    phase=ScriptPhase.TABLE_CONSTRAINT,
                    category=obj.category,
                    object_name=f"{table}.{quote_name(fk.name)}",
                    drop_text=f"ALTER TABLE {table} DROP CONSTRAINT {quote_name(fk.name)}",
                )
            )
        return statements

    def _script_synonym(self, obj: ObjectDescriptor) -> list[ScriptStatement]:
        base = obj.attributes.get("base_object_name")
        if not base:
            raise GenerationError(obj, "synonym base object is unknown")
        return [self._statement(obj, f"CREATE SYNONYM {self._qualified(obj)} FOR {base}", ScriptPhase.SYNONYM)]

    def _script_assembly(self, obj: ObjectDescriptor) -> list[ScriptStatement]:
        content = obj.attributes.get("content")
        if not content:
            raise GenerationError(obj, "assembly binary is not available")
        permission_set = _PERMISSION_SETS.get(obj.attributes.get("permission_set") or "", "SAFE")
        text = (
            f"CREATE ASSEMBLY {quote_name(obj.name)} FROM 0x{bytes(content).hex().upper()} "
            f"WITH PERMISSION_SET = {permission_set}"
        )
        return [self._statement(obj, text, ScriptPhase.ASSEMBLY)]

    def _script_module(self, obj: ObjectDescriptor) -> list[ScriptStatement]:
        phase = _MODULE_PHASES.get(obj.category)
        if phase is None:
            raise GenerationError(obj, f"no scripter for category {obj.category.value}")

        object_type = obj.attributes.get("type")
        if object_type in ("PC", "FS", "FT", "AF"):
            statements = [self._statement(obj, self._clr_module_text(obj, object_type), phase)]
        else:
            if not obj.definition:
                raise GenerationError(obj, "definition is not available (module may be encrypted)")
            statements = [self._statement(obj, obj.definition, phase)]

        if obj.attributes.get("is_disabled"):
            statements.append(self._disable_trigger(obj, phase))
        return statements

    def _clr_module_text(self, obj: ObjectDescriptor, object_type: str) -> str:
        attrs = obj.attributes
        if not attrs.get("assembly_name"):
            raise GenerationError(obj, "CLR module has no assembly binding")
        if object_type == "FT":
            raise GenerationError(obj, "CLR table-valued functions are not supported")

        params = attrs.get("parameters", ())
        returns = [p for p, _ in params if not p.name]
        inputs = [
            f"{p.name} {render_type(p)}{' OUTPUT' if is_output else ''}"
            for p, is_output in params if p.name
        ]
        external = f"{quote_name(attrs['assembly_name'])}.{quote_name(attrs['assembly_class'])}"
        name = self._qualified(obj)

        if object_type == "PC":
            params_sql = ("\n    " + ",\n    ".join(inputs)) if inputs else ""
            return (
                f"CREATE PROCEDURE {name}{params_sql}\n"
                f"AS EXTERNAL NAME {external}.{quote_name(attrs['assembly_method'])}"
            )
        if not returns:
            raise GenerationError(obj, "CLR return type could not be resolved")
        if object_type == "AF":
            return (
                f"CREATE AGGREGATE {name} ({', '.join(inputs)})\n"
                f"RETURNS {render_type(returns[0])}\n"
                f"EXTERNAL NAME {external}"
            )
        return (
            f"CREATE FUNCTION {name} ({', '.join(inputs)})\n"
            f"RETURNS {render_type(returns[0])}\n"
            f"AS EXTERNAL NAME {external}.{quote_name(attrs['assembly_method'])}"
        )

    def _disable_trigger(self, obj: ObjectDescriptor, phase: ScriptPhase) -> ScriptStatement:
        if obj.category is ObjectCategory.DATABASE_TRIGGER:
            condition = (
                "EXISTS (SELECT 1 FROM sys.triggers WHERE parent_class = 0 "
                f"AND name = {quote_string(obj.name)} AND is_disabled = 1)"
            )
            target = f"{quote_name(obj.name)} ON DATABASE"
        else:
            parent = (
                f"{quote_name(obj.attributes.get('parent_schema') or _DEFAULT_SCHEMA)}."
                f"{quote_name(obj.attributes.get('parent_name') or '')}"
            )
            condition = (
                "EXISTS (SELECT 1 FROM sys.triggers WHERE object_id = "
                f"OBJECT_ID({quote_string(self._qualified(obj))}) AND is_disabled = 1)"
            )
            target = f"{self._qualified(obj)} ON {parent}"
        return ScriptStatement(
            text=guarded(condition, f"Disabled trigger {obj.name}", f"DISABLE TRIGGER {target}"),
            phase=phase,
            category=obj.category,
            object_name=self._qualified(obj),
        )

    def _script_role(self, obj: ObjectDescriptor) -> list[ScriptStatement]:
        return [self._statement(obj, f"CREATE ROLE {quote_name(obj.name)}", ScriptPhase.ROLE)]

    def _script_user(self, obj: ObjectDescriptor) -> list[ScriptStatement]:
        attrs = obj.attributes
        principal_type = attrs.get("type")
        login = attrs.get("login_name")
        name = quote_name(obj.name)

        if attrs.get("authentication_type") == "DATABASE":
            raise GenerationError(obj, "contained users with passwords cannot be scripted")
        if principal_type in ("C", "K"):
            raise GenerationError(obj, "certificate and key mapped users are not supported")

        if principal_type in ("E", "X"):
            text = f"CREATE USER {name} FROM EXTERNAL PROVIDER"
        elif login:
            text = f"CREATE USER {name} FOR LOGIN {quote_name(login)}"
        elif principal_type == "S":
            text = f"CREATE USER {name} WITHOUT LOGIN"
        else:
            raise GenerationError(obj, "no server login maps to this user")

        if attrs.get("default_schema") and principal_type != "X":
            text += f" WITH DEFAULT_SCHEMA = {quote_name(attrs['default_schema'])}"
        return [self._statement(obj, text, ScriptPhase.USER)]

    # ------------------------------------------------------------------
    # Dependent statements
    # ------------------------------------------------------------------

    def _script_ownership(self, obj: ObjectDescriptor) -> list[ScriptStatement]:
        """ALTER AUTHORIZATION for objects whose owner is not the default."""
        owner = obj.owner
        if not self._policy.preserve_owner_schema or not owner or owner == _DEFAULT_SCHEMA:
            return []

        owner_id = f"DATABASE_PRINCIPAL_ID({quote_string(owner)})"
        if obj.category is ObjectCategory.SCHEMA:
            securable = f"SCHEMA::{quote_name(obj.name)}"
            condition = (
                f"EXISTS (SELECT 1 FROM sys.schemas WHERE name = {quote_string(obj.name)} "
                f"AND principal_id = {owner_id})"
            )
        elif obj.category is ObjectCategory.ROLE:
            securable = f"ROLE::{quote_name(obj.name)}"
            condition = (
                f"EXISTS (SELECT 1 FROM sys.database_principals WHERE name = {quote_string(obj.name)} "
                f"AND owning_principal_id = {owner_id})"
            )
        elif obj.category is ObjectCategory.ASSEMBLY:
            securable = f"ASSEMBLY::{quote_name(obj.name)}"
            condition = (
                f"EXISTS (SELECT 1 FROM sys.assemblies WHERE name = {quote_string(obj.name)} "
                f"AND principal_id = {owner_id})"
            )
        elif obj.category in (ObjectCategory.USER_DEFINED_DATA_TYPE, ObjectCategory.USER_DEFINED_TABLE_TYPE):
            securable = f"TYPE::{self._qualified(obj)}"
            condition = (
                f"EXISTS (SELECT 1 FROM sys.types WHERE user_type_id = "
                f"TYPE_ID({quote_string(self._qualified(obj))}) AND principal_id = {owner_id})"
            )
        elif obj.schema is not None:
            securable = f"OBJECT::{self._qualified(obj)}"
            condition = (
                f"EXISTS (SELECT 1 FROM sys.objects WHERE object_id = "
                f"OBJECT_ID({quote_string(self._qualified(obj))}) AND principal_id = {owner_id})"
            )
        else:
            return []

        return [
            ScriptStatement(
                text=guarded(
                    condition,
                    f"Ownership of {obj.name} by {owner}",
                    f"ALTER AUTHORIZATION ON {securable} TO {quote_name(owner)}",
                ),
                phase=ScriptPhase.PERMISSION,
                category=obj.category,
                object_name=self._qualified(obj),
            )
        ]

    def _script_permission(self, obj: ObjectDescriptor, grant: PermissionGrant) -> ScriptStatement:
        grantee = quote_name(grant.grantee)
        if grant.securable_class is SecurableClass.DATABASE:
            on_clause = ""
            class_id, major, minor = 0, "0", "0"
        elif grant.securable_class is SecurableClass.SCHEMA:
            on_clause = f" ON SCHEMA::{quote_name(obj.name)}"
            class_id, major, minor = 3, f"SCHEMA_ID({quote_string(obj.name)})", "0"
        else:
            target = self._qualified(obj)
            column = f" ({quote_name(grant.column)})" if grant.column else ""
            on_clause = f" ON OBJECT::{target}{column}"
            class_id, major = 1, f"OBJECT_ID({quote_string(target)})"
            minor = (
                f"COLUMNPROPERTY({major}, {quote_string(grant.column)}, 'ColumnId')"
                if grant.column else "0"
            )

        verb = "DENY" if grant.state is PermissionState.DENY else "GRANT"
        text = f"{verb} {grant.permission}{on_clause} TO {grantee}"
        if grant.state is PermissionState.GRANT_WITH_GRANT_OPTION:
            text += " WITH GRANT OPTION"

        condition = (
            "EXISTS (SELECT 1 FROM sys.database_permissions "
            f"WHERE class = {class_id} AND major_id = {major} AND minor_id = {minor} "
            f"AND grantee_principal_id = DATABASE_PRINCIPAL_ID({quote_string(grant.grantee)}) "
            f"AND permission_name = {quote_string(grant.permission)} "
            f"AND state = '{grant.state.value}')"
        )
        return ScriptStatement(
            text=guarded(condition, f"Permission {grant.permission} for {grant.grantee}", text),
            phase=ScriptPhase.PERMISSION,
            category=obj.category,
            object_name=self._qualified(obj),
        )

    def _script_membership(self, obj: ObjectDescriptor, role: str) -> ScriptStatement:
        condition = (
            "EXISTS (SELECT 1 FROM sys.database_role_members "
            f"WHERE role_principal_id = DATABASE_PRINCIPAL_ID({quote_string(role)}) "
            f"AND member_principal_id = DATABASE_PRINCIPAL_ID({quote_string(obj.name)}))"
        )
        return ScriptStatement(
            text=guarded(
                condition,
                f"Membership of {obj.name} in {role}",
                f"ALTER ROLE {quote_name(role)} ADD MEMBER {quote_name(obj.name)}",
            ),
            phase=(
                ScriptPhase.ROLE_MEMBERSHIP if obj.category is ObjectCategory.ROLE
                else ScriptPhase.USER_MEMBERSHIP
            ),
            category=obj.category,
            object_name=f"{quote_name(role)}+{quote_name(obj.name)}",
        )


def generate_script(
    objects: Iterable[ObjectDescriptor],
    policy: TransferPolicy,
    database: str,
) -> TransferScript:
    """Script *objects* for *database* under *policy*."""
    return ScriptGenerator(policy).generate(database, objects)
