"""
tests/conftest.py
-----------------
Shared fixtures: an in-memory stand-in for a SQL Server instance.
Run with: python -m pytest tests/
"""
from __future__ import annotations

import re
from collections import defaultdict
from typing import Any

import pytest

from core import enumerator as enum_sql
from core.database import ConnectionLostError, DatabaseError
from models.objects import ObjectCategory, ObjectDescriptor
from models.server import ServerAddress

_ADD_MEMBER_RE = re.compile(r"ALTER ROLE (\[[^\]]*\]) ADD MEMBER (\[[^\]]*\])")
_BUILTIN_PRINCIPALS = ("[public]", "[db_owner]", "[db_datareader]", "[db_datawriter]")


class FakeServer:
    """
    Mimics the parts of :class:`ServerConnection` the engine uses.

    * ``catalog[database][sql]`` holds rows returned by ``query``; a dict
      value is keyed by the first query parameter.
    * ``execute`` records each statement per database and raises error
      2714 when the exact text was already applied, or 102 when the text
      contains ``SYNTAX ERROR``.
    * ``ALTER ROLE ... ADD MEMBER`` fails with 15151 unless both principals
      exist, and ``DROP SCHEMA`` fails with 3729 while objects remain in it.
    """

    def __init__(self, host: str, admin: bool = True) -> None:
        self.address = ServerAddress.parse(host)
        self.admin = admin
        self.is_connected = True
        self.current_database: str | None = None
        self.catalog: dict[str, dict[str, Any]] = defaultdict(dict)
        self.applied: dict[str, list[str]] = defaultdict(list)
        self.executed: list[tuple[str | None, str]] = []
        self.dropped: list[str] = []
        self.queries: list[str] = []
        self.lose_connection_on: str | None = None
        self.lose_connection_on_use = False
        self.close_calls = 0

    @property
    def instance_id(self) -> str:
        return self.address.instance_id

    def connect(self) -> None:
        self.is_connected = True

    def close(self) -> None:
        self.close_calls += 1

    def has_administrative_privilege(self) -> bool:
        return self.admin

    def select_database(self, name: str) -> None:
        if self.lose_connection_on_use:
            raise ConnectionLostError("DBPROCESS is dead or not enabled", 20047)
        self.current_database = name

    def execute(self, sql: str, params: tuple | None = None) -> int:
        self.executed.append((self.current_database, sql))
        if self.lose_connection_on and self.lose_connection_on in sql:
            raise ConnectionLostError("DBPROCESS is dead or not enabled", 20047)
        if "SYNTAX ERROR" in sql:
            raise DatabaseError("Incorrect syntax near 'SYNTAX'.", 102)
        applied = self.applied[self.current_database]
        if sql.startswith("DROP "):
            target = sql.split(" ", 2)[2].split(" ON ")[0]
            if sql.startswith("DROP SCHEMA ") and any(f"{target}." in s for s in applied):
                raise DatabaseError(
                    f"Cannot drop schema '{target}' because it is being referenced by object 'x'.", 3729
                )
            self.dropped.append(sql)
            self.applied[self.current_database] = [s for s in applied if target not in s]
            return 0
        if sql in applied:
            raise DatabaseError("There is already an object named 'x' in the database.", 2714)
        member = _ADD_MEMBER_RE.search(sql)
        if member and not all(self._principal_exists(name) for name in member.groups()):
            raise DatabaseError(
                f"Cannot add the principal '{member.group(2)}', because it does not exist "
                "or you do not have permission.",
                15151,
            )
        applied.append(sql)
        return 0

    def _principal_exists(self, name: str) -> bool:
        if name in _BUILTIN_PRINCIPALS:
            return True
        return any(
            s.startswith((f"CREATE ROLE {name}", f"CREATE USER {name}"))
            for s in self.applied[self.current_database]
        )

    def query(self, sql: str, params: tuple | None = None) -> list[dict[str, Any]]:
        self.queries.append(sql)
        rows = self.catalog[self.current_database].get(sql, [])
        if isinstance(rows, dict):
            rows = rows.get(params[0] if params else None, [])
        return [dict(r) for r in rows]


# ---------------------------------------------------------------------------
# Catalog row builders
# ---------------------------------------------------------------------------

def object_row(name: str, type_: str = "P", schema: str = "dbo", object_id: int = 1001, **extra) -> dict:
    row = {
        "object_id": object_id,
        "name": name,
        "schema_name": schema,
        "type": type_,
        "is_ms_shipped": False,
        "owner": None,
        "definition": f"CREATE PROCEDURE [{schema}].[{name}] AS SELECT 1",
        "base_object_name": None,
    }
    row.update(extra)
    return row


def column_row(name: str, type_name: str = "int", column_id: int = 1, **extra) -> dict:
    row = {
        "column_id": column_id,
        "name": name,
        "type_name": type_name,
        "type_schema": "sys",
        "max_length": 4,
        "precision": 10,
        "scale": 0,
        "is_nullable": False,
        "collation_name": None,
        "is_identity": False,
        "seed_value": None,
        "increment_value": None,
        "computed_definition": None,
        "is_persisted": False,
        "default_name": None,
        "default_definition": None,
    }
    row.update(extra)
    return row


def principal_row(name: str, type_: str = "R", principal_id: int = 5, **extra) -> dict:
    row = {
        "principal_id": principal_id,
        "name": name,
        "type": type_,
        "default_schema_name": None,
        "authentication_type_desc": "NONE" if type_ == "R" else "INSTANCE",
        "is_fixed_role": False,
        "login_name": None,
        "owner": "dbo",
    }
    row.update(extra)
    return row


def descriptor(
    category: ObjectCategory,
    name: str,
    schema: str | None = "dbo",
    **extra,
) -> ObjectDescriptor:
    return ObjectDescriptor(category=category, name=name, schema=schema, **extra)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def source() -> FakeServer:
    return FakeServer("sql01")


@pytest.fixture
def destination() -> FakeServer:
    return FakeServer("sql02")


@pytest.fixture
def health_check_source(source: FakeServer) -> FakeServer:
    """Source whose master holds one user procedure, dbo.spHealthCheck."""
    source.catalog["master"][enum_sql._OBJECTS_SQL] = [object_row("spHealthCheck")]
    return source
