"""
models/script.py
----------------
The transfer script: an ordered list of statements for one database pass.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Iterator

from models.objects import ObjectCategory


class ScriptPhase(IntEnum):
    """
    Fixed emission order. This is a category ordering, not a dependency
    solver: cross-category references that violate it fail at apply time.
    """
    SCHEMA = 10
    TYPE = 20
    SEQUENCE = 30
    TABLE = 40
    TABLE_CONSTRAINT = 45
    VIEW = 50
    DEFAULT_RULE = 60
    ROUTINE = 70
    SYNONYM = 80
    ASSEMBLY = 90
    DATABASE_TRIGGER = 100
    TRIGGER = 110
    ROLE = 120
    ROLE_MEMBERSHIP = 130
    USER = 140
    USER_MEMBERSHIP = 145  # members must exist before ADD MEMBER
    PERMISSION = 150


@dataclass(frozen=True)
class ScriptStatement:
    """
    One executable batch.

    Attributes:
        text:        T-SQL sent to the destination as a single batch.
        phase:       Where the statement sits in the fixed ordering.
        category:    Category of the object the statement belongs to.
        object_name: Qualified name used in reports and logs.
        drop_text:   Statement that removes the destination object, used
                     when the policy asks to replace existing objects.
    """
    text: str
    phase: ScriptPhase
    category: ObjectCategory
    object_name: str
    drop_text: str | None = None

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class GenerationDiagnostic:
    """An object that was skipped because it could not be scripted."""
    category: ObjectCategory
    object_name: str
    reason: str

    def __str__(self) -> str:
        return f"{self.category.value} {self.object_name}: {self.reason}"


@dataclass
class TransferScript:
    """Statements for one source database, in application order."""
    database: str
    statements: list[ScriptStatement] = field(default_factory=list)
    diagnostics: list[GenerationDiagnostic] = field(default_factory=list)

    def __iter__(self) -> Iterator[ScriptStatement]:
        return iter(self.statements)

    def __len__(self) -> int:
        return len(self.statements)

    def texts(self) -> list[str]:
        return [s.text for s in self.statements]
