"""models/__init__.py"""
from models.objects import (
    ObjectCategory,
    ObjectDescriptor,
    ColumnDescriptor,
    IndexDescriptor,
    ForeignKeyDescriptor,
    CheckConstraintDescriptor,
    PermissionGrant,
    PermissionState,
    SecurableClass,
)
from models.policy import SYSTEM_DATABASES, TransferPolicy
from models.script import ScriptPhase, ScriptStatement, TransferScript, GenerationDiagnostic
from models.outcome import ApplyOutcome, MigrationReport, StatementResult, StatementStatus
from models.server import Credential, ServerAddress

__all__ = [
    "ObjectCategory",
    "ObjectDescriptor",
    "ColumnDescriptor",
    "IndexDescriptor",
    "ForeignKeyDescriptor",
    "CheckConstraintDescriptor",
    "PermissionGrant",
    "PermissionState",
    "SecurableClass",
    "SYSTEM_DATABASES",
    "TransferPolicy",
    "ScriptPhase",
    "ScriptStatement",
    "TransferScript",
    "GenerationDiagnostic",
    "ApplyOutcome",
    "MigrationReport",
    "StatementResult",
    "StatementStatus",
    "Credential",
    "ServerAddress",
]
