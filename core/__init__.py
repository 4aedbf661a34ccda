"""core/__init__.py"""
from core.database import (
    ServerConnection,
    DatabaseError,
    ServerConnectionError,
    ConnectionLostError,
    PrivilegeError,
    connect,
)
from core.enumerator import ObjectEnumeration, enumerate_objects
from core.script_generator import ScriptGenerator, GenerationError, generate_script
from core.applier import (
    ScriptApplier,
    ApplyError,
    AlreadyExistsConflict,
    apply_script,
)
from core.orchestrator import (
    MigrationOrchestrator,
    SourceLostError,
    migrate_system_objects,
)

__all__ = [
    "ServerConnection",
    "DatabaseError",
    "ServerConnectionError",
    "ConnectionLostError",
    "PrivilegeError",
    "connect",
    "ObjectEnumeration",
    "enumerate_objects",
    "ScriptGenerator",
    "GenerationError",
    "generate_script",
    "ScriptApplier",
    "ApplyError",
    "AlreadyExistsConflict",
    "apply_script",
    "MigrationOrchestrator",
    "SourceLostError",
    "migrate_system_objects",
]
