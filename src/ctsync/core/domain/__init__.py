"""
Domain layer - definitions, entities and enums.
"""

from .definitions import (
    ComponentTypeDefinition,
    ContentTypeDefinition,
    Definition,
    DefinitionCategory,
    FieldDefinition,
    FolderTypeDefinition,
    PageTypeDefinition,
    parse_definition,
)
from .entities import (
    ConflictDetails,
    ConflictEntry,
    ConflictingField,
    ConflictResult,
    ResolutionRecord,
    SyncProgress,
    SyncRecord,
    SyncState,
    Version,
)
from .enums import (
    ChangeKind,
    ChangeSource,
    ChangeType,
    ConflictPriority,
    ConflictStatus,
    ConflictType,
    SyncDirection,
    SyncRecordStatus,
    SyncRunStatus,
    SyncStatus,
    VersionOrigin,
)


__all__ = [
    "ChangeKind",
    "ChangeSource",
    "ChangeType",
    "ComponentTypeDefinition",
    "ConflictDetails",
    "ConflictEntry",
    "ConflictPriority",
    "ConflictResult",
    "ConflictStatus",
    "ConflictType",
    "ConflictingField",
    "ContentTypeDefinition",
    "Definition",
    "DefinitionCategory",
    "FieldDefinition",
    "FolderTypeDefinition",
    "PageTypeDefinition",
    "ResolutionRecord",
    "SyncDirection",
    "SyncProgress",
    "SyncRecord",
    "SyncRecordStatus",
    "SyncRunStatus",
    "SyncState",
    "SyncStatus",
    "Version",
    "VersionOrigin",
    "parse_definition",
]
