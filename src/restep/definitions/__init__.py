"""Round-scoped definitions and their reconciliation."""

from restep.definitions.collections import DefinitionCollection
from restep.definitions.registry import (
    Definition,
    DefinitionHandle,
    DefinitionKind,
    DefinitionRegistry,
    ReconcileReport,
)

__all__ = [
    "Definition",
    "DefinitionCollection",
    "DefinitionHandle",
    "DefinitionKind",
    "DefinitionRegistry",
    "ReconcileReport",
]
