from __future__ import annotations

from enum import Enum
from typing import Any, Iterable


class ErrorKind(str, Enum):
    UNKNOWN_REFERENCE = "UnknownReference"
    CYCLIC_DEPENDENCY = "CyclicDependency"
    UNKNOWN_MODULE = "UnknownModule"
    MISSING_DEPENDENCY = "MissingDependency"
    DEPENDENTS_STILL_ENABLED = "DependentsStillEnabled"
    MODULE_LOCKED = "ModuleLocked"
    PERSISTENCE_ERROR = "PersistenceError"
    INVALID_SETTINGS = "InvalidSettings"


def _names(types: Iterable[Any]) -> list[str]:
    return [str(getattr(t, "value", t)) for t in types]


class RegistryError(Exception):
    kind: ErrorKind | None = None


class CatalogError(RegistryError):
    """
    Raised while building the module catalog. Never caught by the app factory:
    a contradictory catalog must stop the process from serving.
    """


class DuplicateModuleError(CatalogError):
    def __init__(self, module_type: Any):
        self.module_type = module_type
        super().__init__(f"Module {_names([module_type])[0]} is declared more than once")


class UnknownReferenceError(CatalogError):
    kind = ErrorKind.UNKNOWN_REFERENCE

    def __init__(self, module_type: Any, missing: Iterable[Any]):
        self.module_type = module_type
        self.missing = tuple(missing)
        super().__init__(
            f"Module {_names([module_type])[0]} references unknown modules: {', '.join(_names(self.missing))}"
        )


class InvalidDescriptorError(CatalogError):
    def __init__(self, module_type: Any, reason: str):
        self.module_type = module_type
        self.reason = reason
        super().__init__(f"Module {_names([module_type])[0]}: {reason}")


class CyclicDependencyError(CatalogError):
    kind = ErrorKind.CYCLIC_DEPENDENCY

    def __init__(self, members: Iterable[Any]):
        self.members = frozenset(members)
        super().__init__(f"Required dependencies form a cycle: {', '.join(sorted(_names(self.members)))}")


class UnknownModuleError(RegistryError, LookupError):
    kind = ErrorKind.UNKNOWN_MODULE

    def __init__(self, module_type: Any):
        self.module_type = module_type
        super().__init__(f"Unknown module: {module_type!r}")


class PersistenceError(RegistryError):
    kind = ErrorKind.PERSISTENCE_ERROR
