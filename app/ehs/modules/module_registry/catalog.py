"""
Module descriptor store.

The catalog is built once at startup from an explicit list of descriptors and is
never mutated afterwards. All structural validation happens in `build_catalog`;
anything that fails there is a configuration error and must stop the process.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from app.ehs.modules.module_registry.errors import (
    CyclicDependencyError,
    DuplicateModuleError,
    InvalidDescriptorError,
    UnknownModuleError,
    UnknownReferenceError,
)
from app.ehs.modules.module_registry.graph import DependencyGraph

logger = logging.getLogger(__name__)


def module_key(module_type: Any) -> str:
    """String identity of a module type (enum value, or the plain string)."""
    if isinstance(module_type, Enum):
        return str(module_type.value)
    return str(module_type)


@dataclass(frozen=True)
class ModuleDescriptor:
    type: Any
    display_name: str
    description: str = ""
    icon: str | None = None
    display_order: int = 0
    is_enabled_by_default: bool = True
    can_be_disabled: bool = True
    required_dependencies: tuple[Any, ...] = ()
    optional_dependencies: tuple[Any, ...] = ()
    disable_warning: str | None = None
    parent: Any = None  # grouping only; never enforced

    def __post_init__(self) -> None:
        # Accept any iterable; store de-duplicated tuples in declaration order.
        object.__setattr__(self, "required_dependencies", tuple(dict.fromkeys(self.required_dependencies)))
        object.__setattr__(self, "optional_dependencies", tuple(dict.fromkeys(self.optional_dependencies)))

    @property
    def key(self) -> str:
        return module_key(self.type)


class Catalog(Mapping[Any, ModuleDescriptor]):
    """
    Immutable mapping of module type -> descriptor.

    Lookups accept the enum member or its string value. Iteration follows
    declaration order; use `ordered()` for presentation order.
    """

    def __init__(self, descriptors: Iterable[ModuleDescriptor]):
        self._by_key: dict[str, ModuleDescriptor] = {}
        for d in descriptors:
            self._by_key[d.key] = d
        self._rank: dict[str, tuple[int, str, int]] = {
            key: (d.display_order, d.display_name, idx) for idx, (key, d) in enumerate(self._by_key.items())
        }
        self.graph = DependencyGraph(self)

    def __getitem__(self, module_type: Any) -> ModuleDescriptor:
        d = self._by_key.get(module_key(module_type))
        if d is None:
            raise UnknownModuleError(module_type)
        return d

    def __iter__(self) -> Iterator[Any]:
        return (d.type for d in self._by_key.values())

    def __len__(self) -> int:
        return len(self._by_key)

    def __contains__(self, module_type: object) -> bool:
        return module_key(module_type) in self._by_key

    def resolve(self, module_type: Any) -> Any:
        """Canonical type for `module_type` (raises UnknownModuleError)."""
        return self[module_type].type

    def ordered(self) -> list[ModuleDescriptor]:
        return sorted(self._by_key.values(), key=lambda d: self._rank[d.key])

    def sort(self, types: Iterable[Any]) -> list[Any]:
        """Order module types by display order, display name, declaration order."""
        return sorted(types, key=lambda t: self._rank[module_key(t)])

    def children(self, module_type: Any) -> list[Any]:
        """Modules grouped directly under `module_type`, in presentation order."""
        parent = self.resolve(module_type)
        return [d.type for d in self.ordered() if d.parent == parent]

    def roots(self) -> list[Any]:
        return [d.type for d in self.ordered() if d.parent is None]


def build_catalog(descriptors: Iterable[ModuleDescriptor]) -> Catalog:
    """
    Validate descriptors and return the catalog.

    Raises a CatalogError subclass for duplicate types, references to
    undeclared modules (dependencies or parent), pinned modules that start
    disabled, looping parent chains, and cycles in the required-dependency graph.
    """
    declared: dict[str, ModuleDescriptor] = {}
    for d in descriptors:
        if d.key in declared:
            raise DuplicateModuleError(d.type)
        declared[d.key] = d

    normalized: list[ModuleDescriptor] = []
    for d in declared.values():
        refs = list(d.required_dependencies) + list(d.optional_dependencies)
        missing = [r for r in refs if module_key(r) not in declared]
        if missing:
            raise UnknownReferenceError(d.type, missing)
        if not d.can_be_disabled and not d.is_enabled_by_default:
            raise InvalidDescriptorError(d.type, "a module that cannot be disabled must be enabled by default")
        parent = None
        if d.parent is not None:
            if module_key(d.parent) not in declared:
                raise UnknownReferenceError(d.type, [d.parent])
            if module_key(d.parent) == d.key:
                raise InvalidDescriptorError(d.type, "a module cannot be its own parent")
            parent = declared[module_key(d.parent)].type
        normalized.append(
            replace(
                d,
                required_dependencies=tuple(declared[module_key(r)].type for r in d.required_dependencies),
                optional_dependencies=tuple(declared[module_key(r)].type for r in d.optional_dependencies),
                parent=parent,
            )
        )

    parents = {d.key: module_key(d.parent) for d in normalized if d.parent is not None}
    for key in parents:
        seen = {key}
        node = parents[key]
        while node in parents:
            if node in seen:
                raise InvalidDescriptorError(declared[key].type, "parent chain loops back on itself")
            seen.add(node)
            node = parents[node]

    catalog = Catalog(normalized)
    cycle = catalog.graph.detect_cycle()
    if cycle is not None:
        raise CyclicDependencyError(cycle)

    for d in catalog.ordered():
        if not d.is_enabled_by_default:
            continue
        off = [t for t in catalog.graph.closure(d.type) if not catalog[t].is_enabled_by_default]
        if off:
            logger.warning(
                "Module %s is enabled by default but requires modules disabled by default: %s",
                d.key,
                ", ".join(module_key(t) for t in catalog.sort(off)),
            )

    logger.info("Module catalog built: %d modules", len(catalog))
    return catalog
