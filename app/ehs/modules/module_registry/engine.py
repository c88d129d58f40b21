"""
Enablement engine: the only code allowed to flip a module's enabled flag.

Guarantee: a module is enabled only if every module in its transitive
required-dependency closure is enabled.

Readers work against an immutable snapshot (a MappingProxyType that is swapped,
never mutated). Enable/disable run validate-then-commit under one registry-wide
lock and inside the store's locked transaction, checked against the committed
rows rather than the local snapshot, so processes sharing one database cannot
interleave contradictory writes. The snapshot is only replaced after the store
committed, so a failed write leaves the last committed state in place.
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from datetime import datetime
from types import MappingProxyType
from typing import Any

from app.ehs.modules.module_registry.catalog import Catalog, ModuleDescriptor, module_key
from app.ehs.modules.module_registry.errors import ErrorKind, PersistenceError, UnknownModuleError
from app.ehs.modules.module_registry.state import ACTION_SETTINGS, ModuleState, StateStore

logger = logging.getLogger(__name__)

# Configuration warning thresholds
_HIGH_COMPLEXITY_DEPENDENCIES = 5


@dataclass(frozen=True)
class ModuleView:
    type: Any
    display_name: str
    description: str
    icon: str | None
    display_order: int
    enabled: bool
    can_be_disabled: bool
    required_dependencies: tuple[Any, ...]
    optional_dependencies: tuple[Any, ...]
    last_changed_at: datetime | None = None
    last_changed_by: str | None = None
    parent: Any = None
    settings: Mapping[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": module_key(self.type),
            "display_name": self.display_name,
            "description": self.description,
            "icon": self.icon,
            "display_order": self.display_order,
            "enabled": self.enabled,
            "can_be_disabled": self.can_be_disabled,
            "required_dependencies": [module_key(t) for t in self.required_dependencies],
            "optional_dependencies": [module_key(t) for t in self.optional_dependencies],
            "last_changed_at": self.last_changed_at.isoformat() if self.last_changed_at else None,
            "last_changed_by": self.last_changed_by,
            "parent": module_key(self.parent) if self.parent is not None else None,
            "settings": dict(self.settings) if self.settings is not None else None,
        }


@dataclass(frozen=True)
class TransitionResult:
    module: Any
    ok: bool
    changed: bool = False
    error: ErrorKind | None = None
    blocking: tuple[Any, ...] = ()
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "module": module_key(self.module),
            "ok": self.ok,
            "changed": self.changed,
            "error": self.error.value if self.error else None,
            "blocking": [module_key(t) for t in self.blocking],
            "message": self.message,
        }


def _actor_name(actor: Any) -> str:
    if actor is None:
        return "system"
    email = getattr(actor, "email", None)
    if email:
        return str(email)
    return str(actor)


class EnablementEngine:
    def __init__(
        self,
        catalog: Catalog,
        store: StateStore,
        *,
        clock: Callable[[], datetime] = datetime.utcnow,
        load: bool = True,
    ):
        self.catalog = catalog
        self.graph = catalog.graph
        self._store = store
        self._clock = clock
        self._lock = threading.RLock()
        self._snapshot: Mapping[Any, ModuleState] | None = None
        if load:
            self.reload()

    # --- Snapshot ---------------------------------------------------------

    def reload(self) -> None:
        """
        Re-read persisted state and swap the snapshot.

        Missing rows are seeded from each descriptor's default. Rows for module
        types that are no longer in the catalog are ignored.
        """
        with self._lock:
            persisted = self._store.load()
            missing = [
                ModuleState(type=d.key, enabled=d.is_enabled_by_default)
                for d in self.catalog.ordered()
                if d.key not in persisted
            ]
            if missing:
                self._store.seed(missing)
                for st in missing:
                    persisted[st.type] = st

            orphans = sorted(k for k in persisted if k not in self.catalog)
            if orphans:
                logger.info("Ignoring state rows for modules not in the catalog: %s", ", ".join(orphans))

            snapshot = self._build_snapshot(persisted, announce=True)
            self._snapshot = snapshot
            logger.info(
                "Module state loaded: %d enabled of %d",
                sum(1 for st in snapshot.values() if st.enabled),
                len(snapshot),
            )

    def _build_snapshot(self, persisted: Mapping[str, ModuleState], *, announce: bool = False) -> Mapping[Any, ModuleState]:
        """
        Catalog-keyed view of persisted rows. Absent rows read as the default;
        pinned modules always read as enabled.
        """
        snapshot: dict[Any, ModuleState] = {}
        forced = []
        for d in self.catalog.ordered():
            st = persisted.get(d.key) or ModuleState(type=d.key, enabled=d.is_enabled_by_default)
            if not d.can_be_disabled and not st.enabled:
                forced.append(d)
                st = replace(st, enabled=True)
            snapshot[d.type] = st
        if announce:
            for d in forced:
                logger.warning("Module %s cannot be disabled but is stored as disabled; reading it as enabled", d.key)
                unmet = [t for t in self.catalog.sort(self.graph.closure(d.type)) if not snapshot[t].enabled]
                if unmet:
                    logger.warning(
                        "Module %s is forced on while its required modules are disabled: %s",
                        d.key,
                        ", ".join(module_key(t) for t in unmet),
                    )
        return MappingProxyType(snapshot)

    def _current(self) -> Mapping[Any, ModuleState]:
        snap = self._snapshot
        if snap is None:
            with self._lock:
                if self._snapshot is None:
                    self.reload()
                snap = self._snapshot
        return snap  # type: ignore[return-value]

    # --- Reads ------------------------------------------------------------

    def is_enabled(self, module_type: Any) -> bool:
        t = self.catalog.resolve(module_type)
        return self._current()[t].enabled

    def get_state(self, module_type: Any) -> ModuleState:
        t = self.catalog.resolve(module_type)
        return self._current()[t]

    def get_module(self, module_type: Any) -> ModuleView:
        d = self.catalog[module_type]
        return self._view(d, self._current()[d.type])

    def list_modules(self, *, enabled: bool | None = None) -> list[ModuleView]:
        """Modules ordered by display order then display name; optionally only enabled/disabled ones."""
        snap = self._current()
        views = []
        for d in self.catalog.ordered():
            st = snap[d.type]
            if enabled is not None and st.enabled != enabled:
                continue
            views.append(self._view(d, st))
        return views

    def get_dependents(self, module_type: Any) -> list[Any]:
        return self.catalog.sort(self.graph.dependents(module_type))

    def get_dependencies(self, module_type: Any, *, include_optional: bool = False) -> list[Any]:
        return self.catalog.sort(self.graph.dependencies(module_type, include_optional=include_optional))

    def get_settings(self, module_type: Any) -> dict[str, Any] | None:
        settings = self.get_state(module_type).settings
        return dict(settings) if settings is not None else None

    def get_children(self, module_type: Any) -> list[ModuleView]:
        snap = self._current()
        return [self._view(self.catalog[t], snap[t]) for t in self.catalog.children(module_type)]

    def get_hierarchy(self) -> list[dict[str, Any]]:
        """Top-level modules with their children nested under "children"."""
        snap = self._current()

        def node(t: Any) -> dict[str, Any]:
            data = self._view(self.catalog[t], snap[t]).to_dict()
            data["children"] = [node(c) for c in self.catalog.children(t)]
            return data

        return [node(t) for t in self.catalog.roots()]

    def _view(self, d: ModuleDescriptor, st: ModuleState) -> ModuleView:
        return ModuleView(
            type=d.type,
            display_name=d.display_name,
            description=d.description,
            icon=d.icon,
            display_order=d.display_order,
            enabled=st.enabled,
            can_be_disabled=d.can_be_disabled,
            required_dependencies=d.required_dependencies,
            optional_dependencies=d.optional_dependencies,
            last_changed_at=st.last_changed_at,
            last_changed_by=st.last_changed_by,
            parent=d.parent,
            settings=st.settings,
        )

    # --- Transitions ------------------------------------------------------

    def enable(self, module_type: Any, actor: Any, *, reason: str | None = None) -> TransitionResult:
        def check(d: ModuleDescriptor, snap: Mapping[Any, ModuleState]) -> TransitionResult | None:
            # No cascading: every required module must already be on.
            unmet = [t for t in self.catalog.sort(self.graph.closure(d.type)) if not snap[t].enabled]
            if unmet:
                return TransitionResult(
                    module=d.type,
                    ok=False,
                    error=ErrorKind.MISSING_DEPENDENCY,
                    blocking=tuple(unmet),
                    message=f"Enable required modules first: {self._names(unmet)}",
                )
            return None

        return self._transition(module_type, True, actor, reason, check)

    def disable(self, module_type: Any, actor: Any, *, reason: str | None = None) -> TransitionResult:
        def check(d: ModuleDescriptor, snap: Mapping[Any, ModuleState]) -> TransitionResult | None:
            if not d.can_be_disabled:
                return TransitionResult(
                    module=d.type,
                    ok=False,
                    error=ErrorKind.MODULE_LOCKED,
                    message=f"{d.display_name} is a core module and cannot be disabled",
                )
            # Optional dependents never block.
            blocking = [t for t in self.get_dependents(d.type) if snap[t].enabled]
            if blocking:
                return TransitionResult(
                    module=d.type,
                    ok=False,
                    error=ErrorKind.DEPENDENTS_STILL_ENABLED,
                    blocking=tuple(blocking),
                    message=f"Disable dependent modules first: {self._names(blocking)}",
                )
            return None

        return self._transition(module_type, False, actor, reason, check)

    def update_settings(
        self,
        module_type: Any,
        settings: Mapping[str, Any] | None,
        actor: Any,
        *,
        reason: str | None = None,
    ) -> TransitionResult:
        """Replace a module's settings object (None clears it). Does not touch enablement."""
        try:
            d = self.catalog[module_type]
        except UnknownModuleError as e:
            return TransitionResult(module=module_type, ok=False, error=ErrorKind.UNKNOWN_MODULE, message=str(e))
        if settings is not None and not isinstance(settings, Mapping):
            return TransitionResult(
                module=d.type, ok=False, error=ErrorKind.INVALID_SETTINGS, message="Settings must be a JSON object"
            )
        new_settings = dict(settings) if settings is not None else None

        def decide(persisted: dict[str, ModuleState]) -> ModuleState | None:
            current = persisted.get(d.key) or ModuleState(type=d.key, enabled=d.is_enabled_by_default)
            if (dict(current.settings) if current.settings is not None else None) == new_settings:
                return None
            return replace(
                current,
                settings=new_settings,
                last_changed_at=self._clock(),
                last_changed_by=_actor_name(actor),
            )

        with self._lock:
            try:
                self._current()
                persisted, written = self._store.transition(decide, action=ACTION_SETTINGS, reason=reason)
            except PersistenceError as e:
                logger.error("Module %s settings update failed; keeping last committed state: %s", d.key, e)
                return TransitionResult(module=d.type, ok=False, error=ErrorKind.PERSISTENCE_ERROR, message=str(e))
            self._snapshot = self._build_snapshot(persisted)
        if written is None:
            return TransitionResult(module=d.type, ok=True)
        logger.info("Module %s settings updated by %s", d.key, written.last_changed_by)
        return TransitionResult(module=d.type, ok=True, changed=True)

    def _transition(
        self,
        module_type: Any,
        enabled: bool,
        actor: Any,
        reason: str | None,
        check: Callable[[ModuleDescriptor, Mapping[Any, ModuleState]], TransitionResult | None],
    ) -> TransitionResult:
        """
        Validate against the rows committed in the store (not this process's
        snapshot) while the store holds its write lock, then write. Other
        processes sharing the database see and are checked against the result.
        """
        try:
            d = self.catalog[module_type]
        except UnknownModuleError as e:
            return TransitionResult(module=module_type, ok=False, error=ErrorKind.UNKNOWN_MODULE, message=str(e))

        outcome = TransitionResult(module=d.type, ok=True)

        def decide(persisted: dict[str, ModuleState]) -> ModuleState | None:
            nonlocal outcome
            snap = self._build_snapshot(persisted)
            current = snap[d.type]
            if current.enabled == enabled:
                return None
            rejected = check(d, snap)
            if rejected is not None:
                outcome = rejected
                return None
            return replace(
                current,
                enabled=enabled,
                last_changed_at=self._clock(),
                last_changed_by=_actor_name(actor),
            )

        verb = "enable" if enabled else "disable"
        with self._lock:
            try:
                self._current()
                persisted, written = self._store.transition(decide, reason=reason)
            except PersistenceError as e:
                logger.error("Module %s %s failed; keeping last committed state: %s", d.key, verb, e)
                return TransitionResult(module=d.type, ok=False, error=ErrorKind.PERSISTENCE_ERROR, message=str(e))
            # Committed rows may include changes made by other processes.
            self._snapshot = self._build_snapshot(persisted)

        if written is None:
            return outcome
        logger.info("Module %s %sd by %s", d.key, verb, written.last_changed_by)
        return TransitionResult(module=d.type, ok=True, changed=True)

    # --- Administrative queries -------------------------------------------

    def can_disable(self, module_type: Any) -> bool:
        d = self.catalog[module_type]
        if not d.can_be_disabled:
            return False
        snap = self._current()
        return not any(snap[t].enabled for t in self.graph.dependents(d.type))

    def disable_warnings(self, module_type: Any) -> list[str]:
        """Human-readable consequences of disabling `module_type` right now."""
        d = self.catalog[module_type]
        snap = self._current()
        warnings: list[str] = []
        if not d.can_be_disabled:
            warnings.append(f"{d.display_name} is a core module and cannot be disabled")
        required_by = [t for t in self.get_dependents(d.type) if snap[t].enabled]
        if required_by:
            warnings.append(f"{len(required_by)} enabled module(s) require it: {self._names(required_by)}")
        integrations = [t for t in self.catalog.sort(self.graph.optional_dependents(d.type)) if snap[t].enabled]
        if integrations:
            warnings.append(f"Integration with {self._names(integrations)} will be unavailable")
        if d.disable_warning:
            warnings.append(d.disable_warning)
        return warnings

    def configuration_warnings(self) -> list[dict[str, Any]]:
        """
        Drift between persisted state and the catalog (e.g. a deployment added a
        required dependency to a module that is already enabled).
        """
        snap = self._current()
        out: list[dict[str, Any]] = []
        for d in self.catalog.ordered():
            if snap[d.type].enabled:
                unmet = [t for t in self.catalog.sort(self.graph.closure(d.type)) if not snap[t].enabled]
                if unmet:
                    out.append(
                        {
                            "module": d.key,
                            "warning_type": "DependencyViolation",
                            "severity": "High",
                            "message": f"Enabled module {d.display_name} has disabled required modules: {self._names(unmet)}",
                        }
                    )
            deps = len(d.required_dependencies) + len(d.optional_dependencies)
            if deps > _HIGH_COMPLEXITY_DEPENDENCIES:
                out.append(
                    {
                        "module": d.key,
                        "warning_type": "HighComplexity",
                        "severity": "Medium",
                        "message": f"Module {d.display_name} has many dependencies ({deps})",
                    }
                )
        return out

    def summary(self) -> dict[str, Any]:
        snap = self._current()
        descriptors = self.catalog.ordered()
        enabled = sum(1 for d in descriptors if snap[d.type].enabled)
        with_deps = sum(
            1
            for d in descriptors
            if d.required_dependencies or d.optional_dependencies or self.graph.dependents(d.type)
        )
        return {
            "total_modules": len(descriptors),
            "enabled_modules": enabled,
            "disabled_modules": len(descriptors) - enabled,
            "critical_modules": sum(1 for d in descriptors if not d.can_be_disabled),
            "modules_with_dependencies": with_deps,
            "warnings": self.configuration_warnings(),
        }

    def _names(self, types: list[Any]) -> str:
        return ", ".join(self.catalog[t].display_name for t in types)
