from __future__ import annotations

from collections.abc import Callable, Iterable
from functools import wraps
from typing import Any

from flask import Flask, current_app, jsonify

from app.ehs.modules.module_registry.catalog import ModuleDescriptor, build_catalog, module_key
from app.ehs.modules.module_registry.engine import EnablementEngine, ModuleView
from app.ehs.modules.module_registry.errors import PersistenceError
from app.ehs.modules.module_registry.state import SqlStateStore, StateStore


class ModuleRegistry:
    """
    Read-only view of module activation for the rest of the platform
    (navigation, feature gates). Mutation goes through the admin API only.
    """

    def __init__(self, engine: EnablementEngine):
        self._engine = engine

    def is_enabled(self, module_type: Any) -> bool:
        return self._engine.is_enabled(module_type)

    def list_modules(self, *, enabled: bool | None = None) -> list[ModuleView]:
        return self._engine.list_modules(enabled=enabled)

    def enabled_modules(self) -> list[ModuleView]:
        return self._engine.list_modules(enabled=True)

    def settings(self, module_type: Any) -> dict[str, Any]:
        """Module settings for feature code; empty when none were saved."""
        return self._engine.get_settings(module_type) or {}


def init_registry(
    app: Flask,
    descriptors: Iterable[ModuleDescriptor] | None = None,
    *,
    store: StateStore | None = None,
) -> ModuleRegistry:
    """
    Build catalog + engine once per app and publish them on app.extensions.

    Catalog errors propagate (the app must not start). A state-load failure is
    logged and retried on first read, so the app can boot before migrations run.
    """
    if descriptors is None:
        from app.ehs.modules.module_registry.definitions import PLATFORM_MODULES

        descriptors = PLATFORM_MODULES

    catalog = build_catalog(descriptors)
    if store is None:
        store = SqlStateStore(
            app.extensions["sqlalchemy_sessionmaker"],
            write_timeout=app.config.get("MODULE_STATE_WRITE_TIMEOUT"),
        )
    engine = EnablementEngine(catalog, store, load=False)
    try:
        engine.reload()
    except PersistenceError as e:
        app.logger.error("Module state not loaded at startup (will retry on first access): %s", e)

    registry = ModuleRegistry(engine)
    app.extensions["module_engine"] = engine
    app.extensions["module_registry"] = registry
    return registry


def current_registry() -> ModuleRegistry:
    return current_app.extensions["module_registry"]


def current_engine() -> EnablementEngine:
    return current_app.extensions["module_engine"]


def require_module(module_type: Any) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Hide an endpoint (404) while its module is disabled."""

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            if not current_registry().is_enabled(module_type):
                return jsonify({"error": "Module disabled", "module": module_key(module_type)}), 404
            return fn(*args, **kwargs)

        return wrapped

    return decorator
