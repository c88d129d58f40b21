from __future__ import annotations

import json

from flask import Blueprint, current_app, g, jsonify, request

from app.ehs.db import db_session
from app.ehs.models import AuditEvent, User
from app.ehs.modules.module_registry.catalog import module_key
from app.ehs.modules.module_registry.engine import TransitionResult
from app.ehs.modules.module_registry.errors import ErrorKind, PersistenceError, UnknownModuleError
from app.ehs.modules.module_registry.facade import current_engine
from app.ehs.rbac import require_permission
from app.ehs.security import request_payload

bp = Blueprint("module_registry", __name__)

_ERROR_STATUS = {
    ErrorKind.UNKNOWN_MODULE: 404,
    ErrorKind.MISSING_DEPENDENCY: 409,
    ErrorKind.DEPENDENTS_STILL_ENABLED: 409,
    ErrorKind.MODULE_LOCKED: 409,
    ErrorKind.PERSISTENCE_ERROR: 503,
    ErrorKind.INVALID_SETTINGS: 400,
}


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _reason() -> str | None:
    return str(request_payload(request).get("reason") or "").strip() or None


def _parse_bool(raw: str | None) -> bool | None:
    raw = (raw or "").strip().lower()
    if not raw:
        return None
    return raw in ("1", "true", "yes", "on")


def _transition_response(result: TransitionResult):
    if result.ok:
        return jsonify(result.to_dict()), 200
    return jsonify(result.to_dict()), _ERROR_STATUS.get(result.error, 400)


@bp.errorhandler(UnknownModuleError)
def _unknown_module(e: UnknownModuleError):
    return jsonify({"error": ErrorKind.UNKNOWN_MODULE.value, "message": str(e)}), 404


@bp.errorhandler(PersistenceError)
def _persistence_error(e: PersistenceError):
    current_app.logger.error("Module registry persistence failure: %s", e)
    return jsonify({"error": ErrorKind.PERSISTENCE_ERROR.value, "message": str(e)}), 503


@bp.get("/")
@require_permission("modules.view")
def list_modules():
    enabled = _parse_bool(request.args.get("enabled"))
    modules = current_engine().list_modules(enabled=enabled)
    return jsonify({"modules": [m.to_dict() for m in modules]})


@bp.get("/summary")
@require_permission("modules.view")
def summary():
    return jsonify(current_engine().summary())


@bp.get("/hierarchy")
@require_permission("modules.view")
def hierarchy():
    return jsonify({"modules": current_engine().get_hierarchy()})


@bp.get("/<module>")
@require_permission("modules.view")
def module_detail(module: str):
    engine = current_engine()
    view = engine.get_module(module)
    data = view.to_dict()
    data["dependents"] = [module_key(t) for t in engine.get_dependents(module)]
    data["can_disable"] = engine.can_disable(module)
    data["disable_warnings"] = engine.disable_warnings(module)
    data["children"] = [module_key(m.type) for m in engine.get_children(module)]
    return jsonify(data)


@bp.post("/<module>/enable")
@require_permission("modules.manage")
def enable_module(module: str):
    result = current_engine().enable(module, _current_user(), reason=_reason())
    return _transition_response(result)


@bp.post("/<module>/disable")
@require_permission("modules.manage")
def disable_module(module: str):
    result = current_engine().disable(module, _current_user(), reason=_reason())
    return _transition_response(result)


@bp.get("/<module>/settings")
@require_permission("modules.view")
def module_settings(module: str):
    engine = current_engine()
    key = engine.catalog[module].key
    return jsonify({"module": key, "settings": engine.get_settings(module)})


@bp.put("/<module>/settings")
@require_permission("modules.manage")
def update_module_settings(module: str):
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict) or "settings" not in payload:
        return jsonify({"error": ErrorKind.INVALID_SETTINGS.value, "message": 'Body must be {"settings": {...}}'}), 400
    reason = str(payload.get("reason") or "").strip() or None
    result = current_engine().update_settings(module, payload["settings"], _current_user(), reason=reason)
    return _transition_response(result)


@bp.get("/<module>/audit")
@require_permission("modules.view")
def module_audit(module: str):
    key = current_engine().catalog[module].key
    try:
        limit = max(1, min(int(request.args.get("limit") or 50), 200))
    except ValueError:
        limit = 50
    s = db_session()
    events = (
        s.query(AuditEvent)
        .filter(AuditEvent.entity_type == "Module", AuditEvent.entity_id == key)
        .order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc())
        .limit(limit)
        .all()
    )
    return jsonify(
        {
            "module": key,
            "events": [
                {
                    "id": ev.id,
                    "action": ev.action,
                    "actor": ev.actor_user_email,
                    "reason": ev.reason,
                    "created_at": ev.created_at.isoformat(),
                    "metadata": json.loads(ev.metadata_json) if ev.metadata_json else None,
                }
                for ev in events
            ],
        }
    )


@bp.post("/reload")
@require_permission("modules.manage")
def reload_state():
    engine = current_engine()
    engine.reload()
    current_app.logger.info("Module state reloaded by %s", _current_user().email)
    return jsonify(engine.summary())
