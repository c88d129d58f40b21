import json
from datetime import date, datetime, time, timedelta

from flask import Blueprint, g, jsonify, request

from app.ehs.db import db_session
from app.ehs.models import AuditEvent
from app.ehs.modules.module_registry.errors import PersistenceError
from app.ehs.modules.module_registry.facade import current_engine
from app.ehs.rbac import require_permission

bp = Blueprint("admin", __name__)


def _parse_date(s: str) -> date | None:
    s = (s or "").strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        return None


@bp.get("/")
@require_permission("admin.view")
def index():
    import os
    from sqlalchemy import text

    s = db_session()
    status = {
        "env": (os.environ.get("ENV") or "development").strip().lower(),
        "db_connected": False,
        "db_error": None,
        "modules": None,
        "modules_error": None,
    }

    # DB connectivity (lightweight)
    try:
        s.execute(text("SELECT 1"))
        status["db_connected"] = True
    except Exception as e:
        status["db_error"] = str(e)

    try:
        summary = current_engine().summary()
        status["modules"] = {
            "enabled": summary["enabled_modules"],
            "total": summary["total_modules"],
            "warnings": len(summary["warnings"]),
        }
    except PersistenceError as e:
        status["modules_error"] = str(e)

    return jsonify({"system_status": status})


@bp.get("/me")
@require_permission("admin.view")
def me():
    user = getattr(g, "current_user", None)
    role_keys = sorted({r.key for r in (user.roles or [])})
    perm_keys = sorted({p.key for r in (user.roles or []) for p in (r.permissions or [])})
    return jsonify({"email": user.email, "roles": role_keys, "permissions": perm_keys})


@bp.get("/audit")
@require_permission("admin.view")
def audit_list():
    """
    Audit trail (last 200 events) with simple filters:
    - action (contains)
    - actor_email (contains)
    - date range (YYYY-MM-DD)
    """
    s = db_session()
    action = (request.args.get("action") or "").strip()
    actor_email = (request.args.get("actor_email") or "").strip()
    date_from = _parse_date(request.args.get("date_from") or "")
    date_to = _parse_date(request.args.get("date_to") or "")

    errors = []
    if (request.args.get("date_from") or "").strip() and not date_from:
        errors.append("date_from must be YYYY-MM-DD")
    if (request.args.get("date_to") or "").strip() and not date_to:
        errors.append("date_to must be YYYY-MM-DD")
    if errors:
        return jsonify({"errors": errors}), 400

    q = s.query(AuditEvent)
    if action:
        q = q.filter(AuditEvent.action.like(f"%{action}%"))
    if actor_email:
        q = q.filter(AuditEvent.actor_user_email.like(f"%{actor_email.lower()}%"))
    if date_from:
        q = q.filter(AuditEvent.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        # inclusive end-date (treat as whole day)
        q = q.filter(AuditEvent.created_at < datetime.combine(date_to + timedelta(days=1), time.min))

    events = q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(200).all()
    return jsonify(
        {
            "events": [
                {
                    "id": ev.id,
                    "created_at": ev.created_at.isoformat(),
                    "actor": ev.actor_user_email,
                    "action": ev.action,
                    "entity_type": ev.entity_type,
                    "entity_id": ev.entity_id,
                    "reason": ev.reason,
                    "metadata": json.loads(ev.metadata_json) if ev.metadata_json else None,
                }
                for ev in events
            ]
        }
    )
