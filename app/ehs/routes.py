from flask import Blueprint, g, jsonify

from app.ehs.modules.module_registry.catalog import module_key
from app.ehs.modules.module_registry.facade import current_registry

bp = Blueprint("routes", __name__)


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for k8s/DO probes. No DB access, minimal overhead.
    """
    return "ok", 200


@bp.get("/nav")
def navigation():
    """Navigation entries for the signed-in user: enabled modules only, in display order."""
    if not getattr(g, "current_user", None):
        return jsonify({"error": "Authentication required"}), 401
    items = [
        {"module": module_key(m.type), "label": m.display_name, "icon": m.icon}
        for m in current_registry().enabled_modules()
    ]
    return jsonify({"items": items})
