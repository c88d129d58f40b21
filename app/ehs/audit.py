import json
from typing import Any

from flask import g, has_app_context, has_request_context, request
from sqlalchemy.orm import Session

from app.ehs.models import AuditEvent, User


def record_event(
    s: Session,
    *,
    actor: User | str | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    reason: str | None = None,
    metadata: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> AuditEvent:
    """
    Append-only audit event helper.

    `actor` is a User, or a plain identity string (e.g. an email or "system")
    when the change did not come from a logged-in user row.
    """
    rid = request_id or (getattr(g, "request_id", None) if has_app_context() else None)
    if isinstance(actor, User):
        actor_id, actor_email = actor.id, actor.email
    else:
        actor_id, actor_email = None, actor
    ev = AuditEvent(
        request_id=rid,
        actor_user_id=actor_id,
        actor_user_email=actor_email,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
        metadata_json=json.dumps(metadata, sort_keys=True) if metadata else None,
        client_ip=request.remote_addr if has_request_context() else None,
    )
    s.add(ev)
    return ev
