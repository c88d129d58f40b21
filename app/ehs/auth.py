from __future__ import annotations

import threading
import uuid
from collections import defaultdict, deque
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, jsonify, request, session
from werkzeug.security import check_password_hash

from app.ehs.audit import record_event
from app.ehs.db import db_session
from app.ehs.models import User
from app.ehs.security import ensure_csrf_token, request_payload

bp = Blueprint("auth", __name__)


class LoginThrottle:
    """Per-IP sliding window of login attempts (process-local)."""

    def __init__(self, limit: int = 5, window_seconds: int = 300):
        self.limit = limit
        self.window = timedelta(seconds=window_seconds)
        self._attempts: dict[str, deque[datetime]] = defaultdict(deque)
        self._lock = threading.Lock()

    def blocked(self, ip: str) -> bool:
        cutoff = datetime.utcnow() - self.window
        with self._lock:
            q = self._attempts[ip]
            while q and q[0] <= cutoff:
                q.popleft()
            return len(q) >= self.limit

    def hit(self, ip: str) -> None:
        with self._lock:
            self._attempts[ip].append(datetime.utcnow())

    def reset(self, ip: str) -> None:
        with self._lock:
            self._attempts.pop(ip, None)


throttle = LoginThrottle()


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/health", "/healthz")):
        g.current_user = None
        return

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    try:
        s = db_session()
        user = s.get(User, int(user_id))
        if not user or not user.is_active:
            session.pop("user_id", None)
            g.current_user = None
            return
        g.current_user = user
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        session.pop("user_id", None)
        g.current_user = None


@bp.get("/login")
def login_get():
    """Hands out the CSRF token clients must echo on mutating requests."""
    return jsonify({"csrf_token": ensure_csrf_token()})


@bp.post("/login")
def login_post():
    payload = request_payload(request)
    email = str(payload.get("email") or "").strip().lower()
    password = str(payload.get("password") or "")
    ip = request.remote_addr or "unknown"

    if throttle.blocked(ip):
        return jsonify({"error": "Too many login attempts. Please wait 5 minutes."}), 429

    throttle.hit(ip)

    try:
        s = db_session()
        user = s.query(User).filter(User.email == email).one_or_none()
        if not user or not user.is_active or not check_password_hash(user.password_hash, password):
            record_event(
                s,
                actor=None,
                action="auth.login_failed",
                entity_type="User",
                entity_id=email,
                reason="Invalid credentials",
                metadata={"email": email},
            )
            s.commit()
            return jsonify({"error": "Invalid credentials."}), 401

        session["user_id"] = user.id
        throttle.reset(ip)
        record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
        s.commit()
        return jsonify({"ok": True, "email": user.email, "csrf_token": ensure_csrf_token()})
    except Exception:
        current_app.logger.exception("Login POST crashed (email=%s request_id=%s)", email, getattr(g, "request_id", None))
        raise


@bp.post("/logout")
def logout():
    s = db_session()
    user = getattr(g, "current_user", None)
    if user:
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.pop("user_id", None)
    return jsonify({"ok": True})
