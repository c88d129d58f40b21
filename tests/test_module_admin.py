import pytest
from flask import Blueprint
from werkzeug.security import generate_password_hash

from app.ehs import create_app
from app.ehs.db import session_scope
from app.ehs.models import Base, Permission, Role, User
from app.ehs.modules.module_registry.definitions import ModuleType
from app.ehs.modules.module_registry.facade import current_registry, require_module


def _seed(s):
    p_admin = Permission(key="admin.view", name="Admin: view shell")
    p_view = Permission(key="modules.view", name="Modules: view configuration")
    p_manage = Permission(key="modules.manage", name="Modules: enable/disable")
    admin = Role(key="admin", name="Administrator")
    admin.permissions.extend([p_admin, p_view, p_manage])
    viewer = Role(key="viewer", name="Viewer")
    viewer.permissions.append(p_view)

    u_admin = User(email="admin@example.com", password_hash=generate_password_hash("pw"), is_active=True)
    u_admin.roles.append(admin)
    u_viewer = User(email="viewer@example.com", password_hash=generate_password_hash("pw"), is_active=True)
    u_viewer.roles.append(viewer)
    s.add_all([p_admin, p_view, p_manage, admin, viewer, u_admin, u_viewer])


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    with session_scope(app) as s:
        _seed(s)
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _login(client, email="admin@example.com"):
    r = client.post("/auth/login", data={"email": email, "password": "pw"})
    assert r.status_code == 200
    return {"X-CSRF-Token": r.json["csrf_token"]}


def test_list_requires_auth(client):
    r = client.get("/admin/modules/")
    assert r.status_code == 401


def test_list_modules_ordered(client):
    _login(client)
    r = client.get("/admin/modules/")
    assert r.status_code == 200
    modules = r.json["modules"]
    assert len(modules) == len(ModuleType)
    assert [m["type"] for m in modules[:3]] == ["Dashboard", "UserManagement", "ApplicationSettings"]
    orders = [m["display_order"] for m in modules]
    assert orders == sorted(orders)

    r = client.get("/admin/modules/?enabled=false")
    disabled = {m["type"] for m in r.json["modules"]}
    assert "SecurityIncidentManagement" in disabled
    assert "Dashboard" not in disabled


def test_module_detail(client):
    _login(client)
    r = client.get("/admin/modules/InspectionManagement")
    assert r.status_code == 200
    assert r.json["enabled"] is True
    assert r.json["dependents"] == ["AuditManagement"]
    assert r.json["can_disable"] is False
    assert r.json["required_dependencies"] == ["UserManagement"]


def test_unknown_module_is_404(client):
    headers = _login(client)
    assert client.get("/admin/modules/NoSuchModule").status_code == 404
    r = client.post("/admin/modules/NoSuchModule/enable", headers=headers)
    assert r.status_code == 404
    assert r.json["error"] == "UnknownModule"


def test_disable_blocked_by_enabled_dependent(client):
    headers = _login(client)
    r = client.post("/admin/modules/InspectionManagement/disable", headers=headers)
    assert r.status_code == 409
    assert r.json["error"] == "DependentsStillEnabled"
    assert r.json["blocking"] == ["AuditManagement"]


def test_core_module_locked(client):
    headers = _login(client)
    r = client.post("/admin/modules/Dashboard/disable", headers=headers)
    assert r.status_code == 409
    assert r.json["error"] == "ModuleLocked"


def test_enable_requires_dependencies_in_order(client):
    headers = _login(client)
    r = client.post("/admin/modules/AuditManagement/disable", headers=headers, json={"reason": "scope change"})
    assert r.status_code == 200
    assert r.json["changed"] is True

    r = client.post("/admin/modules/ComplianceManagement/enable", headers=headers)
    assert r.status_code == 409
    assert r.json["error"] == "MissingDependency"
    assert r.json["blocking"] == ["AuditManagement"]

    assert client.post("/admin/modules/AuditManagement/enable", headers=headers).status_code == 200
    r = client.post("/admin/modules/ComplianceManagement/enable", headers=headers)
    assert r.status_code == 200
    assert r.json["ok"] is True


def test_transitions_are_audited(client):
    headers = _login(client)
    client.post("/admin/modules/Reporting/disable", headers=headers, json={"reason": "not licensed"})
    client.post("/admin/modules/Reporting/disable", headers=headers)  # no-op, not audited
    client.post("/admin/modules/Reporting/enable", headers=headers)

    r = client.get("/admin/modules/Reporting/audit")
    assert r.status_code == 200
    events = r.json["events"]
    assert [e["action"] for e in events] == ["module.enable", "module.disable"]
    assert events[1]["reason"] == "not licensed"
    assert events[1]["actor"] == "admin@example.com"
    assert events[1]["metadata"] == {"new": False, "old": True}

    r = client.get("/admin/modules/Reporting")
    assert r.json["last_changed_by"] == "admin@example.com"


def test_viewer_cannot_manage(client):
    headers = _login(client, "viewer@example.com")
    assert client.get("/admin/modules/").status_code == 200
    r = client.post("/admin/modules/Reporting/disable", headers=headers)
    assert r.status_code == 403
    assert r.json["missing_permission"] == "modules.manage"


def test_summary_and_reload(client):
    headers = _login(client)
    r = client.get("/admin/modules/summary")
    assert r.status_code == 200
    assert r.json["total_modules"] == len(ModuleType)
    assert r.json["critical_modules"] == 3
    assert r.json["enabled_modules"] + r.json["disabled_modules"] == len(ModuleType)

    r = client.post("/admin/modules/reload", headers=headers)
    assert r.status_code == 200
    assert r.json["total_modules"] == len(ModuleType)


def test_nav_lists_enabled_modules_only(client):
    r = client.get("/nav")
    assert r.status_code == 401

    headers = _login(client)
    labels = [i["module"] for i in client.get("/nav").json["items"]]
    assert "Reporting" in labels
    assert "SecurityIncidentManagement" not in labels

    client.post("/admin/modules/Reporting/disable", headers=headers)
    labels = [i["module"] for i in client.get("/nav").json["items"]]
    assert "Reporting" not in labels


def test_require_module_hides_disabled_feature(app):
    bp = Blueprint("reporting_pages", __name__)

    @bp.get("/reports")
    @require_module(ModuleType.REPORTING)
    def reports():
        return {"ok": True}

    app.register_blueprint(bp, url_prefix="/pages")
    client = app.test_client()

    assert client.get("/pages/reports").status_code == 200

    headers = _login(client)
    client.post("/admin/modules/Reporting/disable", headers=headers)
    r = client.get("/pages/reports")
    assert r.status_code == 404
    assert r.json == {"error": "Module disabled", "module": "Reporting"}

    with app.app_context():
        assert current_registry().is_enabled("Reporting") is False


def test_non_object_json_body_is_ignored(client):
    headers = _login(client)
    r = client.post("/admin/modules/Reporting/disable", headers=headers, json=["go-live"])
    assert r.status_code == 200
    assert r.json["changed"] is True

    events = client.get("/admin/modules/Reporting/audit").json["events"]
    assert events[0]["reason"] is None


def test_login_with_non_object_json_is_rejected_cleanly(client):
    from app.ehs.auth import throttle

    r = client.post("/auth/login", json="admin@example.com")
    assert r.status_code == 401
    throttle.reset("127.0.0.1")


def test_module_settings_round_trip(client):
    headers = _login(client)
    r = client.get("/admin/modules/Reporting/settings")
    assert r.status_code == 200
    assert r.json == {"module": "Reporting", "settings": None}

    r = client.put(
        "/admin/modules/Reporting/settings",
        headers=headers,
        json={"settings": {"retention_days": 90}, "reason": "records policy"},
    )
    assert r.status_code == 200
    assert r.json["changed"] is True

    assert client.get("/admin/modules/Reporting/settings").json["settings"] == {"retention_days": 90}
    assert client.get("/admin/modules/Reporting").json["settings"] == {"retention_days": 90}

    events = client.get("/admin/modules/Reporting/audit").json["events"]
    assert events[0]["action"] == "module.settings_updated"
    assert events[0]["reason"] == "records policy"
    assert events[0]["metadata"] == {"new": {"retention_days": 90}, "old": None}


def test_module_settings_validation(client):
    headers = _login(client)
    r = client.put("/admin/modules/Reporting/settings", headers=headers, json={"settings": [1, 2]})
    assert r.status_code == 400
    assert r.json["error"] == "InvalidSettings"

    r = client.put("/admin/modules/Reporting/settings", headers=headers, json=[{"settings": {}}])
    assert r.status_code == 400

    r = client.put("/admin/modules/NoSuchModule/settings", headers=headers, json={"settings": {}})
    assert r.status_code == 404


def test_viewer_cannot_change_settings(client):
    headers = _login(client, "viewer@example.com")
    assert client.get("/admin/modules/Reporting/settings").status_code == 200
    r = client.put("/admin/modules/Reporting/settings", headers=headers, json={"settings": {"a": 1}})
    assert r.status_code == 403


def test_hierarchy_endpoint(client):
    _login(client)
    r = client.get("/admin/modules/hierarchy")
    assert r.status_code == 200
    nodes = {n["type"]: n for n in r.json["modules"]}
    assert "PhysicalSecurity" not in nodes
    security = nodes["SecurityIncidentManagement"]
    assert [c["type"] for c in security["children"]] == ["PhysicalSecurity", "InformationSecurity", "PersonnelSecurity"]

    detail = client.get("/admin/modules/SecurityIncidentManagement").json
    assert detail["children"] == ["PhysicalSecurity", "InformationSecurity", "PersonnelSecurity"]
    assert client.get("/admin/modules/PhysicalSecurity").json["parent"] == "SecurityIncidentManagement"
