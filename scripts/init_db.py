import os
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.ehs.models import Permission, Role, User
from app.ehs.modules.module_registry.catalog import build_catalog
from app.ehs.modules.module_registry.definitions import PLATFORM_MODULES
from app.ehs.modules.module_registry.engine import EnablementEngine
from scripts._db_utils import create_script_engine, script_db_url, script_session, script_state_store

PERMISSIONS = (
    ("admin.view", "Admin: view shell"),
    ("modules.view", "Modules: view configuration"),
    ("modules.manage", "Modules: enable/disable"),
)


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed permissions/roles/admin user and module states in an idempotent way.
    Does NOT overwrite an existing admin user's password or existing module states.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@ehs.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = script_db_url(database_url)

    # Direct engine/session so this can run in release without importing app.wsgi.
    with script_session(db_url) as s:
        perms = []
        for key, name in PERMISSIONS:
            p = s.query(Permission).filter(Permission.key == key).one_or_none()
            if not p:
                p = Permission(key=key, name=name)
                s.add(p)
            perms.append(p)

        role_admin = s.query(Role).filter(Role.key == "admin").one_or_none()
        if not role_admin:
            role_admin = Role(key="admin", name="Administrator")
            s.add(role_admin)
        for p in perms:
            if p not in role_admin.permissions:
                role_admin.permissions.append(p)

        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(email=admin_email, password_hash=generate_password_hash(admin_password), is_active=True)
            s.add(user)
        if role_admin not in user.roles:
            user.roles.append(role_admin)

    # Module states: rows missing for catalog modules get their defaults.
    engine = create_script_engine(db_url)
    try:
        registry = EnablementEngine(build_catalog(PLATFORM_MODULES), script_state_store(engine))
        summary = registry.summary()
    finally:
        engine.dispose()

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")
    print(f"Modules: {summary['enabled_modules']} enabled of {summary['total_modules']}")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
