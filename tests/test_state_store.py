import json
from datetime import datetime
from enum import Enum

import pytest
from sqlalchemy import select

from app.ehs.db import make_engine, make_sessionmaker
from app.ehs.models import AuditEvent, Base
from app.ehs.modules.module_registry.catalog import ModuleDescriptor, build_catalog
from app.ehs.modules.module_registry.definitions import PLATFORM_MODULES, ModuleType
from app.ehs.modules.module_registry.engine import EnablementEngine
from app.ehs.modules.module_registry.errors import ErrorKind, PersistenceError
from app.ehs.modules.module_registry.models import ModuleStateRow
from app.ehs.modules.module_registry.state import ModuleState, SqlStateStore


@pytest.fixture()
def sessionmaker_(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path/'state.db'}", lock_timeout=5.0)
    Base.metadata.create_all(bind=engine)
    yield make_sessionmaker(engine)
    engine.dispose()


def test_seed_inserts_only_missing_rows(sessionmaker_):
    store = SqlStateStore(sessionmaker_)
    store.seed([ModuleState(type="Reporting", enabled=False)])
    store.seed([ModuleState(type="Reporting", enabled=True), ModuleState(type="Dashboard", enabled=True)])
    rows = store.load()
    assert rows["Reporting"].enabled is False
    assert rows["Dashboard"].enabled is True


def test_write_persists_row_and_audit_event(sessionmaker_):
    store = SqlStateStore(sessionmaker_, write_timeout=5.0)
    when = datetime(2026, 3, 1, 12, 0, 0)
    prev = ModuleState(type="Reporting", enabled=True)
    store.write(
        ModuleState(type="Reporting", enabled=False, last_changed_at=when, last_changed_by="admin@example.com"),
        previous=prev,
        reason="not licensed",
    )

    st = store.load()["Reporting"]
    assert st.enabled is False
    assert st.last_changed_at == when
    assert st.last_changed_by == "admin@example.com"

    s = sessionmaker_()
    try:
        ev = s.execute(select(AuditEvent)).scalars().one()
        assert ev.action == "module.disable"
        assert ev.entity_type == "Module"
        assert ev.entity_id == "Reporting"
        assert ev.reason == "not licensed"
        assert ev.actor_user_email == "admin@example.com"
        assert json.loads(ev.metadata_json) == {"new": False, "old": True}
    finally:
        s.close()


def test_load_fails_as_persistence_error_without_tables(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path/'empty.db'}")
    try:
        store = SqlStateStore(make_sessionmaker(engine))
        with pytest.raises(PersistenceError):
            store.load()
    finally:
        engine.dispose()


def test_engine_round_trip_through_database(sessionmaker_):
    catalog = build_catalog(PLATFORM_MODULES)
    engine = EnablementEngine(catalog, SqlStateStore(sessionmaker_))

    s = sessionmaker_()
    try:
        assert s.query(ModuleStateRow).count() == len(catalog)
    finally:
        s.close()

    r = engine.disable(ModuleType.REPORTING, "ops@example.com")
    assert r.ok and r.changed

    # A fresh engine (e.g. another worker) sees the committed state.
    other = EnablementEngine(catalog, SqlStateStore(sessionmaker_))
    assert other.is_enabled(ModuleType.REPORTING) is False
    assert other.get_state("Reporting").last_changed_by == "ops@example.com"


def test_write_failure_surfaces_as_persistence_result(tmp_path):
    db = make_engine(f"sqlite:///{tmp_path/'gone.db'}")
    Base.metadata.create_all(bind=db)
    store = SqlStateStore(make_sessionmaker(db))
    engine = EnablementEngine(build_catalog(PLATFORM_MODULES), store)

    ModuleStateRow.__table__.drop(bind=db)
    r = engine.disable(ModuleType.REPORTING, None)
    assert r.error == ErrorKind.PERSISTENCE_ERROR
    assert engine.is_enabled(ModuleType.REPORTING) is True
    db.dispose()


class Shared(str, Enum):
    C = "C"
    D = "D"


def _shared_catalog():
    return build_catalog(
        [
            ModuleDescriptor(type=Shared.C, display_name="C"),
            ModuleDescriptor(type=Shared.D, display_name="D", is_enabled_by_default=False, required_dependencies=(Shared.C,)),
        ]
    )


@pytest.fixture()
def two_workers(tmp_path):
    # Two engines on one database, each with its own connection pool (like two gunicorn workers).
    url = f"sqlite:///{tmp_path/'shared.db'}"
    db1 = make_engine(url, lock_timeout=5.0)
    db2 = make_engine(url, lock_timeout=5.0)
    Base.metadata.create_all(bind=db1)
    catalog = _shared_catalog()
    w1 = EnablementEngine(catalog, SqlStateStore(make_sessionmaker(db1)))
    w2 = EnablementEngine(catalog, SqlStateStore(make_sessionmaker(db2)))
    yield w1, w2, db1
    db1.dispose()
    db2.dispose()


def test_disable_checks_dependents_committed_by_another_worker(two_workers):
    w1, w2, db = two_workers
    assert w1.enable(Shared.D, "a@example.com").ok

    # w2 still caches D as disabled; the check must see the committed row.
    r = w2.disable(Shared.C, "b@example.com")
    assert r.error == ErrorKind.DEPENDENTS_STILL_ENABLED
    assert list(r.blocking) == [Shared.D]
    assert w2.is_enabled(Shared.D) is True

    fresh = EnablementEngine(_shared_catalog(), SqlStateStore(make_sessionmaker(db)))
    assert fresh.is_enabled(Shared.C) and fresh.is_enabled(Shared.D)


def test_enable_checks_dependencies_committed_by_another_worker(two_workers):
    w1, w2, db = two_workers
    assert w2.disable(Shared.C, "b@example.com").ok

    r = w1.enable(Shared.D, "a@example.com")
    assert r.error == ErrorKind.MISSING_DEPENDENCY
    assert list(r.blocking) == [Shared.C]
    assert w1.is_enabled(Shared.C) is False

    fresh = EnablementEngine(_shared_catalog(), SqlStateStore(make_sessionmaker(db)))
    assert not fresh.is_enabled(Shared.D)


def test_settings_update_is_stored_and_audited(sessionmaker_):
    engine = EnablementEngine(build_catalog(PLATFORM_MODULES), SqlStateStore(sessionmaker_))
    r = engine.update_settings("Reporting", {"retention_days": 90}, "admin@example.com", reason="policy")
    assert r.ok and r.changed

    other = EnablementEngine(build_catalog(PLATFORM_MODULES), SqlStateStore(sessionmaker_))
    assert other.get_settings("Reporting") == {"retention_days": 90}
    assert other.is_enabled("Reporting") is True

    s = sessionmaker_()
    try:
        ev = s.execute(select(AuditEvent).where(AuditEvent.action == "module.settings_updated")).scalars().one()
        assert ev.entity_id == "Reporting"
        assert ev.reason == "policy"
        assert json.loads(ev.metadata_json) == {"new": {"retention_days": 90}, "old": None}
    finally:
        s.close()


def test_enable_keeps_saved_settings(sessionmaker_):
    engine = EnablementEngine(build_catalog(PLATFORM_MODULES), SqlStateStore(sessionmaker_))
    engine.update_settings(ModuleType.REPORTING, {"format": "pdf"}, None)
    assert engine.disable(ModuleType.REPORTING, None).ok
    assert engine.enable(ModuleType.REPORTING, None).ok
    assert SqlStateStore(sessionmaker_).load()["Reporting"].settings == {"format": "pdf"}
