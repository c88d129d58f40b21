import pytest
from sqlalchemy import select

from app.ehs.db import make_engine, make_sessionmaker
from app.ehs.models import AuditEvent, Base
from scripts import modules as modules_cli
from scripts._db_utils import create_script_engine, script_state_store


@pytest.fixture()
def db_url(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path/'cli.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    engine = make_engine(url)
    Base.metadata.create_all(bind=engine)
    engine.dispose()
    return url


def test_script_store_uses_configured_write_timeout(db_url, monkeypatch):
    monkeypatch.setenv("MODULE_STATE_WRITE_TIMEOUT", "2.5")
    engine = create_script_engine(db_url)
    try:
        assert script_state_store(engine)._write_timeout == 2.5
    finally:
        engine.dispose()


def test_script_store_default_write_timeout(db_url, monkeypatch):
    monkeypatch.delenv("MODULE_STATE_WRITE_TIMEOUT", raising=False)
    engine = create_script_engine(db_url)
    try:
        assert script_state_store(engine)._write_timeout == 5.0
    finally:
        engine.dispose()


def test_cli_disable_is_audited(db_url, capsys):
    assert modules_cli.main(["disable", "Reporting", "--actor", "ops@example.com", "--reason", "cutover"]) == 0
    assert "Reporting: changed" in capsys.readouterr().out

    engine = make_engine(db_url)
    s = make_sessionmaker(engine)()
    try:
        ev = s.execute(select(AuditEvent)).scalars().one()
        assert ev.action == "module.disable"
        assert ev.actor_user_email == "ops@example.com"
        assert ev.reason == "cutover"
    finally:
        s.close()
        engine.dispose()


def test_cli_reports_blocked_transition(db_url, capsys):
    assert modules_cli.main(["disable", "Dashboard"]) == 1
    assert "ModuleLocked" in capsys.readouterr().out
