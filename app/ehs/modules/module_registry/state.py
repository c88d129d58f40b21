from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.ehs.audit import record_event
from app.ehs.modules.module_registry.errors import PersistenceError
from app.ehs.modules.module_registry.models import ModuleStateRow

logger = logging.getLogger(__name__)

ACTION_ENABLE = "module.enable"
ACTION_DISABLE = "module.disable"
ACTION_SETTINGS = "module.settings_updated"


@dataclass(frozen=True)
class ModuleState:
    type: str  # module key (enum value)
    enabled: bool
    last_changed_at: datetime | None = None
    last_changed_by: str | None = None
    settings: Mapping[str, Any] | None = None


# Called inside the store transaction with every persisted row; returns the
# state to write, or None to write nothing.
Decide = Callable[[dict[str, ModuleState]], "ModuleState | None"]


def _default_action(state: ModuleState) -> str:
    return ACTION_ENABLE if state.enabled else ACTION_DISABLE


def _audit_metadata(action: str, previous: ModuleState | None, state: ModuleState) -> dict[str, Any]:
    if action == ACTION_SETTINGS:
        old = dict(previous.settings) if previous and previous.settings is not None else None
        return {"old": old, "new": dict(state.settings) if state.settings is not None else None}
    return {"old": previous.enabled if previous else None, "new": state.enabled}


class StateStore(Protocol):
    def load(self) -> dict[str, ModuleState]:
        """All persisted rows keyed by module key, including orphans."""
        ...

    def seed(self, states: Iterable[ModuleState]) -> None:
        """Insert rows that do not exist yet; existing rows are left untouched."""
        ...

    def write(
        self,
        state: ModuleState,
        *,
        previous: ModuleState | None = None,
        reason: str | None = None,
        action: str | None = None,
    ) -> None:
        """Durably store one change. Raises PersistenceError on failure."""
        ...

    def transition(
        self, decide: Decide, *, action: str | None = None, reason: str | None = None
    ) -> tuple[dict[str, ModuleState], ModuleState | None]:
        """
        Read every row, let `decide` pick the new state and write it, all while
        holding the store's write lock. Returns (rows as committed, written state).
        """
        ...


class InMemoryStateStore:
    """Process-local store for tests and scripts."""

    def __init__(self, initial: Iterable[ModuleState] = ()):
        self._rows: dict[str, ModuleState] = {st.type: st for st in initial}
        self._lock = threading.RLock()
        self.writes: list[tuple[ModuleState, ModuleState | None, str | None]] = []

    def load(self) -> dict[str, ModuleState]:
        with self._lock:
            return dict(self._rows)

    def seed(self, states: Iterable[ModuleState]) -> None:
        with self._lock:
            for st in states:
                self._rows.setdefault(st.type, st)

    def write(self, state, *, previous=None, reason=None, action=None) -> None:
        with self._lock:
            self._rows[state.type] = state
            self.writes.append((state, previous, reason))

    def transition(self, decide, *, action=None, reason=None):
        with self._lock:
            rows = dict(self._rows)
            new = decide(rows)
            if new is not None:
                self.write(new, previous=rows.get(new.type), reason=reason, action=action)
                rows[new.type] = new
            return rows, new


def _to_state(r: ModuleStateRow) -> ModuleState:
    return ModuleState(
        type=r.module_type,
        enabled=bool(r.enabled),
        last_changed_at=r.last_changed_at,
        last_changed_by=r.last_changed_by,
        settings=json.loads(r.settings_json) if r.settings_json else None,
    )


class SqlStateStore:
    """
    `module_states` table via SQLAlchemy.

    Each write is one transaction: the state row plus an append-only audit
    event. `transition` takes the database write lock before reading, so
    several processes (gunicorn workers, the CLI) validate against committed
    rows one at a time. `write_timeout` (seconds) bounds the transaction; on
    Postgres it is also pushed down as a statement timeout.
    """

    def __init__(self, session_factory: sessionmaker, *, write_timeout: float | None = None):
        self._session_factory = session_factory
        self._write_timeout = write_timeout

    def load(self) -> dict[str, ModuleState]:
        s: Session = self._session_factory()
        try:
            rows = s.execute(select(ModuleStateRow)).scalars().all()
            return {r.module_type: _to_state(r) for r in rows}
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not load module states: {e}") from e
        finally:
            s.close()

    def seed(self, states: Iterable[ModuleState]) -> None:
        s: Session = self._session_factory()
        try:
            existing = set(s.execute(select(ModuleStateRow.module_type)).scalars().all())
            added = []
            for st in states:
                if st.type in existing:
                    continue
                s.add(
                    ModuleStateRow(
                        module_type=st.type,
                        enabled=st.enabled,
                        last_changed_at=st.last_changed_at,
                        last_changed_by=st.last_changed_by,
                    )
                )
                added.append(st.type)
            s.commit()
            if added:
                logger.info("Seeded module states: %s", ", ".join(added))
        except SQLAlchemyError as e:
            s.rollback()
            raise PersistenceError(f"Could not seed module states: {e}") from e
        finally:
            s.close()

    def write(self, state, *, previous=None, reason=None, action=None) -> None:
        started = time.monotonic()
        s: Session = self._session_factory()
        try:
            self._begin(s)
            self._store(s, state, previous=previous, reason=reason, action=action or _default_action(state))
            self._finish(s, started, state.type)
        except PersistenceError:
            s.rollback()
            raise
        except SQLAlchemyError as e:
            s.rollback()
            raise PersistenceError(f"Could not write module state for {state.type}: {e}") from e
        finally:
            s.close()

    def transition(self, decide, *, action=None, reason=None):
        started = time.monotonic()
        s: Session = self._session_factory()
        target = "module state"
        try:
            self._begin(s)
            rows = s.execute(select(ModuleStateRow).with_for_update()).scalars().all()
            persisted = {r.module_type: _to_state(r) for r in rows}

            new = decide(persisted)
            if new is None:
                s.rollback()
                return persisted, None

            target = new.type
            previous = persisted.get(new.type)
            self._store(s, new, previous=previous, reason=reason, action=action or _default_action(new))
            self._finish(s, started, new.type)
            persisted[new.type] = new
            return persisted, new
        except PersistenceError:
            s.rollback()
            raise
        except SQLAlchemyError as e:
            s.rollback()
            raise PersistenceError(f"Could not write {target}: {e}") from e
        finally:
            s.close()

    def _begin(self, s: Session) -> None:
        dialect = s.get_bind().dialect.name
        if dialect == "postgresql" and self._write_timeout:
            s.execute(text(f"SET LOCAL statement_timeout = {int(self._write_timeout * 1000)}"))
        elif dialect == "sqlite":
            # SQLite has no FOR UPDATE: the first write statement takes the
            # database-wide RESERVED lock, held until commit/rollback.
            s.execute(
                update(ModuleStateRow)
                .where(ModuleStateRow.module_type.is_(None))
                .values(enabled=ModuleStateRow.enabled)
                .execution_options(synchronize_session=False)
            )

    def _store(self, s: Session, state: ModuleState, *, previous, reason, action: str) -> None:
        row = s.get(ModuleStateRow, state.type)
        if row is None:
            row = ModuleStateRow(module_type=state.type, enabled=state.enabled)
            s.add(row)
        row.enabled = state.enabled
        row.last_changed_at = state.last_changed_at
        row.last_changed_by = state.last_changed_by
        row.settings_json = json.dumps(dict(state.settings), sort_keys=True) if state.settings is not None else None

        record_event(
            s,
            actor=state.last_changed_by,
            action=action,
            entity_type="Module",
            entity_id=state.type,
            reason=reason,
            metadata=_audit_metadata(action, previous, state),
        )

    def _finish(self, s: Session, started: float, module: str) -> None:
        s.flush()
        elapsed = time.monotonic() - started
        if self._write_timeout and elapsed > self._write_timeout:
            raise PersistenceError(
                f"Module state write for {module} timed out ({elapsed:.2f}s > {self._write_timeout}s)"
            )
        s.commit()
