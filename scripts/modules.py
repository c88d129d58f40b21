#!/usr/bin/env python3
"""Inspect or switch platform modules from the command line.

Goes through the same enablement engine as the admin API, so dependency
rules and the audit trail apply.

Usage:
  python scripts/modules.py list
  python scripts/modules.py enable SecurityIncidentManagement --reason "go-live"
  python scripts/modules.py disable Reporting --actor ops@example.com
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.ehs.modules.module_registry.catalog import build_catalog, module_key
from app.ehs.modules.module_registry.definitions import PLATFORM_MODULES
from app.ehs.modules.module_registry.engine import EnablementEngine
from scripts._db_utils import create_script_engine, script_db_url, script_state_store


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser()
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("list", help="List modules and their state")
    for name in ("enable", "disable"):
        p = sub.add_parser(name, help=f"{name.capitalize()} a module")
        p.add_argument("module", help="Module type, e.g. IncidentManagement")
        p.add_argument("--actor", default="cli", help="Recorded as the actor in the audit trail")
        p.add_argument("--reason", default=None)
    args = parser.parse_args(argv)

    engine = create_script_engine(script_db_url())
    try:
        registry = EnablementEngine(build_catalog(PLATFORM_MODULES), script_state_store(engine))
        if args.command == "list":
            for m in registry.list_modules():
                flag = "on " if m.enabled else "off"
                pinned = " (core)" if not m.can_be_disabled else ""
                print(f"[{flag}] {module_key(m.type)}{pinned}")
            for w in registry.configuration_warnings():
                print(f"WARNING {w['warning_type']}: {w['message']}")
            return 0

        transition = registry.enable if args.command == "enable" else registry.disable
        result = transition(args.module, args.actor, reason=args.reason)
        if not result.ok:
            print(f"{result.error.value}: {result.message}")
            return 1
        print(f"{args.module}: {'changed' if result.changed else 'already ' + args.command + 'd'}")
        return 0
    finally:
        engine.dispose()


if __name__ == "__main__":
    sys.exit(main())
