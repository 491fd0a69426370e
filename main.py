"""
parcelops Entry Point.

Bootstraps the dependency graph via constructor injection, initialises the
local cache schema, and runs one command-line operation.  Every subsystem
is wired here; no module-level globals.

Usage::

    parcelops sync                 # pull, then push the local snapshot
    parcelops track SM-2025-4821   # public tracking lookup
    parcelops dashboard --email malabo@sm-global.com --password 123
    parcelops worker               # periodic push until Ctrl-C
"""

from __future__ import annotations

import argparse
import atexit
import json
import sys
import threading
from typing import Optional, Sequence

from parcelops.auth import SessionManager
from parcelops.config import AppConfig, get_config
from parcelops.database import DatabaseManager
from parcelops.logger import StructuredLogger, get_logger
from parcelops.schema import initialize_local_schema
from parcelops.services import ServiceContainer, create_record_store, create_services
from parcelops.storage.local_cache import LocalCache


def bootstrap(config: AppConfig) -> tuple[DatabaseManager, SessionManager, ServiceContainer]:
    """Wire configuration, storage and services."""
    db = DatabaseManager(
        sqlite_path=config.local_cache_path,
        logger=StructuredLogger(name="database"),
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
    )
    # DatabaseManager.close() is idempotent; this is the net for unclean exits.
    atexit.register(db.close)

    initialize_local_schema(db.sqlite, StructuredLogger(name="schema"))

    session = SessionManager(LocalCache(db=db, logger=get_logger("session")))
    record_store = create_record_store(db, config, get_logger("record_store"))
    services = create_services(
        db=db,
        config=config,
        session=session,
        record_store=record_store,
    )
    return db, session, services


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="parcelops", description=__doc__.split("\n")[1])
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("pull", help="Refresh the local cache from the record store.")
    sub.add_parser("push", help="Send the local snapshot to the record store.")
    sub.add_parser("sync", help="Pull, then push.")
    sub.add_parser("worker", help="Run the periodic push worker until interrupted.")

    track = sub.add_parser("track", help="Look up a parcel by tracking code.")
    track.add_argument("code")

    dashboard = sub.add_parser("dashboard", help="Print dashboard figures for a user.")
    dashboard.add_argument("--email", required=True)
    dashboard.add_argument("--password", required=True)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run one command and return the process exit code."""
    args = _build_parser().parse_args(argv)
    logger = get_logger("main")
    config = get_config()
    db, _session, services = bootstrap(config)
    reconciler = services["sync_reconciler"]

    try:
        if args.command == "pull":
            print(reconciler.pull())
        elif args.command == "push":
            print(reconciler.push())
        elif args.command == "sync":
            print(reconciler.pull())
            print(reconciler.push())
        elif args.command == "worker":
            reconciler.pull()
            reconciler.start()
            logger.info("Sync worker running; press Ctrl-C to stop.")
            try:
                threading.Event().wait()
            except KeyboardInterrupt:
                pass
            finally:
                reconciler.stop()
        elif args.command == "track":
            result = services["parcel_workflow_service"].track(args.code)
            if not result.success:
                print(result.error, file=sys.stderr)
                return 1
            print(json.dumps(result.data.to_wire(), ensure_ascii=False, indent=2))
        elif args.command == "dashboard":
            reconciler.pull()
            login = services["auth_service"].login(args.email, args.password)
            if not login.success:
                print(login.error, file=sys.stderr)
                return 1
            stats = services["report_service"].dashboard_stats(login.data)
            print(stats.model_dump_json(indent=2))
        return 0
    finally:
        db.close()
        logger.info("parcelops shut down.")


def run() -> None:
    """Console-script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    run()
