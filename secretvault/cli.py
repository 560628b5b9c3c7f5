"""
SecretVault CLI — entry point for all operations.

Usage:
    secretvault serve           # Start the API server
    secretvault migrate         # Show migration status
    secretvault migrate apply   # Apply pending migrations
    secretvault status          # Show configuration and storage health
    secretvault version         # Show version
"""

from __future__ import annotations

import argparse
import logging


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="secretvault",
        description="SecretVault — organization-scoped storage for personal credentials.",
    )
    parser.add_argument("--version", action="store_true", help="Show version and exit")

    subparsers = parser.add_subparsers(dest="command")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: config)")
    serve_parser.add_argument("--port", type=int, default=None, help="Port (default: config)")

    # migrate
    migrate_parser = subparsers.add_parser("migrate", help="Database migrations")
    migrate_parser.add_argument(
        "action", nargs="?", choices=["status", "apply"], default="status"
    )
    migrate_parser.add_argument("version", nargs="?", default=None, help="Apply only this version")
    migrate_parser.add_argument(
        "--dry-run", action="store_true", help="List what would be applied without executing"
    )

    # status
    subparsers.add_parser("status", help="Show configuration and storage health")

    # version
    subparsers.add_parser("version", help="Show version")

    args = parser.parse_args(argv)

    if args.version or args.command == "version":
        from secretvault import __version__

        print(f"secretvault {__version__}")
        return 0

    _configure_logging()

    if args.command == "serve":
        return _cmd_serve(args)
    elif args.command == "migrate":
        return _cmd_migrate(args)
    elif args.command == "status":
        return _cmd_status()
    else:
        parser.print_help()
        return 0


def _configure_logging() -> None:
    from secretvault.config import get_config

    logging.basicConfig(
        level=getattr(logging, get_config().log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from secretvault.config import get_config

    cfg = get_config()
    host = args.host or cfg.api_host
    port = args.port or cfg.api_port
    print(f"Starting SecretVault API on {host}:{port} (storage: {cfg.storage})...")
    uvicorn.run("secretvault.api.app:app", host=host, port=port)
    return 0


def _cmd_migrate(args: argparse.Namespace) -> int:
    from secretvault.db import migrate

    try:
        if args.action == "apply":
            applied = migrate.apply(version=args.version, dry_run=args.dry_run)
            verb = "Would apply" if args.dry_run else "Applied"
            print(f"{verb} {len(applied)} migration(s){': ' + ', '.join(applied) if applied else ''}")
            return 0

        rows = migrate.status()
    except Exception as e:
        print(f"Error: Migration failed: {e}")
        print("Check SECRETVAULT_DB_* environment variables and ensure PostgreSQL is running.")
        return 1

    if not rows:
        print("No migration files found.")
        return 0
    print(f"{'Version':<10} {'Filename':<40} {'Status':<10} {'Applied At'}")
    print("-" * 85)
    for r in rows:
        at = str(r["applied_at"])[:19] if r["applied_at"] else ""
        print(f"{r['version']:<10} {r['filename']:<40} {r['status']:<10} {at}")
    return 0


def _cmd_status() -> int:
    from secretvault import __version__
    from secretvault.api.app import build_repository
    from secretvault.config import get_config
    from secretvault.vault.errors import StorageError

    cfg = get_config()
    print(f"SecretVault v{__version__}")
    print()
    print(f"  API:         {cfg.api_url}")
    print(f"  Storage:     {cfg.storage}")
    if cfg.storage == "postgres":
        print(f"  PostgreSQL:  {cfg.db.host or 'unix-socket'}:{cfg.db.port}/{cfg.db.name}")
    print(
        f"  Rate limits: read {cfg.rate_limit.read_limit}, write {cfg.rate_limit.write_limit} "
        f"per {cfg.rate_limit.window_seconds:g}s"
    )

    try:
        health = build_repository(cfg).check_health()
    except StorageError as e:
        print(f"               UNREACHABLE — {e}")
        return 1
    print(f"               Connected — {health['activeSecrets']} active secrets")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
