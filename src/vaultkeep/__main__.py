# vaultkeep - Command Line Entry Point
#
#   vaultkeep serve [--host HOST] [--port PORT]   run the HTTP server
#   vaultkeep reindex EMAIL                       rebuild one account's vault index

import argparse
import asyncio
import logging
import sys

from . import __version__
from .core import EventSeverity, EventType, Settings, configure_audit_logger


def _serve(settings: Settings, args: argparse.Namespace) -> int:
    import uvicorn

    from .api import build_services, create_app

    app = create_app(build_services(settings))
    print(f"vaultkeep {__version__} listening on {args.host}:{args.port} (storage={settings.storage})")
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level)
    return 0


async def _reindex(settings: Settings, email: str) -> int:
    from .api import build_services

    services = build_services(settings)
    account = await services.accounts.get(email)
    if account is None:
        print(f"No account for {email}", file=sys.stderr)
        return 1
    index = await services.vault.reconcile_index(account.id)
    print(f"Rebuilt index for {account.email}: {len(index.cipher_ids)} ciphers, {len(index.folder_ids)} folders")
    return 0


def main(argv=None) -> int:
    """Main entry point for vaultkeep."""
    parser = argparse.ArgumentParser(
        prog="vaultkeep",
        description="vaultkeep - self-hosted password vault sync server",
    )
    parser.add_argument("--version", action="version", version=f"vaultkeep {__version__}")
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the API server")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")
    serve.add_argument("--log-level", default="info", help="uvicorn log level (default: info)")

    reindex = sub.add_parser("reindex", help="Rebuild an account's vault index from stored objects")
    reindex.add_argument("email", help="Account email")

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 2

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    settings = Settings.from_env()
    audit = configure_audit_logger(settings.log_dir)
    audit.log_event(
        event_type=EventType.SYSTEM_START,
        severity=EventSeverity.INFO,
        message="vaultkeep starting",
        details={"version": __version__, "command": args.command, "storage": settings.storage},
    )

    if args.command == "serve":
        return _serve(settings, args)
    return asyncio.run(_reindex(settings, args.email))


if __name__ == "__main__":
    sys.exit(main())
