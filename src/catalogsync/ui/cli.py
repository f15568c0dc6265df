from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from signal import SIGINT, signal
from typing import TYPE_CHECKING, TypeVar

from dotenv import load_dotenv

from catalogsync.app import (
    build_application,
    initialise_database,
    resync_by_key,
    resync_entity,
    resync_platform,
    retry_failed,
)
from catalogsync.config import configure_logging
from catalogsync.domain.model import EntityKind

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence
    from types import FrameType

    from catalogsync.app import CatalogApplication
    from catalogsync.domain.reconciliation import ReconciliationReport

log = logging.getLogger(__name__)

T = TypeVar("T")


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile the catalog with external platforms")
    parser.add_argument(
        "--database-uri",
        type=str,
        help="SQLAlchemy URI of the catalog store (defaults to DATABASE_URI or the data dir)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    resync = subparsers.add_parser("resync", help="Re-run synchronization for one entity")
    resync.add_argument(
        "--kind",
        type=EntityKind,
        choices=list(EntityKind),
        default=EntityKind.PRODUCT,
        help="Entity kind the key belongs to (default: product)",
    )
    target = resync.add_mutually_exclusive_group(required=True)
    target.add_argument("--key", type=str, help="Natural key: ISBN/SKU, email, code or name")
    target.add_argument("--document-id", type=str, help="Document id of the entity")

    platform = subparsers.add_parser(
        "resync-platform",
        help="Push every published entity routed to one platform again",
    )
    platform.add_argument("platform", type=str, help="Platform name, e.g. woo_moraleja")

    subparsers.add_parser("retry-failed", help="Retry entities whose last sync attempt failed")
    subparsers.add_parser("init-db", help="Create the catalog tables")

    serve = subparsers.add_parser("serve", help="Run the webhook server")
    serve.add_argument("--host", type=str, default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    return parser.parse_args(list(argv))


async def _run_with_application(
    action: Callable[[CatalogApplication], Awaitable[T]],
    *,
    database_uri: str | None,
) -> T:
    application = build_application(database_uri=database_uri)
    try:
        return await action(application)
    finally:
        await application.aclose()


def _log_reports(reports: Sequence[ReconciliationReport]) -> None:
    for report in reports:
        log.info(
            "%s %s: synced=%s failed=%s (%s)",
            report.change,
            report.document_id,
            report.succeeded,
            report.failed,
            report.decision.reason,
        )


def _serve(host: str, port: int) -> None:
    import uvicorn  # noqa: PLC0415

    from catalogsync.ui.webhooks import create_app  # noqa: PLC0415

    uvicorn.run(create_app(), host=host, port=port, log_config=None)


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    configure_logging()
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    database_uri: str | None = parsed_args.database_uri

    try:
        if parsed_args.command == "init-db":
            initialise_database(database_uri)
            log.info("Catalog tables ready")
        elif parsed_args.command == "resync":
            kind: EntityKind = parsed_args.kind
            natural_key: str | None = parsed_args.key
            document_id: str | None = parsed_args.document_id

            async def _resync(application: CatalogApplication) -> ReconciliationReport | None:
                if natural_key is not None:
                    return await resync_by_key(application, kind, natural_key)
                return await resync_entity(application, str(document_id))

            report = asyncio.run(_run_with_application(_resync, database_uri=database_uri))
            if report is None:
                label = natural_key or document_id
                raise RuntimeError(f"Resync of {label} did not complete")  # noqa: TRY301
            _log_reports([report])
        elif parsed_args.command == "resync-platform":
            target: str = parsed_args.platform

            async def _resync_platform(
                application: CatalogApplication,
            ) -> list[ReconciliationReport]:
                return await resync_platform(application, target)

            reports = asyncio.run(
                _run_with_application(_resync_platform, database_uri=database_uri)
            )
            _log_reports(reports)
        elif parsed_args.command == "retry-failed":
            reports = asyncio.run(_run_with_application(retry_failed, database_uri=database_uri))
            _log_reports(reports)
        elif parsed_args.command == "serve":
            if database_uri is not None:
                initialise_database(database_uri)
            _serve(parsed_args.host, parsed_args.port)
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301

    except Exception:
        log.exception("Fatal error during %s", parsed_args.command)
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


if __name__ == "__main__":
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()
