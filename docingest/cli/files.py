# =============================================================================
# docingest/cli/files.py - CLI for uploading files and checking processing
# =============================================================================
#
# Supported subcommands:
#
#   upload   - Store a file, then drive its processing through the server
#              (retrying timeouts and network errors) and print the outcome
#   status   - Show a file's processing status and chunk count
#   profile  - Create or update a caller profile (API token + credentials)
#   serve    - Run the processing API server (uvicorn)
#
# Usage examples:
#   python -m docingest.cli profile --user alice --token s3cret
#   python -m docingest.cli serve
#   python -m docingest.cli upload --file report.pdf --user alice --provider local
#   python -m docingest.cli status 6f1c0d7e-...
# =============================================================================

"""Command-line interface for docingest."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

import httpx

from docingest.client.retry_driver import ProcessingRetryDriver
from docingest.client.uploader import FileUploadService
from docingest.config.settings import Settings
from docingest.models.files import Profile
from docingest.models.ingestion import ProcessingEvent
from docingest.providers.blob_store.local_blob_store import LocalBlobStore
from docingest.providers.record_store.sqlite_record_store import SQLiteRecordStore
from docingest.utils.errors import DocIngestError
from docingest.utils.logging import configure_logging


def _build_stores(app_settings: Settings) -> tuple[SQLiteRecordStore, LocalBlobStore]:
    record_store = SQLiteRecordStore(db_path=app_settings.record_store_path)
    blob_store = LocalBlobStore(
        root_dir=app_settings.blob_store_dir,
        signing_secret=app_settings.signed_url_secret,
        base_url="/api/blobs",
    )
    return record_store, blob_store


def _print_event(event: ProcessingEvent) -> None:
    print(f"  [{event.kind}] attempt {event.attempt}: {event.message}")


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_upload(args: argparse.Namespace, app_settings: Settings) -> int:
    """Upload a file and wait for its processing outcome."""
    path = Path(args.file)
    if not path.is_file():
        print(f"Error: file not found: {path}", file=sys.stderr)
        return 1

    record_store, blob_store = _build_stores(app_settings)
    await record_store.initialize()

    profile = await record_store.get_profile(args.user)
    api_token = args.token or (profile.api_token if profile else app_settings.api_token)

    # Attempt deadlines are enforced by the driver, not the HTTP client.
    async with httpx.AsyncClient(timeout=None) as http_client:
        driver = ProcessingRetryDriver.from_settings(
            http_client,
            app_settings.model_copy(update={"api_token": api_token}),
            notify=_print_event,
        )
        service = FileUploadService(record_store, blob_store, driver, app_settings)

        try:
            record = await service.upload(
                user_id=args.user,
                name=path.name,
                data=path.read_bytes(),
                embeddings_provider=args.provider,
            )
        except DocIngestError as exc:
            print(f"Upload failed: {exc.public_message}", file=sys.stderr)
            return 1

        handle = service.get_handle(record.id)
        print(f"Uploaded {record.name} ({record.size} bytes) as {record.id}")
        print(f"  Signed URL: {await service.get_file_url(record)}")

        outcome = await handle.wait() if handle else None

    if outcome is None:
        print("Processing was cancelled.")
        return 1
    if not outcome.success:
        print(f"\nProcessing failed ({outcome.failure_kind}): {outcome.message}")
        return 1

    print("\nProcessing complete:")
    if outcome.statistics:
        print(f"  Chunks:         {outcome.statistics.total_chunks}")
        print(f"  Total tokens:   {outcome.statistics.total_tokens}")
        print(f"  Batches:        {outcome.statistics.batches_processed}")
        print(f"  Skipped chunks: {outcome.statistics.skipped_chunks}")
        print(f"  Time:           {outcome.statistics.processing_time_ms} ms")
    print(f"  Attempts:       {outcome.attempts}")
    return 0


async def _handle_status(args: argparse.Namespace, app_settings: Settings) -> int:
    """Print a file's processing status."""
    record_store, _ = _build_stores(app_settings)
    await record_store.initialize()

    record = await record_store.get_file(args.file_id)
    if record is None:
        print(f"Error: file not found: {args.file_id}", file=sys.stderr)
        return 1

    print(f"File {record.id} ({record.name})")
    print(f"  Status:     {record.processing_status.value}")
    print(f"  Tokens:     {record.tokens}")
    print(f"  Chunks:     {await record_store.count_chunks(record.id)}")
    print(f"  Started:    {record.processing_started_at or '-'}")
    print(f"  Completed:  {record.processing_completed_at or '-'}")
    if record.processing_error:
        print(f"  Error:      {record.processing_error}")
    return 0


async def _handle_profile(args: argparse.Namespace, app_settings: Settings) -> int:
    """Create or update a caller profile."""
    record_store, _ = _build_stores(app_settings)
    await record_store.initialize()

    await record_store.create_profile(
        Profile(
            user_id=args.user,
            api_token=args.token,
            openai_api_key=args.openai_key,
            openai_organization_id=args.openai_org,
            use_azure_openai=args.azure,
            azure_openai_api_key=args.azure_key,
            azure_openai_endpoint=args.azure_endpoint,
            azure_openai_embeddings_id=args.azure_embeddings_id,
        )
    )
    print(f"Profile saved for {args.user}")
    return 0


def _handle_serve(app_settings: Settings) -> int:
    import uvicorn

    uvicorn.run(
        "docingest.main:app",
        host=app_settings.app_host,
        port=app_settings.app_port,
    )
    return 0


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the docingest CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m docingest.cli",
        description="Upload files for chunking and embedding, and track their processing.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # -- upload --
    upload_parser = subparsers.add_parser("upload", help="Upload and process a file")
    upload_parser.add_argument("--file", required=True, help="Path to the file")
    upload_parser.add_argument("--user", required=True, help="Owner user id")
    upload_parser.add_argument(
        "--provider",
        choices=("openai", "local"),
        default="local",
        help="Embeddings provider (default: local)",
    )
    upload_parser.add_argument("--token", default="", help="API token (default: from profile)")

    # -- status --
    status_parser = subparsers.add_parser("status", help="Show a file's processing status")
    status_parser.add_argument("file_id", help="File id")

    # -- profile --
    profile_parser = subparsers.add_parser("profile", help="Create or update a caller profile")
    profile_parser.add_argument("--user", required=True, help="User id")
    profile_parser.add_argument("--token", required=True, help="API bearer token")
    profile_parser.add_argument("--openai-key", dest="openai_key", default=None)
    profile_parser.add_argument("--openai-org", dest="openai_org", default=None)
    profile_parser.add_argument("--azure", action="store_true", help="Use Azure OpenAI")
    profile_parser.add_argument("--azure-key", dest="azure_key", default=None)
    profile_parser.add_argument("--azure-endpoint", dest="azure_endpoint", default=None)
    profile_parser.add_argument(
        "--azure-embeddings-id", dest="azure_embeddings_id", default=None
    )

    # -- serve --
    subparsers.add_parser("serve", help="Run the processing API server")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """Parse the subcommand and dispatch to its handler."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    app_settings = Settings()
    configure_logging(log_level=app_settings.log_level)

    if args.command == "serve":
        return _handle_serve(app_settings)
    if args.command == "upload":
        return asyncio.run(_handle_upload(args, app_settings))
    if args.command == "status":
        return asyncio.run(_handle_status(args, app_settings))
    if args.command == "profile":
        return asyncio.run(_handle_profile(args, app_settings))

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
