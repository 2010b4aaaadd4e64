#!/usr/bin/env python3
"""
Command-line tool for the LabsMarket storage backend.

Usage:
    # Probe credentials, bucket and write access
    labsmarket test-connection --provider oort

    # Upload a file and credit a contributor
    labsmarket upload ./data.csv --provider aws --user-id user-123

    # Drop saved credentials and go back to the environment defaults
    labsmarket reset-credentials --provider aws --yes

    # Allow browser uploads straight to the bucket
    labsmarket configure-cors --provider aws --origin https://labsmarket.example

    # Run the HTTP API
    labsmarket serve --port 8000

Credentials and defaults come from the same environment variables as the
API (AWS_*, OORT_*, KV_BACKEND, DATABASE_URL).
"""
import argparse
import asyncio
import sys
from typing import List, Optional

import uvicorn
from botocore.exceptions import BotoCoreError, ClientError

from labsmarket.config import settings
from labsmarket.models.upload import StorageProvider
from labsmarket.services.upload_service import UploadService, create_upload_service
from labsmarket.storage.errors import ConfigurationError
from labsmarket.storage.progress import ProgressState, UploadProgress
from labsmarket.storage.validation import FilePayload
from labsmarket.utils.logging import configure_logging


def _print_header(title: str) -> None:
    print("=" * 50)
    print(title)
    print("=" * 50)


def _provider(value: str) -> StorageProvider:
    try:
        return StorageProvider.parse(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


async def cmd_test_connection(service: UploadService, args) -> int:
    provider = args.provider
    credentials = service.get_credentials(provider)

    _print_header(f"{provider.value} CONNECTIVITY TEST")
    print(f"Access key: {credentials.masked_access_key or '(not set)'}")
    print(f"Bucket: {credentials.bucket or '(not specified)'}")
    if credentials.endpoint:
        print(f"Endpoint: {credentials.endpoint}")
    print()

    result = await service.test_connection(provider)
    details = result.details

    print(f"Credentials valid: {details.credentials_valid}")
    print(f"Bucket accessible: {details.bucket_accessible}")
    print(f"Write permission:  {details.write_permission}")
    if details.cors_enabled is not None:
        print(f"CORS configured:   {details.cors_enabled}")
    if details.public_read is not None:
        print(f"Public read:       {details.public_read}")
    if details.available_buckets:
        print(f"Available buckets: {', '.join(details.available_buckets)}")
    print()

    print(f"{'✅' if result.success else '❌'} {result.message}")
    return 0 if result.success else 1


async def cmd_upload(service: UploadService, args) -> int:
    provider = args.provider
    try:
        file = FilePayload.from_path(args.file, content_type=args.content_type)
    except OSError as e:
        print(f"ERROR: Cannot read {args.file}: {e}")
        return 1

    if args.simulated:
        service.set_real(provider, False)

    def on_progress(percent: int, state: ProgressState) -> None:
        print(f"  {state.value:<12} {percent:>3}%")

    _print_header(f"UPLOAD TO {provider.value}")
    print(f"File: {file.name} ({file.size} bytes, {file.content_type or 'unknown type'})")
    print(f"Mode: {'real' if service.is_real(provider) else 'simulated'}")
    print()

    outcome = await service.upload_file(
        file,
        provider,
        user_id=args.user_id,
        path=args.path,
        progress=UploadProgress(on_progress),
    )

    print()
    if outcome.success:
        print(f"✅ Uploaded: {outcome.url}")
        if outcome.points is not None:
            print(f"   Points awarded: {outcome.points}")
        if outcome.stage.value == "tracking":
            print("   WARNING: upload succeeded but could not be recorded")
        return 0

    print(f"❌ Upload failed ({outcome.stage.value}): {outcome.error}")
    for attempt in outcome.attempts:
        print(f"   - {attempt}")
    return 1


async def cmd_reset_credentials(service: UploadService, args) -> int:
    provider = args.provider
    if not service.is_using_custom_credentials(provider):
        print(f"{provider.value} is already using the default credentials.")
        return 0

    if not args.yes:
        confirm = input(f"Reset saved {provider.value} credentials to defaults? (y/N): ")
        if confirm.strip().lower() != "y":
            print("Aborted.")
            return 1

    credentials = service.reset_credentials(provider)
    print(f"✅ {provider.value} credentials reset. Bucket: {credentials.bucket}")
    return 0


async def cmd_configure_cors(service: UploadService, args) -> int:
    provider = args.provider
    origins = args.origin or ["*"]
    print(f"Configuring CORS for {provider.value} (origins: {', '.join(origins)})...")

    try:
        message = await service.configure_cors(provider, origins)
    except ConfigurationError as e:
        print(f"ERROR: {e}")
        return 1
    except (BotoCoreError, ClientError) as e:
        print(f"ERROR configuring CORS: {e}")
        return 1

    print(f"✅ {message}")
    return 0


def serve(args) -> int:
    uvicorn.run(
        "labsmarket.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )
    return 0


COMMANDS = {
    "test-connection": cmd_test_connection,
    "upload": cmd_upload,
    "reset-credentials": cmd_reset_credentials,
    "configure-cors": cmd_configure_cors,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="labsmarket", description="LabsMarket storage tools")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show JSON logs at INFO level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_command(name: str, help_text: str) -> argparse.ArgumentParser:
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--provider", "-p", type=_provider, default=StorageProvider.OORT,
                         help="Storage provider: aws or oort (default: oort)")
        return sub

    add_command("test-connection", "Check credentials, bucket access and write permission")

    upload = add_command("upload", "Upload a file")
    upload.add_argument("file", help="Path of the file to upload")
    upload.add_argument("--user-id", help="Contributor to credit with points")
    upload.add_argument("--path", help="Key prefix (defaults to the provider upload path)")
    upload.add_argument("--content-type", help="MIME type (guessed from the extension by default)")
    upload.add_argument("--simulated", action="store_true", help="Switch the provider to simulated mode first")

    reset = add_command("reset-credentials", "Drop saved credentials and use the defaults")
    reset.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompt")

    cors = add_command("configure-cors", "Apply the direct-upload CORS rules to the bucket")
    cors.add_argument("--origin", action="append", help="Allowed origin (repeatable, default: *)")

    server = subparsers.add_parser("serve", help="Run the HTTP API with uvicorn")
    server.add_argument("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
    server.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")
    server.add_argument("--reload", action="store_true", help="Reload on code changes")

    return parser


def main(argv: Optional[List[str]] = None, service: Optional[UploadService] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging('labsmarket-cli', settings.log_level if args.verbose else "WARNING")
    if args.command == "serve":
        return serve(args)

    service = service or create_upload_service()
    return asyncio.run(COMMANDS[args.command](service, args))


if __name__ == "__main__":
    sys.exit(main())
