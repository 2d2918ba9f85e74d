"""CLI entry point for testflight-uploader."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import NoReturn, Optional

import click

from testflight_uploader import __version__
from testflight_uploader.utils.logging import configure_logging, get_logger
from testflight_uploader.utils.result import ExitCode

# Default paths
DEFAULT_CONFIG = "./config"


class Context:
    """CLI context for sharing state between commands."""

    def __init__(
        self,
        config_dir: Path,
        log_level: Optional[str],
        log_format: Optional[str],
        dry_run: bool,
    ) -> None:
        self.config_dir = config_dir
        self.log_level = log_level
        self.log_format = log_format
        self.dry_run = dry_run
        self.logger = get_logger("cli")

    def load_config(self):
        """
        Load and validate configuration, exiting on error.

        Logging is reconfigured from the config file unless it was set on
        the command line.
        """
        from testflight_uploader.config import load_config

        result = load_config(self.config_dir)
        if result.is_err():
            error = result.unwrap_err()
            self.logger.error("config_invalid", field=error.field, message=error.message)
            fail({"status": "error", "message": str(error)}, ExitCode.CONFIG_ERROR)

        config = result.unwrap()
        if self.log_level is None or self.log_format is None:
            configure_logging(
                level=self.log_level or config.logging.level,
                format_type=self.log_format or config.logging.format,
            )
        return config


pass_context = click.make_pass_decorator(Context)


def output_json(data: dict) -> None:
    """Output JSON to stdout."""
    click.echo(json.dumps(data, indent=2, default=str))


def fail(data: dict, code: int) -> NoReturn:
    """Output an error document and exit with the given code."""
    output_json(data)
    sys.exit(int(code))


def credential_options(func):
    """Shared App Store Connect credential options."""
    func = click.option(
        "--api-private-key-file",
        type=click.Path(exists=True, dir_okay=False, path_type=Path),
        default=None,
        help="Path to the AuthKey_<id>.p8 file",
    )(func)
    func = click.option(
        "--api-private-key",
        default=None,
        help="Contents of the .p8 key (default: $APP_STORE_CONNECT_API_PRIVATE_KEY)",
    )(func)
    func = click.option(
        "--api-key-id",
        default=None,
        help="API key id (default: $APP_STORE_CONNECT_API_KEY_ID)",
    )(func)
    func = click.option(
        "--issuer-id",
        default=None,
        help="API issuer id (default: $APP_STORE_CONNECT_ISSUER_ID)",
    )(func)
    return func


def artifact_options(func):
    """Shared build artifact options."""
    func = click.option(
        "--app-type",
        default="ios",
        help="App type: ios, macos, appletvos or visionos",
    )(func)
    func = click.option(
        "--app-path",
        type=click.Path(exists=False, path_type=Path),
        required=True,
        help="Path to the .ipa build artifact",
    )(func)
    return func


def metadata_options(func):
    """Shared TestFlight metadata options."""
    func = click.option(
        "--uses-non-exempt-encryption",
        default=None,
        help="Export compliance answer: true or false",
    )(func)
    func = click.option(
        "--release-notes-file",
        type=click.Path(exists=True, dir_okay=False, path_type=Path),
        default=None,
        help="Read release notes from a file",
    )(func)
    func = click.option(
        "--release-notes",
        default="",
        help="TestFlight 'What to Test' text",
    )(func)
    return func


def build_request(
    app_path: Path,
    app_type: str,
    issuer_id: Optional[str],
    api_key_id: Optional[str],
    api_private_key: Optional[str],
    api_private_key_file: Optional[Path],
    release_notes: str,
    release_notes_file: Optional[Path],
    uses_non_exempt_encryption: Optional[str],
    backend: str,
    transporter_path: Optional[str] = None,
    wait_for_processing: bool = False,
):
    """Assemble an UploadRequest, falling back to environment credentials."""
    from testflight_uploader.config.settings import (
        get_env_api_key_id,
        get_env_issuer_id,
        get_env_private_key,
    )
    from testflight_uploader.models import UploadRequest

    if api_private_key_file is not None:
        api_private_key = api_private_key_file.read_text()
    if release_notes_file is not None:
        release_notes = release_notes_file.read_text()

    return UploadRequest(
        app_path=app_path,
        app_type=app_type,
        issuer_id=issuer_id or get_env_issuer_id() or "",
        api_key_id=api_key_id or get_env_api_key_id() or "",
        api_private_key=api_private_key or get_env_private_key() or "",
        backend=backend,
        release_notes=release_notes,
        uses_non_exempt_encryption=uses_non_exempt_encryption,
        transporter_path=transporter_path,
        wait_for_processing=wait_for_processing,
    )


def check_guards(request, require_backend: bool = True) -> None:
    """Run the publish guards, exiting with the guard's code on failure."""
    from testflight_uploader.pipeline import run_guards

    result = run_guards(request, require_backend=require_backend)
    if result.is_err():
        error = result.unwrap_err()
        fail(
            {"status": "error", "message": error.message, "details": error.details},
            error.code,
        )


@click.group()
@click.option(
    "--config",
    type=click.Path(exists=False, path_type=Path),
    default=DEFAULT_CONFIG,
    help="Path to config directory",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warn", "error"], case_sensitive=False),
    default=None,
    help="Logging level (default: from config, else info)",
)
@click.option(
    "--log-format",
    type=click.Choice(["json", "text"], case_sensitive=False),
    default=None,
    help="Log format (default: from config, else json)",
)
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="Show what would be done without executing",
)
@click.version_option(version=__version__)
@click.pass_context
def cli(
    ctx: click.Context,
    config: Path,
    log_level: Optional[str],
    log_format: Optional[str],
    dry_run: bool,
) -> None:
    """
    TestFlight Uploader - Publish iOS, macOS, tvOS and visionOS builds.

    Uploads a build artifact to App Store Connect, waits for processing and
    applies TestFlight release notes and export compliance.
    """
    configure_logging(level=log_level or "info", format_type=log_format or "json")

    ctx.obj = Context(
        config_dir=config,
        log_level=log_level,
        log_format=log_format,
        dry_run=dry_run,
    )


@cli.command()
@artifact_options
@credential_options
@metadata_options
@click.option(
    "--backend",
    default=None,
    help="Upload backend: appstore-api or transporter (default: from config)",
)
@click.option(
    "--transporter-path",
    default=None,
    help="iTMSTransporter executable (transporter backend only)",
)
@click.option(
    "--wait/--no-wait",
    "wait_for_processing",
    default=False,
    help="Wait for processing after a transporter upload",
)
@pass_context
def upload(
    ctx: Context,
    app_path: Path,
    app_type: str,
    issuer_id: Optional[str],
    api_key_id: Optional[str],
    api_private_key: Optional[str],
    api_private_key_file: Optional[Path],
    release_notes: str,
    release_notes_file: Optional[Path],
    uses_non_exempt_encryption: Optional[str],
    backend: Optional[str],
    transporter_path: Optional[str],
    wait_for_processing: bool,
) -> None:
    """Upload a build and publish it to TestFlight."""
    from testflight_uploader.errors import PublishError
    from testflight_uploader.pipeline import publish

    config = ctx.load_config()
    request = build_request(
        app_path=app_path,
        app_type=app_type,
        issuer_id=issuer_id,
        api_key_id=api_key_id,
        api_private_key=api_private_key,
        api_private_key_file=api_private_key_file,
        release_notes=release_notes,
        release_notes_file=release_notes_file,
        uses_non_exempt_encryption=uses_non_exempt_encryption,
        backend=backend or config.backend,
        transporter_path=transporter_path,
        wait_for_processing=wait_for_processing,
    )

    ctx.logger.info(
        "upload_started",
        app_path=str(request.app_path),
        app_type=request.app_type,
        backend=request.backend,
    )

    check_guards(request)

    if ctx.dry_run:
        output_json({
            "status": "dry_run",
            "message": "Would upload build",
            "app_path": str(request.app_path),
            "app_type": request.app_type,
            "backend": request.backend,
            "release_notes": bool(request.release_notes.strip()),
            "uses_non_exempt_encryption": request.uses_non_exempt_encryption,
            "polling": {
                "visibility": config.polling.visibility_policy().to_dict(),
                "processing": config.polling.processing_policy().to_dict(),
                "fail_fast": config.polling.processing.fail_fast,
            },
        })
        return

    try:
        result = asyncio.run(publish(request, config))
    except PublishError as e:
        ctx.logger.error("upload_failed", error=str(e), error_type=type(e).__name__)
        fail(
            {"status": "error", "error_type": type(e).__name__, "message": str(e)},
            e.exit_code,
        )

    output_json({
        "status": "success",
        "message": "Build uploaded and processed",
        **result.to_dict(),
    })


@cli.command()
@artifact_options
@credential_options
@metadata_options
@pass_context
def metadata(
    ctx: Context,
    app_path: Path,
    app_type: str,
    issuer_id: Optional[str],
    api_key_id: Optional[str],
    api_private_key: Optional[str],
    api_private_key_file: Optional[Path],
    release_notes: str,
    release_notes_file: Optional[Path],
    uses_non_exempt_encryption: Optional[str],
) -> None:
    """Update release notes and export compliance of an uploaded build."""
    from testflight_uploader.errors import PublishError
    from testflight_uploader.pipeline import submit_metadata

    config = ctx.load_config()
    request = build_request(
        app_path=app_path,
        app_type=app_type,
        issuer_id=issuer_id,
        api_key_id=api_key_id,
        api_private_key=api_private_key,
        api_private_key_file=api_private_key_file,
        release_notes=release_notes,
        release_notes_file=release_notes_file,
        uses_non_exempt_encryption=uses_non_exempt_encryption,
        backend=config.backend,
    )

    check_guards(request, require_backend=False)

    if ctx.dry_run:
        output_json({
            "status": "dry_run",
            "message": "Would update TestFlight metadata",
            "app_path": str(request.app_path),
            "release_notes": bool(request.release_notes.strip()),
            "uses_non_exempt_encryption": request.uses_non_exempt_encryption,
        })
        return

    try:
        outcome = asyncio.run(submit_metadata(request, config))
    except PublishError as e:
        ctx.logger.error("metadata_failed", error=str(e), error_type=type(e).__name__)
        fail(
            {"status": "error", "error_type": type(e).__name__, "message": str(e)},
            e.exit_code,
        )

    output_json({
        "status": "success",
        "build_id": outcome.build_id,
        "release_notes_updated": outcome.release_notes_updated,
        "encryption_updated": outcome.encryption_updated,
    })


@cli.command()
@click.option(
    "--app-path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=True,
    help="Path to the .ipa build artifact",
)
@pass_context
def inspect(ctx: Context, app_path: Path) -> None:
    """Show the bundle id and version of a build artifact."""
    from testflight_uploader.errors import MetadataMissingError
    from testflight_uploader.metadata import extract_app_metadata

    try:
        metadata = extract_app_metadata(app_path)
    except MetadataMissingError as e:
        fail({"status": "error", "message": str(e)}, e.exit_code)

    output_json({
        "status": "success",
        "app_path": str(app_path),
        **metadata.to_dict(),
    })


def main() -> None:
    """Main entry point."""
    try:
        cli()
    except Exception as e:
        logger = get_logger("cli")
        logger.error("cli_error", error=str(e))
        sys.exit(ExitCode.GENERAL_ERROR)


if __name__ == "__main__":
    main()
