"""Command line interface for s3_multipart package."""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from rich.logging import RichHandler

from . import __version__
from .cli_progress import PartUploadProgress, err_console, render_configuration_summary
from .errors import AbortError, ConfigError
from .models import DEFAULT_CHUNK_SIZE, MINIMUM_CHUNK_SIZE, UploadConfig, UploadStatus
from .orchestrator import UploadOrchestrator
from .utils.events import PART_UPLOADED, SESSION_CREATED
from .utils.sizes import human_size, parse_size

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2
EXIT_INTERRUPTED = 130

logger = logging.getLogger(__name__)


class CLIError(RuntimeError):
    """Raised when CLI validation/execution fails."""


# AWS SDK loggers, held back unless S3_MPU_BOTO_DEBUG is set
SDK_LOGGERS = ("botocore", "boto3", "s3transfer", "urllib3")


def _setup_logging(debug: bool, silent: bool, log_level: Optional[str]) -> str:
    """
    Configure logging.

    Silent unless --debug, --log-level or LOG_LEVEL is given. Log records go
    to stderr so they do not interleave with the progress output on stdout.
    Returns a string describing effective mode.
    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    logging.disable(logging.NOTSET)

    env_level = os.getenv("LOG_LEVEL")
    if silent or not (debug or log_level or env_level):
        logging.disable(logging.CRITICAL)
        root_logger.setLevel(logging.CRITICAL + 1)
        return "silent"

    if debug:
        level = logging.DEBUG
    else:
        level = getattr(logging, (log_level or env_level).upper(), logging.INFO)

    handler = RichHandler(
        console=err_console,
        rich_tracebacks=True,
        tracebacks_suppress=[asyncio],
        markup=False,
        show_time=debug,
        show_path=False,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s" if debug else "%(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # the SDK logs every request and header at DEBUG
    sdk_level = level if os.getenv("S3_MPU_BOTO_DEBUG") else max(level, logging.WARNING)
    for name in SDK_LOGGERS:
        logging.getLogger(name).setLevel(sdk_level)
    return logging.getLevelName(level)


def _parse_env_value(raw: str) -> str:
    """Unquote a .env value; unquoted values may carry a trailing ' # comment'."""
    value = raw.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value.split(" #", 1)[0].rstrip()


def _load_env_file(path: Path, override: bool = False) -> List[str]:
    """Export KEY=value lines from a .env file. Returns the keys that were set."""
    if not path.is_file():
        raise CLIError(f"env file not found: {path}")

    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError as exc:
        raise CLIError(f"could not read env file {path}: {exc}") from exc

    applied = []
    for lineno, raw_line in enumerate(lines, start=1):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].lstrip()

        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key.isidentifier():
            logger.debug(f"{path}:{lineno}: skipped malformed line")
            continue
        if override or key not in os.environ:
            os.environ[key] = _parse_env_value(value)
            applied.append(key)
    return applied


def _resolve_default_env_file() -> Optional[Path]:
    """S3_MPU_ENV_FILE if set, else ./.env when present."""
    configured = os.getenv("S3_MPU_ENV_FILE")
    if configured:
        return Path(configured).expanduser()
    default_env = Path(".env")
    return default_env if default_env.is_file() else None


def _parse_metadata(pairs: Sequence[str]) -> Tuple[Tuple[str, str], ...]:
    """Turn repeated --metadata KEY=VALUE options into config pairs."""
    parsed = []
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep or not name.strip():
            raise ConfigError(f"invalid --metadata {pair!r}, expected KEY=VALUE")
        parsed.append((name.strip(), value))
    return tuple(parsed)


def _resolve_chunk_size(raw: Optional[str]) -> int:
    """Chunk size from --chunk-size, then S3_MPU_CHUNK_SIZE, then the default."""
    value = raw or os.getenv("S3_MPU_CHUNK_SIZE")
    if not value:
        return DEFAULT_CHUNK_SIZE
    try:
        return parse_size(value)
    except ValueError as exc:
        raise ConfigError(f"invalid chunk size {value!r}") from exc


def _build_config(args: argparse.Namespace) -> UploadConfig:
    """Validate arguments into an UploadConfig. Raises ConfigError."""
    missing = [
        name
        for name, value in (("--bucket", args.bucket), ("--key", args.key), ("--file", args.file))
        if not value
    ]
    if missing:
        raise ConfigError(f"bucket, key, and file must all be provided (missing {', '.join(missing)})")

    config = UploadConfig(
        chunk_size=_resolve_chunk_size(args.chunk_size),
        allow_empty_source=args.allow_empty,
        abort_on_complete_failure=args.abort_on_complete_failure,
        content_type=args.content_type,
        metadata=_parse_metadata(args.metadata or ()),
    )
    return config.validate()


async def _run_upload(
    source: Path,
    bucket: str,
    key: str,
    config: UploadConfig,
    profile: Optional[str],
    region: Optional[str],
    endpoint_url: Optional[str],
) -> int:
    async with UploadOrchestrator(
        config=config,
        profile=profile,
        region=region,
        endpoint_url=endpoint_url,
    ) as orchestrator:
        progress = PartUploadProgress(source)
        orchestrator.on(SESSION_CREATED, progress.on_session_created)
        orchestrator.on(PART_UPLOADED, progress.on_part_uploaded)

        try:
            result = await orchestrator.upload(source, bucket, key)
            progress.complete(result)
        finally:
            progress.stop()

    if result.success:
        return EXIT_OK
    if result.status == UploadStatus.FAILED and result.phase == "config":
        return EXIT_CONFIG
    return EXIT_FAILED


async def _run_abort(
    bucket: str,
    key: str,
    upload_id: str,
    profile: Optional[str],
    region: Optional[str],
    endpoint_url: Optional[str],
) -> int:
    async with UploadOrchestrator(profile=profile, region=region, endpoint_url=endpoint_url) as orchestrator:
        await orchestrator.abort_upload(bucket, key, upload_id)
    print(f"Aborted upload {upload_id}")
    return EXIT_OK


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="s3-mpu",
        description="Upload a large file to S3 as a multipart upload.",
    )
    parser.add_argument("-b", "--bucket", default=None, help="S3 bucket name")
    parser.add_argument("-k", "--key", default=None, help="S3 object key")
    parser.add_argument("-f", "--file", type=Path, default=None, help="Path to the local file")
    parser.add_argument(
        "-s",
        "--chunk-size",
        default=None,
        help=(
            "Size of each part, in bytes or with a unit (15mb, 15MiB). "
            f"Default {human_size(DEFAULT_CHUNK_SIZE)} or S3_MPU_CHUNK_SIZE; "
            f"minimum {human_size(MINIMUM_CHUNK_SIZE)}"
        ),
    )
    parser.add_argument("--content-type", default=None, help="Content-Type of the uploaded object")
    parser.add_argument(
        "--metadata",
        action="append",
        default=None,
        metavar="KEY=VALUE",
        help="User metadata stored with the object (repeatable)",
    )
    parser.add_argument(
        "--allow-empty",
        action="store_true",
        help="Upload an empty file as a zero-part upload instead of rejecting it",
    )
    parser.add_argument(
        "--abort-on-complete-failure",
        action="store_true",
        help="Abort the upload when the final completion call fails (default: leave it open)",
    )
    parser.add_argument(
        "--abort-upload-id",
        default=None,
        metavar="UPLOAD_ID",
        help="Abort an upload left open by an earlier run and exit",
    )
    parser.add_argument("--profile", default=None, help="AWS profile (default from AWS_PROFILE)")
    parser.add_argument("--region", default=None, help="AWS region (default from AWS_REGION)")
    parser.add_argument(
        "--endpoint-url",
        default=None,
        help="S3-compatible endpoint URL (default from S3_ENDPOINT_URL)",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load environment variables from this .env file",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logs")
    parser.add_argument("--silent", action="store_true", help="Only print errors")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Explicit log level (DEBUG/INFO/WARNING/ERROR)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"s3-mpu {__version__}",
    )
    return parser


def run_cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    used_env_file = args.env_file or _resolve_default_env_file()
    env_keys: List[str] = []
    if used_env_file is not None:
        try:
            env_keys = _load_env_file(Path(used_env_file))
        except CLIError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return EXIT_CONFIG

    effective_log_mode = _setup_logging(
        debug=args.debug,
        silent=args.silent,
        log_level=args.log_level,
    )

    profile = args.profile or os.getenv("AWS_PROFILE")
    region = args.region or os.getenv("AWS_REGION")
    endpoint_url = args.endpoint_url or os.getenv("S3_ENDPOINT_URL")

    if args.abort_upload_id:
        if not args.bucket or not args.key:
            print("ERROR: --abort-upload-id needs --bucket and --key", file=sys.stderr)
            return EXIT_CONFIG
        try:
            return asyncio.run(
                _run_abort(args.bucket, args.key, args.abort_upload_id, profile, region, endpoint_url)
            )
        except ConfigError as exc:
            print(f"ERROR: {exc.describe()}", file=sys.stderr)
            return EXIT_CONFIG
        except AbortError as exc:
            print(f"ERROR: {exc.describe()}", file=sys.stderr)
            return EXIT_FAILED

    try:
        config = _build_config(args)
    except ConfigError as exc:
        parser.print_usage(sys.stderr)
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_CONFIG

    source = Path(args.file).expanduser()
    if not args.silent:
        render_configuration_summary(
            {
                "Source": str(source),
                "Target": f"s3://{args.bucket}/{args.key}",
                "Chunk Size": human_size(config.chunk_size),
                "Content Type": config.content_type or "-",
                "Profile": profile or "(default chain)",
                "Region": region or "(default)",
                "Endpoint": endpoint_url or "(AWS)",
                "Empty Files": "allowed" if config.allow_empty_source else "rejected",
                "On Complete Failure": "abort" if config.abort_on_complete_failure else "leave open",
                "Metadata": ", ".join(f"{k}={v}" for k, v in config.metadata) or "-",
                "Env File": f"{used_env_file} ({len(env_keys)} set)" if used_env_file else "-",
                "Logging": effective_log_mode,
            }
        )

    try:
        return asyncio.run(
            _run_upload(
                source=source,
                bucket=args.bucket,
                key=args.key,
                config=config,
                profile=profile,
                region=region,
                endpoint_url=endpoint_url,
            )
        )
    except ConfigError as exc:
        print(f"ERROR: {exc.describe()}", file=sys.stderr)
        return EXIT_CONFIG
    except KeyboardInterrupt:
        print("Cancelled.", file=sys.stderr)
        return EXIT_INTERRUPTED


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
