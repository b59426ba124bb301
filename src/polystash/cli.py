"""PolyStash CLI - command-line access to configured blob stores.

Usage:
    python -m polystash [--config PATH] [--store NAME] [-v] put PREFIX FILE [--name NAME]
        [--content-type TYPE] [--attr KEY=VALUE ...]
    python -m polystash replace OBJECT FILE [--name NAME] [--content-type TYPE] [--attr ...]
    python -m polystash get OBJECT [--out FILE]
    python -m polystash stat OBJECT
    python -m polystash ls [PREFIX] [--no-recursive]
    python -m polystash rm OBJECT [--silent]
    python -m polystash exists OBJECT

Output is JSON with sorted keys. "get" without --out writes the raw content
to stdout. Tracing is set up from the POLYSTASH_OTEL_* variables before any
command runs.

Exit codes:
    0: Success
    1: Blob store error / object absent (exists) / internal error
    2: Usage error
"""

from __future__ import annotations

import argparse
import json
import logging
import shutil
import sys
from pathlib import Path
from typing import Any

from polystash.blobstore import BlobStore
from polystash.config import load_settings
from polystash.errors import PolyStashError, StorageIOError
from polystash.models import ListOptions
from polystash.observability import configure_tracing
from polystash.payload import FilePayload
from polystash.registry import BlobStoreRegistry

logger = logging.getLogger(__name__)


def _output_json(data: Any) -> None:
    """Output JSON with deterministic formatting."""
    print(json.dumps(data, sort_keys=True, indent=2))


def _error_result(error: PolyStashError) -> dict[str, Any]:
    return {
        "error": type(error).__name__,
        "message": error.message,
        "object_name": error.object_name,
    }


def _parse_attributes(values: list[str] | None) -> dict[str, str]:
    """Parse KEY=VALUE pairs.

    Raises:
        ValueError: If a pair has no "=" or an empty key.
    """
    attributes: dict[str, str] = {}
    for item in values or []:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Invalid attribute '{item}', expected KEY=VALUE")
        attributes[key.strip()] = value
    return attributes


def _open_store(args: argparse.Namespace) -> BlobStore:
    settings = load_settings(args.config)
    registry = BlobStoreRegistry.build_all(settings)
    return registry.get(args.store)


def _write_source(args: argparse.Namespace) -> tuple[FilePayload, dict[str, str]] | None:
    source = Path(args.file)
    if not source.is_file():
        print(f"error: not a file: {source}", file=sys.stderr)
        return None
    try:
        attributes = _parse_attributes(args.attr)
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return None
    return FilePayload(source), attributes


def cmd_put(args: argparse.Namespace, store: BlobStore) -> int:
    prepared = _write_source(args)
    if prepared is None:
        return 2
    payload, attributes = prepared
    blob = store.put(
        args.prefix,
        args.name or payload.filename,
        payload,
        attributes,
        args.content_type or payload.content_type,
    )
    _output_json(blob.to_dict())
    return 0


def cmd_replace(args: argparse.Namespace, store: BlobStore) -> int:
    prepared = _write_source(args)
    if prepared is None:
        return 2
    payload, attributes = prepared
    blob = store.put_or_replace(
        args.object,
        args.name or payload.filename,
        payload,
        attributes,
        args.content_type or payload.content_type,
    )
    _output_json(blob.to_dict())
    return 0


def cmd_get(args: argparse.Namespace, store: BlobStore) -> int:
    blob = store.get(args.object)
    payload = blob.payload
    if payload is None:
        raise StorageIOError(
            message="Blob store returned no payload", object_name=args.object
        )
    with payload, payload.stream() as source:
        if args.out:
            with open(args.out, "wb") as destination:
                shutil.copyfileobj(source, destination)
        else:
            shutil.copyfileobj(source, sys.stdout.buffer)
            sys.stdout.buffer.flush()
    if args.out:
        _output_json(blob.to_dict())
    return 0


def cmd_stat(args: argparse.Namespace, store: BlobStore) -> int:
    _output_json(store.stat(args.object).to_dict())
    return 0


def cmd_ls(args: argparse.Namespace, store: BlobStore) -> int:
    options = ListOptions(recursive=not args.no_recursive)
    entries: list[dict[str, Any]] = []
    exit_code = 0
    for result in store.list(args.prefix, options):
        if result.ok:
            entries.append(result.get().to_dict())
        else:
            error = result.error
            if isinstance(error, PolyStashError):
                entries.append(_error_result(error))
            else:
                entries.append({"error": type(error).__name__, "message": str(error)})
            exit_code = 1
    _output_json(entries)
    return exit_code


def cmd_rm(args: argparse.Namespace, store: BlobStore) -> int:
    store.remove(args.object, silent=args.silent)
    _output_json({"object_name": args.object, "removed": True})
    return 0


def cmd_exists(args: argparse.Namespace, store: BlobStore) -> int:
    exists = store.exist(args.object)
    _output_json({"exists": exists, "object_name": args.object})
    return 0 if exists else 1


COMMAND_DISPATCH = {
    "put": cmd_put,
    "replace": cmd_replace,
    "get": cmd_get,
    "stat": cmd_stat,
    "ls": cmd_ls,
    "rm": cmd_rm,
    "exists": cmd_exists,
}


def _add_write_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("file", help="Local file to upload")
    parser.add_argument("--name", help="Readable filename (default: the file's name)")
    parser.add_argument("--content-type", dest="content_type", help="MIME type of the content")
    parser.add_argument(
        "--attr",
        action="append",
        metavar="KEY=VALUE",
        help="User-defined attribute (repeatable)",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="polystash",
        description="PolyStash - unified blob storage",
    )
    parser.add_argument("--config", help="YAML configuration file (default: $POLYSTASH_CONFIG)")
    parser.add_argument("--store", help="Blob store name (default: the primary store)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    put_parser = subparsers.add_parser("put", help="Store a file under a generated name")
    put_parser.add_argument("prefix", help="Prefix (logical directory) for the new object")
    _add_write_arguments(put_parser)

    replace_parser = subparsers.add_parser("replace", help="Store a file under an explicit name")
    replace_parser.add_argument("object", help="Object name")
    _add_write_arguments(replace_parser)

    get_parser = subparsers.add_parser("get", help="Download an object")
    get_parser.add_argument("object", help="Object name")
    get_parser.add_argument("--out", help="Output file (default: stdout)")

    stat_parser = subparsers.add_parser("stat", help="Show object metadata")
    stat_parser.add_argument("object", help="Object name")

    ls_parser = subparsers.add_parser("ls", help="List objects under a prefix")
    ls_parser.add_argument("prefix", nargs="?", default="", help="Prefix to list")
    ls_parser.add_argument(
        "--no-recursive",
        dest="no_recursive",
        action="store_true",
        help="Only list direct children of the prefix",
    )

    rm_parser = subparsers.add_parser("rm", help="Remove an object")
    rm_parser.add_argument("object", help="Object name")
    rm_parser.add_argument("--silent", action="store_true", help="Ignore removal failures")

    exists_parser = subparsers.add_parser("exists", help="Check whether an object exists")
    exists_parser.add_argument("object", help="Object name")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Exit codes:
        0: Success
        1: Blob store error / absent object / internal error
        2: Usage error
    """
    parser = create_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        return int(e.code or 0)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.command is None:
        parser.print_help()
        return 2

    try:
        configure_tracing()
        store = _open_store(args)
        return COMMAND_DISPATCH[args.command](args, store)
    except PolyStashError as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        _output_json(_error_result(e))
        return 1
    except Exception as e:
        logger.debug("Unexpected failure in command %s", args.command, exc_info=True)
        _output_json({"error": "INTERNAL_ERROR", "message": str(e)})
        return 1


if __name__ == "__main__":
    sys.exit(main())
