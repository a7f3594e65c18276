#!/usr/bin/env python
"""Command-line entry point for the notesync client."""
import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from notesync import __version__
from notesync.config import NotesyncConfig, config
from notesync.exceptions import ConfigurationError, NotesyncError
from notesync.models.schema import Note, StatusKind
from notesync.observability import configure_logging, metrics
from notesync.remote.client import NotesApiClient
from notesync.services.sync_service import NoteSyncService
from notesync.storage.cache import NoteCache
from notesync.storage.memory_store import MemoryStore
from notesync.storage.sqlite_store import SqliteStore

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="notesync", description="Notes with a local cache and optional remote sync"
    )
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument(
        "--api-base",
        help="Base URL of the notes service (overrides NOTESYNC_API_BASE)",
        type=str,
        default=None,
    )
    parser.add_argument(
        "--cache-path",
        help="SQLite cache file path",
        type=str,
        default=None,
    )
    parser.add_argument(
        "--log-level",
        help="Logging level; also echoes log records to the console",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
    )
    parser.add_argument("--json", action="store_true", help="Print JSON output")

    sub = parser.add_subparsers(dest="command", required=True)

    list_parser = sub.add_parser("list", help="List notes, most recent first")
    list_parser.add_argument("--query", default="", help="Case-insensitive filter")

    show_parser = sub.add_parser("show", help="Print one note")
    show_parser.add_argument("note_id")

    new_parser = sub.add_parser("new", help="Create a note")
    new_parser.add_argument("--title", default=None)
    new_parser.add_argument("--content", default=None)

    edit_parser = sub.add_parser("edit", help="Change a note's title or content")
    edit_parser.add_argument("note_id")
    edit_parser.add_argument("--title", default=None)
    edit_parser.add_argument("--content", default=None)

    delete_parser = sub.add_parser("delete", help="Delete a note")
    delete_parser.add_argument("note_id")
    delete_parser.add_argument("--yes", action="store_true", help="Skip confirmation")

    sub.add_parser("sync", help="Reconcile with the remote service")
    sub.add_parser("status", help="Show configuration and remote call metrics")
    return parser.parse_args(argv)


def update_config(args) -> None:
    """Update the global config with command line arguments.

    Raises:
        ConfigurationError: If the API base URL is not an http(s) URL.
    """
    if args.api_base is not None:
        config.api_base_url = args.api_base.strip() or None
    if args.cache_path:
        config.cache_path = Path(args.cache_path).expanduser()
    if args.log_level:
        config.log_level = args.log_level
    base = config.api_base_url
    if base and not base.lower().startswith(("http://", "https://")):
        raise ConfigurationError(
            f"API base URL must start with http:// or https://: {base}",
            config_key="api_base_url",
        )


def build_service(cfg: NotesyncConfig) -> NoteSyncService:
    """Wire cache, remote client and engine from configuration."""
    if cfg.cache_backend == "memory":
        store = MemoryStore()
    else:
        store = SqliteStore(cfg.get_db_url())
    client = NotesApiClient.from_config(cfg)
    return NoteSyncService.from_config(cfg, NoteCache(store), client)


def _print_note_line(note: Note, selected: bool) -> None:
    marker = "*" if selected else " "
    print(f"{marker} {note.id}  {note.updated_at.isoformat()}  {note.title or 'Untitled'}")


def _report(service: NoteSyncService) -> int:
    status = service.status
    if status.kind is StatusKind.ERROR:
        print(f"error: {status.message}", file=sys.stderr)
        return 1
    return 0


def run_command(args, service: NoteSyncService) -> int:
    """Forward one command to the engine and print the resulting state."""
    if args.command == "list":
        service.set_query(args.query)
        notes = service.visible_notes()
        if args.json:
            print(json.dumps([n.to_cache_dict() for n in notes], indent=2))
        else:
            if not notes:
                print("No notes found")
            for note in notes:
                _print_note_line(note, note.id == service.selected_id)
        return 0

    if args.command == "show":
        service.select(args.note_id)
        note = service.selected_note
        if args.json:
            print(json.dumps(note.to_cache_dict(), indent=2))
        else:
            print(note.title or "Untitled")
            print(f"Last updated {note.updated_at.isoformat()}")
            print()
            print(note.content)
        return 0

    if args.command == "new":
        service.create().result()
        if args.title is not None:
            service.edit_title(args.title)
        if args.content is not None:
            service.edit_content(args.content)
        if args.title is not None or args.content is not None:
            service.save().result()
        print(service.selected_id)
        return _report(service)

    if args.command == "edit":
        service.select(args.note_id)
        if args.title is not None:
            service.edit_title(args.title)
        if args.content is not None:
            service.edit_content(args.content)
        service.save().result()
        return _report(service)

    if args.command == "delete":
        service.select(args.note_id)
        note = service.selected_note
        if not args.yes:
            try:
                answer = input(f'Delete "{note.title or "Untitled"}"? This cannot be undone. [y/N] ')
            except EOFError:
                # No terminal to answer from
                answer = ""
            if answer.strip().lower() not in ("y", "yes"):
                print("Cancelled")
                return 0
        service.delete(note.id).result()
        return _report(service)

    if args.command == "sync":
        print(f"{len(service.notes)} notes ({service.status_label()})")
        return _report(service)

    if args.command == "status":
        info = {
            "version": config.client_version,
            "api_base_url": config.api_base_url,
            "cache_backend": config.cache_backend,
            "cache_path": str(config.cache_path),
            "notes": len(service.notes),
            "selected_id": service.selected_id,
            "status": service.status_label(),
            "remote_calls": metrics.get_summary(),
        }
        if args.json:
            print(json.dumps(info, indent=2, default=str))
        else:
            for key, value in info.items():
                print(f"{key}: {value}")
        return 0

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None) -> int:
    """Run one notesync command."""
    args = parse_args(argv)
    try:
        update_config(args)
    except ConfigurationError as e:
        print(f"error: {e.message}", file=sys.stderr)
        return 2

    # File logging always; console only when a level is asked for explicitly
    log_level = getattr(logging, config.log_level.upper(), logging.INFO)
    try:
        configure_logging(level=log_level, console=args.log_level is not None)
    except OSError as e:
        logging.basicConfig(level=log_level)
        logger.warning(f"Failed to configure file logging: {e}")

    service = build_service(config)
    try:
        service.start().result()
        return run_command(args, service)
    except NotesyncError as e:
        if args.json:
            print(json.dumps(e.to_dict()), file=sys.stderr)
        else:
            print(f"error: {e.message}", file=sys.stderr)
        return 1
    finally:
        service.shutdown(flush=True)
        service.client.close()
        service.cache.store.close()


if __name__ == "__main__":
    sys.exit(main())
