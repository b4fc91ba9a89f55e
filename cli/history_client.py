"""CLI client for browsing and restoring Kotoori file history."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import httpx

from kotoori.filesystem.text_file import TEXT_ENCODINGS
from kotoori.services.datetime_service import format_local

DEFAULT_SERVER = "http://127.0.0.1:8000"
_LOCALHOST_HOSTS = {"localhost", "127.0.0.1", "::1"}


def validate_server_url(server_url: str) -> str:
    """Validate the server URL; history is only served on the local machine."""
    normalized = server_url.strip().rstrip("/")
    parsed = urlparse(normalized)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError("Server URL must include scheme and host (e.g. http://127.0.0.1:8000)")
    if parsed.hostname not in _LOCALHOST_HOSTS:
        raise ValueError("The history server must run on localhost")
    return normalized


def format_delta(delta: int) -> str:
    """Render a character delta with an explicit sign."""
    return f"{delta:+d}"


class HistoryClient:
    """Client for the history API of a running Kotoori backend."""

    def __init__(self, server_url: str, transport: httpx.BaseTransport | None = None) -> None:
        self.server_url = server_url.rstrip("/")
        self.client = httpx.Client(base_url=self.server_url, timeout=30.0, transport=transport)

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self) -> HistoryClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _get(self, url: str, **params: Any) -> Any:
        resp = self.client.get(url, params=params or None)
        resp.raise_for_status()
        return resp.json()

    def files(self) -> list[dict[str, Any]]:
        """Tracked files, after a liveness check on the server."""
        result: list[dict[str, Any]] = self._get("/api/history/files")
        return result

    def snapshots(self, path: str) -> list[dict[str, Any]]:
        """Snapshots of *path*, newest first."""
        result: list[dict[str, Any]] = self._get("/api/history/snapshots", path=path)
        return result

    def content(self, content_hash: str) -> str | None:
        """Stored text for a hash, or None if it is gone."""
        resp = self.client.get(f"/api/history/content/{content_hash}")
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        result: str = resp.json()["content"]
        return result

    def diff(self, old: int, new: int, granularity: str = "lines") -> dict[str, Any]:
        """Diff between two snapshot ids."""
        result: dict[str, Any] = self._get(
            "/api/history/diff", old=old, new=new, granularity=granularity
        )
        return result

    def restore(
        self, snapshot_id: int, target: Path | None = None, encoding: str | None = None
    ) -> dict[str, Any]:
        """Write a snapshot back to its file, or to *target*.

        Without *encoding* the server keeps the target's current encoding.
        """
        body: dict[str, Any] = {"snapshot_id": snapshot_id}
        if encoding is not None:
            body["encoding"] = encoding
        if target is not None:
            body["target_path"] = str(target.resolve())
        resp = self.client.post("/api/history/restore", json=body)
        resp.raise_for_status()
        result: dict[str, Any] = resp.json()
        return result

    def forget(self, file_id: int) -> bool:
        """Delete a file's history. Returns False if the file was unknown."""
        resp = self.client.delete(f"/api/history/files/{file_id}")
        if resp.status_code == 404:
            return False
        resp.raise_for_status()
        return True

    def gc(self) -> int:
        """Ask the server to drop unreferenced content."""
        resp = self.client.post("/api/history/gc")
        resp.raise_for_status()
        reclaimed: int = resp.json()["reclaimed"]
        return reclaimed


def print_diff(diff: dict[str, Any]) -> None:
    """Print a diff in a unified-like style."""
    prefixes = {"added": "+", "removed": "-", "unchanged": " "}
    for change in diff.get("changes", []):
        prefix = prefixes[change["kind"]]
        for line in change["value"].splitlines() or [""]:
            print(f"{prefix} {line}")
    print(f"{diff.get('added', 0)} added, {diff.get('removed', 0)} removed")


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="kotoori-history",
        description="Browse and restore Kotoori file history",
    )
    parser.add_argument("--server", "-s", default=DEFAULT_SERVER, help="Backend URL")

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("files", help="List tracked files")
    log_parser = subparsers.add_parser("log", help="List snapshots of a file")
    log_parser.add_argument("path", help="File path")
    show_parser = subparsers.add_parser("show", help="Print stored content for a hash")
    show_parser.add_argument("hash", help="Content hash")
    diff_parser = subparsers.add_parser("diff", help="Diff two snapshots")
    diff_parser.add_argument("old", type=int, help="Older snapshot id")
    diff_parser.add_argument("new", type=int, help="Newer snapshot id")
    diff_parser.add_argument("--chars", action="store_true", help="Compare characters")
    restore_parser = subparsers.add_parser("restore", help="Write a snapshot back to disk")
    restore_parser.add_argument("snapshot_id", type=int, help="Snapshot id")
    restore_parser.add_argument("--to", type=Path, help="Write to this path instead")
    restore_parser.add_argument(
        "--encoding", choices=TEXT_ENCODINGS, help="Encoding to write with (default: keep)"
    )
    forget_parser = subparsers.add_parser("forget", help="Delete a file's history")
    forget_parser.add_argument("file_id", type=int, help="Tracked file id")
    subparsers.add_parser("gc", help="Drop unreferenced content")

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return

    try:
        server_url = validate_server_url(args.server)
    except ValueError as exc:
        print(f"Error: {exc}")
        sys.exit(1)

    with HistoryClient(server_url) as client:
        try:
            _run_command(client, args)
        except httpx.HTTPError as exc:
            print(f"Error: {exc}")
            sys.exit(1)


def _run_command(client: HistoryClient, args: argparse.Namespace) -> None:
    if args.command == "files":
        for f in client.files():
            state = "alive" if f["is_alive"] else "lost"
            print(f"{f['id']:>5}  {state:<5}  {f['snapshot_count']:>4}  {f['path']}")

    elif args.command == "log":
        snapshots = client.snapshots(str(Path(args.path).resolve()))
        if not snapshots:
            print("No history.")
        for s in snapshots:
            print(
                f"{s['id']:>6}  {format_local(s['created_at'])}  "
                f"{s['char_count']:>8}  {format_delta(s['change_delta']):>7}  "
                f"{s['content_hash'][:12]}"
            )

    elif args.command == "show":
        content = client.content(args.hash)
        if content is None:
            print("Error: content not found")
            sys.exit(1)
        sys.stdout.write(content)

    elif args.command == "diff":
        print_diff(client.diff(args.old, args.new, "chars" if args.chars else "lines"))

    elif args.command == "restore":
        result = client.restore(args.snapshot_id, args.to, args.encoding)
        print(
            f"Restored snapshot {result['snapshot_id']} to {result['path']} "
            f"({result['encoding']})"
        )

    elif args.command == "forget":
        if not client.forget(args.file_id):
            print(f"Error: no tracked file with id {args.file_id}")
            sys.exit(1)
        print(f"Deleted history of file {args.file_id}")

    elif args.command == "gc":
        print(f"Reclaimed {client.gc()} blob(s)")


if __name__ == "__main__":
    main()
