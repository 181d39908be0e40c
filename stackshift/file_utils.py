"""Bounded filesystem reads and directory scans."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Iterable, List, Union

from .config import DEFAULT_MAX_BYTES
from .errors import FileAccessError

PathLike = Union[str, Path]

FORBIDDEN_JSON_KEYS = ("__proto__", "constructor", "prototype")
SKIPPED_DIRECTORIES = ("node_modules",)
ALLOWED_HIDDEN_DIRECTORIES = (".specify",)


def file_exists(path: PathLike) -> bool:
    """Return True if ``path`` exists and is readable."""
    return os.access(path, os.R_OK)


def read_file_safe(path: PathLike, max_bytes: int = DEFAULT_MAX_BYTES) -> str:
    """Read a UTF-8 text file, refusing anything larger than ``max_bytes``.

    Raises:
        FileAccessError: with reason ``not_found``, ``permission_denied``,
            ``too_large`` or ``invalid`` (not decodable as UTF-8).
    """
    file_path = Path(path)
    try:
        size = file_path.stat().st_size
        if size > max_bytes:
            raise FileAccessError(
                f"File too large: {size} bytes (max {max_bytes})",
                str(file_path),
                FileAccessError.TOO_LARGE,
            )
        return file_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise FileAccessError(f"File not found: {file_path}", str(file_path), FileAccessError.NOT_FOUND)
    except PermissionError:
        raise FileAccessError(f"Permission denied: {file_path}", str(file_path), FileAccessError.PERMISSION_DENIED)
    except UnicodeDecodeError as e:
        raise FileAccessError(f"File is not valid UTF-8: {file_path} ({e})", str(file_path), FileAccessError.INVALID)


def read_json_safe(path: PathLike, max_bytes: int = DEFAULT_MAX_BYTES) -> Any:
    """Read and decode a JSON file, rejecting prototype-pollution keys at the top level."""
    content = read_file_safe(path, max_bytes)
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError as e:
        raise FileAccessError(f"{path} is not valid JSON: {e}", str(path), FileAccessError.INVALID)

    if isinstance(parsed, dict):
        forbidden = [key for key in FORBIDDEN_JSON_KEYS if key in parsed]
        if forbidden:
            raise FileAccessError(
                f"JSON contains dangerous properties ({', '.join(forbidden)})",
                str(path),
                FileAccessError.INVALID,
            )
    return parsed


def find_files(
    directory: PathLike,
    patterns: Iterable[str],
    max_depth: int = 10,
    max_files: int = 10000,
) -> List[Path]:
    """Recursively collect files whose name contains any of ``patterns``.

    ``node_modules`` and hidden directories (except ``.specify``) are
    skipped. At most ``max_files`` files are examined and directories
    deeper than ``max_depth`` are not entered. Unreadable directories are
    skipped.
    """
    needles = list(patterns)
    results: List[Path] = []
    processed = 0

    def _search(current: Path, depth: int) -> None:
        nonlocal processed
        if depth > max_depth or processed >= max_files:
            return
        try:
            entries = sorted(os.scandir(current), key=lambda entry: entry.name)
        except OSError:
            return

        for entry in entries:
            if processed >= max_files:
                break
            if entry.is_dir(follow_symlinks=False):
                if entry.name in SKIPPED_DIRECTORIES:
                    continue
                if entry.name.startswith(".") and entry.name not in ALLOWED_HIDDEN_DIRECTORIES:
                    continue
                _search(Path(entry.path), depth + 1)
            elif entry.is_file():
                processed += 1
                if any(needle in entry.name for needle in needles):
                    results.append(Path(entry.path))

    _search(Path(directory), 0)
    return results


def count_files(directory: PathLike, patterns: Iterable[str]) -> int:
    """Number of files :func:`find_files` would return."""
    return len(find_files(directory, patterns))
