"""Write boundary for generated markdown artifacts.

All generated files go through :class:`FileWriter`, which refuses unsafe
destinations and writes atomically (temporary file in the target directory,
then rename).
"""

from __future__ import annotations

import hashlib
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Union

from .config import DEFAULT_MAX_BYTES
from .errors import FileWriteError

PathLike = Union[str, Path]

BLOCKED_ROOTS = ("/etc", "/sys", "/proc", "/dev")
BLOCKED_DIRECTORY_NAMES = ("node_modules", ".git")
BLOCKED_EXTENSIONS = (".exe", ".dll", ".so", ".dylib", ".sh", ".bat", ".cmd")
ALLOWED_EXTENSION = ".md"


@dataclass(frozen=True, slots=True)
class WriteResult:
    file_path: str
    bytes_written: int
    checksum: str

    def to_dict(self) -> Dict[str, object]:
        """Convert to dictionary representation."""
        return {
            "file_path": self.file_path,
            "bytes_written": self.bytes_written,
            "checksum": self.checksum,
        }


def validate_output_path(path: PathLike) -> Path:
    """Check that ``path`` is a safe markdown destination and return it.

    Raises:
        FileWriteError: relative path, traversal segments, a blocked
            directory, or a non-markdown extension.
    """
    raw = str(path)
    if not os.path.isabs(raw):
        raise FileWriteError(f"Path must be absolute: {raw}", raw, FileWriteError.INVALID)
    if os.path.normpath(raw) != raw:
        raise FileWriteError(f"Path contains directory traversal: {raw}", raw, FileWriteError.INVALID)

    candidate = Path(raw)
    for blocked in BLOCKED_ROOTS:
        if raw == blocked or raw.startswith(blocked + "/"):
            raise FileWriteError(f"Path is in blocked directory: {raw}", raw, FileWriteError.PERMISSION_DENIED)
    if any(part in BLOCKED_DIRECTORY_NAMES for part in candidate.parts):
        raise FileWriteError(f"Path is in blocked directory: {raw}", raw, FileWriteError.PERMISSION_DENIED)

    extension = candidate.suffix.lower()
    if extension in BLOCKED_EXTENSIONS:
        raise FileWriteError(f"File extension not allowed: {extension}", raw, FileWriteError.INVALID)
    if extension != ALLOWED_EXTENSION:
        raise FileWriteError(f"Only .md files allowed, got: {extension or '(none)'}", raw, FileWriteError.INVALID)

    return candidate


def validate_content(content: str, path: str = "", max_bytes: int = DEFAULT_MAX_BYTES) -> bytes:
    """Return ``content`` encoded as UTF-8 after checking it is writable."""
    if not content or not content.strip():
        raise FileWriteError("Content cannot be empty", path, FileWriteError.INVALID)
    if "\x00" in content:
        raise FileWriteError("Content contains null bytes", path, FileWriteError.INVALID)
    encoded = content.encode("utf-8")
    if len(encoded) > max_bytes:
        raise FileWriteError(
            f"Content too large: {len(encoded)} bytes (max {max_bytes})",
            path,
            FileWriteError.TOO_LARGE,
        )
    return encoded


class FileWriter:
    """Writes constitution, specification and plan files below a memory directory."""

    def __init__(self, output_dir: PathLike, max_bytes: int = DEFAULT_MAX_BYTES):
        self.output_dir = Path(output_dir).expanduser().resolve()
        self.max_bytes = max_bytes

    @property
    def specifications_dir(self) -> Path:
        return self.output_dir / "specifications"

    @property
    def plans_dir(self) -> Path:
        return self.output_dir / "plans"

    def write_constitution(self, content: str, file_name: str = "constitution.md") -> WriteResult:
        return self.write_file(self.output_dir / file_name, content)

    def write_spec(self, feature_id: str, slug: str, content: str) -> WriteResult:
        return self.write_file(self.specifications_dir / f"{feature_id}-{slug}.md", content)

    def write_plan(self, feature_id: str, slug: str, content: str) -> WriteResult:
        return self.write_file(self.plans_dir / f"{feature_id}-{slug}-impl-plan.md", content)

    def write_file(self, path: PathLike, content: str) -> WriteResult:
        """Validate and atomically write ``content`` to ``path``."""
        target = validate_output_path(path)
        encoded = validate_content(content, str(target), self.max_bytes)

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
            try:
                with os.fdopen(fd, "wb") as handle:
                    handle.write(encoded)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(temp_name, target)
            except BaseException:
                if os.path.exists(temp_name):
                    os.unlink(temp_name)
                raise
        except PermissionError as e:
            raise FileWriteError(f"Permission denied writing {target}: {e}", str(target), FileWriteError.PERMISSION_DENIED)
        except OSError as e:
            raise FileWriteError(f"Failed to write file {target}: {e}", str(target), FileWriteError.INVALID)

        return WriteResult(
            file_path=str(target),
            bytes_written=len(encoded),
            checksum=hashlib.sha256(encoded).hexdigest(),
        )
