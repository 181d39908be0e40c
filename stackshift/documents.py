"""Loading reverse-engineering documents from disk."""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from .config import DEFAULT_MAX_BYTES
from .file_utils import file_exists, read_file_safe
from .markdown_parser import MarkdownParser
from .models import DocumentMetadata, MarkdownDocument
from .stackshift_logging import log_document_parsed


def parse_document(
    content: str,
    path: Union[str, Path] = "document.md",
    parser: Optional[MarkdownParser] = None,
    last_modified: Optional[str] = None,
) -> MarkdownDocument:
    """Parse markdown ``content`` into a document without touching the filesystem."""
    document_path = Path(path)
    encoded = content.encode("utf-8")
    nodes = (parser or MarkdownParser()).parse(content)
    metadata = DocumentMetadata(
        file_name=document_path.name,
        file_size=len(encoded),
        last_modified=last_modified or datetime.now(timezone.utc).isoformat(),
        checksum=hashlib.sha256(encoded).hexdigest(),
    )
    return MarkdownDocument(path=document_path, content=content, nodes=tuple(nodes), metadata=metadata)


def load_document(
    path: Union[str, Path],
    parser: Optional[MarkdownParser] = None,
    max_bytes: int = DEFAULT_MAX_BYTES,
) -> MarkdownDocument:
    """Read and parse a markdown file.

    Raises:
        FileAccessError: the file is missing, unreadable or too large.
        ParseError: the markdown has an unterminated code fence.
    """
    document_path = Path(path)
    content = read_file_safe(document_path, max_bytes)
    modified = datetime.fromtimestamp(document_path.stat().st_mtime, tz=timezone.utc).isoformat()
    document = parse_document(content, document_path, parser, last_modified=modified)
    log_document_parsed(str(document_path), len(document.nodes))
    return document


def load_optional_document(
    path: Union[str, Path],
    parser: Optional[MarkdownParser] = None,
    max_bytes: int = DEFAULT_MAX_BYTES,
) -> Optional[MarkdownDocument]:
    """Like :func:`load_document`, but ``None`` when the file does not exist."""
    if not file_exists(path):
        return None
    return load_document(path, parser, max_bytes)
