"""Lightweight block-level markdown parser.

Only the subset of markdown used by the reverse-engineering documents is
recognised: ATX headings, paragraphs, list items, fenced code blocks,
blockquotes and horizontal rules. The result is a flat node sequence;
sections are computed on demand by comparing heading levels.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Iterable, List, Optional, Pattern, Sequence, Union

from .errors import ParseError


class NodeType(str, Enum):
    """Closed set of block node kinds."""

    HEADING = "heading"
    PARAGRAPH = "paragraph"
    LIST_ITEM = "list-item"
    CODE_BLOCK = "code-block"
    BLOCKQUOTE = "blockquote"
    HORIZONTAL_RULE = "horizontal-rule"


@dataclass(frozen=True, slots=True)
class MarkdownNode:
    """A single block of a parsed document."""

    text: str
    line_number: int

    node_type: ClassVar[NodeType]

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {"type": self.node_type.value, "text": self.text, "line_number": self.line_number}


@dataclass(frozen=True, slots=True)
class Heading(MarkdownNode):
    level: int = 1

    node_type: ClassVar[NodeType] = NodeType.HEADING

    def to_dict(self) -> dict:
        data = MarkdownNode.to_dict(self)
        data["level"] = self.level
        return data


@dataclass(frozen=True, slots=True)
class Paragraph(MarkdownNode):
    node_type: ClassVar[NodeType] = NodeType.PARAGRAPH


@dataclass(frozen=True, slots=True)
class ListItem(MarkdownNode):
    ordered: bool = False
    indent_level: int = 0

    node_type: ClassVar[NodeType] = NodeType.LIST_ITEM

    def to_dict(self) -> dict:
        data = MarkdownNode.to_dict(self)
        data["ordered"] = self.ordered
        data["indent_level"] = self.indent_level
        return data


@dataclass(frozen=True, slots=True)
class CodeBlock(MarkdownNode):
    language: Optional[str] = None

    node_type: ClassVar[NodeType] = NodeType.CODE_BLOCK

    def to_dict(self) -> dict:
        data = MarkdownNode.to_dict(self)
        data["language"] = self.language
        return data


@dataclass(frozen=True, slots=True)
class Blockquote(MarkdownNode):
    node_type: ClassVar[NodeType] = NodeType.BLOCKQUOTE


@dataclass(frozen=True, slots=True)
class HorizontalRule(MarkdownNode):
    node_type: ClassVar[NodeType] = NodeType.HORIZONTAL_RULE


@dataclass(slots=True)
class Section:
    """A heading plus every node up to the next heading of equal or higher rank."""

    heading: Heading
    children: List[MarkdownNode] = field(default_factory=list)

    @property
    def title(self) -> str:
        return self.heading.text

    @property
    def level(self) -> int:
        return self.heading.level


TitlePattern = Union[str, Pattern[str]]

_FENCE = "```"
_HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.+)$")
_RULE_PATTERN = re.compile(r"^(-{3,}|\*{3,}|_{3,})$")
_BLOCKQUOTE_PATTERN = re.compile(r"^>\s*(.*)$")
_LIST_PATTERN = re.compile(r"^(\s*)([-*+]|\d+\.)\s+(.+)$")


def _compile(pattern: TitlePattern) -> Pattern[str]:
    if isinstance(pattern, str):
        return re.compile(pattern, re.IGNORECASE)
    if not pattern.flags & re.IGNORECASE:
        return re.compile(pattern.pattern, pattern.flags | re.IGNORECASE)
    return pattern


class MarkdownParser:
    """Convert markdown text into a flat sequence of typed block nodes."""

    def parse(self, content: str) -> List[MarkdownNode]:
        """Parse markdown content.

        Raises:
            ParseError: a code fence was opened and never closed. The error
                carries the line number of the opening fence.
        """
        nodes: List[MarkdownNode] = []
        fence_start: Optional[int] = None
        fence_language: Optional[str] = None
        fence_lines: List[str] = []

        for index, raw_line in enumerate(content.split("\n")):
            line = raw_line.rstrip("\r")
            line_number = index + 1

            if line.startswith(_FENCE):
                if fence_start is None:
                    fence_start = line_number
                    fence_language = line[len(_FENCE):].strip() or None
                    fence_lines = []
                else:
                    nodes.append(CodeBlock(
                        text="\n".join(fence_lines),
                        line_number=fence_start,
                        language=fence_language,
                    ))
                    fence_start = None
                    fence_language = None
                continue

            if fence_start is not None:
                fence_lines.append(line)
                continue

            node = self._classify(line, line_number)
            if node is not None:
                nodes.append(node)

        if fence_start is not None:
            raise ParseError("Unclosed code block", fence_start)

        return nodes

    def _classify(self, line: str, line_number: int) -> Optional[MarkdownNode]:
        heading = _HEADING_PATTERN.match(line)
        if heading:
            return Heading(text=heading.group(2).strip(), line_number=line_number, level=len(heading.group(1)))

        stripped = line.strip()
        if _RULE_PATTERN.match(stripped):
            return HorizontalRule(text="", line_number=line_number)

        quote = _BLOCKQUOTE_PATTERN.match(line)
        if quote:
            return Blockquote(text=quote.group(1), line_number=line_number)

        item = _LIST_PATTERN.match(line)
        if item:
            return ListItem(
                text=item.group(3).strip(),
                line_number=line_number,
                ordered=item.group(2)[0].isdigit(),
                indent_level=len(item.group(1)) // 2,
            )

        if stripped:
            return Paragraph(text=stripped, line_number=line_number)
        return None

    # ------------------------------------------------------------------
    # Section queries
    # ------------------------------------------------------------------

    def find_section(self, nodes: Sequence[MarkdownNode], title_pattern: TitlePattern) -> Optional[Section]:
        """Find the first heading matching ``title_pattern`` (case-insensitive).

        The section's children are every following node up to, but excluding,
        the next heading whose level is less than or equal to the match.
        """
        pattern = _compile(title_pattern)
        start = self.find_heading_index(nodes, pattern)
        if start is None:
            return None

        heading = nodes[start]
        children: List[MarkdownNode] = []
        for node in nodes[start + 1:]:
            if isinstance(node, Heading) and node.level <= heading.level:
                break
            children.append(node)
        return Section(heading=heading, children=children)

    def find_heading_index(self, nodes: Sequence[MarkdownNode], title_pattern: TitlePattern) -> Optional[int]:
        """Return the index of the first heading matching ``title_pattern``."""
        pattern = _compile(title_pattern)
        for index, node in enumerate(nodes):
            if isinstance(node, Heading) and pattern.search(node.text):
                return index
        return None

    def extract_headings(self, nodes: Iterable[MarkdownNode], level: int) -> List[Heading]:
        """Return every heading of exactly ``level``."""
        return [node for node in nodes if isinstance(node, Heading) and node.level == level]

    def extract_list_items(self, source: Union[Section, MarkdownNode, Iterable[MarkdownNode]]) -> List[str]:
        """Flatten a node list, a section, or a single node to list item text."""
        if isinstance(source, Section):
            nodes: Iterable[MarkdownNode] = source.children
        elif isinstance(source, MarkdownNode):
            nodes = [source]
        else:
            nodes = source
        return [node.text for node in nodes if isinstance(node, ListItem)]

    def section_text(self, section: Union[Section, Iterable[MarkdownNode]]) -> str:
        """Join the textual content of a section's children, one block per line."""
        nodes = section.children if isinstance(section, Section) else section
        parts: List[str] = []
        for node in nodes:
            if isinstance(node, ListItem):
                parts.append(f"- {node.text}")
            elif isinstance(node, HorizontalRule):
                continue
            else:
                parts.append(node.text)
        return "\n".join(parts)


_default_parser = MarkdownParser()


def parse(content: str) -> List[MarkdownNode]:
    """Parse ``content`` with a shared parser instance."""
    return _default_parser.parse(content)
