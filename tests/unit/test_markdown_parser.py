"""Unit tests for the markdown parser."""

import re

import pytest

from stackshift.errors import ParseError
from stackshift.markdown_parser import (
    Blockquote,
    CodeBlock,
    Heading,
    HorizontalRule,
    ListItem,
    MarkdownParser,
    NodeType,
    Paragraph,
    Section,
    parse,
)


class TestParse:
    """Test block classification."""

    @pytest.fixture
    def parser(self):
        return MarkdownParser()

    def test_headings_with_levels(self, parser):
        """Test ATX headings keep their level and trimmed text."""
        nodes = parser.parse("# Title\n### Sub  section  \n")
        assert nodes == [
            Heading(text="Title", line_number=1, level=1),
            Heading(text="Sub  section", line_number=2, level=3),
        ]

    def test_paragraph_lines_are_separate_nodes(self, parser):
        """Test each non-empty line becomes its own paragraph."""
        nodes = parser.parse("First line\nSecond line\n\nThird")
        assert [type(node) for node in nodes] == [Paragraph, Paragraph, Paragraph]
        assert [node.line_number for node in nodes] == [1, 2, 4]

    def test_list_items(self, parser):
        """Test unordered, ordered and nested list items."""
        nodes = parser.parse("- one\n* two\n1. three\n    + nested")
        assert all(isinstance(node, ListItem) for node in nodes)
        assert [node.text for node in nodes] == ["one", "two", "three", "nested"]
        assert [node.ordered for node in nodes] == [False, False, True, False]
        assert nodes[3].indent_level == 2

    def test_horizontal_rules_and_blockquotes(self, parser):
        """Test rules win over list markers and quotes strip the marker."""
        nodes = parser.parse("---\n***\n> quoted text")
        assert isinstance(nodes[0], HorizontalRule)
        assert isinstance(nodes[1], HorizontalRule)
        assert nodes[2] == Blockquote(text="quoted text", line_number=3)

    def test_horizontal_rule_node(self, parser):
        """Test a rule carries empty text and its line number."""
        nodes = parser.parse("intro\n\n___")
        assert nodes[1] == HorizontalRule(text="", line_number=3)
        assert nodes[1].to_dict() == {"type": "horizontal-rule", "text": "", "line_number": 3}

    def test_code_block_keeps_raw_content(self, parser):
        """Test fenced content is not classified as markdown."""
        nodes = parser.parse("```python\n# not a heading\n- not a list\n```\nafter")
        assert nodes[0] == CodeBlock(text="# not a heading\n- not a list", line_number=1, language="python")
        assert nodes[1] == Paragraph(text="after", line_number=5)

    def test_code_block_without_language(self, parser):
        """Test a bare fence has no language."""
        nodes = parser.parse("```\ncode\n```")
        assert nodes[0].language is None

    def test_unclosed_code_block_raises(self, parser):
        """Test an unterminated fence reports the opening line."""
        with pytest.raises(ParseError) as exc_info:
            parser.parse("intro\n\n```js\nconst a = 1;\n")
        assert exc_info.value.line_number == 3
        assert "Unclosed code block" in str(exc_info.value)
        assert "line 3" in str(exc_info.value)

    def test_odd_fence_count_raises_after_closed_blocks(self, parser):
        """Test a dangling fence fails even when earlier fences closed."""
        content = "```\none\n```\n\ntext\n\n```sh\ntwo\n```\n\n```\nthree\n"
        with pytest.raises(ParseError) as exc_info:
            parser.parse(content)
        assert exc_info.value.line_number == 11

    def test_crlf_line_endings(self, parser):
        """Test carriage returns are stripped."""
        nodes = parser.parse("# Title\r\nText\r\n")
        assert nodes[0].text == "Title"
        assert nodes[1].text == "Text"

    def test_empty_document(self, parser):
        """Test empty input yields no nodes."""
        assert parser.parse("") == []
        assert parser.parse("\n\n  \n") == []

    def test_module_level_parse(self):
        """Test the shared parser helper."""
        assert parse("## Hello") == [Heading(text="Hello", line_number=1, level=2)]

    def test_node_to_dict(self):
        """Test node serialization includes the type tag."""
        heading = Heading(text="Title", line_number=4, level=2)
        assert heading.to_dict() == {"type": "heading", "text": "Title", "line_number": 4, "level": 2}
        assert Paragraph(text="x", line_number=1).node_type == NodeType.PARAGRAPH


class TestSections:
    """Test section queries over a parsed document."""

    DOCUMENT = """# Project

## Overview

Intro text.

### Details

- detail one
- detail two

---

## Features

### Login

Users can log in.
"""

    @pytest.fixture
    def parser(self):
        return MarkdownParser()

    @pytest.fixture
    def nodes(self, parser):
        return parser.parse(self.DOCUMENT)

    def test_find_section_stops_at_same_level(self, parser, nodes):
        """Test section children end at the next heading of equal rank."""
        section = parser.find_section(nodes, r"^Overview$")
        assert isinstance(section, Section)
        assert section.title == "Overview"
        assert section.level == 2
        texts = [node.text for node in section.children]
        assert "Intro text." in texts
        assert "Details" in texts
        assert "Features" not in texts

    def test_find_section_is_case_insensitive(self, parser, nodes):
        """Test title patterns ignore case, for strings and compiled patterns."""
        assert parser.find_section(nodes, "overview") is not None
        assert parser.find_section(nodes, re.compile("^LOGIN$")) is not None

    def test_find_section_missing(self, parser, nodes):
        """Test unknown titles return None."""
        assert parser.find_section(nodes, "^Pricing$") is None
        assert parser.find_heading_index(nodes, "^Pricing$") is None

    def test_extract_headings_by_level(self, parser, nodes):
        """Test only headings of the exact level are returned."""
        assert [h.text for h in parser.extract_headings(nodes, 2)] == ["Overview", "Features"]
        assert [h.text for h in parser.extract_headings(nodes, 3)] == ["Details", "Login"]

    def test_extract_list_items(self, parser, nodes):
        """Test list items flatten from sections, nodes and node lists."""
        section = parser.find_section(nodes, "^Details$")
        assert parser.extract_list_items(section) == ["detail one", "detail two"]
        assert parser.extract_list_items(section.children[0]) == ["detail one"]
        assert parser.extract_list_items(nodes) == ["detail one", "detail two"]

    def test_section_text(self, parser, nodes):
        """Test section text renders list items and skips rules."""
        section = parser.find_section(nodes, "^Details$")
        assert parser.section_text(section) == "- detail one\n- detail two"
