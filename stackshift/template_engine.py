"""Mustache-like template rendering for generated markdown.

Supported syntax::

    {{name}}                              variable
    {{#if name}}...{{else}}...{{/if}}     conditional (else optional)
    {{#each name}}...{{/each}}            loop, with {{this}} and {{index}}

A template is tokenized once and parsed into a tree by a stack-based parser;
the tree is then evaluated against a chain of scopes. Loop iterations push a
scope holding the item's fields (or ``this`` for primitive items) plus
``index`` on top of the enclosing data.
"""

from __future__ import annotations

import json
import re
from collections import ChainMap
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from .config import DEFAULT_MAX_BYTES, DEFAULT_TEMPLATE_DIR
from .errors import TemplateError

TOKEN_PATTERN = re.compile(r"\{\{(#each\s+(\w+)|#if\s+(\w+)|else|/if|/each|(\w+))\}\}")
# A block tag alone on its line, with the line break that follows it
STANDALONE_BLOCK_PATTERN = re.compile(
    r"^[ \t]*(\{\{(?:#each\s+\w+|#if\s+\w+|else|/if|/each)\}\})[ \t]*\r?\n",
    re.MULTILINE,
)
LOOP_VARIABLES = ("this", "index")
DEFAULT_MAX_DEPTH = 32

_MISSING = object()


@dataclass(slots=True)
class _Text:
    value: str


@dataclass(slots=True)
class _Variable:
    name: str
    raw: str


@dataclass(slots=True)
class _Conditional:
    name: str
    then_branch: List[Any] = field(default_factory=list)
    else_branch: Optional[List[Any]] = None


@dataclass(slots=True)
class _Loop:
    name: str
    body: List[Any] = field(default_factory=list)


@dataclass(slots=True)
class _Output:
    parts: List[str] = field(default_factory=list)
    size: int = 0


def is_truthy(value: Any) -> bool:
    """Missing, None, False, 0 and "" are falsy; everything else, including [], is truthy."""
    if value is _MISSING or value is None or value is False:
        return False
    if isinstance(value, str):
        return value != ""
    if isinstance(value, (int, float)):
        return value != 0
    return True


def render_value(value: Any) -> str:
    """Stringify a resolved variable value."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ", ".join(render_value(item) for item in value)
    if isinstance(value, Mapping):
        return json.dumps(value, default=str)
    return str(value)


class TemplateEngine:
    """Loads and renders markdown templates."""

    def __init__(
        self,
        template_dir: Union[str, Path, None] = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        max_output_size: int = DEFAULT_MAX_BYTES,
        trim_blocks: bool = False,
    ):
        self.template_dir = Path(template_dir) if template_dir else DEFAULT_TEMPLATE_DIR
        self.max_depth = max_depth
        self.max_output_size = max_output_size
        self.trim_blocks = trim_blocks

    def load_template(self, template_name: str) -> str:
        """Read ``<template_dir>/<template_name>.md``.

        Raises:
            TemplateError: the template file does not exist or is unreadable.
        """
        path = self.template_dir / f"{template_name}.md"
        try:
            return path.read_text(encoding="utf-8")
        except OSError:
            raise TemplateError(f"Template not found: {template_name}", template_name)

    def render(self, template_name: str, data: Mapping[str, Any]) -> str:
        """Load a bundled template and populate it."""
        try:
            return self.populate(self.load_template(template_name), data)
        except TemplateError as e:
            if e.template_name is None:
                e.template_name = template_name
            raise

    def populate(self, template: str, data: Mapping[str, Any]) -> str:
        """Render ``template`` against ``data``.

        Raises:
            TemplateError: unterminated or mismatched blocks, nesting deeper
                than ``max_depth``, or output larger than ``max_output_size``.
        """
        tree = self.parse(template)
        output = _Output()
        self._evaluate(tree, ChainMap(dict(data)), output)
        return "".join(output.parts)

    def validate_template(self, template: str, data: Mapping[str, Any]) -> List[str]:
        """Return bare variables that would render unresolved, once each, in order of first use.

        A name is unresolved when it is absent from ``data`` or maps to None.
        """
        missing: List[str] = []
        for match in TOKEN_PATTERN.finditer(template):
            name = match.group(4)
            if name is None or name in LOOP_VARIABLES or name in missing:
                continue
            if data.get(name) is not None:
                continue
            missing.append(name)
        return missing

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def parse(self, template: str) -> List[Any]:
        """Tokenize ``template`` and build its block tree.

        With ``trim_blocks`` set, block tags that sit alone on a line drop
        that line's indentation and trailing line break.
        """
        if self.trim_blocks:
            template = STANDALONE_BLOCK_PATTERN.sub(r"\1", template)
        root: List[Any] = []
        # Each frame: (open block, list currently receiving children)
        stack: List[tuple] = []
        current = root
        position = 0

        for match in TOKEN_PATTERN.finditer(template):
            if match.start() > position:
                current.append(_Text(template[position:match.start()]))
            position = match.end()
            token = match.group(1)

            if match.group(2) or match.group(3):
                block = _Loop(match.group(2)) if match.group(2) else _Conditional(match.group(3))
                current.append(block)
                stack.append((block, current))
                if len(stack) > self.max_depth:
                    raise TemplateError(f"Template nesting exceeds maximum depth of {self.max_depth}")
                current = block.body if isinstance(block, _Loop) else block.then_branch
            elif token == "else":
                if not stack or not isinstance(stack[-1][0], _Conditional):
                    raise TemplateError("Unexpected {{else}} outside of {{#if}}")
                block = stack[-1][0]
                if block.else_branch is not None:
                    raise TemplateError(f"Duplicate {{{{else}}}} in {{{{#if {block.name}}}}}")
                block.else_branch = []
                current = block.else_branch
            elif token in ("/if", "/each"):
                expected = _Conditional if token == "/if" else _Loop
                if not stack or not isinstance(stack[-1][0], expected):
                    raise TemplateError(f"Unexpected {{{{{token}}}}}")
                _, current = stack.pop()
            else:
                current.append(_Variable(match.group(4), match.group(0)))

        if position < len(template):
            current.append(_Text(template[position:]))

        if stack:
            block = stack[-1][0]
            kind = "each" if isinstance(block, _Loop) else "if"
            raise TemplateError(f"Unclosed {{{{#{kind} {block.name}}}}}")
        return root

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _emit(self, text: str, output: "_Output") -> None:
        output.size += len(text)
        if output.size > self.max_output_size:
            raise TemplateError(f"Rendered output exceeds maximum size of {self.max_output_size} characters")
        output.parts.append(text)

    def _evaluate(self, nodes: List[Any], scope: ChainMap, output: "_Output") -> None:
        for node in nodes:
            if isinstance(node, _Text):
                self._emit(node.value, output)
            elif isinstance(node, _Variable):
                value = scope.get(node.name, _MISSING)
                if value is _MISSING or value is None:
                    self._emit(node.raw, output)
                else:
                    self._emit(render_value(value), output)
            elif isinstance(node, _Conditional):
                if is_truthy(scope.get(node.name, _MISSING)):
                    self._evaluate(node.then_branch, scope, output)
                elif node.else_branch is not None:
                    self._evaluate(node.else_branch, scope, output)
            else:
                items = scope.get(node.name, _MISSING)
                if not isinstance(items, (list, tuple)):
                    continue
                for index, item in enumerate(items):
                    self._evaluate(node.body, scope.new_child(self._item_scope(item, index)), output)

    @staticmethod
    def _item_scope(item: Any, index: int) -> Dict[str, Any]:
        if isinstance(item, Mapping):
            frame = dict(item)
        elif isinstance(item, (str, int, float, bool)):
            frame = {"this": item}
        else:
            frame = {}
        frame["index"] = index
        return frame
