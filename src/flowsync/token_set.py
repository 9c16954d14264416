"""Token-preserving YAML document.

The document keeps the original text next to the PyYAML node graph produced
by ``yaml.compose``. Every node carries start/end marks into that text, so a
structural edit is performed as a splice over the affected node's span and
the text is then recomposed. Bytes outside the spliced region never change:
comments, quoting, key order and indentation survive untouched.

Paths address nodes from the root: strings select mapping keys, integers
select sequence items, e.g. ``("tasks", "t1", "next", 0, "do")``.
"""

from __future__ import annotations

import bisect
import logging
import re
from collections.abc import Sequence
from typing import Any

import yaml

from flowsync.errors import YamlSyntaxError
from flowsync.range import Point, Range

logger = logging.getLogger(__name__)

DEFAULT_INDENT = 2

PathKey = str | int
Path = tuple[PathKey, ...]

_NO_WRAP = float("inf")
_COMMENT = re.compile(r"\s*#\s?(.*?)\s*$")


def _syntax_error(error: yaml.YAMLError) -> YamlSyntaxError:
    if isinstance(error, yaml.MarkedYAMLError):
        mark = error.problem_mark or error.context_mark
        point = Point(mark.line, mark.column) if mark is not None else None
        message = error.problem or error.context or str(error)
        return YamlSyntaxError(message, point)
    return YamlSyntaxError(str(error))


def _compose(text: str) -> yaml.Node | None:
    try:
        return yaml.compose(text, Loader=yaml.SafeLoader)
    except yaml.YAMLError as e:
        raise _syntax_error(e) from e


def construct(node: yaml.Node) -> Any:
    """Build plain Python data from a composed node."""

    loader = yaml.SafeLoader("")
    try:
        return loader.construct_document(node)
    except yaml.YAMLError as e:
        raise _syntax_error(e) from e
    finally:
        loader.dispose()


class _BlockDumper(yaml.SafeDumper):
    """Dumper that indents sequences nested in mappings."""

    def increase_indent(self, flow: bool = False, indentless: bool = False) -> None:
        return super().increase_indent(flow, False)


def render_inline(value: Any) -> str:
    if isinstance(value, str) and "\n" in value:
        dumped = yaml.dump(value, Dumper=yaml.SafeDumper, default_style='"', width=_NO_WRAP)
    else:
        dumped = yaml.dump(
            value,
            Dumper=yaml.SafeDumper,
            default_flow_style=True,
            sort_keys=False,
            width=_NO_WRAP,
            allow_unicode=True,
        )
    text = dumped.strip()
    # Bare scalars are emitted with an explicit document end marker.
    if text.endswith("\n..."):
        text = text[: -len("\n...")].rstrip()
    return text


def render_block(value: Any, column: int, indent: int) -> str:
    dumped = yaml.dump(
        value,
        Dumper=_BlockDumper,
        default_flow_style=False,
        sort_keys=False,
        indent=indent,
        width=_NO_WRAP,
        allow_unicode=True,
    )
    pad = " " * column
    lines = dumped.splitlines(keepends=True)
    return "".join(pad + line if line.strip() else line for line in lines).rstrip("\n")


def _is_block_value(value: Any) -> bool:
    return isinstance(value, (dict, list)) and len(value) > 0


def _is_collection(node: yaml.Node) -> bool:
    return isinstance(node, (yaml.MappingNode, yaml.SequenceNode))


def _is_block_collection(node: yaml.Node) -> bool:
    return _is_collection(node) and not node.flow_style and bool(node.value)


def _is_empty_scalar(node: yaml.Node) -> bool:
    return isinstance(node, yaml.ScalarNode) and node.start_mark.index == node.end_mark.index


class TokenSet:
    """A YAML document that can be edited structurally with minimal diffs.

    Args:
        text: Source YAML.
        indent: Indentation width for new content. Detected from the
            document when omitted.
        default_indent: Fallback width when nothing can be detected.

    Raises:
        YamlSyntaxError: If ``text`` is not a single valid YAML document.
    """

    def __init__(
        self, text: str, indent: int | None = None, default_indent: int = DEFAULT_INDENT
    ) -> None:
        self.text = ""
        self.root: yaml.Node | None = None
        self._line_starts: list[int] = [0]
        self._default_indent = default_indent
        self._load(text)
        self.indent = indent or self._detect_indent() or default_indent

    def __repr__(self) -> str:
        return f"TokenSet(indent={self.indent}, lines={len(self._line_starts)})"

    def copy(self) -> TokenSet:
        return TokenSet(self.text, indent=self.indent, default_indent=self._default_indent)

    def to_text(self) -> str:
        return self.text

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def _lookup(self, path: Sequence[PathKey]) -> tuple[yaml.Node | None, yaml.Node] | None:
        key_node: yaml.Node | None = None
        node = self.root
        for segment in path:
            if node is None:
                return None
            if isinstance(node, yaml.MappingNode):
                for k, v in node.value:
                    if isinstance(k, yaml.ScalarNode) and k.value == str(segment):
                        key_node, node = k, v
                        break
                else:
                    return None
            elif isinstance(node, yaml.SequenceNode) and isinstance(segment, int):
                if not 0 <= segment < len(node.value):
                    return None
                key_node, node = None, node.value[segment]
            else:
                return None
        if node is None:
            return None
        return key_node, node

    def get(self, path: Sequence[PathKey]) -> yaml.Node | None:
        found = self._lookup(path)
        return found[1] if found is not None else None

    def get_key(self, path: Sequence[PathKey]) -> yaml.Node | None:
        found = self._lookup(path)
        return found[0] if found is not None else None

    def has(self, path: Sequence[PathKey]) -> bool:
        return self._lookup(path) is not None

    def get_value(self, path: Sequence[PathKey], default: Any = None) -> Any:
        node = self.get(path)
        if node is None:
            return default
        return construct(node)

    def entries(self, path: Sequence[PathKey]) -> list[tuple[yaml.Node, yaml.Node]]:
        """Key/value node pairs of a mapping, in document order.

        Duplicate keys are kept so callers can report them.
        """

        node = self.get(path)
        if not isinstance(node, yaml.MappingNode):
            return []
        return list(node.value)

    def mark_for(self, path: Sequence[PathKey]) -> Point | None:
        """Start of the deepest node that exists along ``path``."""

        if self.root is None:
            return None
        best = self.root.start_mark
        for depth in range(1, len(path) + 1):
            node = self.get(path[:depth])
            if node is None:
                break
            best = node.start_mark
        return Point(best.line, best.column)

    def span(self, path: Sequence[PathKey]) -> Range:
        """Source span of an entry, from its key (or dash) to its last content."""

        found = self._lookup(path)
        if found is None:
            raise KeyError(tuple(path))
        key_node, node = found
        if key_node is not None:
            start = key_node.start_mark.index
        elif node is not self.root:
            start = self._dash_index(node)
        else:
            start = node.start_mark.index
        end = self._end_index(node)
        return Range(*self._point(start), *self._point(end), type="task")

    def line_comment(self, path: Sequence[PathKey]) -> str | None:
        """Trailing comment on the line of the key at ``path``."""

        start, stop = self._comment_scope(path)
        match = _COMMENT.search(self.text, start, stop)
        if match is None:
            return None
        return match.group(1)

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def set(self, path: Sequence[PathKey], value: Any) -> None:
        """Set the value at ``path``, creating missing parents."""

        path = tuple(path)
        found = self._lookup(path)
        if found is not None:
            parent_node = self.get(path[:-1]) if path else None
            in_flow = _is_collection(parent_node) and bool(parent_node.flow_style)
            self._replace(found[0], found[1], value, in_flow)
            return

        if not path:
            rendered = (
                render_block(value, 0, self.indent)
                if _is_block_value(value)
                else render_inline(value)
            )
            prefix = self.text if not self.text or self.text.endswith("\n") else self.text + "\n"
            self._splice(0, len(self.text), prefix + rendered + "\n")
            return

        parent_path, segment = path[:-1], path[-1]
        parent = self._lookup(parent_path)
        if parent is None:
            if isinstance(segment, int):
                if segment != 0:
                    raise KeyError(path)
                self.set(parent_path, [value])
            else:
                self.set(parent_path, {segment: value})
            return

        parent_node = parent[1]
        if isinstance(segment, str) and isinstance(parent_node, yaml.MappingNode):
            if _is_block_collection(parent_node):
                self._append_entry(parent_node, segment, value)
                return
        elif isinstance(segment, int) and isinstance(parent_node, yaml.SequenceNode):
            if _is_block_collection(parent_node) and segment == len(parent_node.value):
                self._append_item(parent_node, value)
                return

        current = construct(parent_node)
        updated: Any
        if isinstance(segment, str) and (current is None or isinstance(current, dict)):
            updated = dict(current or {})
            updated[segment] = value
        elif isinstance(segment, int) and (current is None or isinstance(current, list)):
            items = list(current or [])
            if segment != len(items):
                raise KeyError(path)
            updated = items + [value]
        else:
            raise TypeError(f"Cannot set {path!r}: parent is {type(current).__name__}")
        self.set(parent_path, updated)

    def delete(self, path: Sequence[PathKey]) -> None:
        """Remove a mapping entry or sequence item, including its lines."""

        path = tuple(path)
        found = self._lookup(path)
        if found is None or not path:
            raise KeyError(path)
        key_node, node = found
        parent_path = path[:-1]
        parent_node = self.get(parent_path)
        assert parent_node is not None

        if parent_node.flow_style or len(parent_node.value) == 1:
            self.set(parent_path, self._without(construct(parent_node), path[-1]))
            return

        start = key_node.start_mark.index if key_node is not None else self._dash_index(node)
        line = self._line_of(start)
        if self.text[self._line_starts[line] : start].strip():
            # Shares its line with a parent token (``- key: ...``).
            self.set(parent_path, self._without(construct(parent_node), path[-1]))
            return

        begin = self._line_starts[line]
        stop = self._line_end(self._line_of(self._end_index(node)))
        if stop < len(self.text):
            stop += 1
        elif begin > 0:
            # Last line of a file without a trailing newline.
            begin -= 1
        self._splice(begin, stop, "")

    def rename_key(self, path: Sequence[PathKey], new_key: str) -> None:
        """Rewrite only the key token at ``path``."""

        key_node = self.get_key(path)
        if key_node is None:
            raise KeyError(tuple(path))
        self._splice(key_node.start_mark.index, key_node.end_mark.index, render_inline(new_key))

    def set_line_comment(self, path: Sequence[PathKey], comment: str | None) -> None:
        """Replace (or add, or with ``None`` remove) the comment on a key's line."""

        start, stop = self._comment_scope(path)
        match = _COMMENT.search(self.text, start, stop)
        if match is not None:
            begin = match.start()
        else:
            begin = start + len(self.text[start:stop].rstrip())
        replacement = f"  # {comment}" if comment is not None else ""
        self._splice(begin, stop, replacement)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(self, text: str) -> None:
        root = _compose(text)
        self.text = text
        self.root = root
        self._line_starts = [0] + [m.end() for m in re.finditer("\n", text)]

    def _splice(self, start: int, end: int, replacement: str) -> None:
        logger.debug("Splicing [%d:%d] with %r", start, end, replacement)
        self._load(self.text[:start] + replacement + self.text[end:])

    def _line_of(self, index: int) -> int:
        return bisect.bisect_right(self._line_starts, index) - 1

    def _line_end(self, line: int) -> int:
        if line + 1 < len(self._line_starts):
            return self._line_starts[line + 1] - 1
        return len(self.text)

    def _point(self, index: int) -> Point:
        line = self._line_of(index)
        return Point(line, index - self._line_starts[line])

    def _end_index(self, node: yaml.Node) -> int:
        """Index just past the node's last content character."""

        if isinstance(node, yaml.ScalarNode):
            end = node.end_mark.index
            if node.style in ("|", ">"):
                while end > node.start_mark.index and self.text[end - 1] in " \t\r\n":
                    end -= 1
            return end
        if node.flow_style or not node.value:
            return node.end_mark.index
        last = node.value[-1]
        return self._end_index(last[1] if isinstance(node, yaml.MappingNode) else last)

    def _dash_index(self, item: yaml.Node) -> int:
        index = item.start_mark.index - 1
        while index >= 0 and self.text[index] in " \t\r\n":
            index -= 1
        if index < 0 or self.text[index] != "-":
            raise ValueError("Sequence item is not in block style")
        return index

    def _colon_index(self, key_node: yaml.Node) -> int:
        return self.text.index(":", key_node.end_mark.index)

    def _comment_scope(self, path: Sequence[PathKey]) -> tuple[int, int]:
        found = self._lookup(path)
        if found is None or found[0] is None:
            raise KeyError(tuple(path))
        key_node, node = found
        line = key_node.start_mark.line
        start = key_node.end_mark.index
        value_end = self._end_index(node)
        if self._line_of(value_end) == line:
            start = max(start, value_end)
        return start, self._line_end(line)

    def _detect_indent(self) -> int | None:
        queue = [self.root]
        while queue:
            node = queue.pop(0)
            if isinstance(node, yaml.MappingNode) and not node.flow_style:
                for key, value in node.value:
                    if _is_block_collection(value) and isinstance(value, yaml.MappingNode):
                        width = value.value[0][0].start_mark.column - key.start_mark.column
                        if width > 0:
                            return width
                    queue.append(value)
            elif isinstance(node, yaml.SequenceNode):
                queue.extend(node.value)
        return None

    @staticmethod
    def _without(current: Any, segment: PathKey) -> Any:
        if isinstance(current, dict):
            return {k: v for k, v in current.items() if str(k) != str(segment)}
        items = list(current)
        del items[int(segment)]
        return items

    def _render_entry(self, key: str, value: Any, column: int) -> str:
        head = " " * column + render_inline(key) + ":"
        if _is_block_value(value):
            return head + "\n" + render_block(value, column + self.indent, self.indent)
        return head + " " + render_inline(value)

    def _render_item(self, value: Any, column: int) -> str:
        if _is_block_value(value):
            body = render_block(value, column + 2, self.indent)
            return " " * column + "- " + body[column + 2 :]
        return " " * column + "- " + render_inline(value)

    def _append_entry(self, mapping: yaml.MappingNode, key: str, value: Any) -> None:
        column = mapping.value[0][0].start_mark.column
        at = self._line_end(self._line_of(self._end_index(mapping)))
        self._splice(at, at, "\n" + self._render_entry(key, value, column))

    def _append_item(self, sequence: yaml.SequenceNode, value: Any) -> None:
        dash = self._dash_index(sequence.value[0])
        column = dash - self._line_starts[self._line_of(dash)]
        at = self._line_end(self._line_of(self._end_index(sequence)))
        self._splice(at, at, "\n" + self._render_item(value, column))

    def _replace(
        self, key_node: yaml.Node | None, node: yaml.Node, value: Any, in_flow: bool = False
    ) -> None:
        end = self._end_index(node)
        keep_flow = _is_collection(node) and node.flow_style and bool(node.value)
        inline = in_flow or keep_flow or not _is_block_value(value)

        if key_node is None:
            # Sequence item or document root: the first line starts at the node.
            # An empty item starts right after its dash.
            pad = " " if _is_empty_scalar(node) and node is not self.root else ""
            if inline:
                self._splice(node.start_mark.index, end, pad + render_inline(value))
            else:
                column = node.start_mark.column + len(pad)
                rendered = render_block(value, column, self.indent)
                self._splice(node.start_mark.index, end, pad + rendered[column:])
            return

        if inline and not _is_block_collection(node):
            rendered = render_inline(value)
            if _is_empty_scalar(node):
                at = self._colon_index(key_node) + 1
                self._splice(at, at, " " + rendered)
            else:
                self._splice(node.start_mark.index, end, rendered)
            return

        # Clear the old value first; the rest of the key line (a comment) stays put.
        line = key_node.start_mark.line
        if _is_block_collection(node):
            self._splice(self._line_end(line), end, "")
        else:
            self._splice(self._colon_index(key_node) + 1, end, "")

        if inline:
            at = self._colon_index(key_node) + 1
            self._splice(at, at, " " + render_inline(value))
        else:
            at = self._line_end(line)
            rendered = render_block(value, key_node.start_mark.column + self.indent, self.indent)
            self._splice(at, at, "\n" + rendered)
