"""
Markup scanner for skill documents.

Skill documents are markdown with a small vocabulary of XML-like block tags
(<intake>, <routing>, <step>, ...). Only the known tag names are treated as
structure; any other angle-bracket text, and every tag inside a fenced code
block or inline code span, is left alone as content.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional, Union

import yaml

from .errors import ManifestError

BLOCK_TAGS = frozenset({
	"intake",
	"routing",
	"objective",
	"process",
	"required_reading",
	"step",
	"branch",
	"case",
	"otherwise",
	"success_criteria",
})

_TAG_RE = re.compile(
	r"<(/?)([a-z_]+)((?:\s+[A-Za-z_][\w-]*(?:\s*=\s*\"[^\"]*\")?)*)\s*(/?)>"
)
_ATTR_RE = re.compile(r"([A-Za-z_][\w-]*)(?:\s*=\s*\"([^\"]*)\")?")
_FENCE_RE = re.compile(r"^(```|~~~)[^\n]*\n.*?(?:^\1[ \t]*$|\Z)", re.MULTILINE | re.DOTALL)
_FRONTMATTER_RE = re.compile(r"^---\s*\n(.*?)\n---\s*(?:\n(.*))?$", re.DOTALL)
_LIST_MARKER_RE = re.compile(r"^(?:[-*+]|\d+[.)])\s+(?:\[[ xX]\]\s*)?")
_PATH_RE = re.compile(
	r"(?<![\w/.-])((?:[\w.-]+/)*[\w.-]+\."
	r"(?:md|markdown|txt|ya?ml|json|toml|html|css|js|ts|tsx|py|sh|sql|env|example))(?![\w/])"
)


@dataclass
class Node:
	"""A tag block and its children (nested nodes and raw text)."""
	name: str
	attrs: dict[str, str] = field(default_factory=dict)
	children: list[Union["Node", str]] = field(default_factory=list)
	line: int = 0

	@property
	def text(self) -> str:
		"""Own text content, excluding nested blocks."""
		return "".join(c for c in self.children if isinstance(c, str)).strip()

	def nodes(self) -> Iterator["Node"]:
		"""Iterate direct child nodes."""
		for child in self.children:
			if isinstance(child, Node):
				yield child

	def find(self, name: str) -> Optional["Node"]:
		"""First direct child with the given tag name."""
		for node in self.nodes():
			if node.name == name:
				return node
		return None

	def find_all(self, name: str) -> list["Node"]:
		"""All direct children with the given tag name."""
		return [node for node in self.nodes() if node.name == name]

	def has_flag(self, name: str) -> bool:
		"""True if a bare attribute (e.g. ``skip``) or a truthy value is set."""
		if name not in self.attrs:
			return False
		return self.attrs[name].strip().lower() not in ("false", "no", "0")


def _fence_spans(text: str) -> list[tuple[int, int]]:
	return [(m.start(), m.end()) for m in _FENCE_RE.finditer(text)]


def _in_spans(pos: int, spans: list[tuple[int, int]]) -> bool:
	return any(start <= pos < end for start, end in spans)


def _parse_attrs(attr_text: str) -> dict[str, str]:
	attrs: dict[str, str] = {}
	for match in _ATTR_RE.finditer(attr_text or ""):
		key, value = match.group(1), match.group(2)
		attrs[key.lower()] = value if value is not None else ""
	return attrs


def parse_blocks(text: str, source: str = "") -> Node:
	"""
	Parse known block tags into a tree.

	Args:
		text: Document body (frontmatter already removed)
		source: Path used in error messages

	Returns:
		A root Node named "document"

	Raises:
		ManifestError: On a stray closing tag or an unclosed block
	"""
	fences = _fence_spans(text)
	root = Node("document")
	stack = [root]
	pos = 0

	for match in _TAG_RE.finditer(text):
		closing, name, attr_text, self_closing = match.groups()
		start = match.start()
		if name not in BLOCK_TAGS or _in_spans(start, fences):
			continue
		if start > 0 and text[start - 1] == "`":
			continue

		if start > pos:
			stack[-1].children.append(text[pos:start])
		pos = match.end()
		line = text.count("\n", 0, start) + 1

		if closing:
			if len(stack) == 1 or stack[-1].name != name:
				raise ManifestError(f"unexpected </{name}> at line {line}", source)
			stack.pop()
			continue

		node = Node(name, _parse_attrs(attr_text), line=line)
		stack[-1].children.append(node)
		if not self_closing:
			stack.append(node)

	if pos < len(text):
		stack[-1].children.append(text[pos:])

	if len(stack) > 1:
		unclosed = stack[-1]
		raise ManifestError(f"unclosed <{unclosed.name}> opened at line {unclosed.line}", source)

	return root


def split_frontmatter(content: str, source: str = "") -> tuple[dict[str, Any], str]:
	"""Split YAML frontmatter from a markdown document.

	Documents without frontmatter return an empty dict and the full content.
	"""
	match = _FRONTMATTER_RE.match(content)
	if not match:
		return {}, content

	try:
		data = yaml.safe_load(match.group(1))
	except yaml.YAMLError as e:
		raise ManifestError(f"invalid YAML frontmatter: {e}", source) from e

	if data is None:
		data = {}
	if not isinstance(data, dict):
		raise ManifestError("frontmatter must be a mapping", source)

	return data, match.group(2) or ""


def parse_list_items(text: str) -> list[str]:
	"""Return bulleted or numbered list items, joining continuation lines.

	Text before the first list item (an intro sentence) is ignored.
	"""
	items: list[str] = []
	for raw in text.splitlines():
		line = raw.strip()
		if not line:
			continue
		marker = _LIST_MARKER_RE.match(line)
		if marker:
			items.append(line[marker.end():].strip())
		elif items:
			items[-1] = f"{items[-1]} {line}"
	return items


def parse_path_list(text: str) -> tuple[str, ...]:
	"""Extract relative document paths from a required-reading block."""
	paths: list[str] = []
	for raw in text.splitlines():
		line = raw.replace("`", " ").replace("@", " ")
		for match in _PATH_RE.finditer(line):
			path = match.group(1)
			if path.startswith("./"):
				path = path[2:]
			if path not in paths:
				paths.append(path)
	return tuple(paths)


def normalize_text(text: str) -> str:
	"""Lowercase, drop emphasis markers, and collapse whitespace."""
	stripped = re.sub(r"[*_`]", "", text.lower())
	return " ".join(stripped.split())
