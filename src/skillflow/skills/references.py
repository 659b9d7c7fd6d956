"""
Reference Store and Resolver.

The store reads reference/template files lazily from a skill root and keeps
each document once. The resolver walks nested required reading depth-first
and rejects cycles instead of following them.
"""

import logging
import threading
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Optional

from ..errors import CyclicReferenceError, ManifestError, ReferenceNotFound
from ..markup import parse_blocks, parse_path_list, split_frontmatter
from .models import ReferenceDocument

if TYPE_CHECKING:
	from .executor import ExecutionContext

logger = logging.getLogger(__name__)


def normalize_ref(ref: str) -> str:
	"""Canonical relative POSIX form of a reference path."""
	cleaned = ref.strip().strip("`").lstrip("@").replace("\\", "/")
	while cleaned.startswith("./"):
		cleaned = cleaned[2:]
	return str(PurePosixPath(cleaned))


class ReferenceStore:
	"""
	Lazily loaded, content-addressable documents under one skill root.

	Documents are keyed by normalized relative path and never re-read once
	cached. ``load_count`` counts actual disk reads.
	"""

	def __init__(self, root: Path, index: Optional[dict[str, str]] = None):
		self.root = Path(root).resolve()
		self.index = dict(index or {})
		self._documents: dict[str, ReferenceDocument] = {}
		self._lock = threading.Lock()
		self.load_count = 0

	def canonical(self, ref: str) -> str:
		"""Map an index name or relative path to its canonical path.

		Raises:
			ManifestError: If the path escapes the skill root
		"""
		key = ref.strip()
		if key in self.index:
			key = self.index[key]
		path = normalize_ref(key)

		full = (self.root / path).resolve()
		if full != self.root and self.root not in full.parents:
			raise ManifestError(f"reference escapes skill root: {ref}", str(self.root))
		return full.relative_to(self.root).as_posix()

	def exists(self, ref: str) -> bool:
		try:
			path = self.canonical(ref)
		except ManifestError:
			return False
		return path in self._documents or (self.root / path).is_file()

	def is_loaded(self, ref: str) -> bool:
		return self.canonical(ref) in self._documents

	def load(self, ref: str) -> ReferenceDocument:
		"""
		Return the document for ``ref``, reading it on first use.

		Raises:
			ReferenceNotFound: If no such file exists under the root
		"""
		path = self.canonical(ref)
		cached = self._documents.get(path)
		if cached is not None:
			return cached

		with self._lock:
			cached = self._documents.get(path)
			if cached is not None:
				return cached

			file_path = self.root / path
			if not file_path.is_file():
				raise ReferenceNotFound(path, f"under {self.root}")

			content = file_path.read_text(encoding="utf-8")
			document = ReferenceDocument(
				path=path,
				content=content,
				required_reading=_nested_reading(content, str(file_path)),
			)
			self._documents[path] = document
			self.load_count += 1
			logger.debug(f"Loaded reference {path}")
			return document


def _nested_reading(content: str, source: str) -> tuple[str, ...]:
	"""Required reading declared inside a reference document."""
	if "required_reading" not in content:
		return ()
	_, body = split_frontmatter(content, source)
	root = parse_blocks(body, source)
	paths: list[str] = []
	for block in root.find_all("required_reading"):
		for path in parse_path_list(block.text):
			if path not in paths:
				paths.append(path)
	return tuple(paths)


class ReferenceResolver:
	"""
	Resolves references with their nested required reading.

	Resolution is depth-first. The chain of paths currently being resolved is
	passed down the recursion; meeting a path already on the chain raises
	CyclicReferenceError. Subgraphs proven acyclic are remembered so later
	resolutions do not walk them again.
	"""

	def __init__(self, store: ReferenceStore):
		self.store = store
		self._acyclic: set[str] = set()

	def resolve(self, ref: str, ctx: Optional["ExecutionContext"] = None) -> ReferenceDocument:
		"""
		Resolve a reference and everything it requires.

		Args:
			ref: Path relative to the skill root, or a reference index name
			ctx: Execution context whose ``loaded_references`` is updated

		Returns:
			The (cached) ReferenceDocument for ``ref``

		Raises:
			ReferenceNotFound: If ``ref`` or a nested reference is missing
			CyclicReferenceError: If the required reading loops back
		"""
		path = self.store.canonical(ref)
		if ctx is not None and path in ctx.loaded_references:
			return self.store.load(path)
		return self._resolve(path, ctx, [])

	def _resolve(
		self,
		path: str,
		ctx: Optional["ExecutionContext"],
		chain: list[str],
	) -> ReferenceDocument:
		if path in chain:
			cycle = chain[chain.index(path):] + [path]
			raise CyclicReferenceError(cycle)

		document = self.store.load(path)

		if path not in self._acyclic:
			chain.append(path)
			try:
				for nested in document.required_reading:
					self._resolve(self.store.canonical(nested), ctx, chain)
			finally:
				chain.pop()
			self._acyclic.add(path)
		elif ctx is not None:
			for nested in document.required_reading:
				nested_path = self.store.canonical(nested)
				if nested_path not in ctx.loaded_references:
					self._resolve(nested_path, ctx, chain)

		if ctx is not None:
			ctx.loaded_references.add(path)
		return document

	def check(self, ref: str) -> list[str]:
		"""Resolve without a context; returns the paths reached, in load order."""
		reached: list[str] = []

		def visit(path: str, chain: list[str]) -> None:
			if path in chain:
				raise CyclicReferenceError(chain[chain.index(path):] + [path])
			if path in reached:
				return
			document = self.store.load(path)
			chain.append(path)
			for nested in document.required_reading:
				visit(self.store.canonical(nested), chain)
			chain.pop()
			reached.append(path)

		visit(self.store.canonical(ref), [])
		return reached
