"""
Workflow Store - parses workflows/*.md files into Workflow models.

Expected format:
```
---
name: optional-name
---

# Title

<required_reading>
1. references/api-basics.md
</required_reading>

<process>
<step name="detect" fact="framework">
Ask which framework the project uses. Wait for response before proceeding.
</step>

<step name="configure">
<required_reading>references/env.md</required_reading>
<branch on="framework">
<case when="laravel"><step name="laravel">...</step></case>
<case when="nextjs, next">...</case>
<otherwise skip />
</branch>
</step>
</process>

<success_criteria>
- [ ] Deployment finished <!-- check: steps-completed -->
- [ ] User confirms the expected outcome
</success_criteria>
```
"""

import logging
import re
import threading
from pathlib import Path
from typing import Optional

from ..errors import ManifestError, WorkflowNotFound
from ..markup import Node, normalize_text, parse_blocks, parse_list_items, parse_path_list, split_frontmatter
from .models import Branch, BranchCase, Criterion, Step, Workflow
from .references import normalize_ref

logger = logging.getLogger(__name__)

DEFAULT_WAIT_PHRASES = (
	"wait for response",
	"wait for the response",
	"wait for user response",
	"wait for the user",
	"wait for user confirmation",
	"wait for confirmation",
)

_CHECK_RE = re.compile(r"<!--\s*check:\s*(.*?)\s*-->", re.IGNORECASE)
_SLUG_RE = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
	return _SLUG_RE.sub("-", text.lower()).strip("-")


class WorkflowStore:
	"""
	Loads and caches workflows for one skill.

	Usage:
		store = WorkflowStore(skill.root, skill.id)
		workflow = store.load_workflow("workflows/diagnose.md")
	"""

	def __init__(
		self,
		root: Path,
		skill_id: str,
		wait_phrases: tuple[str, ...] = DEFAULT_WAIT_PHRASES,
	):
		self.root = Path(root).resolve()
		self.skill_id = skill_id
		self.wait_phrases = tuple(normalize_text(p) for p in wait_phrases)
		self._workflows: dict[str, Workflow] = {}
		self._lock = threading.Lock()

	def exists(self, ref: str) -> bool:
		return (self.root / normalize_ref(ref)).is_file()

	def load_workflow(self, ref: str) -> Workflow:
		"""
		Load a workflow by path relative to the skill root.

		Raises:
			WorkflowNotFound: If the file does not exist
			ManifestError: If the markup is malformed or escapes the root
		"""
		path = normalize_ref(ref)
		cached = self._workflows.get(path)
		if cached is not None:
			return cached

		full = (self.root / path).resolve()
		if self.root not in full.parents:
			raise ManifestError(f"workflow escapes skill root: {ref}", str(self.root))
		if not full.is_file():
			raise WorkflowNotFound(path, f"skill '{self.skill_id}'")

		with self._lock:
			if path not in self._workflows:
				content = full.read_text(encoding="utf-8")
				self._workflows[path] = self.parse(content, path)
				logger.debug(f"Loaded workflow {self.skill_id}:{path}")
			return self._workflows[path]

	def parse(self, content: str, workflow_id: str) -> Workflow:
		"""Parse workflow markup into a Workflow."""
		source = f"{self.skill_id}:{workflow_id}"
		frontmatter, body = split_frontmatter(content, source)
		root = parse_blocks(body, source)

		required: list[str] = []
		for block in root.find_all("required_reading"):
			for path in parse_path_list(block.text):
				if path not in required:
					required.append(path)

		step_nodes = root.find_all("step")
		process = root.find("process")
		if process is not None:
			for block in process.find_all("required_reading"):
				for path in parse_path_list(block.text):
					if path not in required:
						required.append(path)
			step_nodes = step_nodes + process.find_all("step")

		seen: set[str] = set()
		steps = self._parse_steps(step_nodes, "", seen, source)

		criteria_block = root.find("success_criteria")
		criteria = _parse_criteria(criteria_block.text) if criteria_block is not None else ()

		return Workflow(
			id=workflow_id,
			skill_id=self.skill_id,
			title=frontmatter.get("name") or _first_heading(body) or Path(workflow_id).stem,
			required_reading=tuple(required),
			steps=steps,
			success_criteria=criteria,
		)

	def _parse_steps(
		self,
		nodes: list[Node],
		prefix: str,
		seen: set[str],
		source: str,
	) -> tuple[Step, ...]:
		steps: list[Step] = []
		for position, node in enumerate(nodes, start=1):
			steps.append(self._parse_step(node, position, prefix, seen, source))
		return tuple(steps)

	def _parse_step(
		self,
		node: Node,
		position: int,
		prefix: str,
		seen: set[str],
		source: str,
	) -> Step:
		name = node.attrs.get("name") or f"step-{position}"
		step_id = f"{prefix}/{slugify(name) or position}" if prefix else (slugify(name) or str(position))
		if step_id in seen:
			raise ManifestError(f"duplicate step id '{step_id}' (line {node.line})", source)
		seen.add(step_id)

		refs: list[str] = []
		for block in node.find_all("required_reading"):
			for path in parse_path_list(block.text):
				if path not in refs:
					refs.append(path)

		instructions = node.text
		branch_node = node.find("branch")
		branch = self._parse_branch(branch_node, step_id, seen, source) if branch_node is not None else None

		fact = node.attrs.get("fact") or None
		requires_confirmation = (
			node.has_flag("wait")
			or fact is not None
			or self._has_wait_phrase(instructions)
		)

		return Step(
			id=step_id,
			name=name,
			instructions=instructions,
			reference_refs=tuple(refs),
			requires_confirmation=requires_confirmation,
			fact=fact,
			branch=branch,
		)

	def _parse_branch(self, node: Node, step_id: str, seen: set[str], source: str) -> Branch:
		on = node.attrs.get("on", "").strip()
		if not on:
			raise ManifestError(f"<branch> without 'on' attribute (line {node.line})", source)

		cases: list[BranchCase] = []
		for case_node in node.find_all("case"):
			values = tuple(
				v.strip().lower()
				for v in case_node.attrs.get("when", "").split(",")
				if v.strip()
			)
			if not values:
				raise ManifestError(f"<case> without 'when' values (line {case_node.line})", source)
			case_prefix = f"{step_id}/{slugify(values[0])}"
			cases.append(BranchCase(
				values=values,
				steps=self._parse_steps(case_node.find_all("step"), case_prefix, seen, source),
				skip=case_node.has_flag("skip"),
			))

		otherwise: Optional[tuple[Step, ...]] = None
		otherwise_skip = False
		otherwise_node = node.find("otherwise")
		if otherwise_node is not None:
			otherwise_skip = otherwise_node.has_flag("skip")
			if not otherwise_skip:
				otherwise = self._parse_steps(
					otherwise_node.find_all("step"), f"{step_id}/otherwise", seen, source
				)

		return Branch(on=on, cases=tuple(cases), otherwise=otherwise, otherwise_skip=otherwise_skip)

	def _has_wait_phrase(self, instructions: str) -> bool:
		text = normalize_text(instructions)
		return any(phrase in text for phrase in self.wait_phrases)


def _parse_criteria(text: str) -> tuple[Criterion, ...]:
	criteria: list[Criterion] = []
	for position, item in enumerate(parse_list_items(text), start=1):
		match = _CHECK_RE.search(item)
		check = match.group(1).strip() if match else None
		description = _CHECK_RE.sub("", item).strip()
		criteria.append(Criterion(id=f"c{position}", description=description, check=check or None))
	return tuple(criteria)


def _first_heading(body: str) -> str:
	for line in body.splitlines():
		stripped = line.strip()
		if stripped.startswith("# "):
			return stripped[2:].strip()
	return ""
