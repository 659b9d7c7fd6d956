"""
Skill Registry - Discovers and parses skills from SKILL.md files.

Skills are discovered from (later roots override earlier ones):
- Global: ~/.claude/skills/
- Project: .claude/skills/
- Any extra roots from SKILLFLOW_SKILLS_PATH / config.toml
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..errors import ManifestError, SkillNotFound
from ..markup import Node, normalize_text, parse_blocks, parse_list_items, split_frontmatter
from .matcher import find_dead_rules, phrase_starts, tokenize
from .models import RoutingRule, Skill
from .references import ReferenceResolver, ReferenceStore, normalize_ref
from .workflows import DEFAULT_WAIT_PHRASES, WorkflowStore

logger = logging.getLogger(__name__)

SUPPORTED_SCHEMA_MAJOR = 1
# Function words that never select a skill on their own
INTAKE_STOPWORDS = frozenset({
	"a", "an", "and", "any", "are", "be", "can", "do", "does", "for", "from", "help",
	"how", "i", "in", "is", "it", "like", "me", "my", "need", "of", "on", "one", "or",
	"please", "should", "the", "this", "to", "want", "what", "which", "with", "would",
	"you", "your",
})
REFERENCE_DIRS = ("references", "templates")

_TARGET_RE = re.compile(r"((?:[\w.-]+/)*[\w.-]+\.md)\b")
_ARROW_RE = re.compile(r"\s*(?:->|→|=>)\s*")
_SEPARATOR_ROW_RE = re.compile(r"^\|?[\s:|-]+\|?$")


@dataclass(frozen=True)
class SkillMatch:
	"""How strongly some text selects a skill."""
	skill: Skill
	longest: int = 0  # tokens in the longest explicit phrase matched
	phrases: int = 0  # explicit phrases matched
	intake_hits: int = 0  # distinct input tokens found among the intake words

	@property
	def explicit(self) -> bool:
		return self.phrases > 0

	@property
	def key(self) -> tuple[int, int, int]:
		return (self.longest, self.phrases, self.intake_hits)


class SkillRegistry:
	"""
	Discovers and loads skills from SKILL.md manifests.

	Each skill gets its own ReferenceStore, ReferenceResolver and
	WorkflowStore. All of them are read-only after load and are shared by
	every session that enters the skill.
	"""

	SKILL_FILENAME = "SKILL.md"

	def __init__(
		self,
		roots: Optional[list[Path]] = None,
		wait_phrases: tuple[str, ...] = DEFAULT_WAIT_PHRASES,
		strict: bool = False,
	):
		"""
		Initialize the registry.

		Args:
			roots: Directories containing one sub-directory per skill
			wait_phrases: Phrases marking a step that waits for the user
			strict: Raise on invalid manifests instead of skipping them
		"""
		self.roots = [Path(r).expanduser() for r in (roots if roots is not None else default_roots())]
		self.wait_phrases = tuple(wait_phrases)
		self.strict = strict
		self._skills: dict[str, Skill] = {}
		self._references: dict[str, ReferenceStore] = {}
		self._resolvers: dict[str, ReferenceResolver] = {}
		self._workflows: dict[str, WorkflowStore] = {}
		self._loaded = False

	@classmethod
	def from_config(cls, config) -> "SkillRegistry":
		"""Build a registry from a skillflow Config."""
		return cls(
			roots=list(config.skills_paths),
			wait_phrases=tuple(config.wait_phrases),
			strict=config.strict,
		)

	def discover_skills(self, reload: bool = False) -> dict[str, Skill]:
		"""
		Discover all available skills.

		Args:
			reload: Force reload even if already cached

		Returns:
			Dict mapping skill id to Skill
		"""
		if self._loaded and not reload:
			return self._skills

		skills: dict[str, Skill] = {}
		for root in self.roots:
			if not root.is_dir():
				logger.debug(f"Skills root not found: {root}")
				continue
			for skill_dir in sorted(root.iterdir()):
				if not skill_dir.is_dir():
					continue
				skill = self._load_skill(skill_dir)
				if skill is None:
					continue
				if skill.id in skills:
					logger.info(f"Skill '{skill.id}' from {root} overrides {skills[skill.id].root}")
				skills[skill.id] = skill

		self._skills = dict(sorted(skills.items()))
		self._references.clear()
		self._resolvers.clear()
		self._workflows.clear()
		self._loaded = True
		logger.info(f"Discovered {len(self._skills)} skills")
		return self._skills

	def get(self, skill_id: str) -> Skill:
		"""
		Get a skill by id.

		Raises:
			SkillNotFound: If no such skill was discovered
		"""
		skills = self.discover_skills()
		try:
			return skills[skill_id]
		except KeyError:
			raise SkillNotFound(skill_id, f"available: {', '.join(skills) or 'none'}") from None

	def all(self) -> list[Skill]:
		return list(self.discover_skills().values())

	def list_skills(self) -> list[dict]:
		"""
		List all available skills with basic info.

		Returns:
			List of skill summaries
		"""
		return [
			{
				"id": skill.id,
				"description": skill.description,
				"workflows": skill.workflow_targets(),
				"invocations": list(skill.invocations),
				"source": skill.source_path,
			}
			for skill in self.all()
		]

	def register(self, skill: Skill) -> None:
		"""Add an already-parsed skill (tests and embedding callers)."""
		self.discover_skills()
		self._skills[skill.id] = skill
		self._references.pop(skill.id, None)
		self._resolvers.pop(skill.id, None)
		self._workflows.pop(skill.id, None)

	def select_skill(self, text: str) -> Optional[Skill]:
		"""
		Pick the skill whose invocation set best matches ``text``.

		Returns None when nothing matches; the caller should ask the user to
		choose a skill explicitly.
		"""
		match = self.match_skill(text)
		return match.skill if match else None

	def match_skill(self, text: str) -> Optional[SkillMatch]:
		"""
		Best SkillMatch for ``text`` across all skills.

		Explicit phrases (frontmatter invocations and the skill id) outrank
		intake words: the longest matched phrase wins, then the number of
		matched phrases, then the number of intake words, then skill id order.
		"""
		tokens = tokenize(text)
		if not tokens:
			return None

		best: Optional[SkillMatch] = None
		for skill in self.all():
			match = self.score_skill(skill, text)
			if match.key > (0, 0, 0) and (best is None or match.key > best.key):
				best = match
		return best

	def score_skill(self, skill: Skill, text: str) -> SkillMatch:
		"""Score one skill's invocation set against ``text``."""
		tokens = tokenize(text)
		longest = 0
		matched = 0
		for phrase in invocation_phrases(skill):
			phrase_tokens = tokenize(phrase)
			if phrase_starts(tokens, phrase_tokens):
				matched += 1
				longest = max(longest, len(phrase_tokens))
		words = intake_words(skill, self.wait_phrases)
		hits = len({t for t in tokens if t in words})
		return SkillMatch(skill=skill, longest=longest, phrases=matched, intake_hits=hits)

	def references(self, skill_id: str) -> ReferenceStore:
		if skill_id not in self._references:
			skill = self.get(skill_id)
			self._references[skill_id] = ReferenceStore(skill.root, skill.reference_index)
		return self._references[skill_id]

	def resolver(self, skill_id: str) -> ReferenceResolver:
		if skill_id not in self._resolvers:
			self._resolvers[skill_id] = ReferenceResolver(self.references(skill_id))
		return self._resolvers[skill_id]

	def workflows(self, skill_id: str) -> WorkflowStore:
		if skill_id not in self._workflows:
			skill = self.get(skill_id)
			self._workflows[skill_id] = WorkflowStore(skill.root, skill.id, self.wait_phrases)
		return self._workflows[skill_id]

	def _load_skill(self, skill_dir: Path) -> Optional[Skill]:
		"""
		Load a skill from a directory.

		Args:
			skill_dir: Path to skill directory

		Returns:
			Skill object or None if invalid (strict mode raises instead)
		"""
		skill_file = skill_dir / self.SKILL_FILENAME

		if not skill_file.exists():
			logger.debug(f"No {self.SKILL_FILENAME} in {skill_dir}")
			return None

		try:
			content = skill_file.read_text(encoding="utf-8")
			skill = parse_skill_file(content, skill_dir)
		except (ManifestError, OSError, UnicodeDecodeError) as e:
			if self.strict:
				raise
			logger.error(f"Failed to load skill from {skill_dir}: {e}")
			return None

		dead = find_dead_rules(skill)
		if dead:
			message = f"unreachable routing rules: {[list(r.triggers) for r in dead]}"
			if self.strict:
				raise ManifestError(message, str(skill_file))
			logger.warning(f"{skill.id}: {message}")

		return skill


def default_roots(project_path: Optional[Path] = None) -> list[Path]:
	"""Global then project skill directories."""
	project = Path(project_path) if project_path else Path.cwd()
	return [Path.home() / ".claude" / "skills", project / ".claude" / "skills"]


def invocation_phrases(skill: Skill) -> list[str]:
	"""Phrases that name a skill: explicit invocations plus its full id."""
	phrases: list[str] = list(skill.invocations)
	words = [w for w in re.split(r"[-_\s]+", skill.id.lower()) if w]
	for phrase in (skill.id, " ".join(words)):
		if phrase and phrase not in phrases:
			phrases.append(phrase)
	return phrases


def intake_words(skill: Skill, wait_phrases: tuple[str, ...] = DEFAULT_WAIT_PHRASES) -> frozenset[str]:
	"""
	The words of a skill's intake prompt that can select it.

	Lines carrying a wait phrase, numbers and function words are left out.
	"""
	phrases = [normalize_text(p) for p in wait_phrases]
	words: set[str] = set()
	for line in skill.intake_prompt.splitlines():
		if any(phrase in normalize_text(line) for phrase in phrases):
			continue
		words.update(
			token for token in tokenize(line)
			if not token.isdigit() and token not in INTAKE_STOPWORDS
		)
	return frozenset(words)


def parse_skill_file(content: str, skill_dir: Path) -> Skill:
	"""
	Parse a SKILL.md file.

	Expected format:
	```
	---
	name: coolify-expert
	description: Manage Coolify deployments
	invocations: [coolify]
	schema_version: 1
	---

	<intake>
	What would you like to do?
	1. Diagnose ...
	</intake>

	<routing>
	| Response | Workflow |
	|----------|----------|
	| 1, "diagnose", "health" | workflows/diagnose.md |
	</routing>
	```

	Raises:
		ManifestError: If required parts are missing or malformed
	"""
	source = str(Path(skill_dir) / SkillRegistry.SKILL_FILENAME)
	frontmatter, body = split_frontmatter(content, source)
	if not frontmatter:
		raise ManifestError("missing frontmatter", source)

	name = frontmatter.get("name")
	if not name:
		raise ManifestError("missing 'name'", source)
	name = str(name).strip()

	schema_version = str(frontmatter.get("schema_version", "1")).strip()
	major = schema_version.split(".")[0]
	if not major.isdigit() or int(major) != SUPPORTED_SCHEMA_MAJOR:
		raise ManifestError(f"unsupported schema_version {schema_version!r}", source)

	root = parse_blocks(body, source)

	intake = root.find("intake")
	if intake is None:
		raise ManifestError("missing <intake> block", source)

	routing = root.find("routing")
	if routing is None:
		raise ManifestError("missing <routing> block", source)
	rules = parse_routing(routing, source)
	if not rules:
		raise ManifestError("<routing> declares no rules", source)

	invocations_raw = frontmatter.get("invocations", [])
	if isinstance(invocations_raw, str):
		invocations = [t.strip() for t in invocations_raw.split(",") if t.strip()]
	else:
		invocations = [str(t).strip() for t in invocations_raw or [] if str(t).strip()]

	return Skill(
		id=name,
		name=name,
		description=str(frontmatter.get("description", "") or "").strip(),
		root=Path(skill_dir).resolve(),
		intake_prompt=intake.text,
		routing_table=tuple(rules),
		reference_index=build_reference_index(Path(skill_dir)),
		invocations=tuple(invocations),
		schema_version=schema_version,
		source_path=source,
	)


def parse_routing(block: Node, source: str = "") -> list[RoutingRule]:
	"""Parse a routing table (markdown table rows or arrow list items)."""
	rules: list[RoutingRule] = []
	text = block.text

	for raw in text.splitlines():
		line = raw.strip()
		if not line.startswith("|") or _SEPARATOR_ROW_RE.match(line):
			continue
		cells = [c.strip() for c in line.strip("|").split("|")]
		if len(cells) < 2:
			continue
		rule = _make_rule(cells[0], cells[-1])
		if rule is None:
			logger.debug(f"{source}: routing row without workflow target: {line}")
			continue
		rules.append(rule)

	if rules:
		return rules

	for item in parse_list_items(text):
		parts = _ARROW_RE.split(item, maxsplit=1)
		if len(parts) != 2:
			continue
		rule = _make_rule(parts[0], parts[1])
		if rule is not None:
			rules.append(rule)
	return rules


def _make_rule(trigger_text: str, target_text: str) -> Optional[RoutingRule]:
	target_match = _TARGET_RE.search(target_text.replace("`", ""))
	if not target_match:
		return None
	triggers: list[str] = []
	for part in trigger_text.split(","):
		trigger = part.strip().strip("`\"'“”‘’").strip()
		if trigger and trigger not in triggers:
			triggers.append(trigger)
	if not triggers:
		return None
	return RoutingRule(triggers=tuple(triggers), target=normalize_ref(target_match.group(1)))


def build_reference_index(skill_dir: Path) -> dict[str, str]:
	"""Map short reference names (file stems) to paths under references/ and templates/."""
	index: dict[str, str] = {}
	for dirname in REFERENCE_DIRS:
		base = skill_dir / dirname
		if not base.is_dir():
			continue
		for path in sorted(base.rglob("*")):
			if not path.is_file():
				continue
			rel = path.relative_to(skill_dir).as_posix()
			stem = path.stem
			key = stem if stem not in index else f"{dirname}/{stem}"
			index[key] = rel
	return index


# Global registry instance
_registry: SkillRegistry | None = None


def get_registry(roots: Optional[list[Path]] = None) -> SkillRegistry:
	"""Get or create the global skill registry."""
	global _registry
	if _registry is None:
		_registry = SkillRegistry(roots)
	return _registry
