"""
Skill Models - Pydantic schemas for loaded skill definitions.

Everything here is produced by the loaders and is immutable afterwards:
skills, routing rules, workflows with their steps and branches, reference
documents, and success criteria.
"""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class RoutingRule(BaseModel):
	"""Maps trigger phrases to a workflow file."""
	model_config = ConfigDict(frozen=True)

	triggers: tuple[str, ...] = Field(description="Keywords or phrases, in declared order")
	target: str = Field(description="Workflow path relative to the skill root")


class Skill(BaseModel):
	"""A skill bundle parsed from its SKILL.md manifest."""
	model_config = ConfigDict(frozen=True)

	id: str = Field(description="Unique identifier (frontmatter name)")
	name: str
	description: str = ""
	root: Path = Field(description="Skill directory; all paths resolve from here")
	intake_prompt: str = Field(default="", description="Intake menu, verbatim")
	routing_table: tuple[RoutingRule, ...] = ()
	reference_index: dict[str, str] = Field(default_factory=dict, description="Reference name -> path")
	invocations: tuple[str, ...] = Field(default=(), description="Phrases that select this skill")
	schema_version: str = "1"
	source_path: str = ""

	def workflow_targets(self) -> list[str]:
		"""Distinct routing targets in table order."""
		targets: list[str] = []
		for rule in self.routing_table:
			if rule.target not in targets:
				targets.append(rule.target)
		return targets


class ReferenceDocument(BaseModel):
	"""A read-only reference or template file."""
	model_config = ConfigDict(frozen=True)

	path: str
	content: str
	required_reading: tuple[str, ...] = ()


class Criterion(BaseModel):
	"""A success checklist item.

	``check`` names an evaluator (see validator.py). Items without one are
	not automatically verifiable and need an external confirmation.
	"""
	model_config = ConfigDict(frozen=True)

	id: str
	description: str
	check: Optional[str] = None

	@property
	def verifiable(self) -> bool:
		return self.check is not None


class Step(BaseModel):
	"""A single workflow step."""
	model_config = ConfigDict(frozen=True)

	id: str = Field(description="Qualified id, unique within the workflow")
	name: str
	instructions: str = ""
	reference_refs: tuple[str, ...] = ()
	requires_confirmation: bool = False
	fact: Optional[str] = Field(default=None, description="Fact name the user's response is stored under")
	branch: Optional["Branch"] = None


class BranchCase(BaseModel):
	"""One alternative of a branch, selected when the fact equals a value."""
	model_config = ConfigDict(frozen=True)

	values: tuple[str, ...]
	steps: tuple[Step, ...] = ()
	skip: bool = False

	def matches(self, value: str) -> bool:
		return value in self.values


class Branch(BaseModel):
	"""Conditional sub-sequence keyed on an externally supplied fact."""
	model_config = ConfigDict(frozen=True)

	on: str
	cases: tuple[BranchCase, ...] = ()
	otherwise: Optional[tuple[Step, ...]] = None
	otherwise_skip: bool = False


class Workflow(BaseModel):
	"""An ordered, possibly branching, sequence of steps."""
	model_config = ConfigDict(frozen=True)

	id: str = Field(description="Path relative to the skill root")
	skill_id: str
	title: str = ""
	required_reading: tuple[str, ...] = ()
	steps: tuple[Step, ...] = ()
	success_criteria: tuple[Criterion, ...] = ()

	def iter_steps(self) -> list[Step]:
		"""All steps depth-first, including every branch alternative."""
		found: list[Step] = []

		def walk(steps: tuple[Step, ...]) -> None:
			for step in steps:
				found.append(step)
				if step.branch:
					for case in step.branch.cases:
						walk(case.steps)
					if step.branch.otherwise:
						walk(step.branch.otherwise)

		walk(self.steps)
		return found

	def get_step(self, step_id: str) -> Optional[Step]:
		for step in self.iter_steps():
			if step.id == step_id:
				return step
		return None

	def get_criterion(self, criterion_id: str) -> Optional[Criterion]:
		for criterion in self.success_criteria:
			if criterion.id == criterion_id:
				return criterion
		return None

	def declared_references(self) -> list[str]:
		"""Workflow-level and step-level reference paths, deduplicated."""
		refs: list[str] = list(self.required_reading)
		for step in self.iter_steps():
			for ref in step.reference_refs:
				if ref not in refs:
					refs.append(ref)
		return refs


Step.model_rebuild()
