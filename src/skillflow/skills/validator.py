"""
Success Validator - evaluates a workflow's checklist against a run.

Criteria bind evaluators by name (``<!-- check: NAME[:ARG] -->``). Criteria
with no evaluator cannot be verified automatically; they stay unmet until
the context records an external confirmation for them.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional

from .models import Criterion, Workflow

if TYPE_CHECKING:
	from .executor import ExecutionContext

logger = logging.getLogger(__name__)

Evaluator = Callable[["ExecutionContext", Workflow, str], bool]


class Verdict(str, Enum):
	"""Overall outcome of a checklist evaluation."""
	COMPLETE = "complete"
	PARTIAL = "partial"
	FAILED = "failed"


@dataclass
class ValidationReport:
	"""Result of evaluating every success criterion."""
	complete: bool
	met: list[Criterion] = field(default_factory=list)
	unmet: list[Criterion] = field(default_factory=list)
	failed: list[Criterion] = field(default_factory=list)

	@property
	def verdict(self) -> Verdict:
		if self.complete:
			return Verdict.COMPLETE
		if self.failed:
			return Verdict.FAILED
		return Verdict.PARTIAL

	@property
	def needs_confirmation(self) -> list[Criterion]:
		"""Unmet criteria that only an external confirmation can satisfy."""
		return [c for c in self.unmet if c not in self.failed]

	def to_dict(self) -> dict:
		return {
			"complete": self.complete,
			"verdict": self.verdict.value,
			"met": [c.id for c in self.met],
			"unmet": [{"id": c.id, "description": c.description} for c in self.unmet],
			"failed": [c.id for c in self.failed],
		}


def _steps_completed(ctx: "ExecutionContext", workflow: Workflow, arg: str) -> bool:
	return ctx.finished


def _references_loaded(ctx: "ExecutionContext", workflow: Workflow, arg: str) -> bool:
	return all(ref in ctx.loaded_references for ref in workflow.required_reading)


def _step_done(ctx: "ExecutionContext", workflow: Workflow, arg: str) -> bool:
	return arg in ctx.completed_steps


def _reference_loaded(ctx: "ExecutionContext", workflow: Workflow, arg: str) -> bool:
	return arg in ctx.loaded_references


def _response_given(ctx: "ExecutionContext", workflow: Workflow, arg: str) -> bool:
	return bool(ctx.responses.get(arg, "").strip())


def _fact_holds(ctx: "ExecutionContext", workflow: Workflow, arg: str) -> bool:
	name, _, expected = arg.partition("=")
	value = ctx.facts.get(name.strip())
	if not expected:
		return fact_value(value) not in ("", "false", "no", "0", "none")
	return fact_value(value) == expected.strip().lower()


def fact_value(value: object) -> str:
	"""Normalize a fact for comparison with branch and check values."""
	if value is None:
		return ""
	if isinstance(value, bool):
		return "true" if value else "false"
	return str(value).strip().lower()


BUILTIN_EVALUATORS: dict[str, Evaluator] = {
	"steps-completed": _steps_completed,
	"references-loaded": _references_loaded,
	"step": _step_done,
	"reference": _reference_loaded,
	"response": _response_given,
	"fact": _fact_holds,
}


class SuccessValidator:
	"""Runs criterion evaluators; pure with respect to the context."""

	def __init__(self, evaluators: Optional[dict[str, Evaluator]] = None):
		self._evaluators: dict[str, Evaluator] = dict(BUILTIN_EVALUATORS)
		if evaluators:
			self._evaluators.update(evaluators)

	def register(self, name: str, evaluator: Evaluator) -> None:
		"""Register a custom evaluator usable as ``check: name[:arg]``."""
		self._evaluators[name] = evaluator

	def known(self, check: str) -> bool:
		name, _, _ = check.partition(":")
		return name.strip() in self._evaluators

	def check_criterion(
		self,
		criterion: Criterion,
		workflow: Workflow,
		ctx: "ExecutionContext",
	) -> Optional[bool]:
		"""
		Evaluate one criterion.

		Returns:
			True/False from its evaluator, or None if it is not automatically
			verifiable (no check, or an unknown evaluator name)
		"""
		if criterion.check is None:
			return None
		name, _, arg = criterion.check.partition(":")
		evaluator = self._evaluators.get(name.strip())
		if evaluator is None:
			logger.warning(f"Unknown evaluator '{name}' for criterion {criterion.id} in {workflow.id}")
			return None
		return bool(evaluator(ctx, workflow, arg.strip()))

	def evaluate(self, workflow: Workflow, ctx: "ExecutionContext") -> ValidationReport:
		"""Evaluate every success criterion of ``workflow`` against ``ctx``."""
		met: list[Criterion] = []
		unmet: list[Criterion] = []
		failed: list[Criterion] = []

		for criterion in workflow.success_criteria:
			result = self.check_criterion(criterion, workflow, ctx)
			if result is None:
				if criterion.id in ctx.confirmations:
					met.append(criterion)
				else:
					unmet.append(criterion)
			elif result:
				met.append(criterion)
			else:
				unmet.append(criterion)
				failed.append(criterion)

		return ValidationReport(complete=not unmet, met=met, unmet=unmet, failed=failed)
