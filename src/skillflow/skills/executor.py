"""
Workflow Executor - drives a workflow run step by step.

Responsibilities:
- Resolve each step's required reading before the step is ready
- Suspend at steps that wait for the user, and at branches whose fact is unknown
- Choose exactly one branch alternative and never revisit the choice
- Record checklist state from the Success Validator when the run ends

The ExecutionContext is owned by one session and mutated only here.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from ..errors import CriterionNotFound, CyclicReferenceError, ExecutionStateError, NotFoundError
from .models import Skill, Step, Workflow
from .references import ReferenceResolver
from .validator import SuccessValidator, ValidationReport, fact_value

logger = logging.getLogger(__name__)


class RunStatus(str, Enum):
	"""State of a workflow run."""
	PENDING = "pending"
	RUNNING = "running"
	CLARIFY_NEEDED = "clarify_needed"
	COMPLETED = "completed"
	ABORTED = "aborted"


class OutcomeKind(str, Enum):
	"""What running a single step produced."""
	READY = "ready"
	SKIPPED = "skipped"
	SUSPEND = "suspend"
	BRANCH = "branch"


@dataclass
class StepOutcome:
	"""Result of ``WorkflowExecutor.run_step``."""
	kind: OutcomeKind
	step: Step
	steps: tuple[Step, ...] = ()
	reason: str = ""


@dataclass
class Frame:
	"""A step sequence being executed and the position within it."""
	steps: tuple[Step, ...]
	index: int = 0

	@property
	def current(self) -> Optional[Step]:
		if self.index < len(self.steps):
			return self.steps[self.index]
		return None


@dataclass
class Awaiting:
	"""Why a run is suspended and what it is waiting for."""
	step_id: str
	kind: str
	prompt: str
	fact: Optional[str] = None
	options: tuple[str, ...] = ()

	def to_dict(self) -> dict:
		return {
			"step_id": self.step_id,
			"kind": self.kind,
			"prompt": self.prompt,
			"fact": self.fact,
			"options": list(self.options),
		}


@dataclass
class ExecutionContext:
	"""Per-session execution state."""
	active_skill: Skill
	session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
	active_workflow: Optional[Workflow] = None
	status: RunStatus = RunStatus.PENDING
	frames: list[Frame] = field(default_factory=list)
	loaded_references: set[str] = field(default_factory=set)
	checklist_state: dict[str, bool] = field(default_factory=dict)
	confirmations: set[str] = field(default_factory=set)
	facts: dict[str, Any] = field(default_factory=dict)
	responses: dict[str, str] = field(default_factory=dict)
	completed_steps: list[str] = field(default_factory=list)
	skipped_steps: dict[str, str] = field(default_factory=dict)
	missing_references: list[str] = field(default_factory=list)
	branch_choices: dict[str, str] = field(default_factory=dict)
	awaiting: Optional[Awaiting] = None
	report: Optional[ValidationReport] = None
	abort_reason: str = ""
	created_at: str = field(default_factory=lambda: datetime.now().isoformat())

	@property
	def current_step_index(self) -> int:
		"""Position within the workflow's top-level step list."""
		if not self.frames:
			return len(self.active_workflow.steps) if self.active_workflow else 0
		return self.frames[0].index

	@property
	def current_step(self) -> Optional[Step]:
		if not self.frames:
			return None
		return self.frames[-1].current

	@property
	def finished(self) -> bool:
		return self.status == RunStatus.COMPLETED

	def to_dict(self) -> dict:
		"""Convert to dictionary for JSON serialization."""
		current = self.current_step
		return {
			"session_id": self.session_id,
			"skill": self.active_skill.id,
			"workflow": self.active_workflow.id if self.active_workflow else None,
			"status": self.status.value,
			"current_step_index": self.current_step_index,
			"current_step": current.id if current else None,
			"completed_steps": list(self.completed_steps),
			"skipped_steps": dict(self.skipped_steps),
			"branch_choices": dict(self.branch_choices),
			"loaded_references": sorted(self.loaded_references),
			"facts": {k: fact_value(v) for k, v in self.facts.items()},
			"checklist_state": dict(self.checklist_state),
			"awaiting": self.awaiting.to_dict() if self.awaiting else None,
			"report": self.report.to_dict() if self.report else None,
			"abort_reason": self.abort_reason,
		}


class WorkflowExecutor:
	"""
	Executes workflows for one skill against an ExecutionContext.

	Usage:
		executor = WorkflowExecutor(resolver)
		status = executor.start(ctx, workflow)
		while status == RunStatus.CLARIFY_NEEDED:
			status = executor.resume(ctx, response=input(ctx.awaiting.prompt))
	"""

	def __init__(self, resolver: ReferenceResolver, validator: Optional[SuccessValidator] = None):
		self.resolver = resolver
		self.validator = validator or SuccessValidator()

	def start(self, ctx: ExecutionContext, workflow: Workflow) -> RunStatus:
		"""
		Begin a run of ``workflow`` and advance until it suspends or ends.

		Raises:
			ExecutionStateError: If another run is still in progress
			CyclicReferenceError: If required reading loops (run is aborted)
		"""
		if ctx.status in (RunStatus.RUNNING, RunStatus.CLARIFY_NEEDED):
			raise ExecutionStateError(
				f"workflow {ctx.active_workflow.id if ctx.active_workflow else '?'} is {ctx.status.value}"
			)
		if workflow.skill_id != ctx.active_skill.id:
			raise ExecutionStateError(
				f"workflow {workflow.id} belongs to skill '{workflow.skill_id}', not '{ctx.active_skill.id}'"
			)

		ctx.active_workflow = workflow
		ctx.frames = [Frame(workflow.steps)]
		ctx.completed_steps = []
		ctx.skipped_steps = {}
		ctx.missing_references = []
		ctx.branch_choices = {}
		ctx.responses = {}
		ctx.confirmations = set()
		ctx.checklist_state = {}
		ctx.awaiting = None
		ctx.report = None
		ctx.abort_reason = ""
		ctx.status = RunStatus.RUNNING
		logger.info(f"[{ctx.session_id}] Starting {workflow.skill_id}:{workflow.id}")

		for ref in workflow.required_reading:
			try:
				self.resolver.resolve(ref, ctx)
			except NotFoundError as e:
				logger.warning(f"[{ctx.session_id}] Required reading unavailable: {e}")
				ctx.missing_references.append(ref)
			except CyclicReferenceError as e:
				self._fail(ctx, str(e))
				raise

		return self.advance(ctx)

	def run_step(self, ctx: ExecutionContext, step: Step) -> StepOutcome:
		"""
		Prepare one step.

		References are resolved first; a missing one makes the step
		inapplicable. Then the step may suspend for the user's response, and
		finally a branch picks its alternative.
		"""
		for ref in step.reference_refs:
			try:
				self.resolver.resolve(ref, ctx)
			except NotFoundError as e:
				ctx.missing_references.append(ref)
				return StepOutcome(OutcomeKind.SKIPPED, step, reason=f"inapplicable: {e}")

		if step.requires_confirmation and step.id not in ctx.responses:
			return StepOutcome(OutcomeKind.SUSPEND, step, reason="confirmation")

		if step.branch is None:
			return StepOutcome(OutcomeKind.READY, step)

		branch = step.branch
		choice = ctx.branch_choices.get(step.id)
		if choice is None:
			if branch.on not in ctx.facts:
				return StepOutcome(OutcomeKind.SUSPEND, step, reason="fact")
			value = fact_value(ctx.facts[branch.on])
			choice = "skip"
			for position, case in enumerate(branch.cases):
				if case.matches(value):
					choice = "skip" if case.skip else f"case:{position}"
					break
			else:
				if branch.otherwise is not None:
					choice = "otherwise"
			ctx.branch_choices[step.id] = choice
			logger.debug(f"[{ctx.session_id}] Branch {step.id} on {branch.on}={value!r} -> {choice}")

		if choice == "skip":
			return StepOutcome(OutcomeKind.SKIPPED, step, reason="branch skipped")
		if choice == "otherwise":
			return StepOutcome(OutcomeKind.BRANCH, step, steps=branch.otherwise or ())
		return StepOutcome(OutcomeKind.BRANCH, step, steps=branch.cases[int(choice.split(":")[1])].steps)

	def advance(self, ctx: ExecutionContext) -> RunStatus:
		"""Run steps in order until the workflow suspends or completes."""
		if ctx.status != RunStatus.RUNNING:
			raise ExecutionStateError(f"cannot advance a run that is {ctx.status.value}")

		while ctx.frames:
			frame = ctx.frames[-1]
			step = frame.current
			if step is None:
				ctx.frames.pop()
				if ctx.frames:
					parent = ctx.frames[-1]
					ctx.completed_steps.append(parent.current.id)
					parent.index += 1
				continue

			try:
				outcome = self.run_step(ctx, step)
			except CyclicReferenceError as e:
				self._fail(ctx, str(e))
				raise

			if outcome.kind == OutcomeKind.SUSPEND:
				ctx.status = RunStatus.CLARIFY_NEEDED
				ctx.awaiting = self._awaiting(step, outcome.reason)
				logger.info(f"[{ctx.session_id}] Waiting at {step.id} ({outcome.reason})")
				return ctx.status

			if outcome.kind == OutcomeKind.BRANCH:
				ctx.frames.append(Frame(outcome.steps))
				continue

			if outcome.kind == OutcomeKind.SKIPPED:
				ctx.skipped_steps[step.id] = outcome.reason
				logger.info(f"[{ctx.session_id}] Skipped {step.id}: {outcome.reason}")
			else:
				ctx.completed_steps.append(step.id)
			frame.index += 1

		ctx.status = RunStatus.COMPLETED
		ctx.awaiting = None
		self._record_checklist(ctx)
		logger.info(
			f"[{ctx.session_id}] Completed {ctx.active_workflow.id}: {ctx.report.verdict.value}"
		)
		return ctx.status

	def resume(
		self,
		ctx: ExecutionContext,
		response: Optional[str] = None,
		facts: Optional[dict[str, Any]] = None,
	) -> RunStatus:
		"""
		Continue a suspended run with the user's response and/or new facts.

		For a confirmation step the response is recorded and, if the step
		declares ``fact``, stored as that fact. A blank response only counts
		for a fact step whose fact is already known. For a branch
		waiting on a fact, the response is used as the fact value unless
		``facts`` supplies it. Without a usable answer the run stays suspended.
		"""
		if ctx.status != RunStatus.CLARIFY_NEEDED or ctx.awaiting is None:
			raise ExecutionStateError(f"cannot resume a run that is {ctx.status.value}")

		if facts:
			ctx.facts.update(facts)

		awaiting = ctx.awaiting
		step = ctx.current_step
		if step is None or step.id != awaiting.step_id:
			raise ExecutionStateError(f"suspended step {awaiting.step_id} is no longer current")

		if awaiting.kind == "confirmation":
			answer = (response or "").strip()
			if not answer and not (step.fact and step.fact in ctx.facts):
				return ctx.status
			if step.fact and answer:
				ctx.facts[step.fact] = answer
			ctx.responses[step.id] = answer
		elif awaiting.fact not in ctx.facts:
			if response is None or not response.strip():
				return ctx.status
			ctx.facts[awaiting.fact] = response.strip()

		ctx.awaiting = None
		ctx.status = RunStatus.RUNNING
		return self.advance(ctx)

	def abort(self, ctx: ExecutionContext, reason: str = "aborted") -> RunStatus:
		"""Stop the current run. Nothing outside the context needs undoing."""
		if ctx.status in (RunStatus.COMPLETED, RunStatus.ABORTED):
			return ctx.status
		self._fail(ctx, reason)
		return ctx.status

	def confirm(self, ctx: ExecutionContext, criterion_id: str) -> Optional[ValidationReport]:
		"""
		Record an external confirmation for a success criterion.

		Returns:
			The refreshed report if the run has completed, else None

		Raises:
			CriterionNotFound: If the active workflow has no such criterion
		"""
		workflow = ctx.active_workflow
		if workflow is None or workflow.get_criterion(criterion_id) is None:
			raise CriterionNotFound(criterion_id, workflow.id if workflow else "no active workflow")

		ctx.confirmations.add(criterion_id)
		if ctx.status == RunStatus.COMPLETED:
			self._record_checklist(ctx)
			return ctx.report
		return None

	def _record_checklist(self, ctx: ExecutionContext) -> None:
		report = self.validator.evaluate(ctx.active_workflow, ctx)
		ctx.report = report
		ctx.checklist_state = {c.id: c in report.met for c in ctx.active_workflow.success_criteria}

	def _fail(self, ctx: ExecutionContext, reason: str) -> None:
		ctx.status = RunStatus.ABORTED
		ctx.abort_reason = reason
		ctx.awaiting = None
		ctx.frames = []
		logger.warning(f"[{ctx.session_id}] Aborted: {reason}")

	def _awaiting(self, step: Step, reason: str) -> Awaiting:
		if reason == "fact" and step.branch is not None:
			options: list[str] = []
			for case in step.branch.cases:
				options.extend(case.values)
			return Awaiting(
				step_id=step.id,
				kind="fact",
				prompt=f"Which {step.branch.on.replace('_', ' ')} applies?",
				fact=step.branch.on,
				options=tuple(options),
			)
		return Awaiting(
			step_id=step.id,
			kind="confirmation",
			prompt=step.instructions,
			fact=step.fact,
		)
