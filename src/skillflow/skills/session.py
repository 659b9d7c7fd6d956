"""
Session - drives one conversation through registry, matcher and executor.

Control flow for each turn of user text:
- a run waiting for an answer consumes the text as that answer
- otherwise the text may select a skill, or switch away from the active one
  when it names another skill or only another skill can route it
- within the active skill the text is routed to a workflow, or the intake
  menu is presented again
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from ..errors import CyclicReferenceError, NotFoundError
from .executor import ExecutionContext, RunStatus, WorkflowExecutor
from .loader import SkillMatch, SkillRegistry
from .matcher import Clarify, RouteMatch, match_route
from .models import Skill
from .validator import SuccessValidator, ValidationReport

logger = logging.getLogger(__name__)


class ReplyKind(str, Enum):
	"""What the caller should do with a reply."""
	CHOOSE_SKILL = "choose_skill"
	CLARIFY = "clarify"
	PROMPT = "prompt"
	COMPLETED = "completed"
	INAPPLICABLE = "inapplicable"
	ABORTED = "aborted"


@dataclass
class Reply:
	"""Outcome of one conversational turn."""
	kind: ReplyKind
	message: str
	skill_id: Optional[str] = None
	workflow_id: Optional[str] = None
	step_id: Optional[str] = None
	options: list[str] = field(default_factory=list)
	report: Optional[ValidationReport] = None

	def to_dict(self) -> dict:
		return {
			"kind": self.kind.value,
			"message": self.message,
			"skill_id": self.skill_id,
			"workflow_id": self.workflow_id,
			"step_id": self.step_id,
			"options": list(self.options),
			"report": self.report.to_dict() if self.report else None,
		}


class Session:
	"""
	One conversation with at most one active skill.

	The ExecutionContext is created when a skill is entered and discarded
	when another skill is entered or the session ends.
	"""

	def __init__(
		self,
		registry: SkillRegistry,
		session_id: Optional[str] = None,
		validator: Optional[SuccessValidator] = None,
	):
		self.registry = registry
		self.session_id = session_id or uuid.uuid4().hex[:12]
		self.validator = validator or SuccessValidator()
		self.ctx: Optional[ExecutionContext] = None
		self.executor: Optional[WorkflowExecutor] = None
		self.created_at = datetime.now().isoformat()
		self.last_activity = self.created_at

	@property
	def active_skill(self) -> Optional[Skill]:
		return self.ctx.active_skill if self.ctx else None

	def enter_skill(self, skill_id: str) -> Reply:
		"""Enter a skill explicitly and present its intake menu.

		Raises:
			SkillNotFound: If the registry has no such skill
		"""
		skill = self.registry.get(skill_id)
		self._enter(skill)
		return self._clarify(match_route(skill, ""))

	def handle(self, text: str, facts: Optional[dict[str, Any]] = None) -> Reply:
		"""Process one turn of user input."""
		self.last_activity = datetime.now().isoformat()

		if self.ctx is not None and self.ctx.status == RunStatus.CLARIFY_NEEDED:
			try:
				status = self.executor.resume(self.ctx, response=text, facts=facts)
			except CyclicReferenceError as e:
				logger.warning(f"[{self.session_id}] {e}")
				status = RunStatus.ABORTED
			return self._reply_for(status)

		candidate = self.registry.match_skill(text)
		if self.ctx is None:
			if candidate is None:
				return Reply(
					kind=ReplyKind.CHOOSE_SKILL,
					message="Which skill should handle this?",
					options=[s.id for s in self.registry.all()],
				)
			self._enter(candidate.skill)
		elif self._should_switch(candidate, text):
			logger.info(f"[{self.session_id}] Switching skill {self.ctx.active_skill.id} -> {candidate.skill.id}")
			self._enter(candidate.skill)

		if facts:
			self.ctx.facts.update(facts)

		skill = self.ctx.active_skill
		route = match_route(skill, text)
		if isinstance(route, Clarify):
			return self._clarify(route)

		try:
			workflow = self.registry.workflows(skill.id).load_workflow(route.workflow)
		except NotFoundError as e:
			logger.warning(f"[{self.session_id}] {e}")
			return Reply(
				kind=ReplyKind.INAPPLICABLE,
				message=f"Workflow {route.workflow} is not available for {skill.id}.",
				skill_id=skill.id,
				workflow_id=route.workflow,
			)

		try:
			status = self.executor.start(self.ctx, workflow)
		except CyclicReferenceError as e:
			logger.warning(f"[{self.session_id}] {e}")
			status = RunStatus.ABORTED
		return self._reply_for(status)

	def confirm(self, criterion_id: str) -> Reply:
		"""Record a confirmation for a success criterion of the active workflow.

		Raises:
			CriterionNotFound: If the active workflow has no such criterion
		"""
		if self.ctx is None or self.executor is None:
			raise NotFoundError(criterion_id, "no active skill")
		self.executor.confirm(self.ctx, criterion_id)
		return self._reply_for(self.ctx.status)

	def abort(self, reason: str = "cancelled by user") -> Optional[Reply]:
		if self.ctx is None or self.executor is None:
			return None
		return self._reply_for(self.executor.abort(self.ctx, reason))

	def state(self) -> dict:
		"""Snapshot for JSON serialization."""
		return {
			"session_id": self.session_id,
			"created_at": self.created_at,
			"last_activity": self.last_activity,
			"context": self.ctx.to_dict() if self.ctx else None,
		}

	def end(self) -> None:
		self.ctx = None
		self.executor = None

	def _should_switch(self, candidate: Optional[SkillMatch], text: str) -> bool:
		"""
		Whether ``text`` moves the session away from the active skill.

		Naming another skill more specifically than the active one switches.
		Intake words alone switch only when the active skill has no route
		for the text and the other skill does.
		"""
		active = self.ctx.active_skill
		if candidate is None or candidate.skill.id == active.id:
			return False

		own = self.registry.score_skill(active, text)
		if candidate.explicit:
			return candidate.key > own.key
		if own.explicit or isinstance(match_route(active, text), RouteMatch):
			return False
		return isinstance(match_route(candidate.skill, text), RouteMatch)

	def _enter(self, skill: Skill) -> None:
		self.ctx = ExecutionContext(active_skill=skill, session_id=self.session_id)
		self.executor = WorkflowExecutor(self.registry.resolver(skill.id), self.validator)
		logger.info(f"[{self.session_id}] Entered skill {skill.id}")

	def _clarify(self, route: Clarify) -> Reply:
		return Reply(
			kind=ReplyKind.CLARIFY,
			message=route.prompt,
			skill_id=route.skill_id,
			options=[rule.target for rule in route.options],
		)

	def _reply_for(self, status: RunStatus) -> Reply:
		ctx = self.ctx
		workflow_id = ctx.active_workflow.id if ctx.active_workflow else None
		base = {"skill_id": ctx.active_skill.id, "workflow_id": workflow_id}

		if status == RunStatus.CLARIFY_NEEDED:
			return Reply(
				kind=ReplyKind.PROMPT,
				message=ctx.awaiting.prompt,
				step_id=ctx.awaiting.step_id,
				options=list(ctx.awaiting.options),
				**base,
			)
		if status == RunStatus.ABORTED:
			return Reply(kind=ReplyKind.ABORTED, message=ctx.abort_reason, **base)

		report = ctx.report
		if report is None:
			return Reply(kind=ReplyKind.COMPLETED, message="No workflow has run yet.", **base)
		if report.complete:
			message = "All success criteria met."
		else:
			pending = "; ".join(f"{c.id}: {c.description}" for c in report.unmet)
			message = f"Workflow finished ({report.verdict.value}). Unmet: {pending}"
		return Reply(kind=ReplyKind.COMPLETED, message=message, report=report, **base)


class SessionManager:
	"""Creates, looks up and ends sessions; each owns its own context."""

	def __init__(self, registry: SkillRegistry):
		self.registry = registry
		self._sessions: dict[str, Session] = {}

	def create(self, skill_id: str = "") -> tuple[Session, Optional[Reply]]:
		session = Session(self.registry)
		reply = session.enter_skill(skill_id) if skill_id else None
		self._sessions[session.session_id] = session
		logger.info(f"Created session {session.session_id}")
		return session, reply

	def get(self, session_id: str) -> Session:
		"""
		Raises:
			NotFoundError: If the session does not exist
		"""
		try:
			return self._sessions[session_id]
		except KeyError:
			raise NotFoundError(session_id, "session") from None

	def end(self, session_id: str) -> bool:
		session = self._sessions.pop(session_id, None)
		if session is None:
			return False
		session.end()
		return True

	def list_sessions(self) -> list[dict]:
		return [s.state() for s in self._sessions.values()]
