"""Exceptions raised by skill loading, resolution, and execution."""


class SkillflowError(Exception):
	"""Base class for all skillflow errors."""
	pass


class NotFoundError(SkillflowError):
	"""Raised when a skill, workflow, reference, or criterion does not exist."""

	kind = "item"

	def __init__(self, name: str, detail: str = ""):
		self.name = name
		self.detail = detail
		message = f"{self.kind} not found: {name}"
		if detail:
			message = f"{message} ({detail})"
		super().__init__(message)


class SkillNotFound(NotFoundError):
	kind = "skill"


class WorkflowNotFound(NotFoundError):
	kind = "workflow"


class ReferenceNotFound(NotFoundError):
	kind = "reference"


class CriterionNotFound(NotFoundError):
	kind = "criterion"


class CyclicReferenceError(SkillflowError):
	"""Raised when a reference transitively requires itself."""

	def __init__(self, chain: list[str]):
		self.chain = list(chain)
		super().__init__(f"cyclic required reading: {' -> '.join(self.chain)}")


class ManifestError(SkillflowError):
	"""Raised for malformed SKILL.md, workflow, or reference markup."""

	def __init__(self, message: str, source: str = ""):
		self.source = source
		super().__init__(f"{source}: {message}" if source else message)


class ExecutionStateError(SkillflowError):
	"""Raised when a workflow run is asked to make an illegal transition."""
	pass
