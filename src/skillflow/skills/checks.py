"""
Skill checks - static validation of a skill bundle.

Checks:
- Routing targets exist
- No dead routing rules
- Every routed workflow parses
- Every declared reference exists
- No cyclic required reading
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

from ..errors import CyclicReferenceError, ManifestError, NotFoundError
from .loader import SkillRegistry
from .matcher import find_dead_rules
from .models import Skill

logger = logging.getLogger(__name__)


class CheckStatus(str, Enum):
	"""Status of a skill check."""
	PASSED = "passed"
	FAILED = "failed"
	SKIPPED = "skipped"


@dataclass
class CheckResult:
	"""Result of a single check."""
	name: str
	status: CheckStatus
	output: str = ""
	details: dict = field(default_factory=dict)

	@property
	def passed(self) -> bool:
		return self.status != CheckStatus.FAILED


def check_skill(registry: SkillRegistry, skill: Skill) -> list[CheckResult]:
	"""Run every check against one skill."""
	results: list[CheckResult] = []
	workflows = registry.workflows(skill.id)
	resolver = registry.resolver(skill.id)

	missing_targets = [t for t in skill.workflow_targets() if not workflows.exists(t)]
	results.append(CheckResult(
		name="routing-targets",
		status=CheckStatus.FAILED if missing_targets else CheckStatus.PASSED,
		output=", ".join(missing_targets) if missing_targets else f"{len(skill.workflow_targets())} targets found",
		details={"missing": missing_targets},
	))

	dead = find_dead_rules(skill)
	results.append(CheckResult(
		name="dead-rules",
		status=CheckStatus.FAILED if dead else CheckStatus.PASSED,
		output="; ".join(", ".join(r.triggers) for r in dead) if dead else "every rule reachable",
		details={"dead": [r.target for r in dead]},
	))

	parse_errors: dict[str, str] = {}
	references: list[str] = []
	for target in skill.workflow_targets():
		if target in missing_targets:
			continue
		try:
			workflow = workflows.load_workflow(target)
		except (ManifestError, NotFoundError) as e:
			parse_errors[target] = str(e)
			continue
		for ref in workflow.declared_references():
			if ref not in references:
				references.append(ref)

	results.append(CheckResult(
		name="workflows-parse",
		status=CheckStatus.FAILED if parse_errors else CheckStatus.PASSED,
		output="; ".join(f"{k}: {v}" for k, v in parse_errors.items()) or "all workflows parse",
		details={"errors": parse_errors},
	))

	if not references:
		results.append(CheckResult(name="references", status=CheckStatus.SKIPPED, output="no references declared"))
		return results

	missing_refs: list[str] = []
	cycles: list[list[str]] = []
	for ref in references:
		try:
			resolver.check(ref)
		except CyclicReferenceError as e:
			if e.chain not in cycles:
				cycles.append(e.chain)
		except (NotFoundError, ManifestError) as e:
			logger.debug(f"{skill.id}: {e}")
			missing_refs.append(ref)

	results.append(CheckResult(
		name="references",
		status=CheckStatus.FAILED if missing_refs else CheckStatus.PASSED,
		output=", ".join(missing_refs) if missing_refs else f"{len(references)} references found",
		details={"missing": missing_refs},
	))
	results.append(CheckResult(
		name="reference-cycles",
		status=CheckStatus.FAILED if cycles else CheckStatus.PASSED,
		output="; ".join(" -> ".join(c) for c in cycles) if cycles else "no cycles",
		details={"cycles": cycles},
	))
	return results
