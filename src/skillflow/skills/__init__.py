"""Skills module - skill discovery, routing, and workflow execution."""

from .executor import ExecutionContext, RunStatus, WorkflowExecutor
from .loader import SkillMatch, SkillRegistry, get_registry
from .matcher import Clarify, RouteMatch, match_route
from .models import Criterion, ReferenceDocument, RoutingRule, Skill, Step, Workflow
from .references import ReferenceResolver, ReferenceStore
from .session import Reply, ReplyKind, Session, SessionManager
from .validator import SuccessValidator, ValidationReport, Verdict
from .workflows import WorkflowStore

__all__ = [
	"Clarify",
	"Criterion",
	"ExecutionContext",
	"ReferenceDocument",
	"ReferenceResolver",
	"ReferenceStore",
	"Reply",
	"ReplyKind",
	"RouteMatch",
	"RoutingRule",
	"RunStatus",
	"Session",
	"SessionManager",
	"Skill",
	"SkillMatch",
	"SkillRegistry",
	"Step",
	"SuccessValidator",
	"ValidationReport",
	"Verdict",
	"Workflow",
	"WorkflowExecutor",
	"WorkflowStore",
	"get_registry",
	"match_route",
]
