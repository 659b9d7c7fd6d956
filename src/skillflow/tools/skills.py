"""Skill routing and session tools."""

import json
from typing import Optional

from mcp.server.fastmcp import FastMCP

from ..config import Config
from ..errors import NotFoundError, SkillflowError
from ..skills.checks import check_skill as run_skill_checks
from ..skills.loader import SkillRegistry
from ..skills.matcher import Clarify, match_route, rank_routes
from ..skills.session import SessionManager


def register_skills_tools(
	mcp: FastMCP,
	config: Config,
	registry: Optional[SkillRegistry] = None,
	sessions: Optional[SessionManager] = None,
) -> None:
	"""Register skill tools."""
	registry = registry or SkillRegistry.from_config(config)
	sessions = sessions or SessionManager(registry)

	@mcp.tool()
	async def list_skills() -> str:
		"""
		List all available skills.

		Skills are discovered from the configured skills paths
		(~/.claude/skills/, .claude/skills/, SKILLFLOW_SKILLS_PATH).
		"""
		skills = registry.list_skills()
		return json.dumps({
			"skills": skills,
			"total": len(skills),
			"roots": [str(r) for r in registry.roots],
		}, indent=2)

	@mcp.tool()
	async def get_skill_details(skill_id: str) -> str:
		"""
		Get a skill's intake prompt, routing table and reference index.

		Args:
			skill_id: Skill identifier (SKILL.md name)
		"""
		try:
			skill = registry.get(skill_id)
		except NotFoundError as e:
			return json.dumps({
				"error": str(e),
				"available_skills": [s["id"] for s in registry.list_skills()],
			}, indent=2)

		return json.dumps({
			"id": skill.id,
			"description": skill.description,
			"intake": skill.intake_prompt,
			"routing": [
				{"triggers": list(rule.triggers), "workflow": rule.target}
				for rule in skill.routing_table
			],
			"references": skill.reference_index,
			"invocations": list(skill.invocations),
			"schema_version": skill.schema_version,
			"source_path": skill.source_path,
		}, indent=2)

	@mcp.tool()
	async def route_intent(skill_id: str, text: str) -> str:
		"""
		Route free text to a workflow without starting a session.

		Args:
			skill_id: Skill whose routing table is used
			text: The user's request
		"""
		try:
			skill = registry.get(skill_id)
		except NotFoundError as e:
			return json.dumps({"error": str(e)}, indent=2)

		result = match_route(skill, text)
		if isinstance(result, Clarify):
			return json.dumps({
				"clarify": True,
				"prompt": result.prompt,
				"reason": result.reason,
				"options": [rule.target for rule in result.options],
			}, indent=2)

		return json.dumps({
			"clarify": False,
			"workflow": result.workflow,
			"score": result.score,
			"scores": {m.rule.target: m.score for m in rank_routes(skill, text)},
		}, indent=2)

	@mcp.tool()
	async def check_skill(skill_id: str) -> str:
		"""
		Validate a skill bundle: routing targets, dead rules, references, cycles.

		Args:
			skill_id: Skill identifier
		"""
		try:
			skill = registry.get(skill_id)
		except NotFoundError as e:
			return json.dumps({"error": str(e)}, indent=2)

		results = run_skill_checks(registry, skill)
		return json.dumps({
			"skill": skill.id,
			"passed": all(r.passed for r in results),
			"checks": [
				{"name": r.name, "status": r.status.value, "output": r.output}
				for r in results
			],
		}, indent=2)

	@mcp.tool()
	async def start_session(skill_id: str = "") -> str:
		"""
		Start a conversation session, optionally entering a skill right away.

		Args:
			skill_id: Skill to enter (its intake menu is returned)
		"""
		try:
			session, reply = sessions.create(skill_id)
		except NotFoundError as e:
			return json.dumps({"error": str(e)}, indent=2)

		return json.dumps({
			"session_id": session.session_id,
			"reply": reply.to_dict() if reply else None,
		}, indent=2)

	@mcp.tool()
	async def send_message(session_id: str, text: str, facts: str = "") -> str:
		"""
		Send one turn of user input to a session.

		Args:
			session_id: Session identifier from start_session
			text: The user's message
			facts: Optional JSON object of facts (e.g. {"framework": "laravel"})
		"""
		facts_dict = {}
		if facts:
			try:
				facts_dict = json.loads(facts)
			except json.JSONDecodeError:
				return json.dumps({"error": "Invalid JSON in facts parameter"}, indent=2)
			if not isinstance(facts_dict, dict):
				return json.dumps({"error": "facts must be a JSON object"}, indent=2)

		try:
			session = sessions.get(session_id)
			reply = session.handle(text, facts=facts_dict or None)
		except SkillflowError as e:
			return json.dumps({"error": str(e), "type": type(e).__name__}, indent=2)

		return json.dumps({"session_id": session_id, "reply": reply.to_dict()}, indent=2)

	@mcp.tool()
	async def confirm_criterion(session_id: str, criterion_id: str) -> str:
		"""
		Record that the user confirmed a success criterion.

		Args:
			session_id: Session identifier
			criterion_id: Criterion id from the workflow report (e.g. "c3")
		"""
		try:
			reply = sessions.get(session_id).confirm(criterion_id)
		except SkillflowError as e:
			return json.dumps({"error": str(e)}, indent=2)
		return json.dumps({"session_id": session_id, "reply": reply.to_dict()}, indent=2)

	@mcp.tool()
	async def get_session_state(session_id: str) -> str:
		"""
		Get the execution state of a session.

		Args:
			session_id: Session identifier
		"""
		try:
			session = sessions.get(session_id)
		except NotFoundError as e:
			return json.dumps({"error": str(e)}, indent=2)
		return json.dumps(session.state(), indent=2)

	@mcp.tool()
	async def end_session(session_id: str) -> str:
		"""
		End a session and discard its execution context.

		Args:
			session_id: Session identifier
		"""
		return json.dumps({"session_id": session_id, "ended": sessions.end(session_id)}, indent=2)
