"""MCP tool registration - modular tool definitions."""

import logging

from mcp.server.fastmcp import FastMCP

from ..config import Config
from ..skills.loader import SkillRegistry
from ..skills.session import SessionManager
from .skills import register_skills_tools

logger = logging.getLogger(__name__)


def register_all_tools(mcp: FastMCP, config: Config) -> SessionManager:
	"""Register all MCP tools; returns the session manager they share."""
	registry = SkillRegistry.from_config(config)
	sessions = SessionManager(registry)
	register_skills_tools(mcp, config, registry=registry, sessions=sessions)
	logger.info(f"Registered skill tools for roots: {', '.join(str(r) for r in registry.roots)}")
	return sessions
