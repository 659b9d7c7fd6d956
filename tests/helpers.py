"""Shared test fixtures and helpers for skillflow tests."""

from pathlib import Path
from typing import Callable
from unittest.mock import MagicMock

from skillflow.skills.loader import SkillRegistry

FIXTURES_DIR = Path(__file__).parent / "fixtures"
SKILLS_DIR = FIXTURES_DIR / "skills"


def make_registry(*roots: Path, strict: bool = False) -> SkillRegistry:
	"""Registry over the bundled fixture skills (or the given roots)."""
	return SkillRegistry(roots=list(roots) or [SKILLS_DIR], strict=strict)


def write_skill(root: Path, name: str, files: dict[str, str]) -> Path:
	"""Write a skill bundle under ``root/name`` and return its directory.

	Args:
		root: Skills root directory
		name: Skill directory name
		files: Mapping of relative path to file content
	"""
	skill_dir = root / name
	for rel, content in files.items():
		path = skill_dir / rel
		path.parent.mkdir(parents=True, exist_ok=True)
		path.write_text(content)
	return skill_dir


def minimal_manifest(name: str, routing: str, intake: str = "What would you like to do?") -> str:
	"""A SKILL.md with the given routing block body."""
	return (
		f"---\nname: {name}\ndescription: Test skill\n---\n\n"
		f"<intake>\n{intake}\n</intake>\n\n"
		f"<routing>\n{routing}\n</routing>\n"
	)


def capture_tools(config: MagicMock, register_fn: Callable, **kwargs) -> dict:
	"""Register tools on a mock MCP and return the captured tool functions.

	Args:
		config: Mock config object to pass to the registration function
		register_fn: The registration function (e.g., register_skills_tools)
		**kwargs: Extra keyword arguments for the registration function

	Returns:
		Dict mapping tool name to the tool function
	"""
	captured = {}

	class MockMCP:
		def tool(self):
			def decorator(fn):
				captured[fn.__name__] = fn
				return fn
			return decorator

	register_fn(MockMCP(), config, **kwargs)
	return captured
