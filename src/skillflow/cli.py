"""CLI for skillflow: serve, doctor, list, route, check, show, and run commands."""

import argparse
import sys
import tomllib
from importlib.metadata import version as pkg_version
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from .config import load_config
from .errors import ManifestError, NotFoundError, SkillflowError
from .logging_config import setup_logging
from .skills.checks import CheckStatus, check_skill
from .skills.loader import SkillRegistry
from .skills.matcher import Clarify, match_route, rank_routes
from .skills.session import ReplyKind, Session
from .visualizer import render_report, render_routing, render_skills, render_workflow

CORE_DEPS = ["mcp", "pydantic", "PyYAML", "platformdirs", "rich"]

CHECK_LABELS = {
	CheckStatus.PASSED: "[green]OK[/green]",
	CheckStatus.FAILED: "[red]FAIL[/red]",
	CheckStatus.SKIPPED: "[dim]SKIP[/dim]",
}


def _registry(args: argparse.Namespace) -> SkillRegistry:
	config = load_config()
	extra = [Path(p) for p in (getattr(args, "skills_path", None) or [])]
	roots = extra if extra else list(config.skills_paths)
	return SkillRegistry(roots=roots, wait_phrases=tuple(config.wait_phrases), strict=config.strict)


def cmd_serve(args: argparse.Namespace) -> None:
	"""Run the MCP server (stdio transport)."""
	from .server import mcp
	mcp.run()


def _check_config_toml(config_dir: Path) -> tuple[str, str | None]:
	"""Validate config.toml. Returns (status, issue_or_none)."""
	toml_path = config_dir / "config.toml"
	if not toml_path.exists():
		return "not found (optional)", None
	try:
		with open(toml_path, "rb") as f:
			tomllib.load(f)
		return "valid", None
	except tomllib.TOMLDecodeError as e:
		msg = f"config.toml parse error: {e}"
		return f"INVALID ({e})", msg


def cmd_doctor(args: argparse.Namespace) -> None:
	"""Health check - verify installation, configuration and skills."""
	print("skillflow doctor")
	print(f"{'=' * 40}")

	config = load_config()
	issues: list[str] = []

	print(f"  Python:       {sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}")
	print()

	print("  Core deps:")
	for dep in CORE_DEPS:
		try:
			dep_ver = pkg_version(dep)
			print(f"    {dep:22s} {dep_ver}")
		except Exception:
			print(f"    {dep:22s} NOT INSTALLED")
			issues.append(f"{dep} package not installed")
	print()

	print("  Config:")
	toml_status, toml_issue = _check_config_toml(config.config_dir)
	print(f"    config.toml:         {toml_status}")
	if toml_issue:
		issues.append(toml_issue)
	print()

	print("  Skill roots:")
	for root in config.skills_paths:
		status = "found" if root.is_dir() else "missing"
		print(f"    [{status:7s}] {root}")
	print()

	registry = SkillRegistry.from_config(config)
	try:
		skills = registry.all()
	except ManifestError as e:
		skills = []
		issues.append(str(e))

	print(f"  Skills: {len(skills)}")
	for skill in skills:
		failed = [r for r in check_skill(registry, skill) if r.status == CheckStatus.FAILED]
		label = "OK" if not failed else f"{len(failed)} failed check(s)"
		print(f"    {skill.id:22s} {label}")
		for result in failed:
			issues.append(f"{skill.id}: {result.name}: {result.output}")

	print()
	if issues:
		print(f"  {len(issues)} issue(s) found:")
		for issue in issues:
			print(f"    - {issue}")
		sys.exit(1)
	else:
		print("  All checks passed.")


def cmd_list(args: argparse.Namespace) -> None:
	"""List discovered skills."""
	render_skills(_registry(args))


def cmd_route(args: argparse.Namespace) -> None:
	"""Show which workflow a request routes to."""
	console = Console()
	registry = _registry(args)
	try:
		skill = registry.get(args.skill)
	except NotFoundError as e:
		console.print(f"[red]{escape(str(e))}[/red]")
		sys.exit(1)

	text = " ".join(args.text)
	result = match_route(skill, text)
	if isinstance(result, Clarify):
		console.print(f"[yellow]No route for {escape(repr(text))}; intake menu:[/yellow]")
		console.print(escape(result.prompt))
		render_routing(registry, skill.id, console)
		return

	console.print(f"[green]{escape(result.workflow)}[/green] (score {result.score})")
	if getattr(args, "verbose", False):
		for match in rank_routes(skill, text):
			console.print(f"  {match.score:3d}  {escape(match.rule.target)}")


def cmd_check(args: argparse.Namespace) -> None:
	"""Validate one skill or all skills."""
	console = Console()
	registry = _registry(args)
	try:
		skills = [registry.get(args.skill)] if args.skill else registry.all()
	except SkillflowError as e:
		console.print(f"[red]{escape(str(e))}[/red]")
		sys.exit(1)

	failures = 0
	for skill in skills:
		console.print(f"[bold]{skill.id}[/bold]")
		for result in check_skill(registry, skill):
			if result.status == CheckStatus.FAILED:
				failures += 1
			console.print(f"  {CHECK_LABELS[result.status]} {result.name}: {escape(result.output)}")

	if failures:
		console.print(f"[red]{failures} check(s) failed[/red]")
		sys.exit(1)


def cmd_show(args: argparse.Namespace) -> None:
	"""Render a workflow's steps, branches and checklist."""
	console = Console()
	registry = _registry(args)
	try:
		workflow = registry.workflows(args.skill).load_workflow(args.workflow)
	except SkillflowError as e:
		console.print(f"[red]{escape(str(e))}[/red]")
		sys.exit(1)
	render_workflow(workflow, console=console)


def cmd_run(args: argparse.Namespace) -> None:
	"""Interactive session loop on stdin."""
	console = Console()
	registry = _registry(args)
	session = Session(registry)

	if args.skill:
		try:
			reply = session.enter_skill(args.skill)
		except NotFoundError as e:
			console.print(f"[red]{escape(str(e))}[/red]")
			sys.exit(1)
		console.print(escape(reply.message))

	while True:
		try:
			text = input("> ")
		except EOFError:
			break
		command = text.strip()
		if command in ("/quit", "/exit"):
			break
		if command.startswith("/confirm "):
			try:
				reply = session.confirm(command.split(None, 1)[1])
			except SkillflowError as e:
				console.print(f"[red]{escape(str(e))}[/red]")
				continue
		else:
			try:
				reply = session.handle(text)
			except SkillflowError as e:
				console.print(f"[red]{escape(str(e))}[/red]")
				continue

		if reply.kind == ReplyKind.CHOOSE_SKILL:
			console.print(escape(f"{reply.message} ({', '.join(reply.options)})"))
		elif reply.kind == ReplyKind.COMPLETED and reply.report is not None:
			render_report(reply.report, console, title=reply.workflow_id or "Checklist")
		else:
			console.print(escape(reply.message))


def main() -> None:
	"""CLI entry point."""
	parser = argparse.ArgumentParser(
		prog="skillflow",
		description="Deterministic routing and workflow execution for skill document bundles",
	)
	parser.add_argument(
		"--skills-path",
		action="append",
		default=None,
		help="Skills root to use instead of the configured ones (repeatable)",
	)
	parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR")
	subparsers = parser.add_subparsers(dest="command")

	serve_parser = subparsers.add_parser("serve", help="Run MCP server (stdio)")
	serve_parser.set_defaults(func=cmd_serve)

	doctor_parser = subparsers.add_parser("doctor", help="Health check")
	doctor_parser.set_defaults(func=cmd_doctor)

	list_parser = subparsers.add_parser("list", help="List skills")
	list_parser.set_defaults(func=cmd_list)

	route_parser = subparsers.add_parser("route", help="Route a request within a skill")
	route_parser.add_argument("skill", help="Skill id")
	route_parser.add_argument("text", nargs="*", help="Request text")
	route_parser.add_argument("-v", "--verbose", action="store_true", help="Show all rule scores")
	route_parser.set_defaults(func=cmd_route)

	check_parser = subparsers.add_parser("check", help="Validate skill bundles")
	check_parser.add_argument("skill", nargs="?", default=None, help="Skill id (default: all)")
	check_parser.set_defaults(func=cmd_check)

	show_parser = subparsers.add_parser("show", help="Render a workflow")
	show_parser.add_argument("skill", help="Skill id")
	show_parser.add_argument("workflow", help="Workflow path, e.g. workflows/diagnose.md")
	show_parser.set_defaults(func=cmd_show)

	run_parser = subparsers.add_parser("run", help="Interactive session")
	run_parser.add_argument("skill", nargs="?", default=None, help="Skill to enter")
	run_parser.set_defaults(func=cmd_run)

	args = parser.parse_args()

	if not args.command:
		parser.print_help()
		sys.exit(1)

	if args.command != "serve":
		setup_logging(args.log_level or "WARNING")

	args.func(args)
