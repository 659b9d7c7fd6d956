"""Tests for visualizer Rich views."""

import pytest
from rich.console import Console

from skillflow.skills.executor import ExecutionContext, WorkflowExecutor
from skillflow.skills.models import Criterion
from skillflow.skills.validator import ValidationReport, Verdict
from skillflow.visualizer import render_report, render_routing, render_skills, render_workflow
from skillflow.visualizer.workflow_view import step_state

from .helpers import make_registry, minimal_manifest, write_skill


def make_console() -> Console:
	return Console(record=True, width=200)


@pytest.fixture
def registry():
	return make_registry()


def test_render_skills(registry):
	console = make_console()
	render_skills(registry, console)
	output = console.export_text()
	assert "coolify-expert" in output
	assert "Implement Stripe payments, subscriptions and webhooks" in output


def test_render_skills_empty(tmp_path):
	console = make_console()
	render_skills(make_registry(tmp_path), console)
	assert "No skills found." in console.export_text()


def test_render_routing(registry):
	console = make_console()
	render_routing(registry, "stripe-skill", console)
	output = console.export_text()
	assert "Routing: stripe-skill" in output
	assert "workflows/setup-webhooks.md" in output
	assert "implement subscriptions" in output


def test_render_workflow_static(registry):
	workflow = registry.workflows("coolify-expert").load_workflow("workflows/diagnose.md")
	console = make_console()
	render_workflow(workflow, console=console)
	output = console.export_text()
	assert "Diagnose Coolify Instance" in output
	assert "references/api-basics.md" in output
	assert "Report findings (waits)" in output
	assert "c4: User confirms the instance is healthy (needs confirmation)" in output


def test_render_workflow_with_run_state(registry):
	skill = registry.get("coolify-expert")
	workflow = registry.workflows(skill.id).load_workflow("workflows/deploy.md")
	executor = WorkflowExecutor(registry.resolver(skill.id))
	ctx = ExecutionContext(active_skill=skill)
	executor.start(ctx, workflow)
	executor.resume(ctx, response="laravel")

	console = make_console()
	render_workflow(workflow, ctx, console)
	output = console.export_text()
	assert "clarify_needed" in output
	assert "[x] Identify framework" in output
	assert "> framework = laravel" in output
	assert "[~] Environment" in output


def test_step_state(registry):
	skill = registry.get("coolify-expert")
	workflow = registry.workflows(skill.id).load_workflow("workflows/diagnose.md")
	executor = WorkflowExecutor(registry.resolver(skill.id))
	ctx = ExecutionContext(active_skill=skill)
	executor.start(ctx, workflow)

	states = [step_state(step, ctx) for step in workflow.steps]
	assert states == ["completed", "completed", "current", "pending"]
	assert step_state(workflow.steps[0], None) == "pending"


def test_render_report():
	report = ValidationReport(
		complete=False,
		met=[Criterion(id="c1", description="Done", check="steps-completed")],
		unmet=[
			Criterion(id="c2", description="Ran a", check="step:a"),
			Criterion(id="c3", description="User is happy"),
		],
		failed=[Criterion(id="c2", description="Ran a", check="step:a")],
	)
	assert report.verdict == Verdict.FAILED

	console = make_console()
	render_report(report, console, title="workflows/test.md")
	output = console.export_text()
	assert "workflows/test.md" in output
	assert "Verdict: failed" in output
	assert "Met: 1/3" in output
	assert "c2: Ran a" in output
	assert "c3: User is happy" in output


def test_render_workflow_keeps_brackets(tmp_path):
	"""Bracketed document text is shown literally, not read as markup."""
	write_skill(tmp_path, "docs", {
		"SKILL.md": minimal_manifest("docs", "- \"go\" -> workflows/go.md"),
		"workflows/go.md": (
			"<process>\n<step name=\"Read [docs]\">\nSee [guide](https://example.com).\n</step>\n</process>\n\n"
			"<success_criteria>\n- [ ] Followed [guide](https://example.com)\n</success_criteria>\n"
		),
	})
	workflow = make_registry(tmp_path).workflows("docs").load_workflow("workflows/go.md")

	console = make_console()
	render_workflow(workflow, console=console)
	output = console.export_text()
	assert "Read [docs]" in output
	assert "Followed [guide](https://example.com)" in output


def test_render_workflow_branch_skip(registry):
	skill = registry.get("coolify-expert")
	workflow = registry.workflows(skill.id).load_workflow("workflows/deploy.md")
	executor = WorkflowExecutor(registry.resolver(skill.id))
	ctx = ExecutionContext(active_skill=skill, facts={"framework": "laravel", "has_env": "no"})
	executor.start(ctx, workflow)
	executor.resume(ctx, response="laravel")

	environment = workflow.get_step("environment")
	assert step_state(environment, ctx) == "skipped"

	console = make_console()
	render_workflow(workflow, ctx, console)
	assert "[-] Environment" in console.export_text()
