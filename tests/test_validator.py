"""Tests for the success validator."""

import pytest

from skillflow.skills.executor import ExecutionContext, RunStatus
from skillflow.skills.models import Criterion, Workflow
from skillflow.skills.validator import SuccessValidator, Verdict, fact_value

from .helpers import make_registry


@pytest.fixture
def skill():
	return make_registry().get("coolify-expert")


def make_workflow(*criteria: Criterion, required_reading: tuple[str, ...] = ()) -> Workflow:
	return Workflow(
		id="workflows/test.md",
		skill_id="coolify-expert",
		required_reading=required_reading,
		success_criteria=criteria,
	)


def test_fact_value():
	assert fact_value(True) == "true"
	assert fact_value(False) == "false"
	assert fact_value(" Laravel ") == "laravel"
	assert fact_value(3) == "3"
	assert fact_value(None) == ""


def test_all_met_is_complete(skill):
	workflow = make_workflow(
		Criterion(id="c1", description="Done", check="steps-completed"),
		Criterion(id="c2", description="Ran a", check="step:a"),
	)
	ctx = ExecutionContext(active_skill=skill, status=RunStatus.COMPLETED, completed_steps=["a"])

	report = SuccessValidator().evaluate(workflow, ctx)

	assert report.complete
	assert report.verdict == Verdict.COMPLETE
	assert [c.id for c in report.met] == ["c1", "c2"]
	assert report.unmet == []


def test_unverifiable_is_partial(skill):
	"""A criterion without an evaluator is unmet until confirmed."""
	workflow = make_workflow(
		Criterion(id="c1", description="Done", check="steps-completed"),
		Criterion(id="c2", description="User is happy"),
	)
	ctx = ExecutionContext(active_skill=skill, status=RunStatus.COMPLETED)
	validator = SuccessValidator()

	report = validator.evaluate(workflow, ctx)
	assert report.verdict == Verdict.PARTIAL
	assert [c.id for c in report.needs_confirmation] == ["c2"]
	assert report.failed == []

	ctx.confirmations.add("c2")
	assert validator.evaluate(workflow, ctx).verdict == Verdict.COMPLETE


def test_false_evaluator_is_failed(skill):
	workflow = make_workflow(
		Criterion(id="c1", description="Loaded", check="reference:references/auth.md"),
		Criterion(id="c2", description="User is happy"),
	)
	ctx = ExecutionContext(active_skill=skill, status=RunStatus.COMPLETED)

	report = SuccessValidator().evaluate(workflow, ctx)

	assert report.verdict == Verdict.FAILED
	assert [c.id for c in report.failed] == ["c1"]
	assert [c.id for c in report.needs_confirmation] == ["c2"]


def test_confirmation_does_not_override_failed_check(skill):
	workflow = make_workflow(Criterion(id="c1", description="Ran a", check="step:a"))
	ctx = ExecutionContext(active_skill=skill, confirmations={"c1"})
	assert SuccessValidator().evaluate(workflow, ctx).verdict == Verdict.FAILED


def test_references_loaded(skill):
	workflow = make_workflow(
		Criterion(id="c1", description="Read", check="references-loaded"),
		required_reading=("references/a.md", "references/b.md"),
	)
	ctx = ExecutionContext(active_skill=skill, loaded_references={"references/a.md"})
	validator = SuccessValidator()
	assert not validator.evaluate(workflow, ctx).complete

	ctx.loaded_references.add("references/b.md")
	assert validator.evaluate(workflow, ctx).complete


def test_fact_checks(skill):
	validator = SuccessValidator()
	workflow = make_workflow(
		Criterion(id="c1", description="Framework known", check="fact:framework"),
		Criterion(id="c2", description="Laravel", check="fact:framework=Laravel"),
		Criterion(id="c3", description="Has env", check="fact:has_env"),
	)
	ctx = ExecutionContext(active_skill=skill, facts={"framework": "laravel", "has_env": False})

	report = validator.evaluate(workflow, ctx)

	assert [c.id for c in report.met] == ["c1", "c2"]
	assert [c.id for c in report.failed] == ["c3"]


def test_response_check(skill):
	workflow = make_workflow(Criterion(id="c1", description="Acknowledged", check="response:report"))
	validator = SuccessValidator()
	ctx = ExecutionContext(active_skill=skill, responses={"report": "  "})
	assert not validator.evaluate(workflow, ctx).complete

	ctx.responses["report"] = "yes"
	assert validator.evaluate(workflow, ctx).complete


def test_unknown_evaluator_treated_as_unverifiable(skill, caplog):
	workflow = make_workflow(Criterion(id="c1", description="Green build", check="ci-green"))
	ctx = ExecutionContext(active_skill=skill)
	validator = SuccessValidator()

	assert validator.check_criterion(workflow.success_criteria[0], workflow, ctx) is None
	assert "Unknown evaluator 'ci-green'" in caplog.text
	assert validator.evaluate(workflow, ctx).verdict == Verdict.PARTIAL
	assert not validator.known("ci-green")


def test_register_custom_evaluator(skill):
	workflow = make_workflow(Criterion(id="c1", description="Green build", check="ci-green: main"))
	ctx = ExecutionContext(active_skill=skill, facts={"ci": "main"})
	validator = SuccessValidator()
	validator.register("ci-green", lambda c, w, arg: c.facts.get("ci") == arg)

	assert validator.known("ci-green:anything")
	assert validator.evaluate(workflow, ctx).complete


def test_evaluate_does_not_mutate_context(skill):
	workflow = make_workflow(Criterion(id="c1", description="Done", check="steps-completed"))
	ctx = ExecutionContext(active_skill=skill, status=RunStatus.COMPLETED)
	before = ctx.to_dict()

	SuccessValidator().evaluate(workflow, ctx)

	assert ctx.to_dict() == before


def test_report_to_dict(skill):
	workflow = make_workflow(
		Criterion(id="c1", description="Done", check="steps-completed"),
		Criterion(id="c2", description="User is happy"),
	)
	ctx = ExecutionContext(active_skill=skill, status=RunStatus.COMPLETED)
	data = SuccessValidator().evaluate(workflow, ctx).to_dict()
	assert data == {
		"complete": False,
		"verdict": "partial",
		"met": ["c1"],
		"unmet": [{"id": "c2", "description": "User is happy"}],
		"failed": [],
	}
