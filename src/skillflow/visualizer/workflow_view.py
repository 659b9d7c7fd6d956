"""Rich views for skills, workflow progress, and checklist reports."""

from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from ..skills.executor import ExecutionContext, RunStatus
from ..skills.loader import SkillRegistry
from ..skills.models import Step, Workflow
from ..skills.validator import ValidationReport, Verdict

STATUS_ICONS = {
	"pending": "[dim][ ][/dim]",
	"current": "[yellow][~][/yellow]",
	"completed": "[green]\\[x][/green]",
	"skipped": "[dim][-][/dim]",
}

VERDICT_STYLES = {
	Verdict.COMPLETE: "green",
	Verdict.PARTIAL: "yellow",
	Verdict.FAILED: "red",
}


def step_state(step: Step, ctx: Optional[ExecutionContext]) -> str:
	"""Display state of a step within a run."""
	if ctx is None:
		return "pending"
	if step.id in ctx.completed_steps:
		return "completed"
	if step.id in ctx.skipped_steps:
		return "skipped"
	if ctx.status == RunStatus.CLARIFY_NEEDED and ctx.awaiting and ctx.awaiting.step_id == step.id:
		return "current"
	return "pending"


def render_skills(registry: SkillRegistry, console: Optional[Console] = None) -> None:
	"""Render a table of discovered skills."""
	console = console or Console()
	skills = registry.all()

	if not skills:
		console.print("[dim]No skills found.[/dim]")
		return

	table = Table(title="Skills")
	table.add_column("Skill", style="cyan")
	table.add_column("Workflows", justify="right")
	table.add_column("References", justify="right")
	table.add_column("Description")

	for skill in skills:
		table.add_row(
			skill.id,
			str(len(skill.workflow_targets())),
			str(len(skill.reference_index)),
			escape(skill.description),
		)

	console.print(table)


def render_routing(registry: SkillRegistry, skill_id: str, console: Optional[Console] = None) -> None:
	"""Render a skill's routing table."""
	console = console or Console()
	skill = registry.get(skill_id)

	table = Table(title=f"Routing: {skill.id}")
	table.add_column("#", justify="right", style="dim")
	table.add_column("Triggers")
	table.add_column("Workflow", style="cyan")
	for i, rule in enumerate(skill.routing_table, start=1):
		table.add_row(str(i), escape(", ".join(rule.triggers)), escape(rule.target))

	console.print(table)


def _add_steps(parent: Tree, steps: tuple[Step, ...], ctx: Optional[ExecutionContext]) -> None:
	for step in steps:
		icon = STATUS_ICONS[step_state(step, ctx)]
		label = f"{icon} [bold]{escape(step.name)}[/bold]"
		if step.requires_confirmation:
			label += " [magenta](waits)[/magenta]"
		if step.reference_refs:
			label += f" [dim]refs: {escape(', '.join(step.reference_refs))}[/dim]"
		node = parent.add(label)

		if step.branch is None:
			continue

		branch = step.branch
		chosen = ctx.branch_choices.get(step.id) if ctx else None
		for position, case in enumerate(branch.cases):
			marker = "[green]>[/green] " if chosen == f"case:{position}" else ""
			case_label = f"{marker}[dim]{escape(branch.on)} =[/dim] {escape(' | '.join(case.values))}"
			if case.skip:
				case_label += " [dim](skip)[/dim]"
			_add_steps(node.add(case_label), case.steps, ctx)
		if branch.otherwise is not None or branch.otherwise_skip:
			marker = "[green]>[/green] " if chosen == "otherwise" else ""
			otherwise_node = node.add(f"{marker}[dim]otherwise[/dim]" + (" [dim](skip)[/dim]" if branch.otherwise_skip else ""))
			_add_steps(otherwise_node, branch.otherwise or (), ctx)


def render_workflow(
	workflow: Workflow,
	ctx: Optional[ExecutionContext] = None,
	console: Optional[Console] = None,
) -> None:
	"""Render a workflow as a Rich Tree, annotated with run state if given."""
	console = console or Console()

	header = f"[bold]{escape(workflow.title)}[/bold]  [dim]({workflow.skill_id}:{workflow.id})[/dim]"
	if ctx is not None and ctx.active_workflow is not None and ctx.active_workflow.id == workflow.id:
		header += f"  [cyan]{ctx.status.value}[/cyan]"
	tree = Tree(header)

	if workflow.required_reading:
		reading = tree.add("[bold]Required reading[/bold]")
		for ref in workflow.required_reading:
			loaded = ctx is not None and ref in ctx.loaded_references
			reading.add(f"{STATUS_ICONS['completed' if loaded else 'pending']} {escape(ref)}")

	_add_steps(tree.add("[bold]Steps[/bold]"), workflow.steps, ctx)

	if workflow.success_criteria:
		criteria = tree.add("[bold]Success criteria[/bold]")
		for criterion in workflow.success_criteria:
			met = ctx is not None and ctx.checklist_state.get(criterion.id, False)
			suffix = "" if criterion.verifiable else " [dim](needs confirmation)[/dim]"
			criteria.add(f"{STATUS_ICONS['completed' if met else 'pending']} {criterion.id}: {escape(criterion.description)}{suffix}")

	console.print(tree)


def render_report(report: ValidationReport, console: Optional[Console] = None, title: str = "Checklist") -> None:
	"""Render a summary panel for a validation report."""
	console = console or Console()
	style = VERDICT_STYLES[report.verdict]

	lines = [f"[bold]Verdict:[/bold] [{style}]{report.verdict.value}[/{style}]"]
	lines.append(f"[bold]Met:[/bold] {len(report.met)}/{len(report.met) + len(report.unmet)}")

	if report.failed:
		lines.append("")
		lines.append("[bold]Failed:[/bold]")
		for c in report.failed:
			lines.append(f"  - {c.id}: {escape(c.description)}")

	if report.needs_confirmation:
		lines.append("")
		lines.append("[bold]Awaiting confirmation:[/bold]")
		for c in report.needs_confirmation:
			lines.append(f"  - {c.id}: {escape(c.description)}")

	console.print(Panel("\n".join(lines), title=escape(title), border_style=style))
