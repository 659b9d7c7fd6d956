"""Visualizer package - Rich terminal views for skills and workflow runs."""

from .workflow_view import render_report, render_routing, render_skills, render_workflow

__all__ = [
	"render_report",
	"render_routing",
	"render_skills",
	"render_workflow",
]
