"""Tests for the CLI module."""

import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from skillflow.cli import _check_config_toml, main

from .helpers import SKILLS_DIR, minimal_manifest, write_skill


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch):
	"""Keep config and data dirs out of the user's home; widen Rich output."""
	monkeypatch.setenv("SKILLFLOW_CONFIG_DIR", str(tmp_path / "config"))
	monkeypatch.setenv("SKILLFLOW_DATA_DIR", str(tmp_path / "data"))
	monkeypatch.setenv("COLUMNS", "200")
	with patch("skillflow.cli.setup_logging"):
		yield


def run_cli(*args: str, skills: Path = SKILLS_DIR) -> None:
	with patch.object(sys, "argv", ["skillflow", "--skills-path", str(skills), *args]):
		main()


def test_check_config_toml_missing(tmp_path: Path):
	status, issue = _check_config_toml(tmp_path)
	assert status == "not found (optional)"
	assert issue is None


def test_check_config_toml_valid(tmp_path: Path):
	(tmp_path / "config.toml").write_text('log_level = "DEBUG"\n')
	status, issue = _check_config_toml(tmp_path)
	assert status == "valid"
	assert issue is None


def test_check_config_toml_invalid(tmp_path: Path):
	(tmp_path / "config.toml").write_text("log_level = \n")
	status, issue = _check_config_toml(tmp_path)
	assert status.startswith("INVALID")
	assert "parse error" in issue


def test_no_command_prints_help(capsys):
	with patch.object(sys, "argv", ["skillflow"]):
		with pytest.raises(SystemExit) as exc_info:
			main()
	assert exc_info.value.code == 1
	assert "usage" in capsys.readouterr().out


def test_list(capsys):
	run_cli("list")
	out = capsys.readouterr().out
	assert "coolify-expert" in out
	assert "stripe-skill" in out


def test_route(capsys):
	run_cli("route", "coolify-expert", "diagnose", "health")
	out = capsys.readouterr().out
	assert "workflows/diagnose.md (score 2)" in out


def test_route_verbose(capsys):
	run_cli("route", "-v", "stripe-skill", "implement", "subscriptions")
	out = capsys.readouterr().out
	assert "workflows/implement-subscriptions.md" in out
	assert "workflows/setup-webhooks.md" in out


def test_route_no_match_shows_intake(capsys):
	run_cli("route", "coolify-expert", "bake", "bread")
	out = capsys.readouterr().out
	assert "intake menu" in out
	assert "1. Diagnose instance health" in out


def test_route_intake_keeps_brackets(tmp_path: Path, capsys):
	"""Links and bracketed text in the intake are printed literally."""
	write_skill(tmp_path / "skills", "docs", {
		"SKILL.md": minimal_manifest(
			"docs",
			"- \"go\" -> workflows/go.md",
			intake="Read [the guide](https://example.com/guide) first. [bold]Pick one.",
		),
		"workflows/go.md": "<process><step name=\"a\">x</step></process>",
	})
	run_cli("route", "docs", "bake", skills=tmp_path / "skills")
	out = capsys.readouterr().out
	assert "Read [the guide](https://example.com/guide) first. [bold]Pick one." in out


def test_route_unknown_skill(capsys):
	with pytest.raises(SystemExit) as exc_info:
		run_cli("route", "nope", "diagnose")
	assert exc_info.value.code == 1
	assert "skill not found: nope" in capsys.readouterr().out


def test_check_passes(capsys):
	run_cli("check")
	out = capsys.readouterr().out
	assert "coolify-expert" in out
	assert "reference-cycles" in out
	assert "FAIL" not in out


def test_check_failure_exits(tmp_path: Path, capsys):
	write_skill(tmp_path / "skills", "broken", {
		"SKILL.md": minimal_manifest("broken", "- \"go\" -> workflows/go.md"),
	})
	with pytest.raises(SystemExit) as exc_info:
		run_cli("check", "broken", skills=tmp_path / "skills")
	assert exc_info.value.code == 1
	assert "1 check(s) failed" in capsys.readouterr().out


def test_show(capsys):
	run_cli("show", "coolify-expert", "workflows/deploy.md")
	out = capsys.readouterr().out
	assert "Deploy an application" in out
	assert "framework = laravel" in out
	assert "Success criteria" in out


def test_show_missing_workflow(capsys):
	with pytest.raises(SystemExit):
		run_cli("show", "coolify-expert", "workflows/nope.md")
	assert "workflow not found" in capsys.readouterr().out


def test_run_session(capsys):
	"""Drive an interactive run from stdin to completion."""
	inputs = ["diagnose", "two servers down", "/confirm c4", "/quit"]
	with patch("builtins.input", side_effect=inputs):
		run_cli("run", "coolify-expert")
	out = capsys.readouterr().out
	assert "What would you like to do?" in out
	assert "Summarize unhealthy servers" in out
	assert "partial" in out
	assert "complete" in out


def test_run_ends_on_eof(capsys):
	with patch("builtins.input", side_effect=EOFError):
		run_cli("run")
	assert capsys.readouterr().out == ""


def test_run_reports_unknown_criterion(capsys):
	inputs = ["/confirm c1", "/exit"]
	with patch("builtins.input", side_effect=inputs):
		run_cli("run", "stripe-skill")
	assert "not found" in capsys.readouterr().out
