"""Tests for the skill document markup scanner."""

import pytest

from skillflow.errors import ManifestError
from skillflow.markup import (
	normalize_text,
	parse_blocks,
	parse_list_items,
	parse_path_list,
	split_frontmatter,
)


def test_parse_blocks_nested():
	"""Known tags become nodes, nested blocks are children."""
	root = parse_blocks(
		'<process>\n<step name="one">Do it.</step>\n<step name="two" wait>Ask.</step>\n</process>'
	)
	process = root.find("process")
	assert process is not None
	steps = process.find_all("step")
	assert [s.attrs["name"] for s in steps] == ["one", "two"]
	assert steps[0].text == "Do it."
	assert steps[1].has_flag("wait")
	assert not steps[0].has_flag("wait")


def test_parse_blocks_ignores_unknown_tags():
	"""Angle-bracket text that is not a block tag stays as content."""
	root = parse_blocks("<intake>\nSend `Authorization: Bearer <token>` to <instance>.\n</intake>")
	intake = root.find("intake")
	assert "<token>" in intake.text
	assert "<instance>" in intake.text


def test_parse_blocks_skips_fenced_code():
	"""Tags inside fenced code blocks are not structure."""
	text = "<intake>\nExample:\n```\n<routing>\n```\n</intake>"
	root = parse_blocks(text)
	intake = root.find("intake")
	assert intake.find("routing") is None
	assert "<routing>" in intake.text


def test_parse_blocks_skips_inline_code():
	root = parse_blocks("<intake>Use the `<step>` tag.</intake>")
	assert root.find("intake").find("step") is None


def test_parse_blocks_self_closing():
	root = parse_blocks('<branch on="x"><otherwise skip /></branch>')
	branch = root.find("branch")
	otherwise = branch.find("otherwise")
	assert otherwise is not None
	assert otherwise.has_flag("skip")
	assert otherwise.children == []


def test_parse_blocks_unclosed_raises():
	with pytest.raises(ManifestError, match="unclosed <step>"):
		parse_blocks('<process>\n</process>\n<step name="a">\nbody', "wf.md")


def test_parse_blocks_stray_close_raises():
	with pytest.raises(ManifestError, match="unexpected </routing>"):
		parse_blocks("text </routing>")


def test_split_frontmatter():
	data, body = split_frontmatter("---\nname: demo\ninvocations: [a, b]\n---\n# Body\n")
	assert data == {"name": "demo", "invocations": ["a", "b"]}
	assert body == "# Body\n"


def test_split_frontmatter_absent():
	data, body = split_frontmatter("# Just markdown\n")
	assert data == {}
	assert body == "# Just markdown\n"


def test_split_frontmatter_invalid_yaml():
	with pytest.raises(ManifestError, match="invalid YAML"):
		split_frontmatter("---\nname: [unclosed\n---\nbody")


def test_split_frontmatter_not_mapping():
	with pytest.raises(ManifestError, match="mapping"):
		split_frontmatter("---\n- a\n- b\n---\nbody")


def test_parse_list_items_checkboxes_and_continuations():
	text = "Intro sentence.\n- [ ] First item\n  continues here\n2. Second item\n* [x] Third"
	assert parse_list_items(text) == ["First item continues here", "Second item", "Third"]


def test_parse_path_list():
	text = "1. references/api-basics.md\n- `templates/env-template.md`\n@references/auth.md and ./references/auth.md"
	assert parse_path_list(text) == (
		"references/api-basics.md",
		"templates/env-template.md",
		"references/auth.md",
	)


def test_normalize_text():
	assert normalize_text("**Wait for  response**\nbefore\tproceeding") == "wait for response before proceeding"
