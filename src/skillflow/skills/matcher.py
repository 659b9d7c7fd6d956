"""
Intent Matcher - deterministic routing of free text to a workflow.

Each routing rule is scored by how many input tokens its trigger phrases
cover. A trigger matches only where its whole token sequence appears
contiguously in the input, so matching is case-insensitive and respects word
boundaries. The highest score wins, ties go to the rule declared first, and a
zero score everywhere means the user has to be asked again.
"""

import re
from dataclasses import dataclass, field
from typing import Union

from .models import RoutingRule, Skill

# Letters and digits in any script; underscores split words.
_TOKEN_RE = re.compile(r"[^\W_]+(?:'[^\W_]+)*")


def tokenize(text: str) -> tuple[str, ...]:
	"""Split text into lowercase word tokens."""
	return tuple(_TOKEN_RE.findall((text or "").casefold()))


def phrase_starts(tokens: tuple[str, ...], phrase: tuple[str, ...]) -> list[int]:
	"""Start positions where ``phrase`` occurs contiguously in ``tokens``."""
	if not phrase or len(phrase) > len(tokens):
		return []
	width = len(phrase)
	return [
		i for i in range(len(tokens) - width + 1)
		if tokens[i:i + width] == phrase
	]


def score_triggers(triggers: tuple[str, ...], tokens: tuple[str, ...]) -> int:
	"""Number of distinct input tokens covered by matching trigger phrases."""
	covered: set[int] = set()
	for trigger in triggers:
		phrase = tokenize(trigger)
		for start in phrase_starts(tokens, phrase):
			covered.update(range(start, start + len(phrase)))
	return len(covered)


@dataclass(frozen=True)
class RouteMatch:
	"""A routing rule selected for an input."""
	rule: RoutingRule
	index: int
	score: int

	@property
	def workflow(self) -> str:
		return self.rule.target


@dataclass(frozen=True)
class Clarify:
	"""No rule matched: re-present the intake menu and wait."""
	skill_id: str
	prompt: str
	options: tuple[RoutingRule, ...] = field(default_factory=tuple)
	reason: str = ""


RouteResult = Union[RouteMatch, Clarify]


def rank_routes(skill: Skill, text: str) -> list[RouteMatch]:
	"""Score every rule of the skill, best first (stable on ties)."""
	tokens = tokenize(text)
	ranked = [
		RouteMatch(rule=rule, index=i, score=score_triggers(rule.triggers, tokens))
		for i, rule in enumerate(skill.routing_table)
	]
	ranked.sort(key=lambda m: (-m.score, m.index))
	return ranked


def match_route(skill: Skill, text: str) -> RouteResult:
	"""
	Select the workflow for ``text`` within ``skill``.

	Returns:
		RouteMatch for the highest-scoring rule (first declared on ties), or
		Clarify when nothing scores above zero
	"""
	if not tokenize(text):
		return Clarify(
			skill_id=skill.id,
			prompt=skill.intake_prompt,
			options=skill.routing_table,
			reason="empty input",
		)

	ranked = rank_routes(skill, text)
	if not ranked or ranked[0].score == 0:
		return Clarify(
			skill_id=skill.id,
			prompt=skill.intake_prompt,
			options=skill.routing_table,
			reason=f"no routing rule matched {text!r}",
		)
	return ranked[0]


def is_unique_top(skill: Skill, text: str, index: int) -> bool:
	"""True if rule ``index`` strictly outscores every other rule for ``text``."""
	ranked = rank_routes(skill, text)
	if not ranked or ranked[0].index != index or ranked[0].score == 0:
		return False
	return len(ranked) == 1 or ranked[1].score < ranked[0].score


def find_dead_rules(skill: Skill) -> list[RoutingRule]:
	"""Rules that none of their own trigger phrases can select uniquely."""
	dead: list[RoutingRule] = []
	for i, rule in enumerate(skill.routing_table):
		candidates = list(rule.triggers) + [" ".join(rule.triggers)]
		if not any(is_unique_top(skill, text, i) for text in candidates):
			dead.append(rule)
	return dead
