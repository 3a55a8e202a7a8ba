"""Interactive prompting for feature questions.

A question is a mapping with ``name`` and optionally ``message``, ``type``
(``input``, ``confirm``, ``list``, ``password``, ``number``), ``default``
and ``choices``. Questions whose ``name`` already has a value are not asked.
"""

from __future__ import annotations

import sys
from typing import Any, Protocol

import click

QUESTION_TYPES = ("input", "confirm", "list", "password", "number")


class Prompter(Protocol):
    def available(self) -> bool: ...

    def ask(self, questions: list[dict[str, Any]], defaults: dict[str, Any]) -> dict[str, Any]: ...


def unanswered(questions: list[dict[str, Any]], answers: dict[str, Any]) -> list[dict[str, Any]]:
    return [q for q in questions if q.get("name") and q["name"] not in answers]


def _choice_values(choices: list[Any]) -> list[str]:
    values = []
    for choice in choices:
        if isinstance(choice, dict):
            values.append(str(choice.get("value", choice.get("name", ""))))
        else:
            values.append(str(choice))
    return values


class ClickPrompter:
    """Ask questions on the terminal with click prompts."""

    def available(self) -> bool:
        return sys.stdin.isatty()

    def ask(self, questions: list[dict[str, Any]], defaults: dict[str, Any]) -> dict[str, Any]:
        answers: dict[str, Any] = {}
        for question in questions:
            name = question["name"]
            kind = question.get("type", "input")
            message = question.get("message", name)
            default = defaults.get(name, question.get("default"))

            if kind == "confirm":
                answers[name] = click.confirm(message, default=bool(default))
            elif kind == "list":
                answers[name] = click.prompt(
                    message,
                    type=click.Choice(_choice_values(question.get("choices", []))),
                    default=default,
                )
            elif kind == "password":
                answers[name] = click.prompt(message, hide_input=True, default=default)
            elif kind == "number":
                answers[name] = click.prompt(message, type=float, default=default)
            else:
                answers[name] = click.prompt(message, default=default)
        return answers
