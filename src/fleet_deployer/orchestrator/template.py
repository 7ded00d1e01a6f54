"""Command templates with named placeholders."""

from __future__ import annotations

import shlex
import string
from dataclasses import dataclass, field
from typing import Any, FrozenSet, Mapping

from ..errors import PlanError

_FORMATTER = string.Formatter()


@dataclass(frozen=True)
class CommandTemplate:
    """A shell command with ``{name}`` placeholders.

    Placeholders are resolved only when the command is rendered for a host.
    Every substituted value is passed through :func:`shlex.quote`, so a value
    can never add extra shell syntax to the command. Literal braces are
    written as ``{{`` and ``}}``.
    """

    source: str
    placeholders: FrozenSet[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.source or not self.source.strip():
            raise PlanError("Command template must not be empty")
        names = set()
        try:
            parsed = list(_FORMATTER.parse(self.source))
        except ValueError as exc:
            raise PlanError(f"Malformed command template {self.source!r}: {exc}") from exc
        for _, field_name, format_spec, conversion in parsed:
            if field_name is None:
                continue
            if not field_name.isidentifier():
                raise PlanError(
                    f"Placeholder {{{field_name}}} in {self.source!r} must be a plain name"
                )
            if format_spec or conversion:
                raise PlanError(
                    f"Placeholder {{{field_name}}} in {self.source!r} may not use format options"
                )
            names.add(field_name)
        object.__setattr__(self, "placeholders", frozenset(names))

    def missing(self, variables: Mapping[str, Any]) -> FrozenSet[str]:
        return frozenset(name for name in self.placeholders if name not in variables)

    def render(self, variables: Mapping[str, Any]) -> str:
        missing = self.missing(variables)
        if missing:
            raise PlanError(
                f"Unresolved placeholder(s) {', '.join(sorted(missing))} in {self.source!r}"
            )
        parts = []
        for literal, field_name, _, _ in _FORMATTER.parse(self.source):
            parts.append(literal)
            if field_name is not None:
                parts.append(shlex.quote(str(variables[field_name])))
        return "".join(parts)

    def __str__(self) -> str:
        return self.source
