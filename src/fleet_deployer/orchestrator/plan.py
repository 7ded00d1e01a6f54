"""Host plans and the loader that builds them from configuration."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Tuple, Union

from ..errors import PlanError
from .presets import resolve_preset
from .step import Step

# snake_case 与 camelCase 两种写法都接受
_STEP_KEY_ALIASES = {
    "forwardCommand": "forward_command",
    "undoCommand": "undo_command",
    "ignoreExitCode": "ignore_exit_code",
}
_STEP_KEYS = {
    "name",
    "forward_command",
    "undo_command",
    "critical",
    "idempotent",
    "ignore_exit_code",
    "timeout",
    "retries",
}


@dataclass(frozen=True)
class HostPlan:
    """An ordered sequence of steps bound to one host."""

    host: str
    steps: Tuple[Step, ...]
    variables: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.host:
            raise PlanError("Host plan requires a host")
        if "host" in self.variables:
            raise PlanError(f"Plan for {self.host}: 'host' is reserved and cannot be set as a variable")
        steps = tuple(self.steps)
        object.__setattr__(self, "steps", steps)
        object.__setattr__(self, "variables", MappingProxyType(dict(self.variables)))

        seen = set()
        for step in steps:
            if step.name in seen:
                raise PlanError(f"Duplicate step name '{step.name}' in plan for {self.host}")
            seen.add(step.name)

        # 在执行前检查所有占位符都能解析
        available = self.template_variables()
        for step in steps:
            for template in (step.forward, step.undo):
                if template is None:
                    continue
                missing = template.missing(available)
                if missing:
                    raise PlanError(
                        f"Step '{step.name}' on {self.host} uses undefined "
                        f"placeholder(s): {', '.join(sorted(missing))}"
                    )

    def template_variables(self) -> Dict[str, Any]:
        return {"host": self.host, **self.variables}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "host": self.host,
            "variables": dict(self.variables),
            "steps": [step.to_dict() for step in self.steps],
        }


def step_from_dict(payload: Mapping[str, Any]) -> Step:
    """Build a Step from a step definition mapping."""
    if not isinstance(payload, Mapping):
        raise PlanError(f"Step definition must be a mapping, got {type(payload).__name__}")
    normalized = {_STEP_KEY_ALIASES.get(k, k): v for k, v in payload.items() if not k.startswith("_")}
    unknown = set(normalized) - _STEP_KEYS
    if unknown:
        raise PlanError(f"Unknown step field(s): {', '.join(sorted(unknown))}")
    if "name" not in normalized or "forward_command" not in normalized:
        raise PlanError(f"Step definition needs 'name' and 'forwardCommand': {dict(payload)}")
    for key in ("forward_command", "undo_command"):
        value = normalized.get(key)
        if value is not None and not isinstance(value, str):
            raise PlanError(f"Step '{normalized['name']}': {key} must be a string")

    return Step(
        name=str(normalized["name"]),
        forward=normalized["forward_command"],
        undo=normalized.get("undo_command") or None,
        critical=bool(normalized.get("critical", False)),
        idempotent=bool(normalized.get("idempotent", True)),
        ignore_exit_code=bool(normalized.get("ignore_exit_code", False)),
        timeout=normalized.get("timeout"),
        retries=normalized.get("retries"),
    )


def _host_plan(host: str, entry: Any, shared_variables: Mapping[str, Any]) -> HostPlan:
    if isinstance(entry, list):
        return HostPlan(host, [step_from_dict(s) for s in entry], shared_variables)

    if not isinstance(entry, Mapping):
        raise PlanError(f"Plan for {host} must be a list of steps or a mapping")

    variables = {**shared_variables, **(entry.get("variables") or {})}
    preset = entry.get("preset")
    steps_payload = entry.get("steps")
    if preset and steps_payload:
        raise PlanError(f"Plan for {host} may use either 'preset' or 'steps', not both")
    if preset:
        steps, variables = resolve_preset(preset, variables)
        return HostPlan(host, steps, variables)
    if not isinstance(steps_payload, list):
        raise PlanError(f"Plan for {host} has no 'steps' list")
    return HostPlan(host, [step_from_dict(s) for s in steps_payload], variables)


def build_plans(payload: Mapping[str, Any]) -> List[HostPlan]:
    """Build host plans from a ``{host -> [step definitions]}`` mapping.

    The mapping may also be wrapped as ``{"variables": {...}, "hosts": {...}}``
    so that variables can be shared by every host.
    """
    if not isinstance(payload, Mapping):
        raise PlanError("Plan must be a mapping of host to steps")

    if "hosts" in payload:
        shared_variables = dict(payload.get("variables") or {})
        hosts = payload["hosts"]
        if not isinstance(hosts, Mapping):
            raise PlanError("'hosts' must be a mapping of host to steps")
    else:
        shared_variables = {}
        hosts = payload

    plans = [
        _host_plan(host, entry, shared_variables)
        for host, entry in hosts.items()
        if not host.startswith("_")
    ]
    if not plans:
        raise PlanError("Plan does not define any hosts")
    return plans


def load_plan_file(path: Union[str, Path]) -> List[HostPlan]:
    """Load host plans from a JSON file."""
    plan_path = Path(path)
    if not plan_path.is_file():
        raise FileNotFoundError(f"Plan file not found: {plan_path}")
    with plan_path.open("r", encoding="utf-8") as handle:
        try:
            payload = json.load(handle)
        except json.JSONDecodeError as exc:
            raise PlanError(f"Invalid JSON in plan file {plan_path}: {exc}") from exc
    return build_plans(payload)


def check_unique_hosts(plans: Iterable[HostPlan]) -> None:
    seen = set()
    for plan in plans:
        if plan.host in seen:
            raise PlanError(f"Host {plan.host} appears in more than one plan")
        seen.add(plan.host)
