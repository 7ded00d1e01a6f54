"""Preset step sequences for common deployments."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Tuple

from ..errors import PlanError
from .step import Step

# 容器重新部署的默认变量
DOCKER_REDEPLOY_DEFAULTS: Dict[str, Any] = {
    "image_name": "dockertest",
    "account": "whazzmaster",
    "tag": "latest",
    "host_port": 80,
    "container_port": 80,
}


def docker_redeploy_steps() -> List[Step]:
    """Replace a running container with a fresh one from the latest image.

    The old container is stopped and set aside under ``<name>-previous``
    instead of being deleted outright, so a failed ``start`` can be rolled
    back to the container that was running before. Stop and remove tolerate a
    missing container, as on a first deployment.
    """
    return [
        Step(
            name="stop",
            forward="docker stop {container_name}",
            undo="docker start {container_name} || true",
            ignore_exit_code=True,
        ),
        Step(
            name="remove",
            forward=(
                "docker rm -f {container_name}-previous >/dev/null 2>&1; "
                "docker rename {container_name} {container_name}-previous"
            ),
            undo=(
                "docker rm -f {container_name} >/dev/null 2>&1; "
                "docker rename {container_name}-previous {container_name} || true"
            ),
            ignore_exit_code=True,
        ),
        Step(
            name="pull",
            forward="docker pull {account}/{image_name}:{tag}",
            retries=2,
        ),
        Step(
            name="start",
            forward=(
                "docker run -p {host_port}:{container_port} -d --name {container_name} "
                "{account}/{image_name}:{tag}"
            ),
            undo="docker rm -f {container_name}",
            critical=True,
            idempotent=False,
        ),
    ]


def _docker_redeploy_variables(variables: Dict[str, Any]) -> Dict[str, Any]:
    merged = {**DOCKER_REDEPLOY_DEFAULTS, **variables}
    merged.setdefault("container_name", merged["image_name"])
    return merged


PRESETS: Dict[str, Tuple[Callable[[], List[Step]], Callable[[Dict[str, Any]], Dict[str, Any]]]] = {
    "docker_redeploy": (docker_redeploy_steps, _docker_redeploy_variables),
}


def resolve_preset(name: str, variables: Dict[str, Any]) -> Tuple[List[Step], Dict[str, Any]]:
    """Return the steps of preset `name` and its variables merged over the defaults."""
    try:
        steps_factory, merge_variables = PRESETS[name]
    except KeyError:
        raise PlanError(
            f"Unknown preset '{name}'. Available: {', '.join(sorted(PRESETS))}"
        ) from None
    return steps_factory(), merge_variables(dict(variables))
