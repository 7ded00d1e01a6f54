"""Configuration loading utilities for fleet-deployer."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()

_DEFAULT_CONFIG_PATH = Path("config/default_config.json")


@dataclass
class OrchestratorConfig:
    """Settings for the host worker pool and step execution."""

    max_workers: Optional[int] = None     # None: one worker per host
    step_timeout: Optional[float] = 300.0  # 每个步骤的默认超时（秒）
    default_retries: int = 0
    retry_delay: float = 2.0


@dataclass
class DeploymentConfig:
    """Connection defaults handed to the SSH executor."""

    executor: str = "ssh"  # "ssh" | "local"
    default_port: int = 22
    default_username: Optional[str] = None
    default_auth_method: str = "key"
    default_password: Optional[str] = None
    default_key_path: Optional[str] = None
    connect_timeout: int = 20


@dataclass
class ReportConfig:
    """Where machine-readable run reports are written."""

    enabled: bool = True
    report_dir: str = ".fleet-deployer/reports"


@dataclass
class AppConfig:
    """Top-level configuration."""

    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    deployment: DeploymentConfig = field(default_factory=DeploymentConfig)
    report: ReportConfig = field(default_factory=ReportConfig)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AppConfig":
        orchestrator_payload = _strip_comments(payload.get("orchestrator", {}) or {})
        deployment_payload = _strip_comments(payload.get("deployment", {}) or {})
        report_payload = _strip_comments(payload.get("report", {}) or {})

        return cls(
            orchestrator=OrchestratorConfig(
                **{**OrchestratorConfig().__dict__, **orchestrator_payload}
            ),
            deployment=DeploymentConfig(
                **{**DeploymentConfig().__dict__, **deployment_payload}
            ),
            report=ReportConfig(**{**ReportConfig().__dict__, **report_payload}),
        )


def _strip_comments(section: Dict[str, Any]) -> Dict[str, Any]:
    # 过滤掉以下划线开头的注释字段
    return {k: v for k, v in section.items() if not k.startswith("_")}


def apply_env_overrides(config: AppConfig) -> AppConfig:
    """Apply FLEET_DEPLOYER_* environment variables on top of `config`."""

    env_workers = os.getenv("FLEET_DEPLOYER_MAX_WORKERS")
    if env_workers:
        config.orchestrator.max_workers = int(env_workers)

    env_timeout = os.getenv("FLEET_DEPLOYER_STEP_TIMEOUT")
    if env_timeout:
        config.orchestrator.step_timeout = float(env_timeout)

    env_username = os.getenv("FLEET_DEPLOYER_SSH_USERNAME")
    if env_username:
        config.deployment.default_username = env_username

    env_port = os.getenv("FLEET_DEPLOYER_SSH_PORT")
    if env_port:
        config.deployment.default_port = int(env_port)

    env_password = os.getenv("FLEET_DEPLOYER_SSH_PASSWORD")
    if env_password:
        config.deployment.default_password = env_password
        config.deployment.default_auth_method = "password"

    env_key_path = os.getenv("FLEET_DEPLOYER_SSH_KEY_PATH")
    if env_key_path:
        config.deployment.default_key_path = env_key_path
        config.deployment.default_auth_method = "key"

    env_report_dir = os.getenv("FLEET_DEPLOYER_REPORT_DIR")
    if env_report_dir:
        config.report.report_dir = env_report_dir

    return config


def load_config(path: Optional[str] = None) -> AppConfig:
    """Load configuration from `path` or the default location.

    Environment variables (higher priority than config file):
    - FLEET_DEPLOYER_MAX_WORKERS: Host worker pool cap
    - FLEET_DEPLOYER_STEP_TIMEOUT: Default per-step timeout in seconds
    - FLEET_DEPLOYER_SSH_USERNAME: Default SSH username
    - FLEET_DEPLOYER_SSH_PORT: Default SSH port
    - FLEET_DEPLOYER_SSH_PASSWORD: Default SSH password
    - FLEET_DEPLOYER_SSH_KEY_PATH: Path to SSH private key
    - FLEET_DEPLOYER_REPORT_DIR: Directory for JSON run reports
    """

    candidate_paths = []
    if path:
        candidate_paths.append(Path(path))
    candidate_paths.append(_DEFAULT_CONFIG_PATH)

    for candidate in candidate_paths:
        if candidate.is_file():
            with candidate.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
            return apply_env_overrides(AppConfig.from_dict(data))

    raise FileNotFoundError(
        f"Could not find configuration file. Looked in: {', '.join(str(p) for p in candidate_paths)}"
    )
