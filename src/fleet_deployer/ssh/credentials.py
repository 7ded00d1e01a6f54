"""SSH credential helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ..config import DeploymentConfig


@dataclass
class SSHCredentials:
    """Normalized credential payload from config."""

    host: str
    username: str
    port: int = 22
    auth_method: str = "key"
    password: Optional[str] = None
    key_path: Optional[str] = None
    passphrase: Optional[str] = None
    timeout: int = 20

    def validate(self) -> None:
        if self.auth_method == "password" and not self.password:
            raise ValueError("Password authentication selected but no password provided")
        if self.auth_method == "key" and not self.key_path:
            raise ValueError("Key authentication selected but no key_path provided")

    @classmethod
    def from_config(cls, host: str, deployment: "DeploymentConfig") -> "SSHCredentials":
        """Build credentials for `host`, accepting `user@host:port` overrides."""
        username = deployment.default_username
        port = deployment.default_port
        if "@" in host:
            username, host = host.split("@", 1)
        if host.startswith("["):
            # IPv6 需写成 [addr] 或 [addr]:port
            address, _, rest = host[1:].partition("]")
            if rest.startswith(":"):
                port = int(rest[1:])
            elif rest:
                raise ValueError(f"Invalid host address: {host}")
            host = address
        elif host.count(":") == 1:
            host, raw_port = host.split(":", 1)
            port = int(raw_port)
        if not username:
            raise ValueError(f"No SSH username configured for host {host}")
        return cls(
            host=host,
            username=username,
            port=port,
            auth_method=deployment.default_auth_method,
            password=deployment.default_password,
            key_path=os.path.expanduser(deployment.default_key_path) if deployment.default_key_path else None,
            timeout=deployment.connect_timeout,
        )
