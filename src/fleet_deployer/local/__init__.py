"""Local execution adapter, runs plan commands on the current machine."""

from .session import LocalCommandResult, LocalExecutor, LocalSession

__all__ = ["LocalSession", "LocalCommandResult", "LocalExecutor"]
