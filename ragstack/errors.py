"""Fault taxonomy shared by the lifecycle controller, the pipeline and the runtime."""

from __future__ import annotations


class RagStackError(Exception):
    """Base class for every fault raised by ragstack."""


class ConfigurationFault(RagStackError):
    """A required configuration value is missing. Aborts before any side effect."""


class ProcessFault(RagStackError):
    """The compose executable failed or could not be started."""

    def __init__(
        self,
        message: str,
        *,
        command: list[str] | None = None,
        exit_code: int | None = None,
        stderr: str = "",
        missing_executable: bool = False,
    ) -> None:
        super().__init__(message)
        self.command = command or []
        self.exit_code = exit_code
        self.stderr = stderr
        self.missing_executable = missing_executable

    @property
    def executable(self) -> str | None:
        return self.command[0] if self.command else None


class HealthCheckFault(RagStackError):
    """Polling the stack failed to execute or its report could not be parsed."""


class PipelineFault(RagStackError):
    """A step of the provisioning pipeline failed."""

    def __init__(self, step: str, cause: BaseException) -> None:
        super().__init__(f"{step} failed: {cause}")
        self.step = step
        self.cause = cause
