"""Request/response models — the contract between the orchestrator and clients."""

from __future__ import annotations

from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class StackIntent(str, Enum):
    """Which control path a request runs. Selected by the HTTP method."""

    START = "start"
    STOP = "stop"
    RUN = "run"


class HealthStatus(str, Enum):
    """Health of the backing stack as seen by one poll."""

    UNKNOWN = "unknown"
    STARTING = "starting"
    HEALTHY = "healthy"
    UNREACHABLE = "unreachable"


class StreamEvent(BaseModel):
    """A single SSE event in the response stream.

    message      — progress text, a log line, or the final answer
    is_fault     — true when the event reports a failure
    terminal     — finalizes the response; at most one per request
    commit_code  — status committed with a terminal event (200 / 500)
    """

    message: str
    is_fault: bool = False
    terminal: bool = False
    commit_code: int | None = None

    @classmethod
    def progress(cls, message: str) -> StreamEvent:
        return cls(message=message)

    @classmethod
    def success(cls, message: str, code: int = 200) -> StreamEvent:
        return cls(message=message, terminal=True, commit_code=code)

    @classmethod
    def fault(cls, message: str, code: int = 500) -> StreamEvent:
        return cls(message=message, is_fault=True, terminal=True, commit_code=code)


class ProvisionRequest(BaseModel):
    """Incoming body of a Run intent. All three fields are required."""

    model_config = ConfigDict(
        str_strip_whitespace=True, populate_by_name=True, protected_namespaces=()
    )

    model_name: str = Field(
        min_length=1, validation_alias=AliasChoices("modelName", "model_name")
    )
    document_source: str = Field(
        min_length=1,
        validation_alias=AliasChoices("webUrl", "documentSource", "document_source"),
    )
    query: str = Field(min_length=1)


class PipelineOutcome(BaseModel):
    """The single final result of a Run intent."""

    answer_text: str = ""
    faulted: bool = False
