"""
Shared Pydantic models for all layers.
Descriptors and outcomes are immutable (frozen) after creation.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

CommandState = Literal["active", "completed", "disabled", "once"]
ChainCondition = Literal["success", "error", "complete", "always"]
Severity = Literal["warning", "error", "critical"]

COMMAND_STATES: frozenset[str] = frozenset({"active", "completed", "disabled", "once"})
CHAIN_CONDITIONS: frozenset[str] = frozenset({"success", "error", "complete", "always"})


# ─── Execution Outcome ─────────────────────────────────────────

class ExecutionOutcome(BaseModel):
    """Result of one handler invocation (or of a gated/aborted attempt)."""
    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    success: bool = Field(default=True)
    error: BaseException | None = Field(default=None, description="Exception that failed the command")
    skipped: bool = Field(default=False, description="True when the lifecycle gate prevented execution")
    data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def ok(cls, **data: Any) -> ExecutionOutcome:
        return cls(success=True, data=data)

    @classmethod
    def failed(cls, error: BaseException | str) -> ExecutionOutcome:
        exc = error if isinstance(error, BaseException) else RuntimeError(str(error))
        return cls(success=False, error=exc)

    @classmethod
    def gated(cls, reason: str) -> ExecutionOutcome:
        return cls(success=True, skipped=True, data={"reason": reason})

    @property
    def error_message(self) -> str:
        return str(self.error) if self.error is not None else ""


def condition_matches(condition: str, outcome: ExecutionOutcome) -> bool:
    """Whether a chain gated by ``condition`` fires for ``outcome``."""
    if condition == "success":
        return outcome.success
    if condition == "error":
        return not outcome.success
    return condition in ("always", "complete")


# ─── Chaining ──────────────────────────────────────────────────

class ChainDescriptor(BaseModel):
    """One follow-up command, derived fresh from node/template state on each run."""
    model_config = {"frozen": True}

    command: str
    target: str | None = Field(default=None, description="Target selector; None means the primary target")
    condition: ChainCondition = Field(default="always")
    delay_ms: int = Field(default=0, ge=0)
    once: bool = Field(default=False)
    data: dict[str, str] = Field(default_factory=dict)

    def matches(self, outcome: ExecutionOutcome) -> bool:
        return condition_matches(self.condition, outcome)


# ─── Pipelines ─────────────────────────────────────────────────

class PipelineStep(BaseModel):
    """A single step of a named pipeline template."""
    model_config = {"frozen": True}

    step_id: str = Field(default_factory=lambda: f"step-{uuid.uuid4().hex[:10]}")
    command: str
    target: str | None = Field(default=None)
    condition: ChainCondition = Field(default="always")
    delay_ms: int = Field(default=0, ge=0)
    once: bool = Field(default=False)
    data: dict[str, Any] = Field(default_factory=dict, description="Forwarded verbatim to the handler context")

    @field_validator("command")
    @classmethod
    def _command_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("PipelineStep.command must not be empty")
        return value.strip()

    def matches(self, outcome: ExecutionOutcome) -> bool:
        return condition_matches(self.condition, outcome)


class PipelineDefinition(BaseModel):
    """Inert, reusable, ordered list of steps."""
    model_config = {"frozen": True}

    name: str
    steps: list[PipelineStep] = Field(default_factory=list)
    description: str = Field(default="")

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("PipelineDefinition.name must not be empty")
        return value.strip()


# ─── Diagnostics ───────────────────────────────────────────────

class DiagnosticRecord(BaseModel):
    """Structured record of a reported InvokerError."""
    model_config = {"frozen": True}

    message: str
    severity: Severity
    command: str | None = Field(default=None)
    target_ref: str | None = Field(default=None)
    cause: str | None = Field(default=None)
    recovery: str | None = Field(default=None)
    context: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
