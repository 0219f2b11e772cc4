"""Data models for queuescaler.

This module defines the value types that flow through one scaling cycle:
- BackendKind and Action enums
- ComputeUnit, QueueSignal, ScalingDecision (frozen, cycle-scoped values)
- Credential (short-lived bearer token, never printed)
- ActuationResult and CycleReport (outcomes, used for logging and exit codes)

None of these are persisted. Each cycle builds them fresh from live signals.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any


class BackendKind(StrEnum):
    """Cloud control plane a compute unit lives on.

    - CONTAINER_GROUP: Azure Container Instances container group
    - VM_INSTANCE: Google Compute Engine VM instance
    """

    CONTAINER_GROUP = "container_group"
    VM_INSTANCE = "vm_instance"


class Action(StrEnum):
    """Actuation command for one compute unit."""

    START = "start"
    STOP = "stop"
    NOOP = "noop"


@dataclass(frozen=True)
class ComputeUnit:
    """One scalable resource, identified by name and backend."""

    name: str
    backend: BackendKind

    def __post_init__(self):
        if not self.name:
            raise ValueError("ComputeUnit name cannot be empty")
        # Accept plain strings from configuration
        object.__setattr__(self, "backend", BackendKind(self.backend))

    def __str__(self) -> str:
        return f"{self.backend.value}/{self.name}"


@dataclass(frozen=True)
class QueueSignal:
    """Approximate queue depth observed at the start of a cycle.

    Negative depths cannot occur in practice; if one is received it is
    clamped to 0 here so the evaluator only ever sees non-negative values.
    """

    queue_name: str
    approximate_depth: int

    def __post_init__(self):
        if self.approximate_depth < 0:
            object.__setattr__(self, "approximate_depth", 0)


@dataclass(frozen=True)
class ScalingDecision:
    """Desired action for one unit, produced by a single cycle."""

    unit: ComputeUnit
    action: Action
    reason: str = ""

    @property
    def is_noop(self) -> bool:
        return self.action == Action.NOOP

    def __str__(self) -> str:
        return f"{self.action.value}({self.unit.name})"


@dataclass(frozen=True)
class Credential:
    """Short-lived bearer credential for one backend kind.

    Security: the token is a secret. repr/str never include it.
    ``handle`` carries the SDK credential object where a backend's client
    library wants it instead of a raw token.
    """

    backend: BackendKind
    token: str
    expires_on: datetime | None = None
    handle: Any = None

    def __repr__(self) -> str:
        return f"Credential(backend={self.backend.value}, token=***REDACTED***)"

    def __str__(self) -> str:
        return f"Credential for {self.backend.value} (token redacted)"


@dataclass
class ActuationResult:
    """Outcome of dispatching one decision to its backend."""

    unit: ComputeUnit
    action: Action
    success: bool
    message: str
    error_kind: str | None = None

    def __repr__(self) -> str:
        status = "SUCCESS" if self.success else "FAILED"
        result = f"[{status}] {self.action.value} {self.unit}: {self.message}"
        if self.error_kind:
            result += f" ({self.error_kind})"
        return result


@dataclass
class CycleReport:
    """Summary of one scaler cycle or maintenance sweep."""

    cycle: str  # 'scaler', 'auto_heal', 'restart'
    signals: list[QueueSignal] = field(default_factory=list)
    decisions: list[ScalingDecision] = field(default_factory=list)
    results: list[ActuationResult] = field(default_factory=list)
    skipped_reason: str | None = None
    dry_run: bool = False

    @property
    def skipped(self) -> bool:
        """True when the cycle short-circuited before any actuation."""
        return self.skipped_reason is not None

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def all_succeeded(self) -> bool:
        return self.failed == 0

    def get_failed_units(self) -> list[str]:
        """Get names of units whose actuation failed."""
        return [r.unit.name for r in self.results if not r.success]
