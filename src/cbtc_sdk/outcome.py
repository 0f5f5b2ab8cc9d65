"""Discriminated result of a multi-step workflow."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Optional, Sequence, TypeVar

from .errors import CBTCError, with_context

T = TypeVar("T")


@dataclass
class OperationOutcome(Generic[T]):
    """Outcome of a mint or redeem workflow.

    Attributes:
        success: Whether every step of the workflow completed
        state: Last state the workflow reached
        value: Workflow result when ``success`` is True
        error: Error of the step that failed, with ``details["step"]`` set
        contracts: Contracts created so far by role, for resuming by hand
    """

    success: bool
    state: str
    value: Optional[T] = None
    error: Optional[CBTCError] = None
    contracts: dict[str, str] = field(default_factory=dict)

    @classmethod
    def completed(cls, state: Enum, value: T, contracts: dict[str, str]) -> "OperationOutcome[T]":
        return cls(success=True, state=state.value, value=value, contracts=dict(contracts))

    @classmethod
    def failed(
        cls,
        state: Enum,
        error: CBTCError,
        contracts: dict[str, str],
        states: Sequence[Enum],
    ) -> "OperationOutcome[T]":
        """Failure after ``state``; the step being attempted is the one that follows it."""
        index = list(states).index(state)
        step = states[index + 1] if index + 1 < len(states) else state
        return cls(
            success=False,
            state=state.value,
            error=with_context(error, step=step.value),
            contracts=dict(contracts),
        )

    def unwrap(self) -> T:
        """Return ``value`` or raise the recorded error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "success": self.success,
            "state": self.state,
            "contracts": dict(self.contracts),
        }
        if self.error is not None:
            result.update(self.error.to_dict())
        return result
