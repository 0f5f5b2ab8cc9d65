"""Ledger command and transaction-tree models."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from pydantic import Field

from .base import CBTCModel, same_template
from .contracts import DisclosedContract


class ExerciseCommand(CBTCModel):
    """Exercise ``choice`` on ``contract_id``.

    ``choice_argument`` must already carry amounts as plain decimal strings.
    """

    template_id: str = Field(alias="templateId")
    contract_id: str = Field(alias="contractId")
    choice: str
    choice_argument: dict[str, Any] = Field(default_factory=dict, alias="choiceArgument")

    def to_wire(self) -> dict[str, Any]:
        return {"ExerciseCommand": self.model_dump(mode="json", by_alias=True)}


class Submission(CBTCModel):
    """Body of a submit-and-wait request."""

    act_as: list[str] = Field(alias="actAs")
    read_as: Optional[list[str]] = Field(default=None, alias="readAs")
    user_id: Optional[str] = Field(default=None, alias="userId")
    command_id: str = Field(alias="commandId")
    disclosed_contracts: list[DisclosedContract] = Field(default_factory=list, alias="disclosedContracts")
    commands: list[ExerciseCommand]

    def to_wire(self) -> dict[str, Any]:
        payload = self.model_dump(
            mode="json",
            by_alias=True,
            exclude_none=True,
            exclude={"commands", "disclosed_contracts"},
        )
        payload["commands"] = [command.to_wire() for command in self.commands]
        payload["disclosedContracts"] = [dc.to_dict() for dc in self.disclosed_contracts]
        return payload


class EventKind(str, Enum):
    EXERCISED = "exercised"
    CREATED = "created"
    ARCHIVED = "archived"


@dataclass(frozen=True, slots=True)
class TreeEvent:
    """One node of a transaction tree."""

    kind: EventKind
    node_id: int
    contract_id: str
    template_id: str
    choice: Optional[str] = None
    consuming: bool = False
    # createArgument for created events, exerciseResult for exercised ones
    payload: Any = None
    choice_argument: Any = None
    created_event_blob: Optional[str] = field(default=None, repr=False)


@dataclass
class TransactionResult:
    """Interpreted outcome of a submitted command.

    ``contracts`` maps logical roles ("withdraw_request", "new_account"...) to
    the contract ids created for them.
    """

    update_id: str
    command_id: str
    offset: Optional[int] = None
    events: list[TreeEvent] = field(default_factory=list)
    contracts: dict[str, str] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def exercised(self) -> list[TreeEvent]:
        return [e for e in self.events if e.kind == EventKind.EXERCISED]

    @property
    def created(self) -> list[TreeEvent]:
        return [e for e in self.events if e.kind == EventKind.CREATED]

    @property
    def archived(self) -> list[TreeEvent]:
        return [e for e in self.events if e.kind == EventKind.ARCHIVED]

    @property
    def root(self) -> Optional[TreeEvent]:
        exercised = self.exercised
        return exercised[0] if exercised else None

    def created_of(self, template_id: str) -> list[TreeEvent]:
        return [e for e in self.created if same_template(e.template_id, template_id)]

    def exercise_result(self, choice: Optional[str] = None) -> Any:
        """Result of the first exercised event, optionally of a given choice."""
        for event in self.exercised:
            if choice is None or event.choice == choice:
                return event.payload
        return None
