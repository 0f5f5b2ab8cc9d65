"""Token-standard transfer models."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import AliasChoices, AliasPath, Field

from .base import Amount, CBTCModel
from .contracts import ActiveContract, DisclosedContract


class InstrumentId(CBTCModel):
    admin: str
    id: str


class TransferSpec(CBTCModel):
    """``transfer`` argument of ``TransferFactory_Transfer``."""

    sender: str
    receiver: str
    amount: Amount
    instrument_id: InstrumentId = Field(alias="instrumentId")
    requested_at: datetime = Field(alias="requestedAt")
    execute_before: datetime = Field(alias="executeBefore")
    input_holding_cids: list[str] = Field(default_factory=list, alias="inputHoldingCids")
    meta: dict[str, str] = Field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload = self.model_dump(mode="json", by_alias=True, exclude={"meta", "requested_at", "execute_before"})
        payload["requestedAt"] = _rfc3339(self.requested_at)
        payload["executeBefore"] = _rfc3339(self.execute_before)
        payload["meta"] = {"values": dict(self.meta)}
        return payload


def _rfc3339(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


class ChoiceContext(CBTCModel):
    """Registry-provided context for a token-standard choice."""

    values: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices(AliasPath("choiceContextData", "values"), "values"),
    )
    disclosed_contracts: list[DisclosedContract] = Field(default_factory=list, alias="disclosedContracts")


class TransferFactoryContext(CBTCModel):
    """Transfer factory lookup result, reusable across a batch."""

    factory_id: str = Field(alias="factoryId")
    transfer_kind: Optional[str] = Field(default=None, alias="transferKind")
    choice_context: ChoiceContext = Field(alias="choiceContext")


class TransferItem(CBTCModel):
    """One recipient of a batch distribution."""

    receiver: str
    amount: Amount
    reference: Optional[str] = None


class TransferOffer(CBTCModel):
    """Pending transfer instruction awaiting the receiver's decision."""

    contract_id: str
    sender: str
    receiver: str
    amount: Amount
    instrument_id: Optional[str] = None
    requested_at: Optional[str] = None
    execute_before: Optional[str] = None

    @classmethod
    def from_contract(cls, contract: ActiveContract) -> Optional["TransferOffer"]:
        transfer = contract.create_argument.get("transfer")
        if not isinstance(transfer, dict):
            return None
        instrument = transfer.get("instrumentId") or {}
        return cls(
            contract_id=contract.contract_id,
            sender=transfer.get("sender", ""),
            receiver=transfer.get("receiver", ""),
            amount=transfer.get("amount", "0"),
            instrument_id=instrument.get("id"),
            requested_at=transfer.get("requestedAt"),
            execute_before=transfer.get("executeBefore"),
        )


@dataclass(frozen=True)
class TransferResult:
    """Outcome of one attempted transfer.

    Attributes:
        success: Whether the transfer was accepted by the ledger
        index: Position of the item in its batch (0 for single transfers)
        receiver: Receiving party
        amount: Amount as a plain decimal string
        contract_id: Transfer instruction created for the receiver
        update_id: Ledger update id of the submission
        reference: Correlation reference stored in transfer metadata
        raw_response: Raw transaction tree
        error: Error message when ``success`` is False
        error_code: Code of the error when ``success`` is False
        sender_change_cids: Change holdings returned to the sender
    """

    success: bool
    index: int
    receiver: str
    amount: str
    contract_id: Optional[str] = None
    update_id: Optional[str] = None
    reference: Optional[str] = None
    raw_response: Optional[dict[str, Any]] = field(default=None, repr=False, compare=False)
    error: Optional[str] = None
    error_code: Optional[str] = None
    sender_change_cids: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "success": self.success,
            "index": self.index,
            "receiver": self.receiver,
            "amount": self.amount,
        }
        for key in ("contract_id", "update_id", "reference", "error", "error_code"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        return result


@dataclass
class BatchReport:
    """Results of a batch run, one per input item, in input order."""

    results: list[TransferResult] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def successful_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed_count(self) -> int:
        return self.total - self.successful_count

    @property
    def success_rate(self) -> float:
        """Success rate as a percentage."""
        if self.total == 0:
            return 0.0
        return (self.successful_count / self.total) * 100

    @property
    def failed_results(self) -> list[TransferResult]:
        return [r for r in self.results if not r.success]

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "summary": {
                "total": self.total,
                "successful": self.successful_count,
                "failed": self.failed_count,
                "success_rate": f"{self.success_rate:.2f}%",
                "started_at": self.started_at.isoformat() if self.started_at else None,
                "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            },
        }


@dataclass(frozen=True)
class OfferActionResult:
    """Outcome of accepting or cancelling one pending transfer."""

    success: bool
    contract_id: str
    amount: Optional[Decimal] = None
    counterparty: Optional[str] = None
    update_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class OfferActionReport:
    results: list[OfferActionResult] = field(default_factory=list)

    @property
    def successful_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed_count(self) -> int:
        return len(self.results) - self.successful_count


@dataclass(frozen=True)
class ConsolidationResult:
    """Outcome of merging holdings into one."""

    consolidated: bool
    input_count: int
    output_cids: tuple[str, ...] = ()
    update_id: Optional[str] = None


@dataclass(frozen=True)
class SplitResult:
    """Holdings produced by a split, one per requested amount, in request order."""

    output_cids: tuple[str, ...]
    change_cids: tuple[str, ...] = ()
    update_ids: tuple[str, ...] = ()
