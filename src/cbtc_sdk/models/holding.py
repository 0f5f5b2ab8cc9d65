"""Holding (UTXO-like token record) models."""
from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import Field

from ..errors import UnexpectedResponseError
from .base import Amount, CBTCModel
from .contracts import ActiveContract


class LockState(str, Enum):
    """Whether a holding can be spent."""

    UNLOCKED = "unlocked"
    LOCKED = "locked"


class Holding(CBTCModel):
    """One unit of token value owned by a party."""

    contract_id: str
    instrument_id: str
    instrument_admin: Optional[str] = None
    owner: str
    amount: Amount
    lock: LockState = LockState.UNLOCKED
    template_id: Optional[str] = None
    created_event_blob: Optional[str] = Field(default=None, repr=False)

    @property
    def is_locked(self) -> bool:
        return self.lock == LockState.LOCKED

    @classmethod
    def from_contract(cls, contract: ActiveContract) -> "Holding":
        """Read a holding from an interface view, falling back to create arguments.

        Interface queries expose ``instrumentId`` on the Holding view; template
        queries expose the concrete template's ``instrument`` field.
        """
        fields = contract.view_values[0] if contract.view_values else contract.create_argument
        try:
            instrument: dict[str, Any] = fields.get("instrumentId") or fields.get("instrument") or {}
            return cls(
                contract_id=contract.contract_id,
                instrument_id=instrument["id"],
                instrument_admin=instrument.get("admin"),
                owner=fields["owner"],
                amount=fields["amount"],
                lock=LockState.UNLOCKED if fields.get("lock") is None else LockState.LOCKED,
                template_id=contract.template_id,
                created_event_blob=contract.created_event_blob,
            )
        except (KeyError, TypeError) as e:
            raise UnexpectedResponseError(
                f"Contract {contract.contract_id} is not a holding: missing {e}",
                details={"contract_id": contract.contract_id},
            ) from e


class HoldingSelection(CBTCModel):
    """Holdings chosen to cover a target amount."""

    selected: list[Holding]
    total: Amount
    target: Amount
    change: Amount

    @property
    def contract_ids(self) -> list[str]:
        return [h.contract_id for h in self.selected]

    @property
    def has_change(self) -> bool:
        """True when spending the selection creates a change holding."""
        return self.change > Decimal(0)
