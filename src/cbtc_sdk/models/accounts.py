"""Deposit (mint) and withdraw (burn) account models."""
from __future__ import annotations

from decimal import Decimal
from typing import Optional, TypeVar

from pydantic import Field, ValidationError as PydanticValidationError

from ..errors import UnexpectedResponseError
from .base import Amount, CBTCModel
from .contracts import ActiveContract

C = TypeVar("C", bound="LedgerContract")


class LedgerContract(CBTCModel):
    """A contract whose create arguments map onto model fields."""

    contract_id: str
    template_id: Optional[str] = None

    @classmethod
    def from_contract(cls: type[C], contract: ActiveContract) -> C:
        data = {
            **contract.create_argument,
            "contract_id": contract.contract_id,
            "template_id": contract.template_id,
        }
        if contract.created_event_blob is not None:
            data["created_event_blob"] = contract.created_event_blob
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            raise UnexpectedResponseError(
                f"Contract {contract.contract_id} is not a valid {cls.__name__}",
                details={"contract_id": contract.contract_id, "errors": e.errors(include_url=False)},
            ) from e


class DepositAccount(LedgerContract):
    """Account the attestor watches for incoming BTC deposits."""

    owner: str
    operator: str
    registrar: str
    # Encoded as a string by the JSON API
    last_processed_bitcoin_block: int = Field(default=0, alias="lastProcessedBitcoinBlock")
    created_event_blob: Optional[str] = Field(default=None, repr=False)


class DepositAccountStatus(CBTCModel):
    contract_id: str
    owner: str
    operator: str
    registrar: str
    bitcoin_address: str
    last_processed_bitcoin_block: int


class DepositRequest(LedgerContract):
    """Deposit observed by the attestor; mints CBTC for the account owner."""

    deposit_account_id: str = Field(alias="depositAccountId")
    amount: Amount
    btc_tx_id: Optional[str] = Field(default=None, alias="btcTxId")


class WithdrawAccount(LedgerContract):
    """Account binding an owner to a fixed destination BTC address."""

    owner: str
    operator: str
    registrar: str
    destination_btc_address: str = Field(alias="destinationBtcAddress")
    pending_balance: Amount = Field(default=Decimal("0"), alias="pendingBalance")
    created_event_blob: Optional[str] = Field(default=None, repr=False)


class WithdrawRequest(LedgerContract):
    """Burn receipt; the attestor sets ``btc_tx_id`` once BTC is sent."""

    owner: str
    registrar: str
    amount: Amount
    destination_btc_address: str = Field(alias="destinationBtcAddress")
    btc_tx_id: Optional[str] = Field(default=None, alias="btcTxId")
    source_account_id: Optional[str] = Field(default=None, alias="sourceAccountId")

    @property
    def is_completed(self) -> bool:
        return bool(self.btc_tx_id)
