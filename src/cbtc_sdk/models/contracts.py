"""Contract references served by the attestor and the ledger."""
from __future__ import annotations

from typing import Any, Iterator, Optional

from pydantic import Field

from .base import CBTCModel


class DisclosedContract(CBTCModel):
    """Contract state attached to a command so the ledger can authorize it."""

    template_id: str = Field(alias="templateId")
    contract_id: str = Field(alias="contractId")
    created_event_blob: str = Field(alias="createdEventBlob")
    synchronizer_id: str = Field(default="", alias="synchronizerId")

    def to_dict(self) -> dict[str, Any]:
        # synchronizerId is sent even when empty
        return self.model_dump(mode="json", by_alias=True)


class ContractInfo(CBTCModel):
    """Contract reference as returned by the attestor."""

    contract_id: str
    template_id: str
    created_event_blob: str

    def to_disclosed(self, synchronizer_id: str = "") -> DisclosedContract:
        return DisclosedContract(
            template_id=self.template_id,
            contract_id=self.contract_id,
            created_event_blob=self.created_event_blob,
            synchronizer_id=synchronizer_id,
        )


class AccountContractRuleSet(CBTCModel):
    """Singleton rules contracts used to open deposit and withdraw accounts."""

    da_rules: ContractInfo
    wa_rules: ContractInfo


class TokenStandardContracts(CBTCModel):
    """Auxiliary contracts needed to burn CBTC.

    ``burn_mint_factory`` and ``instrument_configuration`` are always present;
    the remaining slots depend on how the registrar is configured.
    """

    burn_mint_factory: ContractInfo
    instrument_configuration: ContractInfo
    issuer_credential: Optional[ContractInfo] = None
    app_reward_configuration: Optional[ContractInfo] = None
    featured_app_right: Optional[ContractInfo] = None

    def present_optional(self) -> Iterator[tuple[str, ContractInfo]]:
        """Yield the optional slots that are filled, in a fixed order."""
        for slot in ("issuer_credential", "app_reward_configuration", "featured_app_right"):
            contract = getattr(self, slot)
            if contract is not None:
                yield slot, contract


class ActiveContract(CBTCModel):
    """Normalized entry of an active-contracts query."""

    contract_id: str = Field(alias="contractId")
    template_id: str = Field(alias="templateId")
    create_argument: dict[str, Any] = Field(default_factory=dict, alias="createArgument")
    created_event_blob: Optional[str] = Field(default=None, alias="createdEventBlob")
    interface_views: list[dict[str, Any]] = Field(default_factory=list, alias="interfaceViews")
    synchronizer_id: str = Field(default="", alias="synchronizerId")
    offset: Optional[int] = None

    @classmethod
    def from_entry(cls, entry: dict[str, Any]) -> Optional["ActiveContract"]:
        """Build from a raw ``contractEntry`` item; other entry kinds yield None."""
        contract_entry = entry.get("contractEntry") or {}
        active = contract_entry.get("JsActiveContract")
        if not active:
            return None
        event = dict(active.get("createdEvent") or {})
        if event.get("createArgument") is None:
            event.pop("createArgument", None)
        event["synchronizerId"] = active.get("synchronizerId", "")
        return cls.model_validate(event)

    @property
    def view_values(self) -> list[dict[str, Any]]:
        return [
            view["viewValue"]
            for view in self.interface_views
            if isinstance(view.get("viewValue"), dict)
        ]

    def to_disclosed(self) -> DisclosedContract:
        return DisclosedContract(
            template_id=self.template_id,
            contract_id=self.contract_id,
            created_event_blob=self.created_event_blob or "",
            synchronizer_id=self.synchronizer_id,
        )
