"""
Disclosure resolution.

Collects the rules and token-standard contracts a choice needs from the
attestor and packages them as disclosed contracts plus, for burns, the tagged
choice-context map. Optional contracts that the attestor does not return are
left out of both; they never appear as null placeholders.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .attestor import AttestorClient
from .constants import ContextKeys
from .models.contracts import (
    AccountContractRuleSet,
    ContractInfo,
    DisclosedContract,
    TokenStandardContracts,
)

logger = logging.getLogger(__name__)


class OperationKind(str, Enum):
    CREATE_DEPOSIT_ACCOUNT = "create_deposit_account"
    CREATE_WITHDRAW_ACCOUNT = "create_withdraw_account"
    BURN = "burn"


# Context key and value shape for each optional token-standard slot
_OPTIONAL_CONTEXT: dict[str, tuple[str, bool]] = {
    "issuer_credential": (ContextKeys.ISSUER_CREDENTIALS, True),
    "app_reward_configuration": (ContextKeys.APP_REWARD_CONFIGURATION, False),
    "featured_app_right": (ContextKeys.FEATURED_APP_RIGHT, False),
}


def contract_id_value(contract_id: str) -> dict[str, Any]:
    return {"tag": "AV_ContractId", "value": contract_id}


def contract_id_list_value(*contract_ids: str) -> dict[str, Any]:
    return {"tag": "AV_List", "value": [contract_id_value(cid) for cid in contract_ids]}


@dataclass(frozen=True)
class DisclosureBundle:
    """Disclosed contracts and choice context for one operation.

    Attributes:
        kind: Operation the bundle was resolved for
        required: Contracts the choice cannot run without
        optional: Optional contracts the attestor returned
        context: Tagged choice-context values keyed by context key
        rules: Rules contract exercised by account creation
        token_standard: Token-standard contracts used by a burn
    """

    kind: OperationKind
    required: tuple[DisclosedContract, ...]
    optional: tuple[DisclosedContract, ...] = ()
    context: dict[str, Any] = field(default_factory=dict)
    rules: Optional[ContractInfo] = None
    token_standard: Optional[TokenStandardContracts] = None

    @property
    def disclosed_contracts(self) -> list[DisclosedContract]:
        return [*self.required, *self.optional]


def rules_bundle(kind: OperationKind, rule_set: AccountContractRuleSet) -> DisclosureBundle:
    rules = rule_set.da_rules if kind == OperationKind.CREATE_DEPOSIT_ACCOUNT else rule_set.wa_rules
    return DisclosureBundle(kind=kind, required=(rules.to_disclosed(),), rules=rules)


def burn_bundle(contracts: TokenStandardContracts) -> DisclosureBundle:
    """Factory and instrument configuration are required; the rest only when present."""
    context: dict[str, Any] = {
        ContextKeys.INSTRUMENT_CONFIGURATION: contract_id_value(contracts.instrument_configuration.contract_id),
    }
    optional = []
    for slot, info in contracts.present_optional():
        key, is_list = _OPTIONAL_CONTEXT[slot]
        context[key] = contract_id_list_value(info.contract_id) if is_list else contract_id_value(info.contract_id)
        optional.append(info.to_disclosed())

    return DisclosureBundle(
        kind=OperationKind.BURN,
        required=(
            contracts.burn_mint_factory.to_disclosed(),
            contracts.instrument_configuration.to_disclosed(),
        ),
        optional=tuple(optional),
        context=context,
        token_standard=contracts,
    )


class DisclosureResolver:
    """Resolves disclosures through the attestor.

    With ``cache=True`` attestor responses are kept until ``invalidate`` is
    called; callers should invalidate after a submission fails because a
    disclosed contract was archived.
    """

    def __init__(self, attestor: AttestorClient, *, cache: bool = False) -> None:
        self._attestor = attestor
        self._cache = cache
        self._rules: Optional[AccountContractRuleSet] = None
        self._token_standard: Optional[TokenStandardContracts] = None

    def invalidate(self) -> None:
        self._rules = None
        self._token_standard = None

    async def _rule_set(self) -> AccountContractRuleSet:
        if self._rules is not None:
            return self._rules
        rules = await self._attestor.get_account_contract_rules()
        if self._cache:
            self._rules = rules
        return rules

    async def _token_standard_contracts(self) -> TokenStandardContracts:
        if self._token_standard is not None:
            return self._token_standard
        contracts = await self._attestor.get_token_standard_contracts()
        if self._cache:
            self._token_standard = contracts
        return contracts

    async def resolve(self, kind: OperationKind) -> DisclosureBundle:
        """
        Raises:
            AttestorUnavailableError: always fatal to the calling operation.
        """
        if kind == OperationKind.BURN:
            bundle = burn_bundle(await self._token_standard_contracts())
        else:
            bundle = rules_bundle(kind, await self._rule_set())
        logger.debug(
            "Resolved %d required and %d optional disclosures for %s",
            len(bundle.required),
            len(bundle.optional),
            kind.value,
        )
        return bundle
