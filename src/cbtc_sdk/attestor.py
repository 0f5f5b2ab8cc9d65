"""Attestor network client: rules contracts, token-standard contracts and BTC addresses."""
from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from .errors import AttestorUnavailableError, CBTCError
from .http import ServiceClient
from .models.contracts import AccountContractRuleSet, TokenStandardContracts

logger = logging.getLogger(__name__)


class AttestorClient(ServiceClient):
    """Attestor endpoints. Every failure surfaces as ``AttestorUnavailableError``."""

    service_name = "attestor"
    unavailable_error = AttestorUnavailableError

    def __init__(self, base_url: str, http: httpx.AsyncClient, chain: str) -> None:
        super().__init__(base_url, http)
        self.chain = chain

    def _error_for_status(self, response: httpx.Response) -> CBTCError:
        return AttestorUnavailableError(
            f"Attestor returned {response.status_code}: {response.text[:200]}",
            status_code=response.status_code,
        )

    async def _post_json(self, path: str, body: dict[str, Any]) -> Any:
        response = await self._request("POST", path, json=body)
        try:
            return response.json()
        except ValueError as e:
            raise AttestorUnavailableError(f"Attestor returned a non-JSON body for {path}") from e

    async def get_account_contract_rules(self) -> AccountContractRuleSet:
        """Deposit-account and withdraw-account rules contracts for the chain."""
        data = await self._post_json("/app/get-account-contract-rules", {"chain": self.chain})
        try:
            return AccountContractRuleSet.model_validate(data)
        except PydanticValidationError as e:
            raise AttestorUnavailableError("Attestor returned incomplete account rules") from e

    async def get_token_standard_contracts(self) -> TokenStandardContracts:
        """Factory, instrument configuration and optional auxiliary contracts."""
        data = await self._post_json("/app/get-token-standard-contracts", {"chain": self.chain})
        try:
            return TokenStandardContracts.model_validate(data)
        except PydanticValidationError as e:
            raise AttestorUnavailableError("Attestor returned incomplete token-standard contracts") from e

    async def get_bitcoin_address(self, account_id: str) -> str:
        """BTC address the attestor assigned to a deposit account."""
        response = await self._request(
            "POST",
            "/app/get-bitcoin-address",
            json={"id": account_id, "chain": self.chain},
        )
        address = response.text.strip().strip('"')
        if not address:
            raise AttestorUnavailableError(f"Attestor returned no address for account {account_id}")
        return address
