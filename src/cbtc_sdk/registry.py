"""Token-standard registry client (transfer factory and transfer-instruction choice contexts)."""
from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from .errors import CBTCError, RegistryUnavailableError, UnexpectedResponseError
from .http import ServiceClient
from .models.transfer import ChoiceContext, TransferFactoryContext, TransferSpec

logger = logging.getLogger(__name__)


class RegistryClient(ServiceClient):
    """Registry of the decentralized party that administers the instrument."""

    service_name = "registry"
    unavailable_error = RegistryUnavailableError

    def __init__(self, base_url: str, http: httpx.AsyncClient, registrar_party: str, **kwargs: Any) -> None:
        super().__init__(base_url, http, **kwargs)
        self.registrar_party = registrar_party

    @property
    def _instruction_root(self) -> str:
        return (
            f"/api/token-standard/v0/registrars/{self.registrar_party}"
            "/registry/transfer-instruction/v1"
        )

    def _error_for_status(self, response: httpx.Response) -> CBTCError:
        if response.status_code >= 500:
            return super()._error_for_status(response)
        return CBTCError(
            f"Registry rejected the request ({response.status_code}): {response.text[:200]}",
            code="REGISTRY_REJECTED",
            details={"status_code": response.status_code},
        )

    async def transfer_factory(self, transfer: TransferSpec) -> TransferFactoryContext:
        """Factory contract and choice context for ``TransferFactory_Transfer``."""
        body = {
            "choiceArguments": {
                "expectedAdmin": self.registrar_party,
                "transfer": transfer.to_dict(),
                "extraArgs": {
                    "context": {"values": {}},
                    "meta": {"values": {}},
                },
            },
            "excludeDebugFields": True,
        }
        response = await self._request("POST", f"{self._instruction_root}/transfer-factory", json=body)
        try:
            return TransferFactoryContext.model_validate(self._json(response))
        except PydanticValidationError as e:
            raise UnexpectedResponseError("Registry returned an invalid transfer factory") from e

    async def accept_context(self, instruction_cid: str) -> ChoiceContext:
        """Choice context for accepting a pending transfer instruction."""
        return await self._choice_context(instruction_cid, "accept")

    async def withdraw_context(self, instruction_cid: str) -> ChoiceContext:
        """Choice context for the sender withdrawing a pending transfer instruction.

        The registry serves the same context for withdraw as for accept.
        """
        return await self._choice_context(instruction_cid, "accept")

    async def _choice_context(self, instruction_cid: str, action: str) -> ChoiceContext:
        response = await self._request(
            "POST",
            f"{self._instruction_root}/{instruction_cid}/choice-contexts/{action}",
            json={"meta": {"values": ""}},
        )
        try:
            return ChoiceContext.model_validate(self._json(response))
        except PydanticValidationError as e:
            raise UnexpectedResponseError("Registry returned an invalid choice context") from e
