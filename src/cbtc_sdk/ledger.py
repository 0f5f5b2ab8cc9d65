"""
Ledger JSON API client: offset tracking, active-contract queries and command submission.

Every state query is pinned to an offset fetched immediately before it;
offsets are never cached.
"""
from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import httpx

from .errors import CBTCError, LedgerUnavailableError, SubmissionError, UnexpectedResponseError
from .http import ServiceClient
from .models.base import same_template
from .models.contracts import ActiveContract
from .models.ledger import Submission

logger = logging.getLogger(__name__)

LEDGER_END_PATH = "/v2/state/ledger-end"
ACTIVE_CONTRACTS_PATH = "/v2/state/active-contracts"
SUBMIT_PATH = "/v2/commands/submit-and-wait-for-transaction-tree"


def template_filter(template_id: str, include_created_event_blob: bool = True) -> dict[str, Any]:
    return {
        "TemplateFilter": {
            "value": {
                "templateId": template_id,
                "includeCreatedEventBlob": include_created_event_blob,
            }
        }
    }


def interface_filter(
    interface_id: str,
    include_interface_view: bool = True,
    include_created_event_blob: bool = True,
) -> dict[str, Any]:
    return {
        "InterfaceFilter": {
            "value": {
                "interfaceId": interface_id,
                "includeInterfaceView": include_interface_view,
                "includeCreatedEventBlob": include_created_event_blob,
            }
        }
    }


def wildcard_filter(include_created_event_blob: bool = False) -> dict[str, Any]:
    return {"WildcardFilter": {"value": {"includeCreatedEventBlob": include_created_event_blob}}}


def _matches(contract: ActiveContract, where: Mapping[str, Any]) -> bool:
    return all(contract.create_argument.get(key) == value for key, value in where.items())


class LedgerClient(ServiceClient):
    """Canton participant JSON API (v2)."""

    service_name = "ledger"
    unavailable_error = LedgerUnavailableError

    def _error_for_status(self, response: httpx.Response) -> CBTCError:
        if response.status_code == 401 or response.status_code >= 500:
            return super()._error_for_status(response)
        try:
            body: Any = response.json()
        except ValueError:
            body = response.text
        return SubmissionError.from_response(response.status_code, body)

    async def current_offset(self) -> int:
        """Ledger end; always a fresh network call."""
        response = await self._request("GET", LEDGER_END_PATH)
        data = self._json(response)
        try:
            return int(data["offset"])
        except (KeyError, TypeError, ValueError) as e:
            raise UnexpectedResponseError(f"Ledger end response has no offset: {data!r}") from e

    async def active_contracts(
        self,
        party: str,
        identifier_filter: dict[str, Any],
        *,
        offset: Optional[int] = None,
    ) -> list[ActiveContract]:
        """Active contracts visible to ``party`` at ``offset`` (fetched fresh when omitted)."""
        if offset is None:
            offset = await self.current_offset()

        body = {
            "filter": {
                "filtersByParty": {
                    party: {"cumulative": [{"identifierFilter": identifier_filter}]},
                },
            },
            "verbose": False,
            "activeAtOffset": offset,
        }
        response = await self._request("POST", ACTIVE_CONTRACTS_PATH, json=body)
        entries = self._json(response)
        if not isinstance(entries, list):
            raise UnexpectedResponseError("Active contracts response is not a list")

        contracts = []
        for entry in entries:
            contract = ActiveContract.from_entry(entry)
            if contract is not None:
                contract.offset = offset
                contracts.append(contract)
        logger.debug("%d active contracts for %s at offset %d", len(contracts), party, offset)
        return contracts

    async def contracts_by_template(
        self,
        party: str,
        template_id: str,
        *,
        where: Optional[Mapping[str, Any]] = None,
    ) -> list[ActiveContract]:
        """Contracts of one template, optionally filtered on create-argument fields."""
        contracts = await self.active_contracts(party, template_filter(template_id))
        return [
            c for c in contracts
            if same_template(c.template_id, template_id) and (not where or _matches(c, where))
        ]

    async def contracts_by_interface(self, party: str, interface_id: str) -> list[ActiveContract]:
        return await self.active_contracts(party, interface_filter(interface_id))

    async def find_contract(self, party: str, template_id: str, contract_id: str) -> Optional[ActiveContract]:
        """Re-query a contract by id; None once it is archived."""
        for contract in await self.contracts_by_template(party, template_id):
            if contract.contract_id == contract_id:
                return contract
        return None

    async def submit_and_wait(self, submission: Submission) -> dict[str, Any]:
        """Submit a command and return the raw transaction tree response.

        Retries reuse ``submission.command_id`` so the ledger executes the
        command at most once.
        """
        logger.debug(
            "Submitting %s as %s (command %s)",
            ", ".join(c.choice for c in submission.commands),
            submission.act_as,
            submission.command_id,
        )
        response = await self._request("POST", SUBMIT_PATH, json=submission.to_wire())
        data = self._json(response)
        if not isinstance(data, dict):
            raise UnexpectedResponseError("Submission response is not an object")
        return data
