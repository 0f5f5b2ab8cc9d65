"""
Redeeming: withdraw accounts, burning holdings and tracking withdraw requests.

A burn consumes CBTC holdings and creates a WithdrawRequest. The attestor
network later sends BTC to the account's destination address and records the
Bitcoin transaction id on the request.
"""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Optional, Sequence

from .amounts import format_amount, require_positive
from .constants import Choices, Defaults, MetaKeys, Templates, WITHDRAW_REASON
from .disclosure import DisclosureBundle, DisclosureResolver, OperationKind
from .errors import CBTCError, ValidationError
from .holdings import HoldingSelector
from .http import TokenSource
from .ledger import LedgerClient
from .locks import PartyLocks
from .models.accounts import WithdrawAccount, WithdrawRequest
from .models.holding import Holding
from .models.ledger import ExerciseCommand
from .outcome import OperationOutcome
from .polling import start_polling
from .submission import CommandSubmitter, created_contract

logger = logging.getLogger(__name__)


class RedeemState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    RULES_FETCHED = "rules_fetched"
    ACCOUNT_CREATED = "account_created"
    HOLDINGS_SELECTED = "holdings_selected"
    DISCLOSURES_RESOLVED = "disclosures_resolved"
    SUBMITTED = "submitted"
    AWAITING_EXTERNAL_PROCESSING = "awaiting_external_processing"
    COMPLETED = "completed"


REDEEM_STATES = tuple(RedeemState)


def burn_argument(holding_cids: Sequence[str], amount: Any, bundle: DisclosureBundle) -> dict[str, Any]:
    """Choice argument of ``CBTCWithdrawAccount_Withdraw``."""
    if bundle.token_standard is None:
        raise CBTCError("Disclosure bundle carries no token-standard contracts", code="MISSING_DISCLOSURES")
    return {
        "tokens": list(holding_cids),
        "amount": format_amount(amount),
        "burnMintFactoryCid": bundle.token_standard.burn_mint_factory.contract_id,
        "extraArgs": {
            "context": {"values": dict(bundle.context)},
            "meta": {"values": {MetaKeys.REASON: WITHDRAW_REASON}},
        },
    }


class RedeemService:
    """Withdraw-account and burn operations for one ledger participant."""

    def __init__(
        self,
        ledger: LedgerClient,
        submitter: CommandSubmitter,
        disclosures: DisclosureResolver,
        selector: HoldingSelector,
        locks: PartyLocks,
        *,
        instrument_id: str = Defaults.INSTRUMENT_ID,
        poll_interval: float = Defaults.POLL_INTERVAL_SECONDS,
    ) -> None:
        self._ledger = ledger
        self._submitter = submitter
        self._disclosures = disclosures
        self._selector = selector
        self._locks = locks
        self.instrument_id = instrument_id
        self._poll_interval = poll_interval

    @property
    def selector(self) -> HoldingSelector:
        return self._selector

    @property
    def locks(self) -> PartyLocks:
        return self._locks

    async def list_withdraw_accounts(self, party: str) -> list[WithdrawAccount]:
        contracts = await self._ledger.contracts_by_template(party, Templates.WITHDRAW_ACCOUNT)
        return [WithdrawAccount.from_contract(c) for c in contracts]

    async def find_withdraw_account(self, party: str, destination_btc_address: str) -> Optional[WithdrawAccount]:
        """Existing account of ``party`` paying out to ``destination_btc_address``."""
        for account in await self.list_withdraw_accounts(party):
            if account.owner == party and account.destination_btc_address == destination_btc_address:
                return account
        return None

    async def fetch_rules(self) -> DisclosureBundle:
        return await self._disclosures.resolve(OperationKind.CREATE_WITHDRAW_ACCOUNT)

    async def resolve_burn(self) -> DisclosureBundle:
        return await self._disclosures.resolve(OperationKind.BURN)

    async def create_withdraw_account(
        self,
        party: str,
        destination_btc_address: str,
        *,
        bundle: Optional[DisclosureBundle] = None,
        idempotency_key: Optional[str] = None,
    ) -> WithdrawAccount:
        """Open an account whose destination address can never change."""
        if not destination_btc_address.strip():
            raise ValidationError("destination_btc_address must not be empty", "destination_btc_address")
        if bundle is None:
            bundle = await self.fetch_rules()
        rules = bundle.rules
        if rules is None:
            raise CBTCError("Disclosure bundle carries no rules contract", code="MISSING_RULES")

        result = await self._submitter.submit(
            party,
            ExerciseCommand(
                template_id=rules.template_id,
                contract_id=rules.contract_id,
                choice=Choices.CREATE_WITHDRAW_ACCOUNT,
                choice_argument={
                    "owner": party,
                    "destinationBtcAddress": destination_btc_address.strip(),
                },
            ),
            bundle.disclosed_contracts,
            idempotency_key,
            roles={"withdraw_account": Templates.WITHDRAW_ACCOUNT},
        )
        account = WithdrawAccount.from_contract(created_contract(result, "withdraw_account"))
        logger.info("Created withdraw account %s for %s", account.contract_id, party)
        return account

    async def list_holdings(self, party: str) -> list[Holding]:
        return await self._selector.list_holdings(party, self.instrument_id)

    async def list_withdraw_requests(self, party: str) -> list[WithdrawRequest]:
        contracts = await self._ledger.contracts_by_template(party, Templates.WITHDRAW_REQUEST)
        return [WithdrawRequest.from_contract(c) for c in contracts]

    async def get_withdraw_request(self, party: str, request_cid: str) -> Optional[WithdrawRequest]:
        contract = await self._ledger.find_contract(party, Templates.WITHDRAW_REQUEST, request_cid)
        return WithdrawRequest.from_contract(contract) if contract is not None else None

    async def burn(
        self,
        party: str,
        account_cid: str,
        amount: Any,
        holding_cids: Sequence[str],
        bundle: DisclosureBundle,
        *,
        idempotency_key: Optional[str] = None,
    ) -> WithdrawRequest:
        """Submit the burn for already selected holdings.

        Callers must hold ``locks.lock_for(party)`` from selection through this call.
        """
        if not holding_cids:
            raise ValidationError("At least one holding is required", "holding_cids")
        result = await self._submitter.submit(
            party,
            ExerciseCommand(
                template_id=Templates.WITHDRAW_ACCOUNT,
                contract_id=account_cid,
                choice=Choices.WITHDRAW,
                choice_argument=burn_argument(holding_cids, amount, bundle),
            ),
            bundle.disclosed_contracts,
            idempotency_key,
            roles={"withdraw_request": Templates.WITHDRAW_REQUEST},
        )
        request = WithdrawRequest.from_contract(created_contract(result, "withdraw_request"))
        logger.info(
            "Burned %s %s from %d holdings, withdraw request %s",
            format_amount(amount),
            self.instrument_id,
            len(holding_cids),
            request.contract_id,
        )
        return request

    async def request_withdraw(
        self,
        party: str,
        account_cid: str,
        amount: Any,
        *,
        holding_cids: Optional[Sequence[str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> WithdrawRequest:
        """Select holdings (unless given), resolve disclosures and burn.

        Raises:
            InsufficientBalanceError: unlocked holdings do not cover ``amount``.
            AttestorUnavailableError: disclosures could not be fetched; nothing
                was submitted.
        """
        need = require_positive(amount)
        async with self._locks.lock_for(party):
            if holding_cids is None:
                selection = await self._selector.select_holdings(party, self.instrument_id, need)
                holding_cids = selection.contract_ids
            bundle = await self.resolve_burn()
            return await self.burn(
                party,
                account_cid,
                need,
                holding_cids,
                bundle,
                idempotency_key=idempotency_key,
            )

    def wait_for_completion(
        self,
        party: str,
        request_cid: str,
        *,
        timeout: Optional[float] = None,
    ) -> "asyncio.Task[WithdrawRequest]":
        """Poll the withdraw request until the attestor records a BTC transaction id."""

        async def fetch() -> WithdrawRequest:
            request = await self.get_withdraw_request(party, request_cid)
            if request is None:
                raise CBTCError(
                    f"Withdraw request {request_cid} is no longer active",
                    code="CONTRACT_NOT_FOUND",
                    details={"contract_id": request_cid},
                )
            return request

        return start_polling(
            fetch,
            lambda request: request.is_completed,
            interval=self._poll_interval,
            timeout=timeout,
            description=f"withdraw request {request_cid}",
        )


class RedeemWorkflow:
    """Burns CBTC and follows the withdraw request to a BTC transaction.

    An existing withdraw account with the same destination address is reused.
    Completed steps are never rolled back; on failure ``contracts`` in the
    outcome holds what was created so far.
    """

    def __init__(self, tokens: TokenSource, redeem: RedeemService, party: str) -> None:
        self._tokens = tokens
        self._redeem = redeem
        self._party = party

    async def run(
        self,
        destination_btc_address: str,
        amount: Any,
        *,
        wait: bool = True,
        timeout: Optional[float] = None,
    ) -> OperationOutcome[WithdrawRequest]:
        """
        Args:
            destination_btc_address: Where the attestor sends BTC
            amount: CBTC to burn
            wait: Poll until the BTC transaction id is set
            timeout: Seconds to poll before giving up; None polls forever
        """
        state = RedeemState.UNAUTHENTICATED
        contracts: dict[str, str] = {}
        party = self._party
        try:
            need = require_positive(amount)
            await self._tokens.authorization()
            state = RedeemState.AUTHENTICATED

            rules = await self._redeem.fetch_rules()
            state = RedeemState.RULES_FETCHED

            account = await self._redeem.find_withdraw_account(party, destination_btc_address)
            if account is None:
                account = await self._redeem.create_withdraw_account(party, destination_btc_address, bundle=rules)
            else:
                logger.info("Reusing withdraw account %s", account.contract_id)
            contracts["withdraw_account"] = account.contract_id
            state = RedeemState.ACCOUNT_CREATED

            async with self._redeem.locks.lock_for(party):
                selection = await self._redeem.selector.select_holdings(party, self._redeem.instrument_id, need)
                state = RedeemState.HOLDINGS_SELECTED

                bundle = await self._redeem.resolve_burn()
                state = RedeemState.DISCLOSURES_RESOLVED

                request = await self._redeem.burn(party, account.contract_id, need, selection.contract_ids, bundle)
                contracts["withdraw_request"] = request.contract_id
                state = RedeemState.SUBMITTED

            state = RedeemState.AWAITING_EXTERNAL_PROCESSING
            if not wait:
                return OperationOutcome.completed(state, request, contracts)

            request = await self._redeem.wait_for_completion(party, request.contract_id, timeout=timeout)
            state = RedeemState.COMPLETED
            logger.info("Withdraw request %s completed in BTC tx %s", request.contract_id, request.btc_tx_id)
            return OperationOutcome.completed(state, request, contracts)
        except CBTCError as e:
            logger.warning("Redeem workflow for %s stopped after %s: %s", party, state.value, e)
            return OperationOutcome.failed(state, e, contracts, REDEEM_STATES)
