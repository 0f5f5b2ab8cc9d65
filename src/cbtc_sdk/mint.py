"""
Minting: deposit accounts, their BTC addresses and deposit requests.

Usage:
    outcome = await MintWorkflow(tokens, mint, party).run()
    if outcome.success:
        print("Send BTC to", outcome.value.bitcoin_address)
        deposit = await mint.wait_for_deposit(party, outcome.value.account.contract_id)
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from .attestor import AttestorClient
from .constants import Choices, Defaults, Templates
from .disclosure import DisclosureBundle, DisclosureResolver, OperationKind
from .errors import CBTCError
from .http import TokenSource
from .ledger import LedgerClient
from .models.accounts import DepositAccount, DepositAccountStatus, DepositRequest
from .models.ledger import ExerciseCommand
from .outcome import OperationOutcome
from .polling import start_polling
from .submission import CommandSubmitter, created_contract

logger = logging.getLogger(__name__)


class MintState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    RULES_FETCHED = "rules_fetched"
    ACCOUNT_CREATED = "account_created"
    ADDRESS_RETRIEVED = "address_retrieved"
    AWAITING_EXTERNAL_CONFIRMATION = "awaiting_external_confirmation"


MINT_STATES = tuple(MintState)


@dataclass(frozen=True)
class MintSession:
    """Deposit account ready to receive BTC."""

    account: DepositAccount
    bitcoin_address: str


class MintService:
    """Deposit-account operations for one ledger participant."""

    def __init__(
        self,
        ledger: LedgerClient,
        attestor: AttestorClient,
        submitter: CommandSubmitter,
        disclosures: DisclosureResolver,
        *,
        poll_interval: float = Defaults.POLL_INTERVAL_SECONDS,
    ) -> None:
        self._ledger = ledger
        self._attestor = attestor
        self._submitter = submitter
        self._disclosures = disclosures
        self._poll_interval = poll_interval

    async def list_deposit_accounts(self, party: str) -> list[DepositAccount]:
        contracts = await self._ledger.contracts_by_template(party, Templates.DEPOSIT_ACCOUNT)
        return [DepositAccount.from_contract(c) for c in contracts]

    async def create_deposit_account(
        self,
        party: str,
        *,
        bundle: Optional[DisclosureBundle] = None,
        idempotency_key: Optional[str] = None,
    ) -> DepositAccount:
        """Exercise the deposit-account rules to open an account owned by ``party``."""
        if bundle is None:
            bundle = await self._disclosures.resolve(OperationKind.CREATE_DEPOSIT_ACCOUNT)
        rules = bundle.rules
        if rules is None:
            raise CBTCError("Disclosure bundle carries no rules contract", code="MISSING_RULES")

        result = await self._submitter.submit(
            party,
            ExerciseCommand(
                template_id=rules.template_id,
                contract_id=rules.contract_id,
                choice=Choices.CREATE_DEPOSIT_ACCOUNT,
                choice_argument={"owner": party},
            ),
            bundle.disclosed_contracts,
            idempotency_key,
            roles={"deposit_account": Templates.DEPOSIT_ACCOUNT},
        )
        account = DepositAccount.from_contract(created_contract(result, "deposit_account"))
        logger.info("Created deposit account %s for %s", account.contract_id, party)
        return account

    async def get_bitcoin_address(self, account_cid: str) -> str:
        return await self._attestor.get_bitcoin_address(account_cid)

    async def list_deposit_requests(self, party: str, account_cid: Optional[str] = None) -> list[DepositRequest]:
        """Deposit requests visible to ``party``, optionally for one account only."""
        where = {"depositAccountId": account_cid} if account_cid else None
        contracts = await self._ledger.contracts_by_template(party, Templates.DEPOSIT_REQUEST, where=where)
        return [DepositRequest.from_contract(c) for c in contracts]

    async def fetch_rules(self) -> DisclosureBundle:
        return await self._disclosures.resolve(OperationKind.CREATE_DEPOSIT_ACCOUNT)

    async def get_deposit_account(self, party: str, account_cid: str) -> DepositAccount:
        for account in await self.list_deposit_accounts(party):
            if account.contract_id == account_cid:
                return account
        raise CBTCError(
            f"Deposit account {account_cid} not found",
            code="CONTRACT_NOT_FOUND",
            details={"contract_id": account_cid},
        )

    async def get_deposit_account_status(self, party: str, account_cid: str) -> DepositAccountStatus:
        """Account fields plus the BTC address the attestor assigned to it."""
        account = await self.get_deposit_account(party, account_cid)
        return DepositAccountStatus(
            contract_id=account.contract_id,
            owner=account.owner,
            operator=account.operator,
            registrar=account.registrar,
            bitcoin_address=await self.get_bitcoin_address(account_cid),
            last_processed_bitcoin_block=account.last_processed_bitcoin_block,
        )

    def wait_for_deposit(
        self,
        party: str,
        account_cid: str,
        *,
        exclude: Iterable[str] = (),
        timeout: Optional[float] = None,
    ) -> "asyncio.Task[Optional[DepositRequest]]":
        """Poll until a deposit request for the account appears.

        Requests whose contract ids are in ``exclude`` (already seen) are ignored.
        """
        seen = set(exclude)

        async def fetch() -> Optional[DepositRequest]:
            requests = await self.list_deposit_requests(party, account_cid)
            return next((r for r in requests if r.contract_id not in seen), None)

        return start_polling(
            fetch,
            lambda request: request is not None,
            interval=self._poll_interval,
            timeout=timeout,
            description=f"deposit to {account_cid}",
        )


class MintWorkflow:
    """Walks a party from login to a deposit address.

    The workflow ends waiting on an external BTC deposit; ``run`` never
    creates more than one account and does not roll back completed steps.
    """

    def __init__(self, tokens: TokenSource, mint: MintService, party: str) -> None:
        self._tokens = tokens
        self._mint = mint
        self._party = party

    async def run(self, *, account_cid: Optional[str] = None) -> OperationOutcome[MintSession]:
        """Run every step; with ``account_cid`` an existing account is reused."""
        state = MintState.UNAUTHENTICATED
        contracts: dict[str, str] = {}
        try:
            await self._tokens.authorization()
            state = MintState.AUTHENTICATED

            bundle = await self._mint.fetch_rules()
            state = MintState.RULES_FETCHED

            if account_cid is None:
                account = await self._mint.create_deposit_account(self._party, bundle=bundle)
            else:
                account = await self._mint.get_deposit_account(self._party, account_cid)
            contracts["deposit_account"] = account.contract_id
            state = MintState.ACCOUNT_CREATED

            address = await self._mint.get_bitcoin_address(account.contract_id)
            state = MintState.ADDRESS_RETRIEVED

            logger.info("Deposit account %s awaiting BTC at %s", account.contract_id, address)
            state = MintState.AWAITING_EXTERNAL_CONFIRMATION
            return OperationOutcome.completed(state, MintSession(account, address), contracts)
        except CBTCError as e:
            logger.warning("Mint workflow for %s stopped after %s: %s", self._party, state.value, e)
            return OperationOutcome.failed(state, e, contracts, MINT_STATES)
