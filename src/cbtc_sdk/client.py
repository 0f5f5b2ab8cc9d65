"""
CBTC SDK client.

Usage:
    async with CBTCClient() as client:          # settings from CBTC_* env vars
        outcome = await client.mint_workflow().run()
        report = await client.batch.run_batch(client.party, items)
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

import httpx

from .attestor import AttestorClient
from .auth import KeycloakAuth, LoginCredentials, TokenManager
from .batch import BatchEngine
from .config import CBTCSettings, load_settings
from .disclosure import DisclosureResolver
from .errors import ValidationError
from .holdings import HoldingSelector
from .http import TokenSource, create_http_client
from .ledger import LedgerClient
from .locks import PartyLocks
from .mint import MintService, MintWorkflow
from .redeem import RedeemService, RedeemWorkflow
from .registry import RegistryClient
from .retry import RetryConfig
from .submission import CommandSubmitter
from .transfers import TransferService


class CBTCClient:
    """Wires every component to one shared ``httpx.AsyncClient``.

    Args:
        settings: Connection settings; read from the environment when omitted
        http: Client to reuse; the SDK closes only clients it created
        tokens: Token source replacing the Keycloak login, e.g. ``StaticToken``
    """

    def __init__(
        self,
        settings: Optional[CBTCSettings] = None,
        *,
        http: Optional[httpx.AsyncClient] = None,
        tokens: Optional[TokenSource] = None,
    ):
        self.settings = settings or load_settings()
        s = self.settings

        self._owns_http = http is None
        self._http = http or create_http_client(s.http_timeout_seconds)
        retry = RetryConfig(max_retries=s.max_retries, base_delay=s.retry_base_delay)

        self.keycloak = KeycloakAuth(s.token_url, s.keycloak_client_id, self._http)
        self.tokens: TokenSource = tokens or TokenManager(
            self.keycloak,
            LoginCredentials(
                username=s.keycloak_username,
                password=s.keycloak_password.get_secret_value(),
                client_secret=s.keycloak_client_secret.get_secret_value() if s.keycloak_client_secret else None,
            ),
            refresh_margin_seconds=s.token_refresh_margin_seconds,
        )

        self.ledger = LedgerClient(s.ledger_host, self._http, auth=self.tokens, retry=retry)
        self.attestor = AttestorClient(s.attestor_url, self._http, s.chain)
        self.registry = RegistryClient(s.registry_url, self._http, s.registrar_party, retry=retry)

        self.locks = PartyLocks()
        self.selector = HoldingSelector(self.ledger, query=s.holding_query, template_id=s.holding_template_id)
        self.disclosures = DisclosureResolver(self.attestor)
        self.submitter = CommandSubmitter(self.ledger, self.tokens, user_id=s.user_id)

        self.mint = MintService(
            self.ledger,
            self.attestor,
            self.submitter,
            self.disclosures,
            poll_interval=s.poll_interval_seconds,
        )
        self.redeem = RedeemService(
            self.ledger,
            self.submitter,
            self.disclosures,
            self.selector,
            self.locks,
            instrument_id=s.instrument_id,
            poll_interval=s.poll_interval_seconds,
        )
        self.transfers = TransferService(
            self.ledger,
            self.registry,
            self.submitter,
            self.selector,
            self.locks,
            instrument_id=s.instrument_id,
            transfer_expiry_hours=s.transfer_expiry_hours,
            batch_accept_size=s.batch_accept_size,
            consolidation_threshold=s.consolidation_threshold,
        )
        self.batch = BatchEngine(self.transfers, self.tokens)

    @property
    def party(self) -> str:
        """Configured party id."""
        if not self.settings.party_id:
            raise ValidationError("CBTC_PARTY_ID is not configured", "party_id")
        return self.settings.party_id

    def mint_workflow(self, party: Optional[str] = None) -> MintWorkflow:
        return MintWorkflow(self.tokens, self.mint, party or self.party)

    def redeem_workflow(self, party: Optional[str] = None) -> RedeemWorkflow:
        return RedeemWorkflow(self.tokens, self.redeem, party or self.party)

    async def balance(self, party: Optional[str] = None) -> Decimal:
        """Unlocked CBTC balance."""
        return await self.selector.balance(party or self.party, self.settings.instrument_id)

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_http and not self._http.is_closed:
            await self._http.aclose()

    async def __aenter__(self) -> "CBTCClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
