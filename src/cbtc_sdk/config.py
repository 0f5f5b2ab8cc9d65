"""Configuration surface for CBTC SDK clients."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings

from .constants import DECENTRALIZED_PARTY_IDS, Defaults, Network, Templates


class CBTCSettings(BaseSettings):
    """Connection and behaviour settings, read from ``CBTC_*`` environment variables."""

    # Ledger participant
    ledger_host: str = "http://localhost:7575"
    party_id: str = ""
    user_id: Optional[str] = None

    # Keycloak
    keycloak_host: str = "http://localhost:8082"
    keycloak_realm: str = "canton"
    keycloak_client_id: str = ""
    keycloak_username: str = ""
    keycloak_password: SecretStr = SecretStr("")
    keycloak_client_secret: Optional[SecretStr] = None

    # External services
    attestor_url: str = ""
    registry_url: str = ""
    chain: str = Defaults.CHAIN
    network: Network = Network.DEVNET
    decentralized_party_id: Optional[str] = None

    # Holdings
    holding_query: Literal["interface", "template"] = "interface"
    holding_template_id: str = Templates.REGISTRY_HOLDING
    instrument_id: str = Defaults.INSTRUMENT_ID

    # Timing
    poll_interval_seconds: float = Field(default=Defaults.POLL_INTERVAL_SECONDS, gt=0)
    http_timeout_seconds: float = Field(default=Defaults.HTTP_TIMEOUT_SECONDS, gt=0)
    token_refresh_margin_seconds: int = Field(default=Defaults.TOKEN_REFRESH_MARGIN_SECONDS, ge=0)
    transfer_expiry_hours: int = Field(default=Defaults.TRANSFER_EXPIRY_HOURS, gt=0)

    # Retries
    max_retries: int = Field(default=Defaults.MAX_RETRIES, ge=0)
    retry_base_delay: float = Field(default=Defaults.RETRY_BASE_DELAY, ge=0)

    # Batching
    batch_accept_size: int = Field(default=Defaults.BATCH_ACCEPT_SIZE, gt=0)
    consolidation_threshold: int = Field(default=Defaults.CONSOLIDATION_THRESHOLD, gt=0)

    class Config:
        env_prefix = "CBTC_"
        env_file = ".env"
        extra = "ignore"

    @field_validator("ledger_host", "keycloak_host", "attestor_url", "registry_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def registrar_party(self) -> str:
        """Decentralized party administering the CBTC instrument."""
        return self.decentralized_party_id or DECENTRALIZED_PARTY_IDS[Network(self.network)]

    @property
    def token_url(self) -> str:
        return f"{self.keycloak_host}/auth/realms/{self.keycloak_realm}/protocol/openid-connect/token"


@lru_cache
def load_settings(env_file: str | None = None) -> CBTCSettings:
    """Load CBTCSettings once per process."""
    if env_file:
        return CBTCSettings(_env_file=Path(env_file))
    return CBTCSettings()
