"""
Ledger identifiers and defaults used throughout the CBTC SDK.

Usage:
    from cbtc_sdk.constants import Templates, Choices, Network

All values are organized into logical namespaces using classes.
"""
from __future__ import annotations

from enum import StrEnum
from typing import Final


# =============================================================================
# Networks
# =============================================================================

class Network(StrEnum):
    """Canton networks the CBTC registrar operates on."""

    MAINNET = "mainnet"
    TESTNET = "testnet"
    DEVNET = "devnet"


DECENTRALIZED_PARTY_IDS: Final[dict[Network, str]] = {
    Network.MAINNET: "cbtc-network::12205af3b949a04776fc48cdcc05a060f6bda2e470632935f375d1049a8546a3b262",
    Network.TESTNET: "cbtc-network::12201b1741b63e2494e4214cf0bedc3d5a224da53b3bf4d76dba468f8e97eb15508f",
    Network.DEVNET: "cbtc-network::12202a83c6f4082217c175e29bc53da5f2703ba2675778ab99217a5a881a949203ff",
}


# =============================================================================
# Template / Interface Identifiers
# =============================================================================

class Templates:
    """Package-name qualified template ids."""

    DEPOSIT_ACCOUNT: Final[str] = "#cbtc:CBTC.DepositAccount:CBTCDepositAccount"
    DEPOSIT_ACCOUNT_RULES: Final[str] = "#cbtc:CBTC.DepositAccountRules:CBTCDepositAccountRules"
    DEPOSIT_REQUEST: Final[str] = "#cbtc:CBTC.DepositRequest:CBTCDepositRequest"
    WITHDRAW_ACCOUNT: Final[str] = "#cbtc:CBTC.WithdrawAccount:CBTCWithdrawAccount"
    WITHDRAW_ACCOUNT_RULES: Final[str] = "#cbtc:CBTC.WithdrawAccountRules:CBTCWithdrawAccountRules"
    WITHDRAW_REQUEST: Final[str] = "#cbtc:CBTC.WithdrawRequest:CBTCWithdrawRequest"

    TRANSFER_FACTORY: Final[str] = (
        "#splice-api-token-transfer-instruction-v1:"
        "Splice.Api.Token.TransferInstructionV1:TransferFactory"
    )
    TRANSFER_INSTRUCTION: Final[str] = (
        "#splice-api-token-transfer-instruction-v1:"
        "Splice.Api.Token.TransferInstructionV1:TransferInstruction"
    )
    TRANSFER_OFFER: Final[str] = (
        "#utility-registry-app-v0:Utility.Registry.App.V0.Model.Transfer:TransferOffer"
    )
    # Concrete holding template exposed by the utility registry
    REGISTRY_HOLDING: Final[str] = "#utility-registry-holding-v0:Utility.Registry.Holding.V0.Holding:Holding"


class Interfaces:
    """Interface ids queried with an interface filter."""

    HOLDING: Final[str] = "#splice-api-token-holding-v1:Splice.Api.Token.HoldingV1:Holding"


class Choices:
    """Choice names exercised by the SDK."""

    CREATE_DEPOSIT_ACCOUNT: Final[str] = "CBTCDepositAccountRules_CreateDepositAccount"
    CREATE_WITHDRAW_ACCOUNT: Final[str] = "CBTCWithdrawAccountRules_CreateWithdrawAccount"
    WITHDRAW: Final[str] = "CBTCWithdrawAccount_Withdraw"
    TRANSFER: Final[str] = "TransferFactory_Transfer"
    ACCEPT: Final[str] = "TransferInstruction_Accept"
    CANCEL: Final[str] = "TransferInstruction_Withdraw"


# =============================================================================
# Metadata / Context Keys
# =============================================================================

class MetaKeys:
    """Keys used inside token-standard metadata maps."""

    REASON: Final[str] = "splice.lfdecentralizedtrust.org/reason"
    REFERENCE: Final[str] = "splice.lfdecentralizedtrust.org/reference"
    TX_KIND: Final[str] = "splice.lfdecentralizedtrust.org/tx-kind"


class ContextKeys:
    """Keys of the burn choice context map."""

    INSTRUMENT_CONFIGURATION: Final[str] = "utility.digitalasset.com/instrument-configuration"
    ISSUER_CREDENTIALS: Final[str] = "utility.digitalasset.com/issuer-credentials"
    APP_REWARD_CONFIGURATION: Final[str] = "utility.digitalasset.com/app-reward-configuration"
    FEATURED_APP_RIGHT: Final[str] = "utility.digitalasset.com/featured-app-right"


WITHDRAW_REASON: Final[str] = "CBTC withdrawal"
CONSOLIDATION_REASON: Final[str] = "UTXO consolidation"
SPLIT_REASON: Final[str] = "UTXO split"
MERGE_SPLIT_KIND: Final[str] = "merge-split"


# =============================================================================
# Defaults
# =============================================================================

class Defaults:
    """Default values shared by settings and components."""

    INSTRUMENT_ID: Final[str] = "CBTC"
    CHAIN: Final[str] = "canton-devnet"
    POLL_INTERVAL_SECONDS: Final[float] = 30.0
    HTTP_TIMEOUT_SECONDS: Final[float] = 30.0
    TOKEN_REFRESH_MARGIN_SECONDS: Final[int] = 60
    BATCH_ACCEPT_SIZE: Final[int] = 5
    CONSOLIDATION_THRESHOLD: Final[int] = 10
    TRANSFER_EXPIRY_HOURS: Final[int] = 168
    MAX_RETRIES: Final[int] = 3
    RETRY_BASE_DELAY: Final[float] = 1.0
    RETRY_MAX_DELAY: Final[float] = 30.0


class LoggingConfig:
    """Log masking configuration."""

    SENSITIVE_FIELDS: Final[frozenset[str]] = frozenset({
        "password",
        "client_secret",
        "access_token",
        "refresh_token",
        "id_token",
        "authorization",
    })

    MASK_PATTERN: Final[str] = "***REDACTED***"
    MAX_LOG_MESSAGE_LENGTH: Final[int] = 10000
    MAX_RESPONSE_BODY_LOG_LENGTH: Final[int] = 500
