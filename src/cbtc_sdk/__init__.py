"""
CBTC Python SDK

Mint, burn and transfer CBTC, the Bitcoin-backed token on Canton.
"""

from .auth import KeycloakAuth, LoginCredentials, StaticToken, TokenManager, extract_subject
from .batch import BatchEngine
from .client import CBTCClient
from .config import CBTCSettings, load_settings
from .constants import Network
from .disclosure import DisclosureBundle, DisclosureResolver, OperationKind
from .errors import (
    AttestorUnavailableError,
    AuthError,
    AuthExpiredError,
    CBTCError,
    InsufficientBalanceError,
    LedgerUnavailableError,
    MalformedTokenError,
    PollingTimeoutError,
    RegistryUnavailableError,
    SubmissionError,
    TransientNetworkError,
    UnexpectedResponseError,
    ValidationError,
)
from .holdings import HoldingSelector, greedy_select
from .locks import PartyLocks
from .mint import MintService, MintSession, MintState, MintWorkflow
from .models import (
    BatchReport,
    Credential,
    DepositAccount,
    DepositRequest,
    DisclosedContract,
    Holding,
    HoldingSelection,
    TransactionResult,
    TransferItem,
    TransferOffer,
    TransferResult,
    WithdrawAccount,
    WithdrawRequest,
)
from .outcome import OperationOutcome
from .polling import poll_until, start_polling
from .redeem import RedeemService, RedeemState, RedeemWorkflow
from .submission import CommandSubmitter, new_command_id
from .transfers import TransferService, generate_unique_reference

__version__ = "0.1.0"

__all__ = [
    # Client
    "CBTCClient",
    "CBTCSettings",
    "load_settings",
    "Network",
    # Auth
    "KeycloakAuth",
    "LoginCredentials",
    "StaticToken",
    "TokenManager",
    "extract_subject",
    # Components
    "HoldingSelector",
    "greedy_select",
    "DisclosureResolver",
    "DisclosureBundle",
    "OperationKind",
    "CommandSubmitter",
    "new_command_id",
    "PartyLocks",
    "poll_until",
    "start_polling",
    # Workflows
    "MintService",
    "MintSession",
    "MintState",
    "MintWorkflow",
    "RedeemService",
    "RedeemState",
    "RedeemWorkflow",
    "OperationOutcome",
    "TransferService",
    "generate_unique_reference",
    "BatchEngine",
    # Models
    "BatchReport",
    "Credential",
    "DepositAccount",
    "DepositRequest",
    "DisclosedContract",
    "Holding",
    "HoldingSelection",
    "TransactionResult",
    "TransferItem",
    "TransferOffer",
    "TransferResult",
    "WithdrawAccount",
    "WithdrawRequest",
    # Errors
    "CBTCError",
    "AuthError",
    "AuthExpiredError",
    "MalformedTokenError",
    "TransientNetworkError",
    "LedgerUnavailableError",
    "AttestorUnavailableError",
    "RegistryUnavailableError",
    "SubmissionError",
    "InsufficientBalanceError",
    "PollingTimeoutError",
    "ValidationError",
    "UnexpectedResponseError",
]
