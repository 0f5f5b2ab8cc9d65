"""Models for the CBTC SDK."""
from .accounts import (
    DepositAccount,
    DepositAccountStatus,
    DepositRequest,
    LedgerContract,
    WithdrawAccount,
    WithdrawRequest,
)
from .auth import Credential, TokenResponse
from .base import Amount, CBTCModel, same_template, template_suffix
from .contracts import (
    AccountContractRuleSet,
    ActiveContract,
    ContractInfo,
    DisclosedContract,
    TokenStandardContracts,
)
from .holding import Holding, HoldingSelection, LockState
from .ledger import EventKind, ExerciseCommand, Submission, TransactionResult, TreeEvent
from .transfer import (
    BatchReport,
    ChoiceContext,
    ConsolidationResult,
    InstrumentId,
    OfferActionReport,
    OfferActionResult,
    SplitResult,
    TransferFactoryContext,
    TransferItem,
    TransferOffer,
    TransferResult,
    TransferSpec,
)

__all__ = [
    "CBTCModel",
    "Amount",
    "template_suffix",
    "same_template",
    "Credential",
    "TokenResponse",
    "ActiveContract",
    "ContractInfo",
    "DisclosedContract",
    "AccountContractRuleSet",
    "TokenStandardContracts",
    "Holding",
    "HoldingSelection",
    "LockState",
    "LedgerContract",
    "DepositAccount",
    "DepositAccountStatus",
    "DepositRequest",
    "WithdrawAccount",
    "WithdrawRequest",
    "EventKind",
    "ExerciseCommand",
    "Submission",
    "TransactionResult",
    "TreeEvent",
    "InstrumentId",
    "TransferSpec",
    "ChoiceContext",
    "TransferFactoryContext",
    "TransferItem",
    "TransferOffer",
    "TransferResult",
    "BatchReport",
    "OfferActionResult",
    "OfferActionReport",
    "ConsolidationResult",
    "SplitResult",
]
