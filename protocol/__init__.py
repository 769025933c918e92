"""Protocol - notes, keys, the pool state machine and cross-domain withdrawal."""

from protocol.config import CollectMode, PoolConfig
from protocol.errors import (
    CapacityExceeded,
    InvalidMessage,
    InvalidProof,
    InvalidPublicInputs,
    NoteAlreadyCollected,
    NullifierAlreadySpent,
    PoolError,
    RootMismatch,
    TokenTransferFailed,
    Unauthorized,
    UnauthorizedMessage,
    UnsupportedToken,
    WithdrawalClosed,
    WithdrawalExpired,
    WithdrawalNotFound,
    WithdrawalPending,
)
from protocol.note import Note, note_commitment, nullifier
from protocol.keypair import KeyPair, StealthAddress, StealthOwnershipProof

from protocol.public_inputs import NoteInputs, StealthInputs, TransactInputs, WithdrawInputs
from protocol.verifier import (
    CircuitFamily,
    DevProvingSystem,
    DevVerifier,
    UnsatisfiedWitness,
    Verifier,
    VerifierSet,
)
from protocol.transaction import (
    ProvedTransaction,
    Transaction,
    WithdrawalInput,
    create_input,
    create_transaction,
)

from protocol.token import InMemoryToken, TokenLedger
from protocol.events import (
    Collect,
    Event,
    EventLog,
    Transact,
    TrustlessWithdrawAcknowledged,
    TrustlessWithdrawCancelRequested,
    TrustlessWithdrawFinalized,
    TrustlessWithdrawInit,
    TrustlessWithdrawRefunded,
)
from protocol.deployment import (
    STEALTH_WALLET_INIT_CODE_HASH,
    create2_address,
    pool_init_code,
    predict_pool_address,
    stealth_address,
)
from protocol.withdrawal import (
    Mailbox,
    MailboxHub,
    WithdrawalAck,
    WithdrawalCancel,
    WithdrawalCancelAck,
    WithdrawalMessage,
    decode_message,
    withdrawal_key,
)
from protocol.pool import Pool, WithdrawalRequest, WithdrawalStatus

__all__ = [
    # Configuration
    "PoolConfig",
    "CollectMode",
    # Errors
    "PoolError",
    "InvalidProof",
    "NullifierAlreadySpent",
    "RootMismatch",
    "NoteAlreadyCollected",
    "CapacityExceeded",
    "TokenTransferFailed",
    "WithdrawalExpired",
    "WithdrawalPending",
    "WithdrawalNotFound",
    "WithdrawalClosed",
    "InvalidPublicInputs",
    "UnsupportedToken",
    "Unauthorized",
    "UnauthorizedMessage",
    "InvalidMessage",
    # Notes and keys
    "Note",
    "note_commitment",
    "nullifier",
    "KeyPair",
    "StealthAddress",
    "StealthOwnershipProof",
    # Circuits
    "CircuitFamily",
    "TransactInputs",
    "StealthInputs",
    "NoteInputs",
    "WithdrawInputs",
    "Verifier",
    "VerifierSet",
    "DevVerifier",
    "DevProvingSystem",
    "UnsatisfiedWitness",
    # Client
    "Transaction",
    "ProvedTransaction",
    "WithdrawalInput",
    "create_transaction",
    "create_input",
    # Ledger
    "TokenLedger",
    "InMemoryToken",
    "Event",
    "EventLog",
    "Transact",
    "Collect",
    "TrustlessWithdrawInit",
    "TrustlessWithdrawFinalized",
    "TrustlessWithdrawAcknowledged",
    "TrustlessWithdrawCancelRequested",
    "TrustlessWithdrawRefunded",
    # Deployment
    "STEALTH_WALLET_INIT_CODE_HASH",
    "create2_address",
    "stealth_address",
    "pool_init_code",
    "predict_pool_address",
    # Pool
    "Pool",
    "WithdrawalRequest",
    "WithdrawalStatus",
    # Cross-domain
    "Mailbox",
    "MailboxHub",
    "WithdrawalMessage",
    "WithdrawalAck",
    "WithdrawalCancel",
    "WithdrawalCancelAck",
    "decode_message",
    "withdrawal_key",
]
