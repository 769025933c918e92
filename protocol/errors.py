"""Pool error taxonomy.

Every pool entry point is atomic: when one of these is raised, no state change
of that call is observable. Nothing here is retried internally.
"""

from primitives.merkle_tree import CapacityExceeded


class PoolError(Exception):
    """Base class for rejected pool calls."""


class InvalidProof(PoolError):
    """The verifier oracle returned false."""


class NullifierAlreadySpent(PoolError):
    """A nullifier in the call is already in the spent set (or repeated within the call)."""


class RootMismatch(PoolError):
    """Claimed old/new root is inconsistent with the current state; resync and re-prove."""


class NoteAlreadyCollected(PoolError):
    """The note commitment was already collected into the pool."""


class TokenTransferFailed(PoolError):
    """The token ledger reported failure; the whole call was rolled back."""


class WithdrawalExpired(PoolError):
    """The trustless-withdrawal window has elapsed."""


class WithdrawalPending(PoolError):
    """The trustless withdrawal cannot be refunded yet."""


class WithdrawalNotFound(PoolError, KeyError):
    """No trustless withdrawal is recorded under the key."""


class WithdrawalClosed(PoolError):
    """The trustless withdrawal was already finalized, cancelled or refunded."""


class InvalidPublicInputs(PoolError, ValueError):
    """Public inputs have the wrong shape or contain non-canonical values."""


class UnsupportedToken(PoolError, ValueError):
    """The pool does not hold custody of this token."""


class Unauthorized(PoolError):
    """The caller may not perform this operation."""


class UnauthorizedMessage(Unauthorized):
    """A cross-domain message did not come from the mailbox or an enrolled remote pool."""


class InvalidMessage(PoolError, ValueError):
    """A cross-domain message body could not be decoded."""


__all__ = [
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
]
