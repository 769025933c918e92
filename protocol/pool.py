"""Shielded pool state machine.

The pool owns the note accumulator, the spent-nullifier set and custody of
one token. State changes only through the entry points below, each of which
is atomic:

1. Decode and range-check the public inputs
2. Check roots and nullifiers against the current state
3. Ask the verifier oracle of the relevant circuit family
4. Apply the bookkeeping (nullifiers, leaves, root, withdrawal records)
5. Only then call out to the token ledger / mailbox

Any exception anywhere in a call restores the state captured before step 1
and drops the events the call would have published. Calls are assumed to be
serialized by the surrounding ledger platform; there is no internal locking.
"""

import logging
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Deque, Dict, Iterator, List, Optional, Sequence, Set, Tuple, Union

from primitives.field import field_to_address, from_hex, is_canonical, to_hex
from primitives.merkle_tree import NoteMerkleTree
from protocol.config import CollectMode, PoolConfig
from protocol.deployment import (
    STEALTH_WALLET_INIT_CODE_HASH,
    ZERO_SALT,
    pool_init_code,
    predict_pool_address,
    stealth_address,
)
from protocol.errors import (
    InvalidMessage,
    InvalidProof,
    InvalidPublicInputs,
    NoteAlreadyCollected,
    NullifierAlreadySpent,
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
from protocol.public_inputs import (
    FieldLike,
    NoteInputs,
    StealthInputs,
    TransactInputs,
    WithdrawInputs,
    normalize,
)
from protocol.token import TokenLedger
from protocol.verifier import Verifier, VerifierSet
from protocol.withdrawal import (
    Mailbox,
    WithdrawalAck,
    WithdrawalCancel,
    WithdrawalCancelAck,
    WithdrawalMessage,
    decode_message,
    withdrawal_key,
)

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x" + "00" * 20


class WithdrawalStatus(Enum):
    INITIATED = "initiated"
    CANCELLING = "cancelling"
    FINALIZED = "finalized"
    EXPIRED = "expired"


@dataclass
class WithdrawalRequest:
    """A trustless withdrawal recorded on its origin domain."""
    key: bytes
    nullifier: int
    amount: int
    recipient: str
    destination: Optional[int]
    initiated_at: int
    deadline: int
    proof: bytes = b""
    public_inputs: Tuple[int, ...] = ()
    status: WithdrawalStatus = WithdrawalStatus.INITIATED


@dataclass
class PoolState:
    """Persistent ledger state. Never reset; replaced wholesale only on rollback."""
    current_root: int
    root_history: Deque[int]
    spent_nullifiers: Set[int] = field(default_factory=set)
    withdrawals: Dict[bytes, WithdrawalRequest] = field(default_factory=dict)
    collected: Set[int] = field(default_factory=set)
    finalized_remote: Set[bytes] = field(default_factory=set)
    cancelled_remote: Set[bytes] = field(default_factory=set)
    version: int = 0

    def copy(self) -> "PoolState":
        return PoolState(
            current_root=self.current_root,
            root_history=deque(self.root_history, maxlen=self.root_history.maxlen),
            spent_nullifiers=set(self.spent_nullifiers),
            withdrawals={k: replace(v) for k, v in self.withdrawals.items()},
            collected=set(self.collected),
            finalized_remote=set(self.finalized_remote),
            cancelled_remote=set(self.cancelled_remote),
            version=self.version,
        )


class Pool:
    """Proof-gated shielded pool.

    Args:
        verifiers: Verifier oracle per circuit family
        token: Token ledger the pool holds custody in
        address: The pool's own (deterministic) address
        owner: Account allowed to enroll remote pools
        config: Static parameters
        domain: Id of the ledger domain the pool lives on
        mailbox: Cross-domain relay endpoint, if any
        clock: Returns the platform time in seconds
    """

    def __init__(
        self,
        verifiers: VerifierSet,
        token: TokenLedger,
        address: str,
        owner: str = ZERO_ADDRESS,
        config: Optional[PoolConfig] = None,
        domain: int = 1,
        mailbox: Optional[Mailbox] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or PoolConfig()
        self.verifiers = verifiers
        self.token = token
        self.address = address.lower()
        self.owner = owner.lower()
        self.domain = domain
        self.mailbox = mailbox
        self.clock = clock

        self.tree = NoteMerkleTree(self.config.tree_depth)
        empty_root = self.tree.root()
        self._state = PoolState(
            current_root=empty_root,
            root_history=deque([empty_root], maxlen=self.config.root_history_size),
        )
        self._remotes: Dict[int, str] = {}
        self._event_stack: List[List[Event]] = []
        self.events = EventLog()

        if mailbox is not None:
            mailbox.register(self.address, self.handle)

        logger.info(
            "Pool %s deployed on domain %d (depth %d, root %s)",
            self.address, domain, self.config.tree_depth, to_hex(empty_root),
        )

    @classmethod
    def deploy(
        cls,
        verifiers: VerifierSet,
        token: TokenLedger,
        factory: str,
        salt: bytes = ZERO_SALT,
        **kwargs,
    ) -> "Pool":
        """Deploy at the CREATE2 address determined by factory, salt and constructor arguments."""
        mailbox = kwargs.get("mailbox")
        init_code = pool_init_code(
            token.address,
            verifiers.addresses(),
            kwargs.get("domain", 1),
            mailbox.address if mailbox is not None else ZERO_ADDRESS,
        )
        return cls(verifiers, token, predict_pool_address(factory, init_code, salt), **kwargs)

    # --- Read Accessors ---

    @property
    def current_root(self) -> int:
        return self._state.current_root

    @property
    def version(self) -> int:
        """Number of committed state transitions."""
        return self._state.version

    @property
    def split_join_verifier(self) -> Verifier:
        return self.verifiers.split_join

    @property
    def hash2_verifier(self) -> Verifier:
        return self.verifiers.hash2

    @property
    def note_verifier(self) -> Verifier:
        return self.verifiers.note

    @property
    def input_verifier(self) -> Verifier:
        return self.verifiers.input

    @property
    def init_code_hash(self) -> bytes:
        """Init-code hash stealth addresses are derived under."""
        return STEALTH_WALLET_INIT_CODE_HASH

    @property
    def leaf_count(self) -> int:
        return len(self.tree)

    def is_spent(self, nullifier: int) -> bool:
        return nullifier in self._state.spent_nullifiers

    def is_collected(self, commitment: int) -> bool:
        return commitment in self._state.collected

    def known_root(self, root: int) -> bool:
        """True for the current root and the recent roots kept in history."""
        return root in self._state.root_history

    def custody(self) -> int:
        return self.token.balance_of(self.address)

    def withdrawal(self, key: bytes) -> WithdrawalRequest:
        request = self._state.withdrawals.get(key)
        if request is None:
            raise WithdrawalNotFound(f"no trustless withdrawal with key {key.hex()}")
        return replace(request)

    def remote(self, domain: int) -> Optional[str]:
        return self._remotes.get(domain)

    # --- Administration ---

    def enroll_remote(self, domain: int, pool_address: str, *, sender: str) -> None:
        """Trust messages from pool_address on domain (owner only)."""
        if sender.lower() != self.owner:
            raise Unauthorized(f"{sender} is not the pool owner")
        if domain == self.domain:
            raise ValueError(f"cannot enroll the pool's own domain {domain}")
        self._remotes[domain] = pool_address.lower()
        logger.info("Enrolled remote pool %s on domain %d", pool_address, domain)

    # --- Entry Points ---

    def transact(
        self,
        proof: bytes,
        public_inputs: Sequence[FieldLike],
        new_root: FieldLike,
        *,
        sender: str,
    ) -> List[int]:
        """Spend nullifiers, append output commitments and settle the external amount.

        Positive external amounts are pulled from ``sender`` (which must have
        approved the pool); negative ones are paid to the withdraw address.

        Returns:
            Leaf indices of the appended commitments

        Raises:
            InvalidPublicInputs, RootMismatch, NullifierAlreadySpent,
            InvalidProof, CapacityExceeded, TokenTransferFailed
        """
        cfg = self.config
        with self._atomic("transact"):
            values = normalize(public_inputs, cfg.split_join_inputs, "split_join")
            inputs = TransactInputs.decode(values, cfg.max_inputs, cfg.max_outputs)
            asserted_root = self._field_arg(new_root, "new_root")

            if inputs.old_root != self._state.current_root:
                raise RootMismatch(
                    f"proof is against root {to_hex(inputs.old_root)}, "
                    f"current root is {to_hex(self._state.current_root)}"
                )
            if inputs.new_root != asserted_root:
                raise RootMismatch(
                    f"asserted new root {to_hex(asserted_root)} differs from the "
                    f"proven new root {to_hex(inputs.new_root)}"
                )

            nullifiers = inputs.spent_nullifiers
            self._require_unspent(nullifiers)

            commitments = inputs.new_commitments
            appended_root = self.tree.root_after(commitments)
            if appended_root != asserted_root:
                raise RootMismatch(
                    f"appending {len(commitments)} commitments yields {to_hex(appended_root)}, "
                    f"not {to_hex(asserted_root)}"
                )

            external = inputs.external_amount
            recipient = inputs.recipient if external < 0 else None
            if external < 0 and recipient is None:
                raise InvalidPublicInputs("withdrawal without a recipient")

            self._verify(self.verifiers.split_join, proof, values, "split_join")

            old_root = self._state.current_root
            self._state.spent_nullifiers.update(nullifiers)
            indices = self.tree.insert_many(commitments)
            self._adopt_root(self.tree.root())
            self._emit(Transact(
                old_root=old_root,
                new_root=self._state.current_root,
                nullifiers=tuple(nullifiers),
                commitments=tuple(commitments),
                leaf_indices=tuple(indices),
                external_amount=external,
                recipient=recipient,
            ))

            if external > 0:
                self._pull(sender, external)
            elif external < 0:
                self._push(recipient, -external)

        logger.info(
            "transact: %d spent, %d created, external %+d, root %s",
            len(nullifiers), len(commitments), external, to_hex(self._state.current_root),
        )
        return indices

    def collect(
        self,
        token: Union[str, TokenLedger],
        amount: int,
        stealth_salt: FieldLike,
        stealth_proof: bytes,
        note_commitment: FieldLike,
        note_proof: bytes,
        root: Optional[FieldLike] = None,
    ) -> int:
        """Sweep a stealth address into custody and mint the matching note.

        The stealth proof shows ownership of the salt; the note proof shows the
        note encodes ``amount`` for the same owner. In included mode the note
        proof is also bound to ``root``, which must be the root after the
        append. Each note commitment can be collected once.

        Returns:
            Leaf index of the collected note

        Raises:
            UnsupportedToken, InvalidPublicInputs, NoteAlreadyCollected,
            InvalidProof, RootMismatch, CapacityExceeded, TokenTransferFailed
        """
        with self._atomic("collect"):
            token_address = token if isinstance(token, str) else token.address
            if token_address.lower() != self.token.address.lower():
                raise UnsupportedToken(f"pool holds {self.token.address}, not {token_address}")
            if amount <= 0:
                raise InvalidPublicInputs(f"collect amount must be positive, got {amount}")

            salt = self._field_arg(stealth_salt, "stealth_salt")
            commitment = self._field_arg(note_commitment, "note_commitment")
            if commitment == 0:
                raise InvalidPublicInputs("note commitment must be non-zero")
            if commitment in self._state.collected or self.tree.index_of(commitment) is not None:
                raise NoteAlreadyCollected(f"note {to_hex(commitment)} is already in the pool")

            self._verify(self.verifiers.hash2, stealth_proof, StealthInputs(salt).encode(), "hash2")

            appended_root = self.tree.root_after([commitment])
            bound_root = None
            if root is not None:
                claimed = self._field_arg(root, "root")
                if claimed != appended_root:
                    raise RootMismatch(
                        f"root {to_hex(claimed)} is not the root after appending the note "
                        f"({to_hex(appended_root)})"
                    )
                bound_root = claimed
            if self.config.collect_mode is CollectMode.INCLUDED:
                if bound_root is None:
                    raise RootMismatch("included collect mode requires the root containing the note")
                note_inputs = NoteInputs(commitment, amount, salt, bound_root)
            else:
                note_inputs = NoteInputs(commitment, amount, salt)
            self._verify(self.verifiers.note, note_proof, note_inputs.encode(), "note")

            wallet = stealth_address(self.address, salt, self.init_code_hash)
            self._state.collected.add(commitment)
            leaf_index = self.tree.insert(commitment)
            self._adopt_root(self.tree.root())
            self._emit(Collect(
                token=self.token.address,
                amount=amount,
                stealth_address=wallet,
                commitment=commitment,
                leaf_index=leaf_index,
                new_root=self._state.current_root,
            ))

            self._sweep(wallet, amount)

        logger.info("collect: %d from %s into leaf %d", amount, wallet, leaf_index)
        return leaf_index

    def trustless_withdraw_init(
        self,
        proof: bytes,
        public_inputs: Sequence[FieldLike],
        destination: Optional[int] = None,
    ) -> bytes:
        """Lock a note for withdrawal on another domain without a relayer-submitted transact.

        The nullifier is marked spent immediately. The request is relayed to
        ``destination`` (default: the single enrolled remote) and can be
        refunded here once the window and relay grace have elapsed.

        Returns:
            The withdrawal key
        """
        with self._atomic("trustless_withdraw_init"):
            values = normalize(public_inputs, 4, "input")
            inputs = WithdrawInputs.decode(values)

            if not self.known_root(inputs.root):
                raise RootMismatch(f"root {to_hex(inputs.root)} is not a known pool root")
            if inputs.amount <= 0:
                raise InvalidPublicInputs(f"withdrawal amount must be positive, got {inputs.amount}")
            recipient = inputs.recipient
            if recipient is None:
                raise InvalidPublicInputs("withdrawal without a recipient")
            self._require_unspent([inputs.nullifier])

            self._verify(self.verifiers.input, proof, values, "input")

            if destination is None and len(self._remotes) == 1:
                destination = next(iter(self._remotes))
            if destination is not None and destination not in self._remotes:
                raise UnauthorizedMessage(f"no remote pool enrolled for domain {destination}")

            key = withdrawal_key(values)
            now = int(self.clock())
            request = WithdrawalRequest(
                key=key,
                nullifier=inputs.nullifier,
                amount=inputs.amount,
                recipient=recipient,
                destination=destination,
                initiated_at=now,
                deadline=now + self.config.withdrawal_window,
                proof=bytes(proof),
                public_inputs=tuple(values),
            )
            self._state.spent_nullifiers.add(inputs.nullifier)
            self._state.withdrawals[key] = request
            self._emit(TrustlessWithdrawInit(
                key=key,
                nullifier=inputs.nullifier,
                amount=inputs.amount,
                recipient=recipient,
                destination=destination,
                deadline=request.deadline,
            ))

            if destination is not None and self.mailbox is not None:
                message = WithdrawalMessage(
                    key=key,
                    nullifier=inputs.nullifier,
                    amount=inputs.amount,
                    recipient_field=inputs.recipient_field,
                    deadline=request.deadline,
                )
                self.mailbox.dispatch(destination, self._remotes[destination], message.encode(), sender=self.address)

        logger.info("trustless withdrawal %s initiated, deadline %d", key.hex()[:16], request.deadline)
        return key

    def handle(self, origin: int, sender: str, body: bytes, *, caller: str) -> None:
        """Mailbox entry point for withdrawals, cancellations and their acknowledgements."""
        with self._atomic("handle"):
            if self.mailbox is None or caller.lower() != self.mailbox.address:
                raise UnauthorizedMessage(f"{caller} is not this pool's mailbox")
            if self._remotes.get(origin) != sender.lower():
                raise UnauthorizedMessage(f"{sender} is not the enrolled pool of domain {origin}")

            message = decode_message(body)
            if isinstance(message, WithdrawalMessage):
                self._finalize_remote(origin, message)
            elif isinstance(message, WithdrawalAck):
                self._acknowledge(message.key)
            elif isinstance(message, WithdrawalCancel):
                self._cancel_remote(origin, message.key)
            else:
                self._cancel_acknowledged(message.key)

    def refund_trustless_withdraw(self, key: bytes) -> None:
        """Start refunding an unacknowledged withdrawal on the origin domain.

        Allowed once ``deadline + relay_grace`` has passed. A withdrawal that
        was relayed is not paid here directly: a ``WithdrawalCancel`` goes to
        the destination, and the refund is paid when its ``WithdrawalCancelAck``
        comes back. If the destination already paid, it answers with a
        ``WithdrawalAck`` instead and the withdrawal ends finalized. A
        withdrawal that was never relayed is refunded immediately. The
        nullifier stays spent either way.

        Raises:
            WithdrawalNotFound, WithdrawalClosed, WithdrawalPending,
            TokenTransferFailed
        """
        with self._atomic("refund_trustless_withdraw"):
            request = self._state.withdrawals.get(key)
            if request is None:
                raise WithdrawalNotFound(f"no trustless withdrawal with key {key.hex()}")
            if request.status is WithdrawalStatus.CANCELLING:
                raise WithdrawalPending(f"withdrawal {key.hex()[:16]} is waiting for the destination to cancel")
            if request.status is not WithdrawalStatus.INITIATED:
                raise WithdrawalClosed(f"withdrawal {key.hex()[:16]} is {request.status.value}")
            refundable_at = request.deadline + self.config.relay_grace
            if int(self.clock()) <= refundable_at:
                raise WithdrawalPending(f"withdrawal {key.hex()[:16]} is refundable after {refundable_at}")

            if request.destination is None or self.mailbox is None:
                self._refund(request)
            else:
                request.status = WithdrawalStatus.CANCELLING
                self._emit(TrustlessWithdrawCancelRequested(key=key, destination=request.destination))
                self.mailbox.dispatch(
                    request.destination,
                    self._remotes[request.destination],
                    WithdrawalCancel(key).encode(),
                    sender=self.address,
                )
                logger.info("trustless withdrawal %s: cancel sent to domain %d", key.hex()[:16], request.destination)

    # --- Cross-Domain Helpers ---

    def _finalize_remote(self, origin: int, message: WithdrawalMessage) -> None:
        if message.key in self._state.finalized_remote:
            logger.info("Ignoring replayed withdrawal %s", message.key.hex()[:16])
            return
        if message.key in self._state.cancelled_remote:
            raise WithdrawalClosed(f"withdrawal {message.key.hex()[:16]} was cancelled by its origin")
        if int(self.clock()) > message.deadline:
            raise WithdrawalExpired(
                f"withdrawal {message.key.hex()[:16]} expired at {message.deadline}"
            )
        try:
            recipient = field_to_address(message.recipient_field)
        except ValueError as e:
            raise InvalidMessage(str(e)) from e

        self._state.finalized_remote.add(message.key)
        self._emit(TrustlessWithdrawFinalized(
            key=message.key, origin=origin, recipient=recipient, amount=message.amount,
        ))
        self._push(recipient, message.amount)
        self.mailbox.dispatch(origin, self._remotes[origin], WithdrawalAck(message.key).encode(), sender=self.address)
        logger.info("Finalized withdrawal %s from domain %d", message.key.hex()[:16], origin)

    def _acknowledge(self, key: bytes) -> None:
        request = self._state.withdrawals.get(key)
        if request is None:
            raise WithdrawalNotFound(f"acknowledgement for unknown withdrawal {key.hex()}")
        if request.status is WithdrawalStatus.FINALIZED:
            return
        if request.status is WithdrawalStatus.EXPIRED:
            logger.error("Withdrawal %s acknowledged after it was refunded", key.hex()[:16])
            return
        request.status = WithdrawalStatus.FINALIZED
        self._emit(TrustlessWithdrawAcknowledged(key=key))

    def _cancel_remote(self, origin: int, key: bytes) -> None:
        if key in self._state.finalized_remote:
            # Already paid here; the origin learns it from a fresh ack.
            self.mailbox.dispatch(origin, self._remotes[origin], WithdrawalAck(key).encode(), sender=self.address)
            logger.info("Cancel for paid withdrawal %s answered with an ack", key.hex()[:16])
            return
        self._state.cancelled_remote.add(key)
        self.mailbox.dispatch(origin, self._remotes[origin], WithdrawalCancelAck(key).encode(), sender=self.address)
        logger.info("Cancelled withdrawal %s from domain %d", key.hex()[:16], origin)

    def _cancel_acknowledged(self, key: bytes) -> None:
        request = self._state.withdrawals.get(key)
        if request is None:
            raise WithdrawalNotFound(f"cancel acknowledgement for unknown withdrawal {key.hex()}")
        if request.status is WithdrawalStatus.EXPIRED:
            return
        if request.status is not WithdrawalStatus.CANCELLING:
            logger.error("Unexpected cancel acknowledgement for %s withdrawal %s", request.status.value, key.hex()[:16])
            return
        self._refund(request)

    def _refund(self, request: WithdrawalRequest) -> None:
        request.status = WithdrawalStatus.EXPIRED
        self._emit(TrustlessWithdrawRefunded(key=request.key, recipient=request.recipient, amount=request.amount))
        self._push(request.recipient, request.amount)
        logger.info("trustless withdrawal %s refunded on origin", request.key.hex()[:16])

    # --- Internal Helpers ---

    @contextmanager
    def _atomic(self, operation: str) -> Iterator[None]:
        """Run one entry point all-or-nothing; nested (reentrant) calls nest their own scope."""
        snapshot = self._state.copy()
        tree_size = len(self.tree)
        self._event_stack.append([])
        try:
            yield
        except Exception as e:
            self._state = snapshot
            self.tree.rollback(tree_size)
            self._event_stack.pop()
            logger.warning("%s rejected: %s: %s", operation, type(e).__name__, e)
            raise
        events = self._event_stack.pop()
        self._state.version += 1
        if self._event_stack:
            self._event_stack[-1].extend(events)
        else:
            self.events.publish(events)

    def _emit(self, event: Event) -> None:
        self._event_stack[-1].append(event)

    def _adopt_root(self, root: int) -> None:
        self._state.current_root = root
        self._state.root_history.append(root)

    def _require_unspent(self, nullifiers: Sequence[int]) -> None:
        seen = set()
        for n in nullifiers:
            if n in self._state.spent_nullifiers or n in seen:
                raise NullifierAlreadySpent(f"nullifier {to_hex(n)} is already spent")
            seen.add(n)

    @staticmethod
    def _verify(verifier: Verifier, proof: bytes, public_inputs: List[int], family: str) -> None:
        if not verifier.verify(proof, public_inputs):
            raise InvalidProof(f"{family} verifier rejected the proof")

    @staticmethod
    def _field_arg(value: FieldLike, name: str) -> int:
        if isinstance(value, str):
            try:
                return from_hex(value)
            except ValueError as e:
                raise InvalidPublicInputs(f"{name}: {e}") from e
        if not is_canonical(value):
            raise InvalidPublicInputs(f"{name} is not a canonical field element: {value}")
        return value

    def _pull(self, account: str, amount: int) -> None:
        self._token_call(
            lambda: self.token.transfer_from(account, self.address, amount, sender=self.address),
            f"pull {amount} from {account}",
        )

    def _push(self, recipient: str, amount: int) -> None:
        self._token_call(
            lambda: self.token.transfer(recipient, amount, sender=self.address),
            f"pay {amount} to {recipient}",
        )

    def _sweep(self, wallet: str, amount: int) -> None:
        # Runs as the stealth wallet deployed at `wallet`, whose init code
        # transfers to its deployer.
        self._token_call(
            lambda: self.token.transfer(self.address, amount, sender=wallet),
            f"sweep {amount} from stealth wallet {wallet}",
        )

    @staticmethod
    def _token_call(call: Callable[[], bool], what: str) -> None:
        try:
            ok = call()
        except Exception as e:
            raise TokenTransferFailed(f"{what}: {type(e).__name__}: {e}") from e
        if ok is not True:
            raise TokenTransferFailed(f"{what}: token ledger returned {ok!r}")
