"""Cross-domain withdrawal coordination.

A trustless withdrawal starts on the origin domain, travels as a
``WithdrawalMessage`` over an authenticated at-least-once channel, is paid
out on the destination domain, and is acknowledged back with a
``WithdrawalAck``. Pools finalize each key at most once, so redelivery of the
same message is harmless.

An origin that has waited out the deadline does not refund on its own: it
sends a ``WithdrawalCancel``. The destination answers with a
``WithdrawalCancelAck`` only if it never paid (and from then on refuses the
withdrawal), or with a fresh ``WithdrawalAck`` if it already did. Exactly one
side pays.

``MailboxHub`` / ``Mailbox`` are an in-memory stand-in for the relay
transport: ``dispatch`` queues, ``relay`` delivers everything pending,
``deliver`` delivers a single message, ``redeliver`` replays.
"""

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Dict, List, Optional, Sequence, Union

from primitives.field import from_bytes, to_bytes
from protocol.deployment import keccak256
from protocol.errors import InvalidMessage, PoolError

logger = logging.getLogger(__name__)

WORD = 32


class MessageKind(IntEnum):
    WITHDRAW = 1
    ACK = 2
    CANCEL = 3
    CANCEL_ACK = 4


def withdrawal_key(public_inputs: Sequence[int]) -> bytes:
    """Commitment over the INPUT public inputs; identifies a trustless withdrawal."""
    return keccak256(b"".join(to_bytes(x) for x in public_inputs))


@dataclass(frozen=True)
class WithdrawalMessage:
    """Withdrawal intent relayed to the destination domain."""
    key: bytes
    nullifier: int
    amount: int
    recipient_field: int
    deadline: int

    def encode(self) -> bytes:
        return b"".join([
            bytes([MessageKind.WITHDRAW]),
            self.key,
            to_bytes(self.nullifier),
            self.amount.to_bytes(WORD, "big"),
            to_bytes(self.recipient_field),
            self.deadline.to_bytes(WORD, "big"),
        ])


@dataclass(frozen=True)
class WithdrawalAck:
    key: bytes

    def encode(self) -> bytes:
        return bytes([MessageKind.ACK]) + self.key


@dataclass(frozen=True)
class WithdrawalCancel:
    """Origin asks the destination to refuse a withdrawal it has not paid."""
    key: bytes

    def encode(self) -> bytes:
        return bytes([MessageKind.CANCEL]) + self.key


@dataclass(frozen=True)
class WithdrawalCancelAck:
    """Destination confirms it will never pay the withdrawal."""
    key: bytes

    def encode(self) -> bytes:
        return bytes([MessageKind.CANCEL_ACK]) + self.key


Message = Union[WithdrawalMessage, WithdrawalAck, WithdrawalCancel, WithdrawalCancelAck]

_KEY_ONLY = {
    MessageKind.ACK: WithdrawalAck,
    MessageKind.CANCEL: WithdrawalCancel,
    MessageKind.CANCEL_ACK: WithdrawalCancelAck,
}


def decode_message(body: bytes) -> Message:
    """Strictly decode a message body."""
    if not body:
        raise InvalidMessage("empty message body")
    kind = body[0]
    payload = body[1:]
    try:
        if kind == MessageKind.WITHDRAW:
            if len(payload) != 5 * WORD:
                raise InvalidMessage(f"withdraw message must carry {5 * WORD} bytes, got {len(payload)}")
            words = [payload[i:i + WORD] for i in range(0, len(payload), WORD)]
            return WithdrawalMessage(
                key=words[0],
                nullifier=from_bytes(words[1]),
                amount=int.from_bytes(words[2], "big"),
                recipient_field=from_bytes(words[3]),
                deadline=int.from_bytes(words[4], "big"),
            )
        if kind in _KEY_ONLY:
            name = MessageKind(kind).name.lower()
            if len(payload) != WORD:
                raise InvalidMessage(f"{name} message must carry {WORD} bytes, got {len(payload)}")
            return _KEY_ONLY[kind](key=payload)
    except InvalidMessage:
        raise
    except ValueError as e:
        raise InvalidMessage(str(e)) from e
    raise InvalidMessage(f"unknown message kind: {kind}")


# --- Relay Transport ---

Handler = Callable[..., None]


@dataclass
class Envelope:
    message_id: bytes
    origin: int
    sender: str
    destination: int
    recipient: str
    body: bytes
    delivered: bool = False
    attempts: int = 0
    last_error: Optional[str] = None


class Mailbox:
    """Per-domain endpoint of the relay transport."""

    def __init__(self, domain: int, hub: "MailboxHub"):
        self.domain = domain
        self.hub = hub
        self.address = "0x" + keccak256(b"mailbox" + domain.to_bytes(WORD, "big"))[12:].hex()
        self._recipients: Dict[str, Handler] = {}
        self._nonce = 0

    def register(self, address: str, handler: Handler) -> None:
        """Install the handler that receives messages addressed to ``address``."""
        self._recipients[address.lower()] = handler

    def dispatch(self, destination: int, recipient: str, body: bytes, *, sender: str) -> bytes:
        """Queue a message; returns its id."""
        message_id = keccak256(
            self.domain.to_bytes(WORD, "big")
            + self._nonce.to_bytes(WORD, "big")
            + sender.lower().encode()
            + destination.to_bytes(WORD, "big")
            + recipient.lower().encode()
            + body
        )
        self._nonce += 1
        self.hub.enqueue(Envelope(message_id, self.domain, sender.lower(), destination, recipient.lower(), body))
        logger.debug("Dispatched message %s: domain %d -> %d", message_id.hex()[:16], self.domain, destination)
        return message_id

    def deliver(self, envelope: Envelope) -> None:
        handler = self._recipients.get(envelope.recipient)
        if handler is None:
            raise PoolError(f"no recipient registered at {envelope.recipient} on domain {self.domain}")
        handler(envelope.origin, envelope.sender, envelope.body, caller=self.address)


class MailboxHub:
    """Connects the mailboxes of all domains; delivery is at least once."""

    def __init__(self) -> None:
        self._mailboxes: Dict[int, Mailbox] = {}
        self._envelopes: List[Envelope] = []

    def mailbox(self, domain: int) -> Mailbox:
        if domain not in self._mailboxes:
            self._mailboxes[domain] = Mailbox(domain, self)
        return self._mailboxes[domain]

    def enqueue(self, envelope: Envelope) -> None:
        self._envelopes.append(envelope)

    @property
    def pending(self) -> List[Envelope]:
        return [e for e in self._envelopes if not e.delivered]

    def envelope(self, message_id: bytes) -> Envelope:
        for e in self._envelopes:
            if e.message_id == message_id:
                return e
        raise KeyError(message_id.hex())

    def relay(self) -> int:
        """Deliver every pending message, including ones queued while relaying.

        A message whose handler rejects it stays pending. Returns the number
        delivered.
        """
        delivered = 0
        progress = True
        tried = set()
        while progress:
            progress = False
            for envelope in self.pending:
                if envelope.message_id in tried:
                    continue
                tried.add(envelope.message_id)
                progress = True
                if self._attempt(envelope):
                    delivered += 1
        return delivered

    def deliver(self, message_id: bytes) -> bool:
        """Deliver one pending message, leaving the rest queued. Returns True if accepted."""
        envelope = self.envelope(message_id)
        if envelope.delivered:
            raise ValueError(f"message {message_id.hex()[:16]} was already delivered")
        return self._attempt(envelope)

    def redeliver(self, message_id: bytes) -> None:
        """Replay an already delivered message."""
        envelope = self.envelope(message_id)
        self.mailbox(envelope.destination).deliver(envelope)

    def _attempt(self, envelope: Envelope) -> bool:
        envelope.attempts += 1
        try:
            self.mailbox(envelope.destination).deliver(envelope)
        except PoolError as e:
            envelope.last_error = f"{type(e).__name__}: {e}"
            logger.warning("Delivery of %s failed: %s", envelope.message_id.hex()[:16], envelope.last_error)
            return False
        envelope.delivered = True
        return True
