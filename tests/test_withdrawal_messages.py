"""Tests for cross-domain message encoding and the relay transport."""

import pytest

from primitives.field import BN254_PRIME
from protocol.errors import InvalidMessage, PoolError
from protocol.withdrawal import (
    MailboxHub,
    MessageKind,
    WithdrawalAck,
    WithdrawalCancel,
    WithdrawalCancelAck,
    WithdrawalMessage,
    decode_message,
    withdrawal_key,
)
from protocol.deployment import keccak256


class TestEncoding:
    """Test message bodies."""

    def test_withdraw_layout(self) -> None:
        """Kind byte followed by five 32-byte words."""
        message = WithdrawalMessage(key=b"\x11" * 32, nullifier=5, amount=100, recipient_field=0xBB, deadline=99)
        body = message.encode()
        assert body[0] == MessageKind.WITHDRAW
        assert len(body) == 1 + 5 * 32
        assert decode_message(body) == message

    def test_ack_layout(self) -> None:
        """Kind byte followed by the key."""
        ack = WithdrawalAck(b"\x22" * 32)
        assert ack.encode() == b"\x02" + b"\x22" * 32
        assert decode_message(ack.encode()) == ack

    def test_cancel_layouts(self) -> None:
        """Cancel and its acknowledgement carry only the key, under their own kinds."""
        cancel = WithdrawalCancel(b"\x33" * 32)
        cancel_ack = WithdrawalCancelAck(b"\x33" * 32)
        assert cancel.encode() == b"\x03" + b"\x33" * 32
        assert cancel_ack.encode() == b"\x04" + b"\x33" * 32
        assert decode_message(cancel.encode()) == cancel
        assert decode_message(cancel_ack.encode()) == cancel_ack
        assert decode_message(cancel.encode()) != WithdrawalAck(b"\x33" * 32)

    @pytest.mark.parametrize("body", [
        b"",
        b"\x05" + b"\x00" * 32,
        b"\x02" + b"\x00" * 31,
        b"\x03" + b"\x00" * 33,
        b"\x04",
        b"\x01" + b"\x00" * 32,
    ])
    def test_malformed_rejected(self, body: bytes) -> None:
        """Unknown kinds and wrong lengths are rejected."""
        with pytest.raises(InvalidMessage):
            decode_message(body)

    def test_non_canonical_word_rejected(self) -> None:
        """Field words at or above the modulus are rejected."""
        body = bytearray(WithdrawalMessage(b"\x11" * 32, 5, 1, 0xBB, 9).encode())
        body[33:65] = BN254_PRIME.to_bytes(32, "big")
        with pytest.raises(InvalidMessage):
            decode_message(bytes(body))

    def test_withdrawal_key(self) -> None:
        """The key is keccak256 over the 32-byte public-input words."""
        values = [1, 2, 3, 4]
        assert withdrawal_key(values) == keccak256(b"".join(v.to_bytes(32, "big") for v in values))


class TestRelay:
    """Test the in-memory relay transport."""

    def test_dispatch_and_relay(self) -> None:
        """Handlers receive origin, sender and body with the mailbox as caller."""
        hub = MailboxHub()
        received = []
        target = hub.mailbox(2)
        target.register("0x" + "cc" * 20, lambda *args, **kwargs: received.append((args, kwargs)))

        message_id = hub.mailbox(1).dispatch(2, "0x" + "CC" * 20, b"hello", sender="0x" + "dd" * 20)
        assert hub.relay() == 1
        assert received == [((1, "0x" + "dd" * 20, b"hello"), {"caller": target.address})]
        assert hub.envelope(message_id).delivered

    def test_failed_delivery_stays_pending(self) -> None:
        """A handler raising PoolError leaves the message pending for a later relay."""
        hub = MailboxHub()
        attempts = []

        def handler(origin, sender, body, *, caller):
            attempts.append(body)
            if len(attempts) == 1:
                raise PoolError("not yet")

        hub.mailbox(2).register("0x" + "cc" * 20, handler)
        hub.mailbox(1).dispatch(2, "0x" + "cc" * 20, b"x", sender="0x" + "dd" * 20)
        assert hub.relay() == 0
        assert len(hub.pending) == 1
        assert hub.relay() == 1
        assert hub.pending == []

    def test_deliver_single_message(self) -> None:
        """deliver hands over one message and leaves the others queued."""
        hub = MailboxHub()
        received = []
        hub.mailbox(2).register("0x" + "cc" * 20, lambda origin, sender, body, caller: received.append(body))
        first = hub.mailbox(1).dispatch(2, "0x" + "cc" * 20, b"first", sender="0x" + "dd" * 20)
        hub.mailbox(1).dispatch(2, "0x" + "cc" * 20, b"second", sender="0x" + "dd" * 20)

        assert hub.deliver(first)
        assert received == [b"first"]
        assert [e.body for e in hub.pending] == [b"second"]
        with pytest.raises(ValueError):
            hub.deliver(first)

    def test_unregistered_recipient(self) -> None:
        """Messages to unknown recipients stay pending."""
        hub = MailboxHub()
        hub.mailbox(1).dispatch(2, "0x" + "cc" * 20, b"x", sender="0x" + "dd" * 20)
        assert hub.relay() == 0
        assert hub.pending[0].attempts == 1

    def test_mailboxes_have_distinct_addresses(self) -> None:
        """Each domain's mailbox has its own address."""
        hub = MailboxHub()
        assert hub.mailbox(1).address != hub.mailbox(2).address
        assert hub.mailbox(1) is hub.mailbox(1)
