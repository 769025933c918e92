"""Notes, commitments and nullifiers."""

from dataclasses import dataclass, field
from functools import cached_property
from typing import TYPE_CHECKING

from primitives.field import encode_signed, is_canonical, random_field
from primitives.poseidon2 import hash_2, hash_3

if TYPE_CHECKING:
    from protocol.keypair import KeyPair


def note_commitment(amount: int, owner: int, blinding: int) -> int:
    """commitment = H3(amount, owner, blinding), amount in signed field encoding."""
    return hash_3(encode_signed(amount), owner, blinding)


def nullifier(commitment: int, secret: int) -> int:
    """nullifier = H2(commitment, secret) - binds note identity to spending authority."""
    return hash_2(commitment, secret)


@dataclass(frozen=True)
class Note:
    """Private record of value; public only through its commitment.

    Attributes:
        amount: Token units held by the note
        owner: Public key of the owning keypair (a field element)
        blinding: Random field element hiding the other two fields
    """
    amount: int
    owner: int
    blinding: int = field(default_factory=random_field)

    def __post_init__(self) -> None:
        if not is_canonical(self.owner):
            raise ValueError(f"note owner is not a canonical field element: {self.owner}")
        if not is_canonical(self.blinding):
            raise ValueError(f"note blinding is not a canonical field element: {self.blinding}")
        encode_signed(self.amount)

    @classmethod
    def create(cls, amount: int, keypair: "KeyPair") -> "Note":
        """Fresh note owned by keypair."""
        return cls(amount=amount, owner=keypair.public_key)

    @cached_property
    def commitment(self) -> int:
        return note_commitment(self.amount, self.owner, self.blinding)

    def nullifier(self, keypair: "KeyPair") -> int:
        return nullifier(self.commitment, keypair.spending_key)

    def is_owned_by(self, keypair: "KeyPair") -> bool:
        return self.owner == keypair.public_key
