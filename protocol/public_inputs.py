"""Public-input layouts shared with the circuits.

Every circuit family sees an ordered list of canonical field elements. These
classes give the positions names; ``encode`` produces the list handed to the
prover and the verifier, ``decode`` parses what a caller submitted.

SPLIT_JOIN: [old_root, new_root, external_amount, withdraw_address,
             nullifier_0 .. nullifier_{I-1}, commitment_0 .. commitment_{O-1}]
HASH2:      [salt]
NOTE:       [commitment, amount, salt] (+ [root] in included collect mode)
INPUT:      [root, nullifier, amount, recipient]

Zero nullifier / commitment slots are padding.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

from primitives.field import (
    decode_signed,
    encode_signed,
    field_to_address,
    from_hex,
    is_canonical,
)
from protocol.errors import InvalidPublicInputs

FieldLike = Union[int, str]


def normalize(values: Sequence[FieldLike], expected: int, family: str) -> List[int]:
    """Convert ints / hex strings to canonical ints, checking the length."""
    if len(values) != expected:
        raise InvalidPublicInputs(f"{family}: expected {expected} public inputs, got {len(values)}")
    out = []
    for i, v in enumerate(values):
        if isinstance(v, str):
            try:
                v = from_hex(v)
            except ValueError as e:
                raise InvalidPublicInputs(f"{family}: public input {i}: {e}") from e
        if not is_canonical(v):
            raise InvalidPublicInputs(f"{family}: public input {i} is not a canonical field element: {v}")
        out.append(v)
    return out


def _address_or_none(value: int, family: str) -> Optional[str]:
    if value == 0:
        return None
    try:
        return field_to_address(value)
    except ValueError as e:
        raise InvalidPublicInputs(f"{family}: {e}") from e


# --- SPLIT_JOIN (transact) ---

@dataclass(frozen=True)
class TransactInputs:
    """Named view of the SPLIT_JOIN public inputs.

    Attributes:
        old_root: Root the proof was generated against
        new_root: Root after appending the output commitments
        external_amount: Signed; positive deposits, negative withdraws
        withdraw_address: Recipient as a field element (ignored unless withdrawing)
        nullifiers: Input-slot nullifiers, zero-padded
        commitments: Output-slot commitments, zero-padded
    """
    old_root: int
    new_root: int
    external_amount: int
    withdraw_address: int
    nullifiers: Tuple[int, ...]
    commitments: Tuple[int, ...]

    @property
    def spent_nullifiers(self) -> List[int]:
        return [n for n in self.nullifiers if n != 0]

    @property
    def new_commitments(self) -> List[int]:
        return [c for c in self.commitments if c != 0]

    @property
    def recipient(self) -> Optional[str]:
        return _address_or_none(self.withdraw_address, "split_join")

    def encode(self, max_inputs: int, max_outputs: int) -> List[int]:
        if len(self.nullifiers) > max_inputs or len(self.commitments) > max_outputs:
            raise InvalidPublicInputs(
                f"split_join: {len(self.nullifiers)} inputs / {len(self.commitments)} outputs "
                f"exceed {max_inputs} / {max_outputs}"
            )
        nullifiers = list(self.nullifiers) + [0] * (max_inputs - len(self.nullifiers))
        commitments = list(self.commitments) + [0] * (max_outputs - len(self.commitments))
        return [
            self.old_root,
            self.new_root,
            encode_signed(self.external_amount),
            self.withdraw_address,
            *nullifiers,
            *commitments,
        ]

    @classmethod
    def decode(cls, values: Sequence[FieldLike], max_inputs: int, max_outputs: int) -> "TransactInputs":
        v = normalize(values, 4 + max_inputs + max_outputs, "split_join")
        return cls(
            old_root=v[0],
            new_root=v[1],
            external_amount=decode_signed(v[2]),
            withdraw_address=v[3],
            nullifiers=tuple(v[4:4 + max_inputs]),
            commitments=tuple(v[4 + max_inputs:]),
        )


# --- HASH2 (stealth ownership) ---

@dataclass(frozen=True)
class StealthInputs:
    salt: int

    def encode(self) -> List[int]:
        return [self.salt]


# --- NOTE (collect) ---

@dataclass(frozen=True)
class NoteInputs:
    commitment: int
    amount: int
    salt: int
    root: Optional[int] = None

    def encode(self) -> List[int]:
        values = [self.commitment, encode_signed(self.amount), self.salt]
        if self.root is not None:
            values.append(self.root)
        return values


# --- INPUT (trustless withdrawal) ---

@dataclass(frozen=True)
class WithdrawInputs:
    root: int
    nullifier: int
    amount: int
    recipient_field: int

    @property
    def recipient(self) -> Optional[str]:
        return _address_or_none(self.recipient_field, "input")

    def encode(self) -> List[int]:
        return [self.root, self.nullifier, encode_signed(self.amount), self.recipient_field]

    @classmethod
    def decode(cls, values: Sequence[FieldLike]) -> "WithdrawInputs":
        v = normalize(values, 4, "input")
        return cls(
            root=v[0],
            nullifier=v[1],
            amount=decode_signed(v[2]),
            recipient_field=v[3],
        )
