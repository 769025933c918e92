"""Verifier oracle interface and the development proving backend.

The pool never looks inside a proof: it hands ``(proof, public_inputs)`` to the
verifier of the relevant circuit family and acts on the boolean.

``DevProvingSystem`` stands in for the external circuit toolchain. Its prover
checks each family's relation directly on the witness and, only if the
relation holds, issues an HMAC-SHA256 attestation over the family and the
public inputs. Its verifiers recompute the tag. Anyone holding the key can
forge attestations, so it is for tests and local runs only.
"""

import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from primitives.field import FF, encode_signed, from_hex, is_canonical, to_bytes
from primitives.merkle_tree import NoteMerkleTree
from primitives.poseidon2 import hash_1, hash_2

logger = logging.getLogger(__name__)

# Notes carry at most this many bits of value; the range check is what keeps
# field-level conservation from wrapping around the modulus.
AMOUNT_BITS = 128


class CircuitFamily(Enum):
    """Circuit families, one verifier each."""
    SPLIT_JOIN = "split_join"
    HASH2 = "hash2"
    NOTE = "note"
    INPUT = "input"


@runtime_checkable
class Verifier(Protocol):
    """External oracle: pure, deterministic, side-effect free."""
    address: str

    def verify(self, proof: bytes, public_inputs: Sequence[int]) -> bool:
        ...


class Prover(Protocol):
    def prove(self, family: CircuitFamily, public_inputs: Sequence[int], witness: Dict[str, Any]) -> bytes:
        ...


class UnsatisfiedWitness(ValueError):
    """The witness does not satisfy the circuit relation; no proof can be produced."""


@dataclass(frozen=True)
class VerifierSet:
    """One verifier per circuit family, fixed at pool deployment."""
    split_join: Verifier
    hash2: Verifier
    note: Verifier
    input: Verifier

    def for_family(self, family: CircuitFamily) -> Verifier:
        return getattr(self, family.value)

    def addresses(self) -> List[str]:
        return [self.split_join.address, self.hash2.address, self.note.address, self.input.address]


# --- Development Backend ---

def _transcript(family: CircuitFamily, public_inputs: Sequence[int]) -> bytes:
    return family.value.encode() + b"".join(to_bytes(x) for x in public_inputs)


def _canonical_inputs(public_inputs: Sequence[Any]) -> Optional[List[int]]:
    values = []
    for v in public_inputs:
        if isinstance(v, str):
            try:
                v = from_hex(v)
            except ValueError:
                return None
        if not is_canonical(v):
            return None
        values.append(v)
    return values


class DevVerifier:
    """Verifier half of the development backend."""

    def __init__(self, family: CircuitFamily, key: bytes):
        self.family = family
        self._key = key
        digest = hashlib.sha256(b"dev-verifier:" + family.value.encode() + key).digest()
        self.address = "0x" + digest[12:].hex()

    def verify(self, proof: bytes, public_inputs: Sequence[int]) -> bool:
        values = _canonical_inputs(public_inputs)
        if values is None or not isinstance(proof, (bytes, bytearray)):
            return False
        expected = hmac.new(self._key, _transcript(self.family, values), hashlib.sha256).digest()
        return hmac.compare_digest(expected, bytes(proof))

    def __repr__(self) -> str:
        return f"DevVerifier({self.family.value}, {self.address})"


class DevProvingSystem:
    """Prover plus matching verifiers sharing one attestation key.

    Args:
        max_inputs: Input slots of the SPLIT_JOIN circuit
        max_outputs: Output slots of the SPLIT_JOIN circuit
        key: Attestation key (random when omitted)
    """

    def __init__(self, max_inputs: int = 16, max_outputs: int = 2, key: Optional[bytes] = None):
        self.max_inputs = max_inputs
        self.max_outputs = max_outputs
        self._key = key if key is not None else secrets.token_bytes(32)
        self._relations = {
            CircuitFamily.SPLIT_JOIN: self._check_split_join,
            CircuitFamily.HASH2: self._check_hash2,
            CircuitFamily.NOTE: self._check_note,
            CircuitFamily.INPUT: self._check_input,
        }

    @classmethod
    def for_config(cls, config, key: Optional[bytes] = None) -> "DevProvingSystem":
        return cls(config.max_inputs, config.max_outputs, key)

    def verifier(self, family: CircuitFamily) -> DevVerifier:
        return DevVerifier(family, self._key)

    def verifier_set(self) -> VerifierSet:
        return VerifierSet(
            split_join=self.verifier(CircuitFamily.SPLIT_JOIN),
            hash2=self.verifier(CircuitFamily.HASH2),
            note=self.verifier(CircuitFamily.NOTE),
            input=self.verifier(CircuitFamily.INPUT),
        )

    def prove(self, family: CircuitFamily, public_inputs: Sequence[int], witness: Dict[str, Any]) -> bytes:
        """Check the family relation on the witness and attest to the public inputs."""
        values = _canonical_inputs(public_inputs)
        if values is None:
            raise UnsatisfiedWitness(f"{family.value}: public inputs are not canonical field elements")
        self._relations[family](values, witness)
        logger.debug("Issued %s attestation over %d public inputs", family.value, len(values))
        return hmac.new(self._key, _transcript(family, values), hashlib.sha256).digest()

    # --- Relations ---

    @staticmethod
    def _require(condition: bool, message: str) -> None:
        if not condition:
            raise UnsatisfiedWitness(message)

    @staticmethod
    def _check_amount(amount: int, what: str) -> None:
        DevProvingSystem._require(
            0 <= amount < (1 << AMOUNT_BITS), f"{what} amount {amount} outside [0, 2^{AMOUNT_BITS})"
        )

    def _check_split_join(self, values: List[int], witness: Dict[str, Any]) -> None:
        n_in, n_out = self.max_inputs, self.max_outputs
        self._require(len(values) == 4 + n_in + n_out, f"split_join: expected {4 + n_in + n_out} public inputs")

        old_root, _new_root, external, withdraw_address = values[:4]
        nullifier_slots = values[4:4 + n_in]
        commitment_slots = values[4 + n_in:]

        sk = witness["spending_key"]
        inputs = witness.get("inputs", [])
        outputs = witness.get("outputs", [])
        self._require(len(inputs) <= n_in and len(outputs) <= n_out, "split_join: too many notes")

        owner = hash_1(sk)
        for i, (note, leaf_index, path) in enumerate(inputs):
            self._check_amount(note.amount, f"input {i}")
            self._require(note.owner == owner, f"split_join: input {i} is not owned by the spending key")
            self._require(
                NoteMerkleTree.verify_path(old_root, note.commitment, leaf_index, path),
                f"split_join: input {i} is not included under the old root",
            )
            self._require(
                nullifier_slots[i] == hash_2(note.commitment, sk),
                f"split_join: nullifier {i} does not match its note",
            )
        self._require(all(n == 0 for n in nullifier_slots[len(inputs):]), "split_join: non-zero padding nullifier")

        for j, note in enumerate(outputs):
            self._check_amount(note.amount, f"output {j}")
            self._require(commitment_slots[j] == note.commitment, f"split_join: commitment {j} does not match its note")
        self._require(all(c == 0 for c in commitment_slots[len(outputs):]), "split_join: non-zero padding commitment")

        total_in = FF(0)
        for note, _, _ in inputs:
            total_in += FF(note.amount)
        total_out = FF(0)
        for note in outputs:
            total_out += FF(note.amount)
        self._require(total_in + FF(external) == total_out, "split_join: value is not conserved")

        if external > (FF.order - 1) // 2:
            self._require(withdraw_address != 0, "split_join: withdrawal without a recipient")

    def _check_hash2(self, values: List[int], witness: Dict[str, Any]) -> None:
        self._require(len(values) == 1, "hash2: expected 1 public input")
        a, b = witness["preimage"]
        self._require(hash_2(a, b) == values[0], "hash2: preimage does not hash to the public output")

    def _check_note(self, values: List[int], witness: Dict[str, Any]) -> None:
        self._require(len(values) in (3, 4), "note: expected 3 or 4 public inputs")
        commitment, amount, salt = values[:3]
        note = witness["note"]
        sk = witness["spending_key"]

        self._check_amount(note.amount, "note")
        self._require(note.commitment == commitment, "note: commitment does not match the note")
        self._require(encode_signed(note.amount) == amount, "note: amount does not match the note")
        self._require(note.owner == hash_1(sk), "note: note is not owned by the spending key")
        self._require(hash_2(sk, witness["index"]) == salt, "note: salt does not belong to the note owner")
        if len(values) == 4:
            self._require(
                NoteMerkleTree.verify_path(values[3], commitment, witness["leaf_index"], witness["path"]),
                "note: note is not included under the root",
            )

    def _check_input(self, values: List[int], witness: Dict[str, Any]) -> None:
        self._require(len(values) == 4, "input: expected 4 public inputs")
        root, nullifier, amount, _recipient = values
        note = witness["note"]
        sk = witness["spending_key"]

        self._check_amount(note.amount, "input")
        self._require(note.owner == hash_1(sk), "input: note is not owned by the spending key")
        self._require(
            NoteMerkleTree.verify_path(root, note.commitment, witness["leaf_index"], witness["path"]),
            "input: note is not included under the root",
        )
        self._require(nullifier == hash_2(note.commitment, sk), "input: nullifier does not match the note")
        self._require(encode_signed(note.amount) == amount, "input: amount does not match the note")
