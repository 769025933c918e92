"""Keypairs and stealth addresses.

A keypair owns notes (through its public key) and derives stealth addresses:
counterfactual stealth-wallet addresses under the pool, each behind a salt
H2(spending_key, index). Salts of different indices look unrelated to anyone
without the spending key, and ownership of a salt is shown with a HASH2-family
proof whose only public input is the salt.
"""

from dataclasses import dataclass, field

from primitives.field import is_canonical, random_field, to_hex
from primitives.poseidon2 import hash_1, hash_2, hash_3
from protocol.deployment import STEALTH_WALLET_INIT_CODE_HASH, stealth_address
from protocol.verifier import CircuitFamily, Prover

# Stealth salts are two-input hashes; the viewing key is a three-input hash so
# no stealth index can reproduce it.
VIEWING_KEY_DOMAIN = 1


@dataclass(frozen=True)
class StealthAddress:
    """Result of a stealth derivation: the address and the salt it is deployed under."""
    address: str
    salt: int
    index: int

    def salt_hex(self) -> str:
        return to_hex(self.salt)


@dataclass(frozen=True)
class StealthOwnershipProof:
    proof: bytes
    public_inputs: list


@dataclass(frozen=True)
class KeyPair:
    """Spending key plus the keys derived from it."""
    spending_key: int = field(default_factory=random_field, repr=False)

    def __post_init__(self) -> None:
        if not is_canonical(self.spending_key) or self.spending_key == 0:
            raise ValueError("spending key must be a non-zero canonical field element")

    @classmethod
    def random(cls) -> "KeyPair":
        return cls(random_field())

    @property
    def public_key(self) -> int:
        """Owner value stamped into notes."""
        return hash_1(self.spending_key)

    @property
    def viewing_key(self) -> int:
        return hash_3(self.spending_key, VIEWING_KEY_DOMAIN, 0)

    # --- Stealth Addresses ---

    def stealth_salt(self, index: int) -> int:
        if index < 0:
            raise ValueError(f"stealth index must be non-negative, got {index}")
        return hash_2(self.spending_key, index)

    def derive_stealth_address(
        self,
        index: int,
        pool_address: str,
        init_code_hash: bytes = STEALTH_WALLET_INIT_CODE_HASH,
    ) -> StealthAddress:
        """Counterfactual address under pool_address; pure in (keypair, index, pool, init code)."""
        salt = self.stealth_salt(index)
        return StealthAddress(
            address=stealth_address(pool_address, salt, init_code_hash),
            salt=salt,
            index=index,
        )

    def prove_stealth_address_ownership(self, index: int, prover: Prover) -> StealthOwnershipProof:
        """HASH2-family proof that the holder knows the preimage of the salt for index."""
        public_inputs = [self.stealth_salt(index)]
        proof = prover.prove(
            CircuitFamily.HASH2,
            public_inputs,
            {"preimage": (self.spending_key, index)},
        )
        return StealthOwnershipProof(proof=proof, public_inputs=public_inputs)
