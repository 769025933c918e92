"""Primitives - field arithmetic, the commitment hash and the note accumulator."""

from primitives.field import (
    BN254_PRIME,
    FF,
    FIELD_BYTES,
    address_to_field,
    decode_signed,
    encode_signed,
    field_to_address,
    from_bytes,
    from_hex,
    is_canonical,
    random_field,
    to_bytes,
    to_field,
    to_hex,
)
from primitives.merkle_tree import (
    ZERO_LEAF,
    CapacityExceeded,
    MerkleRoot,
    NoteMerkleTree,
    SiblingPath,
    zero_hashes,
)
from primitives.poseidon2 import (
    hash_1,
    hash_2,
    hash_3,
    hash_n,
    poseidon2_permutation,
)

__all__ = [
    # Field
    "BN254_PRIME",
    "FF",
    "FIELD_BYTES",
    "to_field",
    "is_canonical",
    "random_field",
    "encode_signed",
    "decode_signed",
    "to_bytes",
    "from_bytes",
    "to_hex",
    "from_hex",
    "address_to_field",
    "field_to_address",
    # Hash
    "poseidon2_permutation",
    "hash_n",
    "hash_1",
    "hash_2",
    "hash_3",
    # Merkle Tree
    "NoteMerkleTree",
    "MerkleRoot",
    "SiblingPath",
    "CapacityExceeded",
    "ZERO_LEAF",
    "zero_hashes",
]
