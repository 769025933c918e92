"""BN254 scalar field GF(p).

Uses galois library for field arithmetic. FF is the field type; stored and
compared values are plain ints reduced into [0, p).

The multiplicative generator is passed explicitly so galois does not have to
factor p - 1 when the field class is built.
"""

import secrets

import galois

# --- Field Construction ---

BN254_PRIME = 21888242871839275222246405745257275088548364400416034343698204186575808495617

FF = galois.GF(BN254_PRIME, primitive_element=5, verify=False)
"""Scalar field of BN254 - the field the circuits and the on-ledger hash work in."""

FIELD_BYTES = 32
HALF_PRIME = (BN254_PRIME - 1) // 2
ADDRESS_BITS = 160


# --- Canonical Values ---

def to_field(value: int) -> int:
    """Reduce an integer into [0, p)."""
    return int(value) % BN254_PRIME


def is_canonical(value: int) -> bool:
    """True if value is already reduced into [0, p)."""
    return isinstance(value, int) and 0 <= value < BN254_PRIME


def random_field() -> int:
    """Uniform random field element (rejection sampled)."""
    while True:
        candidate = int.from_bytes(secrets.token_bytes(FIELD_BYTES), "big") >> 2
        if candidate < BN254_PRIME:
            return candidate


# --- Signed Encoding ---
# Negative integers map to their additive inverse: -x -> p - x.
# Values above (p - 1) / 2 decode back to negatives.


def encode_signed(value: int) -> int:
    """Map a signed integer into the field."""
    if abs(value) > HALF_PRIME:
        raise ValueError(f"signed value out of range: {value}")
    if value >= 0:
        return value
    return int(-FF(-value))


def decode_signed(element: int) -> int:
    """Inverse of encode_signed."""
    if not is_canonical(element):
        raise ValueError(f"not a canonical field element: {element}")
    if element > HALF_PRIME:
        return element - BN254_PRIME
    return element


# --- Byte / Hex Encoding ---

def to_bytes(element: int) -> bytes:
    """32-byte big-endian encoding."""
    if not is_canonical(element):
        raise ValueError(f"not a canonical field element: {element}")
    return element.to_bytes(FIELD_BYTES, "big")


def from_bytes(data: bytes) -> int:
    """Decode a 32-byte big-endian value, rejecting non-canonical input."""
    if len(data) != FIELD_BYTES:
        raise ValueError(f"field element must be {FIELD_BYTES} bytes, got {len(data)}")
    value = int.from_bytes(data, "big")
    if value >= BN254_PRIME:
        raise ValueError(f"value {value:#x} is not below the field modulus")
    return value


def to_hex(element: int) -> str:
    """0x-prefixed, zero-padded 64-digit hex."""
    return "0x" + to_bytes(element).hex()


def from_hex(text: str) -> int:
    """Decode hex (with or without 0x prefix) into a canonical element."""
    body = text[2:] if text.startswith(("0x", "0X")) else text
    if not body or len(body) > 2 * FIELD_BYTES:
        raise ValueError(f"invalid field hex: {text!r}")
    return from_bytes(bytes.fromhex(body.rjust(2 * FIELD_BYTES, "0")))


# --- Addresses ---

def address_to_field(address: str) -> int:
    """Embed a 20-byte hex address into the field."""
    body = address[2:] if address.startswith(("0x", "0X")) else address
    if len(body) != 40:
        raise ValueError(f"address must be 20 bytes, got {address!r}")
    return int(body, 16)


def field_to_address(element: int) -> str:
    """Inverse of address_to_field."""
    if not is_canonical(element) or element >> ADDRESS_BITS:
        raise ValueError(f"field element {element:#x} is not an address")
    return "0x" + element.to_bytes(20, "big").hex()
