"""Deterministic (CREATE2-style) addressing.

Addresses depend only on the deployer, a salt and the init-code hash, never on
an account nonce. The pool address can therefore be known before deployment,
and stealth addresses can be computed before anything is deployed at them.
"""

from typing import Sequence

from Crypto.Hash import keccak

from primitives.field import to_bytes

ZERO_SALT = b"\x00" * 32

# Init code of the stealth wallet the pool deploys at a stealth address on
# collect; the wallet sweeps its token balance to its deployer.
STEALTH_WALLET_INIT_CODE = b"shielded-pool/stealth-wallet/v1"

# Code identity of the pool itself; constructor arguments are appended.
POOL_CODE = b"shielded-pool/pool/v1"


def keccak256(data: bytes) -> bytes:
    """Compute Keccak-256 hash of data"""
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


def address_bytes(address: str) -> bytes:
    body = address[2:] if address.startswith(("0x", "0X")) else address
    raw = bytes.fromhex(body)
    if len(raw) != 20:
        raise ValueError(f"address must be 20 bytes, got {address!r}")
    return raw


def create2_address(deployer: str, salt: bytes, init_code_hash: bytes) -> str:
    """keccak256(0xff ++ deployer ++ salt ++ init_code_hash)[12:]"""
    if len(salt) != 32 or len(init_code_hash) != 32:
        raise ValueError("salt and init_code_hash must be 32 bytes")
    digest = keccak256(b"\xff" + address_bytes(deployer) + salt + init_code_hash)
    return "0x" + digest[12:].hex()


STEALTH_WALLET_INIT_CODE_HASH = keccak256(STEALTH_WALLET_INIT_CODE)


def stealth_address(pool_address: str, salt: int, init_code_hash: bytes = STEALTH_WALLET_INIT_CODE_HASH) -> str:
    """Counterfactual stealth-wallet address for a field-element salt."""
    return create2_address(pool_address, to_bytes(salt), init_code_hash)


def pool_init_code(token: str, verifier_addresses: Sequence[str], domain: int, mailbox: str) -> bytes:
    """Init code of a pool: code identity followed by its constructor arguments."""
    parts = [POOL_CODE, address_bytes(token)]
    parts.extend(address_bytes(v) for v in verifier_addresses)
    parts.append(domain.to_bytes(32, "big"))
    parts.append(address_bytes(mailbox))
    return b"".join(parts)


def predict_pool_address(factory: str, init_code: bytes, salt: bytes = ZERO_SALT) -> str:
    """Address the factory will deploy the pool at, independent of its nonce."""
    return create2_address(factory, salt, keccak256(init_code))
