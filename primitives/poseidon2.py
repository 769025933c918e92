"""
Poseidon2 hash over the BN254 scalar field.

This module implements the Poseidon2 permutation (state width 4) and the
fixed-arity sponge used for note commitments, nullifiers and Merkle nodes.
The same hash is re-derived inside the circuits, so every parameter here is
pinned: width, S-box degree, round counts, matrices and round constants.

Round constants come from the Grain LFSR of the Poseidon reference
parameter generator (prime field, power S-box, n=254, t=4, R_F=8, R_P=56),
drawn the Poseidon2 way: WIDTH values per full round and one per partial round.
"""

from collections import deque
from functools import lru_cache
from typing import Iterator, List, Sequence

from primitives.field import BN254_PRIME

# --- Parameters ---

WIDTH = 4
RATE = 3
ROUNDS_F = 8
ROUNDS_P = 56
SBOX_DEGREE = 5
FIELD_BITS = 254

# Internal matrix is 1 + diag(D) for the BN254 t=4 instance.
POSEIDON2_DIAG = [
    0x10DC6E9C006EA38B04B1E03B4BD9490C0D03F98929CA1D7FB56821FD19D3B6E7,
    0x0C28145B6A44DF3E0149B3D0A30B3BB599DF9756D4DD9B84A86B38CFB45A740B,
    0x00544B8338791518B2C7645A50392798B21F75BB60E3596170067D00141CAC15,
    0x222C01175718386F2E2E82EB122789E352E105A3B8FA852613BC534433EE428B,
]


# --- Round Constants ---

def _grain_bits(field_bits: int, width: int, rounds_f: int, rounds_p: int) -> Iterator[int]:
    """Self-shrinking Grain LFSR bit stream seeded from the instance parameters."""
    seed = (
        format(1, "02b")           # prime field
        + format(0, "04b")         # x^alpha S-box
        + format(field_bits, "012b")
        + format(width, "012b")
        + format(rounds_f, "010b")
        + format(rounds_p, "010b")
        + "1" * 30
    )
    register = deque((int(b) for b in seed), maxlen=80)

    def step() -> int:
        bit = register[62] ^ register[51] ^ register[38] ^ register[23] ^ register[13] ^ register[0]
        register.append(bit)
        return bit

    for _ in range(160):
        step()

    while True:
        bit = step()
        while bit == 0:
            step()
            bit = step()
        yield step()


@lru_cache(maxsize=None)
def round_constants() -> List[List[int]]:
    """Per-round constants, one row of WIDTH elements per round.

    The stream holds ROUNDS_F * WIDTH + ROUNDS_P values: a full row for each
    full round and a single value for each partial round, stored as
    ``[c, 0, 0, 0]``.
    """
    bits = _grain_bits(FIELD_BITS, WIDTH, ROUNDS_F, ROUNDS_P)

    def draw() -> int:
        while True:
            value = 0
            for _ in range(FIELD_BITS):
                value = (value << 1) | next(bits)
            if value < BN254_PRIME:
                return value

    half_full_rounds = ROUNDS_F // 2
    rows: List[List[int]] = []
    for _ in range(half_full_rounds):
        rows.append([draw() for _ in range(WIDTH)])
    for _ in range(ROUNDS_P):
        rows.append([draw()] + [0] * (WIDTH - 1))
    for _ in range(half_full_rounds):
        rows.append([draw() for _ in range(WIDTH)])
    return rows


# --- Permutation Layers ---

def _pow5(x: int) -> int:
    x2 = (x * x) % BN254_PRIME
    x4 = (x2 * x2) % BN254_PRIME
    return (x4 * x) % BN254_PRIME


def _matmul_m4(x: List[int]) -> List[int]:
    """
    Apply the 4x4 external matrix [[5,7,1,3],[4,6,1,1],[1,3,5,7],[1,1,4,6]].
    """
    t0 = (x[0] + x[1]) % BN254_PRIME
    t1 = (x[2] + x[3]) % BN254_PRIME
    t2 = (x[1] + x[1] + t1) % BN254_PRIME
    t3 = (x[3] + x[3] + t0) % BN254_PRIME
    t1_2 = (t1 + t1) % BN254_PRIME
    t0_2 = (t0 + t0) % BN254_PRIME
    t4 = (t1_2 + t1_2 + t3) % BN254_PRIME
    t5 = (t0_2 + t0_2 + t2) % BN254_PRIME
    t6 = (t3 + t5) % BN254_PRIME
    t7 = (t2 + t4) % BN254_PRIME

    return [t6, t5, t7, t4]


def _matmul_internal(state: List[int]) -> List[int]:
    total = sum(state) % BN254_PRIME
    return [(state[i] * POSEIDON2_DIAG[i] + total) % BN254_PRIME for i in range(WIDTH)]


def _full_round(state: List[int], constants: List[int]) -> List[int]:
    state = [_pow5((state[i] + constants[i]) % BN254_PRIME) for i in range(WIDTH)]
    return _matmul_m4(state)


def poseidon2_permutation(input_data: Sequence[int]) -> List[int]:
    """
    Compute the full Poseidon2 permutation of a WIDTH-element state.

    Args:
        input_data: WIDTH field elements (as integers)

    Returns:
        WIDTH field elements after the permutation
    """
    if len(input_data) != WIDTH:
        raise ValueError(f"input_data must have {WIDTH} elements, got {len(input_data)}")

    rc = round_constants()
    half_full_rounds = ROUNDS_F // 2

    state = [x % BN254_PRIME for x in input_data]

    # Initial external matrix multiplication
    state = _matmul_m4(state)

    for r in range(half_full_rounds):
        state = _full_round(state, rc[r])

    for r in range(half_full_rounds, half_full_rounds + ROUNDS_P):
        state[0] = _pow5((state[0] + rc[r][0]) % BN254_PRIME)
        state = _matmul_internal(state)

    for r in range(half_full_rounds + ROUNDS_P, ROUNDS_F + ROUNDS_P):
        state = _full_round(state, rc[r])

    return state


# --- Sponge ---

def hash_n(inputs: Sequence[int]) -> int:
    """
    Hash a sequence of field elements.

    Sponge with rate 3 and capacity 1; the capacity lane is seeded with
    len(inputs) << 64 so inputs of different lengths never collide. Up to
    three inputs cost a single permutation.
    """
    values = [int(x) for x in inputs]
    for v in values:
        if not 0 <= v < BN254_PRIME:
            raise ValueError(f"hash input is not a canonical field element: {v}")

    state = [0, 0, 0, len(values) << 64]
    start = 0
    while True:
        chunk = values[start:start + RATE]
        for i, v in enumerate(chunk):
            state[i] = (state[i] + v) % BN254_PRIME
        state = poseidon2_permutation(state)
        start += RATE
        if start >= len(values):
            return state[0]


def hash_1(a: int) -> int:
    return hash_n([a])


def hash_2(a: int, b: int) -> int:
    return hash_n([a, b])


def hash_3(a: int, b: int, c: int) -> int:
    return hash_n([a, b, c])


__all__ = [
    "WIDTH",
    "RATE",
    "round_constants",
    "poseidon2_permutation",
    "hash_n",
    "hash_1",
    "hash_2",
    "hash_3",
]
