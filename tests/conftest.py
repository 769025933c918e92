"""Shared fixtures: a pool on a dev proving backend with an in-memory token and mailbox."""

import pytest

from primitives.merkle_tree import NoteMerkleTree
from protocol.config import PoolConfig
from protocol.keypair import KeyPair
from protocol.note import Note
from protocol.pool import Pool
from protocol.token import InMemoryToken
from protocol.transaction import ProvedTransaction, create_transaction
from protocol.verifier import DevProvingSystem
from protocol.withdrawal import MailboxHub

POOL_ADDRESS = "0x" + "50" * 20
REMOTE_POOL_ADDRESS = "0x" + "51" * 20
TOKEN_ADDRESS = "0x" + "70" * 20
OWNER = "0x" + "0e" * 20
USER = "0x" + "aa" * 20
RECIPIENT = "0x" + "bb" * 20

ORIGIN_DOMAIN = 1
REMOTE_DOMAIN = 2

DEV_KEY = bytes(range(32))


class FakeClock:
    """Settable platform clock, in seconds."""

    def __init__(self, now: int = 1_700_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture
def config() -> PoolConfig:
    return PoolConfig(tree_depth=8, max_inputs=4, max_outputs=2)


@pytest.fixture
def prover(config) -> DevProvingSystem:
    return DevProvingSystem.for_config(config, key=DEV_KEY)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def token() -> InMemoryToken:
    t = InMemoryToken(TOKEN_ADDRESS)
    t.mint(USER, t.units(1000))
    return t


@pytest.fixture
def hub() -> MailboxHub:
    return MailboxHub()


@pytest.fixture
def pool(config, prover, token, hub, clock) -> Pool:
    p = Pool(
        prover.verifier_set(),
        token,
        address=POOL_ADDRESS,
        owner=OWNER,
        config=config,
        domain=ORIGIN_DOMAIN,
        mailbox=hub.mailbox(ORIGIN_DOMAIN),
        clock=clock,
    )
    token.approve(POOL_ADDRESS, token.units(1000), sender=USER)
    return p


@pytest.fixture
def tree(config) -> NoteMerkleTree:
    """Client-side mirror of the pool accumulator."""
    return NoteMerkleTree(config.tree_depth)


@pytest.fixture
def alice() -> KeyPair:
    return KeyPair(12345)


@pytest.fixture
def bob() -> KeyPair:
    return KeyPair(67890)


@pytest.fixture
def deposit(pool, tree, prover, config):
    """Deposit ``amount`` from USER into a fresh note owned by ``keypair``; returns the note."""

    def _deposit(keypair: KeyPair, amount: int) -> Note:
        tx = create_transaction(
            tree, keypair, deposit_amount=amount,
            max_inputs=config.max_inputs, max_outputs=config.max_outputs,
        )
        proved: ProvedTransaction = tx.prove(prover)
        pool.transact(proved.proof, proved.public_inputs, proved.new_root, sender=USER)
        return tx.output_notes[0]

    return _deposit
