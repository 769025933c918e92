"""Tests for Pool.collect: sweeping stealth addresses into notes."""

from dataclasses import replace

import pytest

from primitives.merkle_tree import NoteMerkleTree
from protocol.config import CollectMode
from protocol.errors import (
    InvalidProof,
    InvalidPublicInputs,
    NoteAlreadyCollected,
    RootMismatch,
    TokenTransferFailed,
    UnsupportedToken,
)
from protocol.events import Collect
from protocol.keypair import KeyPair
from protocol.note import Note
from protocol.pool import Pool
from protocol.public_inputs import NoteInputs
from protocol.token import InMemoryToken
from protocol.transaction import create_transaction
from protocol.verifier import CircuitFamily

from tests.conftest import POOL_ADDRESS, RECIPIENT, USER


def _note_proof(prover, keypair: KeyPair, index: int, note: Note, root=None, tree=None) -> bytes:
    salt = keypair.stealth_salt(index)
    witness = {"note": note, "spending_key": keypair.spending_key, "index": index}
    if root is not None:
        leaf_index = tree.index_of(note.commitment)
        witness.update(leaf_index=leaf_index, path=tree.path_to(leaf_index))
    public_inputs = NoteInputs(note.commitment, note.amount, salt, root).encode()
    return prover.prove(CircuitFamily.NOTE, public_inputs, witness)


@pytest.fixture
def funded_stealth(pool, token, alice):
    """Stealth address 0 of alice holding 50 units."""
    stealth = alice.derive_stealth_address(0, pool.address, pool.init_code_hash)
    token.mint(stealth.address, 50)
    return stealth


class TestCollectMint:
    """Test collect in the default (mint) mode."""

    def test_collect_sweeps_and_mints(self, pool, tree, prover, token, alice, funded_stealth) -> None:
        """Stealth funds move into custody and the note is appended."""
        note = Note.create(50, alice)
        ownership = alice.prove_stealth_address_ownership(0, prover)
        leaf = pool.collect(
            token, 50, funded_stealth.salt, ownership.proof,
            note.commitment, _note_proof(prover, alice, 0, note),
        )

        assert leaf == 0
        assert pool.custody() == 50
        assert token.balance_of(funded_stealth.address) == 0
        tree.insert(note.commitment)
        assert pool.current_root == tree.root()

        (event,) = pool.events.of_type(Collect)
        assert event.stealth_address == funded_stealth.address
        assert event.commitment == note.commitment
        assert event.amount == 50

    def test_collected_note_is_spendable(self, pool, tree, prover, token, alice, funded_stealth, config) -> None:
        """A collected note can be withdrawn through transact."""
        note = Note.create(50, alice)
        ownership = alice.prove_stealth_address_ownership(0, prover)
        pool.collect(token.address, 50, funded_stealth.salt, ownership.proof, note.commitment, _note_proof(prover, alice, 0, note))
        tree.insert(note.commitment)

        proved = create_transaction(
            tree, alice, [note], deposit_amount=-50, withdraw_address=RECIPIENT,
            max_inputs=config.max_inputs, max_outputs=config.max_outputs,
        ).prove(prover)
        pool.transact(proved.proof, proved.public_inputs, proved.new_root, sender=USER)
        assert token.balance_of(RECIPIENT) == 50
        assert pool.custody() == 0

    def test_replayed_collect_rejected(self, pool, prover, token, alice, funded_stealth) -> None:
        """Replaying a collect after the stealth address is refunded does not mint the note again."""
        note = Note.create(50, alice)
        ownership = alice.prove_stealth_address_ownership(0, prover)
        note_proof = _note_proof(prover, alice, 0, note)
        pool.collect(token, 50, funded_stealth.salt, ownership.proof, note.commitment, note_proof)
        assert pool.is_collected(note.commitment)

        token.mint(funded_stealth.address, 50)
        root = pool.current_root
        with pytest.raises(NoteAlreadyCollected):
            pool.collect(token, 50, funded_stealth.salt, ownership.proof, note.commitment, note_proof)
        assert pool.custody() == 50
        assert pool.leaf_count == 1
        assert pool.current_root == root
        assert token.balance_of(funded_stealth.address) == 50

    def test_second_payment_collects_into_fresh_note(self, pool, prover, token, alice, funded_stealth) -> None:
        """Later payments to the same stealth address are collected with a new note."""
        ownership = alice.prove_stealth_address_ownership(0, prover)
        first = Note.create(50, alice)
        pool.collect(token, 50, funded_stealth.salt, ownership.proof, first.commitment, _note_proof(prover, alice, 0, first))

        token.mint(funded_stealth.address, 30)
        second = Note.create(30, alice)
        leaf = pool.collect(
            token, 30, funded_stealth.salt, ownership.proof, second.commitment, _note_proof(prover, alice, 0, second),
        )
        assert leaf == 1
        assert pool.custody() == 80

    def test_commitment_already_in_tree_rejected(self, pool, prover, token, alice, bob, funded_stealth, deposit) -> None:
        """A commitment appended by transact cannot be collected as well."""
        existing = deposit(bob, 20)
        ownership = alice.prove_stealth_address_ownership(0, prover)
        with pytest.raises(NoteAlreadyCollected):
            pool.collect(token, 50, funded_stealth.salt, ownership.proof, existing.commitment, b"")
        assert token.balance_of(funded_stealth.address) == 50

    def test_foreign_stealth_proof_rejected(self, pool, prover, token, alice, bob, funded_stealth) -> None:
        """Someone else's ownership proof does not unlock the salt."""
        note = Note.create(50, bob)
        ownership = bob.prove_stealth_address_ownership(0, prover)
        with pytest.raises(InvalidProof):
            pool.collect(token, 50, funded_stealth.salt, ownership.proof, note.commitment, b"\x00" * 32)
        assert token.balance_of(funded_stealth.address) == 50
        assert pool.leaf_count == 0

    def test_amount_must_match_note(self, pool, prover, token, alice, funded_stealth) -> None:
        """The declared amount is bound by the note proof."""
        note = Note.create(40, alice)
        ownership = alice.prove_stealth_address_ownership(0, prover)
        with pytest.raises(InvalidProof):
            pool.collect(token, 50, funded_stealth.salt, ownership.proof, note.commitment, _note_proof(prover, alice, 0, note))

    def test_unsupported_token(self, pool, prover, alice, funded_stealth) -> None:
        """Only the pool's own token is collected."""
        other = InMemoryToken("0x" + "71" * 20)
        with pytest.raises(UnsupportedToken):
            pool.collect(other, 50, funded_stealth.salt, b"", 1, b"")

    def test_non_positive_amount(self, pool, token, funded_stealth) -> None:
        """Zero amounts are rejected."""
        with pytest.raises(InvalidPublicInputs):
            pool.collect(token, 0, funded_stealth.salt, b"", 1, b"")

    def test_underfunded_stealth_rolls_back(self, pool, prover, token, alice) -> None:
        """If the sweep fails nothing is appended and nothing is published."""
        stealth = alice.derive_stealth_address(1, pool.address)
        token.mint(stealth.address, 10)
        note = Note.create(50, alice)
        ownership = alice.prove_stealth_address_ownership(1, prover)
        root = pool.current_root
        with pytest.raises(TokenTransferFailed):
            pool.collect(token, 50, stealth.salt, ownership.proof, note.commitment, _note_proof(prover, alice, 1, note))
        assert pool.current_root == root
        assert pool.leaf_count == 0
        assert len(pool.events) == 0
        assert token.balance_of(stealth.address) == 10


class TestCollectIncluded:
    """Test collect in included mode."""

    @pytest.fixture
    def included_pool(self, config, prover, token) -> Pool:
        return Pool(
            prover.verifier_set(), token, address=POOL_ADDRESS,
            config=replace(config, collect_mode=CollectMode.INCLUDED),
        )

    def test_collect_with_root(self, included_pool, tree, prover, token, alice) -> None:
        """The note proof is checked against the root containing the note."""
        stealth = alice.derive_stealth_address(0, included_pool.address)
        token.mint(stealth.address, 50)
        note = Note.create(50, alice)
        tree.insert(note.commitment)
        root = tree.root()

        ownership = alice.prove_stealth_address_ownership(0, prover)
        note_proof = _note_proof(prover, alice, 0, note, root=root, tree=tree)
        included_pool.collect(token, 50, stealth.salt, ownership.proof, note.commitment, note_proof, root=root)
        assert included_pool.current_root == root
        assert included_pool.custody() == 50

    def test_root_required(self, included_pool, prover, token, alice) -> None:
        """Included mode needs the root."""
        stealth = alice.derive_stealth_address(0, included_pool.address)
        token.mint(stealth.address, 50)
        ownership = alice.prove_stealth_address_ownership(0, prover)
        with pytest.raises(RootMismatch):
            included_pool.collect(token, 50, stealth.salt, ownership.proof, 1, b"")

    def test_wrong_root_rejected(self, included_pool, prover, token, alice) -> None:
        """A root that does not contain the appended note is rejected."""
        stealth = alice.derive_stealth_address(0, included_pool.address)
        token.mint(stealth.address, 50)
        note = Note.create(50, alice)
        ownership = alice.prove_stealth_address_ownership(0, prover)
        stale = NoteMerkleTree(included_pool.config.tree_depth).root()
        with pytest.raises(RootMismatch):
            included_pool.collect(token, 50, stealth.salt, ownership.proof, note.commitment, b"", root=stale)
        assert included_pool.leaf_count == 0
