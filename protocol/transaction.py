"""Client-side transaction builder.

Builds the SPLIT_JOIN public inputs and witness for a ``transact`` call from a
local mirror of the pool's accumulator, and the INPUT-family statement for a
trustless withdrawal. Nothing here talks to the pool; the caller submits the
resulting ``ProvedTransaction``.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

from primitives.field import address_to_field, to_hex
from primitives.merkle_tree import NoteMerkleTree
from protocol.keypair import KeyPair
from protocol.note import Note
from protocol.public_inputs import TransactInputs, WithdrawInputs
from protocol.verifier import CircuitFamily, Prover

logger = logging.getLogger(__name__)

Address = Union[str, int]


def _address_field(address: Address) -> int:
    if isinstance(address, str):
        return address_to_field(address)
    return address


@dataclass(frozen=True)
class ProvedTransaction:
    """What gets submitted to the pool."""
    proof: bytes
    public_inputs: List[int]

    @property
    def new_root(self) -> int:
        return self.public_inputs[1]


@dataclass
class Transaction:
    """An unproved split/join: public statement plus the private witness.

    Attributes:
        inputs: Named public inputs
        input_notes: Notes being spent, with their leaf indices and sibling paths
        output_notes: Notes being created
        keypair: Owner of every input note
        max_inputs: Input slots of the circuit
        max_outputs: Output slots of the circuit
    """
    inputs: TransactInputs
    input_notes: List[Note]
    input_indices: List[int]
    input_paths: List[List[int]]
    output_notes: List[Note]
    keypair: KeyPair
    max_inputs: int
    max_outputs: int
    leaf_indices: List[int] = field(default_factory=list)

    @property
    def public_inputs(self) -> List[int]:
        return self.inputs.encode(self.max_inputs, self.max_outputs)

    @property
    def new_root(self) -> int:
        return self.inputs.new_root

    @property
    def external_amount(self) -> int:
        return self.inputs.external_amount

    def witness(self) -> Dict[str, Any]:
        return {
            "spending_key": self.keypair.spending_key,
            "inputs": list(zip(self.input_notes, self.input_indices, self.input_paths)),
            "outputs": list(self.output_notes),
        }

    def prove(self, prover: Prover) -> ProvedTransaction:
        public_inputs = self.public_inputs
        proof = prover.prove(CircuitFamily.SPLIT_JOIN, public_inputs, self.witness())
        return ProvedTransaction(proof=proof, public_inputs=public_inputs)


def create_transaction(
    tree: NoteMerkleTree,
    keypair: KeyPair,
    input_notes: Sequence[Note] = (),
    deposit_amount: int = 0,
    withdraw_address: Address = 0,
    outputs: Optional[Sequence[Note]] = None,
    update_tree: bool = True,
    max_inputs: int = 16,
    max_outputs: int = 2,
) -> Transaction:
    """Assemble a split/join against the current root of ``tree``.

    Args:
        tree: Local mirror of the pool accumulator; must contain every input note
        keypair: Owner of the input notes
        input_notes: Notes to spend
        deposit_amount: External amount; positive deposits, negative withdraws
        withdraw_address: Recipient of a withdrawal
        outputs: Notes to create. When omitted, one change note for
            ``sum(inputs) + deposit_amount`` owned by ``keypair`` is created.
        update_tree: Append the output commitments to ``tree``
        max_inputs: Input slots of the circuit
        max_outputs: Output slots of the circuit

    Raises:
        ValueError: Too many notes, unknown or foreign input notes, negative
            change, or a withdrawal without a recipient
    """
    input_notes = list(input_notes)
    if len(input_notes) > max_inputs:
        raise ValueError(f"{len(input_notes)} input notes exceed the {max_inputs} input slots")

    indices, paths, nullifiers = [], [], []
    for note in input_notes:
        if not note.is_owned_by(keypair):
            raise ValueError(f"note {to_hex(note.commitment)} is not owned by the keypair")
        index = tree.index_of(note.commitment)
        if index is None:
            raise ValueError(f"note {to_hex(note.commitment)} is not in the tree")
        indices.append(index)
        paths.append(tree.path_to(index))
        nullifiers.append(note.nullifier(keypair))

    if outputs is None:
        change = sum(n.amount for n in input_notes) + deposit_amount
        if change < 0:
            raise ValueError(
                f"withdrawing {-deposit_amount} exceeds the {change - deposit_amount} held by the inputs"
            )
        outputs = [Note.create(change, keypair)]
    outputs = list(outputs)
    if len(outputs) > max_outputs:
        raise ValueError(f"{len(outputs)} output notes exceed the {max_outputs} output slots")

    recipient = _address_field(withdraw_address)
    if deposit_amount < 0 and recipient == 0:
        raise ValueError("a withdrawal needs a withdraw_address")

    commitments = [n.commitment for n in outputs]
    old_root = tree.root()
    new_root = tree.root_after(commitments)
    inputs = TransactInputs(
        old_root=old_root,
        new_root=new_root,
        external_amount=deposit_amount,
        withdraw_address=recipient,
        nullifiers=tuple(nullifiers),
        commitments=tuple(commitments),
    )
    tx = Transaction(
        inputs=inputs,
        input_notes=input_notes,
        input_indices=indices,
        input_paths=paths,
        output_notes=outputs,
        keypair=keypair,
        max_inputs=max_inputs,
        max_outputs=max_outputs,
    )
    if update_tree:
        tx.leaf_indices = tree.insert_many(commitments)

    logger.debug(
        "Built transaction: %d in, %d out, external %+d, root %s -> %s",
        len(input_notes), len(outputs), deposit_amount, to_hex(old_root), to_hex(new_root),
    )
    return tx


@dataclass(frozen=True)
class WithdrawalInput:
    """INPUT-family statement for a trustless withdrawal of one note."""
    inputs: WithdrawInputs
    note: Note
    keypair: KeyPair
    leaf_index: int
    path: List[int]

    @property
    def public_inputs(self) -> List[int]:
        return self.inputs.encode()

    def witness(self) -> Dict[str, Any]:
        return {
            "note": self.note,
            "spending_key": self.keypair.spending_key,
            "leaf_index": self.leaf_index,
            "path": self.path,
        }

    def prove(self, prover: Prover) -> ProvedTransaction:
        public_inputs = self.public_inputs
        proof = prover.prove(CircuitFamily.INPUT, public_inputs, self.witness())
        return ProvedTransaction(proof=proof, public_inputs=public_inputs)


def create_input(tree: NoteMerkleTree, note: Note, keypair: KeyPair, recipient: Address) -> WithdrawalInput:
    """Statement withdrawing the whole of ``note`` to ``recipient`` under the current root of ``tree``."""
    if not note.is_owned_by(keypair):
        raise ValueError(f"note {to_hex(note.commitment)} is not owned by the keypair")
    index = tree.index_of(note.commitment)
    if index is None:
        raise ValueError(f"note {to_hex(note.commitment)} is not in the tree")
    recipient_field = _address_field(recipient)
    if recipient_field == 0:
        raise ValueError("a withdrawal needs a recipient")
    return WithdrawalInput(
        inputs=WithdrawInputs(
            root=tree.root(),
            nullifier=note.nullifier(keypair),
            amount=note.amount,
            recipient_field=recipient_field,
        ),
        note=note,
        keypair=keypair,
        leaf_index=index,
        path=tree.path_to(index),
    )
