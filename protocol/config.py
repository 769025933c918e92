"""Pool configuration loader."""

import json
from dataclasses import asdict, dataclass
from enum import Enum


class CollectMode(Enum):
    """How collect treats the collected note.

    MINT: the note is newly minted; the pool appends its commitment.
    INCLUDED: additionally, the caller names the root that includes the note
    and the note proof is checked against that root.
    """
    MINT = "mint"
    INCLUDED = "included"


# camelCase JSON key -> field name
_JSON_KEYS = {
    "treeDepth": "tree_depth",
    "maxInputs": "max_inputs",
    "maxOutputs": "max_outputs",
    "rootHistorySize": "root_history_size",
    "withdrawalWindow": "withdrawal_window",
    "relayGrace": "relay_grace",
    "collectMode": "collect_mode",
}


@dataclass(frozen=True)
class PoolConfig:
    """Static pool parameters, fixed at deployment."""
    tree_depth: int = 16
    max_inputs: int = 16
    max_outputs: int = 2
    root_history_size: int = 30
    withdrawal_window: int = 86400
    relay_grace: int = 3600
    collect_mode: CollectMode = CollectMode.MINT

    def __post_init__(self) -> None:
        if not 1 <= self.tree_depth <= 32:
            raise ValueError(f"tree_depth must be in [1, 32], got {self.tree_depth}")
        if self.max_inputs < 1 or self.max_outputs < 1:
            raise ValueError(
                f"max_inputs and max_outputs must be positive, got {self.max_inputs}, {self.max_outputs}"
            )
        if self.root_history_size < 1:
            raise ValueError(f"root_history_size must be positive, got {self.root_history_size}")
        if self.withdrawal_window <= 0 or self.relay_grace < 0:
            raise ValueError(
                f"invalid withdrawal timing: window={self.withdrawal_window}, grace={self.relay_grace}"
            )
        if not isinstance(self.collect_mode, CollectMode):
            object.__setattr__(self, "collect_mode", CollectMode(self.collect_mode))

    @property
    def split_join_inputs(self) -> int:
        """Length of the SPLIT_JOIN public-input vector."""
        return 4 + self.max_inputs + self.max_outputs

    @classmethod
    def from_dict(cls, d: dict) -> "PoolConfig":
        """Build from a dict with camelCase keys; unknown keys are rejected."""
        kwargs = {}
        for key, value in d.items():
            if key not in _JSON_KEYS:
                raise ValueError(f"unknown pool config key: {key}")
            kwargs[_JSON_KEYS[key]] = value
        return cls(**kwargs)

    @classmethod
    def from_json(cls, path: str) -> "PoolConfig":
        """Load PoolConfig from a JSON file."""
        with open(path) as f:
            j = json.load(f)
        return cls.from_dict(j)

    def to_dict(self) -> dict:
        names = {v: k for k, v in _JSON_KEYS.items()}
        d = asdict(self)
        d["collect_mode"] = self.collect_mode.value
        return {names[k]: v for k, v in d.items()}
