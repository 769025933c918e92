"""Tests for PoolConfig loading."""

import json

import pytest

from protocol.config import CollectMode, PoolConfig


class TestPoolConfig:
    """Test configuration defaults, validation and JSON loading."""

    def test_defaults(self) -> None:
        """Defaults match a depth-16, 16-in / 2-out deployment."""
        config = PoolConfig()
        assert config.tree_depth == 16
        assert config.max_inputs == 16
        assert config.max_outputs == 2
        assert config.collect_mode is CollectMode.MINT
        assert config.split_join_inputs == 22

    def test_from_json(self, tmp_path) -> None:
        """camelCase JSON keys map onto fields; collect mode is parsed."""
        path = tmp_path / "pool.json"
        path.write_text(json.dumps({"treeDepth": 20, "maxInputs": 2, "collectMode": "included"}))
        config = PoolConfig.from_json(str(path))
        assert config.tree_depth == 20
        assert config.max_inputs == 2
        assert config.collect_mode is CollectMode.INCLUDED

    def test_to_dict_inverts_from_dict(self) -> None:
        """to_dict produces the camelCase form from_dict accepts."""
        config = PoolConfig(tree_depth=10, relay_grace=0)
        assert PoolConfig.from_dict(config.to_dict()) == config

    def test_unknown_key_rejected(self) -> None:
        """Typos in config files are errors."""
        with pytest.raises(ValueError, match="treeDepht"):
            PoolConfig.from_dict({"treeDepht": 10})

    @pytest.mark.parametrize("kwargs", [
        {"tree_depth": 0},
        {"tree_depth": 33},
        {"max_inputs": 0},
        {"root_history_size": 0},
        {"withdrawal_window": 0},
        {"relay_grace": -1},
        {"collect_mode": "burn"},
    ])
    def test_invalid_values(self, kwargs) -> None:
        """Out-of-range values raise ValueError."""
        with pytest.raises(ValueError):
            PoolConfig(**kwargs)
