"""
Tests for configuration loading.
"""

from pathlib import Path

import pytest
import yaml

from cochlea_disparity.config import Config, load_config


class TestConfig:

    def test_defaults(self):
        config = Config()
        assert config.get('chrono.models')[0] == 'acctran'
        assert config.get('resampling.mode') == 'min-size rarefaction'
        assert isinstance(config.get('data.tree_path'), Path)
        assert config.get('missing.key', 'fallback') == 'fallback'

    def test_yaml_override(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({
            'chrono': {'t0': 12.0},
            'resampling': {'n_replicates': 7},
        }))
        config = load_config(str(path))
        assert config.get('chrono.t0') == 12.0
        assert config.get('resampling.n_replicates') == 7
        # untouched keys of an overridden section survive the merge
        assert config.get('chrono.step') == 1.0

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv('RANDOM_SEED', '123')
        assert Config().get('random_seed') == 123

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            Config(str(tmp_path / "absent.yaml"))

    def test_shipped_config(self):
        path = Path(__file__).parent.parent / "configs" / "default.yaml"
        config = load_config(str(path))
        assert len(config.get('chrono.bins')) == len(config.get('chrono.bin_names')) + 1
        assert config.get('chrono.models')
