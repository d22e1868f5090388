"""
Central configuration management for the cochlea disparity pipeline.

Supports loading from YAML files, environment variables, and defaults.
A Config instance is handed to every stage explicitly; nothing reads
settings from module-level state.
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)


class Config:
    """Central configuration class for the pipeline."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize configuration from file or defaults.

        Args:
            config_path: Path to YAML config file. If None, uses defaults.
        """
        self.config = self._load_defaults()

        if config_path:
            if not Path(config_path).exists():
                raise FileNotFoundError(f"Config file not found: {config_path}")
            with open(config_path, 'r') as f:
                user_config = yaml.safe_load(f) or {}
                self._update_config(self.config, user_config)
            logger.info(f"Loaded configuration from {config_path}")

        # Override with environment variables
        self._load_from_env()

        # Convert string paths to Path objects
        self._normalize_paths()

    def _load_defaults(self) -> Dict[str, Any]:
        """Load default configuration values."""
        return {
            'data': {
                'landmarks_dir': 'data/raw/landmarks',
                'landmark_pattern': '*.txt',
                'sliders_path': 'data/raw/curveslide.csv',
                'metadata_path': 'data/raw/specimens.csv',
                'tree_path': 'data/raw/tree.nwk',
                'processed_data_dir': 'data/processed',
            },
            'landmarks': {
                'n_landmarks': 60,
                'n_dim': 3,
                'skip_header': 2,
                'taxon_col': 'Taxon',
                'group_col': 'Family',
            },
            'procrustes': {
                'max_iter': 100,
                'tol': 1e-7,
            },
            'tree': {
                'root_age': None,  # None -> tree depth
                'zero_length_fraction': 0.01,
            },
            'ordination': {
                'n_components': None,  # None -> all
                'scale': False,
            },
            'chrono': {
                'bins': [23.03, 15.97, 11.63, 5.333, 2.58, 0.0],
                'bin_names': ['Early Miocene', 'Middle Miocene', 'Late Miocene',
                              'Pliocene', 'Pleistocene'],
                'include_nodes': True,
                't0': 25.0,
                'step': 1.0,
                'models': ['acctran', 'deltran', 'random', 'proximity',
                           'equal.split', 'gradual.split'],
            },
            'resampling': {
                'n_replicates': 100,
                'mode': 'min-size rarefaction',
                'quantiles': [2.5, 97.5],
            },
            'comparison': {
                'alpha': 0.05,
            },
            'metric_test': {
                'shifts': ['random', 'size.increase', 'size.decrease'],
                'steps': 10,
                'replicates': 3,
            },
            'output': {
                'results_dir': 'results',
                'figures_dir': 'results/figures',
                'tables_dir': 'results/tables',
                'logs_dir': 'results/logs',
            },
            'precision': 8,
            'random_seed': 42,
        }

    def _update_config(self, base: Dict[str, Any], update: Dict[str, Any]) -> None:
        """Recursively update base config with update dict."""
        for key, value in update.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._update_config(base[key], value)
            else:
                base[key] = value

    def _load_from_env(self) -> None:
        """Load configuration from environment variables."""
        env_mappings = {
            'COCHLEA_DATA_DIR': ('data', 'landmarks_dir'),
            'RESULTS_DIR': ('output', 'results_dir'),
            'RANDOM_SEED': ('random_seed',),
        }

        for env_var, config_path in env_mappings.items():
            value = os.getenv(env_var)
            if value is not None:
                if len(config_path) == 1:
                    self.config[config_path[0]] = self._convert_type(value)
                else:
                    if config_path[0] not in self.config:
                        self.config[config_path[0]] = {}
                    self.config[config_path[0]][config_path[1]] = self._convert_type(value)

    def _convert_type(self, value: str) -> Any:
        """Convert string to appropriate type."""
        if value.lower() in ('true', 'false'):
            return value.lower() == 'true'
        try:
            if '.' in value:
                return float(value)
            return int(value)
        except ValueError:
            return value

    def _normalize_paths(self) -> None:
        """Convert string paths to Path objects."""
        for key, value in self.config.items():
            if isinstance(value, dict):
                for subkey, subvalue in value.items():
                    if 'path' in subkey.lower() or 'dir' in subkey.lower():
                        if isinstance(subvalue, str):
                            self.config[key][subkey] = Path(subvalue)
            elif 'path' in key.lower() or 'dir' in key.lower():
                if isinstance(value, str):
                    self.config[key] = Path(value)

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get config value using dot notation (e.g., 'chrono.step').

        Args:
            key_path: Dot-separated path to config value
            default: Default value if key not found

        Returns:
            Config value or default
        """
        keys = key_path.split('.')
        value = self.config
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value


def load_config(config_path: Optional[str] = None) -> Config:
    """
    Load configuration from file.

    Args:
        config_path: Path to YAML config file

    Returns:
        Config object
    """
    return Config(config_path)
