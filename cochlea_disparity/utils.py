"""
Generic utility functions for logging, random generators, and common operations.
"""

import logging
import numpy as np
from pathlib import Path
from typing import Optional, Union


def setup_logging(
    log_dir: Optional[Path] = None,
    log_level: str = "INFO",
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Set up logging configuration.

    Args:
        log_dir: Directory for log files
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Name of log file (optional)

    Returns:
        Logger for the calling script
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    handlers = [logging.StreamHandler()]

    if log_dir and log_file:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / log_file
        handlers.append(logging.FileHandler(log_path))

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )
    return logging.getLogger("cochlea_disparity")


def make_rng(seed: Optional[Union[int, np.random.Generator]] = None) -> np.random.Generator:
    """
    Build a random generator from an explicit seed.

    Passing an existing Generator returns it unchanged so stages can share
    one stream.

    Args:
        seed: Integer seed, Generator, or None for fresh entropy

    Returns:
        numpy Generator
    """
    if isinstance(seed, np.random.Generator):
        return seed
    return np.random.default_rng(seed)


def ensure_dir(path: Union[str, Path]) -> Path:
    """
    Ensure directory exists, create if it doesn't.

    Args:
        path: Directory path

    Returns:
        Path object
    """
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def validate_array(
    arr: np.ndarray,
    expected_shape: Optional[tuple] = None,
    expected_ndim: Optional[int] = None,
    name: str = "array"
) -> None:
    """
    Validate array properties.

    Args:
        arr: Array to validate
        expected_shape: Expected shape (None for any)
        expected_ndim: Expected number of dimensions (None for any)
        name: Name for error messages

    Raises:
        ValueError: If validation fails
    """
    if not isinstance(arr, np.ndarray):
        raise ValueError(f"{name} must be a numpy array")

    if expected_shape is not None:
        if arr.shape != expected_shape:
            raise ValueError(
                f"{name} shape {arr.shape} does not match expected {expected_shape}"
            )

    if expected_ndim is not None:
        if arr.ndim != expected_ndim:
            raise ValueError(
                f"{name} must be {expected_ndim}D, got shape {arr.shape}"
            )


def log_banner(logger: logging.Logger, title: str) -> None:
    """Log a section banner the way every pipeline script opens and closes."""
    logger.info("=" * 60)
    logger.info(title)
    logger.info("=" * 60)
