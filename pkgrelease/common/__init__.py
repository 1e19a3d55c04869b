"""Common utilities for pkgrelease."""

from .logger import setup_logger, get_logger
from .config import load_config, load_typed_config, ReleaseConfig, Target
from .errors import (
    ReleaseError,
    ConfigurationError,
    TransportError,
    SigningError,
    IndexingError,
    MergeError,
    CommandError,
)

__all__ = [
    "CommandError",
    "ConfigurationError",
    "IndexingError",
    "MergeError",
    "ReleaseConfig",
    "ReleaseError",
    "SigningError",
    "Target",
    "TransportError",
    "get_logger",
    "load_config",
    "load_typed_config",
    "setup_logger",
]
