"""Repository updaters for RPM and APT targets.

This module provides the per-ecosystem updaters that turn an incoming
package tree plus the previously published base snapshot into a
publishable, signed repository tree.
"""

from .base import (
    RepositoryLayout,
    RepositorySnapshot,
    RepositoryUpdater,
    SnapshotKind,
    TargetProgress,
    TargetResult,
    TargetState,
)
from .deb import DebRepositoryUpdater
from .merge import DistsMerger
from .rpm import RpmRepositoryUpdater

__all__ = [
    "DebRepositoryUpdater",
    "DistsMerger",
    "RepositoryLayout",
    "RepositorySnapshot",
    "RepositoryUpdater",
    "RpmRepositoryUpdater",
    "SnapshotKind",
    "TargetProgress",
    "TargetResult",
    "TargetState",
]
