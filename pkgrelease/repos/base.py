"""Base classes for repository updaters.

Defines the on-disk layout of the base / incoming / merged snapshots,
the per-target state machine, and the interface every updater
implements.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from ..common.config import Target
from ..common.errors import ConfigurationError, ReleaseError
from ..common.logger import get_logger

logger = get_logger("repos")


class SnapshotKind(Enum):
    """Role of a directory tree in a release run."""

    BASE = "base"
    INCOMING = "incoming"
    MERGED = "merged"


class TargetState(Enum):
    """Progress of a single target through its update pipeline."""

    IDLE = "idle"
    NO_OP = "no-op"
    REINDEXED = "reindexed"
    STANZAS_GENERATED = "stanzas-generated"
    INDEX_GENERATED = "index-generated"
    RELEASE_ASSEMBLED = "release-assembled"
    MERGED = "merged"
    SIGNED = "signed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (
            TargetState.NO_OP,
            TargetState.REINDEXED,
            TargetState.SIGNED,
            TargetState.FAILED,
        )


@dataclass(frozen=True)
class RepositorySnapshot:
    """A rooted directory tree holding one kind of snapshot."""

    kind: SnapshotKind
    root: Path

    def distribution_dir(self, distribution: str) -> Path:
        return self.root / distribution

    def exists(self) -> bool:
        return self.root.is_dir()


class RepositoryLayout:
    """Paths of every snapshot below the local work directory.

    ``<workdir>/base/<distribution>/...``,
    ``<workdir>/incoming/<distribution>/...`` and
    ``<workdir>/merged/<distribution>/dists/<codename>/...``.
    """

    def __init__(self, workdir: Path):
        self.workdir = Path(workdir)

    def snapshot(self, kind: SnapshotKind) -> RepositorySnapshot:
        return RepositorySnapshot(kind, self.workdir / kind.value)

    @property
    def base(self) -> RepositorySnapshot:
        return self.snapshot(SnapshotKind.BASE)

    @property
    def incoming(self) -> RepositorySnapshot:
        return self.snapshot(SnapshotKind.INCOMING)

    @property
    def merged(self) -> RepositorySnapshot:
        return self.snapshot(SnapshotKind.MERGED)

    # RPM
    def rpm_version_dir(self, kind: SnapshotKind, target: Target) -> Path:
        return self.snapshot(kind).distribution_dir(target.distribution) / target.version

    # Deb
    def deb_pool_dir(self, target: Target) -> Path:
        return self.incoming.distribution_dir(target.distribution) / "pool" / target.codename

    def deb_dists_dir(self, kind: SnapshotKind, target: Target) -> Path:
        return self.snapshot(kind).distribution_dir(target.distribution) / "dists" / target.codename


@dataclass
class TargetProgress:
    """Tracks how far one target got, for failure reporting."""

    target: Target
    state: TargetState = TargetState.IDLE

    def advance(self, state: TargetState) -> None:
        self.state = state
        logger.debug(f"{self.target}: {state.value}")


@dataclass
class TargetResult:
    """Outcome of updating one target."""

    target: Target
    state: TargetState
    reached: TargetState = TargetState.IDLE
    error_message: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def is_publishable(self) -> bool:
        """A target may be uploaded only after it completed successfully."""
        return self.state in (TargetState.NO_OP, TargetState.REINDEXED, TargetState.SIGNED)

    @property
    def failed(self) -> bool:
        return self.state is TargetState.FAILED


class RepositoryUpdater(ABC):
    """Abstract base class for per-ecosystem repository updaters.

    Subclasses implement :meth:`update_target`, which advances a target
    through its states and raises a ReleaseError (normally a TargetError
    subclass) on failure.
    :meth:`update` turns that into a TargetResult so sibling targets
    keep running.
    """

    def __init__(self, layout: RepositoryLayout):
        self.layout = layout

    @property
    @abstractmethod
    def ecosystem(self) -> str:
        """Return the ecosystem identifier (``rpm`` or ``deb``)."""
        pass

    @abstractmethod
    def update_target(self, target: Target, progress: TargetProgress) -> TargetState:
        """Run the update pipeline for one target.

        Args:
            target: Target to update
            progress: Receives every intermediate state

        Returns:
            Terminal state reached

        Raises:
            TargetError: If any stage fails
            SigningError: If the Release manifest cannot be signed
        """
        pass

    def update(self, target: Target) -> TargetResult:
        """Update one target, capturing failure in the result.

        Args:
            target: Target to update

        Returns:
            TargetResult with final state
        """
        return self._execute(target, self.update_target)

    def _execute(
        self,
        target: Target,
        pipeline: Callable[[Target, TargetProgress], TargetState],
    ) -> TargetResult:
        if target.ecosystem != self.ecosystem:
            raise ValueError(f"{self.__class__.__name__} cannot update {target}")

        start_time = time.monotonic()
        progress = TargetProgress(target)
        logger.info(f"Updating {target}")
        try:
            state = pipeline(target, progress)
        except ConfigurationError:
            raise
        except ReleaseError as e:
            reached = progress.state
            logger.error(f"Update of {target} failed after {reached.value}: {e}")
            return TargetResult(
                target=target,
                state=TargetState.FAILED,
                reached=reached,
                error_message=str(e),
                duration_seconds=time.monotonic() - start_time,
            )

        logger.info(f"Updated {target}: {state.value}")
        return TargetResult(
            target=target,
            state=state,
            reached=state,
            duration_seconds=time.monotonic() - start_time,
        )

    def update_all(self, targets: Iterable[Target]) -> List[TargetResult]:
        """Update targets in declared order; a failure never stops siblings."""
        return [self.update(target) for target in targets]
