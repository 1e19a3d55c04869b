"""Incremental repodata regeneration for yum/dnf repositories."""

import shutil
import tempfile
from pathlib import Path
from typing import List

from ..common.config import Target
from ..common.errors import IndexingError
from ..common.logger import get_logger
from ..tools.base import RpmIndexer
from .base import (
    RepositoryLayout,
    RepositoryUpdater,
    SnapshotKind,
    TargetProgress,
    TargetState,
)

logger = get_logger("repos.rpm")

REPODATA = "repodata"


def list_packages(arch_dir: Path) -> List[str]:
    """Relative POSIX paths of every ``*.rpm`` below an architecture dir.

    Args:
        arch_dir: Architecture directory (e.g. ``.../centos/8/x86_64``)

    Returns:
        Sorted relative paths, excluding anything under ``repodata/``
    """
    packages = []
    for rpm in arch_dir.rglob("*.rpm"):
        relative = rpm.relative_to(arch_dir)
        if relative.parts[0] == REPODATA or not rpm.is_file():
            continue
        packages.append(relative.as_posix())
    return sorted(packages)


class RpmRepositoryUpdater(RepositoryUpdater):
    """Regenerates ``repodata`` for every architecture of an RPM target.

    The base snapshot's repodata is copied into the incoming architecture
    directory first so the indexer can recycle entries for packages that
    did not change instead of hashing them again.
    """

    def __init__(self, layout: RepositoryLayout, indexer: RpmIndexer):
        """Initialize RPM updater.

        Args:
            layout: Local snapshot layout
            indexer: RPM metadata generator (createrepo_c in production)
        """
        super().__init__(layout)
        self.indexer = indexer

    @property
    def ecosystem(self) -> str:
        return "rpm"

    def architecture_dirs(self, target: Target) -> List[Path]:
        incoming_version_dir = self.layout.rpm_version_dir(SnapshotKind.INCOMING, target)
        if not incoming_version_dir.is_dir():
            return []
        return sorted(p for p in incoming_version_dir.iterdir() if p.is_dir())

    def update_target(self, target: Target, progress: TargetProgress) -> TargetState:
        arch_dirs = self.architecture_dirs(target)
        if not arch_dirs:
            logger.info(f"No incoming packages for {target}, skipping")
            progress.advance(TargetState.NO_OP)
            return TargetState.NO_OP

        base_version_dir = self.layout.rpm_version_dir(SnapshotKind.BASE, target)
        for incoming_arch_dir in arch_dirs:
            base_arch_dir = base_version_dir / incoming_arch_dir.name
            try:
                self.reindex_architecture(incoming_arch_dir, base_arch_dir)
            except IndexingError as e:
                raise IndexingError(
                    f"{incoming_arch_dir.name}: {e}", target=target.name, stage="reindex"
                ) from e
            except OSError as e:
                raise IndexingError(
                    f"{incoming_arch_dir.name}: {e}", target=target.name, stage="seed"
                ) from e

        progress.advance(TargetState.REINDEXED)
        return TargetState.REINDEXED

    def reindex_architecture(self, incoming_arch_dir: Path, base_arch_dir: Path) -> None:
        """Reindex one architecture directory in place.

        Args:
            incoming_arch_dir: Architecture directory in the incoming tree
            base_arch_dir: Matching directory in the base tree (may be absent)

        Raises:
            IndexingError: If the indexer fails
            OSError: If repodata cannot be reset or seeded
        """
        repodata = incoming_arch_dir / REPODATA
        if repodata.exists():
            shutil.rmtree(repodata)

        base_repodata = base_arch_dir / REPODATA
        if base_repodata.is_dir():
            logger.debug(f"Seeding {repodata} from {base_repodata}")
            shutil.copytree(base_repodata, repodata)
        else:
            logger.info(f"No base repodata for {incoming_arch_dir.name}, building from scratch")

        packages = list_packages(incoming_arch_dir)
        logger.info(f"Reindexing {incoming_arch_dir} ({len(packages)} packages)")

        with tempfile.NamedTemporaryFile(
            mode="w", prefix="createrepo-c-packages", suffix=".txt"
        ) as package_list:
            for package in packages:
                package_list.write(f"{package}\n")
            package_list.flush()
            self.indexer.reindex(incoming_arch_dir, Path(package_list.name))
