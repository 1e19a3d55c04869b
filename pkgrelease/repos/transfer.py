"""Download / upload stages between the local work tree and the remote store.

Path conventions on the remote side::

    <remote>/<distribution>/...            published repository
    <remote>/incoming/<distribution>/...   uploaded, not yet released packages
"""

import shutil
from pathlib import Path
from typing import List

from ..common.config import ReleaseConfig
from ..common.errors import ConfigurationError
from ..common.logger import get_logger
from ..tools.base import Transport
from .base import RepositoryLayout, SnapshotKind

logger = get_logger("repos.transfer")

YUM_BASE_INCLUDES = (
    "*/",
    "*/*/",
    "*/*/repodata/",
    "*/*/repodata/*",
    "*/*/repodata/*/*",
)

RELEASE_SIGNATURES = ("Release.gpg", "InRelease")


def is_release_signed(dists_dir: Path) -> bool:
    """Check Release.gpg and InRelease exist and are not older than Release."""
    release = dists_dir / "Release"
    if not release.is_file():
        return False
    release_mtime = release.stat().st_mtime
    for name in RELEASE_SIGNATURES:
        signature = dists_dir / name
        if not signature.is_file() or signature.stat().st_mtime < release_mtime:
            return False
    return True


class RepositoryTransfer:
    """Mirror snapshots of one ecosystem to and from the remote store."""

    def __init__(self, config: ReleaseConfig, layout: RepositoryLayout, transport: Transport):
        if not config.repository.remote_path:
            raise ConfigurationError("Missing required setting repository.remote_path")
        self.config = config
        self.layout = layout
        self.transport = transport
        self.remote = config.repository.remote_path.rstrip("/")

    def _local(self, kind: SnapshotKind, distribution: str) -> str:
        return str(self.layout.snapshot(kind).distribution_dir(distribution))

    def download_base(self, ecosystem: str) -> None:
        """Fetch the published metadata the merge is based on."""
        for distribution in self.config.distributions(ecosystem):
            local = self.layout.snapshot(SnapshotKind.BASE).distribution_dir(distribution)
            if ecosystem == "rpm":
                local.mkdir(parents=True, exist_ok=True)
                self.transport.sync(
                    f"{self.remote}/{distribution}/",
                    str(local),
                    delete=True,
                    includes=YUM_BASE_INCLUDES,
                    excludes=("*",),
                )
            else:
                dists = local / "dists"
                dists.mkdir(parents=True, exist_ok=True)
                self.transport.sync(
                    f"{self.remote}/{distribution}/dists/",
                    str(dists),
                    delete=True,
                )

    def download_incoming(self, ecosystem: str) -> None:
        """Fetch the incoming packages of every configured distribution."""
        incoming = self.layout.incoming.root
        incoming.mkdir(parents=True, exist_ok=True)
        includes: List[str] = [f"{d}/" for d in self.config.distributions(ecosystem)]
        self.transport.sync(
            f"{self.remote}/incoming/",
            str(incoming),
            delete=True,
            includes=includes,
            excludes=("*",),
        )

    def upload(self, ecosystem: str) -> None:
        """Publish regenerated metadata and new packages."""
        if ecosystem == "rpm":
            self._upload_yum()
        else:
            self._upload_apt()

    def _upload_yum(self) -> None:
        for target in self.config.targets("rpm"):
            version_dir = self.layout.rpm_version_dir(SnapshotKind.INCOMING, target)
            if not version_dir.is_dir():
                continue
            for arch_dir in sorted(p for p in version_dir.iterdir() if p.is_dir()):
                self.transport.sync(
                    str(arch_dir / "repodata"),
                    f"{self.remote}/{target.distribution}/{target.version}/{arch_dir.name}",
                    delete=True,
                )
        for distribution in self.config.distributions("rpm"):
            if not self.layout.incoming.distribution_dir(distribution).is_dir():
                continue
            self.transport.sync(
                self._local(SnapshotKind.INCOMING, distribution) + "/",
                f"{self.remote}/{distribution}/",
                excludes=("*/*/repodata/",),
            )

    def merged_dists(self, distribution: str) -> List[Path]:
        """Merged ``dists/<codename>`` directories of the configured targets."""
        found: List[Path] = []
        for target in self.config.targets("deb"):
            if target.distribution != distribution:
                continue
            codename_dir = self.layout.deb_dists_dir(SnapshotKind.MERGED, target)
            if codename_dir.is_dir() and codename_dir not in found:
                found.append(codename_dir)
        return found

    def unsigned_dists(self) -> List[Path]:
        """Merged codenames whose Release signatures are missing or stale."""
        unsigned = []
        for distribution in self.config.distributions("deb"):
            for codename_dir in self.merged_dists(distribution):
                if not is_release_signed(codename_dir):
                    unsigned.append(codename_dir)
        return unsigned

    def _upload_apt(self) -> None:
        for distribution in self.config.distributions("deb"):
            codename_dirs = self.merged_dists(distribution)
            if not codename_dirs:
                logger.info(f"Nothing to publish for {distribution}")
                continue
            pool = self.layout.incoming.distribution_dir(distribution) / "pool"
            if pool.is_dir():
                self.transport.sync(f"{pool}/", f"{self.remote}/{distribution}/pool")
            # codenames without a merged tree keep their published dists
            for codename_dir in codename_dirs:
                self.transport.sync(
                    f"{codename_dir}/",
                    f"{self.remote}/{distribution}/dists/{codename_dir.name}",
                    delete=True,
                )

    def remove_incoming(self, ecosystem: str) -> None:
        """Empty the incoming area locally and on the remote store."""
        for distribution in self.config.distributions(ecosystem):
            local = self.layout.incoming.distribution_dir(distribution)
            if local.exists():
                shutil.rmtree(local)
            local.mkdir(parents=True)
            self.transport.sync(
                f"{local}/",
                f"{self.remote}/incoming/{distribution}/",
                delete=True,
            )
            logger.info(f"Removed incoming packages for {distribution}")
