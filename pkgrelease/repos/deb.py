"""APT repository generation, merge and signing per codename/component.

Each target moves through::

    IDLE -> STANZAS_GENERATED -> INDEX_GENERATED -> RELEASE_ASSEMBLED
         -> MERGED -> SIGNED

A failure leaves the target FAILED with whatever files were already
written; every stage regenerates its output from scratch, so re-running
the target is the recovery path.
"""

import os
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

from debian.deb822 import Deb822

from ..common.config import ReleaseDescriptor, RepositoryConfig, Target
from ..common.errors import (
    ConfigurationError,
    IndexingError,
    MergeError,
    SigningError,
    TargetError,
)
from ..common.logger import get_logger
from ..tools.base import ArchiveIndexer, DistsMergerProtocol, ManifestSigner
from .base import (
    RepositoryLayout,
    RepositoryUpdater,
    SnapshotKind,
    TargetProgress,
    TargetResult,
    TargetState,
)

logger = get_logger("repos.deb")

SOURCE_ARCHITECTURE = "source"


def component_release_path(dists_dir: Path, component: str, architecture: str) -> Path:
    """Path of the component-level Release stanza for an architecture."""
    if architecture == SOURCE_ARCHITECTURE:
        return dists_dir / component / SOURCE_ARCHITECTURE / "Release"
    return dists_dir / component / f"binary-{architecture}" / "Release"


def render_component_release(codename: str, component: str, label: str, architecture: str) -> str:
    """Render a component-level Release stanza."""
    entry = Deb822()
    entry["Archive"] = codename
    entry["Component"] = component
    entry["Origin"] = label
    entry["Label"] = label
    entry["Architecture"] = architecture
    return entry.dump()


def render_generate_directive(codename: str, component: str, architectures: Sequence[str]) -> str:
    """Render the apt-ftparchive ``generate`` configuration.

    Paths are relative to the distribution directory that contains
    ``pool/`` and ``dists/``.
    """
    conf = (
        'Dir::ArchiveDir ".";\n'
        'Dir::CacheDir ".";\n'
        f'TreeDefault::Directory "pool/{codename}/{component}";\n'
        f'TreeDefault::SrcDirectory "pool/{codename}/{component}";\n'
        'Default::Packages::Extensions ".deb";\n'
        'Default::Packages::Compress ". gzip xz";\n'
        'Default::Sources::Compress ". gzip xz";\n'
        'Default::Contents::Compress "gzip";\n'
    )

    prefix = f"dists/{codename}/{component}"
    for architecture in architectures:
        conf += (
            "\n"
            f'BinDirectory "{prefix}/binary-{architecture}" {{\n'
            f'  Packages "{prefix}/binary-{architecture}/Packages";\n'
            f'  Contents "{prefix}/Contents-{architecture}";\n'
            f'  SrcPackages "{prefix}/source/Sources";\n'
            "};\n"
        )

    conf += (
        "\n"
        f'Tree "dists/{codename}" {{\n'
        f'  Sections "{component}";\n'
        f'  Architectures "{" ".join(architectures)} {SOURCE_ARCHITECTURE}";\n'
        "};\n"
    )
    return conf


def render_release_directive(descriptor: ReleaseDescriptor) -> str:
    """Render the apt-ftparchive ``release`` configuration."""
    fields = [
        ("Origin", descriptor.origin),
        ("Label", descriptor.label),
        ("Architectures", " ".join(descriptor.architectures)),
        ("Codename", descriptor.codename),
        ("Suite", descriptor.suite),
        ("Components", " ".join(descriptor.components)),
        ("Description", descriptor.description),
    ]
    return "".join(f'APT::FTPArchive::Release::{key} "{value}";\n' for key, value in fields)


class DebRepositoryUpdater(RepositoryUpdater):
    """Builds, merges and signs the dists tree of APT targets."""

    def __init__(
        self,
        layout: RepositoryLayout,
        repository: RepositoryConfig,
        indexer: ArchiveIndexer,
        merger: DistsMergerProtocol,
        signer: ManifestSigner,
    ):
        """Initialize Deb updater.

        Args:
            layout: Local snapshot layout
            repository: Repository identity (label, description, gpg key)
            indexer: Index and Release generator (apt-ftparchive)
            merger: Base/new dists merger
            signer: Release manifest signer (gpg)
        """
        super().__init__(layout)
        self.repository = repository
        self.indexer = indexer
        self.merger = merger
        self.signer = signer

    @property
    def ecosystem(self) -> str:
        return "deb"

    @contextmanager
    def _stage(self, target: Target, stage: str, error_class=IndexingError) -> Iterator[None]:
        """Attach target identity and stage to failures raised inside."""
        try:
            yield
        except TargetError as e:
            if e.target:
                raise
            raise type(e)(str(e), target=target.name, stage=stage) from e
        except SigningError as e:
            raise SigningError(f"[{target.name} @ {stage}] {e}") from e
        except OSError as e:
            raise error_class(str(e), target=target.name, stage=stage) from e

    def update_target(self, target: Target, progress: TargetProgress) -> TargetState:
        pool_dir = self.layout.deb_pool_dir(target)
        if not pool_dir.is_dir():
            logger.info(f"No incoming pool {pool_dir} for {target}, skipping")
            progress.advance(TargetState.NO_OP)
            return TargetState.NO_OP

        root_dir = self.layout.incoming.distribution_dir(target.distribution)
        dists_dir = self.layout.deb_dists_dir(SnapshotKind.INCOMING, target)
        self.build_dists(target, root_dir, dists_dir, progress)

        merged_dir = self.layout.deb_dists_dir(SnapshotKind.MERGED, target)
        with self._stage(target, "merge", MergeError):
            self.merge(target, dists_dir, merged_dir)
        progress.advance(TargetState.MERGED)

        with self._stage(target, "sign"):
            self.sign_release(merged_dir)
        progress.advance(TargetState.SIGNED)
        return TargetState.SIGNED

    def build_dists(
        self,
        target: Target,
        root_dir: Path,
        dists_dir: Path,
        progress: TargetProgress,
    ) -> None:
        """Regenerate stanzas, indices and the Release manifest of a codename.

        Args:
            target: Deb target
            root_dir: Distribution directory holding ``pool/`` and ``dists/``
            dists_dir: ``<root_dir>/dists/<codename>``
            progress: Receives STANZAS_GENERATED .. RELEASE_ASSEMBLED
        """
        descriptor = ReleaseDescriptor.for_target(self.repository, target)

        with self._stage(target, "stanzas"):
            if dists_dir.exists():
                shutil.rmtree(dists_dir)
            self.generate_stanzas(target, dists_dir)
        progress.advance(TargetState.STANZAS_GENERATED)

        with self._stage(target, "index"):
            self.generate_index(target, root_dir)
        progress.advance(TargetState.INDEX_GENERATED)

        with self._stage(target, "release"):
            self.assemble_release(root_dir, dists_dir, descriptor)
        progress.advance(TargetState.RELEASE_ASSEMBLED)

    def generate_stanzas(self, target: Target, dists_dir: Path) -> List[Path]:
        """Write ``<component>/{source,binary-<arch>}/Release`` stanzas."""
        written = []
        for architecture in [SOURCE_ARCHITECTURE, *target.architectures]:
            path = component_release_path(dists_dir, target.component, architecture)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(
                render_component_release(
                    target.codename, target.component, self.repository.label, architecture
                ),
                encoding="utf-8",
            )
            written.append(path)
        logger.debug(f"Wrote {len(written)} Release stanzas under {dists_dir}")
        return written

    def generate_index(self, target: Target, root_dir: Path) -> None:
        """Run the archive indexer for the target's pool."""
        directive = render_generate_directive(
            target.codename, target.component, target.architectures
        )
        with tempfile.NamedTemporaryFile(
            mode="w", prefix="apt-ftparchive-generate", suffix=".conf"
        ) as conf:
            conf.write(directive)
            conf.flush()
            logger.info(f"Generating indices for {target}")
            self.indexer.generate(Path(conf.name), root_dir)

    def assemble_release(
        self, root_dir: Path, dists_dir: Path, descriptor: ReleaseDescriptor
    ) -> Path:
        """Regenerate the distribution Release manifest and move it into place."""
        for stale in dists_dir.glob("Release*"):
            stale.unlink()
        for cache in root_dir.glob("*.db"):
            cache.unlink()

        with tempfile.NamedTemporaryFile(
            mode="w", prefix="apt-ftparchive-release", suffix=".conf"
        ) as conf:
            conf.write(render_release_directive(descriptor))
            conf.flush()
            content = self.indexer.release(Path(conf.name), dists_dir)

        release_path = dists_dir / "Release"
        fd, scratch = tempfile.mkstemp(prefix=".Release-", dir=dists_dir.parent)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(content)
            os.replace(scratch, release_path)
        except BaseException:
            Path(scratch).unlink(missing_ok=True)
            raise
        logger.debug(f"Assembled {release_path}")
        return release_path

    def merge(self, target: Target, dists_dir: Path, merged_dir: Path) -> None:
        """Merge the base dists of the codename with the generated one."""
        base_dir = self.layout.deb_dists_dir(SnapshotKind.BASE, target)
        if merged_dir.exists():
            shutil.rmtree(merged_dir)
        merged_dir.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Merging {base_dir} + {dists_dir} -> {merged_dir}")
        self.merger.merge(base_dir, dists_dir, merged_dir)

    def sign_release(self, dists_dir: Path) -> None:
        """Write Release.gpg and InRelease next to the Release manifest."""
        release_path = dists_dir / "Release"
        if not release_path.is_file():
            raise SigningError(f"No Release manifest to sign in {dists_dir}")
        identity = self.repository.gpg_key_id
        (dists_dir / "Release.gpg").write_bytes(self.signer.detach_sign(release_path, identity))
        (dists_dir / "InRelease").write_bytes(self.signer.clear_sign(release_path, identity))
        logger.info(f"Signed {release_path}")

    def rebuild_target(self, target: Target, progress: TargetProgress) -> TargetState:
        """Regenerate and sign a full (non-incremental) mirror in place."""
        root_dir = self.layout.workdir / target.distribution
        dists_dir = root_dir / "dists" / target.codename
        self.build_dists(target, root_dir, dists_dir, progress)
        with self._stage(target, "sign"):
            self.sign_release(dists_dir)
        progress.advance(TargetState.SIGNED)
        return TargetState.SIGNED

    def rebuild_full(self, distribution: str, targets: Sequence[Target]) -> List[TargetResult]:
        """Rebuild every codename of a fully mirrored distribution.

        Used only for recovery: ``<workdir>/<distribution>/pool/<codename>``
        holds every package ever published, so no merge is needed.

        Raises:
            ConfigurationError: If a codename in the pool has no configured target
        """
        pool_root = self.layout.workdir / distribution / "pool"
        if not pool_root.is_dir():
            logger.info(f"No full pool for {distribution}, nothing to rebuild")
            return []

        results = []
        for pool_dir in sorted(p for p in pool_root.iterdir() if p.is_dir()):
            target = self._find_target(distribution, pool_dir.name, targets)
            if target is None:
                raise ConfigurationError(
                    f"No apt target configured for {distribution}/{pool_dir.name}"
                )
            results.append(self._execute(target, self.rebuild_target))
        return results

    @staticmethod
    def _find_target(
        distribution: str, codename: str, targets: Sequence[Target]
    ) -> Optional[Target]:
        for target in targets:
            if target.distribution == distribution and target.codename == codename:
                return target
        return None
