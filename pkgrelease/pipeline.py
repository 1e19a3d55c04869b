"""Release pipeline: sequences the stages of one ecosystem's release.

Stages run in this order for a full release::

    download_base -> download_incoming -> sign -> update -> upload -> remove_incoming

Signing must succeed before any index is generated, and upload is
refused while any target of the run is not publishable or any merged
Release manifest lacks fresh signatures.
"""

from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

from .common.config import ReleaseConfig
from .common.errors import ConfigurationError, ReleaseError
from .common.logger import get_logger
from .repos.base import RepositoryLayout, RepositoryUpdater, SnapshotKind, TargetResult
from .repos.deb import DebRepositoryUpdater
from .repos.merge import DistsMerger
from .repos.rpm import RpmRepositoryUpdater
from .repos.transfer import RepositoryTransfer
from .signing.pool import PackageArtifact, SigningPool, SigningReport
from .tools.apt import AptFtpArchive
from .tools.base import (
    ArchiveIndexer,
    DistsMergerProtocol,
    ManifestSigner,
    PackageSigner,
    RpmIndexer,
    Transport,
)
from .tools.gpg import DebSourceSigner, GpgManifestSigner
from .tools.rpm import CreaterepoIndexer, RpmPackageSigner
from .tools.rsync import RsyncTransport

logger = get_logger("pipeline")

STAGES = (
    "download_base",
    "download_incoming",
    "sign",
    "update",
    "upload",
    "remove_incoming",
)

ECOSYSTEM_ALIASES = {"yum": "rpm", "rpm": "rpm", "apt": "deb", "deb": "deb"}

ARTIFACT_PATTERNS = {
    "rpm": ("*.rpm",),
    "deb": ("*.dsc", "*.changes"),
}


def resolve_ecosystem(name: str) -> str:
    try:
        return ECOSYSTEM_ALIASES[name]
    except KeyError:
        raise ConfigurationError(f"Unknown ecosystem: {name}") from None


class ReleasePipeline:
    """Runs release stages with explicitly injected capabilities."""

    def __init__(
        self,
        config: ReleaseConfig,
        signers: Mapping[str, PackageSigner],
        rpm_indexer: RpmIndexer,
        archive_indexer: ArchiveIndexer,
        merger: DistsMergerProtocol,
        manifest_signer: ManifestSigner,
        transport: Optional[Transport] = None,
        layout: Optional[RepositoryLayout] = None,
    ):
        self.config = config
        self.layout = layout or RepositoryLayout(Path(config.repository.workdir))
        self.signers = dict(signers)
        self.transport = transport
        self.updaters: Dict[str, RepositoryUpdater] = {
            "rpm": RpmRepositoryUpdater(self.layout, rpm_indexer),
            "deb": DebRepositoryUpdater(
                self.layout, config.repository, archive_indexer, merger, manifest_signer
            ),
        }
        self.results: Dict[str, List[TargetResult]] = {}

    @classmethod
    def from_config(cls, config: ReleaseConfig) -> "ReleasePipeline":
        """Build a pipeline backed by the real command-line tools."""
        timeout = config.signing.timeout
        gpg = GpgManifestSigner(timeout=timeout)
        return cls(
            config,
            signers={
                "rpm": RpmPackageSigner(gpg, timeout=timeout),
                "deb": DebSourceSigner(gpg, timeout=timeout),
            },
            rpm_indexer=CreaterepoIndexer(),
            archive_indexer=AptFtpArchive(),
            merger=DistsMerger(),
            manifest_signer=gpg,
            transport=RsyncTransport(),
        )

    @property
    def transfer(self) -> RepositoryTransfer:
        if self.transport is None:
            raise ConfigurationError("No transport configured for transfer stages")
        return RepositoryTransfer(self.config, self.layout, self.transport)

    def collect_artifacts(self, ecosystem: str) -> List[PackageArtifact]:
        """Find every package artifact of the ecosystem in the incoming tree."""
        roots = []
        if ecosystem == "rpm":
            for target in self.config.targets("rpm"):
                roots.append(self.layout.rpm_version_dir(SnapshotKind.INCOMING, target))
        else:
            for distribution in self.config.distributions("deb"):
                roots.append(self.layout.incoming.distribution_dir(distribution))

        artifacts = []
        for root in roots:
            if not root.is_dir():
                continue
            for pattern in ARTIFACT_PATTERNS[ecosystem]:
                for path in sorted(root.rglob(pattern)):
                    if path.is_file():
                        artifacts.append(PackageArtifact(path, ecosystem))
        return artifacts

    def sign(self, ecosystem: str) -> SigningReport:
        """Sign every unsigned incoming artifact; fail-fast on error."""
        pool = SigningPool(
            self.signers,
            self.config.repository.gpg_key_id,
            workers=self.config.signing.workers,
        )
        return pool.run(self.collect_artifacts(ecosystem))

    def update(self, ecosystem: str) -> List[TargetResult]:
        """Update every target; failures are isolated per target."""
        results = self.updaters[ecosystem].update_all(self.config.targets(ecosystem))
        self.results[ecosystem] = results
        failed = [r for r in results if r.failed]
        for result in failed:
            logger.error(
                f"{result.target} failed after {result.reached.value}: {result.error_message}"
            )
        logger.info(
            f"Updated {len(results) - len(failed)}/{len(results)} {ecosystem} targets"
        )
        return results

    def rebuild(self, ecosystem: str) -> List[TargetResult]:
        """Recovery: rebuild every full APT mirror in place."""
        if ecosystem != "deb":
            raise ConfigurationError("Full rebuild is only supported for apt repositories")
        updater = self.updaters["deb"]
        results: List[TargetResult] = []
        for distribution in self.config.distributions("deb"):
            results.extend(updater.rebuild_full(distribution, self.config.targets("deb")))
        self.results[ecosystem] = results
        return results

    def upload(self, ecosystem: str) -> None:
        """Upload the release, refusing if any target of this run failed."""
        results = self.results.get(ecosystem)
        if results is None:
            logger.warning(f"Uploading {ecosystem} without update results from this run")
        else:
            unpublishable = [r for r in results if not r.is_publishable]
            if unpublishable:
                names = ", ".join(str(r.target) for r in unpublishable)
                raise ReleaseError(f"Refusing to upload, incomplete targets: {names}")
        transfer = self.transfer
        if ecosystem == "deb":
            unsigned = transfer.unsigned_dists()
            if unsigned:
                names = ", ".join(str(d) for d in unsigned)
                raise ReleaseError(f"Refusing to upload unsigned dists: {names}")
        transfer.upload(ecosystem)

    def run_stage(self, ecosystem: str, stage: str):
        """Run a single stage by name."""
        if stage not in STAGES:
            raise ConfigurationError(f"Unknown stage: {stage}")
        if stage == "download_base":
            return self.transfer.download_base(ecosystem)
        if stage == "download_incoming":
            return self.transfer.download_incoming(ecosystem)
        if stage == "remove_incoming":
            return self.transfer.remove_incoming(ecosystem)
        return getattr(self, stage)(ecosystem)

    def run(self, ecosystem: str, stages: Sequence[str] = STAGES) -> None:
        """Run stages in order; the first failing stage stops the release."""
        ecosystem = resolve_ecosystem(ecosystem)
        for stage in stages:
            logger.info(f"[{ecosystem}] {stage}")
            self.run_stage(ecosystem, stage)
