"""Bounded concurrent signing of incoming package artifacts.

The pool guarantees that every artifact handed to :meth:`SigningPool.run`
is signed exactly once by the end of a successful run:

- the signing identity is made trusted once, before any worker starts;
- artifacts whose signature is already valid are left alone;
- the first failed job aborts the run with :class:`SigningError`,
  whatever the cause of the failure.
"""

import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping

from ..common.errors import ReleaseError, SigningError
from ..common.logger import get_logger
from ..tools.base import PackageSigner, SignatureState

logger = get_logger("signing")


@dataclass(frozen=True)
class PackageArtifact:
    """A package file in the incoming tree."""

    path: Path
    ecosystem: str


@dataclass
class SigningReport:
    """Outcome of a signing run."""

    signed: List[Path] = field(default_factory=list)
    already_signed: List[Path] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def inspected(self) -> int:
        return len(self.signed) + len(self.already_signed)


class SigningPool:
    """Sign artifacts with a fixed number of worker threads.

    Jobs touch disjoint artifacts and share only the immutable identity,
    so no locking is needed beyond the executor's work queue.
    """

    def __init__(
        self,
        signers: Mapping[str, PackageSigner],
        identity: str,
        workers: int = 4,
        verify_after_sign: bool = True,
    ):
        """Initialize signing pool.

        Args:
            signers: Package signer per ecosystem (``rpm``, ``deb``)
            identity: GPG key id used for every signature
            workers: Number of concurrent signing workers
            verify_after_sign: Re-check the signature state after signing
        """
        if not identity:
            raise SigningError("No signing identity configured")
        if workers < 1:
            raise ValueError(f"workers must be positive, got {workers}")
        self.signers: Dict[str, PackageSigner] = dict(signers)
        self.identity = identity
        self.workers = workers
        self.verify_after_sign = verify_after_sign

    def _signer_for(self, ecosystem: str) -> PackageSigner:
        try:
            return self.signers[ecosystem]
        except KeyError:
            raise SigningError(f"No package signer for ecosystem {ecosystem}") from None

    def ensure_trusted(self, ecosystems: Iterable[str]) -> None:
        """Bootstrap trust for every ecosystem that has work this run."""
        for ecosystem in sorted(set(ecosystems)):
            signer = self._signer_for(ecosystem)
            try:
                signer.ensure_trusted(self.identity)
            except SigningError:
                raise
            except ReleaseError as e:
                raise SigningError(f"Cannot trust {self.identity} for {ecosystem}: {e}") from e

    def _process(self, artifact: PackageArtifact) -> bool:
        """Sign one artifact if needed. Returns True if it was signed."""
        signer = self._signer_for(artifact.ecosystem)
        state = signer.signature_state(artifact.path)
        if not state.needs_signing:
            logger.debug(f"Already signed: {artifact.path}")
            return False

        resign = state is SignatureState.INVALID
        if resign:
            logger.warning(f"Replacing invalid signature: {artifact.path}")
        signer.sign(artifact.path, self.identity, resign=resign)

        if self.verify_after_sign:
            state = signer.signature_state(artifact.path)
            if state is not SignatureState.VALID:
                raise SigningError(f"{artifact.path} is still {state.value} after signing")
        return True

    def run(self, artifacts: Iterable[PackageArtifact]) -> SigningReport:
        """Sign every artifact that is not signed yet.

        Args:
            artifacts: Artifacts to inspect

        Returns:
            SigningReport listing signed and skipped artifacts

        Raises:
            SigningError: If trust cannot be established or any sign fails
        """
        start_time = time.monotonic()
        # one job per artifact, even if it was listed twice
        artifacts = list(dict.fromkeys(artifacts))
        report = SigningReport()
        if not artifacts:
            logger.info("No artifacts to sign")
            return report

        self.ensure_trusted(a.ecosystem for a in artifacts)

        logger.info(f"Signing {len(artifacts)} artifacts with {self.workers} workers")
        executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="sign")
        try:
            futures: Dict[Future, PackageArtifact] = {
                executor.submit(self._process, artifact): artifact for artifact in artifacts
            }
            for future in as_completed(futures):
                artifact = futures[future]
                try:
                    signed = future.result()
                except Exception as e:
                    cancelled = sum(1 for f in futures if f.cancel())
                    logger.error(
                        f"Signing failed for {artifact.path}, "
                        f"aborting run ({cancelled} pending jobs cancelled): {e}"
                    )
                    if isinstance(e, SigningError):
                        raise
                    raise SigningError(f"Failed to sign {artifact.path}: {e}") from e
                if signed:
                    report.signed.append(artifact.path)
                else:
                    report.already_signed.append(artifact.path)
        finally:
            # drain running jobs before returning
            executor.shutdown(wait=True)

        report.duration_seconds = time.monotonic() - start_time
        logger.info(
            f"Signing completed: {len(report.signed)} signed, "
            f"{len(report.already_signed)} already signed"
        )
        return report
