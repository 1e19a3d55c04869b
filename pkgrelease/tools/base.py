"""Protocols for the external tools the release pipeline drives.

Each capability has one production implementation in this package that
shells out to the real tool. Pipeline code depends only on these
protocols, so tests can substitute in-memory fakes.
"""

from enum import Enum
from pathlib import Path
from typing import Iterable, Protocol


class SignatureState(Enum):
    """Observed signature state of a package artifact."""

    VALID = "valid"
    INVALID = "invalid"
    ABSENT = "absent"

    @property
    def needs_signing(self) -> bool:
        """Invalid and absent signatures are both (re-)signed."""
        return self is not SignatureState.VALID


class PackageSigner(Protocol):
    """Package-level signature check and application for one ecosystem."""

    @property
    def ecosystem(self) -> str: ...

    def ensure_trusted(self, identity: str) -> None:
        """Make the signing identity trusted locally. Idempotent."""
        ...

    def signature_state(self, artifact: Path) -> SignatureState: ...

    def sign(self, artifact: Path, identity: str, resign: bool = False) -> None:
        """Sign the artifact; ``resign`` replaces a signature that is present but invalid."""
        ...


class RpmIndexer(Protocol):
    """Incremental RPM repodata generation."""

    def reindex(self, directory: Path, package_list: Path) -> None: ...


class ArchiveIndexer(Protocol):
    """Debian-style index and Release generation."""

    def generate(self, directive: Path, root_dir: Path) -> None: ...

    def release(self, directive: Path, dists_dir: Path) -> bytes: ...


class DistsMergerProtocol(Protocol):
    """Three-way merge of base and newly generated dists trees."""

    def merge(self, base_dir: Path, new_dir: Path, output_dir: Path) -> None: ...


class ManifestSigner(Protocol):
    """Release manifest signing."""

    def detach_sign(self, manifest: Path, identity: str) -> bytes: ...

    def clear_sign(self, manifest: Path, identity: str) -> bytes: ...


class Transport(Protocol):
    """Opaque tree transfer to and from the remote store."""

    def sync(
        self,
        source: str,
        dest: str,
        delete: bool = False,
        includes: Iterable[str] = (),
        excludes: Iterable[str] = (),
    ) -> None: ...
