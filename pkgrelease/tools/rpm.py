"""RPM tooling: package signing with rpm and repodata with createrepo_c."""

import tempfile
from pathlib import Path
from typing import Optional

from ..common.command import run_command
from ..common.errors import CommandError, IndexingError, SigningError
from ..common.logger import get_logger
from .base import SignatureState
from .gpg import GpgManifestSigner

logger = get_logger("tools.rpm")


def shorten_gpg_key_id(key_id: str) -> str:
    """Return the short (last 8 hex digits) form of a key id."""
    return key_id[-8:]


def rpm_gpg_key_package_name(key_id: str) -> str:
    """Name of the pseudo package rpm registers for an imported key."""
    return f"gpg-pubkey-{shorten_gpg_key_id(key_id).lower()}"


class RpmPackageSigner:
    """Checks and applies RPM package signatures.

    Signature state is read from ``rpm --checksig``; signing uses
    ``rpm --resign`` with the gpg identity configured through macros.
    """

    def __init__(self, gpg: Optional[GpgManifestSigner] = None, timeout: int = 300):
        self.gpg = gpg or GpgManifestSigner(timeout=timeout)
        self.timeout = timeout

    @property
    def ecosystem(self) -> str:
        return "rpm"

    def ensure_trusted(self, identity: str) -> None:
        """Import the public key into the rpm database unless already present.

        Raises:
            SigningError: If the key cannot be exported or imported
        """
        package_name = rpm_gpg_key_package_name(identity)
        try:
            result = run_command(["rpm", "-q", package_name], timeout=self.timeout, check=False)
        except CommandError as e:
            raise SigningError(f"Cannot query rpm database: {e}") from e
        if result.returncode == 0:
            logger.debug(f"{package_name} already imported")
            return

        key = self.gpg.export_public_key(identity)
        with tempfile.NamedTemporaryFile(prefix="repository", suffix=".asc") as key_file:
            key_file.write(key)
            key_file.flush()
            try:
                run_command(["rpm", "--import", key_file.name], timeout=self.timeout)
            except CommandError as e:
                raise SigningError(f"Failed to import {identity} into rpm: {e}") from e
        logger.info(f"Imported {identity} into the rpm database")

    def signature_state(self, artifact: Path) -> SignatureState:
        result = run_command(
            ["rpm", "--checksig", str(artifact)],
            timeout=self.timeout,
            check=False,
        )
        # e.g. "foo.rpm: digests signatures OK" / "foo.rpm: digests OK"
        output = result.stdout.decode(errors="replace").strip()
        summary = output.split(": ", 1)[-1]
        words = summary.split()
        if result.returncode != 0 or "NOT" in words:
            return SignatureState.INVALID
        if "signatures" in words or "pgp" in words:
            return SignatureState.VALID
        return SignatureState.ABSENT

    def sign(self, artifact: Path, identity: str, resign: bool = False) -> None:
        # rpm --resign always replaces existing signatures
        try:
            run_command(
                [
                    "rpm",
                    "-D", f"_gpg_name {identity}",
                    "-D", "__gpg_check_password_cmd /bin/true true",
                    "--resign",
                    str(artifact),
                ],
                timeout=self.timeout,
            )
        except CommandError as e:
            raise SigningError(f"Failed to sign {artifact}: {e}") from e
        logger.info(f"Signed {artifact}")


class CreaterepoIndexer:
    """Incremental repodata generation with createrepo_c."""

    def __init__(self, createrepo: str = "createrepo_c", timeout: int = 3600):
        self.createrepo = createrepo
        self.timeout = timeout

    def reindex(self, directory: Path, package_list: Path) -> None:
        """Update ``directory/repodata`` for the packages in ``package_list``.

        Existing entries in repodata are recycled and unchanged files are
        not re-hashed.

        Raises:
            IndexingError: If createrepo_c fails
        """
        try:
            run_command(
                [
                    self.createrepo,
                    "--recycle-pkglist",
                    "--skip-stat",
                    "--update",
                    "--pkglist", str(package_list),
                    str(directory),
                ],
                timeout=self.timeout,
            )
        except CommandError as e:
            raise IndexingError(str(e), stage="reindex") from e
