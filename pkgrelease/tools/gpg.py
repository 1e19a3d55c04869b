"""GnuPG wrappers: manifest signing and source package signing."""

from pathlib import Path
from typing import List, Optional

from ..common.command import run_command
from ..common.errors import CommandError, SigningError
from ..common.logger import get_logger
from .base import SignatureState

logger = get_logger("tools.gpg")


class GpgManifestSigner:
    """Produce detached and clear-signed forms of a Release manifest."""

    def __init__(self, gpg: str = "gpg", homedir: Optional[str] = None, timeout: int = 300):
        self.gpg = gpg
        self.homedir = homedir
        self.timeout = timeout

    def base_args(self) -> List[str]:
        args = [self.gpg, "--batch"]
        if self.homedir:
            args.extend(["--homedir", self.homedir])
        return args

    def _sign(self, mode: List[str], manifest: Path, identity: str) -> bytes:
        args = self.base_args() + mode + [
            "--local-user", identity,
            "--output", "-",
            str(manifest),
        ]
        try:
            result = run_command(args, timeout=self.timeout)
        except CommandError as e:
            raise SigningError(f"Failed to sign {manifest}: {e}") from e
        return result.stdout

    def detach_sign(self, manifest: Path, identity: str) -> bytes:
        """Create an armored detached signature (Release.gpg)."""
        return self._sign(["--sign", "--detach-sign", "--armor"], manifest, identity)

    def clear_sign(self, manifest: Path, identity: str) -> bytes:
        """Create a clear-signed manifest (InRelease)."""
        return self._sign(["--clear-sign"], manifest, identity)

    def export_public_key(self, identity: str) -> bytes:
        """Export the armored public key of an identity."""
        try:
            result = run_command(
                self.base_args() + ["--armor", "--export", identity],
                timeout=self.timeout,
            )
        except CommandError as e:
            raise SigningError(f"Failed to export public key {identity}: {e}") from e
        if not result.stdout.strip():
            raise SigningError(f"No public key found for {identity}")
        return result.stdout

    def has_secret_key(self, identity: str) -> bool:
        result = run_command(
            self.base_args() + ["--list-secret-keys", identity],
            timeout=self.timeout,
            check=False,
        )
        return result.returncode == 0


class DebSourceSigner:
    """Signs Debian ``.dsc`` and ``.changes`` files with debsign."""

    # gpg --verify diagnostics that mean a signature exists but is unusable
    INVALID_MARKERS = ("BAD signature", "No public key", "Can't check signature")

    def __init__(self, gpg: Optional[GpgManifestSigner] = None, timeout: int = 300):
        self.gpg = gpg or GpgManifestSigner(timeout=timeout)
        self.timeout = timeout

    @property
    def ecosystem(self) -> str:
        return "deb"

    def ensure_trusted(self, identity: str) -> None:
        """Debian sources are signed from the local keyring directly."""
        try:
            available = self.gpg.has_secret_key(identity)
        except CommandError as e:
            raise SigningError(f"Cannot query gpg keyring: {e}") from e
        if not available:
            raise SigningError(f"Secret key {identity} is not available in the gpg keyring")

    def signature_state(self, artifact: Path) -> SignatureState:
        result = run_command(
            self.gpg.base_args() + ["--verify", str(artifact)],
            env={"LANG": "C"},
            timeout=self.timeout,
            check=False,
        )
        if result.returncode == 0:
            return SignatureState.VALID
        stderr = result.stderr.decode(errors="replace")
        if any(marker in stderr for marker in self.INVALID_MARKERS):
            return SignatureState.INVALID
        return SignatureState.ABSENT

    def sign(self, artifact: Path, identity: str, resign: bool = False) -> None:
        mode = "--re-sign" if resign else "--no-re-sign"
        try:
            run_command(
                ["debsign", mode, f"-k{identity}", str(artifact)],
                timeout=self.timeout,
            )
        except CommandError as e:
            raise SigningError(f"Failed to sign {artifact}: {e}") from e
        logger.info(f"Signed {artifact}")
