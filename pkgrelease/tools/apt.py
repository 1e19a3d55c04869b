"""apt-ftparchive wrapper for Debian index and Release generation."""

from pathlib import Path

from ..common.command import run_command
from ..common.errors import CommandError, IndexingError
from ..common.logger import get_logger

logger = get_logger("tools.apt")


class AptFtpArchive:
    """Runs apt-ftparchive in generate and release modes."""

    def __init__(self, ftparchive: str = "apt-ftparchive", timeout: int = 3600):
        self.ftparchive = ftparchive
        self.timeout = timeout

    def generate(self, directive: Path, root_dir: Path) -> None:
        """Generate Packages/Sources/Contents indices.

        Paths inside the directive are relative to ``root_dir``.

        Raises:
            IndexingError: If apt-ftparchive fails
        """
        try:
            run_command(
                [self.ftparchive, "generate", str(Path(directive).resolve())],
                cwd=root_dir,
                timeout=self.timeout,
            )
        except CommandError as e:
            raise IndexingError(str(e), stage="generate") from e

    def release(self, directive: Path, dists_dir: Path) -> bytes:
        """Return the Release manifest content for ``dists_dir``.

        Raises:
            IndexingError: If apt-ftparchive fails
        """
        try:
            result = run_command(
                [self.ftparchive, "-c", str(directive), "release", str(dists_dir)],
                timeout=self.timeout,
            )
        except CommandError as e:
            raise IndexingError(str(e), stage="release") from e
        return result.stdout
