"""Exception hierarchy for the release pipeline."""

from typing import Optional, Sequence


class ReleaseError(Exception):
    """Base class for every failure raised by pkgrelease."""


class ConfigurationError(ReleaseError):
    """Required identity or target parameter is missing or invalid."""


class TransportError(ReleaseError):
    """A sync between the local work tree and the remote store failed."""


class SigningError(ReleaseError):
    """Signing identity cannot be trusted or a sign invocation failed.

    Fatal for the whole signing run: a partially signed incoming set
    must never be published.
    """


class TargetError(ReleaseError):
    """Failure scoped to a single repository target.

    Attributes:
        target: Human readable target identity (e.g. ``debian/bullseye/main``)
        stage: Pipeline stage that failed
    """

    def __init__(self, message: str, target: Optional[str] = None, stage: Optional[str] = None):
        self.target = target
        self.stage = stage
        prefix = ""
        if target:
            prefix = f"[{target}"
            if stage:
                prefix += f" @ {stage}"
            prefix += "] "
        super().__init__(prefix + message)


class IndexingError(TargetError):
    """Index or Release generation failed for a target."""


class MergeError(TargetError):
    """Merging the base and generated dists trees failed for a target."""


class CommandError(ReleaseError):
    """An external command exited unsuccessfully or could not be started."""

    def __init__(self, argv: Sequence[str], returncode: Optional[int], stderr: str = ""):
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        if returncode is None:
            message = f"{self.argv[0]} could not be run: {stderr}"
        else:
            message = f"{' '.join(self.argv)} exited with {returncode}"
            if stderr:
                message += f": {stderr.strip()}"
        super().__init__(message)
