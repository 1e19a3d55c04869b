"""rsync-backed transfer between the local work tree and the remote store."""

from typing import Iterable, List

from ..common.command import run_command
from ..common.errors import CommandError, TransportError
from ..common.logger import get_logger

logger = get_logger("tools.rsync")


class RsyncTransport:
    """Mirror directory trees with rsync.

    Each call runs rsync exactly once; failures are surfaced as
    TransportError and never retried here.
    """

    def __init__(self, rsync: str = "rsync", timeout: int = 3600):
        self.rsync = rsync
        self.timeout = timeout

    def build_args(
        self,
        source: str,
        dest: str,
        delete: bool = False,
        includes: Iterable[str] = (),
        excludes: Iterable[str] = (),
    ) -> List[str]:
        args = [self.rsync, "-avz", "--progress"]
        if delete:
            args.append("--delete")
        # rsync applies filter rules in order, includes must come first
        args.extend(f"--include={pattern}" for pattern in includes)
        args.extend(f"--exclude={pattern}" for pattern in excludes)
        args.extend([source, dest])
        return args

    def sync(
        self,
        source: str,
        dest: str,
        delete: bool = False,
        includes: Iterable[str] = (),
        excludes: Iterable[str] = (),
    ) -> None:
        """Transfer ``source`` to ``dest``.

        Raises:
            TransportError: If rsync fails
        """
        args = self.build_args(source, dest, delete, includes, excludes)
        logger.info(f"Syncing {source} -> {dest}")
        try:
            run_command(args, timeout=self.timeout)
        except CommandError as e:
            raise TransportError(f"Failed to sync {source} to {dest}: {e}") from e
