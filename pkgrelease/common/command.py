"""Thin wrapper around subprocess for the external release tools."""

import os
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from .errors import CommandError
from .logger import get_logger

logger = get_logger("command")

PathLike = Union[str, Path]


def run_command(
    args: Sequence[PathLike],
    cwd: Optional[PathLike] = None,
    env: Optional[Dict[str, str]] = None,
    timeout: Optional[int] = None,
    check: bool = True,
) -> subprocess.CompletedProcess:
    """Run an external command once, capturing its output.

    Args:
        args: Command and arguments
        cwd: Working directory for the command
        env: Extra environment variables merged over the current environment
        timeout: Optional timeout in seconds
        check: Raise CommandError on non-zero exit

    Returns:
        CompletedProcess with stdout/stderr as bytes

    Raises:
        CommandError: If the command cannot be started, times out, or
            (with check=True) exits non-zero
    """
    argv: List[str] = [str(arg) for arg in args]
    full_env = None
    if env:
        full_env = dict(os.environ)
        full_env.update(env)

    logger.debug(f"Running: {' '.join(argv)}" + (f" (cwd={cwd})" if cwd else ""))

    try:
        result = subprocess.run(
            argv,
            cwd=str(cwd) if cwd is not None else None,
            env=full_env,
            capture_output=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        raise CommandError(argv, None, f"timed out after {timeout} seconds") from e
    except OSError as e:
        raise CommandError(argv, None, str(e)) from e

    if check and result.returncode != 0:
        stderr = result.stderr.decode(errors="replace") if result.stderr else ""
        raise CommandError(argv, result.returncode, stderr)

    return result
