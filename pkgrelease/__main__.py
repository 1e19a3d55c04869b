"""CLI interface for the release pipeline.

Usage::

    python -m pkgrelease <yum|apt> [all|rebuild|<stage>...]

The configuration file is read from ``$PKGRELEASE_CONFIG`` (default
``/etc/pkgrelease/config.yaml``).
"""

import os
import sys

from .common.config import load_typed_config
from .common.errors import ConfigurationError, ReleaseError
from .common.logger import setup_logger
from .pipeline import STAGES, ReleasePipeline, resolve_ecosystem

USAGE = (
    "Usage: python -m pkgrelease <yum|apt> [all|rebuild|<stage>...]\n"
    f"Stages: {', '.join(STAGES)}"
)


def main(argv=None):
    """Main entry point for the release CLI."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args or args[0] in ("-h", "--help"):
        print(USAGE, file=sys.stderr)
        sys.exit(1)

    config_path = os.environ.get("PKGRELEASE_CONFIG", "/etc/pkgrelease/config.yaml")
    try:
        config = load_typed_config(config_path)
        ecosystem = resolve_ecosystem(args[0])
    except (FileNotFoundError, ConfigurationError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    setup_logger(config.logging)

    pipeline = ReleasePipeline.from_config(config)
    stages = args[1:] or ["all"]

    try:
        if stages == ["all"]:
            pipeline.run(ecosystem)
        elif stages == ["rebuild"]:
            pipeline.rebuild(ecosystem)
        else:
            pipeline.run(ecosystem, stages)
    except ReleaseError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    failed = [r for r in pipeline.results.get(ecosystem, []) if not r.is_publishable]
    for result in failed:
        print(
            f"{result.target}: {result.state.value} (reached {result.reached.value}): "
            f"{result.error_message}",
            file=sys.stderr,
        )
    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
