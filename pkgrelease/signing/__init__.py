"""Concurrent package signing."""

from .pool import PackageArtifact, SigningPool, SigningReport

__all__ = ["PackageArtifact", "SigningPool", "SigningReport"]
