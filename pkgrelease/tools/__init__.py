"""External tool capabilities used by the release pipeline.

Protocols live in :mod:`pkgrelease.tools.base`; the classes exported
here are the production implementations that shell out to rpm, gpg,
debsign, createrepo_c, apt-ftparchive and rsync.
"""

from .base import (
    SignatureState,
    PackageSigner,
    RpmIndexer,
    ArchiveIndexer,
    DistsMergerProtocol,
    ManifestSigner,
    Transport,
)
from .apt import AptFtpArchive
from .gpg import GpgManifestSigner, DebSourceSigner
from .rpm import RpmPackageSigner, CreaterepoIndexer
from .rsync import RsyncTransport

__all__ = [
    "AptFtpArchive",
    "ArchiveIndexer",
    "CreaterepoIndexer",
    "DebSourceSigner",
    "DistsMergerProtocol",
    "GpgManifestSigner",
    "ManifestSigner",
    "PackageSigner",
    "RpmIndexer",
    "RpmPackageSigner",
    "RsyncTransport",
    "SignatureState",
    "Transport",
]
