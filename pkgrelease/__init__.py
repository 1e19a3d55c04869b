"""pkgrelease: promote incoming packages into signed RPM and APT repositories."""

__version__ = "0.1.0"
