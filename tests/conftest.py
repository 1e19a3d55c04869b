"""Pytest configuration and shared fixtures."""

import logging

import pytest

from pkgrelease.common.config import parse_config
from pkgrelease.repos.base import RepositoryLayout


@pytest.fixture
def sample_config():
    """Sample configuration dictionary."""
    return {
        "repository": {
            "label": "Example",
            "description": "Example package repository",
            "gpg_key_id": "0123456789ABCDEF",
            "remote_path": "packages@example.org:/srv/packages",
            "workdir": "repositories",
        },
        "signing": {
            "workers": 4,
            "timeout": 300,
        },
        "yum": {
            "targets": [
                {"distribution": "centos", "version": "7"},
                {"distribution": "centos", "version": "8"},
            ],
        },
        "apt": {
            "architectures": ["amd64", "arm64"],
            "targets": [
                {"distribution": "debian", "codename": "buster", "component": "main"},
                {"distribution": "debian", "codename": "bullseye", "component": "main"},
                {"distribution": "ubuntu", "codename": "focal", "component": "universe"},
            ],
        },
        "logging": {
            "level": "INFO",
            "file": False,
            "console": False,
        },
    }


@pytest.fixture
def release_config(sample_config, tmp_path):
    """Typed configuration whose work directory lives in tmp_path."""
    sample_config["repository"]["workdir"] = str(tmp_path / "repositories")
    return parse_config(sample_config)


@pytest.fixture
def layout(release_config):
    """Snapshot layout below the temporary work directory."""
    return RepositoryLayout(release_config.repository.workdir)


@pytest.fixture(autouse=True)
def isolated_logging():
    """Drop handlers added to the pkgrelease logger by a test."""
    logger = logging.getLogger("pkgrelease")
    handlers = list(logger.handlers)
    yield
    for handler in logger.handlers[:]:
        if handler not in handlers:
            logger.removeHandler(handler)
            handler.close()
