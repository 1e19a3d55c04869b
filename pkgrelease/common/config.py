"""Configuration management for pkgrelease.

Handles loading and validation of the YAML release configuration and
turns it into immutable dataclasses that are passed explicitly to every
component.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .errors import ConfigurationError

ECOSYSTEMS = ("rpm", "deb")

DEFAULT_YUM_TARGETS = [
    {"distribution": "centos", "version": "7"},
    {"distribution": "centos", "version": "8"},
]

DEFAULT_APT_TARGETS = [
    {"distribution": "debian", "codename": "buster", "component": "main"},
    {"distribution": "debian", "codename": "bullseye", "component": "main"},
    {"distribution": "ubuntu", "codename": "bionic", "component": "universe"},
    {"distribution": "ubuntu", "codename": "focal", "component": "universe"},
    {"distribution": "ubuntu", "codename": "hirsute", "component": "universe"},
]

DEFAULT_APT_ARCHITECTURES = ["amd64", "arm64", "i386"]


@dataclass(frozen=True)
class Target:
    """A unit of repository work declared by configuration.

    For RPM targets ``version`` is the distribution version (``"8"``);
    for Deb targets it is the codename (``"bullseye"``) and ``component``
    is set.
    """

    ecosystem: str
    distribution: str
    version: str
    component: Optional[str] = None
    architectures: Tuple[str, ...] = ()

    @property
    def codename(self) -> str:
        return self.version

    @property
    def name(self) -> str:
        """Identity used in logs and error messages."""
        parts = [self.distribution, self.version]
        if self.component:
            parts.append(self.component)
        return "/".join(parts)

    def __str__(self) -> str:
        return f"{self.ecosystem}:{self.name}"


@dataclass(frozen=True)
class RepositoryConfig:
    """Identity of the published repository."""

    label: str
    gpg_key_id: str
    description: str = ""
    remote_path: str = ""
    workdir: str = "repositories"


@dataclass(frozen=True)
class SigningConfig:
    """Configuration for the package signing pool."""

    workers: int = 4
    timeout: int = 300


@dataclass(frozen=True)
class LoggingConfig:
    """Configuration for log output."""

    level: str = "INFO"
    log_dir: str = "/var/log/pkgrelease"
    file_logging: bool = True
    console_logging: bool = True


@dataclass(frozen=True)
class ReleaseConfig:
    """Top-level configuration for a release run."""

    repository: RepositoryConfig
    signing: SigningConfig = field(default_factory=SigningConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    yum_targets: Tuple[Target, ...] = ()
    apt_targets: Tuple[Target, ...] = ()
    apt_architectures: Tuple[str, ...] = tuple(DEFAULT_APT_ARCHITECTURES)

    def targets(self, ecosystem: str) -> Tuple[Target, ...]:
        """Return the targets of one ecosystem in declared order."""
        if ecosystem == "rpm":
            return self.yum_targets
        if ecosystem == "deb":
            return self.apt_targets
        raise ConfigurationError(f"Unknown ecosystem: {ecosystem}")

    def distributions(self, ecosystem: str) -> List[str]:
        """Return unique distribution names of one ecosystem, in order."""
        seen: List[str] = []
        for target in self.targets(ecosystem):
            if target.distribution not in seen:
                seen.append(target.distribution)
        return seen


@dataclass(frozen=True)
class ReleaseDescriptor:
    """Fields written into Release-family files for one Deb target."""

    origin: str
    label: str
    architectures: Tuple[str, ...]
    codename: str
    suite: str
    components: Tuple[str, ...]
    description: str = ""

    @classmethod
    def for_target(cls, repository: RepositoryConfig, target: Target) -> "ReleaseDescriptor":
        if not target.component:
            raise ConfigurationError(f"Target {target} has no component")
        return cls(
            origin=repository.label,
            label=repository.label,
            architectures=target.architectures,
            codename=target.codename,
            suite=target.codename,
            components=(target.component,),
            description=repository.description,
        )


def _require(section: Dict[str, Any], key: str, where: str) -> str:
    """Fetch a required string value, rejecting unexpanded ${VARS}."""
    value = section.get(key)
    if value is None or str(value).strip() == "":
        raise ConfigurationError(f"Missing required setting {where}.{key}")
    value = str(value)
    if value.startswith("$"):
        raise ConfigurationError(
            f"Specify {value.strip('${}')} environment variable for {where}.{key}"
        )
    return value


def parse_repository_config(repo_dict: Dict[str, Any]) -> RepositoryConfig:
    """Parse the ``repository`` section.

    Args:
        repo_dict: Repository configuration dictionary

    Returns:
        RepositoryConfig instance

    Raises:
        ConfigurationError: If the label or signing identity is missing
    """
    return RepositoryConfig(
        label=_require(repo_dict, "label", "repository"),
        gpg_key_id=_require(repo_dict, "gpg_key_id", "repository"),
        description=str(repo_dict.get("description", "")),
        remote_path=str(repo_dict.get("remote_path", "")),
        workdir=str(repo_dict.get("workdir", "repositories")),
    )


def parse_signing_config(signing_dict: Dict[str, Any]) -> SigningConfig:
    """Parse the ``signing`` section.

    Args:
        signing_dict: Signing configuration dictionary

    Returns:
        SigningConfig instance
    """
    workers = int(signing_dict.get("workers", 4))
    if workers < 1:
        raise ConfigurationError(f"signing.workers must be positive, got {workers}")
    return SigningConfig(
        workers=workers,
        timeout=int(signing_dict.get("timeout", 300)),
    )


def parse_logging_config(logging_dict: Dict[str, Any]) -> LoggingConfig:
    """Parse the ``logging`` section.

    Args:
        logging_dict: Logging configuration dictionary

    Returns:
        LoggingConfig instance
    """
    return LoggingConfig(
        level=str(logging_dict.get("level", "INFO")),
        log_dir=str(logging_dict.get("dir", "/var/log/pkgrelease")),
        file_logging=bool(logging_dict.get("file", True)),
        console_logging=bool(logging_dict.get("console", True)),
    )


def parse_target(
    ecosystem: str,
    target_dict: Dict[str, Any],
    architectures: Tuple[str, ...] = (),
) -> Target:
    """Parse a single target entry.

    Args:
        ecosystem: ``rpm`` or ``deb``
        target_dict: Target configuration dictionary
        architectures: Architectures used when the entry lists none

    Returns:
        Target instance

    Raises:
        ConfigurationError: If a required field is missing
    """
    if ecosystem not in ECOSYSTEMS:
        raise ConfigurationError(f"Unknown ecosystem: {ecosystem}")

    where = "yum.targets" if ecosystem == "rpm" else "apt.targets"
    distribution = _require(target_dict, "distribution", where)
    if ecosystem == "rpm":
        version = _require(target_dict, "version", where)
        component = None
    else:
        version = _require(target_dict, "codename", where)
        component = _require(target_dict, "component", where)

    archs = target_dict.get("architectures") or list(architectures)
    return Target(
        ecosystem=ecosystem,
        distribution=distribution,
        version=version,
        component=component,
        architectures=tuple(str(a) for a in archs),
    )


def parse_config(config_dict: Dict[str, Any]) -> ReleaseConfig:
    """Parse the full configuration dictionary.

    Args:
        config_dict: Full configuration dictionary

    Returns:
        ReleaseConfig instance

    Raises:
        ConfigurationError: If required settings are missing
    """
    if "repository" not in config_dict:
        raise ConfigurationError("Missing required section: repository")

    yum_dict = config_dict.get("yum") or {}
    apt_dict = config_dict.get("apt") or {}

    apt_architectures = tuple(apt_dict.get("architectures", DEFAULT_APT_ARCHITECTURES))

    yum_targets = tuple(
        parse_target("rpm", t) for t in yum_dict.get("targets", DEFAULT_YUM_TARGETS)
    )
    apt_targets = tuple(
        parse_target("deb", t, apt_architectures)
        for t in apt_dict.get("targets", DEFAULT_APT_TARGETS)
    )

    return ReleaseConfig(
        repository=parse_repository_config(config_dict["repository"] or {}),
        signing=parse_signing_config(config_dict.get("signing") or {}),
        logging=parse_logging_config(config_dict.get("logging") or {}),
        yum_targets=yum_targets,
        apt_targets=apt_targets,
        apt_architectures=apt_architectures,
    )


def load_config(config_path: str = "/etc/pkgrelease/config.yaml") -> Dict[str, Any]:
    """Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is invalid YAML
        ConfigurationError: If the root of the file is not a mapping
    """
    config_file = Path(config_path)

    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with config_file.open("r") as f:
        config = yaml.safe_load(f)

    if config is None:
        config = {}

    if not isinstance(config, dict):
        raise ConfigurationError(
            f"Configuration root must be a mapping, got {type(config).__name__}"
        )

    return _expand_env_vars(config)


def _expand_env_vars(obj: Any) -> Any:
    """Recursively expand environment variables in configuration.

    Args:
        obj: Configuration object (dict, list, str, etc.)

    Returns:
        Configuration with expanded environment variables
    """
    if isinstance(obj, dict):
        return {key: _expand_env_vars(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        return os.path.expandvars(obj)
    else:
        return obj


def load_typed_config(config_path: str = "/etc/pkgrelease/config.yaml") -> ReleaseConfig:
    """Load and parse configuration into typed dataclasses.

    Args:
        config_path: Path to configuration file

    Returns:
        ReleaseConfig instance
    """
    return parse_config(load_config(config_path))
