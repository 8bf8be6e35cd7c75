"""Deployment environments and registry settings.

This module is the single source of truth for where a release goes: which
EKS cluster serves an environment, which Kustomize overlay configures it,
and which ECR repository holds the image.

Example
-------
>>> from dominion_deploy.config import get_environment_config
>>> config = get_environment_config("qa")
>>> config.cluster_name
'qa-dominion-cluster'
>>> config.overlay_dir
'k8s/overlays/qa'
"""

import os
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import yaml

ENVIRONMENT_NAMES = ("dev", "qa", "uat", "prod")
DEFAULT_ENVIRONMENT = "prod"
CLUSTER_SUFFIX = "dominion-cluster"
OVERLAYS_ROOT = "k8s/overlays"


@dataclass
class EnvironmentConfig:
    """Configuration for one deployment environment.

    Attributes
    ----------
    name : str
        Canonical environment name (one of dev, qa, uat, prod)
    cluster_name : str
        EKS cluster name, ``<environment>-dominion-cluster`` unless overridden
    overlay_dir : str
        Kustomize overlay directory, ``k8s/overlays/<environment>`` unless
        overridden
    aliases : List[str]
        Alternative names for this environment
    """

    name: str
    cluster_name: str = ""
    overlay_dir: str = ""
    aliases: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.cluster_name:
            self.cluster_name = f"{self.name}-{CLUSTER_SUFFIX}"
        if not self.overlay_dir:
            self.overlay_dir = f"{OVERLAYS_ROOT}/{self.name}"

    def to_target(self, settings: Optional["DeploymentSettings"] = None) -> Dict[str, str]:
        """Flatten into the ``target`` namespace used by pipeline templates."""
        settings = settings or DeploymentSettings.from_env()
        return {
            "environment": self.name,
            "cluster_name": self.cluster_name,
            "overlay_dir": self.overlay_dir,
            "region": settings.region,
            "registry": settings.registry,
            "image_repository": settings.image_repository,
        }

    @classmethod
    def from_yaml(cls, path: Path) -> "EnvironmentConfig":
        """Load environment config from YAML file.

        Parameters
        ----------
        path : Path
            Path to YAML file

        Returns
        -------
        EnvironmentConfig
            Loaded configuration
        """
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls(
            name=data.get("environment", ""),
            cluster_name=data.get("cluster", {}).get("name", ""),
            overlay_dir=data.get("overlay", ""),
            aliases=data.get("aliases", []),
        )


@dataclass
class DeploymentSettings:
    """AWS account, region and ECR repository of the released image."""

    region: str = "us-east-2"
    account_id: str = "999568710647"
    repository: str = "fintech-app"

    @property
    def registry(self) -> str:
        return f"{self.account_id}.dkr.ecr.{self.region}.amazonaws.com"

    @property
    def image_repository(self) -> str:
        return f"{self.registry}/{self.repository}"

    def image_uri(self, tag: str) -> str:
        """Full image reference for a tag."""
        if not tag:
            raise ValueError("Image tag must not be empty")
        return f"{self.image_repository}:{tag}"

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "DeploymentSettings":
        """Read ``AWS_REGION``, ``AWS_ACCOUNT_ID`` and ``ECR_REPO``."""
        environ = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            region=environ.get("AWS_REGION") or defaults.region,
            account_id=environ.get("AWS_ACCOUNT_ID") or defaults.account_id,
            repository=environ.get("ECR_REPO") or defaults.repository,
        )


# =============================================================================
# Registry
# =============================================================================

ENVIRONMENT_REGISTRY: Dict[str, EnvironmentConfig] = {}

ENVIRONMENT_ALIASES: Dict[str, str] = {}

_BUILTINS_LOADED = False


def register_environment_config(config: EnvironmentConfig) -> None:
    """Register an environment configuration.

    Parameters
    ----------
    config : EnvironmentConfig
        Configuration to register

    Raises
    ------
    ValueError
        If the environment is not one of the fixed set
    """
    name = config.name.lower().strip()
    if name not in ENVIRONMENT_NAMES:
        raise ValueError(
            f"Unknown environment: '{config.name}'. "
            f"Expected one of: {list(ENVIRONMENT_NAMES)}"
        )
    ENVIRONMENT_REGISTRY[name] = config

    for alias in config.aliases:
        ENVIRONMENT_ALIASES[alias.lower()] = name


def get_environment_config(name: Optional[str] = None) -> EnvironmentConfig:
    """Get environment configuration by name or alias.

    Parameters
    ----------
    name : str, optional
        Environment name or alias. Blank or None selects ``prod``.

    Returns
    -------
    EnvironmentConfig
        Environment configuration

    Raises
    ------
    ValueError
        If the environment is not registered
    """
    _ensure_builtins_loaded()

    key = (name or DEFAULT_ENVIRONMENT).lower().strip() or DEFAULT_ENVIRONMENT
    key = ENVIRONMENT_ALIASES.get(key, key)

    if key not in ENVIRONMENT_REGISTRY:
        raise ValueError(
            f"Unknown environment: '{name}'. "
            f"Available: {list_available_environments()}. "
            f"Aliases: {dict(ENVIRONMENT_ALIASES)}"
        )
    return ENVIRONMENT_REGISTRY[key]


def list_available_environments() -> List[str]:
    """List all registered environment names in promotion order."""
    _ensure_builtins_loaded()
    return [name for name in ENVIRONMENT_NAMES if name in ENVIRONMENT_REGISTRY]


def _ensure_builtins_loaded() -> None:
    global _BUILTINS_LOADED
    if _BUILTINS_LOADED:
        return

    for env_name in ENVIRONMENT_NAMES:
        ENVIRONMENT_REGISTRY.setdefault(env_name, EnvironmentConfig(name=env_name))
    _load_builtin_configs()
    _BUILTINS_LOADED = True


def _load_builtin_configs() -> None:
    """Load environment overrides from configs/environments/*.yaml."""
    package_root = Path(__file__).parent.parent.parent
    configs_dir = package_root / "configs" / "environments"

    if not configs_dir.exists():
        return

    for yaml_path in sorted(configs_dir.glob("*.yaml")):
        try:
            config = EnvironmentConfig.from_yaml(yaml_path)
            register_environment_config(config)
        except (OSError, yaml.YAMLError, ValueError) as e:
            warnings.warn(f"Failed to load environment config from {yaml_path}: {e}")
