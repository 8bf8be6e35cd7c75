"""Centralized deployment configuration for dominion-deploy.

This module provides environment-specific configuration (cluster names,
overlay directories) and the image registry settings shared by the CLI and
the pipeline executor.

Example
-------
>>> from dominion_deploy.config import get_environment_config, list_available_environments
>>>
>>> print(list_available_environments())
['dev', 'qa', 'uat', 'prod']
>>>
>>> config = get_environment_config("production")
>>> print(config.cluster_name)
'prod-dominion-cluster'
>>>
>>> settings = DeploymentSettings.from_env()
>>> print(settings.image_uri("20250101120000"))
'999568710647.dkr.ecr.us-east-2.amazonaws.com/fintech-app:20250101120000'
"""

from .environments import (
    DEFAULT_ENVIRONMENT,
    ENVIRONMENT_NAMES,
    DeploymentSettings,
    EnvironmentConfig,
    get_environment_config,
    list_available_environments,
    register_environment_config,
)

__all__ = [
    "DEFAULT_ENVIRONMENT",
    "ENVIRONMENT_NAMES",
    "DeploymentSettings",
    "EnvironmentConfig",
    "get_environment_config",
    "list_available_environments",
    "register_environment_config",
]
