"""Pipeline orchestration module.

Provides YAML-based pipeline definitions and stage execution with
dependency resolution, conditional steps, output passing, and
notifications.

Example Usage
-------------
>>> from dominion_deploy.pipeline import (
...     PipelineConfig,
...     PipelineExecutor,
...     PipelineLogger,
... )
>>> # Load configuration
>>> config = PipelineConfig("pipelines/ci-cd.yaml")
>>> config.load()
>>> config.parse_stages()
>>> # Setup logging
>>> logger = PipelineLogger("logs/")
>>> logger.setup()
>>> # Execute pipeline
>>> executor = PipelineExecutor(config, logger)
>>> result = executor.run(inputs={"environment": "qa"})
>>> exit_code = result.exit_code
"""

# Stage representation
from .stage import Condition, Stage, Step

# Configuration
from .config import PipelineConfig
from .inputs import InputSpec, TriggerConfig, resolve_inputs

# Run values
from .context import RunContext

# Built-in actions
from .actions import (
    generate_image_tag,
    get_action,
    list_actions,
    register_action,
    resolve_image_tag,
)

# Logging
from .logger import ColoredFormatter, PipelineLogger, SecretMaskingFilter

# Execution
from .runner import CommandResult, CommandRunner
from .results import PipelineResult, StageResult, StepResult, StepStatus
from .executor import PipelineExecutor

__all__ = [
    # Stage
    "Condition",
    "Stage",
    "Step",
    # Config
    "PipelineConfig",
    "InputSpec",
    "TriggerConfig",
    "resolve_inputs",
    # Context
    "RunContext",
    # Actions
    "generate_image_tag",
    "get_action",
    "list_actions",
    "register_action",
    "resolve_image_tag",
    # Logging
    "ColoredFormatter",
    "PipelineLogger",
    "SecretMaskingFilter",
    # Execution
    "CommandResult",
    "CommandRunner",
    "PipelineExecutor",
    "PipelineResult",
    "StageResult",
    "StepResult",
    "StepStatus",
]
