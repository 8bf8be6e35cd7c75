"""dominion-deploy: build, publish and deploy container images to EKS.

This package provides tools for:
- Declarative pipelines of stages with dependency ordering
- Conditional steps (success / always / failure) and best-effort cleanup
- Output passing between stages (e.g. the published image tag)
- Slack notifications on stage start, success and failure
- Environment-specific cluster and overlay selection
- Checks for HTTPS-only ALB ingress manifests

Pipelines are declared in YAML files; environments are loaded from
configs/environments/*.yaml.

Example usage:
    >>> from dominion_deploy.pipeline import PipelineConfig, PipelineExecutor, PipelineLogger
    >>>
    >>> config = PipelineConfig("pipelines/ci-cd.yaml")
    >>> config.load()
    >>> config.parse_stages()
    >>>
    >>> logger = PipelineLogger("logs/")
    >>> logger.setup()
    >>> result = PipelineExecutor(config, logger).run(inputs={"environment": "qa"})
"""

__version__ = "0.1.0"
