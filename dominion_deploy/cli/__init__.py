"""Command-line interface for dominion-deploy.

Provides CLI commands for running the deployment pipeline.

Example Usage
-------------
    # From command line:
    dominion-deploy --help
    dominion-deploy run --input environment=qa --input image_tag=1.0.0
    dominion-deploy plan --config pipelines/ci-cd.yaml
    dominion-deploy check-ingress k8s/base/ingress.yaml
"""

from .main import cli, main

__all__ = [
    "cli",
    "main",
]
