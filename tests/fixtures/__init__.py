"""Test fixtures for dominion-deploy.

Provides pipeline definitions and a recording command runner.
"""

from .pipelines import linear_pipeline
from .runners import RecordingRunner, failing

__all__ = [
    "linear_pipeline",
    "RecordingRunner",
    "failing",
]
