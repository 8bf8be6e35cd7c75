"""Pytest configuration and shared fixtures for dominion-deploy tests."""

import sys
from pathlib import Path

import pytest
import yaml

# Add package to path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from dominion_deploy.notify import RecordingNotifier
from dominion_deploy.pipeline import PipelineConfig, PipelineLogger

from tests.fixtures import RecordingRunner, linear_pipeline


# ============================================================================
# Path Fixtures
# ============================================================================


@pytest.fixture
def project_root() -> Path:
    """Repository root (holds pipelines/, configs/, k8s/)."""
    return PROJECT_ROOT


@pytest.fixture
def deploy_pipeline_path() -> Path:
    """The shipped build-and-deploy pipeline definition."""
    return PROJECT_ROOT / "pipelines" / "ci-cd.yaml"


@pytest.fixture
def workdir(tmp_path) -> Path:
    """Empty repository checkout the pipeline runs in."""
    root = tmp_path / "repo"
    root.mkdir()
    return root


@pytest.fixture
def workdir_with_overlays(workdir) -> Path:
    """Checkout with an overlay directory for every environment."""
    for env in ("dev", "qa", "uat", "prod"):
        (workdir / "k8s" / "overlays" / env).mkdir(parents=True)
    return workdir


# ============================================================================
# Pipeline Fixtures
# ============================================================================


@pytest.fixture
def pipeline_logger(tmp_path) -> PipelineLogger:
    """Initialized logger writing into a temporary directory."""
    logger = PipelineLogger(str(tmp_path / "logs"))
    logger.setup()
    return logger


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture
def deploy_config(deploy_pipeline_path) -> PipelineConfig:
    """Loaded and parsed shipped pipeline."""
    config = PipelineConfig(str(deploy_pipeline_path))
    config.load()
    config.parse_stages()
    return config


@pytest.fixture
def sample_pipeline_config(tmp_path) -> Path:
    """Write the linear two-stage pipeline to a YAML file."""
    path = tmp_path / "pipeline.yaml"
    with open(path, "w") as f:
        yaml.safe_dump(linear_pipeline(), f, sort_keys=False)
    return path
