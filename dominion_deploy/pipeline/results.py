"""Result records produced by a pipeline run."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class StepStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"
    TIMED_OUT = "timed_out"


@dataclass
class StepResult:
    """Outcome of one step.

    ``ignored`` marks a failure that ``continue_on_error`` kept from failing
    the stage.
    """

    name: str
    status: StepStatus
    duration: float = 0.0
    outputs: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None
    ignored: bool = False

    @property
    def counts_as_failure(self) -> bool:
        return self.status in (StepStatus.FAILED, StepStatus.TIMED_OUT) and not self.ignored

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "duration": round(self.duration, 3),
            "outputs": self.outputs,
            "error": self.error,
            "ignored": self.ignored,
        }


@dataclass
class StageResult:
    """Outcome of one stage and its steps."""

    stage_id: str
    status: StepStatus
    duration: float = 0.0
    steps: List[StepResult] = field(default_factory=list)
    outputs: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status is StepStatus.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage_id": self.stage_id,
            "status": self.status.value,
            "duration": round(self.duration, 3),
            "outputs": self.outputs,
            "error": self.error,
            "steps": [s.to_dict() for s in self.steps],
        }


@dataclass
class PipelineResult:
    """Outcome of a whole run."""

    name: str
    inputs: Dict[str, str] = field(default_factory=dict)
    stages: List[StageResult] = field(default_factory=list)
    started_at: Optional[str] = None
    duration: float = 0.0
    dry_run: bool = False
    triggered: bool = True

    @property
    def succeeded(self) -> bool:
        # A skipped stage only follows a failed one or an unmet ``failure`` condition
        return not any(
            s.status in (StepStatus.FAILED, StepStatus.TIMED_OUT) for s in self.stages
        )

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1

    @property
    def failed_stage(self) -> Optional[str]:
        for stage in self.stages:
            if stage.status in (StepStatus.FAILED, StepStatus.TIMED_OUT):
                return stage.stage_id
        return None

    def get_stage(self, stage_id: str) -> Optional[StageResult]:
        for stage in self.stages:
            if stage.stage_id == stage_id:
                return stage
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "inputs": self.inputs,
            "started_at": self.started_at,
            "duration": round(self.duration, 3),
            "dry_run": self.dry_run,
            "triggered": self.triggered,
            "succeeded": self.succeeded,
            "stages": [s.to_dict() for s in self.stages],
        }
