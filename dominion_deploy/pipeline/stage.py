"""Stage and step representation for pipeline execution."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from dominion_deploy.exceptions import PipelineConfigError


class Condition(str, Enum):
    """When a step or stage is allowed to run.

    ``success`` runs only while nothing before it has failed, ``always``
    runs regardless, ``failure`` runs only after something failed.
    """

    SUCCESS = "success"
    ALWAYS = "always"
    FAILURE = "failure"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Condition":
        if value is None:
            return cls.SUCCESS
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(c.value for c in cls)
            raise PipelineConfigError(
                f"Invalid condition '{value}' (expected one of: {allowed})"
            ) from None

    def allows(self, failed: bool) -> bool:
        """Return True if this condition permits running given the failure state."""
        if self is Condition.ALWAYS:
            return True
        if self is Condition.FAILURE:
            return failed
        return not failed


@dataclass
class Step:
    """A single command or built-in action inside a stage.

    Attributes
    ----------
    name : str
        Human-readable step name (e.g., "Build with Maven")
    step_id : str, optional
        Identifier used to reference the step's outputs
        (``${{ steps.<id>.outputs.<name> }}``)
    run : str, optional
        Shell text executed with bash
    uses : str, optional
        Name of a registered built-in action
    with_args : Dict[str, Any]
        Arguments passed to the built-in action
    env : Dict[str, str]
        Extra environment variables for this step
    when : Condition
        Run condition relative to earlier failures in the stage
    continue_on_error : bool
        If True, a failure is logged but never fails the stage
    error_message : str, optional
        Diagnostic logged when the step fails
    working_directory : str, optional
        Directory the command runs in

    Example
    -------
    >>> step = Step(name="Verify access", run="kubectl get nodes",
    ...             error_message="Unable to authenticate with EKS cluster.")
    >>> step.get_command()
    ['bash', '-e', '-o', 'pipefail', '-c', 'kubectl get nodes']
    """

    name: str
    step_id: Optional[str] = None
    run: Optional[str] = None
    uses: Optional[str] = None
    with_args: Dict[str, Any] = field(default_factory=dict)
    env: Dict[str, str] = field(default_factory=dict)
    when: Condition = Condition.SUCCESS
    continue_on_error: bool = False
    error_message: Optional[str] = None
    working_directory: Optional[str] = None

    def __post_init__(self) -> None:
        if (self.run is None) == (self.uses is None):
            raise PipelineConfigError(
                f"Step '{self.name}' must define exactly one of 'run' or 'uses'"
            )

    @property
    def is_shell(self) -> bool:
        return self.run is not None

    def get_command(self, script: Optional[str] = None) -> List[str]:
        """Build the argument list for subprocess execution.

        Parameters
        ----------
        script : str, optional
            Resolved shell text. Defaults to the raw ``run`` text.

        Returns
        -------
        List[str]
            Command arguments suitable for subprocess.run()
        """
        if not self.is_shell:
            raise PipelineConfigError(f"Step '{self.name}' is not a shell step")
        return ["bash", "-e", "-o", "pipefail", "-c", script if script is not None else self.run]

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name}
        if self.step_id:
            data["id"] = self.step_id
        if self.run is not None:
            data["run"] = self.run
        if self.uses is not None:
            data["uses"] = self.uses
            data["with"] = self.with_args
        if self.env:
            data["env"] = self.env
        data["when"] = self.when.value
        data["continue_on_error"] = self.continue_on_error
        if self.error_message:
            data["error_message"] = self.error_message
        if self.working_directory:
            data["working_directory"] = self.working_directory
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], index: int = 0) -> "Step":
        """Create a Step from its YAML mapping.

        Parameters
        ----------
        data : Dict[str, Any]
            Step configuration dictionary
        index : int
            Position in the stage, used for a default name

        Returns
        -------
        Step
            Constructed step object
        """
        if not isinstance(data, dict):
            raise PipelineConfigError(f"Step #{index + 1} must be a mapping")
        return cls(
            name=data.get("name", f"step-{index + 1}"),
            step_id=data.get("id"),
            run=data.get("run"),
            uses=data.get("uses"),
            with_args=dict(data.get("with") or {}),
            env={k: str(v) for k, v in (data.get("env") or {}).items()},
            when=Condition.parse(data.get("when")),
            continue_on_error=bool(data.get("continue_on_error", False)),
            error_message=data.get("error_message"),
            working_directory=data.get("working_directory"),
        )


@dataclass
class Stage:
    """Represents a single pipeline stage with steps, outputs, and dependencies.

    Attributes
    ----------
    name : str
        Human-readable stage name (e.g., "Build and Push Docker Image")
    stage_id : str
        Short identifier (e.g., "build-and-push", "deploy")
    steps : List[Step]
        Ordered steps executed by the stage
    depends_on : List[str]
        List of stage IDs this stage depends on
    outputs : Dict[str, str]
        Output names mapped to templates resolved after the steps ran
    timeout_minutes : float, optional
        Wall-clock bound for the whole stage
    when : Condition
        Run condition relative to the outcome of the dependencies
    env : Dict[str, str]
        Environment variables shared by all steps
    notify : Dict[str, str]
        Message templates keyed by ``start``, ``success`` and ``failure``

    Example
    -------
    >>> stage = Stage(
    ...     name="Deploy to EKS",
    ...     stage_id="deploy",
    ...     steps=[Step(name="Apply", run="kubectl apply -k k8s/overlays/prod")],
    ...     depends_on=["build-and-push"],
    ... )
    """

    name: str
    stage_id: str
    steps: List[Step] = field(default_factory=list)
    depends_on: List[str] = field(default_factory=list)
    outputs: Dict[str, str] = field(default_factory=dict)
    timeout_minutes: Optional[float] = None
    when: Condition = Condition.SUCCESS
    env: Dict[str, str] = field(default_factory=dict)
    notify: Dict[str, str] = field(default_factory=dict)

    NOTIFY_EVENTS = ("start", "success", "failure")

    @property
    def timeout_seconds(self) -> Optional[float]:
        if self.timeout_minutes is None:
            return None
        return float(self.timeout_minutes) * 60.0

    def validate(self) -> List[str]:
        """Check the stage definition for structural problems.

        Returns
        -------
        List[str]
            Error descriptions, empty if the stage is well formed
        """
        errors = []

        if not self.steps:
            errors.append(f"Stage '{self.stage_id}' has no steps")

        seen = set()
        for step in self.steps:
            if step.step_id is None:
                continue
            if step.step_id in seen:
                errors.append(
                    f"Stage '{self.stage_id}' has duplicate step id '{step.step_id}'"
                )
            seen.add(step.step_id)

        for event in self.notify:
            if event not in self.NOTIFY_EVENTS:
                errors.append(
                    f"Stage '{self.stage_id}' has unknown notify event '{event}'"
                )

        if self.timeout_minutes is not None and self.timeout_minutes <= 0:
            errors.append(f"Stage '{self.stage_id}' timeout must be positive")

        return errors

    def templates(self) -> Iterator[str]:
        """Yield every string in the stage that may hold ``${{ ... }}`` expressions."""
        yield from self.outputs.values()
        yield from self.env.values()
        yield from self.notify.values()
        for step in self.steps:
            if step.run is not None:
                yield step.run
            yield from step.env.values()
            yield from (str(v) for v in step.with_args.values())
            if step.error_message:
                yield step.error_message
            if step.working_directory:
                yield step.working_directory

    def to_dict(self) -> Dict[str, Any]:
        """Convert stage to dictionary for serialization.

        Returns
        -------
        Dict[str, Any]
            Stage configuration as dictionary
        """
        return {
            "name": self.name,
            "stage_id": self.stage_id,
            "steps": [step.to_dict() for step in self.steps],
            "depends_on": self.depends_on,
            "outputs": self.outputs,
            "timeout_minutes": self.timeout_minutes,
            "when": self.when.value,
            "env": self.env,
            "notify": self.notify,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], stage_id: str) -> "Stage":
        """Create Stage from dictionary.

        Parameters
        ----------
        data : Dict[str, Any]
            Stage configuration dictionary
        stage_id : str
            Stage identifier

        Returns
        -------
        Stage
            Constructed stage object
        """
        if not isinstance(data, dict):
            raise PipelineConfigError(f"Stage '{stage_id}' must be a mapping")
        if "steps" not in data:
            raise PipelineConfigError(f"Stage '{stage_id}' missing required field 'steps'")

        depends_on = data.get("depends_on", [])
        if isinstance(depends_on, str):
            depends_on = [depends_on]

        timeout = data.get("timeout_minutes")

        return cls(
            name=data.get("name", stage_id),
            stage_id=stage_id,
            steps=[Step.from_dict(s, i) for i, s in enumerate(data["steps"] or [])],
            depends_on=list(depends_on),
            outputs={k: str(v) for k, v in (data.get("outputs") or {}).items()},
            timeout_minutes=float(timeout) if timeout is not None else None,
            when=Condition.parse(data.get("when")),
            env={k: str(v) for k, v in (data.get("env") or {}).items()},
            notify={k: str(v) for k, v in (data.get("notify") or {}).items()},
        )
