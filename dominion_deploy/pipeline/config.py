"""Pipeline definition loading and dependency checks."""

import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple

import yaml

from dominion_deploy.exceptions import PipelineConfigError

from .context import EXPRESSION_RE
from .inputs import InputSpec, TriggerConfig
from .stage import Stage

NEEDS_REF_RE = re.compile(r"\bneeds\.([A-Za-z0-9_-]+)")


class PipelineConfig:
    """A pipeline definition read from YAML.

    Top-level sections are ``pipeline`` (name, version), ``on`` (trigger
    events), ``inputs``, ``env``, ``secrets``, ``target`` and ``stages``.

    Parameters
    ----------
    config_path : str
        Path to the YAML configuration file

    Attributes
    ----------
    raw_config : Dict[str, Any]
        Mapping as loaded from YAML
    stages : Dict[str, Stage]
        Stages by id, in declaration order
    inputs : Dict[str, InputSpec]
        Manual-trigger parameters
    triggers : TriggerConfig
        Events that start the pipeline
    env : Dict[str, str]
        Pipeline-wide environment variables
    secrets : List[str]
        Names of credentials read from the process environment
    target : Dict[str, str]
        Deployment target templates (``environment`` selects the cluster)

    Example
    -------
    >>> config = PipelineConfig("pipelines/ci-cd.yaml")
    >>> config.load()
    >>> config.parse_stages()
    >>> valid, errors = config.validate_dependencies()
    >>> config.get_execution_order()
    ['build-and-push', 'deploy']
    """

    def __init__(self, config_path: str):
        self.config_path = Path(config_path)
        self.raw_config: Dict[str, Any] = {}
        self.stages: Dict[str, Stage] = {}
        self.global_settings: Dict[str, Any] = {}
        self.inputs: Dict[str, InputSpec] = {}
        self.triggers = TriggerConfig()
        self.env: Dict[str, str] = {}
        self.secrets: List[str] = []
        self.target: Dict[str, str] = {}

    @property
    def name(self) -> str:
        return self.global_settings.get("pipeline", {}).get("name", self.config_path.stem)

    def load(self) -> None:
        """Read the YAML file and parse every section except ``stages``.

        Raises
        ------
        FileNotFoundError
            If config file doesn't exist
        yaml.YAMLError
            If YAML is malformed
        PipelineConfigError
            If the top-level sections are malformed
        """
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        with open(self.config_path, "r") as f:
            raw = yaml.safe_load(f)

        if not isinstance(raw, dict):
            raise PipelineConfigError(f"Config file is not a mapping: {self.config_path}")

        self._apply_raw(raw)

    def _apply_raw(self, raw: Dict[str, Any]) -> None:
        # YAML 1.1 reads a bare ``on`` key as boolean True
        if True in raw and "on" not in raw:
            raw["on"] = raw.pop(True)

        self.raw_config = raw
        self.global_settings = {
            "pipeline": raw.get("pipeline") or {},
            "global": raw.get("global") or {},
        }
        self.triggers = TriggerConfig.from_dict(raw.get("on"))
        self.inputs = {
            name: InputSpec.from_dict(name, spec)
            for name, spec in (raw.get("inputs") or {}).items()
        }
        self.env = {k: str(v) for k, v in (raw.get("env") or {}).items()}
        self.secrets = [str(s) for s in (raw.get("secrets") or [])]
        self.target = {k: str(v) for k, v in (raw.get("target") or {}).items()}

    def parse_stages(self) -> None:
        """Build Stage objects from the ``stages`` section.

        Raises
        ------
        PipelineConfigError
            If the stages section or a stage definition is malformed
        """
        stages = self.raw_config.get("stages")
        if not stages:
            raise PipelineConfigError("No 'stages' section in configuration")
        if not isinstance(stages, dict):
            raise PipelineConfigError("'stages' section must be a mapping")

        self.stages = {}
        for stage_id, stage_def in stages.items():
            stage = Stage.from_dict(stage_def, str(stage_id))
            errors = stage.validate()
            if errors:
                raise PipelineConfigError("; ".join(errors))
            self.stages[stage.stage_id] = stage

    def validate_dependencies(self) -> Tuple[bool, List[str]]:
        """Check ``depends_on`` lists and ``needs.<stage>`` references.

        A stage may only read the outputs of stages it depends on, directly
        or indirectly.

        Returns
        -------
        Tuple[bool, List[str]]
            (valid, errors)
        """
        errors = []

        for stage_id, stage in self.stages.items():
            for dep in stage.depends_on:
                if dep not in self.stages:
                    errors.append(f"Stage '{stage_id}' depends on unknown stage '{dep}'")
        if errors:
            return False, errors

        cycle = self.find_cycle()
        if cycle:
            errors.append(f"Circular dependency detected: {' -> '.join(cycle)}")
            return False, errors

        for stage_id, stage in self.stages.items():
            upstream = self.upstream_of(stage_id)
            for ref in sorted(self._needs_references(stage)):
                if ref not in upstream:
                    errors.append(
                        f"Stage '{stage_id}' reads needs.{ref} but does not depend on '{ref}'"
                    )

        return len(errors) == 0, errors

    def find_cycle(self) -> Optional[List[str]]:
        """Return one dependency cycle as a closed path, or None."""
        state: Dict[str, str] = {}
        path: List[str] = []

        def visit(node: str) -> Optional[List[str]]:
            state[node] = "open"
            path.append(node)
            for dep in self.stages[node].depends_on:
                if dep not in self.stages:
                    continue
                if state.get(dep) == "open":
                    return path[path.index(dep):] + [dep]
                if dep not in state:
                    found = visit(dep)
                    if found:
                        return found
            path.pop()
            state[node] = "done"
            return None

        for stage_id in self.stages:
            if stage_id not in state:
                found = visit(stage_id)
                if found:
                    return found
        return None

    def upstream_of(self, stage_id: str) -> Set[str]:
        """All stages ``stage_id`` depends on, directly or indirectly."""
        seen: Set[str] = set()
        pending = list(self.stages[stage_id].depends_on)
        while pending:
            dep = pending.pop()
            if dep in seen or dep not in self.stages:
                continue
            seen.add(dep)
            pending.extend(self.stages[dep].depends_on)
        return seen

    @staticmethod
    def _needs_references(stage: Stage) -> Set[str]:
        refs = set()
        for template in stage.templates():
            for expression in EXPRESSION_RE.findall(template):
                refs.update(NEEDS_REF_RE.findall(expression))
        return refs

    def get_execution_order(self) -> List[str]:
        """Order stages so every stage follows its dependencies.

        Among stages that are ready at the same time, declaration order
        wins.

        Raises
        ------
        PipelineConfigError
            If the dependencies contain a cycle
        """
        known = set(self.stages)
        remaining = {sid: set(stage.depends_on) & known for sid, stage in self.stages.items()}
        order: List[str] = []

        while remaining:
            ready = [sid for sid, deps in remaining.items() if not deps - set(order)]
            if not ready:
                cycle = self.find_cycle() or sorted(remaining)
                raise PipelineConfigError(
                    f"Circular dependency detected - cannot compute execution order "
                    f"({' -> '.join(cycle)})"
                )
            order.append(ready[0])
            del remaining[ready[0]]

        return order

    def get_stage(self, stage_id: str) -> Optional[Stage]:
        return self.stages.get(stage_id)

    def list_stages(self) -> List[str]:
        return list(self.stages.keys())

    def to_dict(self) -> Dict[str, Any]:
        """Serialize back to the YAML layout (stages included)."""
        return {
            "pipeline": self.global_settings.get("pipeline", {}),
            "global": self.global_settings.get("global", {}),
            "on": {name: {"branches": b} for name, b in self.triggers.events.items()},
            "inputs": {
                name: {
                    "description": spec.description,
                    "type": spec.type,
                    "options": spec.options,
                    "default": spec.default,
                    "required": spec.required,
                }
                for name, spec in self.inputs.items()
            },
            "env": self.env,
            "secrets": self.secrets,
            "target": self.target,
            "stages": {
                stage_id: stage.to_dict()
                for stage_id, stage in self.stages.items()
            },
        }

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "PipelineConfig":
        """Build a config from a mapping with the YAML layout; stages are parsed."""
        config = cls(".")
        config._apply_raw(dict(config_dict))
        config.parse_stages()
        return config
