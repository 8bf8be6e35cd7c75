"""Trigger definitions and manual input validation."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from dominion_deploy.exceptions import InputValidationError, PipelineConfigError

MANUAL_EVENT = "workflow_dispatch"
KNOWN_EVENTS = (MANUAL_EVENT, "push", "pull_request")


@dataclass
class InputSpec:
    """Declaration of one manual-trigger parameter.

    Attributes
    ----------
    name : str
        Input name referenced as ``${{ inputs.<name> }}``
    description : str
        Help text shown by the CLI
    type : str
        ``choice`` (closed set of options) or ``string``
    options : List[str]
        Allowed values for ``choice`` inputs
    default : str, optional
        Value used when the input is not supplied
    required : bool
        Whether a value must be available after defaults are applied
    """

    name: str
    description: str = ""
    type: str = "string"
    options: List[str] = field(default_factory=list)
    default: Optional[str] = None
    required: bool = False

    def __post_init__(self) -> None:
        if self.type not in ("choice", "string"):
            raise PipelineConfigError(
                f"Input '{self.name}' has unsupported type '{self.type}'"
            )
        if self.type == "choice":
            if not self.options:
                raise PipelineConfigError(f"Choice input '{self.name}' has no options")
            if self.default is not None and self.default not in self.options:
                raise PipelineConfigError(
                    f"Default '{self.default}' for input '{self.name}' "
                    f"is not one of {self.options}"
                )

    def resolve(self, value: Optional[str]) -> str:
        """Apply the default and validate a supplied value.

        Blank values count as absent.
        """
        if value is not None:
            value = str(value).strip()
        if not value:
            value = self.default or ""

        if not value and self.required:
            raise InputValidationError(f"Missing required input '{self.name}'")

        if self.type == "choice" and value and value not in self.options:
            raise InputValidationError(
                f"Invalid value '{value}' for input '{self.name}' "
                f"(expected one of: {', '.join(self.options)})"
            )
        return value

    @classmethod
    def from_dict(cls, name: str, data: Optional[Dict[str, Any]]) -> "InputSpec":
        data = data or {}
        default = data.get("default")
        return cls(
            name=name,
            description=data.get("description", ""),
            type=data.get("type", "string"),
            options=[str(o) for o in data.get("options", [])],
            default=str(default) if default is not None else None,
            required=bool(data.get("required", False)),
        )


def resolve_inputs(
    specs: Mapping[str, InputSpec],
    supplied: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """Resolve every declared input against the supplied values.

    Parameters
    ----------
    specs : Mapping[str, InputSpec]
        Declared inputs
    supplied : Mapping[str, str], optional
        Values given at trigger time

    Returns
    -------
    Dict[str, str]
        Value for every declared input (blank string when optional and absent)

    Raises
    ------
    InputValidationError
        On unknown names, values outside a choice set, or missing required inputs
    """
    supplied = dict(supplied or {})

    unknown = sorted(set(supplied) - set(specs))
    if unknown:
        raise InputValidationError(f"Unknown input(s): {', '.join(unknown)}")

    return {name: spec.resolve(supplied.get(name)) for name, spec in specs.items()}


@dataclass
class TriggerConfig:
    """Events that start the pipeline, with optional branch filters.

    ``events`` maps an event name to the list of branches it applies to;
    an empty list accepts every branch.
    """

    events: Dict[str, List[str]] = field(default_factory=lambda: {MANUAL_EVENT: []})

    def matches(self, event: str, branch: Optional[str] = None) -> bool:
        """Return True if the event (on the given branch) starts a run."""
        if event not in self.events:
            return False
        branches = self.events[event]
        if not branches or event == MANUAL_EVENT:
            return True
        return branch in branches

    @classmethod
    def from_dict(cls, data: Any) -> "TriggerConfig":
        """Parse the ``on`` section.

        Accepts a single event name, a list of names, or a mapping of event
        name to ``{branches: [...]}``.
        """
        if data is None:
            return cls()
        if isinstance(data, str):
            data = [data]
        if isinstance(data, list):
            data = {name: None for name in data}
        if not isinstance(data, dict):
            raise PipelineConfigError("'on' section must be a name, list, or mapping")

        events: Dict[str, List[str]] = {}
        for name, spec in data.items():
            if name not in KNOWN_EVENTS:
                raise PipelineConfigError(
                    f"Unknown trigger event '{name}' (expected one of: {', '.join(KNOWN_EVENTS)})"
                )
            branches = (spec or {}).get("branches", []) if isinstance(spec, dict) else []
            events[name] = [str(b) for b in branches]
        return cls(events=events)
