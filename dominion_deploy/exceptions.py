"""Exception hierarchy for dominion-deploy."""


class PipelineError(RuntimeError):
    """Base class for all pipeline errors."""


class PipelineConfigError(PipelineError):
    """Raised when a pipeline definition is malformed."""


class InputValidationError(PipelineError):
    """Raised when trigger inputs are rejected before a run starts."""


class TemplateError(PipelineError):
    """Raised when a ``${{ ... }}`` expression cannot be resolved."""


class StepError(PipelineError):
    """Raised by a step that failed with a known diagnostic."""


class StepTimeoutError(StepError):
    """Raised when a step runs past its stage deadline."""


class NotificationError(PipelineError):
    """Raised when a status message cannot be delivered."""
