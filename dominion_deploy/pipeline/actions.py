"""Built-in actions available to ``uses:`` steps."""

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from dominion_deploy.exceptions import PipelineConfigError, StepError

IMAGE_TAG_FORMAT = "%Y%m%d%H%M%S"


@dataclass
class ActionContext:
    """Arguments and environment handed to an action."""

    with_args: Dict[str, Any]
    logger: logging.Logger
    working_directory: Optional[str] = None

    def arg(self, name: str, default: Any = None) -> Any:
        return self.with_args.get(name, default)

    def path(self, value: str) -> Path:
        path = Path(value)
        if self.working_directory and not path.is_absolute():
            path = Path(self.working_directory) / path
        return path


Action = Callable[[ActionContext], Dict[str, str]]

ACTION_REGISTRY: Dict[str, Action] = {}


def register_action(name: str) -> Callable[[Action], Action]:
    """Decorator registering a function under an action name."""

    def decorator(func: Action) -> Action:
        ACTION_REGISTRY[name] = func
        return func

    return decorator


def get_action(name: str) -> Action:
    """Look up a registered action.

    Raises
    ------
    PipelineConfigError
        If no action is registered under ``name``
    """
    if name not in ACTION_REGISTRY:
        raise PipelineConfigError(
            f"Unknown action '{name}'. Available: {list_actions()}"
        )
    return ACTION_REGISTRY[name]


def list_actions() -> List[str]:
    return sorted(ACTION_REGISTRY)


def generate_image_tag(now: Optional[datetime] = None) -> str:
    """Build a 14-digit timestamp tag (``YYYYMMDDHHMMSS``)."""
    return (now or datetime.now()).strftime(IMAGE_TAG_FORMAT)


def resolve_image_tag(supplied: Optional[str], now: Optional[datetime] = None) -> str:
    """Use the supplied tag verbatim, or generate one when it is blank."""
    if supplied is not None and supplied.strip():
        return supplied
    return generate_image_tag(now)


@register_action("image-tag")
def image_tag_action(ctx: ActionContext) -> Dict[str, str]:
    supplied = ctx.arg("tag")
    tag = resolve_image_tag(str(supplied) if supplied is not None else None)
    if tag == supplied:
        ctx.logger.info(f"Using provided image tag: {tag}")
    else:
        ctx.logger.info(f"Generated unique image tag: {tag}")
    return {"image-tag": tag}


@register_action("require-directory")
def require_directory_action(ctx: ActionContext) -> Dict[str, str]:
    value = ctx.arg("path")
    if not value:
        raise StepError("require-directory needs a 'path' argument")

    path = ctx.path(str(value))
    if not path.is_dir():
        message = ctx.arg("message") or f"Directory {value} not found!"
        raise StepError(str(message))
    return {"path": str(path)}
