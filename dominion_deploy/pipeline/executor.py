"""Pipeline execution engine with conditional steps and notifications."""

import os
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, Mapping, Optional

from dominion_deploy.config import DeploymentSettings, get_environment_config
from dominion_deploy.exceptions import (
    InputValidationError,
    NotificationError,
    PipelineConfigError,
    StepError,
    StepTimeoutError,
    TemplateError,
)
from dominion_deploy.notify import Notifier, NullNotifier

from .actions import ActionContext, get_action
from .config import PipelineConfig
from .context import RunContext
from .inputs import MANUAL_EVENT, resolve_inputs
from .logger import PipelineLogger
from .results import PipelineResult, StageResult, StepResult, StepStatus
from .runner import CommandRunner
from .stage import Condition, Stage, Step


class PipelineExecutor:
    """Executes pipeline stages in dependency order with conditional steps.

    Stages run sequentially. Inside a stage, the first failing step stops
    the remaining ``success`` steps; ``always`` steps still run and
    ``failure`` steps run only after a failure. A stage whose dependencies
    did not succeed is skipped. Nothing is retried and nothing is rolled
    back.

    Parameters
    ----------
    config : PipelineConfig
        Loaded PipelineConfig instance with stages parsed
    logger : PipelineLogger
        Initialized PipelineLogger instance
    notifier : Notifier, optional
        Channel for stage start/success/failure messages
    runner : CommandRunner, optional
        Executes shell steps
    environ : Mapping[str, str], optional
        Process environment used for secrets and settings (default: os.environ)
    working_directory : str, optional
        Repository root that relative paths are resolved against

    Example
    -------
    >>> config = PipelineConfig("pipelines/ci-cd.yaml")
    >>> config.load()
    >>> config.parse_stages()
    >>> logger = PipelineLogger("logs/")
    >>> logger.setup()
    >>> executor = PipelineExecutor(config, logger)
    >>> result = executor.run(inputs={"environment": "qa"})
    >>> result.exit_code
    0
    """

    def __init__(
        self,
        config: PipelineConfig,
        logger: PipelineLogger,
        notifier: Optional[Notifier] = None,
        runner: Optional[CommandRunner] = None,
        environ: Optional[Mapping[str, str]] = None,
        working_directory: Optional[str] = None,
    ):
        self.config = config
        self.logger = logger
        self.notifier = notifier or NullNotifier()
        self.runner = runner or CommandRunner()
        self.environ: Dict[str, str] = dict(os.environ if environ is None else environ)
        self.working_directory = Path(working_directory) if working_directory else Path.cwd()

    def prepare_context(
        self,
        inputs: Optional[Mapping[str, str]] = None,
        event: str = MANUAL_EVENT,
        branch: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> RunContext:
        """Resolve inputs, environment, secrets and target for one run.

        Raises
        ------
        InputValidationError
            If inputs are rejected or the target environment is unknown
        """
        if inputs and event != MANUAL_EVENT:
            raise InputValidationError(
                f"Inputs can only be supplied to '{MANUAL_EVENT}' runs, not '{event}'"
            )

        context = RunContext(
            inputs=resolve_inputs(self.config.inputs, inputs),
            run={
                "actor": actor or self.environ.get("USER", "unknown"),
                "event": event,
                "branch": branch or "",
            },
        )

        for name in self.config.secrets:
            value = self.environ.get(name, "")
            if not value:
                self.logger.log_warning(f"Secret '{name}' is not set")
            context.secrets[name] = value

        context.env = {k: context.resolve(v) for k, v in self.config.env.items()}

        if "environment" in self.config.target:
            env_name = context.resolve(self.config.target["environment"])
            try:
                env_config = get_environment_config(env_name)
            except ValueError as e:
                raise InputValidationError(str(e)) from e
            settings = DeploymentSettings.from_env({**self.environ, **context.env})
            context.target = env_config.to_target(settings)

        return context

    def run(
        self,
        inputs: Optional[Mapping[str, str]] = None,
        event: str = MANUAL_EVENT,
        branch: Optional[str] = None,
        actor: Optional[str] = None,
        dry_run: bool = False,
    ) -> PipelineResult:
        """Execute the pipeline for one trigger event.

        Parameters
        ----------
        inputs : Mapping[str, str], optional
            Manual-trigger inputs
        event : str
            Trigger event (workflow_dispatch, push, pull_request)
        branch : str, optional
            Branch the event happened on
        actor : str, optional
            Who triggered the run (used in notifications)
        dry_run : bool
            If True, show execution plan without running

        Returns
        -------
        PipelineResult
            Per-stage outcomes; ``exit_code`` is 0 only if nothing failed

        Raises
        ------
        InputValidationError
            If inputs are rejected (before any stage runs)
        PipelineConfigError
            If stage dependencies are unknown, circular, or unreachable
        """
        started_at = datetime.now().isoformat()

        valid, errors = self.config.validate_dependencies()
        if not valid:
            raise PipelineConfigError("; ".join(errors))

        if not self.config.triggers.matches(event, branch):
            self.logger.log_info(
                f"Event '{event}' on branch '{branch}' does not trigger {self.config.name}"
            )
            return PipelineResult(
                name=self.config.name, started_at=started_at, triggered=False
            )

        context = self.prepare_context(inputs, event=event, branch=branch, actor=actor)
        self.logger.add_secrets(context.secrets.values())
        order = self.config.get_execution_order()
        result = PipelineResult(
            name=self.config.name,
            inputs=dict(context.inputs),
            started_at=started_at,
            dry_run=dry_run,
        )

        self.logger.log_info(f"Pipeline execution plan: {' -> '.join(order)}")
        for name, value in context.inputs.items():
            self.logger.log_info(f"Input {name}: {value or '(empty)'}")

        if dry_run:
            self.logger.log_info("DRY RUN MODE - No stages will be executed")
            for stage_id in order:
                self._log_dry_run_stage(self.config.stages[stage_id], context)
                result.stages.append(StageResult(stage_id, StepStatus.SKIPPED))
            return result

        start_time = time.time()
        results_by_id: Dict[str, StageResult] = {}

        for stage_id in order:
            stage = self.config.stages[stage_id]
            stage_result = self.execute_stage(stage, context, results_by_id)
            results_by_id[stage_id] = stage_result
            result.stages.append(stage_result)

        result.duration = time.time() - start_time
        self.logger.log_summary(
            f"{s.stage_id:<24} {s.status.value:<10} {self.logger.format_duration(s.duration)}"
            for s in result.stages
        )

        if result.succeeded:
            self.logger.log_info("Pipeline completed successfully")
        else:
            self.logger.log_error(f"Pipeline failed at stage {result.failed_stage}")

        return result

    def execute_stage(
        self,
        stage: Stage,
        context: RunContext,
        results_by_id: Optional[Mapping[str, StageResult]] = None,
    ) -> StageResult:
        """Execute a single pipeline stage.

        Parameters
        ----------
        stage : Stage
            Stage object to execute
        context : RunContext
            Run values; receives the stage outputs under ``needs``
        results_by_id : Mapping[str, StageResult], optional
            Results of stages that already ran

        Returns
        -------
        StageResult
            Outcome of the stage and its steps
        """
        results_by_id = results_by_id or {}
        deps_failed = any(
            dep not in results_by_id or not results_by_id[dep].succeeded
            for dep in stage.depends_on
        )

        if not stage.when.allows(deps_failed):
            reason = (
                "a dependency did not succeed" if deps_failed
                else f"condition '{stage.when.value}' not met"
            )
            self.logger.log_stage_skipped(stage.stage_id, reason)
            context.needs[stage.stage_id] = {"outputs": {}, "result": StepStatus.SKIPPED.value}
            return StageResult(stage.stage_id, StepStatus.SKIPPED, error=reason)

        self.logger.log_stage_start(stage.stage_id, stage.name)
        self.notify(stage, "start", context)

        context.steps = {}
        start_time = time.time()
        deadline = None
        if stage.timeout_seconds is not None:
            deadline = time.monotonic() + stage.timeout_seconds

        stage_result = StageResult(stage.stage_id, StepStatus.SUCCESS)
        failed = False
        timed_out = False

        for step in stage.steps:
            if not step.when.allows(failed):
                stage_result.steps.append(StepResult(step.name, StepStatus.SKIPPED))
                if step.step_id:
                    context.steps[step.step_id] = {"outputs": {}, "outcome": "skipped"}
                continue

            # ``always`` steps are cleanup and are never cut short by the stage bound
            step_deadline = None if step.when is Condition.ALWAYS else deadline
            step_result = self.execute_step(step, stage, context, step_deadline)
            stage_result.steps.append(step_result)

            if step.step_id:
                context.steps[step.step_id] = {
                    "outputs": dict(step_result.outputs),
                    "outcome": step_result.status.value,
                }

            if step_result.status in (StepStatus.FAILED, StepStatus.TIMED_OUT):
                step_result.ignored = step.continue_on_error
                if not step_result.counts_as_failure:
                    self.logger.log_step_ignored(step.name, step_result.error or "")
                    continue
                failed = True
                if step_result.status is StepStatus.TIMED_OUT:
                    timed_out = True
                if stage_result.error is None:
                    stage_result.error = step_result.error

        if not failed:
            try:
                stage_result.outputs = {
                    name: context.resolve(template)
                    for name, template in stage.outputs.items()
                }
            except TemplateError as e:
                failed = True
                stage_result.error = f"Could not resolve stage outputs: {e}"

        if timed_out:
            stage_result.status = StepStatus.TIMED_OUT
        elif failed:
            stage_result.status = StepStatus.FAILED

        stage_result.duration = time.time() - start_time
        context.needs[stage.stage_id] = {
            "outputs": dict(stage_result.outputs),
            "result": stage_result.status.value,
        }

        if stage_result.succeeded:
            self.logger.log_stage_complete(stage.stage_id, stage_result.duration)
            self.notify(stage, "success", context)
        else:
            self.logger.log_stage_error(stage.stage_id, stage_result.error or "unknown error")
            self.notify(stage, "failure", context)

        return stage_result

    def execute_step(
        self,
        step: Step,
        stage: Stage,
        context: RunContext,
        deadline: Optional[float] = None,
    ) -> StepResult:
        """Execute one step and convert errors into a StepResult.

        Parameters
        ----------
        step : Step
            Step to execute
        stage : Stage
            Enclosing stage (for its environment)
        context : RunContext
            Run values used to resolve templates
        deadline : float, optional
            ``time.monotonic()`` value the step must finish by

        Returns
        -------
        StepResult
            Outcome of the step
        """
        self.logger.log_step_start(step.name)
        start_time = time.time()

        try:
            timeout = None
            if deadline is not None:
                timeout = deadline - time.monotonic()
                if timeout <= 0:
                    raise StepTimeoutError("Stage time limit exceeded")

            if step.is_shell:
                outputs = self._run_shell_step(step, stage, context, timeout)
            else:
                outputs = self._run_action_step(step, context)

            return StepResult(
                step.name,
                StepStatus.SUCCESS,
                duration=time.time() - start_time,
                outputs=outputs,
            )

        except StepTimeoutError as e:
            status, error = StepStatus.TIMED_OUT, str(e)
        except Exception as e:
            status, error = StepStatus.FAILED, str(e) or type(e).__name__

        if step.error_message:
            try:
                error = context.resolve(step.error_message)
            except TemplateError as e:
                self.logger.log_warning(f"{step.name}: error message not resolved: {e}")
        error = context.mask(error)
        if not step.continue_on_error:
            self.logger.log_error(f"{step.name}: {error}")

        return StepResult(
            step.name,
            status,
            duration=time.time() - start_time,
            error=error,
        )

    def _run_shell_step(
        self,
        step: Step,
        stage: Stage,
        context: RunContext,
        timeout: Optional[float],
    ) -> Dict[str, str]:
        script = context.resolve(step.run)
        self.logger.log_debug(f"$ {context.mask(script)}")

        env = dict(context.env)
        env.update({k: context.resolve(v) for k, v in stage.env.items()})
        env.update({k: context.resolve(v) for k, v in step.env.items()})

        result = self.runner.run(
            step.get_command(script),
            env=env,
            cwd=str(self._step_directory(step, context)),
            timeout=timeout,
        )

        for line in result.stdout.splitlines():
            self.logger.log_info(f"    {context.mask(line)}")

        if not result.ok:
            if result.stderr:
                self.logger.log_error(f"STDERR: {context.mask(result.stderr[-1000:])}")
            raise StepError(f"Exit code {result.returncode}")

        return dict(result.outputs or {})

    def _run_action_step(self, step: Step, context: RunContext) -> Dict[str, str]:
        action = get_action(step.uses)
        action_context = ActionContext(
            with_args=context.resolve_mapping(step.with_args),
            logger=self.logger.logger,
            working_directory=str(self._step_directory(step, context)),
        )
        return {k: str(v) for k, v in (action(action_context) or {}).items()}

    def _step_directory(self, step: Step, context: RunContext) -> Path:
        if not step.working_directory:
            return self.working_directory
        directory = Path(context.resolve(step.working_directory))
        if not directory.is_absolute():
            directory = self.working_directory / directory
        return directory

    def notify(self, stage: Stage, event: str, context: RunContext) -> None:
        """Send the stage's message for an event; delivery problems are logged only."""
        template = stage.notify.get(event)
        if not template:
            return
        try:
            self.notifier.send(context.resolve(template))
        except (NotificationError, TemplateError) as e:
            self.logger.log_warning(
                f"Notification '{event}' for stage {stage.stage_id} not sent: {e}"
            )

    def _log_dry_run_stage(self, stage: Stage, context: RunContext) -> None:
        deps = f" (needs: {', '.join(stage.depends_on)})" if stage.depends_on else ""
        self.logger.log_info(f"[DRY RUN] Stage {stage.stage_id}: {stage.name}{deps}")
        for step in stage.steps:
            marker = "" if step.when is Condition.SUCCESS else f" [{step.when.value}]"
            what = (step.run.strip().splitlines() or [""])[0] if step.is_shell else f"uses {step.uses}"
            self.logger.log_info(f"[DRY RUN]   {step.name}{marker}: {context.mask(what)}")
