"""Command-line interface for dominion-deploy.

Provides CLI commands for running and inspecting the deployment pipeline.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Dict, Optional, Tuple

import click
import yaml

from dominion_deploy import __version__
from dominion_deploy.exceptions import PipelineError

DEFAULT_CONFIG = "pipelines/ci-cd.yaml"


def setup_logging(verbose: bool = False, debug: bool = False) -> logging.Logger:
    """Setup logging for CLI commands."""
    level = logging.DEBUG if debug else (logging.INFO if verbose else logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )
    return logging.getLogger("dominion_deploy")


def parse_inputs(pairs: Tuple[str, ...]) -> Dict[str, str]:
    """Turn repeated ``--input KEY=VALUE`` options into a mapping."""
    inputs = {}
    for pair in pairs:
        if "=" not in pair:
            raise click.BadParameter(f"expected KEY=VALUE, got '{pair}'", param_hint="--input")
        key, value = pair.split("=", 1)
        inputs[key.strip()] = value
    return inputs


def load_pipeline(config: str):
    """Load, parse and validate a pipeline file, exiting on errors."""
    from dominion_deploy.pipeline import PipelineConfig

    pipeline_config = PipelineConfig(config)
    pipeline_config.load()
    pipeline_config.parse_stages()

    valid, errors = pipeline_config.validate_dependencies()
    if not valid:
        for error in errors:
            click.echo(f"Error: {error}", err=True)
        sys.exit(1)

    return pipeline_config


@click.group()
@click.version_option(version=__version__, prog_name="dominion-deploy")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option("--debug", is_flag=True, help="Enable debug output")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, debug: bool) -> None:
    """dominion-deploy: build, publish and deploy fintech-app to EKS.

    Runs a declarative pipeline of stages (build-and-push, deploy) with
    conditional steps, best-effort cleanup and Slack notifications.

    Examples:

        # Deploy to QA with a generated image tag
        dominion-deploy run --input environment=qa

        # Deploy a specific image tag to production
        dominion-deploy run --input environment=prod --input image_tag=1.0.0

        # Show what a push to main would run
        dominion-deploy run --event push --branch main --dry-run
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["debug"] = debug
    ctx.obj["logger"] = setup_logging(verbose, debug)


@cli.command()
@click.option("--config", "-c", default=DEFAULT_CONFIG, show_default=True,
              type=click.Path(exists=True), help="Pipeline configuration file (YAML)")
@click.option("--event", "-e", default="workflow_dispatch", show_default=True,
              type=click.Choice(["workflow_dispatch", "push", "pull_request"]),
              help="Trigger event")
@click.option("--branch", "-b", help="Branch the event happened on")
@click.option("--input", "-i", "input_pairs", multiple=True, metavar="KEY=VALUE",
              help="Manual input (repeatable)")
@click.option("--actor", help="Who triggered the run (default: $USER)")
@click.option("--dry-run", is_flag=True, help="Show execution plan without running")
@click.option("--report", type=click.Path(),
              help="Append a run report to this file (.json lines or .yaml)")
@click.option("--log-dir", type=click.Path(), help="Directory for pipeline log files")
@click.option("--workdir", "-w", type=click.Path(exists=True, file_okay=False),
              help="Repository root commands run in (default: current directory)")
@click.pass_context
def run(
    ctx: click.Context,
    config: str,
    event: str,
    branch: Optional[str],
    input_pairs: Tuple[str, ...],
    actor: Optional[str],
    dry_run: bool,
    report: Optional[str],
    log_dir: Optional[str],
    workdir: Optional[str],
) -> None:
    """Run the pipeline for one trigger event.

    Inputs are only accepted for manual (workflow_dispatch) runs and are
    validated before any stage starts.
    """
    logger = ctx.obj["logger"]
    verbose = ctx.obj["verbose"] or ctx.obj["debug"]
    inputs = parse_inputs(input_pairs)

    from dominion_deploy.io import write_run_report
    from dominion_deploy.notify import build_notifier
    from dominion_deploy.pipeline import PipelineExecutor, PipelineLogger

    logger.info(f"Loading pipeline config: {config}")
    try:
        pipeline_config = load_pipeline(config)
    except (PipelineError, OSError, yaml.YAMLError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    pipeline_logger = PipelineLogger(
        log_dir or str(Path(config).parent / "logs"),
        log_level="DEBUG" if verbose else "INFO",
    )
    pipeline_logger.setup()

    executor = PipelineExecutor(
        pipeline_config,
        pipeline_logger,
        notifier=build_notifier(None if dry_run else os.environ.get("SLACK_WEBHOOK_URL")),
        working_directory=workdir,
    )

    try:
        result = executor.run(
            inputs=inputs,
            event=event,
            branch=branch,
            actor=actor,
            dry_run=dry_run,
        )
    except PipelineError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    if report:
        write_run_report(report, result.to_dict())

    if not result.triggered:
        click.echo(f"Event '{event}' on branch '{branch}' does not trigger this pipeline")
    elif result.exit_code == 0:
        click.echo("Dry run complete" if dry_run else "Pipeline completed successfully")
    else:
        click.echo(f"Pipeline failed at stage {result.failed_stage}", err=True)
        sys.exit(result.exit_code)


@cli.command()
@click.option("--config", "-c", default=DEFAULT_CONFIG, show_default=True,
              type=click.Path(exists=True), help="Pipeline configuration file (YAML)")
@click.pass_context
def plan(ctx: click.Context, config: str) -> None:
    """Validate a pipeline file and print its stages in execution order."""
    try:
        pipeline_config = load_pipeline(config)
        order = pipeline_config.get_execution_order()
    except (PipelineError, OSError, yaml.YAMLError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    click.echo(f"Pipeline stages: {' -> '.join(order)}")
    for stage_id in order:
        stage = pipeline_config.stages[stage_id]
        timeout = f", timeout {stage.timeout_minutes:g}m" if stage.timeout_minutes else ""
        click.echo(f"  {stage_id}: {stage.name} ({len(stage.steps)} steps{timeout})")
        for step in stage.steps:
            marker = "" if step.when.value == "success" else f" [{step.when.value}]"
            click.echo(f"    - {step.name}{marker}")


@cli.command(name="image-tag")
@click.option("--tag", "-t", default="", help="Tag to use verbatim (blank generates one)")
def image_tag(tag: str) -> None:
    """Print the image tag a run would use."""
    from dominion_deploy.pipeline import resolve_image_tag

    click.echo(resolve_image_tag(tag))


@cli.command()
def environments() -> None:
    """List deployment environments with their cluster and overlay."""
    from dominion_deploy.config import get_environment_config, list_available_environments

    for name in list_available_environments():
        env_config = get_environment_config(name)
        click.echo(f"{name}: cluster={env_config.cluster_name} overlay={env_config.overlay_dir}")


@cli.command(name="check-ingress")
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
def check_ingress_command(paths: Tuple[str, ...]) -> None:
    """Check Ingress manifests for HTTPS-only listeners and health checks."""
    from dominion_deploy.k8s import check_ingress, load_ingress_routes

    problems = []
    n_routes = 0
    for path in paths:
        routes = load_ingress_routes(path)
        if not routes:
            problems.append(f"{path}: no Ingress rules found")
        for route in routes:
            n_routes += 1
            problems.extend(check_ingress(route))

    for problem in problems:
        click.echo(problem, err=True)

    if problems:
        sys.exit(1)
    click.echo(f"{n_routes} ingress route(s) OK")


def main() -> None:
    """Main entry point for CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
