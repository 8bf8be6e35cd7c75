"""Unit tests for pipeline orchestration module."""

import time

import pytest
import yaml

from dominion_deploy.exceptions import PipelineConfigError, StepTimeoutError
from dominion_deploy.pipeline import (
    CommandRunner,
    Condition,
    PipelineConfig,
    PipelineExecutor,
    PipelineLogger,
    Stage,
    Step,
    StepStatus,
)

from tests.fixtures import linear_pipeline


class TestStep:
    """Tests for Step dataclass."""

    def test_create_shell_step(self):
        """Test creating a basic shell step."""
        step = Step(name="Build", run="mvn clean package")
        assert step.is_shell
        assert step.when is Condition.SUCCESS
        assert step.continue_on_error is False

    def test_requires_exactly_one_of_run_or_uses(self):
        """Test that run and uses are mutually exclusive and one is required."""
        with pytest.raises(PipelineConfigError):
            Step(name="Nothing")
        with pytest.raises(PipelineConfigError):
            Step(name="Both", run="true", uses="image-tag")

    def test_get_command(self):
        """Test command generation wraps the shell text with bash."""
        step = Step(name="Nodes", run="kubectl get nodes")
        assert step.get_command() == ["bash", "-e", "-o", "pipefail", "-c", "kubectl get nodes"]

    def test_get_command_with_resolved_script(self):
        """Test that a resolved script replaces the raw text."""
        step = Step(name="Echo", run="echo ${{ inputs.x }}")
        assert step.get_command("echo 1")[-1] == "echo 1"

    def test_get_command_action_step_rejected(self):
        """Test that action steps have no shell command."""
        step = Step(name="Tag", uses="image-tag")
        with pytest.raises(PipelineConfigError):
            step.get_command()

    def test_from_dict(self):
        """Test creating step from dictionary."""
        step = Step.from_dict(
            {
                "name": "Clean up",
                "run": "docker volume prune -f",
                "when": "always",
                "continue_on_error": True,
                "env": {"RETRIES": 3},
            }
        )
        assert step.when is Condition.ALWAYS
        assert step.continue_on_error is True
        assert step.env == {"RETRIES": "3"}

    def test_from_dict_default_name(self):
        """Test that unnamed steps get a positional name."""
        step = Step.from_dict({"run": "true"}, index=2)
        assert step.name == "step-3"

    def test_invalid_condition(self):
        """Test that unknown conditions are rejected."""
        with pytest.raises(PipelineConfigError, match="Invalid condition"):
            Step.from_dict({"run": "true", "when": "sometimes"})


class TestCondition:
    """Tests for step and stage run conditions."""

    def test_success_runs_only_without_failure(self):
        assert Condition.SUCCESS.allows(failed=False)
        assert not Condition.SUCCESS.allows(failed=True)

    def test_always_runs(self):
        assert Condition.ALWAYS.allows(failed=False)
        assert Condition.ALWAYS.allows(failed=True)

    def test_failure_runs_only_after_failure(self):
        assert not Condition.FAILURE.allows(failed=False)
        assert Condition.FAILURE.allows(failed=True)


class TestStage:
    """Tests for Stage dataclass."""

    def test_create_stage(self):
        """Test creating a basic stage."""
        stage = Stage(name="Test Stage", stage_id="test", steps=[Step(name="s", run="true")])
        assert stage.name == "Test Stage"
        assert stage.depends_on == []
        assert stage.timeout_seconds is None
        assert stage.validate() == []

    def test_timeout_seconds(self):
        stage = Stage(name="Build", stage_id="build", timeout_minutes=60)
        assert stage.timeout_seconds == 3600

    def test_validate_no_steps(self):
        stage = Stage(name="Empty", stage_id="empty")
        assert any("no steps" in e for e in stage.validate())

    def test_validate_duplicate_step_ids(self):
        stage = Stage(
            name="Dup",
            stage_id="dup",
            steps=[Step(name="a", step_id="x", run="true"), Step(name="b", step_id="x", run="true")],
        )
        assert any("duplicate step id" in e for e in stage.validate())

    def test_validate_unknown_notify_event(self):
        stage = Stage(
            name="N",
            stage_id="n",
            steps=[Step(name="a", run="true")],
            notify={"finish": "done"},
        )
        assert any("unknown notify event" in e for e in stage.validate())

    def test_from_dict_single_dependency_string(self):
        """Test that a single dependency may be given as a string."""
        stage = Stage.from_dict({"steps": [{"run": "true"}], "depends_on": "build"}, "deploy")
        assert stage.depends_on == ["build"]
        assert stage.name == "deploy"

    def test_from_dict_missing_steps(self):
        with pytest.raises(PipelineConfigError, match="steps"):
            Stage.from_dict({"name": "No steps"}, "x")

    def test_to_dict_round_trip(self):
        """Test converting stage to dictionary and back."""
        stage = Stage.from_dict(
            {
                "name": "Build",
                "timeout_minutes": 60,
                "outputs": {"image-tag": "${{ steps.t.outputs.image-tag }}"},
                "steps": [{"name": "Tag", "id": "t", "uses": "image-tag", "with": {"tag": ""}}],
            },
            "build",
        )
        restored = Stage.from_dict(stage.to_dict(), "build")
        assert restored == stage


class TestPipelineConfig:
    """Tests for PipelineConfig class."""

    def test_init(self, tmp_path):
        """Test config initialization."""
        config = PipelineConfig(str(tmp_path / "config.yaml"))
        assert config.stages == {}

    def test_load_missing_file(self, tmp_path):
        config = PipelineConfig(str(tmp_path / "missing.yaml"))
        with pytest.raises(FileNotFoundError):
            config.load()

    def test_load(self, sample_pipeline_config):
        """Test loading config from YAML."""
        config = PipelineConfig(str(sample_pipeline_config))
        config.load()
        assert config.global_settings["pipeline"]["name"] == "Test Pipeline"
        assert config.name == "Test Pipeline"
        assert set(config.inputs) == {"environment"}
        assert config.triggers.matches("push", "main")

    def test_bare_on_key(self, tmp_path):
        """Test that an unquoted 'on' key (YAML boolean) is read as triggers."""
        path = tmp_path / "p.yaml"
        path.write_text(
            "on:\n"
            "  push:\n"
            "    branches: [main]\n"
            "stages:\n"
            "  a:\n"
            "    steps:\n"
            "      - run: 'true'\n"
        )
        config = PipelineConfig(str(path))
        config.load()
        assert config.triggers.matches("push", "main")
        assert not config.triggers.matches("workflow_dispatch")

    def test_parse_stages(self, sample_pipeline_config):
        """Test parsing stages from config."""
        config = PipelineConfig(str(sample_pipeline_config))
        config.load()
        config.parse_stages()

        assert config.list_stages() == ["build", "deploy"]
        assert config.get_stage("build").name == "Build"
        assert "build" in config.get_stage("deploy").depends_on
        assert config.get_stage("missing") is None

    def test_parse_stages_missing_section(self, tmp_path):
        path = tmp_path / "p.yaml"
        path.write_text("pipeline:\n  name: x\n")
        config = PipelineConfig(str(path))
        config.load()
        with pytest.raises(PipelineConfigError, match="stages"):
            config.parse_stages()

    def test_validate_dependencies_valid(self, sample_pipeline_config):
        """Test dependency validation with valid deps."""
        config = PipelineConfig(str(sample_pipeline_config))
        config.load()
        config.parse_stages()

        valid, errors = config.validate_dependencies()
        assert valid
        assert len(errors) == 0

    def test_validate_dependencies_missing(self):
        """Test dependency validation with missing deps."""
        config = PipelineConfig.from_dict(
            {"stages": {"A": {"steps": [{"run": "true"}], "depends_on": ["nonexistent"]}}}
        )
        valid, errors = config.validate_dependencies()
        assert not valid
        assert any("unknown stage" in e for e in errors)

    def test_validate_dependencies_cycle(self):
        """Test dependency validation detects cycles."""
        config = PipelineConfig.from_dict(
            {
                "stages": {
                    "A": {"steps": [{"run": "true"}], "depends_on": ["B"]},
                    "B": {"steps": [{"run": "true"}], "depends_on": ["A"]},
                }
            }
        )
        valid, errors = config.validate_dependencies()
        assert not valid
        assert any("Circular" in e for e in errors)
        with pytest.raises(PipelineConfigError):
            config.get_execution_order()

    def test_cycle_path_reported(self):
        config = PipelineConfig.from_dict(
            {
                "stages": {
                    "build": {"steps": [{"run": "true"}]},
                    "A": {"steps": [{"run": "true"}], "depends_on": ["build", "C"]},
                    "B": {"steps": [{"run": "true"}], "depends_on": ["A"]},
                    "C": {"steps": [{"run": "true"}], "depends_on": ["B"]},
                }
            }
        )
        assert config.find_cycle() == ["A", "C", "B", "A"]

    def test_needs_reference_requires_dependency(self):
        """Test that reading another stage's outputs requires depending on it."""
        config = PipelineConfig.from_dict(
            {
                "stages": {
                    "build": {"steps": [{"run": "true"}], "outputs": {"tag": "x"}},
                    "deploy": {"steps": [{"run": "echo ${{ needs.build.outputs.tag }}"}]},
                }
            }
        )
        valid, errors = config.validate_dependencies()
        assert not valid
        assert errors == ["Stage 'deploy' reads needs.build but does not depend on 'build'"]

    def test_needs_reference_through_transitive_dependency(self):
        config = PipelineConfig.from_dict(
            {
                "stages": {
                    "build": {"steps": [{"run": "true"}]},
                    "test": {"steps": [{"run": "true"}], "depends_on": ["build"]},
                    "deploy": {
                        "depends_on": ["test"],
                        "notify": {"success": "${{ needs.build.result }}"},
                        "steps": [{"run": "true"}],
                    },
                }
            }
        )
        assert config.validate_dependencies() == (True, [])
        assert config.upstream_of("deploy") == {"build", "test"}

    def test_get_execution_order(self):
        """Test computing execution order."""
        config = PipelineConfig.from_dict(
            {
                "stages": {
                    "notify": {"steps": [{"run": "true"}], "depends_on": ["deploy"]},
                    "deploy": {"steps": [{"run": "true"}], "depends_on": ["build"]},
                    "build": {"steps": [{"run": "true"}]},
                }
            }
        )
        assert config.get_execution_order() == ["build", "deploy", "notify"]

    def test_to_dict(self, sample_pipeline_config):
        config = PipelineConfig(str(sample_pipeline_config))
        config.load()
        config.parse_stages()

        data = config.to_dict()
        assert data["pipeline"]["name"] == "Test Pipeline"
        assert data["inputs"]["environment"]["options"] == ["dev", "qa", "uat", "prod"]
        restored = PipelineConfig.from_dict(data)
        assert restored.list_stages() == config.list_stages()


class TestPipelineLogger:
    """Tests for PipelineLogger class."""

    def test_init(self, tmp_path):
        """Test logger initialization."""
        logger = PipelineLogger(str(tmp_path / "logs"))
        assert logger.log_dir.exists()
        assert logger.log_file.name.startswith("pipeline_")

    def test_setup(self, tmp_path):
        """Test logger setup."""
        logger = PipelineLogger(str(tmp_path / "logs"))
        logger.setup()
        assert len(logger.logger.handlers) == 2

    def test_file_log_has_no_color_codes(self, tmp_path):
        """Test that console coloring does not leak into the log file."""
        logger = PipelineLogger(str(tmp_path / "logs"))
        logger.setup()
        logger.log_error("boom")
        for handler in logger.logger.handlers:
            handler.flush()
        assert "\033[" not in logger.log_file.read_text()
        assert "ERROR - boom" in logger.log_file.read_text()

    def test_secrets_masked(self, tmp_path, caplog):
        """Test that registered secrets are hidden in every record."""
        logger = PipelineLogger(str(tmp_path / "logs"))
        logger.setup()
        logger.add_secrets(["hunter2", ""])

        with caplog.at_level("INFO", logger="dominion_deploy"):
            logger.log_info("password is hunter2")
            logger.logger.info("again: %s", "hunter2")

        assert "hunter2" not in caplog.text
        assert "password is ***" in caplog.text
        assert "again: ***" in caplog.text

    def test_format_duration_seconds(self):
        """Test duration formatting for seconds."""
        assert PipelineLogger.format_duration(45.2) == "45.2s"

    def test_format_duration_minutes(self):
        """Test duration formatting for minutes."""
        assert PipelineLogger.format_duration(125) == "2m 5s"

    def test_format_duration_hours(self):
        """Test duration formatting for hours."""
        assert PipelineLogger.format_duration(7300) == "2h 1m"


class TestPipelineExecutor:
    """Tests for PipelineExecutor with real shell commands."""

    def make_executor(self, config_dict, pipeline_logger, tmp_path, **kwargs):
        config = PipelineConfig.from_dict(config_dict)
        return PipelineExecutor(
            config,
            pipeline_logger,
            environ={"USER": "tester"},
            working_directory=str(tmp_path),
            **kwargs,
        )

    def single_stage(self, steps, **stage_kwargs):
        stage = {"name": "Only", "steps": steps}
        stage.update(stage_kwargs)
        return {"stages": {"only": stage}}

    def test_outputs_flow_between_stages(self, pipeline_logger, tmp_path, caplog):
        """Test that an output written by one stage reaches the next."""
        executor = self.make_executor(linear_pipeline(), pipeline_logger, tmp_path)

        with caplog.at_level("INFO", logger="dominion_deploy"):
            result = executor.run(inputs={"environment": "qa"})

        assert result.exit_code == 0
        assert result.get_stage("build").outputs == {"tag": "abc123"}
        assert "deploying abc123 to qa" in caplog.text

    def test_failed_step_skips_rest_and_dependants(self, pipeline_logger, tmp_path):
        """Test short-circuit inside a stage and across dependent stages."""
        config = linear_pipeline()
        config["stages"]["build"]["steps"] = [
            {"name": "Fail", "run": "exit 3"},
            {"name": "Never", "run": "echo never"},
        ]
        executor = self.make_executor(config, pipeline_logger, tmp_path)

        result = executor.run()

        build = result.get_stage("build")
        assert build.status is StepStatus.FAILED
        assert build.error == "Exit code 3"
        assert [s.status for s in build.steps] == [StepStatus.FAILED, StepStatus.SKIPPED]
        assert result.get_stage("deploy").status is StepStatus.SKIPPED
        assert result.exit_code == 1
        assert result.failed_stage == "build"

    def test_always_and_failure_steps(self, pipeline_logger, tmp_path):
        """Test that always/failure steps run after a failure."""
        marker = tmp_path / "cleaned"
        config = self.single_stage(
            [
                {"name": "Fail", "run": "false"},
                {"name": "Cleanup", "run": f"touch {marker}", "when": "always"},
                {"name": "On failure", "run": "echo failed", "when": "failure"},
            ]
        )
        executor = self.make_executor(config, pipeline_logger, tmp_path)

        stage = executor.run().get_stage("only")

        assert marker.exists()
        assert [s.status for s in stage.steps] == [
            StepStatus.FAILED,
            StepStatus.SUCCESS,
            StepStatus.SUCCESS,
        ]

    def test_failure_step_skipped_on_success(self, pipeline_logger, tmp_path):
        config = self.single_stage(
            [
                {"name": "Ok", "run": "true"},
                {"name": "On failure", "run": "echo failed", "when": "failure"},
            ]
        )
        executor = self.make_executor(config, pipeline_logger, tmp_path)

        stage = executor.run().get_stage("only")

        assert stage.succeeded
        assert stage.steps[1].status is StepStatus.SKIPPED

    def test_continue_on_error_does_not_fail_stage(self, pipeline_logger, tmp_path):
        """Test that best-effort failures are ignored."""
        config = self.single_stage(
            [
                {"name": "Ok", "run": "true"},
                {"name": "Best effort", "run": "exit 1", "when": "always", "continue_on_error": True},
            ]
        )
        executor = self.make_executor(config, pipeline_logger, tmp_path)

        result = executor.run()

        stage = result.get_stage("only")
        assert stage.succeeded
        assert stage.steps[1].status is StepStatus.FAILED
        assert stage.steps[1].ignored is True
        assert result.exit_code == 0

    def test_error_message_replaces_exit_code(self, pipeline_logger, tmp_path, caplog):
        """Test that a step's diagnostic is logged and recorded."""
        config = self.single_stage(
            [{"name": "Verify", "run": "exit 1", "error_message": "Unable to authenticate."}]
        )
        executor = self.make_executor(config, pipeline_logger, tmp_path)

        with caplog.at_level("ERROR", logger="dominion_deploy"):
            result = executor.run()

        assert result.get_stage("only").error == "Unable to authenticate."
        assert "Unable to authenticate." in caplog.text

    def test_stage_timeout(self, pipeline_logger, tmp_path):
        """Test that the stage bound kills a long step and cleanup still runs."""
        marker = tmp_path / "cleaned"
        config = self.single_stage(
            [
                {"name": "Slow", "run": "sleep 5"},
                {"name": "Next", "run": "echo next"},
                {"name": "Cleanup", "run": f"touch {marker}", "when": "always"},
            ],
            timeout_minutes=0.01,
        )
        executor = self.make_executor(config, pipeline_logger, tmp_path)

        stage = executor.run().get_stage("only")

        assert stage.status is StepStatus.TIMED_OUT
        assert stage.steps[0].status is StepStatus.TIMED_OUT
        assert stage.steps[1].status is StepStatus.SKIPPED
        assert marker.exists()

    def test_timeout_stops_child_processes(self, pipeline_logger, tmp_path):
        """Test that a timed-out step leaves no background work behind."""
        marker = tmp_path / "late"
        config = self.single_stage(
            [{"name": "Nested", "run": f"bash -c 'sleep 2; touch {marker}'; echo done"}],
            timeout_minutes=0.01,
        )
        executor = self.make_executor(config, pipeline_logger, tmp_path)

        stage = executor.run().get_stage("only")
        time.sleep(2.5)

        assert stage.status is StepStatus.TIMED_OUT
        assert not marker.exists()

    def test_cleanup_runs_after_ignored_timeout(self, pipeline_logger, tmp_path):
        """Test that cleanup still runs when a best-effort step used up the stage time."""
        marker = tmp_path / "cleaned"
        config = self.single_stage(
            [
                {"name": "Slow", "run": "sleep 5", "continue_on_error": True},
                {"name": "Cleanup", "run": f"sleep 1; touch {marker}", "when": "always"},
            ],
            timeout_minutes=0.01,
        )
        executor = self.make_executor(config, pipeline_logger, tmp_path)

        stage = executor.run().get_stage("only")

        assert stage.steps[0].status is StepStatus.TIMED_OUT
        assert stage.steps[0].ignored is True
        assert stage.steps[1].status is StepStatus.SUCCESS
        assert marker.exists()

    def test_undecodable_output_does_not_abort_run(self, pipeline_logger, tmp_path):
        """Test that non-UTF-8 bytes from a command are tolerated."""
        marker = tmp_path / "cleaned"
        config = self.single_stage(
            [
                {"name": "Progress", "run": r"printf '\xff\xfe progress\n'"},
                {"name": "Cleanup", "run": f"touch {marker}", "when": "always"},
            ]
        )
        executor = self.make_executor(config, pipeline_logger, tmp_path)

        result = executor.run()

        assert result.exit_code == 0
        assert marker.exists()

    def test_unexpected_error_fails_step_only(self, pipeline_logger, tmp_path, notifier):
        """Test that an exception from the runner becomes a failed step."""

        class ExplodingRunner:
            def run(self, command, env=None, cwd=None, timeout=None):
                if "boom" in command[-1]:
                    raise ValueError("runner broke")
                return CommandRunner().run(command, env=env, cwd=cwd, timeout=timeout)

        marker = tmp_path / "cleaned"
        config = self.single_stage(
            [
                {"name": "Boom", "run": "echo boom"},
                {"name": "Cleanup", "run": f"touch {marker}", "when": "always"},
            ],
            notify={"failure": "failed: ${{ run.actor }}"},
        )
        executor = self.make_executor(
            config, pipeline_logger, tmp_path, runner=ExplodingRunner(), notifier=notifier
        )

        result = executor.run()

        stage = result.get_stage("only")
        assert stage.status is StepStatus.FAILED
        assert stage.error == "runner broke"
        assert marker.exists()
        assert notifier.messages == ["failed: tester"]

    def test_unresolvable_error_message_keeps_raw_error(self, pipeline_logger, tmp_path):
        config = self.single_stage(
            [
                {
                    "name": "Verify",
                    "run": "exit 4",
                    "error_message": "failed for ${{ steps.missing.outputs.x }}",
                }
            ]
        )
        executor = self.make_executor(config, pipeline_logger, tmp_path)

        result = executor.run()

        assert result.get_stage("only").error == "Exit code 4"
        assert result.exit_code == 1

    def test_unknown_dependency_rejected_before_run(self, pipeline_logger, tmp_path):
        """Test that a misspelled dependency stops the run instead of skipping a stage."""
        marker = tmp_path / "built"
        config = {
            "stages": {
                "build": {"steps": [{"run": f"touch {marker}"}]},
                "deploy": {"depends_on": ["buidl"], "steps": [{"run": "true"}]},
            }
        }
        executor = self.make_executor(config, pipeline_logger, tmp_path)

        with pytest.raises(PipelineConfigError, match="unknown stage 'buidl'"):
            executor.run()
        assert not marker.exists()

    def test_step_and_stage_env(self, pipeline_logger, tmp_path):
        out = tmp_path / "env.txt"
        config = {
            "env": {"REGION": "us-east-2"},
            "stages": {
                "only": {
                    "env": {"STAGE_VAR": "s"},
                    "steps": [
                        {
                            "name": "Env",
                            "env": {"STEP_VAR": "${{ inputs.who }}"},
                            "run": f'echo "$REGION $STAGE_VAR $STEP_VAR" > {out}',
                        }
                    ],
                }
            },
            "inputs": {"who": {"default": "me"}},
        }
        executor = self.make_executor(config, pipeline_logger, tmp_path)

        assert executor.run().exit_code == 0
        assert out.read_text().strip() == "us-east-2 s me"

    def test_working_directory(self, pipeline_logger, tmp_path):
        (tmp_path / "sub").mkdir()
        config = self.single_stage(
            [{"name": "Touch", "run": "touch here", "working_directory": "sub"}]
        )
        executor = self.make_executor(config, pipeline_logger, tmp_path)

        assert executor.run().exit_code == 0
        assert (tmp_path / "sub" / "here").exists()

    def test_stage_condition_failure(self, pipeline_logger, tmp_path):
        """Test a stage that only runs when its dependency failed."""
        config = {
            "stages": {
                "build": {"steps": [{"run": "false"}]},
                "rollback-notice": {
                    "depends_on": ["build"],
                    "when": "failure",
                    "steps": [{"run": "echo build failed"}],
                },
            }
        }
        executor = self.make_executor(config, pipeline_logger, tmp_path)

        result = executor.run()

        assert result.get_stage("rollback-notice").succeeded
        assert result.exit_code == 1

    def test_notifications(self, pipeline_logger, tmp_path, notifier):
        config = linear_pipeline()
        config["stages"]["deploy"]["notify"] = {
            "start": "start ${{ inputs.environment }}",
            "success": "ok ${{ needs.build.outputs.tag }} by ${{ run.actor }}",
        }
        executor = self.make_executor(config, pipeline_logger, tmp_path, notifier=notifier)

        executor.run(inputs={"environment": "dev"})

        assert notifier.messages == ["start dev", "ok abc123 by tester"]

    def test_unresolvable_template_fails_step(self, pipeline_logger, tmp_path):
        config = self.single_stage([{"name": "Bad", "run": "echo ${{ inputs.nope }}"}])
        executor = self.make_executor(config, pipeline_logger, tmp_path)

        stage = executor.run().get_stage("only")

        assert stage.status is StepStatus.FAILED
        assert "Unknown reference" in stage.error

    def test_dry_run_executes_nothing(self, pipeline_logger, tmp_path):
        marker = tmp_path / "ran"
        config = self.single_stage([{"name": "Touch", "run": f"touch {marker}"}])
        executor = self.make_executor(config, pipeline_logger, tmp_path)

        result = executor.run(dry_run=True)

        assert not marker.exists()
        assert result.dry_run
        assert result.exit_code == 0

    def test_untriggered_event(self, pipeline_logger, tmp_path):
        """Test that a push to another branch does not start a run."""
        executor = self.make_executor(linear_pipeline(), pipeline_logger, tmp_path)

        result = executor.run(event="push", branch="feature/x")

        assert not result.triggered
        assert result.stages == []
        assert result.exit_code == 0

    def test_result_to_dict(self, pipeline_logger, tmp_path):
        executor = self.make_executor(linear_pipeline(), pipeline_logger, tmp_path)

        data = executor.run().to_dict()

        assert data["succeeded"] is True
        assert data["inputs"] == {"environment": "prod"}
        assert [s["stage_id"] for s in data["stages"]] == ["build", "deploy"]
        yaml.safe_dump(data)


class TestCommandRunner:
    """Tests for CommandRunner against real processes."""

    def test_outputs_file(self, tmp_path):
        result = CommandRunner().run(
            ["bash", "-c", 'echo "tag=1.0.0" >> "$PIPELINE_OUTPUT"; echo hi'],
            cwd=str(tmp_path),
        )
        assert result.ok
        assert result.stdout == "hi\n"
        assert result.outputs == {"tag": "1.0.0"}

    def test_invalid_utf8_is_replaced(self, tmp_path):
        """Test that undecodable bytes in streams and outputs do not raise."""
        result = CommandRunner().run(
            ["bash", "-c", r'''printf 'a\xffb\n'; printf 'c\xfe\n' >&2; printf 'k=v\xff\n' >> "$PIPELINE_OUTPUT"'''],
            cwd=str(tmp_path),
        )
        assert result.ok
        assert result.stdout == "a\ufffdb\n"
        assert result.stderr == "c\ufffd\n"
        assert result.outputs == {"k": "v\ufffd"}

    def test_timeout_kills_process_group(self, tmp_path):
        marker = tmp_path / "late"
        start = time.monotonic()

        with pytest.raises(StepTimeoutError):
            CommandRunner().run(
                ["bash", "-c", f"(sleep 2; touch {marker}) & sleep 2; touch {marker}"],
                cwd=str(tmp_path),
                timeout=0.5,
            )

        assert time.monotonic() - start < 2
        time.sleep(2.5)
        assert not marker.exists()
