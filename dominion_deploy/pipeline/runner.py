"""Subprocess execution for shell steps."""

import os
import signal
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence

from dominion_deploy.exceptions import StepTimeoutError

OUTPUT_ENV_VAR = "PIPELINE_OUTPUT"


@dataclass
class CommandResult:
    """Outcome of one external command."""

    returncode: int
    stdout: str = ""
    stderr: str = ""
    outputs: Optional[Dict[str, str]] = None

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def parse_output_file(text: str) -> Dict[str, str]:
    """Parse ``key=value`` lines written to the output file.

    Blank lines and lines without ``=`` are ignored; later keys win.
    """
    outputs = {}
    for line in text.splitlines():
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if key:
            outputs[key] = value.strip()
    return outputs


class CommandRunner:
    """Runs commands with subprocess and collects step outputs.

    Each call gets a fresh output file whose path is exported as
    ``$PIPELINE_OUTPUT``; commands append ``key=value`` lines to it.
    """

    def run(
        self,
        command: Sequence[str],
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        """Run a command to completion.

        Parameters
        ----------
        command : Sequence[str]
            Argument list
        env : Mapping[str, str], optional
            Variables added to the current process environment
        cwd : str, optional
            Working directory
        timeout : float, optional
            Seconds before the command is killed

        Returns
        -------
        CommandResult
            Exit status, captured streams, and outputs

        Raises
        ------
        StepTimeoutError
            If the command exceeds ``timeout``
        """
        with tempfile.TemporaryDirectory(prefix="dominion-step-") as tmp:
            output_file = Path(tmp) / "output"
            output_file.touch()

            full_env = os.environ.copy()
            if env:
                full_env.update(env)
            full_env[OUTPUT_ENV_VAR] = str(output_file)

            # Own process group so a timeout also stops the command's children
            proc = subprocess.Popen(
                list(command),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                encoding="utf-8",
                errors="replace",
                cwd=cwd,
                env=full_env,
                start_new_session=True,
            )
            try:
                stdout, stderr = proc.communicate(timeout=timeout)
            except subprocess.TimeoutExpired as exc:
                _kill_group(proc)
                raise StepTimeoutError(
                    f"Command timed out after {timeout:.0f}s"
                ) from exc
            except BaseException:
                _kill_group(proc)
                raise

            return CommandResult(
                returncode=proc.returncode,
                stdout=stdout,
                stderr=stderr,
                outputs=parse_output_file(
                    output_file.read_text(encoding="utf-8", errors="replace")
                ),
            )


def _kill_group(proc: subprocess.Popen) -> None:
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    proc.communicate()
