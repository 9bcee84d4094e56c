"""Toolchain command execution for stage steps.

Executes stage plan steps as async shell subprocesses with timeout
enforcement, output streaming, and structured result capture. Steps of one
stage run in declaration order; the first failing step fails the stage.

- Exit code 0 → step succeeded
- Non-zero exit, timeout, or OS error → StageExecutionError for the stage
- stdout/stderr lines are streamed to the log as they arrive
- Deployment configuration is injected into every step's environment
"""

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from src.release_pipeline.errors import StageExecutionError
from src.release_pipeline.stages.plan import StageStep

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Result of a step command execution.

    Attributes:
        success: True when the command exited with code 0.
        exit_code: Process exit code (-1 for timeout/OS errors).
        stdout: Captured standard output.
        stderr: Captured standard error.
        duration_seconds: Wall-clock execution time.
        timed_out: True when the command was killed at the timeout.
    """

    success: bool
    exit_code: int
    stdout: str
    stderr: str
    duration_seconds: float
    timed_out: bool = False


class CommandRunner:
    """Runs stage steps as shell subprocesses.

    Attributes:
        workspace_root: Directory step working directories are relative to.
        timeout_seconds: Maximum execution time of a single step.
        base_env: Variables added to the inherited environment of every step.
    """

    def __init__(
        self,
        workspace_root: Path,
        timeout_seconds: int = 3600,
        base_env: Optional[Dict[str, str]] = None,
    ):
        self.workspace_root = Path(workspace_root)
        self.timeout_seconds = timeout_seconds
        self.base_env = dict(base_env or {})

    async def run_stage(self, stage: str, steps: Sequence[StageStep]) -> List[CommandResult]:
        """Run a stage's steps in order, stopping at the first failure.

        Args:
            stage: Stage name, for logs and errors.
            steps: Steps from the stage plan.

        Returns:
            Results of all steps, all successful.

        Raises:
            StageExecutionError: If any step fails.
        """
        results: List[CommandResult] = []
        for step in steps:
            result = await self.run(step)
            results.append(result)
            if not result.success:
                raise StageExecutionError(
                    f"Step '{step.name}' of stage '{stage}' failed with exit code "
                    f"{result.exit_code}: {result.stderr[-500:]}",
                    stage=stage,
                    step=step.name,
                    exit_code=result.exit_code,
                )
        return results

    async def run(
        self,
        step: StageStep,
        log_callback: Optional[Callable[[str], None]] = None,
    ) -> CommandResult:
        """Execute one step's command.

        Args:
            step: The step to run.
            log_callback: Optional function called with each output line.

        Returns:
            CommandResult with exit code, captured output, and duration.
        """
        start_time = time.monotonic()
        process = None

        try:
            process = await self._start_process(step)
            stdout, stderr = await self._collect_output_with_timeout(
                step, process, log_callback
            )
            exit_code = process.returncode or 0
        except asyncio.TimeoutError:
            return await self._handle_timeout(step, process, start_time)
        except OSError as exc:
            return self._handle_os_error(step, exc, start_time)

        duration = time.monotonic() - start_time
        return self._build_result(step, exit_code, stdout, stderr, duration)

    def _step_env(self, step: StageStep) -> Dict[str, str]:
        env = dict(os.environ)
        env.update(self.base_env)
        env.update(step.env)
        return env

    async def _start_process(self, step: StageStep) -> asyncio.subprocess.Process:
        """Launch the step's shell command.

        Raises:
            OSError: If the working directory or shell cannot be used.
        """
        cwd = self.workspace_root / step.working_directory

        logger.info(
            "Starting step",
            extra={
                "step": step.name,
                "command": step.run,
                "cwd": str(cwd),
                "timeout": self.timeout_seconds,
            },
        )

        return await asyncio.create_subprocess_shell(
            step.run,
            cwd=str(cwd),
            env=self._step_env(step),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

    async def _collect_output_with_timeout(
        self,
        step: StageStep,
        process: asyncio.subprocess.Process,
        log_callback: Optional[Callable[[str], None]],
    ) -> tuple:
        """Stream and collect process output within the timeout window.

        Raises:
            asyncio.TimeoutError: If the process exceeds the timeout.
        """
        stdout_lines: list[str] = []
        stderr_lines: list[str] = []

        async def stream_stdout():
            async for line in self._read_stream(process.stdout):
                stdout_lines.append(line)
                self._emit_line(step, "stdout", line, log_callback)

        async def stream_stderr():
            async for line in self._read_stream(process.stderr):
                stderr_lines.append(line)
                self._emit_line(step, "stderr", line, log_callback)

        await asyncio.wait_for(
            self._gather_streams(stream_stdout, stream_stderr, process),
            timeout=self.timeout_seconds,
        )

        return "\n".join(stdout_lines), "\n".join(stderr_lines)

    async def _gather_streams(
        self,
        stdout_reader: Callable,
        stderr_reader: Callable,
        process: asyncio.subprocess.Process,
    ) -> None:
        await asyncio.gather(stdout_reader(), stderr_reader())
        await process.wait()

    async def _read_stream(self, stream: Optional[asyncio.StreamReader]):
        """Yield decoded lines from an async stream."""
        if stream is None:
            return

        while True:
            raw_line = await stream.readline()
            if not raw_line:
                break
            yield raw_line.decode("utf-8", errors="replace").rstrip("\n")

    def _emit_line(
        self,
        step: StageStep,
        stream_name: str,
        line: str,
        log_callback: Optional[Callable[[str], None]],
    ) -> None:
        logger.debug("%s %s: %s", step.name, stream_name, line)
        if log_callback is not None:
            log_callback(f"[{stream_name}] {line}")

    async def _handle_timeout(
        self,
        step: StageStep,
        process: Optional[asyncio.subprocess.Process],
        start_time: float,
    ) -> CommandResult:
        """Kill and reap the process, then return a timeout failure result."""
        if process is not None and process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                logger.debug("Step '%s' exited before it could be killed", step.name)
            await process.wait()
        duration = time.monotonic() - start_time
        logger.error(
            "Step '%s' timed out after %ds",
            step.name,
            self.timeout_seconds,
        )
        return CommandResult(
            success=False,
            exit_code=-1,
            stdout="",
            stderr=f"Process timed out after {self.timeout_seconds}s",
            duration_seconds=duration,
            timed_out=True,
        )

    def _handle_os_error(
        self,
        step: StageStep,
        exc: OSError,
        start_time: float,
    ) -> CommandResult:
        """Return a failure result for OS-level errors (e.g., missing directory)."""
        duration = time.monotonic() - start_time
        logger.error("Failed to start step '%s': %s", step.name, exc)
        return CommandResult(
            success=False,
            exit_code=-1,
            stdout="",
            stderr=f"Failed to start step: {exc}",
            duration_seconds=duration,
        )

    def _build_result(
        self,
        step: StageStep,
        exit_code: int,
        stdout: str,
        stderr: str,
        duration: float,
    ) -> CommandResult:
        is_success = exit_code == 0

        if is_success:
            logger.info(
                "Step '%s' completed successfully in %.1fs",
                step.name,
                duration,
            )
        else:
            logger.error(
                "Step '%s' failed with exit code %d in %.1fs",
                step.name,
                exit_code,
                duration,
            )

        return CommandResult(
            success=is_success,
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            duration_seconds=duration,
        )


class DryRunCommandRunner(CommandRunner):
    """Runner that logs each step instead of executing it."""

    async def run(
        self,
        step: StageStep,
        log_callback: Optional[Callable[[str], None]] = None,
    ) -> CommandResult:
        cwd = self.workspace_root / step.working_directory
        logger.info(
            "Dry run: would execute step",
            extra={"step": step.name, "command": step.run, "cwd": str(cwd)},
        )
        if log_callback is not None:
            log_callback(f"[dry-run] {step.run}")
        return CommandResult(
            success=True,
            exit_code=0,
            stdout="",
            stderr="",
            duration_seconds=0.0,
        )
