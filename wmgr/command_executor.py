"""Run external commands, singly or concurrently, and capture their output."""

from __future__ import annotations

import asyncio
import os
import shutil
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path

__all__ = [
    "CommandExecutorError",
    "CommandFailedError",
    "CommandTimeoutError",
    "InvalidCommandError",
    "SpawnFailedError",
    "TerminationFailedError",
    "ExecutionConfig",
    "ExecutionResult",
    "ParallelConfig",
    "ExecutionTask",
    "ParallelResult",
    "parse_command",
    "execute",
    "execute_parallel",
    "command_exists",
    "create_config",
]


class CommandExecutorError(Exception):
    """Base class for command execution errors."""


class CommandFailedError(CommandExecutorError):
    """A command finished with a non-zero exit code."""

    def __init__(self, exit_code: int, stderr: str) -> None:
        super().__init__(f"Command failed with exit code {exit_code}: {stderr}")
        self.exit_code = exit_code
        self.stderr = stderr


class CommandTimeoutError(CommandExecutorError):
    """A command did not finish within its time limit."""

    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(f"Command timed out after {timeout_seconds} seconds")
        self.timeout_seconds = timeout_seconds


class InvalidCommandError(CommandExecutorError):
    """The command line could not be turned into a program and arguments."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Invalid command: {reason}")
        self.reason = reason


class SpawnFailedError(CommandExecutorError):
    """The process could not be started."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Process spawn failed: {reason}")
        self.reason = reason


class TerminationFailedError(CommandExecutorError):
    """Waiting for the process to exit failed."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Process termination failed: {reason}")
        self.reason = reason


@dataclass
class ExecutionConfig:
    """How a single command is run."""

    working_directory: Path | None = None
    environment_variables: dict[str, str] = field(default_factory=dict)
    timeout_seconds: float | None = None
    capture_stdout: bool = True
    capture_stderr: bool = True
    inherit_environment: bool = True
    use_shell: bool = False

    def __post_init__(self) -> None:
        if self.working_directory is not None:
            self.working_directory = Path(self.working_directory)


@dataclass
class ExecutionResult:
    """Outcome of one finished command."""

    exit_code: int
    stdout: str
    stderr: str
    execution_time_ms: int
    success: bool = field(init=False)

    def __post_init__(self) -> None:
        self.success = self.exit_code == 0

    @classmethod
    def timeout(cls, execution_time_ms: int) -> ExecutionResult:
        """Result standing for a command that timed out."""
        return cls(-1, "", "Command timed out", execution_time_ms)


@dataclass
class ParallelConfig:
    """Limits for running several commands at once."""

    max_concurrency: int = field(default_factory=lambda: os.cpu_count() or 1)
    fail_fast: bool = False

    def __post_init__(self) -> None:
        self.max_concurrency = max(1, self.max_concurrency)


@dataclass
class ExecutionTask:
    """A command to run under a given identifier."""

    id: str
    command: str
    config: ExecutionConfig = field(default_factory=ExecutionConfig)


@dataclass
class ParallelResult:
    """Collected outcomes of a concurrent run, keyed by task identifier."""

    task_results: dict[str, ExecutionResult | CommandExecutorError] = field(
        default_factory=dict
    )
    total_execution_time_ms: int = 0
    success_count: int = 0
    failure_count: int = 0

    def add_result(
        self, task_id: str, result: ExecutionResult | CommandExecutorError
    ) -> None:
        """Record a task outcome and update the counters."""
        if isinstance(result, ExecutionResult) and result.success:
            self.success_count += 1
        else:
            self.failure_count += 1
        self.task_results[task_id] = result

    def is_success(self) -> bool:
        """True when at least one task ran and none failed."""
        return self.failure_count == 0 and self.success_count > 0

    def failed_results(self) -> list[tuple[str, CommandExecutorError]]:
        """Tasks that ended in an error rather than a result."""
        return [
            (task_id, result)
            for task_id, result in self.task_results.items()
            if isinstance(result, CommandExecutorError)
        ]


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def parse_command(command: str, use_shell: bool) -> tuple[str, list[str]]:
    """Split a command line into a program and its arguments."""
    if not command.strip():
        raise InvalidCommandError("Command is empty")
    if use_shell:
        if sys.platform == "win32":
            return "cmd", ["/C", command]
        return "sh", ["-c", command]
    program, *args = command.split()
    return program, args


def _build_environment(config: ExecutionConfig) -> dict[str, str]:
    env = dict(os.environ) if config.inherit_environment else {}
    env.update(config.environment_variables)
    return env


async def execute(
    command: str, config: ExecutionConfig | None = None
) -> ExecutionResult:
    """Run one command and return its exit code and output."""
    config = config or ExecutionConfig()
    start = time.monotonic()
    program, args = parse_command(command, config.use_shell)

    try:
        process = await asyncio.create_subprocess_exec(
            program,
            *args,
            cwd=config.working_directory,
            env=_build_environment(config),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE if config.capture_stdout else None,
            stderr=asyncio.subprocess.PIPE if config.capture_stderr else None,
        )
    except OSError as exc:
        raise SpawnFailedError(f"Failed to spawn '{command}': {exc}") from exc

    try:
        if config.timeout_seconds is None:
            stdout, stderr = await process.communicate()
        else:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=config.timeout_seconds
            )
    except asyncio.TimeoutError:
        if process.returncode is None:
            process.kill()
            await process.wait()
        raise CommandTimeoutError(config.timeout_seconds) from None
    except OSError as exc:
        raise TerminationFailedError(f"Failed to wait for process: {exc}") from exc

    returncode = process.returncode
    exit_code = returncode if returncode is not None and returncode >= 0 else -1
    return ExecutionResult(
        exit_code,
        (stdout or b"").decode("utf-8", errors="replace"),
        (stderr or b"").decode("utf-8", errors="replace"),
        _elapsed_ms(start),
    )


async def execute_parallel(
    tasks: list[ExecutionTask], parallel_config: ParallelConfig | None = None
) -> ParallelResult:
    """Run tasks concurrently, at most ``max_concurrency`` at a time."""
    parallel_config = parallel_config or ParallelConfig()
    start = time.monotonic()
    result = ParallelResult()

    if not tasks:
        result.total_execution_time_ms = _elapsed_ms(start)
        return result

    semaphore = asyncio.Semaphore(parallel_config.max_concurrency)

    async def run(task: ExecutionTask) -> ExecutionResult | CommandExecutorError:
        async with semaphore:
            try:
                return await execute(task.command, task.config)
            except CommandExecutorError as exc:
                return exc

    outcomes = await asyncio.gather(*(run(task) for task in tasks))

    for task, outcome in zip(tasks, outcomes):
        result.add_result(task.id, outcome)
        if parallel_config.fail_fast and isinstance(outcome, CommandExecutorError):
            break

    result.total_execution_time_ms = _elapsed_ms(start)
    return result


def command_exists(command: str) -> bool:
    """True when the program can be found on PATH."""
    return shutil.which(command) is not None


def create_config(
    working_dir: str | os.PathLike[str] | None, env_vars: dict[str, str]
) -> ExecutionConfig:
    """Build a config with an optional working directory and extra variables."""
    return ExecutionConfig(
        working_directory=Path(working_dir) if working_dir is not None else None,
        environment_variables=dict(env_vars),
    )