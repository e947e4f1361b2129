import os
import subprocess
from typing import Callable, List, Mapping, NamedTuple, Optional
from ytscribe.core.exceptions import CommandError, CommandTimeoutError
from ytscribe.utils.logger import logger

KILL_GRACE_SECONDS = 5.0
STDERR_LOG_LIMIT = 500


class CommandResult(NamedTuple):
    returncode: int
    stdout: str
    stderr: str


def stop_process(proc: subprocess.Popen, grace: float = KILL_GRACE_SECONDS):
    """SIGTERM, then SIGKILL if the process is still alive after ``grace`` seconds."""
    proc.terminate()
    try:
        return proc.communicate(timeout=grace)
    except subprocess.TimeoutExpired:
        logger.warning(f"pid {proc.pid} still running {grace:.0f}s after SIGTERM, killing")
        proc.kill()
        return proc.communicate()


def run_command(
    cmd: List[str],
    timeout: float,
    env: Optional[Mapping[str, str]] = None,
    label: Optional[str] = None,
) -> CommandResult:
    """Run an external tool to completion with a hard timeout.

    Raises CommandTimeoutError when the timeout expires (after the process has
    been terminated/killed) and CommandError on a non-zero exit. stderr is
    logged and attached to the exception, not put in its message.
    """
    label = label or os.path.basename(cmd[0])
    logger.debug(f"Running {label}: {' '.join(cmd)}")
    try:
        proc = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            env=dict(env) if env is not None else None,
        )
    except OSError as e:
        raise CommandError(f"{label} could not be started: {e}") from e

    try:
        stdout, stderr = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        _, stderr = stop_process(proc)
        raise CommandTimeoutError(
            f"{label} timed out after {timeout:.0f}s", returncode=proc.returncode, stderr=stderr or ""
        )

    if proc.returncode != 0:
        if stderr:
            logger.warning(f"{label} stderr: {stderr.strip()[-STDERR_LOG_LIMIT:]}")
        raise CommandError(f"{label} exited with code {proc.returncode}", returncode=proc.returncode, stderr=stderr or "")
    return CommandResult(proc.returncode, stdout or "", stderr or "")


Runner = Callable[..., CommandResult]
