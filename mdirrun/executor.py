import logging
import subprocess
import time
from pathlib import Path
from typing import Callable, Sequence

from .models import CommandAttempt, CommandResult

logger = logging.getLogger(__name__)


def backoff_delay(attempt: int, unit: float = 1.0) -> float:
    """delay = attempt * unit (attempt 1 -> 1 unit, attempt 2 -> 2 units...)"""
    return float(attempt) * unit


def _attempt(argv: Sequence[str], cwd: Path, number: int) -> CommandAttempt:
    try:
        r = subprocess.run(
            list(argv),
            cwd=cwd,
            capture_output=True,
            text=True,
            errors="replace",
        )
    except OSError as e:
        # launch failure: missing program, permission denied, bad cwd
        return CommandAttempt(number=number, error=str(e))
    attempt = CommandAttempt(number=number, stdout=r.stdout or "", stderr=r.stderr or "", exit_code=r.returncode)
    if r.returncode != 0:
        attempt.error = f"exit status {r.returncode}"
    return attempt


def run_command(
    argv: Sequence[str],
    cwd: Path,
    max_retries: int = 0,
    *,
    backoff_unit: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> CommandResult:
    """
    Runs argv in cwd up to max_retries + 1 times, stopping at the first success.
    Failed attempts are followed by a linear backoff sleep unless it was the last one.
    """
    if not argv:
        raise ValueError("argv must not be empty")
    if max_retries < 0:
        raise ValueError("max_retries must be >= 0")

    max_attempts = max_retries + 1
    history = []
    for number in range(1, max_attempts + 1):
        attempt = _attempt(argv, cwd, number)
        history.append(attempt)
        if attempt.ok:
            break
        logger.debug("%s attempt %d/%d failed in %s: %s", argv[0], number, max_attempts, cwd, attempt.error)
        if number < max_attempts:
            sleep(backoff_delay(number, backoff_unit))

    last = history[-1]
    return CommandResult(
        argv=list(argv),
        attempts_used=last.number,
        max_attempts=max_attempts,
        stdout=last.stdout,
        stderr=last.stderr,
        error=last.error,
        history=history,
    )
