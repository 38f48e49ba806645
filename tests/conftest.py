import sys
import threading
import time
from pathlib import Path

import pytest

from mdirrun.config import build_config
from mdirrun.logs import LogArchiver
from mdirrun.models import CommandResult
from mdirrun.progress import ProgressRegistry

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="uses POSIX commands")


class FakeRunner:
    """Stands in for run_command: records calls and how many ran at once."""

    def __init__(self, fail=(), attempts=None, delay=0.0, crash=()):
        self.fail = set(fail)
        self.attempts = attempts or {}
        self.delay = delay
        self.crash = set(crash)
        self.calls = []
        self.active = 0
        self.peak = 0
        self._lock = threading.Lock()

    def __call__(self, argv, cwd, max_retries=0, *, backoff_unit=1.0):
        with self._lock:
            self.calls.append((list(argv), Path(cwd)))
            self.active += 1
            self.peak = max(self.peak, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            if argv[0] in self.crash:
                raise RuntimeError("runner blew up")
        finally:
            with self._lock:
                self.active -= 1

        max_attempts = max_retries + 1
        if argv[0] in self.fail:
            return CommandResult(
                argv=list(argv),
                attempts_used=max_attempts,
                max_attempts=max_attempts,
                stderr=f"{argv[0]}: boom\n",
                error="exit status 1",
            )
        return CommandResult(
            argv=list(argv),
            attempts_used=min(self.attempts.get(argv[0], 1), max_attempts),
            max_attempts=max_attempts,
            stdout=f"{argv[0]} done\n",
        )


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def make_root(tmp_path):
    """Create root/<name> for each name; returns the root path."""

    def _make(*names):
        root = tmp_path / "root"
        root.mkdir(exist_ok=True)
        for name in names:
            (root / name).mkdir(parents=True, exist_ok=True)
        return root

    return _make


@pytest.fixture
def make_config():
    def _make(root, commands="echo hi", **kwargs):
        kwargs.setdefault("backoff_unit", 0.0)
        return build_config(str(root), commands, **kwargs)

    return _make


@pytest.fixture
def archiver(tmp_path):
    a = LogArchiver(tmp_path / "logs" / "script.log")
    a.initialize()
    return a


@pytest.fixture
def registry():
    return ProgressRegistry()
