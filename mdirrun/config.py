import logging
import os
import re
from pathlib import Path
from typing import List, Optional

from .models import RunConfig

logger = logging.getLogger(__name__)

DEFAULT_LOG_NAME = "script.log"
DEFAULT_CONCURRENCY = 10
DEFAULT_RETRIES = 0
DEFAULT_ENTRY_POINTS: List[str] = []


def env_int(name: str, default: int) -> int:
    """Integer from the environment, read at call time; unset or malformed values give default."""
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("ignoring %s=%r, not an integer; using %d", name, raw, default)
        return default


def default_concurrency() -> int:
    return env_int("MDIRRUN_CONCURRENCY", DEFAULT_CONCURRENCY)


def default_retries() -> int:
    return env_int("MDIRRUN_RETRIES", DEFAULT_RETRIES)


def parse_commands(text: str) -> List[List[str]]:
    """'npm ci; npm test' -> [['npm', 'ci'], ['npm', 'test']]. Newlines work as separators too."""
    commands = []
    for chunk in re.split(r"[;\n]", text or ""):
        argv = chunk.split()
        if argv:
            commands.append(argv)
    return commands


def parse_subdirs(text: Optional[str]) -> List[str]:
    if not text:
        return list(DEFAULT_ENTRY_POINTS)
    return [s.strip() for s in text.split(";") if s.strip()]


def build_config(
    root: str,
    commands: str,
    concurrency: Optional[int] = None,
    retries: Optional[int] = None,
    subdirs: Optional[str] = None,
    log_file: Optional[str] = None,
    backoff_unit: float = 1.0,
) -> RunConfig:
    """Turn raw flag/prompt values into a validated RunConfig (raises pydantic.ValidationError)."""
    if concurrency is None:
        concurrency = default_concurrency()
    if retries is None:
        retries = default_retries()
    root_path = Path(root).expanduser().absolute()
    log_path = Path(log_file).expanduser().absolute() if log_file else root_path / DEFAULT_LOG_NAME
    return RunConfig(
        root_directory=root_path,
        commands=parse_commands(commands),
        concurrency=concurrency,
        retries=retries,
        subdir_entry_points=parse_subdirs(subdirs),
        main_log_path=log_path,
        backoff_unit=backoff_unit,
    )
