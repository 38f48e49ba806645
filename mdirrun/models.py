from enum import Enum
from pathlib import Path
from typing import List, Optional
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from .errors import CommandError


class Status(str, Enum):
    WAITING = "Waiting"
    PROCESSING = "Processing"
    SUCCESS = "SUCCESS"
    FAIL = "FAIL"

    @property
    def terminal(self) -> bool:
        return self in (Status.SUCCESS, Status.FAIL)


class RunConfig(BaseModel):
    root_directory: Path
    commands: List[List[str]] = Field(default_factory=list)
    concurrency: int = Field(default=10, ge=1)
    retries: int = Field(default=0, ge=0)
    subdir_entry_points: List[str] = Field(default_factory=list)
    main_log_path: Path
    backoff_unit: float = Field(default=1.0, ge=0)  # seconds per backoff step

    @field_validator("commands")
    @classmethod
    def _argv_not_empty(cls, commands: List[List[str]]) -> List[List[str]]:
        for argv in commands:
            if not argv:
                raise ValueError("every command needs at least a program name")
        return commands

    @property
    def max_attempts(self) -> int:
        return self.retries + 1


class Job(BaseModel):
    id: str
    path: Path
    commands: List[List[str]] = Field(default_factory=list)
    step: int = 0
    total: int = 0


class CommandAttempt(BaseModel):
    number: int
    stdout: str = ""
    stderr: str = ""
    exit_code: Optional[int] = None  # None when the process never started
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class CommandResult(BaseModel):
    argv: List[str]
    attempts_used: int
    max_attempts: int
    stdout: str = ""
    stderr: str = ""
    error: Optional[str] = None
    history: List[CommandAttempt] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_status(self) -> None:
        if not self.ok:
            raise CommandError(self.argv, self.attempts_used, self.error)


class ProgressRecord(BaseModel):
    job_id: str
    command: str = "Waiting..."
    step: int = 0
    total: int = 0
    status: Status = Status.WAITING
    # max_attempts stays 0 when no command could run: FAIL rather than FAIL(k/n)
    attempts: int = 0
    max_attempts: int = 0
    output: str = ""
    archive_path: Optional[str] = None

    @property
    def label(self) -> str:
        if self.status.terminal and self.max_attempts:
            return f"{self.status.value}({self.attempts}/{self.max_attempts})"
        return self.status.value

    @property
    def terminal(self) -> bool:
        return self.status.terminal


class RunResult(BaseModel):
    records: List[ProgressRecord] = Field(default_factory=list)
    archive_path: Optional[Path] = None
    archive_error: Optional[str] = None
    started_at: datetime
    finished_at: datetime

    @property
    def succeeded(self) -> List[ProgressRecord]:
        return [r for r in self.records if r.status == Status.SUCCESS]

    @property
    def failed(self) -> List[ProgressRecord]:
        return [r for r in self.records if r.status == Status.FAIL]
