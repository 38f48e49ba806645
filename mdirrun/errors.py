"""Engine exceptions."""


class MdirRunError(RuntimeError):
    """Base error for mdirrun."""


class AccessError(MdirRunError):
    """Raised when a job's working directory is missing or not a directory."""


class CommandError(MdirRunError):
    """Raised when a command still fails after its last retry."""

    def __init__(self, argv, attempts: int, error: str):
        self.argv = list(argv)
        self.attempts = attempts
        self.error = error
        super().__init__(f"{' '.join(self.argv)} failed after {attempts} attempt(s): {error}")


class ArchiveError(MdirRunError):
    """Raised when the run's log files cannot be archived."""


__all__ = [
    "MdirRunError",
    "AccessError",
    "CommandError",
    "ArchiveError",
]
