"""Error taxonomy for task execution and project persistence."""

from __future__ import annotations

from sqlalchemy.exc import OperationalError

# MySQL: ER_LOCK_WAIT_TIMEOUT, ER_LOCK_DEADLOCK
_MYSQL_LOCK_ERRNOS = {1205, 1213}


class GenerationError(Exception):
    """Base class for failures while running a generation task."""


class ConfigurationError(GenerationError):
    """Missing credentials or model mapping. Terminal, never retried."""


class TransientProviderError(GenerationError):
    """Timeout, connection reset or 5xx that outlived the HTTP retry budget."""


class ProviderReportedFailure(GenerationError):
    """The provider explicitly reported the job (or request) as failed."""


class ProviderRequestRejected(ProviderReportedFailure):
    """The provider answered a request with a non-retryable 4xx status."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"HTTP {status_code}: {message}")
        self.status_code = status_code


class PollTimeout(GenerationError):
    """The poll loop exceeded its overall ceiling."""


class UnrecoverableInterruption(GenerationError):
    """The process restarted during a synchronous, non-pollable call."""


class TaskCancelled(GenerationError):
    """The task was cancelled by its owner while it was executing."""


class ProjectStoreError(Exception):
    """Base class for project persistence failures."""


class StorageLockContention(ProjectStoreError):
    """A save kept hitting lock wait timeouts / deadlocks and gave up."""


def is_lock_contention(exc: BaseException) -> bool:
    """Return True when ``exc`` is a database lock-wait or deadlock error."""
    if not isinstance(exc, OperationalError):
        return False
    orig = getattr(exc, "orig", None)
    args = getattr(orig, "args", ()) or ()
    if args and isinstance(args[0], int) and args[0] in _MYSQL_LOCK_ERRNOS:
        return True
    text = str(orig if orig is not None else exc).lower()
    return (
        "database is locked" in text
        or "lock wait timeout" in text
        or "deadlock" in text
    )
