from __future__ import annotations

from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Sequence


class DmgCreatorError(Exception):
    """Base error.

    ``stages`` is filled outermost-first as the error travels up through
    :func:`stage` blocks, so ``str(err)`` reads like a causal chain:
    ``error when creating app DMG: error when mounting DMG template: ...``.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message
        self.stages: List[str] = []
        self.cleanup_error: Optional[BaseException] = None

    def wrap(self, stage_name: str) -> "DmgCreatorError":
        self.stages.insert(0, stage_name)
        return self

    def __str__(self) -> str:
        return ": ".join([*self.stages, self.message])


class ValidationError(DmgCreatorError):
    def __init__(self, fields: Dict[str, str]) -> None:
        self.fields = dict(fields)
        super().__init__("; ".join(f"{k}: {v}" for k, v in self.fields.items()))


class AlreadyExistsError(DmgCreatorError):
    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"DMG file already exists: [{path}]")


class FilesystemError(DmgCreatorError):
    def __init__(self, message: str, *, path: str) -> None:
        self.path = path
        super().__init__(message)


class ExternalToolError(DmgCreatorError):
    def __init__(self, message: str, *, argv: Sequence[str], returncode: int, output: str) -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.output = output
        super().__init__(message)


class RetryExhaustedError(DmgCreatorError):
    def __init__(self, what: str, *, attempts: int, last_error: Optional[BaseException] = None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        msg = f"gave up waiting for {what} after {attempts} attempts"
        if last_error is not None:
            msg += f" (last error: {last_error})"
        super().__init__(msg)


class PollTimeoutError(DmgCreatorError):
    def __init__(self, message: str, *, path: str, attempts: int) -> None:
        self.path = path
        self.attempts = attempts
        super().__init__(message)


class MountTimeoutError(PollTimeoutError):
    pass


class UnmountTimeoutError(PollTimeoutError):
    pass


@contextmanager
def stage(name: str) -> Iterator[None]:
    """Prefix any DmgCreatorError raised inside the block with ``name``."""

    try:
        yield
    except DmgCreatorError as e:
        e.wrap(name)
        raise


def format_error(err: BaseException) -> str:
    if isinstance(err, DmgCreatorError) and err.cleanup_error is not None:
        return f"{err} (cleanup also failed: {err.cleanup_error})"
    return str(err)
