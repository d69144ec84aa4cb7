"""Error taxonomy shared by the pool engine and the controllers.

Controllers decide what to do with a failure by its class:

* ``ValidationError`` is reported as an event and not retried until the
  object changes.
* ``TransientError`` subclasses propagate and the key is requeued with
  backoff.
* ``InsufficientResourcesError`` is reported and left for the next resync.
* ``ConfigurationError`` is fatal for the process.
"""
from typing import List, Optional


class StrataError(Exception):
    """Base class for all Strata errors."""


class ValidationError(StrataError):
    """Raised when a desired object is malformed or contradicts itself."""


class InsufficientResourcesError(StrataError):
    """Raised when the cluster cannot satisfy a request (pools, budgets)."""


class ConfigurationError(StrataError):
    """Raised for fatal process misconfiguration."""


class TransientError(StrataError):
    """Raised for failures that may succeed on a later attempt."""


class CommandError(TransientError):
    """Raised when a pool or dataset command fails."""

    def __init__(self, command: str, returncode: int = 1, output: str = "", message: str = ""):
        self.command = command
        self.returncode = returncode
        self.output = output
        text = message or f"command '{command}' failed with exit code {returncode}"
        if output:
            text = f"{text}: {output.strip()}"
        super().__init__(text)


class PoolImportError(CommandError):
    """Raised when neither the cache file nor a device scan imports the pool."""


class NotFoundError(TransientError):
    """Raised when an object is missing from the store."""

    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} '{name}' not found")


class AlreadyExistsError(StrataError):
    """Raised when creating an object whose name is taken."""

    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} '{name}' already exists")


class ConflictError(TransientError):
    """Raised when an update is based on a stale resource version."""


def error_wrapf(err: Optional[Exception], message: str) -> StrataError:
    """Start a new error or wrap an existing one with more context.

    Mirrors the accumulate-as-you-go pattern used when several pool commands
    run in sequence and later ones must not be skipped because an earlier
    one failed.
    """
    if err is None:
        return StrataError(message)
    wrapped = StrataError(f"{message}: {err}")
    wrapped.__cause__ = err
    return wrapped


class ErrorAccumulator:
    """Collects failures from a batch of operations that must all be tried."""

    def __init__(self):
        self.errors: List[Exception] = []
        self.error: Optional[StrataError] = None

    def add(self, message: str, err: Exception):
        self.errors.append(err)
        self.error = error_wrapf(self.error, f"{message}: {err}")

    def __bool__(self) -> bool:
        return bool(self.errors)

    def raise_if_any(self):
        if self.error is not None:
            raise self.error
