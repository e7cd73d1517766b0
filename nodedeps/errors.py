"""Exception hierarchy shared by parsers, resolvers and the CLI.

Every error raised on purpose by nodedeps derives from RecoverableError so
callers can decide per project whether to skip it or abort.
"""

from typing import Any, List, Optional, Sequence, Tuple


class RecoverableError(Exception):
    """Base class for recoverable business errors.

    These errors indicate expected failure conditions that can be handled
    gracefully by skipping the current project and continuing processing.
    """
    pass


class ConfigurationError(RecoverableError):
    """Project metadata or nodedeps configuration is unusable.

    Raised when package.json is missing or malformed, or the installed tool
    is older than the minimum supported version.
    """
    pass


class ParseError(RecoverableError):
    """Tool output could not be turned into dependency records.

    Raised when an entry is neither parseable nor recognizable as one of the
    expected "missing" cases. Aborts the whole tree walk.
    """
    pass


class CacheError(RecoverableError):
    """Content-addressable cache lookup failed."""
    pass


class CacheMissError(CacheError):
    """The requested cache entry does not exist on disk."""
    pass


class ChecksumError(RecoverableError):
    """One or more hash sinks failed while checksumming a file.

    Attributes:
        errors: (algorithm, exception) pairs, one per failing sink.
    """

    def __init__(self, message: str, errors: Optional[Sequence[Tuple[str, BaseException]]] = None):
        self.errors: List[Tuple[str, BaseException]] = list(errors or [])
        if self.errors:
            details = "; ".join(f"{algo}: {exc}" for algo, exc in self.errors)
            message = f"{message} ({details})"
        super().__init__(message)


class ToolExecutionError(RecoverableError):
    """External package manager invocation failed.

    Attributes:
        tool: Executable name (npm, pnpm, yarn).
        command: Full command line as a single string.
        returncode: Process exit status, None when the process never ran.
        stderr: Captured standard error.
        stdout: Captured standard output, possibly partial.
    """

    def __init__(
        self,
        message: str,
        tool: str = "",
        command: str = "",
        returncode: Optional[int] = None,
        stderr: str = "",
        stdout: str = "",
    ):
        self.tool = tool
        self.stdout = stdout
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        text = message
        if command:
            text = f"{text}\ncommand: {command}"
        if stderr:
            text = f"{text}\nstderr: {stderr.strip()}"
        super().__init__(text)


class ExecutableNotFoundError(ToolExecutionError):
    """The package manager executable is not on the search path."""
    pass


class ProjectNotInstalledError(RecoverableError):
    """An install is required but the caller asked to skip installation."""
    pass


class TraversalError(RecoverableError):
    """One or more filter calls failed during concurrent traversal.

    Attributes:
        errors: Exceptions in task submission order.
        kept: Records kept by the tasks that did not fail.
    """

    def __init__(self, errors: Sequence[BaseException], kept: Optional[List[Any]] = None):
        self.errors: List[BaseException] = list(errors)
        self.kept: List[Any] = list(kept or [])
        first = self.errors[0] if self.errors else None
        message = f"{len(self.errors)} dependency task(s) failed"
        if first is not None:
            message = f"{message}; first error: {first}"
        super().__init__(message)

    @property
    def first(self) -> Optional[BaseException]:
        """The first error raised, in submission order."""
        return self.errors[0] if self.errors else None


# Errors the CLI reports without a traceback
RECOVERABLE_ERRORS = (
    RecoverableError,
    OSError,
    ValueError,
)
