"""
Error classes for dfsubmit.

These error types classify failures at the submission boundary:
- TransientError: The caller may try again (storage client unavailable,
  cancelled or timed out runs)
- PermanentError: Do not retry (missing flags, malformed labels, bad
  locations, compilation or translation failures)

Each submission step raises its own error type so callers can tell which
step failed (precondition vs. compilation vs. translation). Errors coming
from the job executor are NOT wrapped; they reach the caller unchanged.
"""


class DfsubmitError(Exception):
    """Base exception for dfsubmit."""
    pass


class TransientError(DfsubmitError):
    """
    Transient error - caller may retry.

    Examples:
    - Object storage client could not be constructed
    - Run cancelled or deadline exceeded
    """
    pass


class PermanentError(DfsubmitError):
    """
    Permanent error - do not retry.

    Examples:
    - Required launch option missing
    - Labels are not a JSON object of strings
    - Pipeline model could not be compiled
    """
    pass


class MissingRequiredField(PermanentError):
    """A required launch option is empty. The message names the flag."""

    def __init__(self, field: str, flag: str, env_var: str | None = None):
        self.field = field
        self.flag = flag
        self.env_var = env_var
        hint = f"Use {flag}=<value>"
        if env_var:
            hint += f" or set {env_var}"
        super().__init__(f"no {field} specified. {hint}")


class InvalidLabelFormat(PermanentError):
    """The --labels value is not a JSON object of string to string."""
    pass


class InvalidLocation(PermanentError):
    """A location is not a gs://bucket[/path] URI."""
    pass


class InvalidOptionValue(PermanentError):
    """A launch option has a value outside its allowed range."""
    pass


class HookConfigurationError(PermanentError):
    """
    A hook could not be configured from its arguments.

    Raised when a hook is enabled, before any pipeline work starts. This is
    a configuration mistake, not a run-time failure.
    """
    pass


class ModelCompilationError(PermanentError):
    """The graph compiler failed to produce a portable model."""
    pass


class TranslationError(PermanentError):
    """The translator failed to produce a job description (dry-run)."""
    pass


class StorageClientError(TransientError):
    """An authenticated object storage client could not be obtained."""
    pass


class RunCancelled(TransientError):
    """The run context was cancelled before a remote call."""
    pass


class DeadlineExceeded(RunCancelled):
    """The run context deadline passed before a remote call."""
    pass
