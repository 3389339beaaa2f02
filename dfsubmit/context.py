"""
RunContext - cancellation and deadline carrier for a submission.

Every remote call made on behalf of a submission (image lookup, compilation,
translation, submission, storage upload) receives the caller's RunContext.
Collaborators either check it themselves or use remaining() as a timeout.

Usage:
    ctx = RunContext.with_timeout(300)
    outcome = orchestrator.execute(ctx, pipeline)

    # From another thread
    ctx.cancel()
"""

import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

from dfsubmit.errors import DeadlineExceeded, RunCancelled


def _new_run_id() -> str:
    return uuid.uuid4().hex


@dataclass
class RunContext:
    """Context passed through one submission call chain.

    Attributes:
        run_id: Identifier used in log records for this run
        deadline: time.monotonic() value after which the run is expired
    """

    run_id: str = field(default_factory=_new_run_id)
    deadline: Optional[float] = None
    _cancelled: threading.Event = field(default_factory=threading.Event, repr=False)

    @classmethod
    def with_timeout(cls, seconds: float, run_id: Optional[str] = None) -> "RunContext":
        """Create a context that expires `seconds` from now."""
        ctx = cls(deadline=time.monotonic() + seconds)
        if run_id:
            ctx.run_id = run_id
        return ctx

    def cancel(self) -> None:
        """Cancel the run. Safe to call from any thread."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None without a deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check(self, step: str = "") -> None:
        """
        Raise if the run can no longer make remote calls.

        Args:
            step: Name of the step about to run, used in the error message

        Raises:
            RunCancelled: If cancel() was called
            DeadlineExceeded: If the deadline has passed
        """
        where = f" before {step}" if step else ""
        if self._cancelled.is_set():
            raise RunCancelled(f"run {self.run_id} cancelled{where}")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise DeadlineExceeded(f"run {self.run_id} deadline exceeded{where}")
