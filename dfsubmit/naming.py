"""
Artifact naming for staged submission files.

Each submission stages two objects under the staging location: the
serialized pipeline model and the worker payload. Names combine a
per-namer counter with the wall clock in nanoseconds:

    <staging>/model-<id>-<ns>
    <staging>/worker-<id>-<ns>

The counter is incremented and read in one locked step, so concurrent
submissions from the same process never get the same id.
"""

import threading
import time
from dataclasses import dataclass

from dfsubmit.gcsx import join_uri


@dataclass(frozen=True)
class StagingPlan:
    """Remote locations for one submission's staged artifacts."""

    model_url: str
    worker_url: str


class AtomicCounter:
    """Integer counter whose only operation is increment-and-fetch."""

    def __init__(self, start: int = 0):
        self._value = start
        self._lock = threading.Lock()

    def increment(self) -> int:
        """Add one and return the new value."""
        with self._lock:
            self._value += 1
            return self._value


class ArtifactNamer:
    """
    Produces collision-free StagingPlans.

    One namer is shared by all orchestrators in a process (see
    default_namer()); tests create their own.
    """

    def __init__(self, counter: AtomicCounter | None = None):
        self._counter = counter or AtomicCounter()

    def next_staging_plan(self, staging_location: str) -> StagingPlan:
        """
        Allocate model and worker object names under staging_location.

        Args:
            staging_location: gs:// URI already validated by the resolver

        Returns:
            StagingPlan with distinct model and worker URLs
        """
        unique = self._counter.increment()
        now = time.time_ns()
        return StagingPlan(
            model_url=join_uri(staging_location, f"model-{unique}-{now}"),
            worker_url=join_uri(staging_location, f"worker-{unique}-{now}"),
        )


_default_namer = ArtifactNamer()


def default_namer() -> ArtifactNamer:
    """Return the process-wide namer."""
    return _default_namer
