"""
dfsubmit - Remote job submission orchestrator

Validates launch options, names staged artifacts, and previews or submits a
compiled pipeline to a remote job service. Also provides a GCS capture hook
for streaming diagnostics (e.g. CPU profiles) into object storage.
"""

__version__ = "0.1.0"


__all__ = [
    "LaunchConfiguration",
    "LaunchInputs",
    "RunContext",
    "SubmissionOrchestrator",
    "Previewed",
    "Submitted",
    "resolve",
]

from .context import RunContext
from .options import LaunchConfiguration, LaunchInputs, resolve
from .orchestrator import Previewed, SubmissionOrchestrator, Submitted
