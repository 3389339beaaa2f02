"""
Launch option resolution.

Turns raw LaunchInputs (merged from config file, environment and CLI flags)
into an immutable LaunchConfiguration. Resolution is a pure transformation
except for one delegated lookup: the worker container image, when not
given, is asked of an ImageResolver.

Validation order:
1. project (required)
2. staging location (required, gs:// URI)
3. worker image (delegated when empty)
4. labels (JSON object of string -> string)
5. worker count, temp location, job name, experiments
"""

import json
import logging
import os
import time
from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping, Optional

from dfsubmit.context import RunContext
from dfsubmit.errors import (
    InvalidLabelFormat,
    InvalidOptionValue,
    MissingRequiredField,
)
from dfsubmit.gcsx import join_uri, parse_location

if TYPE_CHECKING:
    from dfsubmit.collaborators import ImageResolver

logger = logging.getLogger(__name__)

DEFAULT_REGION = "us-central1"


@dataclass
class LaunchInputs:
    """Raw launch values before validation. Empty string means unset."""

    project: str = ""
    staging_location: str = ""
    worker_image: str = ""
    job_name: str = ""
    labels: str = ""
    num_workers: Optional[int] = None
    machine_type: str = ""
    zone: str = ""
    region: str = DEFAULT_REGION
    network: str = ""
    temp_location: str = ""
    min_cpu_platform: str = ""
    teardown_policy: str = ""
    experiments: list[str] = field(default_factory=list)
    options: dict[str, Any] = field(default_factory=dict)
    worker_binary: str = ""
    endpoint: str = ""
    dry_run: bool = False
    async_submit: bool = False
    cpu_profiling: str = ""
    session_recording: str = ""


@dataclass(frozen=True)
class LaunchConfiguration:
    """
    Validated, resolved parameters for one submission.

    Immutable: use dataclasses.replace() to derive a changed copy.
    `options` is the exported generic pipeline options blob, passed through
    to the translator/executor unchanged (apart from hook serialization).
    """

    project: str
    staging_location: str
    worker_image: str
    job_name: str
    region: str
    temp_location: str
    zone: str = ""
    network: str = ""
    num_workers: Optional[int] = None
    machine_type: str = ""
    teardown_policy: str = ""
    min_cpu_platform: str = ""
    experiments: tuple[str, ...] = ()
    labels: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    options: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    worker_binary: str = ""
    endpoint: str = ""
    dry_run: bool = False
    async_submit: bool = False
    cpu_profiling: str = ""
    session_recording: str = ""

    def __post_init__(self):
        # Freeze mutable containers handed in by callers
        object.__setattr__(self, "experiments", tuple(self.experiments))
        object.__setattr__(self, "labels", MappingProxyType(dict(self.labels)))
        object.__setattr__(self, "options", MappingProxyType(dict(self.options)))

    def to_dict(self) -> dict[str, Any]:
        """Serialize to plain dict (JSON-compatible)."""
        result = {f.name: getattr(self, f.name) for f in fields(self)}
        result["experiments"] = list(self.experiments)
        result["labels"] = dict(self.labels)
        result["options"] = dict(self.options)
        return result


def parse_labels(raw: str) -> dict[str, str]:
    """
    Parse a --labels value.

    Args:
        raw: JSON object string, e.g. '{"team": "data", "env": "prod"}'

    Returns:
        Mapping of label key to value

    Raises:
        InvalidLabelFormat: If raw is not valid JSON, not an object, or has
            non-string keys/values
    """
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise InvalidLabelFormat(f"error reading --labels flag as JSON: {e}") from e

    if not isinstance(parsed, dict):
        raise InvalidLabelFormat(
            f"error reading --labels flag as JSON: expected an object, got {type(parsed).__name__}"
        )

    for key, value in parsed.items():
        if not isinstance(value, str):
            raise InvalidLabelFormat(
                f"error reading --labels flag as JSON: value for {key!r} must be a string, "
                f"got {type(value).__name__}"
            )
    return parsed


def default_job_name() -> str:
    """Generate a job name when none was given."""
    user = os.environ.get("USER", "user").lower()
    return f"dfsubmit-{user}-{time.time_ns()}"


def resolve(
    inputs: LaunchInputs,
    image_resolver: "ImageResolver",
    ctx: Optional[RunContext] = None,
) -> LaunchConfiguration:
    """
    Validate raw inputs and build a LaunchConfiguration.

    Args:
        inputs: Raw launch values
        image_resolver: Looks up the worker image when inputs has none
        ctx: Run context forwarded to the image lookup

    Returns:
        Resolved LaunchConfiguration

    Raises:
        MissingRequiredField: If project or staging location is empty
        InvalidLocation: If staging or temp location is not a gs:// URI
        InvalidLabelFormat: If labels is not a JSON object of strings
        InvalidOptionValue: If num_workers is negative
        Exception: Any error raised by image_resolver, unchanged
    """
    if not inputs.project:
        raise MissingRequiredField(
            "Google Cloud project", "--project", env_var="DFSUBMIT_PROJECT"
        )
    if not inputs.staging_location:
        raise MissingRequiredField(
            "GCS staging location", "--staging-location"
        )
    parse_location(inputs.staging_location)

    worker_image = inputs.worker_image
    if not worker_image:
        ctx = ctx or RunContext()
        ctx.check("worker image resolution")
        worker_image = image_resolver.resolve(ctx)
        logger.debug("Resolved worker image: %s", worker_image)

    labels: dict[str, str] = {}
    if inputs.labels:
        labels = parse_labels(inputs.labels)

    if inputs.num_workers is not None and inputs.num_workers < 0:
        raise InvalidOptionValue(
            f"--num-workers must be non-negative, got {inputs.num_workers}"
        )

    experiments = list(inputs.experiments)
    if inputs.min_cpu_platform:
        experiments.append(f"min_cpu_platform={inputs.min_cpu_platform}")

    temp_location = inputs.temp_location
    if temp_location:
        parse_location(temp_location)
    else:
        temp_location = join_uri(inputs.staging_location, "tmp")

    return LaunchConfiguration(
        project=inputs.project,
        staging_location=inputs.staging_location,
        worker_image=worker_image,
        job_name=inputs.job_name or default_job_name(),
        region=inputs.region or DEFAULT_REGION,
        temp_location=temp_location,
        zone=inputs.zone,
        network=inputs.network,
        num_workers=inputs.num_workers,
        machine_type=inputs.machine_type,
        teardown_policy=inputs.teardown_policy,
        min_cpu_platform=inputs.min_cpu_platform,
        experiments=tuple(experiments),
        labels=labels,
        options=inputs.options,
        worker_binary=inputs.worker_binary,
        endpoint=inputs.endpoint,
        dry_run=inputs.dry_run,
        async_submit=inputs.async_submit,
        cpu_profiling=inputs.cpu_profiling,
        session_recording=inputs.session_recording,
    )
