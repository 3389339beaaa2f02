"""
GCS capture sink.

gcs_recorder_hook builds a capture function that streams a byte stream
(e.g. a CPU profile) into gs://<bucket>/<prefix>/<spec>. It is registered
under PROFILE_WRITER in default registries.

Hook arguments:
    args[0]  destination, gs://bucket[/prefix] (required)
    args[1]  upload chunk size in bytes, multiple of 256 KiB (optional)

Captures are best-effort diagnostics: a failed capture loses that one
object and is reported to whoever invoked the hook. It never affects a
submission.
"""

import logging
import posixpath
from typing import BinaryIO

from dfsubmit import gcsx
from dfsubmit.context import RunContext
from dfsubmit.errors import HookConfigurationError, InvalidLocation, StorageClientError
from dfsubmit.hooks import CaptureHook, HookRegistry

logger = logging.getLogger(__name__)

PROFILE_WRITER = "gcs_profile_writer"


def _parse_chunk_size(raw: str) -> int:
    try:
        chunk_size = int(raw)
    except ValueError as e:
        raise HookConfigurationError(f"chunk size must be an integer, got {raw!r}") from e
    if chunk_size <= 0 or chunk_size % gcsx.CHUNK_MULTIPLE:
        raise HookConfigurationError(
            f"chunk size must be a positive multiple of {gcsx.CHUNK_MULTIPLE}, got {chunk_size}"
        )
    return chunk_size


def gcs_recorder_hook(args: list[str]) -> CaptureHook:
    """
    Build a capture function writing under a gs:// destination.

    Raises:
        HookConfigurationError: If the destination is missing or not a
            gs:// URI, or the chunk size is invalid
    """
    if not args:
        raise HookConfigurationError(f"{PROFILE_WRITER} requires a gs:// destination")
    try:
        bucket, prefix = gcsx.parse_location(args[0])
    except InvalidLocation as e:
        raise HookConfigurationError(
            f"Invalid hook configuration for {PROFILE_WRITER}: {args}"
        ) from e
    chunk_size = _parse_chunk_size(args[1]) if len(args) > 1 else None

    def capture(ctx: RunContext, spec: str, reader: BinaryIO) -> None:
        ctx.check(f"capture of {spec}")
        try:
            client = gcsx.new_client(ctx, gcsx.READ_WRITE_SCOPE)
        except Exception as e:
            raise StorageClientError(f"couldn't establish GCS client: {e}") from e

        # Keep the prefix even for specs starting with "/"
        object_path = posixpath.join(prefix, spec.lstrip("/"))
        gcsx.write_object(
            client,
            bucket,
            object_path,
            reader,
            timeout=ctx.remaining(),
            chunk_size=chunk_size,
        )
        logger.info("Captured %s to %s", spec, gcsx.make_location(bucket, object_path))

    return capture


def new_default_registry() -> HookRegistry:
    """Create a HookRegistry with the built-in capture hooks registered."""
    registry = HookRegistry()
    registry.register(PROFILE_WRITER, gcs_recorder_hook)
    return registry
