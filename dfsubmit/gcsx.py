"""
Google Cloud Storage helpers.

Thin boundary over google-cloud-storage so the rest of dfsubmit deals in
gs:// URIs and readers, never in SDK objects:
- parse_location / make_location: gs://bucket/path <-> (bucket, path)
- join_uri: path-join under a gs:// location, no traversal above the bucket
- new_client: authenticated client for a given OAuth scope
- write_object: stream a reader into one object
"""

import logging
import posixpath
from typing import BinaryIO, Optional
from urllib.parse import urlparse

import google.auth
from google.cloud import storage

from dfsubmit.context import RunContext
from dfsubmit.errors import InvalidLocation

logger = logging.getLogger(__name__)

READ_WRITE_SCOPE = "https://www.googleapis.com/auth/devstorage.read_write"

# upload_from_file requires chunk sizes in multiples of 256 KiB
CHUNK_MULTIPLE = 256 * 1024


def parse_location(uri: str) -> tuple[str, str]:
    """
    Split a gs:// URI into bucket and object path.

    Args:
        uri: Location such as gs://my-bucket/staging/run1

    Returns:
        (bucket, path) where path has no leading slash and may be empty

    Raises:
        InvalidLocation: If the scheme is not gs or the bucket is missing
    """
    parsed = urlparse(uri)
    if parsed.scheme != "gs":
        raise InvalidLocation(f"location {uri!r} must have 'gs' scheme")
    if not parsed.netloc:
        raise InvalidLocation(f"location {uri!r} must have a bucket")
    return parsed.netloc, parsed.path.lstrip("/")


def make_location(bucket: str, path: str) -> str:
    """Build a gs:// URI from bucket and object path."""
    return f"gs://{bucket}/{path}"


def join_uri(base: str, *paths: str) -> str:
    """
    Join path segments onto a gs:// location.

    Duplicate separators and "." segments are collapsed. The result may not
    climb above the bucket root.

    Example:
        >>> join_uri("gs://bucket/staging/", "tmp")
        'gs://bucket/staging/tmp'

    Raises:
        InvalidLocation: If base is not a gs:// URI or the join escapes the bucket
    """
    bucket, prefix = parse_location(base)
    joined = posixpath.normpath(posixpath.join(prefix, *paths))
    if joined == ".":
        joined = ""
    if joined == ".." or joined.startswith("../") or joined.startswith("/"):
        raise InvalidLocation(f"joining {paths} onto {base!r} leaves the bucket")
    return make_location(bucket, joined)


def new_client(ctx: RunContext, scope: str = READ_WRITE_SCOPE) -> storage.Client:
    """
    Create an authenticated storage client using application default credentials.

    Raises:
        RunCancelled: If ctx is already cancelled
        google.auth.exceptions.DefaultCredentialsError: If no credentials found
    """
    ctx.check("storage client creation")
    credentials, project = google.auth.default(scopes=[scope])
    return storage.Client(project=project, credentials=credentials)


def write_object(
    client: storage.Client,
    bucket: str,
    object_path: str,
    reader: BinaryIO,
    timeout: Optional[float] = None,
    chunk_size: Optional[int] = None,
) -> None:
    """
    Stream the full content of reader into gs://bucket/object_path.

    Creates or overwrites the object. With chunk_size the client uploads in
    chunks of that size instead of a single request.

    Args:
        client: Storage client from new_client()
        bucket: Bucket name
        object_path: Object name inside the bucket
        reader: Binary file-like object, read to EOF
        timeout: Per-request timeout in seconds (client default if None)
        chunk_size: Upload chunk size, a multiple of 256 KiB
    """
    blob = client.bucket(bucket).blob(object_path, chunk_size=chunk_size)
    kwargs = {}
    if timeout is not None:
        kwargs["timeout"] = timeout
    blob.upload_from_file(reader, **kwargs)
    logger.debug("Wrote %s", make_location(bucket, object_path))
