"""Recover an object's storage path from a signed URL.

Flashcard and chunk rows store only the signed URL, so the object key has to
be read back out of it before a new URL can be minted.

Supported forms:
    GCS REST:         https://storage.googleapis.com/<bucket>/o/<percent-encoded path>?...
    GCS direct:       https://storage.googleapis.com/<bucket.with.dot>/<path>?...
    S3 virtual-host:  https://<bucket>.s3[.<region>].amazonaws.com/<key>?...
    S3 path-style:    https://s3[.<region>].amazonaws.com/<bucket>/<key>?...
    Custom endpoint:  http://<host>/<bucket>/<key>?...  (only when bucket is given)
"""

from __future__ import annotations

import re
from urllib.parse import unquote, urlparse

_GCS_HOST = "storage.googleapis.com"
_GCS_REST_PATH = re.compile(r"/o/(.+)$")
_S3_VIRTUAL_HOST = re.compile(r"^(?P<bucket>.+)\.s3([.-][a-z0-9-]+)?\.amazonaws\.com$")
_S3_PATH_HOST = re.compile(r"^s3([.-][a-z0-9-]+)?\.amazonaws\.com$")


def _fully_unquote(value: str) -> str:
    """Percent-decode until the value stops changing.

    Paths can be encoded more than once by the time they reach a URL. The
    cost is that a key holding a literal escape is over-decoded: an object
    named `100%25.mp3` comes back as `100%.mp3`.
    """
    previous = None
    while "%" in value and value != previous:
        previous = value
        value = unquote(value)
    return value


def _split_path(path: str) -> list[str]:
    return [p for p in path.split("/") if p]


def extract_storage_path(signed_url: str | None, bucket: str | None = None) -> str | None:
    """Extract the object path from a signed URL.

    Args:
        signed_url: Signed URL previously issued for the object.
        bucket: Expected bucket name; enables the custom-endpoint form.

    Returns:
        Decoded storage path, or None when the URL is not a recognised
        storage URL.
    """
    if not signed_url:
        return None

    try:
        parsed = urlparse(signed_url.strip())
    except ValueError:
        return None

    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return None

    host = parsed.hostname.lower()
    parts = _split_path(parsed.path)
    result: str | None = None

    if host == _GCS_HOST:
        rest = _GCS_REST_PATH.search(parsed.path)
        if rest:
            result = rest.group(1)
        elif len(parts) >= 2 and "." in parts[0]:
            result = "/".join(parts[1:])
    elif _S3_VIRTUAL_HOST.match(host):
        if parts:
            result = "/".join(parts)
    elif _S3_PATH_HOST.match(host):
        if len(parts) >= 2:
            result = "/".join(parts[1:])
    elif bucket and len(parts) >= 2 and parts[0] == bucket:
        result = "/".join(parts[1:])

    if not result:
        return None

    return _fully_unquote(result) or None
