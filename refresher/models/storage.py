"""Object storage models.

Typed boundaries between the refresher and the signed URL provider.
"""

from __future__ import annotations

from refresher.models.base import JsonModel


class S3Location(JsonModel):
    bucket: str
    key: str


class SignedUrl(JsonModel):
    url: str
    expires_in_seconds: int
