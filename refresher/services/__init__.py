"""Refresh services: scanning, minting, and coordinating signed URL refreshes."""

from refresher.services.expiry_scanner import ExpiryScanner
from refresher.services.refresh_coordinator import RefreshCoordinator
from refresher.services.signed_url_service import (
    S3SignedUrlProvider,
    SignedUrlProvider,
    create_s3_client,
)
from refresher.services.url_refresher import UrlRefresher

__all__ = [
    "ExpiryScanner",
    "RefreshCoordinator",
    "S3SignedUrlProvider",
    "SignedUrlProvider",
    "UrlRefresher",
    "create_s3_client",
]
