"""Small helpers shared across the refresher."""

from refresher.utils.storage_path import extract_storage_path
from refresher.utils.time import utcnow

__all__ = ["extract_storage_path", "utcnow"]
