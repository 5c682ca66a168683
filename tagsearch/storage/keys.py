"""
    S3 object key layout shared by the upload broker and the labeling worker.

    Keys look like ``uploads/{image_id}/{file_name}``. The broker builds them with
    ``build_storage_key`` and the worker recovers the image id with
    ``image_id_from_key``; nothing else should split keys by hand.
"""
import re
import posixpath

from tagsearch.exceptions import MalformedEventException

UPLOAD_PREFIX = "uploads"

_WHITESPACE = re.compile(r"\s+")

def sanitize_file_name(file_name: str) -> str:
    """Replaces every run of whitespace with a single underscore."""
    return _WHITESPACE.sub("_", file_name)

def build_storage_key(image_id: str, file_name: str) -> str:
    return f"{UPLOAD_PREFIX}/{image_id}/{sanitize_file_name(file_name)}"

def image_id_from_key(key: str) -> str:
    """
        Returns the image id embedded in a storage key.

        Keys outside the ``uploads/{image_id}/...`` layout fall back to the stem
        of the last path segment.
    """
    parts = key.split("/")
    if len(parts) >= 3 and parts[0] == UPLOAD_PREFIX and parts[1]:
        return parts[1]

    image_id = posixpath.basename(key).split(".")[0]
    if not image_id:
        raise MalformedEventException(f"Cannot derive image id from key '{key}'")
    return image_id
