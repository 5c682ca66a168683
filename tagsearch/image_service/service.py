import re
from typing import Any, Dict, Iterable, List, Optional
import logging
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import BotoCoreError, ClientError

from tagsearch.storage.dynamodb import DynamoDBService, utc_now_iso
from tagsearch.storage.s3 import S3Service
from tagsearch.storage.keys import build_storage_key
from tagsearch.image_service.models import ImageStatus, UploadUrlResponse, new_image_id
from tagsearch.settings import settings
from tagsearch.exceptions import (
    ValidationException,
    ImageNotFoundException,
    BackendQueryException,
    StorageBackendException,
    PersistenceException,
)

log = logging.getLogger(__name__)

# Allowed content types
ALLOWED_IMAGE_TYPES = (
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
)
MAX_FILE_NAME_LENGTH = 255
MAX_SEARCH_TERMS = 5

_VALID_FILE_NAME = re.compile(r"^[a-zA-Z0-9._\-\s]+$")

# ------------------------------
# Upload broker
# ------------------------------

def validate_file_name(file_name) -> None:
    if not file_name or not isinstance(file_name, str):
        raise ValidationException("fileName is required and must be a string")
    if len(file_name) > MAX_FILE_NAME_LENGTH:
        raise ValidationException(f"File name exceeds maximum length of {MAX_FILE_NAME_LENGTH} characters")
    if not _VALID_FILE_NAME.match(file_name):
        raise ValidationException("File name contains invalid characters.")

def validate_file_type(file_type) -> None:
    if not file_type or not isinstance(file_type, str):
        raise ValidationException("fileType is required and must be a string")
    if file_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationException(f"Unsupported content type: {file_type}")

def request_upload(
    db: DynamoDBService,
    s3: S3Service,
    file_name: str,
    file_type: str,
    expires_in: Optional[int] = None,
) -> UploadUrlResponse:
    """Issues a presigned PUT URL and records the image as PENDING."""
    validate_file_name(file_name)
    validate_file_type(file_type)

    expires = expires_in or settings.presign_expire_seconds
    image_id = new_image_id()
    storage_key = build_storage_key(image_id, file_name)

    try:
        presigned_url = s3.generate_presigned_upload_url(storage_key, file_type, expires_in=expires)
    except (BotoCoreError, ClientError) as e:
        log.error("Presigned upload URL failed for %s: %s", storage_key, e)
        raise StorageBackendException("Failed to generate upload URL")

    item = {
        "imageId": image_id,
        "storageKey": storage_key,
        "fileName": file_name,
        "fileType": file_type,
        "status": ImageStatus.PENDING.value,
        "createdAt": utc_now_iso(),
    }
    # The URL is already issued at this point; a failed write leaves it unused.
    try:
        db.create_record(item)
    except (BotoCoreError, ClientError) as e:
        log.error("DynamoDB create_record failed for %s: %s", image_id, e)
        raise PersistenceException("Failed to save image record")

    log.info("Created PENDING record %s (%s)", image_id, storage_key)
    return UploadUrlResponse(
        presigned_url=presigned_url,
        image_id=image_id,
        expires_in=expires,
    )

# ------------------------------
# Record normalization
# ------------------------------

def normalize_keywords(value: Any) -> List[str]:
    """
        Coerces a stored keyword attribute into an ordered list of strings.

        DynamoDB string sets come back from boto3 as python sets and are sorted;
        lists keep their order. Anything else (missing, None, maps, scalars) is [].
    """
    if isinstance(value, (set, frozenset)):
        return sorted(v for v in value if isinstance(v, str))
    if isinstance(value, (list, tuple)):
        return [v for v in value if isinstance(v, str)]
    return []

def normalize_record(item: Dict[str, Any]) -> Dict[str, Any]:
    """
        Maps a stored item onto the current record shape.

        Items written by the first labeling function carry ``s3Key`` and ``tags``
        and no ``status``; they only ever existed once labeling had finished.
    """
    record = dict(item)
    raw = record.pop("tags", None)
    legacy = raw is not None or "s3Key" in record
    if "keywords" in record:
        raw = record["keywords"]
    record["keywords"] = normalize_keywords(raw)
    legacy_key = record.pop("s3Key", None)
    if not record.get("storageKey") and isinstance(legacy_key, str):
        record["storageKey"] = legacy_key
    if "status" not in record and legacy:
        record["status"] = ImageStatus.COMPLETED.value
    return record

# ------------------------------
# Search / status
# ------------------------------

def parse_search_query(values: Iterable[str]) -> List[str]:
    """Splits raw ``q`` values on whitespace into distinct lower-case terms."""
    terms: List[str] = []
    for value in values or []:
        for term in value.lower().split():
            if term not in terms:
                terms.append(term)
    if not terms:
        raise ValidationException("Search query 'q' is required")
    if len(terms) > MAX_SEARCH_TERMS:
        raise ValidationException(f"Too many search terms. Maximum {MAX_SEARCH_TERMS} allowed.")
    return terms

def search_images(db: DynamoDBService, keywords: List[str]) -> List[Dict[str, Any]]:
    """Scans for COMPLETED records whose keywords contain every search term."""
    if not keywords:
        raise ValidationException("Search query 'q' is required")

    terms = [k.lower() for k in keywords]
    # Legacy items have no status and keep their labels under "tags"
    filter_expression = Attr("status").eq(ImageStatus.COMPLETED.value) | Attr("status").not_exists()
    for term in terms:
        filter_expression = filter_expression & (Attr("keywords").contains(term) | Attr("tags").contains(term))

    try:
        items = db.scan_all(filter_expression)
    except (BotoCoreError, ClientError) as e:
        log.error("DynamoDB scan failed for %s: %s", terms, e)
        raise BackendQueryException("Failed to search images")

    log.info("Search %s matched %d image(s)", terms, len(items))
    return [normalize_record(item) for item in items]

def get_image_status(db: DynamoDBService, image_id: str) -> Dict[str, Any]:
    """Gets a single image record."""
    try:
        item = db.get_record(image_id)
    except (BotoCoreError, ClientError) as e:
        log.error("DynamoDB get_record failed for %s: %s", image_id, e)
        raise BackendQueryException("Failed to get image status")
    if not item:
        log.warning("Image record not found: %s", image_id)
        raise ImageNotFoundException(image_id)
    return normalize_record(item)
