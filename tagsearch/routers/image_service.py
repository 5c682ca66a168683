from fastapi import APIRouter, Depends, Query, Response
from typing import Any, Dict, List, Optional
import logging
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError

from tagsearch.storage.dynamodb import DynamoDBService
from tagsearch.storage.s3 import S3Service
from tagsearch.dependencies.dependencies import get_s3_service, get_dynamodb_service, get_settings
from tagsearch.settings import Settings
from tagsearch.image_service.service import (
    request_upload,
    parse_search_query,
    search_images,
    get_image_status,
)
from tagsearch.image_service.models import (
    ImageRecord,
    UploadUrlRequest,
    UploadUrlResponse,
    SearchResponse,
)

log = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api",
    tags=["image-tag-search"]
)

def to_record(item: Dict[str, Any], s3: S3Service) -> ImageRecord:
    """Builds the response model and attaches a display URL for the stored object."""
    record = ImageRecord.model_validate(item)
    if not record.storage_key:
        log.warning("Image record %s has no storage key; returning it without a URL", record.image_id)
        return record
    try:
        record.image_url = s3.generate_presigned_url(record.storage_key)
    except (BotoCoreError, ClientError) as e:
        log.warning("Could not presign display URL for %s: %s", record.image_id, e)
    return record

def to_records(items: List[Dict[str, Any]], s3: S3Service) -> List[ImageRecord]:
    """Like ``to_record`` for search results; an item that cannot be read is left out."""
    records = []
    for item in items:
        try:
            records.append(to_record(item, s3))
        except ValidationError as e:
            log.warning("Skipping unreadable image record %s: %s", item.get("imageId"), e)
    return records

@router.post("/generate-upload-url", response_model=UploadUrlResponse)
def generate_upload_url(
    body: UploadUrlRequest,
    response: Response,
    db: DynamoDBService = Depends(get_dynamodb_service),
    s3: S3Service = Depends(get_s3_service),
    config: Settings = Depends(get_settings)
):
    """Issues a presigned upload URL and creates the PENDING record."""
    response.headers["Cache-Control"] = "no-store"
    log.info("Upload URL requested for %r (%s)", body.file_name, body.file_type)
    return request_upload(
        db=db,
        s3=s3,
        file_name=body.file_name,
        file_type=body.file_type,
        expires_in=config.presign_expire_seconds,
    )

@router.get("/search", response_model=SearchResponse)
def search_images_handler(
    q: Optional[List[str]] = Query(None, description="Space separated keywords; all must match"),
    db: DynamoDBService = Depends(get_dynamodb_service),
    s3: S3Service = Depends(get_s3_service)
):
    """Finds completed images tagged with every keyword."""
    keywords = parse_search_query(q or [])
    items = search_images(db, keywords)
    return SearchResponse(images=to_records(items, s3))

@router.get("/status/{image_id}", response_model=ImageRecord)
def get_status(
    image_id: str,
    db: DynamoDBService = Depends(get_dynamodb_service),
    s3: S3Service = Depends(get_s3_service)
):
    """Gets the image record, including its status and keywords."""
    item = get_image_status(db, image_id)
    log.info("Status for %s: %s", image_id, item.get("status"))
    return to_record(item, s3)
