"""
    Labeling worker: turns an S3 object-created notification into keywords on the
    image record.

    For every object in the event the worker asks Rekognition for labels, keeps the
    confident ones and completes the record. A Rekognition failure marks the record
    FAILED and is re-raised so the trigger's own retry policy applies.
"""
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import unquote_plus
import logging
from botocore.exceptions import BotoCoreError, ClientError

from tagsearch.storage.dynamodb import DynamoDBService
from tagsearch.storage.keys import image_id_from_key
from tagsearch.labeling.rekognition import RekognitionService
from tagsearch.settings import settings
from tagsearch.exceptions import (
    MalformedEventException,
    LabelingServiceException,
    PersistenceException,
)

log = logging.getLogger(__name__)

def parse_event(event: Any) -> List[Tuple[str, str]]:
    """Returns the (bucket, key) pairs of an S3 notification, keys URL-decoded."""
    if not isinstance(event, dict):
        raise MalformedEventException("Event is not an object")
    records = event.get("Records")
    if not records or not isinstance(records, list):
        raise MalformedEventException("No S3 records in event")

    objects = []
    for index, record in enumerate(records):
        try:
            bucket = record["s3"]["bucket"]["name"]
            key = record["s3"]["object"]["key"]
        except (KeyError, TypeError):
            raise MalformedEventException(f"Record {index} lacks s3.bucket.name / s3.object.key")
        if not bucket or not key:
            raise MalformedEventException(f"Record {index} has an empty bucket or key")
        objects.append((bucket, unquote_plus(key)))
    return objects

def process_labels(
    labels: List[Dict[str, Any]],
    min_confidence: Optional[float] = None,
    max_tags: Optional[int] = None,
) -> List[str]:
    """
        Confident, lower-cased, de-duplicated label names in first-seen order,
        at most ``max_tags`` of them.
    """
    threshold = settings.min_confidence if min_confidence is None else min_confidence
    limit = settings.max_tags if max_tags is None else max_tags

    tags: List[str] = []
    seen = set()
    for label in labels:
        name = label.get("Name")
        confidence = label.get("Confidence")
        if not name or confidence is None or confidence < threshold:
            continue
        tag = name.lower()
        if tag in seen:
            continue
        seen.add(tag)
        tags.append(tag)
        if len(tags) >= limit:
            break
    return tags

def mark_failed(db: DynamoDBService, image_id: str) -> None:
    try:
        db.fail_record(image_id)
    except ClientError as e:
        if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
            log.warning("Record %s is not PENDING; leaving its status unchanged", image_id)
            return
        log.error("DynamoDB fail_record failed for %s: %s", image_id, e)
        raise PersistenceException(f"Failed to mark image {image_id} as FAILED")
    except BotoCoreError as e:
        log.error("DynamoDB fail_record failed for %s: %s", image_id, e)
        raise PersistenceException(f"Failed to mark image {image_id} as FAILED")
    log.info("Marked image %s FAILED", image_id)

def label_object(
    db: DynamoDBService,
    rekognition: RekognitionService,
    bucket: str,
    key: str,
) -> Dict[str, Any]:
    """Labels one stored image and writes the outcome to its record."""
    image_id = image_id_from_key(key)
    log.info("Processing image %s: s3://%s/%s", image_id, bucket, key)

    try:
        labels = rekognition.detect_labels(
            bucket,
            key,
            max_labels=settings.max_labels,
            min_confidence=settings.min_confidence,
        )
    except (BotoCoreError, ClientError) as e:
        log.error("Rekognition detect_labels failed for s3://%s/%s: %s", bucket, key, e)
        mark_failed(db, image_id)
        raise LabelingServiceException(f"Failed to label image {image_id}")

    tags = process_labels(labels)
    if not tags:
        log.warning("No tags with sufficient confidence detected for %s", image_id)
    log.debug("Tags for %s: %s", image_id, tags)

    try:
        db.complete_record(image_id, tags)
    except (BotoCoreError, ClientError) as e:
        log.error("DynamoDB complete_record failed for %s: %s", image_id, e)
        raise PersistenceException(f"Failed to save tags for image {image_id}")

    log.info("Image %s COMPLETED with %d tag(s)", image_id, len(tags))
    return {"imageId": image_id, "storageKey": key, "tags": tags}

def handle_event(
    event: Any,
    db: DynamoDBService,
    rekognition: RekognitionService,
) -> List[Dict[str, Any]]:
    return [label_object(db, rekognition, bucket, key) for bucket, key in parse_event(event)]
