"""
AWS Lambda entry point for the labeling worker.
Configure the S3 bucket to invoke ``tagsearch.labeling.handler.lambda_handler``
on ``s3:ObjectCreated:*`` under the ``uploads/`` prefix.
"""
import json
import logging

from tagsearch.storage.dynamodb import DynamoDBService
from tagsearch.labeling.rekognition import RekognitionService
from tagsearch.labeling.worker import handle_event
from tagsearch.settings import settings

logging.getLogger().setLevel(settings.log_level.upper())

log = logging.getLogger(__name__)

# Created on first use and reused while the container stays warm
db_service = None
rekognition_service = None


def get_db_service() -> DynamoDBService:
    """Get or create the DynamoDB service."""
    global db_service
    if db_service is None:
        db_service = DynamoDBService(ensure_table=False)
    return db_service


def get_rekognition_service() -> RekognitionService:
    """Get or create the Rekognition service."""
    global rekognition_service
    if rekognition_service is None:
        rekognition_service = RekognitionService()
    return rekognition_service


def lambda_handler(event, context):
    """
    Label every image in an S3 notification.

    Args:
        event: S3 event containing bucket and object information
        context: Lambda context object

    Returns:
        dict: Response with status code and the processed images
    """
    log.debug("Lambda invoked with event: %s", json.dumps(event, default=str))

    results = handle_event(event, get_db_service(), get_rekognition_service())

    return {
        "statusCode": 200,
        "body": json.dumps(
            {
                "message": "Image analyzed and stored",
                "images": results,
            }
        ),
    }
