import boto3
from typing import Optional, Dict, Any, List
from tagsearch.settings import settings
import logging

log = logging.getLogger(__name__)

# -------------------------
# Rekognition Service
# -------------------------
class RekognitionService:
    def __init__(self):
        session = boto3.session.Session(region_name=settings.aws_region)
        kwargs = {
            "aws_access_key_id": settings.aws_access_key_id,
            "aws_secret_access_key": settings.aws_secret_access_key,
        }
        if settings.aws_endpoint_url:
            kwargs["endpoint_url"] = settings.aws_endpoint_url

        self.client = session.client("rekognition", **kwargs)
        log.info("Initialized Rekognition client")

    def detect_labels(
        self,
        bucket: str,
        key: str,
        max_labels: Optional[int] = None,
        min_confidence: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        """Returns the raw Rekognition labels (``Name``/``Confidence`` dicts) for an S3 object."""
        resp = self.client.detect_labels(
            Image={"S3Object": {"Bucket": bucket, "Name": key}},
            MaxLabels=max_labels or settings.max_labels,
            MinConfidence=settings.min_confidence if min_confidence is None else min_confidence,
        )
        labels = resp.get("Labels") or []
        log.debug("Rekognition returned %d labels for s3://%s/%s", len(labels), bucket, key)
        return labels
