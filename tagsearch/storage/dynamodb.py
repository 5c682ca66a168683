import boto3
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List
from boto3.dynamodb.conditions import Attr, ConditionBase
from botocore.exceptions import ClientError
from tagsearch.settings import settings
import logging

log = logging.getLogger(__name__)

STATUS_PENDING = "PENDING"
STATUS_COMPLETED = "COMPLETED"
STATUS_FAILED = "FAILED"

def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

# -------------------------
# DynamoDB Service
# -------------------------
class DynamoDBService:
    def __init__(self, ensure_table: bool = True):
        session = boto3.session.Session(region_name=settings.aws_region)
        kwargs = {
            "aws_access_key_id": settings.aws_access_key_id,
            "aws_secret_access_key": settings.aws_secret_access_key,
        }
        if settings.aws_endpoint_url:
            kwargs["endpoint_url"] = settings.aws_endpoint_url

        self.resource = session.resource("dynamodb", **kwargs)
        self.table = self.resource.Table(settings.dynamodb_table)
        log.info("Initialized DynamoDB resource")

        # Ensure table exists at initialization
        if ensure_table:
            self.ensure_table()

    # Refer here: https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/dynamodb/client/create_table.html
    def ensure_table(self):
        try:
            self.table.load()
        except ClientError:
            table = self.resource.create_table(
                TableName=settings.dynamodb_table,
                KeySchema=[{"AttributeName": "imageId", "KeyType": "HASH"}],
                AttributeDefinitions=[
                    {"AttributeName": "imageId", "AttributeType": "S"},
                ],
                BillingMode="PAY_PER_REQUEST",
            )
            table.wait_until_exists()
            self.table = table
            log.info("Created table %s", settings.dynamodb_table)

    def create_record(self, item: Dict[str, Any]):
        """Inserts a new record; fails if the image id is already taken."""
        self.table.put_item(
            Item=item,
            ConditionExpression=Attr("imageId").not_exists(),
        )
        log.debug("Inserted record %s", item.get("imageId"))

    def get_record(self, image_id: str) -> Optional[Dict[str, Any]]:
        resp = self.table.get_item(Key={"imageId": image_id})
        return resp.get("Item")

    def complete_record(self, image_id: str, keywords: List[str]):
        """
            Marks a record COMPLETED with its keywords.

            Only existing records that have not FAILED may complete; re-running
            the same completion is allowed.
        """
        self.table.update_item(
            Key={"imageId": image_id},
            UpdateExpression="SET #status = :completed, #keywords = :keywords, #completedAt = :now",
            ConditionExpression=Attr("imageId").exists() & Attr("status").ne(STATUS_FAILED),
            ExpressionAttributeNames={
                "#status": "status",
                "#keywords": "keywords",
                "#completedAt": "completedAt",
            },
            ExpressionAttributeValues={
                ":completed": STATUS_COMPLETED,
                ":keywords": keywords,
                ":now": utc_now_iso(),
            },
        )
        log.debug("Completed record %s with %d keywords", image_id, len(keywords))

    def fail_record(self, image_id: str):
        """Marks a PENDING record FAILED. Raises ConditionalCheckFailedException otherwise."""
        self.table.update_item(
            Key={"imageId": image_id},
            UpdateExpression="SET #status = :failed, #completedAt = :now",
            ConditionExpression=Attr("status").eq(STATUS_PENDING),
            ExpressionAttributeNames={
                "#status": "status",
                "#completedAt": "completedAt",
            },
            ExpressionAttributeValues={
                ":failed": STATUS_FAILED,
                ":now": utc_now_iso(),
            },
        )
        log.debug("Failed record %s", image_id)

    def scan_all(self, filter_expression: Optional[ConditionBase] = None) -> List[Dict[str, Any]]:
        """Full-table scan following LastEvaluatedKey until the table is exhausted."""
        scan_kwargs: Dict[str, Any] = {}
        if filter_expression is not None:
            scan_kwargs["FilterExpression"] = filter_expression

        items: List[Dict[str, Any]] = []
        pages = 0
        while True:
            resp = self.table.scan(**scan_kwargs)
            items.extend(resp.get("Items", []))
            pages += 1
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                break
            scan_kwargs["ExclusiveStartKey"] = last_key
        log.debug("Scanned %d page(s), %d matching item(s)", pages, len(items))
        return items

    def close(self):
        log.info("Closed DynamoDB resource")
