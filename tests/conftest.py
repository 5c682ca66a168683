import os
import pytest
from moto import mock_aws
from fastapi.testclient import TestClient
import boto3

# Set test environment variables BEFORE importing app modules
os.environ["TESTING"] = "true"

# Dummy AWS credentials for moto
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
os.environ["AWS_SECURITY_TOKEN"] = "testing"
os.environ["AWS_SESSION_TOKEN"] = "testing"
os.environ["AWS_REGION"] = "us-east-1"
os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
os.environ["S3_BUCKET"] = "image-search-bucket"
os.environ["DYNAMODB_TABLE"] = "ImageRecords"
os.environ["FRONTEND_URL"] = "http://localhost:3000"
# Clear the AWS_ENDPOINT_URL so moto mocks are used instead of localstack
os.environ.pop("AWS_ENDPOINT_URL", None)
os.environ.pop("EXTERNAL_ENDPOINT", None)

from tagsearch.main import app
from tagsearch.storage.s3 import S3Service
from tagsearch.storage.dynamodb import DynamoDBService

BUCKET = "image-search-bucket"
TABLE = "ImageRecords"


@pytest.fixture(scope="function")
def aws_credentials():
    """Mocked AWS Credentials for moto."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"


@pytest.fixture(scope="function")
def aws(aws_credentials):
    """moto-backed bucket and table, yielded as (DynamoDBService, S3Service)."""
    with mock_aws():
        s3 = boto3.client("s3", region_name="us-east-1")
        s3.create_bucket(Bucket=BUCKET)

        dynamodb = boto3.client("dynamodb", region_name="us-east-1")
        dynamodb.create_table(
            TableName=TABLE,
            KeySchema=[{"AttributeName": "imageId", "KeyType": "HASH"}],
            AttributeDefinitions=[{"AttributeName": "imageId", "AttributeType": "S"}],
            BillingMode="PAY_PER_REQUEST",
        )

        yield DynamoDBService(), S3Service()


@pytest.fixture(scope="function")
def test_client(aws):
    db_service, s3_service = aws

    # Replace the original services with mocked ones
    app.state.s3 = s3_service
    app.state.db = db_service

    with TestClient(app) as client:
        yield client


@pytest.fixture
def db(test_client):
    """The DynamoDBService the running app uses."""
    return test_client.app.state.db
