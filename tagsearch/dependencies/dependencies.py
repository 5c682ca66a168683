"""
Request-scoped providers for the API routes.

The AWS services are created once in the app lifespan and kept on ``app.state``;
tests swap any of these through ``app.dependency_overrides``.
"""
from fastapi import Request
from tagsearch.settings import Settings, settings
from tagsearch.storage.dynamodb import DynamoDBService
from tagsearch.storage.s3 import S3Service

def get_settings() -> Settings:
    """The process-wide settings loaded from the environment."""
    return settings

def get_s3_service(request: Request) -> S3Service:
    """The bucket client used for presigned upload and display URLs."""
    return request.app.state.s3

def get_dynamodb_service(request: Request) -> DynamoDBService:
    """The image record table."""
    return request.app.state.db
