from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import AliasChoices, Field
from typing import Optional

class Settings(BaseSettings):
    aws_region: str = Field("us-east-1", validation_alias=AliasChoices("AWS_REGION", "aws_region"))
    s3_bucket: str = Field(
        "image-search-bucket",
        validation_alias=AliasChoices("S3_BUCKET", "S3_BUCKET_NAME", "s3_bucket"),
    )
    dynamodb_table: str = Field(
        "ImageRecords",
        validation_alias=AliasChoices("DYNAMODB_TABLE", "DYNAMODB_TABLE_NAME", "dynamodb_table"),
    )
    aws_endpoint_url: Optional[str] = Field(None, validation_alias=AliasChoices("AWS_ENDPOINT_URL", "aws_endpoint_url"))
    # Public host that replaces aws_endpoint_url in presigned URLs (LocalStack behind docker)
    external_endpoint: Optional[str] = Field(None, validation_alias=AliasChoices("EXTERNAL_ENDPOINT", "external_endpoint"))
    presign_expire_seconds: int = Field(900, validation_alias=AliasChoices("PRESIGN_EXPIRE_SECONDS", "presign_expire_seconds"))

    aws_access_key_id: Optional[str] = Field(None, validation_alias=AliasChoices("AWS_ACCESS_KEY_ID", "aws_access_key_id"))
    aws_secret_access_key: Optional[str] = Field(
        None, validation_alias=AliasChoices("AWS_SECRET_ACCESS_KEY", "aws_secret_access_key")
    )

    # Labeling
    min_confidence: float = Field(
        80.0,
        validation_alias=AliasChoices("MIN_CONFIDENCE", "REKOGNITION_MIN_CONFIDENCE", "min_confidence"),
    )
    max_labels: int = Field(100, validation_alias=AliasChoices("MAX_LABELS", "max_labels"))
    max_tags: int = Field(20, validation_alias=AliasChoices("MAX_TAGS", "max_tags"))

    # HTTP
    frontend_url: str = Field("http://localhost:3000", validation_alias=AliasChoices("FRONTEND_URL", "frontend_url"))
    port: int = Field(5000, validation_alias=AliasChoices("PORT", "port"))
    log_level: str = Field("INFO", validation_alias=AliasChoices("LOG_LEVEL", "log_level"))
    app_title: str = Field("Image Tag Search", validation_alias=AliasChoices("APP_TITLE", "app_title"))

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="allow",  # tolerate unknown vars if needed
    )

settings = Settings()
