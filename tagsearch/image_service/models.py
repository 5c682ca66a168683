from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from uuid import uuid4

def new_image_id() -> str:
    """Generates a new unique image ID."""
    return str(uuid4())

class ImageStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

class CamelModel(BaseModel):
    """Serialized with camelCase keys, which is also how records are stored in DynamoDB."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class ImageRecord(CamelModel):
    image_id: str = Field(default_factory=new_image_id)
    storage_key: Optional[str] = None
    file_name: Optional[str] = None
    file_type: Optional[str] = None
    status: ImageStatus = ImageStatus.PENDING
    keywords: List[str] = []
    created_at: Optional[str] = None
    completed_at: Optional[str] = None
    image_url: Optional[str] = None

class UploadUrlRequest(CamelModel):
    # Presence is checked by the upload broker so missing fields get its messages
    file_name: Optional[str] = None
    file_type: Optional[str] = None

class UploadUrlResponse(CamelModel):
    presigned_url: str
    image_id: str
    expires_in: int

class SearchResponse(BaseModel):
    images: List[ImageRecord]

class HealthResponse(BaseModel):
    status: str = "ok"
