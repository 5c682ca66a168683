from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import uvicorn
import logging

from tagsearch.storage.dynamodb import DynamoDBService
from tagsearch.storage.s3 import S3Service
from tagsearch.settings import settings
from tagsearch.routers.image_service import router as image_router
from tagsearch.image_service.models import HealthResponse
from tagsearch.exceptions import add_exception_handlers

logging.basicConfig(level=settings.log_level.upper())
log = logging.getLogger("tagsearch")

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
        Async context manager for FastAPI application lifecycle events.
        Initializes and closes resources (S3, DynamoDB) for the application.
    """
    # Initialize resources
    app.state.s3 = S3Service()
    app.state.db = DynamoDBService()
    log.info("Serving bucket %s, table %s", settings.s3_bucket, settings.dynamodb_table)
    yield
    # Cleanup resources
    app.state.s3.close()
    app.state.db.close()

# Initialize App
app = FastAPI(
    title=settings.app_title,
    lifespan=lifespan,
    description="Image upload and tag search service",
)

# Add exception handlers
add_exception_handlers(app)

# CORS - Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add the routers
app.include_router(image_router)

# Check Health
@app.get("/health", response_model=HealthResponse)
def health():
    """
        Liveness probe

    """
    return HealthResponse()

if __name__ == "__main__":
    uvicorn.run("tagsearch.main:app", host="0.0.0.0", port=settings.port, reload=True)
