"""Upload-then-poll flow for a single image.

    IDLE -> UPLOADING -> POLLING -> COMPLETED | FAILED -> (after reset_delay) IDLE

The session owns its polling task and the pending reset; leaving the
``async with`` block cancels both.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from tagsearch.client.api import ClientError, TagSearchClient
from tagsearch.client.gallery import Gallery
from tagsearch.image_service.service import ALLOWED_IMAGE_TYPES

log = logging.getLogger(__name__)

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
POLL_INTERVAL = 3.0
MAX_POLL_ATTEMPTS = 100
RESET_DELAY = 2.0


class UploadState(str, Enum):
    IDLE = "IDLE"
    UPLOADING = "UPLOADING"
    POLLING = "POLLING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


def validate_local_file(file_name: str, content_type: str, size: int) -> None:
    if not file_name:
        raise ClientError("No file selected")
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise ClientError("Only image files are allowed")
    if size > MAX_FILE_SIZE:
        raise ClientError("File size must be under 10MB")


class UploadSession:
    """Drives one upload at a time through the status state machine."""

    def __init__(
        self,
        api: Optional[TagSearchClient] = None,
        gallery: Optional[Gallery] = None,
        poll_interval: float = POLL_INTERVAL,
        max_attempts: int = MAX_POLL_ATTEMPTS,
        reset_delay: float = RESET_DELAY,
    ):
        self._owns_api = api is None
        self.api = api or TagSearchClient()
        self.gallery = gallery if gallery is not None else Gallery()
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.reset_delay = reset_delay

        self.state = UploadState.IDLE
        self.image_id: Optional[str] = None
        self.record: Optional[Dict[str, Any]] = None
        self.error: Optional[str] = None
        self.message: str = ""

        self._listeners: List[Callable[["UploadSession"], None]] = []
        self._poll_task: Optional[asyncio.Task] = None
        self._reset_handle: Optional[asyncio.TimerHandle] = None

    async def __aenter__(self) -> "UploadSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def on_state_change(self, callback: Callable[["UploadSession"], None]) -> None:
        self._listeners.append(callback)

    def _set_state(self, state: UploadState, message: str = "") -> None:
        self.state = state
        self.message = message
        log.debug(f"Upload state -> {state.value} ({message})")
        for callback in list(self._listeners):
            callback(self)

    def _finish(self, state: UploadState, message: str, error: Optional[str] = None) -> None:
        self.error = error
        self._set_state(state, message)
        loop = asyncio.get_running_loop()
        self._reset_handle = loop.call_later(self.reset_delay, self.reset)

    def reset(self) -> None:
        """Back to IDLE, ready for the next file."""
        if self._reset_handle is not None:
            self._reset_handle.cancel()
            self._reset_handle = None
        self.image_id = None
        self.record = None
        self.error = None
        self._set_state(UploadState.IDLE)

    async def upload(self, file_name: str, content: bytes, content_type: str) -> Optional[Dict[str, Any]]:
        """
        Uploads ``content`` and waits for analysis.

        Returns the completed record, or None when the upload or analysis
        failed or polling was cancelled. ``error`` explains failures.
        """
        if self.state not in (UploadState.IDLE, UploadState.COMPLETED, UploadState.FAILED):
            raise ClientError("An upload is already in progress")
        validate_local_file(file_name, content_type, len(content))
        if self.state is not UploadState.IDLE:
            self.reset()

        self._set_state(UploadState.UPLOADING, f"Uploading {file_name}...")
        try:
            upload = await self.api.get_presigned_url(file_name, content_type)
            self.image_id = upload["imageId"]
            await self.api.upload_to_storage(upload["presignedUrl"], content, content_type)
        except ClientError as e:
            log.error(f"Upload failed for {file_name}: {e}")
            self._finish(UploadState.FAILED, "Upload failed.", error=str(e) or "Upload failed. Please try again.")
            return None
        except Exception as e:
            log.exception(f"Unexpected error uploading {file_name}")
            self._finish(UploadState.FAILED, "Upload failed.", error=f"Unexpected error: {e!r}")
            return None

        log.info(f"Uploaded {file_name} as {self.image_id}; polling for analysis")
        self._set_state(UploadState.POLLING, "Image is being analyzed...")
        self._poll_task = asyncio.create_task(self._poll(self.image_id))
        try:
            await asyncio.wait({self._poll_task})
        except asyncio.CancelledError:
            self._poll_task.cancel()
            raise
        if self._poll_task.cancelled():
            return None
        return self._poll_task.result()

    async def _poll(self, image_id: str) -> Optional[Dict[str, Any]]:
        for attempt in range(1, self.max_attempts + 1):
            await asyncio.sleep(self.poll_interval)
            try:
                record = await self.api.get_image_status(image_id)
            except ClientError as e:
                log.error(f"Polling {image_id} failed: {e}")
                self._finish(UploadState.FAILED, "Error checking status.", error=str(e))
                return None
            except Exception as e:
                log.exception(f"Unexpected error polling {image_id}")
                self._finish(UploadState.FAILED, "Error checking status.", error=f"Unexpected error: {e!r}")
                return None

            status = record.get("status") if isinstance(record, dict) else None
            log.debug(f"Poll {attempt}/{self.max_attempts} for {image_id}: {status}")
            if status == "COMPLETED":
                self.record = record
                self.gallery.add(record)
                self._finish(UploadState.COMPLETED, "Analysis complete!")
                return record
            if status != "PENDING":
                self._finish(
                    UploadState.FAILED,
                    "Analysis failed. Please try another image.",
                    error=f"Image {image_id} ended in status {status}",
                )
                return None

        self._finish(
            UploadState.FAILED,
            "Analysis is taking too long.",
            error=f"Image {image_id} still PENDING after {self.max_attempts} checks",
        )
        return None

    def cancel(self) -> None:
        """Stops an in-flight poll loop and returns to IDLE."""
        if self._poll_task is not None and not self._poll_task.done():
            self._poll_task.cancel()
            log.info(f"Cancelled polling for {self.image_id}")
            self.reset()

    async def aclose(self) -> None:
        self.cancel()
        if self._poll_task is not None:
            await asyncio.gather(self._poll_task, return_exceptions=True)
        if self._reset_handle is not None:
            self._reset_handle.cancel()
            self._reset_handle = None
        if self._owns_api:
            await self.api.aclose()
