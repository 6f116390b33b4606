"""Content-addressed image upload: negotiate by digest, transfer only new content."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

from pydantic import BaseModel

from recorder.api.client import ApiClient
from recorder.errors import RecorderError, UploadAborted
from recorder.images.digest import digest

logger = logging.getLogger(__name__)


class UploadState(str, Enum):
    PENDING = "pending"
    NEGOTIATED = "negotiated"
    REUSED = "reused"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS: dict[UploadState, set[UploadState]] = {
    UploadState.PENDING: {UploadState.NEGOTIATED},
    UploadState.NEGOTIATED: {UploadState.REUSED, UploadState.UPLOADING, UploadState.FAILED},
    UploadState.UPLOADING: {UploadState.UPLOADED, UploadState.FAILED},
    UploadState.REUSED: {UploadState.DONE},
    UploadState.UPLOADED: {UploadState.DONE},
    UploadState.DONE: set(),
    UploadState.FAILED: set(),
}


class UploadOutcome(BaseModel):
    """Progress of one screenshot through negotiation and transfer.

    A failed negotiation never leaves PENDING: the error propagates and the
    outcome is discarded. FAILED is only entered once the server has answered.
    """

    name: str
    digest: str = ""
    image_id: str = ""
    state: UploadState = UploadState.PENDING
    # REUSED or UPLOADED, kept once the outcome reaches DONE
    resolution: UploadState | None = None

    def advance(self, new_state: UploadState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal upload transition {self.state.value} -> {new_state.value}")
        logger.debug("%s: %s -> %s", self.name, self.state.value, new_state.value)
        if new_state in (UploadState.REUSED, UploadState.UPLOADED):
            self.resolution = new_state
        self.state = new_state

    @property
    def reused(self) -> bool:
        return self.resolution == UploadState.REUSED


class DedupUploader:
    """Registers images by digest and uploads bytes only when the server asks."""

    def __init__(self, api: ApiClient, hash_algorithm: str = "md5"):
        self.api = api
        self.hash_algorithm = hash_algorithm

    async def upload(
        self, name: str, data: bytes, abort: asyncio.Event | None = None
    ) -> UploadOutcome:
        """Run the two-phase protocol for one image and return its outcome.

        ``abort`` is checked once negotiation is done. A set event stops the
        upload before any bytes are sent; a transfer already under way is
        always allowed to finish.
        """
        outcome = UploadOutcome(name=name, digest=digest(data, self.hash_algorithm))
        image = await self.api.register_image(name, outcome.digest)
        outcome.image_id = image.id
        outcome.advance(UploadState.NEGOTIATED)

        if not image.needs_upload:
            logger.info("Reusing existing image for %s", name)
            outcome.advance(UploadState.REUSED)
            outcome.advance(UploadState.DONE)
            return outcome

        if abort is not None and abort.is_set():
            outcome.advance(UploadState.FAILED)
            raise UploadAborted(f"Upload of {name} skipped, run is aborting")

        logger.info("New image, never seen before. Uploading %s (%d bytes)", name, len(data))
        outcome.advance(UploadState.UPLOADING)
        try:
            await self.api.upload_image(image.upload_url, data)
        except RecorderError:
            outcome.advance(UploadState.FAILED)
            raise
        outcome.advance(UploadState.UPLOADED)
        outcome.advance(UploadState.DONE)
        return outcome

    async def negotiate_and_upload(self, name: str, data: bytes) -> str:
        """Upload ``data`` if needed and return the server's image id."""
        outcome = await self.upload(name, data)
        return outcome.image_id
