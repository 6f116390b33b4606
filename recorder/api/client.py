"""Screenshot service API client."""

from __future__ import annotations

import json
import logging
import time
from typing import Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from recorder.api.transport import Transport
from recorder.errors import RecorderError, RunSubmissionError, UploadNegotiationError, UploadTransferError
from recorder.models.api import ApiResult, ImageResponse, RunResponse
from recorder.models.config import Credential, RecorderConfig
from recorder.models.screenshot import RunManifest

logger = logging.getLogger(__name__)

SCREENSHOT_ENDPOINT = "/api/screenshot"
RUN_ENDPOINT = "/api/run"

R = TypeVar("R", bound=BaseModel)


def _bool_field(value: bool) -> str:
    return "true" if value else "false"


class ApiClient:
    """Speaks the service's form-encoded wire protocol over a Transport."""

    def __init__(self, config: RecorderConfig, credential: Credential, transport: Transport):
        self.config = config
        self.credential = credential
        self.transport = transport
        self._call_count = 0

    @property
    def call_count(self) -> int:
        return self._call_count

    async def _post(
        self,
        path: str,
        fields: Mapping[str, str],
        payload_type: Type[R],
        error_cls: Type[RecorderError],
    ) -> R:
        self._call_count += 1
        url = self.config.build_url(path)
        call_start = time.time()
        resp = await self.transport.post(url, {**fields, **self.credential.form_fields()})
        logger.debug("%s answered %d in %.2fs", path, resp.status_code, time.time() - call_start)

        result: Optional[ApiResult[payload_type]] = None
        try:
            result = ApiResult[payload_type].model_validate_json(resp.body)
        except ValidationError as e:
            if resp.ok:
                raise error_cls(f"Unexpected response from {path}") from e

        if not resp.ok or result is None or not result.success or result.response is None:
            detail = result.error if result is not None and result.error else None
            msg = f"{path} returned status {resp.status_code}"
            if detail:
                msg += f": {detail}"
            raise error_cls(msg)
        return result.response

    async def register_image(self, name: str, content_hash: str) -> ImageResponse:
        """Register an image by digest; the response says whether to upload."""
        return await self._post(
            SCREENSHOT_ENDPOINT,
            {"name": name, "hash": content_hash},
            ImageResponse,
            UploadNegotiationError,
        )

    async def upload_image(self, upload_url: str, data: bytes) -> None:
        """PUT raw image bytes to a pre-signed upload URL."""
        self._call_count += 1
        resp = await self.transport.put(upload_url, data)
        if not resp.ok:
            raise UploadTransferError(
                f"Error while uploading image data (status {resp.status_code})"
            )

    async def create_run(self, manifest: RunManifest) -> str:
        """Submit the run; returns the server's run id."""
        env = manifest.environment
        fields = {
            "channel": env.channel,
            "screenshot-records": json.dumps(
                [r.to_wire() for r in manifest.records], separators=(",", ":")
            ),
            "github-repo": env.github_repo,
            "commit": env.commit,
            "is-clean": _bool_field(env.is_clean) if env.is_clean is not None else None,
            "branch": env.branch,
            "is-trunk": _bool_field(env.is_production),
        }
        response = await self._post(
            RUN_ENDPOINT,
            {k: v for k, v in fields.items() if v is not None},
            RunResponse,
            RunSubmissionError,
        )
        return response.id
