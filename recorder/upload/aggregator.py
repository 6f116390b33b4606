"""Run aggregation: submit all upload records as one run."""

from __future__ import annotations

import logging

from recorder.api.client import ApiClient
from recorder.models.screenshot import RunEnvironment, RunManifest, UploadRecord

logger = logging.getLogger(__name__)


class RunAggregator:
    """Builds the run manifest and submits it exactly once."""

    def __init__(self, api: ApiClient):
        self.api = api
        self._run_id: str | None = None

    @property
    def run_id(self) -> str | None:
        return self._run_id

    async def finalize(self, records: list[UploadRecord], env: RunEnvironment) -> str:
        if self._run_id is not None:
            raise RuntimeError(f"Run {self._run_id} was already submitted")
        manifest = RunManifest(records=list(records), environment=env)
        logger.info("Finalizing run with %d screenshots on channel %s",
                    len(manifest.records), env.channel)
        self._run_id = await self.api.create_run(manifest)
        logger.info("Created run %s", self._run_id)
        return self._run_id
