"""Recording pipeline: tiles → composite → dedup upload → run."""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from recorder.api.client import ApiClient
from recorder.api.transport import HttpxTransport, Transport
from recorder.errors import InputError, NetworkError, UploadAborted
from recorder.images.composite import assemble, encode_png
from recorder.images.source import DirectoryImageSource, ImageSource, open_image_source
from recorder.images.tiles import load_tile_matrix
from recorder.models.config import CredentialSource, RecorderConfig
from recorder.models.screenshot import RunEnvironment, RunSummary, ScreenshotDescriptor, UploadRecord
from recorder.sources.metadata import XmlMetadataSource
from recorder.sources.repo_status import GitRepoStatusSource
from recorder.upload.aggregator import RunAggregator
from recorder.upload.uploader import DedupUploader, UploadOutcome

logger = logging.getLogger(__name__)

DEFAULT_METADATA_FILENAME = "metadata.xml"

TransportFactory = Callable[[], Transport]
Job = Callable[[asyncio.Event], Awaitable[UploadOutcome]]


def render_screenshot(source: ImageSource, descriptor: ScreenshotDescriptor) -> bytes:
    """Load a screenshot's tiles, stitch them and return PNG bytes."""
    tiles = load_tile_matrix(source, descriptor)
    return encode_png(assemble(tiles))


class Recorder:
    """Records one run per call to :meth:`record`.

    Holds no per-run state, so the same instance can record several runs.
    """

    def __init__(
        self,
        config: RecorderConfig,
        credentials: CredentialSource,
        metadata_source: Optional[XmlMetadataSource] = None,
        repo_status_source: Optional[GitRepoStatusSource] = None,
        transport_factory: Optional[TransportFactory] = None,
        repo_dir: str | Path = ".",
    ):
        self.config = config
        self.credentials = credentials
        self.metadata_source = metadata_source or XmlMetadataSource()
        self.repo_status_source = repo_status_source or GitRepoStatusSource()
        self.transport_factory = transport_factory or (
            lambda: HttpxTransport(timeout=config.request_timeout_seconds)
        )
        self.repo_dir = Path(repo_dir)

    def record(
        self, channel: str, locator: str | Path, metadata_path: str | Path | None = None
    ) -> RunSummary:
        """Upload every screenshot and create the run. Returns the run summary."""
        return asyncio.run(self.record_async(channel, locator, metadata_path))

    async def record_async(
        self, channel: str, locator: str | Path, metadata_path: str | Path | None = None
    ) -> RunSummary:
        if not channel or not channel.strip():
            raise InputError("empty channel")
        if not locator or not str(locator).strip():
            raise InputError("no directory specified")

        start = time.time()
        credential = self.credentials.load()
        env = self._environment(channel)

        transport = self.transport_factory()
        try:
            api = ApiClient(self.config, credential, transport)
            uploader = DedupUploader(api, self.config.hash_algorithm)

            if self.config.ios_snapshot_test_case:
                outcomes = await self._upload_snapshot_tree(Path(locator), uploader)
            else:
                meta = Path(metadata_path) if metadata_path else Path(locator) / DEFAULT_METADATA_FILENAME
                outcomes = await self._upload_tiled(Path(locator), meta, uploader)

            records = [UploadRecord(name=name, image_id=o.image_id) for name, o in outcomes]
            run_id = await RunAggregator(api).finalize(records, env)
        finally:
            await transport.aclose()

        duration = time.time() - start
        reused = sum(1 for _, o in outcomes if o.reused)
        logger.info("Run %s complete in %.1fs: %d uploaded, %d reused",
                    run_id, duration, len(outcomes) - reused, reused)
        return RunSummary(
            run_id=run_id,
            channel=channel,
            total=len(outcomes),
            uploaded=len(outcomes) - reused,
            reused=reused,
            duration_seconds=round(duration, 2),
        )

    def _environment(self, channel: str) -> RunEnvironment:
        status = self.repo_status_source.resolve(self.repo_dir)
        return RunEnvironment(
            channel=channel,
            branch=self.config.branch,
            commit=status.commit if status else None,
            is_clean=status.is_clean if status else None,
            is_production=self.config.production,
            github_repo=self.config.github_repo,
        )

    async def _upload_tiled(
        self, locator: Path, metadata_path: Path, uploader: DedupUploader
    ) -> list[tuple[str, UploadOutcome]]:
        descriptors = self.metadata_source.parse(metadata_path)
        logger.info("Got %d screenshots to upload", len(descriptors))

        with open_image_source(locator) as source:
            def make_job(descriptor: ScreenshotDescriptor) -> Job:
                async def job(abort: asyncio.Event) -> UploadOutcome:
                    data = await asyncio.to_thread(render_screenshot, source, descriptor)
                    return await self._upload_with_retry(
                        uploader, f"{descriptor.name}.png", data, abort
                    )
                return job

            return await self._run_pool([(d.name, make_job(d)) for d in descriptors])

    async def _upload_snapshot_tree(
        self, root: Path, uploader: DedupUploader
    ) -> list[tuple[str, UploadOutcome]]:
        """Upload an iOSSnapshotTestCase tree (ClassName/testName.png) as-is."""
        if not root.is_dir():
            raise InputError(f"Snapshot test case mode needs a directory, got {root}")

        source = DirectoryImageSource(root)

        def make_job(filename: str) -> Job:
            async def job(abort: asyncio.Event) -> UploadOutcome:
                data = await asyncio.to_thread(source.read_bytes, filename)
                return await self._upload_with_retry(uploader, filename, data, abort)
            return job

        jobs = []
        for path in sorted(root.rglob("*.png")):
            rel = path.relative_to(root)
            prefix = "".join(f"/{part}" for part in rel.parent.parts)
            jobs.append((f"{prefix}/{path.stem}", make_job(rel.as_posix())))
        logger.info("Got %d snapshots to upload", len(jobs))
        return await self._run_pool(jobs)

    async def _upload_with_retry(
        self, uploader: DedupUploader, name: str, data: bytes, abort: asyncio.Event
    ) -> UploadOutcome:
        # rendering may have outlasted another screenshot's failure
        if abort.is_set():
            raise UploadAborted(f"Skipping {name}, run is aborting")
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.network_retries + 1),
            wait=wait_exponential(multiplier=0.5, max=10),
            retry=retry_if_exception_type(NetworkError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        return await retrying(uploader.upload, name, data, abort)

    async def _run_pool(self, jobs: list[tuple[str, Job]]) -> list[tuple[str, UploadOutcome]]:
        """Run one task per screenshot, bounded by ``max_workers``.

        Results are keyed by screenshot name and returned in input order. On
        the first failure every task that has not started transferring stops,
        in-flight transfers finish, and the first error is raised.
        """
        names = [name for name, _ in jobs]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise InputError(f"Duplicate screenshot names: {', '.join(duplicates)}")

        semaphore = asyncio.Semaphore(self.config.max_workers)
        abort = asyncio.Event()
        errors: list[Exception] = []
        results: dict[str, UploadOutcome] = {}

        async def run_one(index: int, name: str, job: Job) -> None:
            async with semaphore:
                if abort.is_set():
                    return
                logger.debug("Processing [%d/%d]: %s", index + 1, len(jobs), name)
                try:
                    results[name] = await job(abort)
                except UploadAborted:
                    return
                except Exception as e:
                    abort.set()
                    errors.append(e)

        await asyncio.gather(*(run_one(i, name, job) for i, (name, job) in enumerate(jobs)))

        if errors:
            raise errors[0]
        return [(name, results[name]) for name in names]
