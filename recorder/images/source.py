"""Image sources: resolve tile filenames inside a directory or a zip bundle."""

from __future__ import annotations

import io
import logging
import threading
import zipfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Protocol

from PIL import Image, UnidentifiedImageError

from recorder.errors import DecodeError, NotFoundError

logger = logging.getLogger(__name__)


class ImageSource(Protocol):
    """Read access to the images of one screenshot bundle."""

    def read_bytes(self, name: str) -> bytes: ...

    def get_image(self, name: str) -> Image.Image: ...

    def close(self) -> None: ...


def decode_image(data: bytes, name: str) -> Image.Image:
    """Fully decode image bytes so no file handle outlives the call."""
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise DecodeError(f"Could not decode image {name}") from e
    return img


class DirectoryImageSource:
    """Serves images from a directory on disk."""

    def __init__(self, base_dir: Path):
        self.base_dir = Path(base_dir)
        self._root = self.base_dir.resolve()

    def _resolve(self, name: str) -> Path:
        path = (self.base_dir / name).resolve()
        if path != self._root and self._root not in path.parents:
            raise NotFoundError(f"{name} is outside {self.base_dir}")
        if not path.is_file():
            raise NotFoundError(f"Image not found: {self.base_dir / name}")
        return path

    def read_bytes(self, name: str) -> bytes:
        path = self._resolve(name)
        try:
            return path.read_bytes()
        except OSError as e:
            raise NotFoundError(f"Could not read {path}") from e

    def get_image(self, name: str) -> Image.Image:
        return decode_image(self.read_bytes(name), name)

    def close(self) -> None:
        pass


class ZipImageSource:
    """Serves images from the entries of a zip bundle.

    The archive handle is opened on construction and held until close().
    Reads are serialized so one instance can be shared by concurrent workers.
    """

    def __init__(self, archive_path: Path):
        self.archive_path = Path(archive_path)
        try:
            self._zip: zipfile.ZipFile | None = zipfile.ZipFile(self.archive_path)
        except (OSError, zipfile.BadZipFile) as e:
            raise NotFoundError(f"Could not open bundle {self.archive_path}") from e
        self._lock = threading.Lock()

    def read_bytes(self, name: str) -> bytes:
        with self._lock:
            if self._zip is None:
                raise NotFoundError(f"Bundle {self.archive_path} is closed")
            try:
                return self._zip.read(name)
            except KeyError as e:
                raise NotFoundError(f"No entry {name} in {self.archive_path}") from e
            except (OSError, zipfile.BadZipFile) as e:
                raise DecodeError(f"Corrupt entry {name} in {self.archive_path}") from e

    def get_image(self, name: str) -> Image.Image:
        return decode_image(self.read_bytes(name), name)

    def close(self) -> None:
        with self._lock:
            if self._zip is not None:
                self._zip.close()
                self._zip = None
                logger.debug("Closed bundle %s", self.archive_path)


@contextmanager
def open_image_source(locator: str | Path) -> Iterator[ImageSource]:
    """Open the right source for ``locator`` and always close it afterwards."""
    path = Path(locator)
    if path.is_dir():
        source: ImageSource = DirectoryImageSource(path)
    elif path.is_file():
        source = ZipImageSource(path)
    else:
        raise NotFoundError(f"No such directory or bundle: {path}")

    logger.debug("Opened %s for %s", type(source).__name__, path)
    try:
        yield source
    finally:
        source.close()
