"""Metadata parsing: read screenshot descriptors from metadata.xml."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from pathlib import Path

from pydantic import ValidationError

from recorder.errors import InputError
from recorder.models.screenshot import ScreenshotDescriptor

logger = logging.getLogger(__name__)

_TEXT_FIELDS = ("name", "description", "test_class", "test_name", "view_hierarchy")
_INT_FIELDS = ("tile_width", "tile_height")


def _parse_int(value: str, field: str, index: int) -> int:
    try:
        return int(value)
    except ValueError as e:
        raise InputError(f"Screenshot #{index}: {field} is not an integer: {value!r}") from e


def _parse_screenshot(elem: ET.Element, index: int) -> ScreenshotDescriptor:
    data: dict[str, object] = {}
    for child in elem:
        text = (child.text or "").strip()
        if child.tag in _TEXT_FIELDS:
            data[child.tag] = text
        elif child.tag in _INT_FIELDS and text:
            data[child.tag] = _parse_int(text, child.tag, index)
    if not data.get("name"):
        raise InputError(f"Screenshot #{index} has no name")
    try:
        return ScreenshotDescriptor(**data)
    except ValidationError as e:
        raise InputError(f"Invalid screenshot #{index} ({data['name']})") from e


class XmlMetadataSource:
    """Parses ``<screenshots><screenshot>...</screenshot></screenshots>``.

    Each ``<screenshot>`` has one child element per field. Unknown children
    are ignored, missing tile dimensions default to a single tile.
    """

    def parse(self, path: str | Path) -> list[ScreenshotDescriptor]:
        path = Path(path)
        if not path.is_file():
            raise InputError(f"Metadata file not found: {path}")
        try:
            root = ET.parse(path).getroot()
        except ET.ParseError as e:
            raise InputError(f"Malformed metadata file {path}") from e

        screenshots = [
            _parse_screenshot(elem, i)
            for i, elem in enumerate(root.iter("screenshot"))
        ]
        logger.debug("Read %d screenshot descriptors from %s", len(screenshots), path)
        return screenshots
