"""Tile grid naming: map a screenshot's grid to its tile filenames."""

from __future__ import annotations

from typing import NamedTuple

from PIL import Image

from recorder.images.source import ImageSource
from recorder.models.screenshot import ScreenshotDescriptor


class TilePosition(NamedTuple):
    row: int
    col: int
    filename: str


def tile_filename(name: str, row: int, col: int) -> str:
    """Return the tile file for ``(row, col)``; column index comes first."""
    if row == 0 and col == 0:
        return f"{name}.png"
    return f"{name}_{col}_{row}.png"


def resolve_filenames(descriptor: ScreenshotDescriptor) -> list[TilePosition]:
    """List every tile of the screenshot in row-major order."""
    return [
        TilePosition(row, col, tile_filename(descriptor.name, row, col))
        for row in range(descriptor.tile_height)
        for col in range(descriptor.tile_width)
    ]


def load_tile_matrix(
    source: ImageSource, descriptor: ScreenshotDescriptor
) -> list[list[Image.Image]]:
    """Read all tiles of a screenshot as rows of decoded images."""
    rows: list[list[Image.Image]] = [[] for _ in range(descriptor.tile_height)]
    for pos in resolve_filenames(descriptor):
        rows[pos.row].append(source.get_image(pos.filename))
    return rows
