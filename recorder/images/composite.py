"""Composite assembly: stitch a rectangular tile grid into one bitmap."""

from __future__ import annotations

import io
import logging

from PIL import Image

from recorder.errors import GridMismatchError

logger = logging.getLogger(__name__)

PNG_COMPRESS_LEVEL = 6
PALETTE_MODES = ("P", "PA")

RGBA = tuple[int, int, int, int]


def _check_grid(tiles: list[list[Image.Image]]) -> None:
    if not tiles or not tiles[0]:
        raise GridMismatchError("Tile grid is empty")

    first_row = tiles[0]
    mode = first_row[0].mode
    color_key = first_row[0].info.get("transparency")
    for r, row in enumerate(tiles):
        if len(row) != len(first_row):
            raise GridMismatchError(
                f"Row {r} has {len(row)} tiles, expected {len(first_row)}"
            )
        row_height = row[0].height
        for c, tile in enumerate(row):
            if tile.height != row_height:
                raise GridMismatchError(
                    f"Tile ({r}, {c}) is {tile.height}px high, row {r} is {row_height}px"
                )
            if tile.width != first_row[c].width:
                raise GridMismatchError(
                    f"Tile ({r}, {c}) is {tile.width}px wide, column {c} is {first_row[c].width}px"
                )
            if tile.mode != mode:
                raise GridMismatchError(
                    f"Tile ({r}, {c}) has pixel format {tile.mode}, expected {mode}"
                )
            # palette transparency is compared per entry in _merge_palettes
            if mode not in PALETTE_MODES and tile.info.get("transparency") != color_key:
                raise GridMismatchError(
                    f"Tile ({r}, {c}) has transparent color {tile.info.get('transparency')}, "
                    f"expected {color_key}"
                )


def _palette_entries(tile: Image.Image) -> list[RGBA]:
    """The tile's palette as RGBA entries, alpha taken from its tRNS chunk."""
    palette = tile.getpalette() or []
    alpha = tile.info.get("transparency")
    entries = []
    for i in range(len(palette) // 3):
        if isinstance(alpha, bytes):
            a = alpha[i] if i < len(alpha) else 255
        else:
            a = 0 if alpha == i else 255
        entries.append((palette[3 * i], palette[3 * i + 1], palette[3 * i + 2], a))
    return entries


def _used_indices(tile: Image.Image) -> set[int]:
    colors = tile.getcolors(maxcolors=max(1, tile.width * tile.height)) or []
    # PA tiles report (index, alpha) pairs
    return {c if isinstance(c, int) else c[0] for _, c in colors}


def _merge_palettes(tiles: list[list[Image.Image]]) -> list[RGBA]:
    """Build one palette that renders every tile's indices unchanged.

    Starts from the first tile's palette. Entries a tile actually uses must
    agree with every other tile using the same index, otherwise pasting the
    raw indices would recolor that tile.
    """
    merged = _palette_entries(tiles[0][0])
    used: dict[int, RGBA] = {}
    for r, row in enumerate(tiles):
        for c, tile in enumerate(row):
            entries = _palette_entries(tile)
            for i in sorted(_used_indices(tile)):
                entry = entries[i] if i < len(entries) else (0, 0, 0, 255)
                if used.setdefault(i, entry) != entry:
                    raise GridMismatchError(
                        f"Tile ({r}, {c}) maps palette index {i} to {entry}, "
                        f"an earlier tile maps it to {used[i]}"
                    )

    if used:
        merged.extend([(0, 0, 0, 255)] * (max(used) + 1 - len(merged)))
    for i, entry in used.items():
        merged[i] = entry
    return merged


def assemble(tiles: list[list[Image.Image]]) -> Image.Image:
    """Stitch rows of tiles into one image without resampling.

    The composite takes the width of row 0 and the height of column 0, and
    the pixel format of the first tile. Palette and transparency are carried
    over so the composite renders exactly like its tiles. Raises
    GridMismatchError before allocating anything if the grid is not
    rectangular or the tiles disagree on how their pixels render.
    """
    _check_grid(tiles)

    first = tiles[0][0]
    width = sum(tile.width for tile in tiles[0])
    height = sum(row[0].height for row in tiles)

    palette = _merge_palettes(tiles) if first.mode in PALETTE_MODES else None

    output = Image.new(first.mode, (width, height))
    if palette is not None:
        output.putpalette([v for r, g, b, _ in palette for v in (r, g, b)])
        alpha = bytes(a for *_, a in palette)
        if first.mode == "P" and any(a < 255 for a in alpha):
            output.info["transparency"] = alpha
    elif "transparency" in first.info:
        output.info["transparency"] = first.info["transparency"]

    y = 0
    for row in tiles:
        x = 0
        for tile in row:
            output.paste(tile, (x, y))
            x += tile.width
        y += row[0].height

    logger.debug("Assembled %dx%d tiles into %dx%d %s image",
                 len(tiles[0]), len(tiles), width, height, first.mode)
    return output


def encode_png(image: Image.Image) -> bytes:
    """Encode as PNG with fixed settings so equal pixels give equal bytes."""
    params = {}
    if "transparency" in image.info:
        params["transparency"] = image.info["transparency"]
    buf = io.BytesIO()
    image.save(buf, format="PNG", compress_level=PNG_COMPRESS_LEVEL, **params)
    return buf.getvalue()
