"""Geometry of the PixelGrid canvas.

The marketplace contract tokenises a fixed 192 x 108 (16:9) grid. Each cell
is one token whose id is its row-major index, so ids run from 0 to 20735.
The indexing core accepts any integer; callers validate with these helpers
before a user-supplied id reaches it.
"""

GRID_WIDTH = 192
GRID_HEIGHT = 108
PIXEL_COUNT = GRID_WIDTH * GRID_HEIGHT


def validate_pixel_id(pixel_id: int) -> int:
    """Return ``pixel_id`` unchanged if it addresses a cell on the grid.

    Args:
        pixel_id: Candidate token id.

    Returns:
        The same pixel id.

    Raises:
        ValueError: If the id lies outside ``[0, PIXEL_COUNT)``.

    """
    if not 0 <= pixel_id < PIXEL_COUNT:
        msg = f"Invalid pixel ID {pixel_id} (expected 0-{PIXEL_COUNT - 1})"
        raise ValueError(msg)
    return pixel_id


def pixel_id_from_coordinates(x: int, y: int) -> int:
    """Convert a column/row pair into the row-major pixel id.

    Args:
        x: Column, ``0 <= x < GRID_WIDTH``.
        y: Row, ``0 <= y < GRID_HEIGHT``.

    Returns:
        The pixel id ``y * GRID_WIDTH + x``.

    Raises:
        ValueError: If either coordinate is off the grid.

    """
    if not 0 <= x < GRID_WIDTH or not 0 <= y < GRID_HEIGHT:
        msg = f"Coordinates ({x}, {y}) are outside the {GRID_WIDTH}x{GRID_HEIGHT} grid"
        raise ValueError(msg)
    return y * GRID_WIDTH + x


def pixel_coordinates(pixel_id: int) -> tuple[int, int]:
    """Return the ``(x, y)`` position of a pixel id on the grid."""
    validate_pixel_id(pixel_id)
    return pixel_id % GRID_WIDTH, pixel_id // GRID_WIDTH
