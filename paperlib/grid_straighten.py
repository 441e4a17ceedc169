"""
Grid straightening - corrects a skewed or distorted image with a user-adjusted grid.

The user overlays an RxC grid on the image and drags intersections onto the
features they belong to. Each intersection then defines a correspondence:
the dragged position is where the feature currently is (source), the regular
grid position is where it should be (destination). All of them feed a single
polynomial warp.
"""

import logging
import time

from .defaults import MAX_POLYNOMIAL_ORDER
from .geometry import ControlPoint, Point
from .image_ops import ImageOps, Viewport, VIRTUAL_PIXEL_EDGE
from .runner import CorrectionCancelled, check_cancelled, elapsed_ms


def generate_regular_grid(width, height, rows, cols):
    """
    Generate evenly spaced grid points covering width x height.

    Args:
        width: Display width of the image
        height: Display height of the image
        rows: Number of grid rows (including edges)
        cols: Number of grid columns (including edges)

    Returns:
        list of Point in row-major order; the corners are exactly
        (0, 0), (width, 0), (0, height) and (width, height)
    """
    if rows < 2 or cols < 2:
        raise ValueError("Grid needs at least 2 rows and 2 columns")

    points = []
    for row in range(rows):
        y = row * height / (rows - 1)
        for col in range(cols):
            x = col * width / (cols - 1)
            points.append(Point(x, y))
    return points


def polynomial_order(rows, cols):
    """Warp order for a grid; tiny grids get low orders to avoid over-fitting"""
    return min(MAX_POLYNOMIAL_ORDER, min(rows, cols))


def build_grid_control_points(grid_points, rows, cols, display_width, display_height,
                              scale_factor, logger=None):
    """
    Pair every dragged grid point with its regular grid position.

    Returns:
        list of ControlPoint in pixel space (row-major), or None if the
        number of points does not match the grid
    """
    log = logger or logging.getLogger(__name__)

    expected = rows * cols
    if rows < 2 or cols < 2 or len(grid_points) != expected:
        log.warning(f"[GridStraighten] Grid point count mismatch: expected {expected} "
                    f"for {rows}x{cols}, got {len(grid_points)}")
        return None

    cell_w = display_width / (cols - 1)
    cell_h = display_height / (rows - 1)

    control_points = []
    for row in range(rows):
        for col in range(cols):
            user_point = grid_points[row * cols + col]
            control_points.append(ControlPoint(
                user_point[0] * scale_factor,
                user_point[1] * scale_factor,
                col * cell_w * scale_factor,
                row * cell_h * scale_factor))
    return control_points


def straighten(image_path, grid_points, rows, cols, display_width, display_height, scale_factor,
               ops=None, logger=None, cancel=None):
    """
    Apply grid-based straightening to an image.

    Args:
        image_path: Path to the source image
        grid_points: User-adjusted grid points (display coordinates, row-major)
        rows: Number of grid rows (including edges)
        cols: Number of grid columns (including edges)
        display_width: Display width of the image
        display_height: Display height of the image
        scale_factor: Display to pixel scale
        ops: ImageOps backend
        logger: Logger for diagnostics
        cancel: Optional threading.Event to abort between phases

    Returns:
        Corrected image (same size as the source), or None on failure
    """
    log = logger or logging.getLogger(__name__)
    ops = ops or ImageOps(logger=log)
    start = time.perf_counter()
    log.info(f"[GridStraighten] Starting with {rows}x{cols} grid. scaleFactor={scale_factor:.2f}")

    try:
        control_points = build_grid_control_points(grid_points, rows, cols, display_width,
                                                   display_height, scale_factor, logger=log)
        if control_points is None:
            return None
        log.debug(f"[GridStraighten] Built {len(control_points)} control points in {elapsed_ms(start):.0f}ms")

        check_cancelled(cancel, "loading")
        source = ops.load_image(image_path)
        if source is None:
            return None

        out_w, out_h = ops.size(source)
        log.debug(f"[GridStraighten] Source image: {out_w}x{out_h}")

        check_cancelled(cancel, "warp")
        result = ops.distort_polynomial(source, polynomial_order(rows, cols), control_points,
                                        Viewport(out_w, out_h), VIRTUAL_PIXEL_EDGE)
    except CorrectionCancelled as e:
        log.info(f"[GridStraighten] {e}")
        return None

    log.info(f"[GridStraighten] Complete in {elapsed_ms(start):.0f}ms")
    return result
