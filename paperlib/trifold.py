"""
Tri-fold correction - rectifies a photo of paper folded into three horizontal panels.

Eight control points define the geometry:

    TL ──── TR       (outer corners)
    │ Panel1 │
   UFL ──── UFR      (upper fold)
    │ Panel2 │
   LFL ──── LFR      (lower fold)
    │ Panel3 │
    BL ──── BR       (outer corners)

Each panel is perspective-corrected on its own and the three results are
stitched top to bottom.
"""

import logging
import time
from collections import namedtuple

from .defaults import MIN_PANEL_HEIGHT
from .geometry import ControlPoint, average_y, distance, scale_points
from .image_ops import ImageOps
from .runner import CorrectionCancelled, check_cancelled, elapsed_ms

TriFoldLayout = namedtuple("TriFoldLayout", ["width", "panel_heights"])


def panel_quads(points):
    """
    Split the 8 tri-fold points into three panel quads.

    Args:
        points: (TL, TR, UFL, UFR, LFL, LFR, BL, BR)

    Returns:
        list of three (tl, tr, br, bl) tuples, top panel first
    """
    tl, tr, ufl, ufr, lfl, lfr, bl, br = points
    return [
        (tl, tr, ufr, ufl),
        (ufl, ufr, lfr, lfl),
        (lfl, lfr, br, bl),
    ]


def compute_layout(points, min_height=MIN_PANEL_HEIGHT):
    """
    Output sizing of a tri-fold correction.

    The widest of the four horizontal edges sets the page width; each panel is
    as tall as the distance between the average y of its top and bottom edges,
    never less than min_height.

    Returns:
        TriFoldLayout with integer width and panel heights
    """
    tl, tr, ufl, ufr, lfl, lfr, bl, br = points

    width = max(distance(tl, tr), distance(ufl, ufr), distance(lfl, lfr), distance(bl, br))

    edges_y = [average_y(tl, tr), average_y(ufl, ufr), average_y(lfl, lfr), average_y(bl, br)]
    heights = []
    for top_y, bottom_y in zip(edges_y, edges_y[1:]):
        # abs() tolerates mis-ordered points
        heights.append(int(round(max(min_height, abs(bottom_y - top_y)))))

    return TriFoldLayout(int(round(width)), heights)


def correct_panel(ops, image, tl, tr, br, bl, width, height):
    """
    Map one panel quad onto a width x height rectangle.

    The perspective warp keeps the source extent (no best fit) and the
    result is then cropped to exactly the requested rectangle.
    """
    control_points = [
        ControlPoint(tl[0], tl[1], 0, 0),
        ControlPoint(tr[0], tr[1], width, 0),
        ControlPoint(br[0], br[1], width, height),
        ControlPoint(bl[0], bl[1], 0, height),
    ]
    warped = ops.distort_perspective(image, control_points)
    return ops.crop(warped, 0, 0, width, height)


def correct_trifold(image_path, points, scale_factor, ops=None, logger=None, cancel=None):
    """
    Correct a tri-folded paper image.

    Args:
        image_path: Path to the source image
        points: (TL, TR, UFL, UFR, LFL, LFR, BL, BR) in display coordinates
        scale_factor: Display to pixel scale
        ops: ImageOps backend
        logger: Logger for diagnostics
        cancel: Optional threading.Event to abort between panels

    Returns:
        The three corrected panels stitched vertically, or None on failure
    """
    log = logger or logging.getLogger(__name__)
    ops = ops or ImageOps(logger=log)
    start = time.perf_counter()

    if len(points) != 8:
        log.warning(f"[TriFold] Need 8 control points, got {len(points)}")
        return None

    log.info(f"[TriFold] Starting. scaleFactor={scale_factor:.2f}")

    scaled = scale_points(points, scale_factor)
    layout = compute_layout(scaled)
    log.debug(f"[TriFold] Output width {layout.width}, panel heights {layout.panel_heights}")

    try:
        check_cancelled(cancel, "loading")
        source = ops.load_image(image_path)
        if source is None:
            return None

        panels = []
        for index, (quad, height) in enumerate(zip(panel_quads(scaled), layout.panel_heights)):
            check_cancelled(cancel, f"panel {index + 1}")
            tl, tr, br, bl = quad
            panels.append(correct_panel(ops, source, tl, tr, br, bl, layout.width, height))
    except CorrectionCancelled as e:
        log.info(f"[TriFold] {e}")
        return None

    # The canvas inherits the source format so later encoding behaves the same
    result = ops.new_canvas(layout.width, sum(layout.panel_heights), like=source)
    offset_y = 0
    for panel, height in zip(panels, layout.panel_heights):
        result = ops.composite(result, panel, 0, offset_y)
        offset_y += height

    log.info(f"[TriFold] Complete in {elapsed_ms(start):.0f}ms, output {layout.width}x{offset_y}")
    return result
