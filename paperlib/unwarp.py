"""
Un-warp correction - straightens barrel/pincushion curvature of a quad region.

The boundary is defined by four corners and four edge handles:

    TL ─── MidTop ─── TR
    │                   │
   MidLeft            MidRight
    │                   │
    BL ── MidBottom ── BR

Each side is a quadratic Bézier curve through its two corners that passes
through its handle. A dense grid of source/destination pairs computed by
transfinite interpolation feeds a single polynomial warp.

Two modes share the same source geometry:
    global - the curved quad becomes a fresh rectangle sized from its sides
    local  - the quad is straightened in place and composited back over the
             original image, leaving everything outside its bounding box as is
"""

import logging
import time

from .defaults import MIN_OUTPUT_SIZE, UNWARP_GRID_DIVISIONS
from .geometry import (ControlPoint, bilinear_point, bounding_box, distance,
                       sample_quadratic_bezier, scale_points, transfinite_point)
from .image_ops import ImageOps, Viewport, VIRTUAL_PIXEL_TRANSPARENT
from .runner import CorrectionCancelled, check_cancelled, elapsed_ms

POLYNOMIAL_ORDER = 3

MODE_GLOBAL = "global"
MODE_LOCAL = "local"
MODES = (MODE_GLOBAL, MODE_LOCAL)


class UnWarpGeometry:
    """
    The curved quad as a function of normalized (u, v).

    Args:
        corners: (top_left, top_right, bottom_left, bottom_right)
        handles: (mid_top, mid_right, mid_bottom, mid_left)
        divisions: Number of grid segments per side
    """

    def __init__(self, corners, handles, divisions=UNWARP_GRID_DIVISIONS):
        self.top_left, self.top_right, self.bottom_left, self.bottom_right = corners
        mid_top, mid_right, mid_bottom, mid_left = handles
        self.divisions = divisions

        self.top = sample_quadratic_bezier(self.top_left, mid_top, self.top_right, divisions)
        self.bottom = sample_quadratic_bezier(self.bottom_left, mid_bottom, self.bottom_right, divisions)
        self.left = sample_quadratic_bezier(self.top_left, mid_left, self.bottom_left, divisions)
        self.right = sample_quadratic_bezier(self.top_right, mid_right, self.bottom_right, divisions)

    def source_point(self, row, col):
        """Point on the curved quad at grid position (row, col)"""
        u = col / self.divisions
        v = row / self.divisions
        return transfinite_point(self.top, self.bottom, self.left, self.right, row, col, u, v)

    def bilinear_point(self, row, col):
        """Point on the straight-sided quad spanned by the corners"""
        return bilinear_point(self.top_left, self.top_right, self.bottom_left, self.bottom_right,
                              col / self.divisions, row / self.divisions)


def sample_edge_curve(start, mid, end, segments=20):
    """Points tracing one side through its handle, for drawing previews"""
    return sample_quadratic_bezier(start, mid, end, segments)


def global_output_size(top_left, top_right, bottom_left, bottom_right):
    """
    Output rectangle of a global un-warp.

    Returns:
        tuple: (width, height) as the longer of each pair of opposite sides
    """
    width = max(distance(top_left, top_right), distance(bottom_left, bottom_right))
    height = max(distance(top_left, bottom_left), distance(top_right, bottom_right))
    return width, height


def local_bounding_box(top_left, top_right, bottom_left, bottom_right):
    """
    Region a local un-warp writes back into the source.

    Returns:
        Viewport covering the corners' axis-aligned bounding box, in pixels
    """
    left, top, right, bottom = bounding_box([top_left, top_right, bottom_left, bottom_right])
    return Viewport(int(round(right - left)), int(round(bottom - top)),
                    int(round(left)), int(round(top)))


def build_unwarp_control_points(geometry, mode, output_width=None, output_height=None, cancel=None):
    """
    Control grid of an un-warp.

    Args:
        geometry: UnWarpGeometry in pixel space
        mode: "global" maps onto a (output_width x output_height) rectangle at
              the origin; "local" maps onto the corners' bilinear quad in
              full-image coordinates
        output_width: Destination width (global mode)
        output_height: Destination height (global mode)

    Returns:
        list of (divisions + 1)² ControlPoint, row-major
    """
    if mode not in MODES:
        raise ValueError(f"Unknown un-warp mode: {mode}")

    divisions = geometry.divisions
    if mode == MODE_GLOBAL:
        cell_w = output_width / divisions
        cell_h = output_height / divisions

    control_points = []
    for row in range(divisions + 1):
        check_cancelled(cancel, f"interpolating row {row}")
        for col in range(divisions + 1):
            src = geometry.source_point(row, col)
            if mode == MODE_GLOBAL:
                dst_x, dst_y = col * cell_w, row * cell_h
            else:
                dst_x, dst_y = geometry.bilinear_point(row, col)
            control_points.append(ControlPoint(src.x, src.y, dst_x, dst_y))
    return control_points


def correct_unwarp(image_path, corners, handles, scale_factor, mode=MODE_GLOBAL,
                   ops=None, logger=None, cancel=None):
    """
    Un-warp a curved region of the source image.

    Args:
        image_path: Path to the source image
        corners: (top_left, top_right, bottom_left, bottom_right) display coordinates
        handles: (mid_top, mid_right, mid_bottom, mid_left) display coordinates
        scale_factor: Display to pixel scale
        mode: "global" returns the straightened region as a new image,
              "local" returns the full original with the region replaced
        ops: ImageOps backend
        logger: Logger for diagnostics
        cancel: Optional threading.Event to abort between phases

    Returns:
        Corrected image, or None on failure
    """
    log = logger or logging.getLogger(__name__)
    ops = ops or ImageOps(logger=log)
    tag = "[UnWarp]" if mode == MODE_GLOBAL else "[UnWarp-Local]"
    start = time.perf_counter()

    if mode not in MODES:
        log.warning(f"[UnWarp] Unknown mode {mode!r}, aborting.")
        return None
    if len(corners) != 4 or len(handles) != 4:
        log.warning(f"{tag} Need 4 corners and 4 handles, got {len(corners)} and {len(handles)}")
        return None

    log.info(f"{tag} Starting. scaleFactor={scale_factor:.2f}")

    s_corners = scale_points(corners, scale_factor)
    s_handles = scale_points(handles, scale_factor)
    tl, tr, bl, br = s_corners

    if mode == MODE_GLOBAL:
        width, height = global_output_size(tl, tr, bl, br)
        out_w, out_h = int(round(width)), int(round(height))
        viewport = Viewport(out_w, out_h)
        log.debug(f"{tag} Output size: {out_w}x{out_h}, control grid: "
                  f"{UNWARP_GRID_DIVISIONS + 1}x{UNWARP_GRID_DIVISIONS + 1}")
    else:
        viewport = local_bounding_box(tl, tr, bl, br)
        out_w, out_h = viewport.width, viewport.height
        log.debug(f"{tag} Bounding box at ({viewport.x_offset},{viewport.y_offset}), "
                  f"size: {out_w}x{out_h}")

    if out_w < MIN_OUTPUT_SIZE or out_h < MIN_OUTPUT_SIZE:
        log.warning(f"{tag} Output too small ({out_w}x{out_h}), aborting.")
        return None

    try:
        check_cancelled(cancel, "loading")
        source = ops.load_image(image_path)
        if source is None:
            return None
        src_w, src_h = ops.size(source)
        log.debug(f"{tag} Source image: {src_w}x{src_h}")

        check_cancelled(cancel, "grid sampling")
        geometry = UnWarpGeometry(s_corners, s_handles)
        control_points = build_unwarp_control_points(geometry, mode, out_w, out_h, cancel=cancel)
        log.debug(f"{tag} Built {len(control_points)} control points in {elapsed_ms(start):.0f}ms")

        check_cancelled(cancel, "warp")
        patch = ops.distort_polynomial(source, POLYNOMIAL_ORDER, control_points, viewport,
                                       VIRTUAL_PIXEL_TRANSPARENT)
    except CorrectionCancelled as e:
        log.info(f"{tag} {e}")
        return None

    if mode == MODE_GLOBAL:
        result = patch
    else:
        result = ops.composite(source, patch, viewport.x_offset, viewport.y_offset)

    log.info(f"{tag} Complete in {elapsed_ms(start):.0f}ms")
    return result
