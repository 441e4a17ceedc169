"""
Edge correction - straightens wavy edges of an already perspective-corrected image.

Workflow:
    1. After perspective correction the image is roughly rectangular.
    2. The user places points along any wavy edges.
    3. Each point is assigned to the nearest rectangle edge.
    4. Points on each edge are sorted and turned into a piecewise-linear
       boundary curve with the rectangle corners as endpoints.
    5. Transfinite interpolation maps the curved boundary back to a perfect
       rectangle through one polynomial warp.
"""

import enum
import logging
import time

from .defaults import EDGE_GRID_DIVISIONS, MIN_OUTPUT_SIZE
from .geometry import ControlPoint, Point, scale_points, transfinite_point
from .image_ops import ImageOps, Viewport, VIRTUAL_PIXEL_EDGE
from .runner import CorrectionCancelled, check_cancelled, elapsed_ms

POLYNOMIAL_ORDER = 3


class Edge(enum.Enum):
    TOP = "Top"
    RIGHT = "Right"
    BOTTOM = "Bottom"
    LEFT = "Left"


def classify_point_to_edge(point, width, height):
    """
    Assign a point to the rectangle edge it is perpendicularly closest to.

    Ties go to the first match in Top, Right, Bottom, Left order.
    """
    dist_top = point[1]
    dist_bottom = height - point[1]
    dist_left = point[0]
    dist_right = width - point[0]

    nearest = min(dist_top, dist_bottom, dist_left, dist_right)

    if nearest == dist_top:
        return Edge.TOP
    if nearest == dist_right:
        return Edge.RIGHT
    if nearest == dist_bottom:
        return Edge.BOTTOM
    return Edge.LEFT


def get_edge_snap_info(point, width, height):
    """
    Edge assignment and perpendicular snap of a single point, for live feedback.

    Returns:
        tuple: (edge_name, snapped_point)
    """
    edge = classify_point_to_edge(point, width, height)

    if edge is Edge.TOP:
        snapped = Point(point[0], 0)
    elif edge is Edge.RIGHT:
        snapped = Point(width, point[1])
    elif edge is Edge.BOTTOM:
        snapped = Point(point[0], height)
    else:
        snapped = Point(0, point[1])

    return edge.value, snapped


def assign_points_to_edges(points, width, height):
    """
    Split points by nearest edge and sort each group along its edge.

    Returns:
        dict mapping Edge to a list of Point; top/bottom sorted by x,
        left/right sorted by y
    """
    groups = {edge: [] for edge in Edge}
    for pt in points:
        groups[classify_point_to_edge(pt, width, height)].append(Point(pt[0], pt[1]))

    for edge in (Edge.TOP, Edge.BOTTOM):
        groups[edge].sort(key=lambda p: p.x)
    for edge in (Edge.LEFT, Edge.RIGHT):
        groups[edge].sort(key=lambda p: p.y)

    return groups


def interpolate_along_edge(sorted_points, position, horizontal):
    """
    Perpendicular coordinate of the boundary at a position along the edge.

    Args:
        sorted_points: Boundary points sorted along the edge
        position: Coordinate along the edge (x for horizontal edges, y otherwise)
        horizontal: True for top/bottom edges

    Returns:
        float: Linear interpolation between the bracketing points; positions
               outside the covered range clamp to the nearest endpoint
    """
    if not sorted_points:
        return position

    def along(p):
        return p[0] if horizontal else p[1]

    def across(p):
        return p[1] if horizontal else p[0]

    for p0, p1 in zip(sorted_points, sorted_points[1:]):
        pos0, pos1 = along(p0), along(p1)
        if pos0 <= position <= pos1:
            span = pos1 - pos0
            if span < 0.001:
                return across(p0)
            t = (position - pos0) / span
            return across(p0) + t * (across(p1) - across(p0))

    if position <= along(sorted_points[0]):
        return across(sorted_points[0])
    return across(sorted_points[-1])


def build_edge_curve(start, end, user_points, horizontal, divisions=EDGE_GRID_DIVISIONS):
    """
    Sample a boundary curve from corner to corner through the user points.

    Returns:
        list of divisions + 1 Point evenly spaced along the primary axis
    """
    all_points = [Point(start[0], start[1])] + list(user_points) + [Point(end[0], end[1])]

    curve = []
    for i in range(divisions + 1):
        t = i / divisions
        if horizontal:
            x = start[0] + t * (end[0] - start[0])
            curve.append(Point(x, interpolate_along_edge(all_points, x, True)))
        else:
            y = start[1] + t * (end[1] - start[1])
            curve.append(Point(interpolate_along_edge(all_points, y, False), y))
    return curve


def build_edge_curves(groups, width, height, divisions=EDGE_GRID_DIVISIONS):
    """
    Build the four boundary curves of a width x height rectangle.

    Args:
        groups: Sorted points per edge, as returned by assign_points_to_edges

    Returns:
        tuple: (top, right, bottom, left) curves
    """
    tl = Point(0, 0)
    tr = Point(width, 0)
    br = Point(width, height)
    bl = Point(0, height)

    top = build_edge_curve(tl, tr, groups[Edge.TOP], True, divisions)
    right = build_edge_curve(tr, br, groups[Edge.RIGHT], False, divisions)
    bottom = build_edge_curve(bl, br, groups[Edge.BOTTOM], True, divisions)
    left = build_edge_curve(tl, bl, groups[Edge.LEFT], False, divisions)
    return top, right, bottom, left


def build_edge_control_points(curves, output_width, output_height, divisions=EDGE_GRID_DIVISIONS,
                              cancel=None):
    """
    Transfinite grid mapping the curved boundary onto a perfect rectangle.

    Args:
        curves: (top, right, bottom, left) curves in pixel space
        output_width: Width of the destination rectangle
        output_height: Height of the destination rectangle

    Returns:
        list of (divisions + 1)² ControlPoint, row-major
    """
    top, right, bottom, left = curves
    cell_w = output_width / divisions
    cell_h = output_height / divisions

    control_points = []
    for row in range(divisions + 1):
        check_cancelled(cancel, f"interpolating row {row}")
        v = row / divisions
        for col in range(divisions + 1):
            u = col / divisions
            src = transfinite_point(top, bottom, left, right, row, col, u, v)
            control_points.append(ControlPoint(src.x, src.y, col * cell_w, row * cell_h))
    return control_points


def correct_edges(image_path, edge_points, display_width, display_height, scale_factor,
                  ops=None, logger=None, cancel=None):
    """
    Straighten wavy edges of an already-cropped image.

    Args:
        image_path: Path to the source image
        edge_points: Points placed near the edges (display coordinates)
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
    log.info(f"[EdgeCorrection] Starting with {len(edge_points)} user points. scaleFactor={scale_factor:.2f}")

    if not edge_points:
        log.warning("[EdgeCorrection] No edge points provided, aborting.")
        return None

    out_w = int(round(display_width * scale_factor))
    out_h = int(round(display_height * scale_factor))
    log.debug(f"[EdgeCorrection] Output size: {out_w}x{out_h}")

    if out_w < MIN_OUTPUT_SIZE or out_h < MIN_OUTPUT_SIZE:
        log.warning(f"[EdgeCorrection] Output too small ({out_w}x{out_h}), aborting.")
        return None

    try:
        check_cancelled(cancel, "grid sampling")
        groups = assign_points_to_edges(edge_points, display_width, display_height)
        log.debug("[EdgeCorrection] Points per edge: " +
                  ", ".join(f"{edge.value}={len(groups[edge])}" for edge in Edge))

        curves = build_edge_curves(groups, display_width, display_height)
        curves = tuple(scale_points(curve, scale_factor) for curve in curves)

        check_cancelled(cancel, "loading")
        source = ops.load_image(image_path)
        if source is None:
            return None

        # The warp keeps the actual image size
        out_w, out_h = ops.size(source)
        log.debug(f"[EdgeCorrection] Source image: {out_w}x{out_h}")

        control_points = build_edge_control_points(curves, out_w, out_h, cancel=cancel)
        log.debug(f"[EdgeCorrection] Built {len(control_points)} control points in {elapsed_ms(start):.0f}ms")

        check_cancelled(cancel, "warp")
        result = ops.distort_polynomial(source, POLYNOMIAL_ORDER, control_points,
                                        Viewport(out_w, out_h), VIRTUAL_PIXEL_EDGE)
    except CorrectionCancelled as e:
        log.info(f"[EdgeCorrection] {e}")
        return None

    log.info(f"[EdgeCorrection] Complete in {elapsed_ms(start):.0f}ms")
    return result
