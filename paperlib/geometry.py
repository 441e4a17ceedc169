"""
Geometry primitives shared by the correctors: points, control point pairs,
interpolation, Bézier sampling and transfinite interpolation.
"""

import math
from collections import namedtuple

import numpy as np


Point = namedtuple("Point", ["x", "y"])

# One source -> destination correspondence fed to a warp
ControlPoint = namedtuple("ControlPoint", ["src_x", "src_y", "dst_x", "dst_y"])


def scale_point(p, factor):
    """Convert a display-space point to pixel space"""
    return Point(p[0] * factor, p[1] * factor)


def scale_points(points, factor):
    """Scale every point in a sequence by the same factor"""
    return [scale_point(p, factor) for p in points]


def lerp(a, b, t):
    """Linear interpolation between two points"""
    return Point(a[0] + (b[0] - a[0]) * t, a[1] + (b[1] - a[1]) * t)


def distance(a, b):
    return math.hypot(a[0] - b[0], a[1] - b[1])


def midpoint(a, b):
    return Point((a[0] + b[0]) / 2.0, (a[1] + b[1]) / 2.0)


def average_y(a, b):
    return (a[1] + b[1]) / 2.0


def bezier_control_from_pass_through(start, pass_through, end):
    """
    Convert a "pass-through" handle into a true quadratic Bézier control point.

    A quadratic Bézier evaluated at t=0.5 is 0.25*P0 + 0.5*C + 0.25*P2, so a
    curve that visually passes through the handle needs
    C = 2*handle - 0.5*P0 - 0.5*P2.
    """
    return Point(2 * pass_through[0] - 0.5 * start[0] - 0.5 * end[0],
                 2 * pass_through[1] - 0.5 * start[1] - 0.5 * end[1])


def sample_quadratic_bezier(p0, handle, p2, divisions):
    """
    Sample a quadratic Bézier curve passing through a midpoint handle.

    Args:
        p0: Start point
        handle: Point the curve passes through at t=0.5
        p2: End point
        divisions: Number of segments; divisions + 1 points are returned

    Returns:
        List of Point, first equal to p0 and last equal to p2.
        When the handle is the midpoint of p0-p2 every sample lies on the
        straight segment.
    """
    c = bezier_control_from_pass_through(p0, handle, p2)

    t = np.linspace(0.0, 1.0, divisions + 1)
    mt = 1.0 - t
    xs = mt * mt * p0[0] + 2 * mt * t * c[0] + t * t * p2[0]
    ys = mt * mt * p0[1] + 2 * mt * t * c[1] + t * t * p2[1]

    return [Point(float(x), float(y)) for x, y in zip(xs, ys)]


def bilinear_point(tl, tr, bl, br, u, v):
    """Bilinear blend of four corners at normalized (u, v)"""
    return lerp(lerp(tl, tr, u), lerp(bl, br, u), v)


def transfinite_point(top_edge, bottom_edge, left_edge, right_edge, row, col, u, v):
    """
    Coons-patch (transfinite) interpolation of an interior point.

    Top/bottom edges are indexed by column, left/right edges by row. The
    corners are taken from the curve endpoints so that (row=0, col=0) lands
    exactly on the top-left corner and the last row/col on the bottom-right.

    Returns:
        Point in the same space as the edge curves
    """
    top_bottom = lerp(top_edge[col], bottom_edge[col], v)
    left_right = lerp(left_edge[row], right_edge[row], u)
    corners = bilinear_point(top_edge[0], top_edge[-1],
                             bottom_edge[0], bottom_edge[-1], u, v)

    return Point(top_bottom.x + left_right.x - corners.x,
                 top_bottom.y + left_right.y - corners.y)


def bounding_box(points):
    """
    Axis-aligned bounding box of a set of points.

    Returns:
        tuple: (left, top, right, bottom)
    """
    xs = [p[0] for p in points]
    ys = [p[1] for p in points]
    return min(xs), min(ys), max(xs), max(ys)
