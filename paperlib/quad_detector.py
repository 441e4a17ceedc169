"""
QuadrilateralDetector - Candidate document boundaries from edge and contour analysis.
"""

import logging
import math

import cv2
import cv3
import numpy as np

from . import defaults
from .geometry import Point
from .image_ops import ImageOps


def order_points(pts):
    """
    Order 4 points in canonical clockwise order.

    The smallest x+y is the top-left and the largest the bottom-right; of the
    remaining two, the smaller x-y is the bottom-left and the larger the
    top-right.

    Args:
        pts: Sequence of 4 (x, y) points in any order

    Returns:
        list of Point ordered as: [top-left, top-right, bottom-right, bottom-left]
    """
    points = [Point(float(p[0]), float(p[1])) for p in pts]

    by_sum = sorted(points, key=lambda p: p.x + p.y)
    top_left, bottom_right = by_sum[0], by_sum[3]

    bottom_left, top_right = sorted(by_sum[1:3], key=lambda p: p.x - p.y)

    return [top_left, top_right, bottom_right, bottom_left]


class Quadrilateral:
    """A detected quadrilateral with its corners in canonical order"""

    def __init__(self, points, area, confidence):
        if len(points) != 4:
            raise ValueError("Quadrilateral must have exactly 4 points")

        self.top_left, self.top_right, self.bottom_right, self.bottom_left = order_points(points)
        self.area = float(area)
        self.confidence = float(confidence)

    @property
    def points(self):
        return [self.top_left, self.top_right, self.bottom_right, self.bottom_left]

    def __repr__(self):
        corners = ", ".join(f"({p.x:.0f}, {p.y:.0f})" for p in self.points)
        return f"Quadrilateral([{corners}], area={self.area:.0f}, confidence={self.confidence:.3f})"


class DetectionResult:
    """Quadrilaterals found in an image, highest confidence first"""

    def __init__(self, image_width=0, image_height=0, quadrilaterals=None):
        self.image_width = image_width
        self.image_height = image_height
        self.quadrilaterals = quadrilaterals if quadrilaterals is not None else []

    def __len__(self):
        return len(self.quadrilaterals)


def is_convex(points):
    """
    Check that all turns of a 4-point polygon go the same way.

    A zero cross product counts as a negative turn, so collinear (near 180°)
    vertices break convexity whenever the other turns are positive.
    """
    if len(points) != 4:
        return False

    first_sign = None
    for i in range(4):
        p1 = points[i]
        p2 = points[(i + 1) % 4]
        p3 = points[(i + 2) % 4]

        cross = (p2[0] - p1[0]) * (p3[1] - p1[1]) - (p2[1] - p1[1]) * (p3[0] - p1[0])
        sign = cross > 0

        if first_sign is None:
            first_sign = sign
        elif first_sign != sign:
            return False

    return True


def calculate_angle(p1, p2, p3):
    """Angle at p2 between p2->p1 and p2->p3, in degrees [0, 180]"""
    angle1 = math.atan2(p1[1] - p2[1], p1[0] - p2[0])
    angle2 = math.atan2(p3[1] - p2[1], p3[0] - p2[0])

    diff = abs(angle1 - angle2) * 180.0 / math.pi
    if diff > 180:
        diff = 360 - diff
    return diff


def rectangularity_score(points):
    """
    How close a quadrilateral is to a rectangle.

    Returns:
        float: 1.0 when every interior angle is 90°, falling linearly to 0.0
               at an average deviation of 45° or more
    """
    if len(points) != 4:
        return 0.0

    total_deviation = 0.0
    for i in range(4):
        angle = calculate_angle(points[i], points[(i + 1) % 4], points[(i + 2) % 4])
        total_deviation += abs(angle - 90.0)

    avg_deviation = total_deviation / 4.0
    return max(0.0, 1.0 - avg_deviation / defaults.MAX_ANGLE_DEVIATION)


def calculate_confidence(points, area, image_area):
    """Weighted blend of relative size and rectangularity"""
    size_score = min(area / image_area, 1.0)
    return (defaults.SIZE_WEIGHT * size_score
            + defaults.RECTANGULARITY_WEIGHT * rectangularity_score(points))


def scale_quadrilateral(quad, scale_x, scale_y):
    """Rescale a quadrilateral's corners and area; confidence is kept"""
    scaled = [Point(p.x * scale_x, p.y * scale_y) for p in quad.points]
    return Quadrilateral(scaled, quad.area * scale_x * scale_y, quad.confidence)


def scale_to_display(quad, original_width, original_height, display_width, display_height):
    """Map a quadrilateral from source-image space to a display of another size"""
    return scale_quadrilateral(quad, display_width / original_width, display_height / original_height)


def draw_quadrilaterals(image, quads):
    """
    Outline detected quadrilaterals on a copy of the image.

    The best candidate is drawn in green, the rest in yellow, each labelled
    with its rank and confidence.
    """
    canvas = image.copy()
    for rank, quad in enumerate(quads):
        color = (0, 255, 0) if rank == 0 else (255, 255, 0)
        corners = quad.points
        for i in range(4):
            p1, p2 = corners[i], corners[(i + 1) % 4]
            cv3.line(canvas, int(p1.x), int(p1.y), int(p2.x), int(p2.y), color=color, t=2)
        for p in corners:
            cv3.circle(canvas, int(p.x), int(p.y), 5, color=color, fill=True)
        label = f"#{rank + 1} {quad.confidence:.2f}"
        cv2.putText(canvas, label, (int(quad.top_left.x) + 8, int(quad.top_left.y) + 20),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.6, color, 2)
    return canvas


class QuadrilateralDetector:
    """
    Finds candidate document quadrilaterals in photos.

    Candidates are ranked by a confidence score combining their share of the
    image area and how rectangular they are. Detection never raises: any
    failure yields an empty result.
    """

    def __init__(self, min_area=defaults.DETECT_MIN_AREA, max_results=defaults.DETECT_MAX_RESULTS,
                 ops=None, logger=None):
        """
        Args:
            min_area: Minimum quadrilateral area as a fraction of the image area
            max_results: Maximum number of candidates to return
            ops: ImageOps used to decode files
            logger: Logger for diagnostics (module logger by default)
        """
        self.min_area = min_area
        self.max_results = max_results
        self.log = logger or logging.getLogger(__name__)
        self.ops = ops or ImageOps(logger=self.log)

    def detect_path(self, image_path):
        """Detect quadrilaterals in an image file"""
        try:
            image = self.ops.load_image(image_path)
        except Exception as e:
            self.log.error(f"[QuadDetect] Could not read {image_path}: {e}")
            return DetectionResult()

        if image is None:
            return DetectionResult()
        return self.detect(image)

    def detect(self, image):
        """
        Detect candidate document quadrilaterals.

        Args:
            image: numpy array in RGB format (grayscale is accepted)

        Returns:
            DetectionResult sorted by confidence (highest first)
        """
        result = DetectionResult()
        if image is None:
            return result

        try:
            h, w = image.shape[:2]
            result.image_width = w
            result.image_height = h
            image_area = float(w * h)
            min_area_pixels = image_area * self.min_area

            for contour in self._find_contours(image):
                area = cv2.contourArea(contour)

                # Skip small contours
                if area < min_area_pixels:
                    continue

                peri = cv2.arcLength(contour, True)
                approx = cv2.approxPolyDP(contour, defaults.DETECT_APPROX_EPSILON * peri, True)
                if len(approx) != 4:
                    continue

                points = [Point(float(x), float(y)) for x, y in approx.reshape(4, 2)]
                if not is_convex(points):
                    continue

                confidence = calculate_confidence(points, area, image_area)
                result.quadrilaterals.append(Quadrilateral(points, area, confidence))

            result.quadrilaterals.sort(key=lambda q: q.confidence, reverse=True)
            result.quadrilaterals = result.quadrilaterals[:self.max_results]

            self.log.info(f"[QuadDetect] {len(result.quadrilaterals)} candidates in {w}x{h} image")

        except Exception as e:
            self.log.error(f"[QuadDetect] Detection failed: {e}")
            return DetectionResult(result.image_width, result.image_height)

        return result

    def _find_contours(self, image):
        if image.ndim == 2:
            gray = image
        elif image.shape[2] == 4:
            gray = cv2.cvtColor(image, cv2.COLOR_RGBA2GRAY)
        else:
            gray = cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)

        # Apply Gaussian blur to reduce noise
        k = defaults.DETECT_BLUR_KERNEL
        blurred = cv2.GaussianBlur(gray, (k, k), 0)

        edges = cv2.Canny(blurred, defaults.DETECT_CANNY_LOWER, defaults.DETECT_CANNY_UPPER)

        # Dilate edges to bridge small gaps
        kernel = cv2.getStructuringElement(cv2.MORPH_RECT,
                                           (defaults.DETECT_DILATE_KERNEL, defaults.DETECT_DILATE_KERNEL))
        edges = cv2.dilate(edges, kernel, iterations=1)

        contours, _ = cv2.findContours(edges, cv2.RETR_LIST, cv2.CHAIN_APPROX_SIMPLE)
        self.log.debug(f"[QuadDetect] {len(contours)} contours, {np.count_nonzero(edges)} edge pixels")
        return contours
